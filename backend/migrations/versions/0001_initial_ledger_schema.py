"""initial ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates:
- departments: locations that own SKUs
- products: master data + authoritative stock (versioned for CAS writes)
- stock_transactions: append-only IN/OUT ledger
- opname_records: physical count lines (PENDING / APPROVED)
- users, session_tokens: authenticated actors
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'departments',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
    )

    op.create_table(
        'products',
        sa.Column('row_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id', sa.String(length=36), nullable=False, unique=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('department_id', sa.String(length=32), sa.ForeignKey('departments.id'), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_nonneg'),
    )
    op.create_index('ix_products_department_id', 'products', ['department_id'])

    op.create_table(
        'stock_transactions',
        sa.Column('row_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id', sa.String(length=36), nullable=False, unique=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('department_id', sa.String(length=32), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_stock_transactions_qty_pos'),
        sa.CheckConstraint("type IN ('IN', 'OUT')", name='ck_stock_transactions_type'),
    )
    op.create_index('ix_stock_transactions_timestamp', 'stock_transactions', ['timestamp'])
    op.create_index('ix_stock_transactions_code_ts', 'stock_transactions', ['product_code', 'timestamp'])

    op.create_table(
        'opname_records',
        sa.Column('row_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('opname_id', sa.String(length=40), nullable=False),
        sa.Column('opname_date', sa.Date(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('system_stock', sa.Integer(), nullable=False),
        sa.Column('physical_stock', sa.Integer(), nullable=False),
        sa.Column('variance', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('submitted_by', sa.String(length=255), nullable=True),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_stock', sa.Integer(), nullable=True),
        sa.Column('stock_before', sa.Integer(), nullable=True),
        sa.UniqueConstraint('opname_id', 'product_code', name='uq_opname_records_batch_code'),
    )
    op.create_index('ix_opname_records_opname_id', 'opname_records', ['opname_id'])
    op.create_index('ix_opname_records_opname_date', 'opname_records', ['opname_date'])
    op.create_index('ix_opname_records_product_code', 'opname_records', ['product_code'])
    op.create_index('ix_opname_records_status', 'opname_records', ['status'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False, unique=True),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='STAFF'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])


def downgrade():
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('opname_records')
    op.drop_table('stock_transactions')
    op.drop_table('products')
    op.drop_table('departments')
