from __future__ import annotations

from ..extensions import db
from gudang.time_utils import to_utc_z


class Department(db.Model):
    """Warehouse department (a physical location that owns SKUs)."""
    __tablename__ = "departments"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data plus the authoritative running stock.

    CODE: human/QR-scannable identifier, unique and immutable after creation.

    STOCK: mutated only through ProductRepository.set_balance (transaction
    posting and opname approval). Descriptive edits never touch it.

    VERSION: bumped by every balance write. Balance writes match on
    (code, version) so two concurrent writers cannot both win with a stale read.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    row_id = db.Column(db.Integer, primary_key=True)

    id = db.Column(db.String(36), nullable=False, unique=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    department_id = db.Column(db.String(32), db.ForeignKey("departments.id"), nullable=False, index=True)
    unit = db.Column(db.String(32), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Product code={self.code!r} stock={self.stock} version={self.version}>"


class StockTransaction(db.Model):
    """
    Append-only ledger row. Never updated or deleted.

    row_id doubles as the append order, which breaks ties between rows
    sharing a timestamp during balance reconstruction.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_transactions_qty_pos"),
        db.CheckConstraint("type IN ('IN', 'OUT')", name="ck_stock_transactions_type"),
        db.Index("ix_stock_transactions_code_ts", "product_code", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    row_id = db.Column(db.Integer, primary_key=True)

    id = db.Column(db.String(36), nullable=False, unique=True)
    timestamp = db.Column(db.DateTime, nullable=False, index=True)
    type = db.Column(db.String(8), nullable=False)
    product_code = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    actor = db.Column(db.String(255), nullable=False)
    department_id = db.Column(db.String(32), nullable=True)


class OpnameRecord(db.Model):
    """
    One line of a physical-count submission.

    LIFECYCLE:
    1. PENDING: submitted by a field actor, stock untouched
    2. APPROVED: stock overwritten with the approved count; terminal, immutable
    3. REJECTED: never stored; rejection deletes the row outright

    stock_before / approved_at are filled on approval so the correction can be
    undone while reconstructing historical balances.
    """
    __tablename__ = "opname_records"
    __table_args__ = (
        db.UniqueConstraint("opname_id", "product_code", name="uq_opname_records_batch_code"),
        {"sqlite_autoincrement": True},
    )

    row_id = db.Column(db.Integer, primary_key=True)

    opname_id = db.Column(db.String(40), nullable=False, index=True)
    opname_date = db.Column(db.Date, nullable=False, index=True)
    timestamp = db.Column(db.DateTime, nullable=False)

    product_code = db.Column(db.String(64), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    system_stock = db.Column(db.Integer, nullable=False)
    physical_stock = db.Column(db.Integer, nullable=False)
    variance = db.Column(db.Integer, nullable=False)
    label = db.Column(db.String(8), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    submitted_by = db.Column(db.String(255), nullable=True)
    approved_by = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approved_stock = db.Column(db.Integer, nullable=True)
    stock_before = db.Column(db.Integer, nullable=True)


def serialize_row(row: dict) -> dict:
    """Render a RowStore row for JSON (datetimes as ISO-8601 'Z', dates as ISO)."""
    out = {}
    for key, value in row.items():
        if hasattr(value, "hour"):
            out[key] = to_utc_z(value)
        elif hasattr(value, "isoformat"):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out
