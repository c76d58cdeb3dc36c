# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/gudang/cli.py
# Commands Legend (run from the backend directory):
# - flask --app gudang system init-db
#   Create all tables (idempotent).
# - flask --app gudang system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app gudang departments create --id GD1 --name "Gudang 1"
# - flask --app gudang departments list
# - flask --app gudang users create --username budi --password "Password123" --role SUPERVISOR --display-name "Budi"
# - flask --app gudang ledger verify
#   List products whose stock is not explained by their ledger.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Department
from .models.auth import ROLES, ROLE_STAFF
from .services.auth_service import create_user, PasswordValidationError
from .services.reporting_service import find_ledger_divergence


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table.')
@with_appcontext
def reset_db(yes):
    if not yes:
        raise click.UsageError("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.group('departments')
def departments_group():
    """Department reference data."""


@departments_group.command('create')
@click.option('--id', 'department_id', required=True)
@click.option('--name', required=True)
@with_appcontext
def create_department(department_id, name):
    if db.session.get(Department, department_id):
        raise click.ClickException(f"Department {department_id} already exists")
    db.session.add(Department(id=department_id, name=name))
    db.session.commit()
    click.echo(f"Created department {department_id}")


@departments_group.command('list')
@with_appcontext
def list_departments():
    for dept in db.session.query(Department).order_by(Department.id).all():
        click.echo(f"{dept.id}\t{dept.name}")


@click.group('users')
def users_group():
    """User bootstrap."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_STAFF, show_default=True)
@click.option('--display-name', default=None)
@with_appcontext
def create_user_command(username, password, role, display_name):
    try:
        user = create_user(username, password, display_name=display_name, role=role)
    except (ValueError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Created user {user.username} ({user.role})")


@click.group('ledger')
def ledger_group():
    """Ledger integrity commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    diverged = find_ledger_divergence()
    if not diverged:
        click.echo("All product balances are explained by the ledger.")
        return
    for row in diverged:
        click.echo(
            f"{row['product_code']}: stock {row['stock']}, "
            f"ledger leaves {row['origin_balance']} unexplained"
        )
    raise SystemExit(1)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(departments_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
