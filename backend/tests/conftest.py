"""
Pytest fixtures for gudang backend tests.

Provides an in-memory database, per-test cleanup, the Flask test client,
departments/products/users and authenticated headers.
"""

import uuid
from datetime import datetime

import pytest

from gudang import create_app
from gudang.extensions import db
from gudang.models import Department
from gudang.models.auth import ROLE_STAFF, ROLE_SUPERVISOR
from gudang.services.auth_service import create_user
from gudang.services.product_repository import ProductRepository
from gudang.services.row_store import TABLE_PRODUCTS, get_row_store
from gudang.services.session_service import create_session


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'STORE_RETRY_BACKOFF_SECONDS': 0,
        'REPORT_TIMEZONE': 'UTC',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test, schema kept."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def store(app):
    return get_row_store()


@pytest.fixture(scope='function')
def departments(db_session):
    """Two warehouse departments: GD1 and GD2."""
    db_session.add_all([
        Department(id="GD1", name="Gudang 1"),
        Department(id="GD2", name="Gudang 2"),
    ])
    db_session.commit()
    return ["GD1", "GD2"]


@pytest.fixture(scope='function')
def make_product(store, departments):
    """
    Insert a product row directly with an arbitrary starting stock.

    Bypasses the ledger, so the stock is whatever the product held before
    any recorded movement.
    """
    def _make(code="GD1-ABC-0001", stock=0, department_id="GD1", name="Semen 50kg"):
        created = datetime(2026, 10, 1, 8, 0)
        store.append_rows(TABLE_PRODUCTS, [{
            "id": str(uuid.uuid4()),
            "code": code,
            "name": name,
            "department_id": department_id,
            "unit": "sak",
            "stock": stock,
            "version": 1,
            "created_at": created,
            "updated_at": created,
        }])
        return ProductRepository(store).get_by_code(code)

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product GD1-ABC-0001 holding 50 units."""
    return make_product(stock=50)


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_user("budi", TEST_PASSWORD, display_name="Budi Staff", role=ROLE_STAFF, rounds=4)


@pytest.fixture(scope='function')
def supervisor_user(db_session):
    return create_user("siti", TEST_PASSWORD, display_name="Siti Supervisor", role=ROLE_SUPERVISOR, rounds=4)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    _, token = create_session(staff_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def supervisor_headers(supervisor_user):
    _, token = create_session(supervisor_user.id)
    return auth_headers(token)
