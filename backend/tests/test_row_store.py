"""
RowStore adapter tests.

Verifies:
- Each call is durably visible to the next read
- update/delete report how many rows matched
- Transient failures get exactly one retry, then StoreUnavailable
"""

import uuid
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from gudang.errors import StoreUnavailable
from gudang.services.row_store import (
    SqlAlchemyRowStore,
    TABLE_PRODUCTS,
    TABLE_TRANSACTIONS,
)


def _ledger_row(code="GD1-ABC-0001", qty=1):
    return {
        "id": str(uuid.uuid4()),
        "timestamp": datetime(2026, 10, 19, 9, 0),
        "type": "IN",
        "product_code": code,
        "quantity": qty,
        "actor": "Budi Staff",
        "department_id": "GD1",
    }


class FlakyStore(SqlAlchemyRowStore):
    """Raises OperationalError for the first `failures` executions."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.calls = 0

    def _execute(self, session, func):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return super()._execute(session, func)


class TestSqlAlchemyRowStore:
    def test_append_then_list_in_append_order(self, store):
        store.append_rows(TABLE_TRANSACTIONS, [_ledger_row(qty=1), _ledger_row(qty=2)])
        store.append_rows(TABLE_TRANSACTIONS, [_ledger_row(qty=3)])

        rows = store.list_rows(TABLE_TRANSACTIONS)

        assert [r["quantity"] for r in rows] == [1, 2, 3]
        assert "row_id" not in rows[0]

    def test_list_with_filter(self, store):
        store.append_rows(TABLE_TRANSACTIONS, [_ledger_row(code="A"), _ledger_row(code="B")])
        assert [r["product_code"] for r in store.list_rows(TABLE_TRANSACTIONS, {"product_code": "B"})] == ["B"]

    def test_update_returns_match_count(self, store, product):
        assert store.update_row(TABLE_PRODUCTS, {"code": product.code}, {"name": "Semen 40kg"}) == 1
        assert store.update_row(TABLE_PRODUCTS, {"code": "NOPE"}, {"name": "x"}) == 0
        assert store.list_rows(TABLE_PRODUCTS)[0]["name"] == "Semen 40kg"

    def test_delete_returns_match_count(self, store):
        store.append_rows(TABLE_TRANSACTIONS, [_ledger_row(code="A"), _ledger_row(code="A"), _ledger_row(code="B")])

        assert store.delete_row(TABLE_TRANSACTIONS, {"product_code": "A"}) == 2
        assert len(store.list_rows(TABLE_TRANSACTIONS)) == 1

    def test_unknown_table(self, store):
        with pytest.raises(ValueError):
            store.list_rows("ghosts")


class TestRetry:
    def test_single_transient_failure_is_retried(self, app):
        store = FlakyStore(failures=1, attempts=2, backoff_base=0)

        assert store.list_rows(TABLE_TRANSACTIONS) == []
        assert store.calls == 2

    def test_persistent_failure_becomes_store_unavailable(self, app):
        store = FlakyStore(failures=10, attempts=2, backoff_base=0)

        with pytest.raises(StoreUnavailable) as exc_info:
            store.append_rows(TABLE_TRANSACTIONS, [_ledger_row()])

        assert store.calls == 2
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert SqlAlchemyRowStore().list_rows(TABLE_TRANSACTIONS) == []
