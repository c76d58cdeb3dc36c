"""
Transaction posting tests.

Verifies:
- Stock always equals starting stock plus IN minus OUT over successful posts
- Business rule failures write nothing
- A failed ledger append restores the balance
- Balance compare-and-swap conflicts are retried, then surfaced
- Ledger listing filters by type, department and date, either order
"""

import logging
from datetime import date, datetime

import pytest

from gudang.errors import (
    BalanceConflict,
    InsufficientStock,
    NotFound,
    StoreUnavailable,
    ValidationError,
    WrongDepartment,
)
from gudang.services.product_repository import ProductRepository
from gudang.services.row_store import (
    SqlAlchemyRowStore,
    TABLE_PRODUCTS,
    TABLE_TRANSACTIONS,
)
from gudang.services.transaction_service import list_transactions, post_transaction


CODE = "GD1-ABC-0001"


def _stock(store, code=CODE):
    return ProductRepository(store).get_by_code(code).stock


def _ledger(store):
    return store.list_rows(TABLE_TRANSACTIONS)


class LedgerAppendFails(SqlAlchemyRowStore):
    """Ledger appends always fail; everything else works."""

    def append_rows(self, table, rows):
        if table == TABLE_TRANSACTIONS:
            raise StoreUnavailable("ledger append failed")
        return super().append_rows(table, rows)


class LedgerAndRestoreFail(LedgerAppendFails):
    """Ledger appends fail and so does every product write after the first."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.product_updates = 0

    def update_row(self, table, match, fields):
        if table == TABLE_PRODUCTS:
            self.product_updates += 1
            if self.product_updates > 1:
                raise StoreUnavailable("product write failed")
        return super().update_row(table, match, fields)


class ConflictingStore(SqlAlchemyRowStore):
    """The first `conflicts` product writes match nothing, as if another writer won."""

    def __init__(self, conflicts, **kwargs):
        super().__init__(**kwargs)
        self.conflicts = conflicts
        self.product_updates = 0

    def update_row(self, table, match, fields):
        if table == TABLE_PRODUCTS:
            self.product_updates += 1
            if self.product_updates <= self.conflicts:
                return 0
        return super().update_row(table, match, fields)


class TestPosting:
    def test_stock_is_start_plus_in_minus_out(self, store, product):
        moves = [("IN", 20), ("OUT", 10), ("IN", 5), ("OUT", 45), ("IN", 1)]
        for tx_type, qty in moves:
            post_transaction(product_code=CODE, tx_type=tx_type, quantity=qty, actor="Budi Staff")

        expected = 50 + sum(q for t, q in moves if t == "IN") - sum(q for t, q in moves if t == "OUT")
        assert _stock(store) == expected == 21
        assert len(_ledger(store)) == len(moves)

    def test_result_reports_both_balances(self, store, product):
        result = post_transaction(product_code=CODE, tx_type="in", quantity=7, actor="Budi Staff")

        assert result.previous_balance == 50
        assert result.new_balance == 57
        assert result.transaction["type"] == "IN"
        assert result.transaction["actor"] == "Budi Staff"

    def test_in_records_owning_department(self, store, product):
        post_transaction(product_code=CODE, tx_type="IN", quantity=3, actor="Budi Staff")
        assert _ledger(store)[0]["department_id"] == "GD1"

    def test_out_over_stock_is_rejected_and_writes_nothing(self, store, product):
        with pytest.raises(InsufficientStock) as exc_info:
            post_transaction(product_code=CODE, tx_type="OUT", quantity=51, actor="Budi Staff")

        assert exc_info.value.details["available"] == 50
        assert exc_info.value.details["shortfall"] == 1
        assert exc_info.value.status_code == 409
        assert _stock(store) == 50
        assert _ledger(store) == []

    def test_out_of_entire_stock_is_allowed(self, store, product):
        result = post_transaction(product_code=CODE, tx_type="OUT", quantity=50, actor="Budi Staff")
        assert result.new_balance == 0

    def test_in_to_other_department_is_rejected(self, store, product):
        with pytest.raises(WrongDepartment) as exc_info:
            post_transaction(
                product_code=CODE, tx_type="IN", quantity=5, actor="Budi Staff", department_id="GD2",
            )

        assert exc_info.value.details["product_department"] == "GD1"
        assert _stock(store) == 50
        assert _ledger(store) == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"quantity": 0},
            {"quantity": -3},
            {"product_code": ""},
            {"tx_type": "MOVE"},
            {"actor": " "},
        ],
    )
    def test_malformed_input(self, store, product, kwargs):
        args = {"product_code": CODE, "tx_type": "IN", "quantity": 1, "actor": "Budi Staff", **kwargs}
        with pytest.raises(ValidationError):
            post_transaction(**args)
        assert _stock(store) == 50

    def test_unknown_product(self, store, departments):
        with pytest.raises(NotFound):
            post_transaction(product_code="NOPE", tx_type="IN", quantity=1, actor="Budi Staff")


class TestPartialFailure:
    def test_failed_ledger_append_restores_balance(self, app, product, caplog):
        store = LedgerAppendFails(attempts=2, backoff_base=0)

        with caplog.at_level(logging.WARNING):
            with pytest.raises(StoreUnavailable):
                post_transaction(
                    product_code=CODE, tx_type="OUT", quantity=10, actor="Budi Staff", store=store,
                )

        assert _stock(store) == 50
        assert _ledger(store) == []
        assert "balance restored" in caplog.text

    def test_failed_restore_is_logged_critical(self, app, product, caplog):
        store = LedgerAndRestoreFail(attempts=2, backoff_base=0)

        with caplog.at_level(logging.WARNING):
            with pytest.raises(StoreUnavailable):
                post_transaction(
                    product_code=CODE, tx_type="IN", quantity=10, actor="Budi Staff", store=store,
                )

        assert _stock(store) == 60
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)


class TestBalanceConflict:
    def test_conflict_is_retried(self, app, product):
        store = ConflictingStore(conflicts=1, attempts=2, backoff_base=0)

        result = post_transaction(product_code=CODE, tx_type="IN", quantity=5, actor="Budi Staff", store=store)

        assert result.new_balance == 55
        assert store.product_updates == 2
        assert len(_ledger(store)) == 1

    def test_persistent_conflict_surfaces(self, app, product):
        store = ConflictingStore(conflicts=100, attempts=2, backoff_base=0)

        with pytest.raises(BalanceConflict):
            post_transaction(product_code=CODE, tx_type="IN", quantity=5, actor="Budi Staff", store=store)

        assert store.product_updates == app.config["BALANCE_CONFLICT_ATTEMPTS"]
        assert _stock(store) == 50
        assert _ledger(store) == []

    def test_version_moves_with_every_write(self, store, product):
        post_transaction(product_code=CODE, tx_type="IN", quantity=1, actor="Budi Staff")
        post_transaction(product_code=CODE, tx_type="OUT", quantity=1, actor="Budi Staff")
        assert ProductRepository(store).get_by_code(CODE).version == product.version + 2


class TestListing:
    def test_newest_first_with_limit(self, store, product):
        for hour in (9, 10, 11):
            post_transaction(
                product_code=CODE, tx_type="IN", quantity=hour, actor="Budi Staff",
                now=datetime(2026, 10, 19, hour, 0),
            )

        rows = list_transactions(limit=2)

        assert [r["quantity"] for r in rows] == [11, 10]

    def test_filter_by_product(self, store, make_product):
        make_product(code=CODE, stock=5)
        make_product(code="GD1-XYZ-0002", stock=5)
        post_transaction(product_code=CODE, tx_type="OUT", quantity=1, actor="Budi Staff")
        post_transaction(product_code="GD1-XYZ-0002", tx_type="OUT", quantity=2, actor="Budi Staff")

        rows = list_transactions(product_code="GD1-XYZ-0002")

        assert len(rows) == 1
        assert rows[0]["quantity"] == 2

    def test_negative_limit_rejected(self, store):
        with pytest.raises(ValidationError):
            list_transactions(limit=-1)


class TestListingFilters:
    @pytest.fixture
    def ledger(self, store, make_product):
        make_product(code=CODE, stock=20, department_id="GD1")
        make_product(code="GD2-XYZ-0002", stock=20, department_id="GD2")
        post_transaction(product_code=CODE, tx_type="IN", quantity=1, actor="Budi Staff",
                         now=datetime(2026, 10, 17, 9, 0))
        post_transaction(product_code="GD2-XYZ-0002", tx_type="IN", quantity=2, actor="Budi Staff",
                         now=datetime(2026, 10, 18, 23, 59))
        post_transaction(product_code=CODE, tx_type="OUT", quantity=3, actor="Budi Staff",
                         now=datetime(2026, 10, 19, 0, 0))
        return store

    def test_filter_by_type(self, ledger):
        rows = list_transactions(tx_type="out")

        assert [r["quantity"] for r in rows] == [3]

    def test_filter_by_department(self, ledger):
        rows = list_transactions(department_id="GD2")

        assert [r["product_code"] for r in rows] == ["GD2-XYZ-0002"]

    def test_date_range_is_inclusive(self, ledger):
        rows = list_transactions(start=date(2026, 10, 18), end=date(2026, 10, 19))

        assert [r["quantity"] for r in rows] == [3, 2]

    def test_single_day(self, ledger):
        rows = list_transactions(start=date(2026, 10, 18), end=date(2026, 10, 18))

        assert [r["quantity"] for r in rows] == [2]

    def test_oldest_first(self, ledger):
        rows = list_transactions(order="oldest", limit=2)

        assert [r["quantity"] for r in rows] == [1, 2]

    def test_filters_combine(self, ledger):
        rows = list_transactions(tx_type="IN", start=date(2026, 10, 18))

        assert [r["quantity"] for r in rows] == [2]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"order": "sideways"},
            {"tx_type": "MOVE"},
            {"start": date(2026, 10, 19), "end": date(2026, 10, 18)},
        ],
    )
    def test_bad_filters_rejected(self, ledger, kwargs):
        with pytest.raises(ValidationError):
            list_transactions(**kwargs)
