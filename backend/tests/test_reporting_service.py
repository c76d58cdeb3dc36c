"""
Reporting tests against the database.

Verifies:
- Balance history reconstructed at "now" equals live stock
- Approved opname corrections are part of history
- Buckets follow the reporting timezone
- Store failures degrade to empty results
- Ledger divergence detection
"""

from datetime import date, datetime

import pytest

from gudang.errors import NotFound, StoreUnavailable, ValidationError
from gudang.services.opname_service import approve_opname, submit_opname
from gudang.services.product_repository import ProductRepository
from gudang.services.reporting_service import (
    balance_history,
    find_ledger_divergence,
    stock_report,
)
from gudang.services.row_store import SqlAlchemyRowStore
from gudang.services.transaction_service import post_transaction


CODE = "GD1-ABC-0001"
NOW = datetime(2026, 10, 19, 12, 0)


class UnavailableStore(SqlAlchemyRowStore):
    def list_rows(self, table, where=None):
        raise StoreUnavailable("store down")


def _post(tx_type, qty, at, code=CODE):
    post_transaction(product_code=code, tx_type=tx_type, quantity=qty, actor="Budi Staff", now=at)


class TestBalanceHistory:
    def test_closing_balance_today_equals_live_stock(self, store, product):
        _post("IN", 20, datetime(2026, 10, 19, 9, 15))
        _post("OUT", 10, datetime(2026, 10, 19, 10, 45))

        series = balance_history(
            product_codes=[CODE], granularity="day", now=NOW, start=date(2026, 10, 19), end=date(2026, 10, 19),
        )

        assert series == [{"instant": "2026-10-19T00:00:00", "balances": {CODE: 60}}]
        assert ProductRepository(store).get_by_code(CODE).stock == 60

    def test_hourly_defaults_to_working_hours_of_today(self, store, product):
        _post("IN", 20, datetime(2026, 10, 19, 9, 15))
        _post("OUT", 10, datetime(2026, 10, 19, 10, 45))

        series = balance_history(product_codes=[CODE], granularity="hour", now=NOW)

        balances = {p["instant"][11:16]: p["balances"][CODE] for p in series}
        assert len(series) == 10
        assert balances["08:00"] == 50
        assert balances["10:00"] == 70
        assert balances["11:00"] == 60
        assert balances["17:00"] == 60

    def test_daily_defaults_to_last_week(self, store, product):
        series = balance_history(product_codes=[CODE], granularity="day", now=NOW)

        assert series[0]["instant"] == "2026-10-12T00:00:00"
        assert series[-1]["instant"] == "2026-10-19T00:00:00"

    def test_monthly_defaults_to_six_months_back(self, store, product):
        series = balance_history(product_codes=[CODE], granularity="month", now=NOW)

        assert series[0]["instant"] == "2026-04-01T00:00:00"
        assert series[-1]["instant"] == "2026-10-01T00:00:00"
        assert all(p["balances"][CODE] == 50 for p in series)

    def test_approved_correction_is_part_of_history(self, store, product):
        opname_id, _ = submit_opname(
            items=[{"product_code": CODE, "physical_stock": 45}],
            submitted_by="Budi Staff",
            now=datetime(2026, 10, 19, 10, 0),
        )
        approve_opname(
            opname_id=opname_id, product_code=CODE, new_stock=45, approved_by="Siti Supervisor",
            now=datetime(2026, 10, 19, 11, 30),
        )

        series = balance_history(product_codes=[CODE], granularity="hour", now=NOW)

        balances = {p["instant"][11:16]: p["balances"][CODE] for p in series}
        assert balances["11:00"] == 50
        assert balances["12:00"] == 45

    def test_buckets_follow_report_timezone(self, store, product):
        # 20:00 UTC on the 18th is 03:00 on the 19th in Jakarta (UTC+7)
        _post("IN", 5, datetime(2026, 10, 18, 20, 0))

        kwargs = dict(
            product_codes=[CODE], granularity="day", now=NOW, start=date(2026, 10, 18), end=date(2026, 10, 18),
        )
        utc = balance_history(tz_name="UTC", **kwargs)
        jakarta = balance_history(tz_name="Asia/Jakarta", **kwargs)

        assert utc[0]["balances"][CODE] == 55
        assert jakarta[0]["balances"][CODE] == 50

    def test_multiple_products(self, store, make_product):
        make_product(code=CODE, stock=5)
        make_product(code="GD2-XYZ-0002", stock=7, department_id="GD2")

        series = balance_history(
            product_codes=[CODE, "GD2-XYZ-0002", CODE], granularity="day", now=NOW,
            start=date(2026, 10, 19), end=date(2026, 10, 19),
        )

        assert series[0]["balances"] == {CODE: 5, "GD2-XYZ-0002": 7}

    def test_unknown_code(self, store, product):
        with pytest.raises(NotFound):
            balance_history(product_codes=[CODE, "NOPE"], granularity="day", now=NOW)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"product_codes": [], "granularity": "day"},
            {"product_codes": [CODE], "granularity": "week"},
            {"product_codes": [CODE], "granularity": "hour", "start_hour": 20, "end_hour": 8},
        ],
    )
    def test_invalid_query(self, store, product, kwargs):
        with pytest.raises(ValidationError):
            balance_history(now=NOW, **kwargs)

    def test_store_failure_degrades_to_empty(self, app):
        store = UnavailableStore(attempts=1, backoff_base=0)
        assert balance_history(product_codes=[CODE], granularity="day", now=NOW, store=store) == []


class TestStockReport:
    def test_lists_current_stock(self, store, product):
        report = stock_report()

        assert report["products"][0]["code"] == CODE
        assert report["products"][0]["stock"] == 50

    def test_totals_and_departments(self, store, make_product):
        make_product(code=CODE, stock=50, department_id="GD1")
        make_product(code="GD1-XYZ-0002", stock=7, department_id="GD1")
        make_product(code="GD2-XYZ-0003", stock=3, department_id="GD2")

        report = stock_report()

        assert report["total_skus"] == 3
        assert report["total_units"] == 60
        assert report["by_department"] == [
            {"department_id": "GD1", "stock": 57},
            {"department_id": "GD2", "stock": 3},
        ]

    def test_low_stock_lowest_first_capped(self, store, make_product):
        for index, stock in enumerate([9, 10, 0, 4, 8, 2, 6, 30]):
            make_product(code=f"GD1-LOW-{index:04d}", stock=stock)

        low = stock_report()["low_stock"]

        assert [p["stock"] for p in low] == [0, 2, 4, 6, 8]

    def test_empty_catalogue(self, store, departments):
        assert stock_report() == {
            "total_skus": 0,
            "total_units": 0,
            "by_department": [],
            "low_stock": [],
            "products": [],
        }

    def test_store_failure_degrades_to_empty(self, app):
        report = stock_report(store=UnavailableStore())

        assert report["total_skus"] == 0
        assert report["total_units"] == 0
        assert report["low_stock"] == []
        assert report["products"] == []


class TestLedgerDivergence:
    def test_product_with_full_history_is_consistent(self, store, departments):
        created = ProductRepository(store).create(name="Paku 5cm", department_id="GD1", unit="kg")
        post_transaction(product_code=created.code, tx_type="IN", quantity=10, actor="Budi Staff")
        post_transaction(product_code=created.code, tx_type="OUT", quantity=4, actor="Budi Staff")

        assert find_ledger_divergence() == []

    def test_stock_without_ledger_is_reported(self, store, product):
        assert find_ledger_divergence() == [{"product_code": CODE, "stock": 50, "origin_balance": 50}]
