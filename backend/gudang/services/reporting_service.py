# Overview: Read-only reporting over products, the ledger and approved opname corrections.

"""
Reporting.

These paths are read-only and non-authoritative. A backing store failure
degrades to an empty result (logged) instead of failing the request;
validation problems in the query itself are still raised.

Time semantics:
- Ledger instants are stored UTC-naive.
- Buckets (hour / day / month) are cut in REPORT_TIMEZONE, so instants are
  converted to that zone's wall clock before reconstruction.
- "Today" comes from the injected now, converted the same way.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta

from flask import current_app

from ..errors import NotFound, StoreUnavailable, ValidationError
from ..time_utils import add_months, utc_to_local
from .balance_history import (
    GRANULARITIES,
    GRANULARITY_DAY,
    GRANULARITY_HOUR,
    Movement,
    build_timelines,
    generate_ticks,
    movement_from_transaction,
    reconstruct_series,
)
from .opname_service import STATUS_APPROVED
from .product_repository import ProductRepository, ProductSnapshot
from .row_store import RowStore, TABLE_OPNAME, TABLE_TRANSACTIONS, get_row_store


# Default windows when the caller leaves the range open
DEFAULT_DAILY_WINDOW = timedelta(days=7)
DEFAULT_MONTHLY_WINDOW = 6
DEFAULT_START_HOUR = 8
DEFAULT_END_HOUR = 17

# Dashboard low-stock list
LOW_STOCK_THRESHOLD = 10
LOW_STOCK_LIMIT = 5


def load_movements(store: RowStore, product_codes: set[str], tz_name: str) -> list[Movement]:
    """
    Ledger rows plus approved opname corrections for product_codes, as
    movements on tz_name's wall clock.

    Corrections are ordered after every ledger row that shares their instant.
    Malformed rows are skipped with a warning.
    """
    movements = []

    transactions = store.list_rows(TABLE_TRANSACTIONS)
    for sequence, row in enumerate(transactions):
        if row.get("product_code") not in product_codes:
            continue
        try:
            movement = movement_from_transaction(row, sequence)
        except (KeyError, TypeError, ValueError):
            current_app.logger.warning("Skipping malformed ledger row %s", row.get("id"))
            continue
        movements.append(Movement(
            instant=utc_to_local(movement.instant, tz_name),
            product_code=movement.product_code,
            delta=movement.delta,
            sequence=movement.sequence,
        ))

    corrections = store.list_rows(TABLE_OPNAME, {"status": STATUS_APPROVED})
    offset = len(transactions)
    for index, row in enumerate(corrections):
        if row.get("product_code") not in product_codes:
            continue
        if row.get("approved_at") is None or row.get("stock_before") is None:
            continue
        movements.append(Movement(
            instant=utc_to_local(row["approved_at"], tz_name),
            product_code=row["product_code"],
            delta=row["approved_stock"] - row["stock_before"],
            sequence=offset + index,
        ))

    return movements


def _resolve_window(
    granularity: str,
    today: date,
    *,
    day: date | None,
    start: date | None,
    end: date | None,
) -> tuple[date | None, date | None, date | None]:
    if granularity == GRANULARITY_HOUR:
        return day or today, None, None
    if granularity == GRANULARITY_DAY:
        end = end or today
        start = start or (end - DEFAULT_DAILY_WINDOW)
        return None, start, end
    end = end or today.replace(day=1)
    start = start or add_months(datetime(end.year, end.month, 1), -DEFAULT_MONTHLY_WINDOW).date()
    return None, start, end


def balance_history(
    *,
    product_codes: list[str],
    granularity: str,
    now: datetime,
    day: date | None = None,
    start_hour: int | None = None,
    end_hour: int | None = None,
    start: date | None = None,
    end: date | None = None,
    tz_name: str | None = None,
    store: RowStore | None = None,
) -> list[dict]:
    """
    [{"instant": ISO local wall time, "balances": {code: balance}}, ...]
    ordered by instant. Unknown codes raise NotFound; store failures give [].
    """
    if granularity not in GRANULARITIES:
        raise ValidationError(f"granularity must be one of {', '.join(GRANULARITIES)}")
    codes = [c for c in dict.fromkeys(product_codes) if c]
    if not codes:
        raise ValidationError("product_codes is required")

    tz_name = tz_name or current_app.config.get("REPORT_TIMEZONE", "UTC")
    today = utc_to_local(now, tz_name).date()

    day, start, end = _resolve_window(granularity, today, day=day, start=start, end=end)
    ticks = generate_ticks(
        granularity,
        day=day,
        start_hour=DEFAULT_START_HOUR if start_hour is None else start_hour,
        end_hour=DEFAULT_END_HOUR if end_hour is None else end_hour,
        start=start,
        end=end,
    )

    store = store or get_row_store()
    try:
        products = {p.code: p for p in ProductRepository(store).list_products()}
        missing = [c for c in codes if c not in products]
        if missing:
            raise NotFound(f"Unknown product codes: {', '.join(missing)}", product_codes=missing)
        movements = load_movements(store, set(codes), tz_name)
    except StoreUnavailable:
        current_app.logger.warning("Balance history degraded to empty: backing store unavailable")
        return []

    series = reconstruct_series(
        {code: products[code].stock for code in codes},
        movements,
        ticks,
        granularity,
        today=today,
    )
    return [
        {"instant": point.instant.isoformat(), "balances": point.balances}
        for point in series
    ]


def summarize_stock(products: list[ProductSnapshot]) -> dict:
    """
    Dashboard figures: SKU and unit totals, units per department, and the
    lowest-stocked products under LOW_STOCK_THRESHOLD (at most LOW_STOCK_LIMIT).
    """
    per_department: dict[str, int] = defaultdict(int)
    for product in products:
        per_department[product.department_id] += product.stock

    low_stock = sorted(
        (p for p in products if p.stock < LOW_STOCK_THRESHOLD),
        key=lambda p: p.stock,
    )[:LOW_STOCK_LIMIT]

    return {
        "total_skus": len(products),
        "total_units": sum(p.stock for p in products),
        "by_department": [
            {"department_id": dept, "stock": units}
            for dept, units in sorted(per_department.items())
        ],
        "low_stock": [p.to_dict() for p in low_stock],
        "products": [p.to_dict() for p in products],
    }


def stock_report(*, store: RowStore | None = None) -> dict:
    """Current stock summary; all-empty figures if the store is unavailable."""
    try:
        products = ProductRepository(store or get_row_store()).list_products()
    except StoreUnavailable:
        current_app.logger.warning("Stock report degraded to empty: backing store unavailable")
        products = []
    return summarize_stock(products)


def find_ledger_divergence(*, store: RowStore | None = None) -> list[dict]:
    """
    Products whose ledger does not explain their stock.

    Products start at 0, so undoing every movement from the current stock
    must land on 0. Anything else means a write went missing.
    """
    store = store or get_row_store()
    products = ProductRepository(store).list_products()
    balances = {p.code: p.stock for p in products}
    timelines = build_timelines(balances, load_movements(store, set(balances), "UTC"))
    return [
        {"product_code": code, "stock": balances[code], "origin_balance": timeline.origin_balance}
        for code, timeline in timelines.items()
        if timeline.origin_balance != 0
    ]
