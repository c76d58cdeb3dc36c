# Overview: Posts IN/OUT movements against authoritative stock and the ledger.

"""
Transaction posting.

A post is two writes against a store that has no multi-row transactions:

1. Balance write (compare-and-swap on the product row).
2. Ledger append (immutable stock_transactions row).

Business rules are checked before step 1, so a rejected movement writes
nothing. If step 2 fails after step 1 succeeded, the balance is put back
with a second compare-and-swap and StoreUnavailable is raised; the caller
sees "nothing happened" and may retry. If that compensation also fails the
product's stock no longer matches its ledger. This is a known gap of the
backing store, logged at CRITICAL with everything needed to repair it
(see `flask ledger verify`).

The actor is whoever authenticated the request. Routes never pass a
client-supplied name through.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime

from flask import current_app

from ..errors import (
    InsufficientStock,
    StoreUnavailable,
    ValidationError,
    WrongDepartment,
)
from ..time_utils import utcnow
from ..validation import (
    TX_TYPE_IN,
    normalize_tx_type,
    require_positive_int,
)
from .product_repository import ProductRepository, ProductSnapshot
from .row_store import RowStore, TABLE_TRANSACTIONS, get_row_store


@dataclass(frozen=True)
class PostingResult:
    transaction: dict
    product: ProductSnapshot
    previous_balance: int

    @property
    def new_balance(self) -> int:
        return self.product.stock


def _next_balance(product: ProductSnapshot, tx_type: str, quantity: int, department_id: str | None) -> int:
    if tx_type == TX_TYPE_IN:
        if department_id and department_id != product.department_id:
            raise WrongDepartment(product.code, product.department_id, department_id)
        return product.stock + quantity

    if product.stock < quantity:
        raise InsufficientStock(product.code, product.stock, quantity)
    return product.stock - quantity


def post_transaction(
    *,
    product_code: str,
    tx_type: str,
    quantity: int,
    actor: str,
    department_id: str | None = None,
    now: datetime | None = None,
    store: RowStore | None = None,
) -> PostingResult:
    """
    Validate and post a single IN/OUT movement.

    Raises:
        ValidationError: malformed input (quantity <= 0, missing code/actor)
        NotFound: product code does not exist
        WrongDepartment: IN targeted at a department that does not own the SKU
        InsufficientStock: OUT larger than current stock
        BalanceConflict: balance kept changing underneath us
        StoreUnavailable: backing store failure; no net mutation
    """
    if not product_code or not str(product_code).strip():
        raise ValidationError("product_code is required")
    if not actor or not str(actor).strip():
        raise ValidationError("actor is required")
    tx_type = normalize_tx_type(tx_type)
    require_positive_int("quantity", quantity)

    store = store or get_row_store()
    repository = ProductRepository(store)
    now = now or utcnow()

    # Step 1: balance
    before, after = repository.mutate_balance(
        product_code,
        lambda product: _next_balance(product, tx_type, quantity, department_id),
        now=now,
    )

    row = {
        "id": str(uuid.uuid4()),
        "timestamp": now,
        "type": tx_type,
        "product_code": after.code,
        "quantity": quantity,
        "actor": actor,
        "department_id": after.department_id if tx_type == TX_TYPE_IN else department_id,
    }

    # Step 2: ledger
    try:
        store.append_rows(TABLE_TRANSACTIONS, [row])
    except StoreUnavailable:
        _compensate_balance(repository, after, before.stock, now)
        raise

    current_app.logger.info(
        "Posted %s %d of %s by %s: %d -> %d",
        tx_type, quantity, after.code, actor, before.stock, after.stock,
    )
    return PostingResult(transaction=row, product=after, previous_balance=before.stock)


def _compensate_balance(repository: ProductRepository, after: ProductSnapshot, previous: int, now: datetime) -> None:
    """Undo step 1 after a failed ledger append, only if nobody wrote since."""
    if not repository.restore_balance(after, previous, now):
        current_app.logger.critical(
            "Ledger append failed and balance restore failed for %s: stock is %d, "
            "ledger implies %d. Manual repair required.",
            after.code, after.stock, previous,
        )
        return
    current_app.logger.warning(
        "Ledger append failed for %s; balance restored to %d", after.code, previous,
    )


ORDER_NEWEST = "newest"
ORDER_OLDEST = "oldest"


def list_transactions(
    *,
    product_code: str | None = None,
    tx_type: str | None = None,
    department_id: str | None = None,
    start: date | None = None,
    end: date | None = None,
    order: str = ORDER_NEWEST,
    limit: int | None = None,
    store: RowStore | None = None,
) -> list[dict]:
    """
    Ledger rows, filtered and ordered by timestamp.

    start/end are inclusive calendar dates. Rows sharing a timestamp keep
    ledger append order (reversed for newest first).
    """
    if order not in (ORDER_NEWEST, ORDER_OLDEST):
        raise ValidationError("order must be newest or oldest")
    if limit is not None and limit < 0:
        raise ValidationError("limit must be >= 0")
    if start is not None and end is not None and start > end:
        raise ValidationError("start must not be after end")

    where = {}
    if product_code:
        where["product_code"] = product_code
    if tx_type:
        where["type"] = normalize_tx_type(tx_type)
    if department_id:
        where["department_id"] = department_id

    store = store or get_row_store()
    rows = store.list_rows(TABLE_TRANSACTIONS, where or None)

    if start is not None:
        rows = [r for r in rows if r["timestamp"].date() >= start]
    if end is not None:
        rows = [r for r in rows if r["timestamp"].date() <= end]

    rows.sort(key=lambda r: r["timestamp"])
    if order == ORDER_NEWEST:
        rows.reverse()
    if limit is not None:
        rows = rows[:limit]
    return rows


def product_has_history(product_code: str, *, store: RowStore | None = None) -> bool:
    store = store or get_row_store()
    return bool(store.list_rows(TABLE_TRANSACTIONS, {"product_code": product_code}))
