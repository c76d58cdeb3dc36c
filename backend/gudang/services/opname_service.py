# Overview: Physical-count (opname) submission, approval and rejection.

"""
Opname workflow.

WHY: A physical count only becomes authoritative once a second actor
confirms it. Field staff submit counts; supervisors approve or reject.

LIFECYCLE (per line, keyed by opname_id + product_code):
1. PENDING: submitted; product stock untouched
2. APPROVED: stock overwritten with the approved count; terminal
3. REJECTED: the line is DELETED from the log. Rejection is destructive
   and irreversible; no tombstone is kept.

No transition leaves APPROVED. A line that was rejected no longer exists.

APPROVAL WRITE ORDER: the overwritten stock is saved on the PENDING line,
then the balance is written, then the status flips. A failure between the
last two leaves the line PENDING with stock already at the approved value;
retrying keeps the saved stock and sets the same value again. A crash can
never produce an APPROVED line whose stock was not applied.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime

from flask import current_app

from ..errors import (
    AlreadyApproved,
    CannotRejectApproved,
    LedgerError,
    NotFound,
    ValidationError,
)
from ..time_utils import utcnow
from ..validation import require_non_negative_int, validate_opname_items
from .product_repository import ProductRepository
from .row_store import RowStore, TABLE_OPNAME, get_row_store


# Opname status constants
STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
LINE_STATUSES = (STATUS_PENDING, STATUS_APPROVED)

# Variance labels
LABEL_MATCH = "MATCH"
LABEL_SHORT = "SHORT"
LABEL_OVER = "OVER"


def classify_variance(variance: int) -> str:
    if variance == 0:
        return LABEL_MATCH
    return LABEL_SHORT if variance < 0 else LABEL_OVER


def new_opname_id(opname_date: date) -> str:
    """OPN-<YYYYMMDD>-<4 uppercase hex>, shared by every line of one submission."""
    return f"OPN-{opname_date:%Y%m%d}-{uuid.uuid4().hex[:4].upper()}"


def submit_opname(
    *,
    items: list,
    submitted_by: str,
    opname_date: date | None = None,
    now: datetime | None = None,
    store: RowStore | None = None,
) -> tuple[str, list[dict]]:
    """
    Append one PENDING line per item under a fresh opname_id.

    system_stock defaults to the product's stock at submission time when the
    client does not send it. Never writes product balances.

    Returns (opname_id, rows).
    """
    store = store or get_row_store()
    repository = ProductRepository(store)
    now = now or utcnow()
    opname_date = opname_date or now.date()

    lines = validate_opname_items(items)
    opname_id = new_opname_id(opname_date)

    rows = []
    for item in lines:
        product = repository.get_by_code(item["product_code"])
        system_stock = item.get("system_stock", product.stock)
        physical_stock = item["physical_stock"]
        variance = physical_stock - system_stock

        rows.append({
            "opname_id": opname_id,
            "opname_date": opname_date,
            "timestamp": now,
            "product_code": product.code,
            "product_name": product.name,
            "system_stock": system_stock,
            "physical_stock": physical_stock,
            "variance": variance,
            "label": classify_variance(variance),
            "status": STATUS_PENDING,
            "submitted_by": submitted_by,
            "approved_by": None,
            "approved_at": None,
            "approved_stock": None,
            "stock_before": None,
        })

    store.append_rows(TABLE_OPNAME, rows)
    current_app.logger.info("Opname %s submitted by %s with %d line(s)", opname_id, submitted_by, len(rows))
    return opname_id, rows


def _get_line(store: RowStore, opname_id: str, product_code: str) -> dict:
    rows = store.list_rows(TABLE_OPNAME, {"opname_id": opname_id, "product_code": product_code})
    if not rows:
        raise NotFound(
            f"Opname {opname_id} has no line for {product_code}",
            opname_id=opname_id,
            product_code=product_code,
        )
    return rows[0]


def _line_left_pending(store: RowStore, opname_id: str, product_code: str) -> LedgerError:
    """Why a guarded write on a PENDING line matched nothing."""
    rows = store.list_rows(TABLE_OPNAME, {"opname_id": opname_id, "product_code": product_code})
    if rows and rows[0]["status"] == STATUS_APPROVED:
        return AlreadyApproved(
            f"Opname {opname_id} line {product_code} was approved concurrently",
            opname_id=opname_id,
            product_code=product_code,
        )
    return NotFound(
        f"Opname {opname_id} line {product_code} was removed during approval",
        opname_id=opname_id,
        product_code=product_code,
    )


def approve_opname(
    *,
    opname_id: str,
    product_code: str,
    new_stock: int,
    approved_by: str,
    now: datetime | None = None,
    store: RowStore | None = None,
) -> dict:
    """
    Approve a PENDING line: set product stock to new_stock, then mark APPROVED.

    The stock being overwritten is saved on the line before the balance
    write. A retry after a failed status write finds it there with stock
    already at new_stock and keeps it, so history still sees the real
    correction.

    If the status write loses to a concurrent approval or rejection, our
    balance write is undone before the error is raised.

    Raises:
        NotFound: no such line, or product missing
        AlreadyApproved: line is already APPROVED (stock left as it was)
        ValidationError: new_stock negative
    """
    require_non_negative_int("new_stock", new_stock)
    store = store or get_row_store()
    repository = ProductRepository(store)
    now = now or utcnow()

    line = _get_line(store, opname_id, product_code)
    if line["status"] == STATUS_APPROVED:
        raise AlreadyApproved(
            f"Opname {opname_id} line {product_code} was already approved",
            opname_id=opname_id,
            product_code=product_code,
        )
    if line["status"] != STATUS_PENDING:
        raise ValidationError(f"Cannot approve opname line in {line['status']} status")

    pending_match = {"opname_id": opname_id, "product_code": product_code, "status": STATUS_PENDING}
    recorded_before = line.get("stock_before")
    overwritten = {}

    def _compute(product):
        if recorded_before is not None and product.stock == new_stock:
            # an earlier attempt already applied the balance
            overwritten["stock"] = recorded_before
            return new_stock
        if store.update_row(TABLE_OPNAME, pending_match, {"stock_before": product.stock}) == 0:
            raise _line_left_pending(store, opname_id, product_code)
        overwritten["stock"] = product.stock
        return new_stock

    # Step 1: balance
    before, after = repository.mutate_balance(product_code, _compute, now=now)

    # Step 2: status, guarded so only a still-PENDING line flips
    fields = {
        "status": STATUS_APPROVED,
        "approved_by": approved_by,
        "approved_at": now,
        "approved_stock": new_stock,
        "stock_before": overwritten["stock"],
    }
    matched = store.update_row(TABLE_OPNAME, pending_match, fields)
    if matched == 0:
        error = _line_left_pending(store, opname_id, product_code)
        if repository.restore_balance(after, before.stock, now):
            current_app.logger.warning(
                "Opname %s line %s approval lost (%s); stock of %s restored to %d",
                opname_id, product_code, error.code, product_code, before.stock,
            )
        else:
            current_app.logger.error(
                "Opname %s line %s approval lost (%s) and stock of %s changed since; "
                "left at its current value instead of restoring %d",
                opname_id, product_code, error.code, product_code, before.stock,
            )
        raise error

    current_app.logger.info(
        "Opname %s line %s approved by %s: stock %d -> %d",
        opname_id, product_code, approved_by, overwritten["stock"], after.stock,
    )
    return {**line, **fields}


def reject_opname(
    *,
    opname_id: str,
    product_code: str | None = None,
    store: RowStore | None = None,
) -> int:
    """
    Reject (permanently DELETE) pending lines of an opname.

    With product_code only that line is removed; without it, every line of
    the batch. If any targeted line is APPROVED nothing is deleted: its
    stock change already happened and the line is its audit trail.

    Returns the number of deleted lines.
    """
    store = store or get_row_store()

    where = {"opname_id": opname_id}
    if product_code:
        where["product_code"] = product_code

    lines = store.list_rows(TABLE_OPNAME, where)
    if not lines:
        raise NotFound(f"Opname {opname_id} not found", opname_id=opname_id)

    approved = [line["product_code"] for line in lines if line["status"] == STATUS_APPROVED]
    if approved:
        raise CannotRejectApproved(
            f"Opname {opname_id} cannot be rejected: already approved and stock has changed",
            opname_id=opname_id,
            approved_product_codes=approved,
        )

    deleted = store.delete_row(TABLE_OPNAME, {**where, "status": STATUS_PENDING})
    current_app.logger.warning(
        "Opname %s rejected: %d line(s) permanently deleted", opname_id, deleted,
    )
    return deleted


def merge_lines(rows: list[dict]) -> list[dict]:
    """
    Merge lines sharing (opname_date, product_code) into one correction.

    system_stock, physical_stock and variance are summed and the label is
    recomputed from the summed variance. Read/report only, never persisted.
    """
    merged: dict[tuple, dict] = {}
    for row in rows:
        key = (row.get("opname_date"), row.get("product_code"))
        if key in merged:
            existing = merged[key]
            existing["system_stock"] += row.get("system_stock") or 0
            existing["physical_stock"] += row.get("physical_stock") or 0
            existing["variance"] += row.get("variance") or 0
            existing["label"] = classify_variance(existing["variance"])
            existing["merged_count"] += 1
        else:
            merged[key] = {**row, "merged_count": 1}
    return list(merged.values())


def list_history(
    *,
    start: date | None = None,
    end: date | None = None,
    status: str | None = None,
    merged: bool = False,
    store: RowStore | None = None,
) -> list[dict]:
    """Opname lines in [start, end] (inclusive), newest date first."""
    if status is not None:
        status = status.strip().upper()
        if status not in LINE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(LINE_STATUSES)}")
    store = store or get_row_store()
    rows = store.list_rows(TABLE_OPNAME, {"status": status} if status else None)

    if start is not None:
        rows = [r for r in rows if r["opname_date"] >= start]
    if end is not None:
        rows = [r for r in rows if r["opname_date"] <= end]
    if merged:
        rows = merge_lines(rows)

    return sorted(rows, key=lambda r: r["opname_date"], reverse=True)


def list_pending(*, store: RowStore | None = None) -> list[dict]:
    return list_history(status=STATUS_PENDING, store=store)
