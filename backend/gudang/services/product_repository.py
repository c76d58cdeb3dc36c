# Overview: Products table access and the single balance-mutation primitive.

"""
ProductRepository wraps the RowStore for the products table.

BalanceStore is the narrow interface the posting and approval paths depend
on. Swapping the lost-update strategy (per-key queue, CAS, real row locks)
happens behind it without touching the business rules.

Balance writes are compare-and-swap: the update matches on (code, version)
and bumps version. Zero matched rows means another writer got there first;
mutate_balance re-reads and recomputes up to BALANCE_CONFLICT_ATTEMPTS times.
Within one process writers for the same code are also serialized by a
KeyedLock so they do not burn retries against each other.
"""
from __future__ import annotations

import random
import string
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from flask import current_app

from ..errors import BalanceConflict, NotFound, StoreUnavailable, ValidationError
from ..time_utils import to_utc_z, utcnow
from .concurrency import KeyedLock, run_with_retry
from .row_store import RowStore, TABLE_PRODUCTS, get_row_store


_BALANCE_LOCKS = KeyedLock()


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    code: str
    name: str
    department_id: str
    unit: str | None
    stock: int
    version: int
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: dict) -> "ProductSnapshot":
        return cls(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            department_id=row["department_id"],
            unit=row.get("unit"),
            stock=int(row.get("stock") or 0),
            version=int(row.get("version") or 1),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "department_id": self.department_id,
            "unit": self.unit,
            "stock": self.stock,
            "updated_at": to_utc_z(self.updated_at),
        }


class BalanceStore(ABC):
    @abstractmethod
    def get_by_code(self, code: str) -> ProductSnapshot:
        ...

    @abstractmethod
    def set_balance(self, product: ProductSnapshot, new_stock: int, now: datetime) -> ProductSnapshot:
        ...


def generate_product_code(department_id: str, now: datetime) -> str:
    """<DEPT>-<3 random uppercase alnum>-<last 4 digits of epoch seconds>."""
    random_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    seconds = str(int(now.timestamp()))[-4:]
    return f"{department_id}-{random_part}-{seconds}"


class ProductRepository(BalanceStore):
    def __init__(self, store: RowStore | None = None):
        self.store = store or get_row_store()

    # ---------- reads ----------

    def list_products(self) -> list[ProductSnapshot]:
        return [ProductSnapshot.from_row(r) for r in self.store.list_rows(TABLE_PRODUCTS)]

    def find_by_code(self, code: str) -> ProductSnapshot | None:
        rows = self.store.list_rows(TABLE_PRODUCTS, {"code": code})
        return ProductSnapshot.from_row(rows[0]) if rows else None

    def get_by_code(self, code: str) -> ProductSnapshot:
        product = self.find_by_code(code)
        if product is None:
            raise NotFound(f"Product code {code} not found", product_code=code)
        return product

    def get_by_id(self, product_id: str) -> ProductSnapshot:
        rows = self.store.list_rows(TABLE_PRODUCTS, {"id": product_id})
        if not rows:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        return ProductSnapshot.from_row(rows[0])

    # ---------- balance ----------

    def set_balance(self, product: ProductSnapshot, new_stock: int, now: datetime) -> ProductSnapshot:
        """
        Compare-and-swap the balance. Raises BalanceConflict if the row's
        version moved since product was read.
        """
        if new_stock < 0:
            raise ValidationError("stock cannot be negative")

        matched = self.store.update_row(
            TABLE_PRODUCTS,
            {"code": product.code, "version": product.version},
            {"stock": new_stock, "version": product.version + 1, "updated_at": now},
        )
        if matched == 0:
            raise BalanceConflict(
                f"Balance of {product.code} changed concurrently; re-read and retry",
                product_code=product.code,
            )
        return ProductSnapshot(
            id=product.id,
            code=product.code,
            name=product.name,
            department_id=product.department_id,
            unit=product.unit,
            stock=new_stock,
            version=product.version + 1,
            created_at=product.created_at,
            updated_at=now,
        )

    def restore_balance(self, after: ProductSnapshot, previous: int, now: datetime) -> bool:
        """
        Undo a balance write, only if nobody wrote since `after` was produced.

        Returns False when the restore could not be applied; the caller owns
        the logging since only it knows what the stock should have been.
        """
        try:
            self.set_balance(after, previous, now)
        except (BalanceConflict, StoreUnavailable):
            return False
        return True

    def mutate_balance(
        self,
        code: str,
        compute: Callable[[ProductSnapshot], int],
        *,
        now: datetime | None = None,
        attempts: int | None = None,
    ) -> tuple[ProductSnapshot, ProductSnapshot]:
        """
        Read product, derive the new stock with compute(product), write it.

        compute may raise a business rule error; nothing is written then.
        Returns (before, after) snapshots.
        """
        now = now or utcnow()
        if attempts is None:
            attempts = current_app.config.get("BALANCE_CONFLICT_ATTEMPTS", 3)

        def _op():
            before = self.get_by_code(code)
            new_stock = compute(before)
            return before, self.set_balance(before, new_stock, now)

        def _log_conflict(exc, attempt):
            current_app.logger.warning("Balance conflict on %s (attempt %d), retrying", code, attempt)

        with _BALANCE_LOCKS.for_key(code):
            return run_with_retry(
                _op,
                attempts=attempts,
                backoff_base=0.01,
                retry_on=(BalanceConflict,),
                on_retry=_log_conflict,
            )

    # ---------- descriptive CRUD ----------

    def create(self, *, name: str, department_id: str, unit: str | None, now: datetime | None = None) -> ProductSnapshot:
        now = now or utcnow()
        row = {
            "id": str(uuid.uuid4()),
            "code": generate_product_code(department_id, now),
            "name": name,
            "department_id": department_id,
            "unit": unit,
            "stock": 0,
            "version": 1,
            "created_at": now,
            "updated_at": now,
        }
        self.store.append_rows(TABLE_PRODUCTS, [row])
        return ProductSnapshot.from_row(row)

    def update_descriptive(
        self, product_id: str, *, name: str, department_id: str, unit: str | None, now: datetime | None = None
    ) -> ProductSnapshot:
        """Edit name/department/unit. Stock, code and version are never touched here."""
        now = now or utcnow()
        matched = self.store.update_row(
            TABLE_PRODUCTS,
            {"id": product_id},
            {"name": name, "department_id": department_id, "unit": unit, "updated_at": now},
        )
        if matched == 0:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        return self.get_by_id(product_id)

    def delete(self, product_id: str) -> None:
        deleted = self.store.delete_row(TABLE_PRODUCTS, {"id": product_id})
        if deleted == 0:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
