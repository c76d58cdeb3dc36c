# Overview: Product master data operations that never touch stock.

"""
Product CRUD.

- Creation assigns the immutable scannable code and starts stock at 0.
- Edits change name, department and unit only. Stock moves exclusively
  through transaction posting and opname approval; the code never changes.
- Deletion is refused once any ledger row references the product, since
  removing it would orphan that history.
"""
from __future__ import annotations

from ..errors import ProductHasHistory, ValidationError
from ..extensions import db
from ..models import Department
from .product_repository import ProductRepository, ProductSnapshot
from .row_store import RowStore, get_row_store
from .transaction_service import product_has_history


def _require_department(department_id: str) -> None:
    if db.session.get(Department, department_id) is None:
        raise ValidationError(f"Unknown department: {department_id}", department_id=department_id)


def list_products(*, department_id: str | None = None, store: RowStore | None = None) -> list[ProductSnapshot]:
    products = ProductRepository(store or get_row_store()).list_products()
    if department_id:
        products = [p for p in products if p.department_id == department_id]
    return products


def create_product(
    *, name: str, department_id: str, unit: str | None = None, store: RowStore | None = None
) -> ProductSnapshot:
    _require_department(department_id)
    return ProductRepository(store or get_row_store()).create(name=name, department_id=department_id, unit=unit)


def update_product(
    product_id: str, *, name: str, department_id: str, unit: str | None = None, store: RowStore | None = None
) -> ProductSnapshot:
    _require_department(department_id)
    return ProductRepository(store or get_row_store()).update_descriptive(
        product_id, name=name, department_id=department_id, unit=unit,
    )


def delete_product(product_id: str, *, store: RowStore | None = None) -> None:
    store = store or get_row_store()
    repository = ProductRepository(store)
    product = repository.get_by_id(product_id)
    if product_has_history(product.code, store=store):
        raise ProductHasHistory(
            f"Product {product.code} has ledger history and cannot be deleted",
            product_code=product.code,
        )
    repository.delete(product_id)
