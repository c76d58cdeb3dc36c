# Overview: Row-oriented table abstraction over the backing store.

"""
RowStore contract consumed by the ledger core.

The store is deliberately narrow: read rows, append rows, update rows by a
match dict, delete rows by a match dict. There are no multi-call
transactions and no row locks. Each call either succeeds (and is durably
visible to subsequent reads) or raises StoreUnavailable.

SqlAlchemyRowStore commits every call on its own so that the services above
it behave exactly as they would against a remote tabular store. Transient
failures (OperationalError: lock timeouts, dropped connections) are retried
once; anything left over is surfaced as StoreUnavailable.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..errors import StoreUnavailable
from ..extensions import db
from ..models import Product, StockTransaction, OpnameRecord
from .concurrency import run_with_retry


TABLE_PRODUCTS = "products"
TABLE_TRANSACTIONS = "stock_transactions"
TABLE_OPNAME = "opname_records"

Row = dict[str, Any]


class RowStore(ABC):
    @abstractmethod
    def list_rows(self, table: str, where: dict | None = None) -> list[Row]:
        """All rows of table (optionally filtered by equality), in append order."""

    @abstractmethod
    def append_rows(self, table: str, rows: Iterable[Row]) -> None:
        ...

    @abstractmethod
    def update_row(self, table: str, match: dict, fields: dict) -> int:
        """Update every row equal to match; returns how many matched."""

    @abstractmethod
    def delete_row(self, table: str, match: dict) -> int:
        """Delete every row equal to match; returns how many were removed."""


class SqlAlchemyRowStore(RowStore):
    MODELS = {
        TABLE_PRODUCTS: Product,
        TABLE_TRANSACTIONS: StockTransaction,
        TABLE_OPNAME: OpnameRecord,
    }

    def __init__(self, *, attempts: int = 2, backoff_base: float = 0.2):
        self.attempts = attempts
        self.backoff_base = backoff_base

    def _model(self, table: str):
        try:
            return self.MODELS[table]
        except KeyError:
            raise ValueError(f"unknown table: {table}")

    @staticmethod
    def _to_row(obj) -> Row:
        return {
            attr.key: getattr(obj, attr.key)
            for attr in obj.__mapper__.column_attrs
            if attr.key != "row_id"
        }

    def _execute(self, session, func):
        """Run func against the session and commit; the unit that gets retried."""
        try:
            result = func(session)
            session.commit()
            return result
        except SQLAlchemyError:
            session.rollback()
            raise

    def _run(self, op_name: str, table: str, func):
        session = db.session

        def _log_retry(exc, attempt):
            current_app.logger.warning(
                "Row store %s on %s failed (attempt %d), retrying: %s",
                op_name, table, attempt, exc,
            )

        try:
            return run_with_retry(
                lambda: self._execute(session, func),
                attempts=self.attempts,
                backoff_base=self.backoff_base,
                retry_on=(OperationalError,),
                on_retry=_log_retry,
            )
        except OperationalError as exc:
            raise StoreUnavailable(f"Backing store unavailable during {op_name} on {table}") from exc

    def list_rows(self, table: str, where: dict | None = None) -> list[Row]:
        model = self._model(table)

        def _op(session):
            query = session.query(model)
            if where:
                query = query.filter_by(**where)
            return [self._to_row(obj) for obj in query.order_by(model.row_id.asc()).all()]

        return self._run("list_rows", table, _op)

    def append_rows(self, table: str, rows: Iterable[Row]) -> None:
        model = self._model(table)
        rows = list(rows)

        def _op(session):
            session.add_all([model(**row) for row in rows])

        self._run("append_rows", table, _op)

    def update_row(self, table: str, match: dict, fields: dict) -> int:
        model = self._model(table)

        def _op(session):
            return session.query(model).filter_by(**match).update(fields, synchronize_session=False)

        return self._run("update_row", table, _op)

    def delete_row(self, table: str, match: dict) -> int:
        model = self._model(table)

        def _op(session):
            return session.query(model).filter_by(**match).delete(synchronize_session=False)

        return self._run("delete_row", table, _op)


def get_row_store() -> RowStore:
    """The RowStore wired into the current app by create_app."""
    return current_app.extensions["gudang.row_store"]
