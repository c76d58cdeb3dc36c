# Overview: Error taxonomy shared by services and routes.

"""
Every error raised by the ledger, opname and reporting services derives from
LedgerError. Each class carries the HTTP status and a stable machine code so
routes can answer with the specific reason instead of a generic failure.

- ValidationError        400  malformed input
- NotFound               404  unknown product / opname id
- BusinessRuleViolation  409  InsufficientStock, WrongDepartment,
                              AlreadyApproved, CannotRejectApproved,
                              ProductHasHistory
- BalanceConflict        409  optimistic balance update lost every retry
- StoreUnavailable       503  transient backing store failure

Only StoreUnavailable is eligible for retry, and only inside the RowStore.
"""
from __future__ import annotations


class LedgerError(Exception):
    status_code = 500
    code = "LEDGER_ERROR"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, **self.details}


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(LedgerError):
    status_code = 404
    code = "NOT_FOUND"


class BusinessRuleViolation(LedgerError):
    """409-level business rule conflict."""
    status_code = 409
    code = "BUSINESS_RULE_VIOLATION"


class InsufficientStock(BusinessRuleViolation):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_code: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_code}: available {available}, requested {requested}",
            product_code=product_code,
            available=available,
            requested=requested,
            shortfall=requested - available,
        )


class WrongDepartment(BusinessRuleViolation):
    code = "WRONG_DEPARTMENT"

    def __init__(self, product_code: str, product_department: str, requested_department: str):
        super().__init__(
            f"Product {product_code} belongs to department {product_department}, "
            f"not {requested_department}",
            product_code=product_code,
            product_department=product_department,
            requested_department=requested_department,
        )


class AlreadyApproved(BusinessRuleViolation):
    code = "ALREADY_APPROVED"


class CannotRejectApproved(BusinessRuleViolation):
    code = "CANNOT_REJECT_APPROVED"


class ProductHasHistory(BusinessRuleViolation):
    code = "PRODUCT_HAS_HISTORY"


class BalanceConflict(LedgerError):
    """The balance row changed between read and write (compare-and-swap miss)."""
    status_code = 409
    code = "BALANCE_CONFLICT"


class StoreUnavailable(LedgerError):
    status_code = 503
    code = "STORE_UNAVAILABLE"
