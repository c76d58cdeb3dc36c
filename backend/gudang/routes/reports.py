# backend/gudang/routes/reports.py
"""
Reporting routes (read-only).

Balance history is reconstructed from the ledger; see
services/balance_history.py for the algorithm. Day and month buckets are
cut in REPORT_TIMEZONE and report closing balances.
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError, ValidationError
from ..services import reporting_service
from ..services.balance_history import GRANULARITY_MONTH
from ..time_utils import parse_iso_date, parse_year_month, utcnow
from ..validation import coerce_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _product_codes_arg() -> list[str]:
    raw = request.args.getlist("product_codes") + request.args.getlist("product_codes[]")
    codes = []
    for value in raw:
        codes.extend(part.strip() for part in value.split(","))
    return [c for c in codes if c]


def _int_arg(name: str) -> int | None:
    value = request.args.get(name)
    return coerce_int(name, value) if value else None


@reports_bp.get("/balance-history")
@require_auth
def balance_history_route():
    """
    Historical balances for one or more products.

    Query parameters:
        product_codes: repeated or comma separated (required)
        granularity: hour | day | month (default day)
        hour:  date=YYYY-MM-DD, start_hour=8, end_hour=17
        day:   start=YYYY-MM-DD, end=YYYY-MM-DD (default: last 7 days)
        month: start=YYYY-MM, end=YYYY-MM (default: last 6 months)

    Returns:
        200: [{"instant": str, "balances": {code: int}}, ...]
             ([] if the backing store is unavailable)
    """
    granularity = request.args.get("granularity", "day")
    parse_bound = parse_year_month if granularity == GRANULARITY_MONTH else parse_iso_date

    try:
        day = parse_iso_date(request.args.get("date"))
        start = parse_bound(request.args.get("start"))
        end = parse_bound(request.args.get("end"))
    except ValueError:
        return jsonify(ValidationError("date, start and end must be ISO dates").to_dict()), 400

    try:
        series = reporting_service.balance_history(
            product_codes=_product_codes_arg(),
            granularity=granularity,
            now=utcnow(),
            day=day,
            start_hour=_int_arg("start_hour"),
            end_hour=_int_arg("end_hour"),
            start=start,
            end=end,
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build balance history")
        return jsonify({"error": "Unexpected error while building balance history"}), 500

    return jsonify(series), 200


@reports_bp.get("/stock")
@require_auth
def stock_report_route():
    """
    Current stock summary.

    Returns:
        200: {"total_skus", "total_units", "by_department", "low_stock", "products"}
             (zeros and empty lists if the backing store is unavailable)
    """
    return jsonify(reporting_service.stock_report()), 200
