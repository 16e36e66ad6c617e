# Overview: Flask API routes for sponsor reporting; read-only paginated voucher views.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_sponsor
from ..services import query_service
from ..validation import ValidationError

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


def _page_args() -> tuple[int | None, int | None]:
    return request.args.get("page", type=int), request.args.get("per_page", type=int)


@reports_bp.get("/vouchers/by-sponsor")
@require_auth
@require_sponsor
def vouchers_by_sponsor():
    page, per_page = _page_args()
    return jsonify(query_service.vouchers_by_sponsor(g.sponsor.id, page, per_page))


@reports_bp.get("/vouchers/date-range")
@require_auth
@require_sponsor
def vouchers_by_date_range():
    """
    Query params:
    - start_date: YYYY-MM-DD (required)
    - end_date: YYYY-MM-DD (required, inclusive)
    """
    page, per_page = _page_args()
    try:
        result = query_service.vouchers_by_date_range(
            g.sponsor.id,
            request.args.get("start_date"),
            request.args.get("end_date"),
            page,
            per_page,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to fetch vouchers by date range")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result)


@reports_bp.get("/vouchers/used")
@require_auth
@require_sponsor
def used_vouchers():
    page, per_page = _page_args()
    return jsonify(query_service.used_vouchers(g.sponsor.id, page, per_page))


@reports_bp.get("/vouchers/redeemed")
@require_auth
@require_sponsor
def redeemed_vouchers():
    page, per_page = _page_args()
    return jsonify(query_service.redeemed_vouchers(g.sponsor.id, page, per_page))


@reports_bp.get("/vouchers/yet-to-be-redeemed")
@require_auth
@require_sponsor
def vouchers_yet_to_be_redeemed():
    page, per_page = _page_args()
    return jsonify(query_service.vouchers_yet_to_be_redeemed(g.sponsor.id, page, per_page))


@reports_bp.get("/beneficiaries/redeemed")
@require_auth
@require_sponsor
def beneficiaries_with_redeemed_vouchers():
    page, per_page = _page_args()
    return jsonify(query_service.beneficiaries_with_redeemed_vouchers(g.sponsor.id, page, per_page))
