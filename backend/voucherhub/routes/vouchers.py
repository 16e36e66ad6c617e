# Overview: Flask API routes for the voucher lifecycle and redemption; parses input and returns JSON responses.

"""
Voucher API Routes

DESIGN:
- Sponsors create, update, revoke and delete their own vouchers
- Beneficiaries redeem vouchers by code
- Vouchers of other sponsors are reported as 404, never 403

STATUS MAPPING:
- ValidationError -> 400
- VoucherNotFoundError -> 404
- ConflictError -> 409
- VoucherPersistenceError -> 500
- Redemption: not found -> 404, business rejections -> 400,
  generic redemption failure -> 500
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_beneficiary, require_sponsor
from ..services import voucher_service
from ..services.geolocation_service import get_resolver
from ..services.redemption_service import RedemptionFailure, redeem_voucher
from ..services.voucher_service import VoucherNotFoundError, VoucherPersistenceError
from ..validation import ConflictError, ValidationError, parse_merchant_ids


vouchers_bp = Blueprint("vouchers", __name__, url_prefix="/api/vouchers")


REDEMPTION_STATUS_CODES = {
    RedemptionFailure.VOUCHER_NOT_FOUND: 404,
    RedemptionFailure.EXPIRED: 400,
    RedemptionFailure.ALREADY_USED: 400,
    RedemptionFailure.LOCATION_MISMATCH: 400,
    RedemptionFailure.MERCHANT_NOT_ASSOCIATED: 400,
    RedemptionFailure.NONE_AVAILABLE: 400,
    RedemptionFailure.REDEMPTION_FAILED: 500,
}


def _split_payload() -> tuple[dict, list[int] | None]:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    data = dict(data)
    merchant_ids = parse_merchant_ids(data.pop("merchant_ids", None))
    return data, merchant_ids


def _client_address() -> str | None:
    if current_app.config.get("TRUST_FORWARDED_FOR"):
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr


# =============================================================================
# LIFECYCLE
# =============================================================================

@vouchers_bp.post("")
@require_auth
@require_sponsor
def create_voucher_route():
    """
    Create a voucher owned by the calling sponsor.

    Request body:
    {
        "merchant_ids": [1, 2],  (optional)
        "purpose": "Special Event",  (optional)
        "voucher_amount_cents": 10000,
        "amount_per_code_cents": 1000,
        "expiry_date": "2024-12-31",  (optional)
        "limit": 10,  (optional, default 1)
        "type": "multiple_time",  (optional: one_time | multiple_time)
        "code_generation_method": "qr_code",  (optional: sms | qr_code)
        "location": "Ibadan"  (optional)
    }

    Returns:
        201: Voucher with merchant associations
        400: Invalid input
        403: Caller is not a sponsor
        500: Persistence failure
    """
    try:
        attributes, merchant_ids = _split_payload()
        voucher = voucher_service.create_voucher(g.sponsor.id, attributes, merchant_ids)
        return jsonify(voucher.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VoucherPersistenceError as e:
        current_app.logger.warning("Voucher creation failed: %s", e)
        return jsonify({"error": "Failed to create voucher.", "detail": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to create voucher")
        return jsonify({"error": "Internal server error"}), 500


@vouchers_bp.get("/<int:voucher_id>")
@require_auth
@require_sponsor
def get_voucher_route(voucher_id: int):
    include_revoked = request.args.get("include_revoked", "false").lower() == "true"
    try:
        voucher = voucher_service.get_voucher(voucher_id, sponsor_id=g.sponsor.id, include_revoked=include_revoked)
    except VoucherNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(voucher.to_dict())


@vouchers_bp.get("/code/<string:code>")
@require_auth
@require_sponsor
def get_voucher_by_code_route(code: str):
    try:
        voucher = voucher_service.get_voucher_by_code(code, sponsor_id=g.sponsor.id)
    except VoucherNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(voucher.to_dict())


@vouchers_bp.get("/<int:voucher_id>/transactions")
@require_auth
@require_sponsor
def list_voucher_transactions_route(voucher_id: int):
    try:
        transactions = voucher_service.list_voucher_transactions(voucher_id, sponsor_id=g.sponsor.id)
    except VoucherNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    items = [t.to_dict() for t in transactions]
    return jsonify({"items": items, "count": len(items)})


@vouchers_bp.patch("/<int:voucher_id>")
@require_auth
@require_sponsor
def update_voucher_route(voucher_id: int):
    """
    Partially update a voucher.

    Only provided fields change. Passing "merchant_ids" replaces the whole
    merchant association set.
    """
    try:
        attributes, merchant_ids = _split_payload()
        voucher = voucher_service.update_voucher(
            voucher_id, attributes, merchant_ids=merchant_ids, sponsor_id=g.sponsor.id
        )
        return jsonify(voucher.to_dict())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VoucherNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except VoucherPersistenceError as e:
        current_app.logger.warning("Voucher update failed: %s", e)
        return jsonify({"error": "Failed to update voucher.", "detail": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to update voucher")
        return jsonify({"error": "Internal server error"}), 500


@vouchers_bp.post("/<int:voucher_id>/revoke")
@require_auth
@require_sponsor
def revoke_voucher_route(voucher_id: int):
    try:
        voucher = voucher_service.revoke_voucher(voucher_id, sponsor_id=g.sponsor.id)
        return jsonify({"message": "Voucher revoked successfully.", "voucher": voucher.to_dict()})
    except VoucherNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except VoucherPersistenceError as e:
        current_app.logger.warning("Voucher revoke failed: %s", e)
        return jsonify({"error": "Failed to revoke voucher."}), 500


@vouchers_bp.delete("/<int:voucher_id>")
@require_auth
@require_sponsor
def delete_voucher_route(voucher_id: int):
    try:
        voucher_service.delete_voucher(voucher_id, sponsor_id=g.sponsor.id)
        return jsonify({"message": "Voucher deleted successfully."})
    except VoucherNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except VoucherPersistenceError as e:
        current_app.logger.warning("Voucher delete failed: %s", e)
        return jsonify({"error": "Failed to delete voucher."}), 500


# =============================================================================
# REDEMPTION
# =============================================================================

@vouchers_bp.post("/redeem")
@require_auth
@require_beneficiary
def redeem_voucher_route():
    """
    Redeem one use of a voucher as the calling beneficiary.

    Request body:
    {
        "voucher_code": "19AGVCBQOA",
        "merchant_id": 1  (optional)
    }

    Returns:
        200: Redeemed
        400: Expired, already used, none available, location mismatch,
             merchant not associated, or invalid input
        404: Unknown code
        500: Redemption failed (nothing was committed; safe to retry)
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    code = data.get("voucher_code")
    if not isinstance(code, str) or not code.strip():
        return jsonify({"error": "voucher_code required"}), 400

    merchant_id = data.get("merchant_id")
    if merchant_id is not None and (isinstance(merchant_id, bool) or not isinstance(merchant_id, int)):
        return jsonify({"error": "merchant_id must be an integer"}), 400

    result = redeem_voucher(
        code,
        _client_address(),
        g.beneficiary.id,
        resolver=get_resolver(),
        merchant_id=merchant_id,
    )

    if result.success:
        return jsonify({"message": result.message, "redemption": result.to_dict()})

    status = REDEMPTION_STATUS_CODES.get(result.reason, 500)
    return jsonify({"error": result.message, "reason": result.reason.value}), status
