# Overview: Request decorators for API routes; resolves the caller and their profile.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def _unauthenticated(message: str = "Authentication required"):
    return jsonify({"error": message}), 401


def require_auth(view):
    """
    Resolve the bearer token to a live session.

    On success g.current_user holds the User and g.session_context the
    SessionContext. A missing header, an unknown/expired/idle token, or a
    deactivated account all answer 401.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return _unauthenticated()

        context = session_service.validate_session(token)
        if context is None:
            return _unauthenticated("Invalid or expired token")

        g.current_user = context.user
        g.session_context = context
        return view(*args, **kwargs)

    return wrapper


def require_sponsor(view):
    """Sponsor-only routes; stack under @require_auth. Sets g.sponsor."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return _unauthenticated()

        sponsor = user.sponsor
        if user.usertype != "sponsor" or sponsor is None or sponsor.deleted_at is not None:
            return jsonify({"error": "Unauthorized: Only sponsors can manage vouchers."}), 403

        g.sponsor = sponsor
        return view(*args, **kwargs)

    return wrapper


def require_beneficiary(view):
    # Any user type may hold a beneficiary profile
    @wraps(view)
    def wrapper(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return _unauthenticated()

        beneficiary = user.beneficiary
        if beneficiary is None or beneficiary.deleted_at is not None:
            return jsonify({"error": "Unauthorized: Only beneficiaries can redeem vouchers."}), 403

        g.beneficiary = beneficiary
        return view(*args, **kwargs)

    return wrapper
