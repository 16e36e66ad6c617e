# Overview: Service-layer operations for bearer sessions; resolves the authenticated caller.

"""
Bearer Session Service

Sponsors and beneficiaries reach the API with a bearer token minted by the
identity provider (or by `flask users issue-token` for operators). Only a
SHA-256 digest of each token is kept; the plaintext never touches the
database.

Lifetimes come from config:
- SESSION_ABSOLUTE_HOURS: hard cap from issue time (default 24)
- SESSION_IDLE_MINUTES: revoked when unused this long (default 120)
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from voucherhub.time_utils import utcnow


DEFAULT_ABSOLUTE_HOURS = 24
DEFAULT_IDLE_MINUTES = 120
TOKEN_BYTES = 32


@dataclass
class SessionContext:
    """Caller behind a validated token."""
    user: User
    session: SessionToken


def absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", DEFAULT_ABSOLUTE_HOURS))


def idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", DEFAULT_IDLE_MINUTES))


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Mint a token for an active user.

    Returns:
        (stored session row, plaintext token to hand to the client)

    Raises:
        ValueError: unknown or deactivated user
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    token = generate_token()
    issued_at = utcnow()
    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + absolute_timeout(),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def revoke_session(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a plaintext token to its caller, or None.

    Expired tokens are simply refused. Idle tokens and tokens of deactivated
    users are revoked on sight. A successful check refreshes last_used_at.
    """
    session = (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None
    if now - session.last_used_at > idle_timeout():
        revoke_session(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        revoke_session(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)
