from __future__ import annotations

from ..extensions import db
from voucherhub.time_utils import to_utc_z


USERTYPE_USER = "user"
USERTYPE_MERCHANT = "merchant"
USERTYPE_SPONSOR = "sponsor"

VALID_USERTYPES = [USERTYPE_USER, USERTYPE_MERCHANT, USERTYPE_SPONSOR]


class User(db.Model):
    """
    User accounts for attribution.

    Credentials and OTP verification live with the external identity
    provider; this table only carries what the voucher engine needs to
    attribute actions to sponsors, merchants and beneficiaries.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    city = db.Column(db.String(128), nullable=True)

    usertype = db.Column(db.String(16), nullable=False, default=USERTYPE_USER)  # user, merchant, sponsor

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "state": self.state,
            "city": self.city,
            "usertype": self.usertype,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Sponsor(db.Model):
    """Entity funding and authorizing vouchers."""
    __tablename__ = "sponsors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    sponsor_name = db.Column(db.String(255), nullable=True)
    registration_number = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    sponsor_type = db.Column(db.String(16), nullable=False, default="private")  # government, private
    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("sponsor", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "sponsor_name": self.sponsor_name,
            "registration_number": self.registration_number,
            "description": self.description,
            "sponsor_type": self.sponsor_type,
            "is_verified": self.is_verified,
            "created_at": to_utc_z(self.created_at),
        }


class Merchant(db.Model):
    """Store at which vouchers are distributed and redeemed."""
    __tablename__ = "merchants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    store_name = db.Column(db.String(255), nullable=True)
    store_description = db.Column(db.String(255), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("merchant", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_name": self.store_name,
            "store_description": self.store_description,
            "created_at": to_utc_z(self.created_at),
        }


class Beneficiary(db.Model):
    """
    End user entitled to redeem vouchers.

    Linked one-to-one with a user account. Beneficiaries relate to vouchers
    only through the transaction ledger.
    """
    __tablename__ = "beneficiaries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    state = db.Column(db.String(128), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("beneficiary", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "state": self.state,
            "email": self.user.email if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer token issued by the identity provider.

    Only the SHA-256 digest is stored. Absolute and idle lifetimes come from
    SESSION_ABSOLUTE_HOURS / SESSION_IDLE_MINUTES; see services/session_service.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
