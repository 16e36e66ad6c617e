from __future__ import annotations

import enum

from ..extensions import db
from voucherhub.time_utils import to_utc_z


class VoucherType(str, enum.Enum):
    ONE_TIME = "one_time"
    MULTIPLE_TIME = "multiple_time"


class VoucherStatus(str, enum.Enum):
    UNUSED = "unused"
    USED = "used"


class CodeGenerationMethod(str, enum.Enum):
    SMS = "sms"
    QR_CODE = "qr_code"


def _enum_column_type(enum_cls: type[enum.Enum], name: str) -> db.Enum:
    # Persist the lowercase values ("one_time"), not the member names
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class Voucher(db.Model):
    """
    A sponsor-funded voucher redeemable by code.

    LIFECYCLE:
    - Created unused with a unique 10-character code (immutable)
    - Each redemption decrements `limit`; a one_time voucher flips to `used`
      exactly when `limit` reaches 0
    - multiple_time vouchers stay `unused` and simply stop redeeming at 0
    - Revoked vouchers keep their row (deleted_at set) for audit

    CONCURRENCY: version_id is the optimistic lock; redemptions re-read the
    row under lock and lose with StaleDataError if another writer committed
    first.
    """
    __tablename__ = "vouchers"
    __table_args__ = (
        db.CheckConstraint('"limit" >= 0', name="ck_vouchers_limit_non_negative"),
        db.Index("ix_vouchers_sponsor_status", "sponsor_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    voucher_code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    sponsor_id = db.Column(db.Integer, db.ForeignKey("sponsors.id"), nullable=False, index=True)

    purpose = db.Column(db.String(255), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    # Remaining redeemable uses
    limit = db.Column("limit", db.Integer, nullable=False, default=1)

    voucher_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_per_code_cents = db.Column(db.Integer, nullable=False, default=0)

    # Exact-match label compared against the geolocation resolver's output
    location = db.Column(db.String(128), nullable=True)

    type = db.Column(_enum_column_type(VoucherType, "voucher_type"), nullable=False, default=VoucherType.ONE_TIME)
    status = db.Column(_enum_column_type(VoucherStatus, "voucher_status"), nullable=False, default=VoucherStatus.UNUSED, index=True)
    code_generation_method = db.Column(
        _enum_column_type(CodeGenerationMethod, "code_generation_method"),
        nullable=False,
        default=CodeGenerationMethod.QR_CODE,
    )

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    sponsor = db.relationship("Sponsor", backref=db.backref("vouchers", lazy=True))
    merchant_links = db.relationship(
        "MerchantVoucher",
        back_populates="voucher",
        cascade="all, delete-orphan",
        order_by="MerchantVoucher.merchant_id",
    )

    @property
    def is_revoked(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_exhausted(self) -> bool:
        return self.limit <= 0

    @property
    def merchant_ids(self) -> list[int]:
        return [link.merchant_id for link in self.merchant_links]

    def to_dict(self, include_merchants: bool = True) -> dict:
        data = {
            "id": self.id,
            "voucher_code": self.voucher_code,
            "sponsor_id": self.sponsor_id,
            "purpose": self.purpose,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "limit": self.limit,
            "voucher_amount_cents": self.voucher_amount_cents,
            "amount_per_code_cents": self.amount_per_code_cents,
            "location": self.location,
            "type": VoucherType(self.type).value,
            "status": VoucherStatus(self.status).value,
            "code_generation_method": CodeGenerationMethod(self.code_generation_method).value,
            "is_exhausted": self.is_exhausted,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_merchants:
            data["merchants"] = [link.to_dict() for link in self.merchant_links]
        return data


class MerchantVoucher(db.Model):
    """
    Voucher <-> merchant distribution record.

    Carries its own copy of the voucher code so distribution can be tracked
    per merchant.
    """
    __tablename__ = "merchant_vouchers"
    __table_args__ = (
        db.UniqueConstraint("voucher_id", "merchant_id", name="uq_merchant_vouchers_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    voucher_code = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    voucher = db.relationship("Voucher", back_populates="merchant_links")
    merchant = db.relationship("Merchant", backref=db.backref("voucher_links", lazy=True))

    def to_dict(self) -> dict:
        merchant = self.merchant
        return {
            "id": self.merchant_id,
            "user_id": merchant.user_id if merchant else None,
            "store_name": merchant.store_name if merchant else None,
            "store_description": merchant.store_description if merchant else None,
            "voucher_code": self.voucher_code,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
