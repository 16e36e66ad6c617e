from __future__ import annotations

from ..extensions import db
from voucherhub.time_utils import to_utc_z
from .vouchers import VoucherStatus


class Transaction(db.Model):
    """
    Append-only redemption ledger.

    One row per successful redemption. Rows are never updated or deleted:
    type, code and generation method are snapshotted so the record stays
    meaningful even if the voucher is edited later.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_voucher_created", "voucher_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=True, index=True)
    beneficiary_id = db.Column(db.Integer, db.ForeignKey("beneficiaries.id"), nullable=True, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=VoucherStatus.USED.value)
    code = db.Column(db.String(32), nullable=True)
    type = db.Column(db.String(32), nullable=True)
    code_generation_method = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    voucher = db.relationship("Voucher")
    beneficiary = db.relationship("Beneficiary", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "voucher_id": self.voucher_id,
            "beneficiary_id": self.beneficiary_id,
            "merchant_id": self.merchant_id,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "code": self.code,
            "type": self.type,
            "code_generation_method": self.code_generation_method,
            "created_at": to_utc_z(self.created_at),
        }
