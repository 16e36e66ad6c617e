# Overview: Service-layer operations for voucher redemption; the voucher state machine and ledger append.

"""
Voucher Redemption Engine

WHY: Redemption consumes limited supply. Two beneficiaries racing for the
last use of a voucher must not both succeed, and a decremented limit must
never be visible without its ledger row.

PROTOCOL (each step short-circuits):
1. Look up the voucher by exact code among non-revoked vouchers
2. Reject once its expiry date has begun (no expiry date = never expires)
3. Reject a one_time voucher that is already used
4. Reject if the voucher is location-restricted and the requester's
   resolved location differs (case-sensitive exact match)
5. Inside the unit of work: re-read the voucher under lock, reject if
   limit <= 0
6. Decrement limit; a one_time voucher reaching 0 becomes used
7. Append a Transaction row
8. Commit

The geolocation lookup (step 4) runs before the unit of work so no lock is
held across network I/O. Steps 5-8 commit together or not at all. A writer
that loses the race fails the version_id check at flush (StaleDataError),
rolls back and re-reads, so limit never goes negative and no more than the
initial limit of transactions is ever recorded.

Business rejections are returned as RedemptionResult values, never raised.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import CodeGenerationMethod, Transaction, Voucher, VoucherStatus, VoucherType
from ..validation import ValidationError
from voucherhub.time_utils import start_of_day, utcnow
from .concurrency import UnitOfWork, run_with_retry


DEFAULT_RETRY_ATTEMPTS = 5


class RedemptionFailure(str, enum.Enum):
    VOUCHER_NOT_FOUND = "voucher_not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    LOCATION_MISMATCH = "location_mismatch"
    MERCHANT_NOT_ASSOCIATED = "merchant_not_associated"
    NONE_AVAILABLE = "none_available"
    REDEMPTION_FAILED = "redemption_failed"


FAILURE_MESSAGES = {
    RedemptionFailure.VOUCHER_NOT_FOUND: "Voucher not found.",
    RedemptionFailure.EXPIRED: "Voucher has expired.",
    RedemptionFailure.ALREADY_USED: "Voucher has already been used.",
    RedemptionFailure.LOCATION_MISMATCH: "Voucher is not valid in your location.",
    RedemptionFailure.MERCHANT_NOT_ASSOCIATED: "Voucher is not distributed to this merchant.",
    RedemptionFailure.NONE_AVAILABLE: "No more vouchers available.",
    RedemptionFailure.REDEMPTION_FAILED: "Failed to redeem voucher.",
}

SUCCESS_MESSAGE = "Voucher redeemed successfully."


@dataclass(frozen=True)
class RedemptionResult:
    success: bool
    reason: RedemptionFailure | None = None
    voucher_id: int | None = None
    transaction_id: int | None = None
    remaining_limit: int | None = None

    @property
    def message(self) -> str:
        if self.success:
            return SUCCESS_MESSAGE
        return FAILURE_MESSAGES[self.reason]

    @classmethod
    def failed(cls, reason: RedemptionFailure, voucher_id: int | None = None) -> "RedemptionResult":
        return cls(success=False, reason=reason, voucher_id=voucher_id)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "voucher_id": self.voucher_id,
            "transaction_id": self.transaction_id,
            "remaining_limit": self.remaining_limit,
        }


class RedemptionRejected(Exception):
    """Business-rule rejection raised inside the unit of work."""

    def __init__(self, reason: RedemptionFailure):
        super().__init__(reason.value)
        self.reason = reason


def _redeemable_query():
    return db.session.query(Voucher).filter(Voucher.deleted_at.is_(None))


def _attribute_merchant(voucher: Voucher, merchant_id: int | None) -> int | None:
    """
    Pick the merchant recorded on the transaction.

    An explicit merchant must be one the voucher was distributed to. Without
    one, a voucher distributed to exactly one merchant is attributed to it;
    otherwise the merchant is unknown (None).
    """
    associated = voucher.merchant_ids
    if merchant_id is not None:
        if merchant_id not in associated:
            raise RedemptionRejected(RedemptionFailure.MERCHANT_NOT_ASSOCIATED)
        return merchant_id
    if len(associated) == 1:
        return associated[0]
    return None


def redeem_voucher(
    code: str,
    network_address: str | None,
    beneficiary_id: int,
    *,
    resolver,
    merchant_id: int | None = None,
    unit_of_work: UnitOfWork | None = None,
    attempts: int | None = None,
    now: datetime | None = None,
) -> RedemptionResult:
    """
    Redeem one use of a voucher.

    Args:
        code: Voucher code, matched exactly
        network_address: Requester address passed to the geolocation resolver
        beneficiary_id: Redeeming beneficiary, recorded on the transaction
        resolver: Object with resolve(address) -> location label
        merchant_id: Merchant where the redemption happens (optional)
        unit_of_work: Transaction boundary for steps 5-8 (defaults to the
            current session)
        attempts: Retries for lost races (defaults to REDEMPTION_RETRY_ATTEMPTS)
        now: Clock for the expiry check (defaults to naive UTC now); a voucher
            is expired from the start of its expiry date

    Returns:
        RedemptionResult; failures carry a RedemptionFailure reason
    """
    if beneficiary_id is None:
        raise ValidationError("beneficiary_id is required")

    log = current_app.logger
    code = (code or "").strip()
    log.info("Attempting to redeem voucher code=%s address=%s", code, network_address)

    voucher = _redeemable_query().filter(Voucher.voucher_code == code).first() if code else None
    if voucher is None:
        log.warning("Voucher not found code=%s", code)
        return RedemptionResult.failed(RedemptionFailure.VOUCHER_NOT_FOUND)

    voucher_id = voucher.id
    voucher_type = VoucherType(voucher.type)
    now = now or utcnow()

    if voucher.expiry_date is not None and start_of_day(voucher.expiry_date) < now:
        log.warning("Voucher expired code=%s expiry_date=%s", code, voucher.expiry_date)
        return RedemptionResult.failed(RedemptionFailure.EXPIRED, voucher_id)

    if voucher_type == VoucherType.ONE_TIME and VoucherStatus(voucher.status) == VoucherStatus.USED:
        log.warning("Voucher already used code=%s", code)
        return RedemptionResult.failed(RedemptionFailure.ALREADY_USED, voucher_id)

    if voucher.location is not None:
        resolved_location = resolver.resolve(network_address)
        log.info("Beneficiary location determined address=%s location=%s", network_address, resolved_location)
        if voucher.location != resolved_location:
            log.warning(
                "Voucher location mismatch code=%s voucher_location=%s beneficiary_location=%s",
                code, voucher.location, resolved_location,
            )
            return RedemptionResult.failed(RedemptionFailure.LOCATION_MISMATCH, voucher_id)

    try:
        recorded_merchant_id = _attribute_merchant(voucher, merchant_id)
    except RedemptionRejected as exc:
        log.warning("Voucher merchant rejected code=%s merchant_id=%s", code, merchant_id)
        return RedemptionResult.failed(exc.reason, voucher_id)

    uow = unit_of_work or UnitOfWork()
    if attempts is None:
        attempts = current_app.config.get("REDEMPTION_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)

    def _op():
        with uow:
            locked = uow.lock(_redeemable_query().filter(Voucher.id == voucher_id)).first()
            if locked is None:
                raise RedemptionRejected(RedemptionFailure.VOUCHER_NOT_FOUND)
            if locked.limit <= 0:
                raise RedemptionRejected(RedemptionFailure.NONE_AVAILABLE)

            locked.limit -= 1
            if locked.limit == 0 and VoucherType(locked.type) == VoucherType.ONE_TIME:
                locked.status = VoucherStatus.USED

            transaction = Transaction(
                voucher_id=locked.id,
                beneficiary_id=beneficiary_id,
                merchant_id=recorded_merchant_id,
                amount_cents=locked.amount_per_code_cents,
                status=VoucherStatus.USED.value,
                code=locked.voucher_code,
                type=VoucherType(locked.type).value,
                code_generation_method=CodeGenerationMethod(locked.code_generation_method).value,
            )
            uow.add(transaction)
            # Flush here so a lost race surfaces as StaleDataError inside the retry loop
            uow.flush()
            return transaction.id, locked.limit

    try:
        transaction_id, remaining = run_with_retry(_op, attempts=attempts, backoff_base=0.05)
    except RedemptionRejected as exc:
        log.warning("Voucher rejected inside unit of work code=%s reason=%s", code, exc.reason.value)
        return RedemptionResult.failed(exc.reason, voucher_id)
    except Exception:
        db.session.rollback()
        log.exception("Error redeeming voucher code=%s", code)
        return RedemptionResult.failed(RedemptionFailure.REDEMPTION_FAILED, voucher_id)

    log.info(
        "Voucher redeemed successfully code=%s transaction_id=%s new_limit=%s",
        code, transaction_id, remaining,
    )
    return RedemptionResult(
        success=True,
        voucher_id=voucher_id,
        transaction_id=transaction_id,
        remaining_limit=remaining,
    )
