# Overview: Service-layer operations for the voucher lifecycle; encapsulates business logic and database work.

"""
Voucher Lifecycle Service

WHY: Sponsors issue vouchers, distribute them to merchants and withdraw
them again. Everything except redemption itself lives here.

DESIGN PRINCIPLES:
- Voucher codes are 10 uppercase alphanumeric characters, unique across
  every voucher ever created (revoked ones included), immutable
- Merchant associations carry their own copy of the code; updates that
  pass merchant_ids replace the whole association set
- Revoke is a soft delete: the row and its associations stay for audit
- Delete is permanent and refused once the voucher has ledger history
- Status is derived: a one_time voucher is `used` exactly when its limit
  is 0; a multiple_time voucher stays `unused`
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Merchant, MerchantVoucher, Sponsor, Transaction, Voucher, VoucherStatus, VoucherType
from ..validation import ConflictError, ValidationError, VOUCHER_POLICY, enforce_rules_voucher, validate_payload
from voucherhub.time_utils import utcnow
from .concurrency import run_with_retry


CODE_LENGTH = 10
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_GENERATION_ATTEMPTS = 5


class VoucherError(Exception):
    """Raised for voucher lifecycle errors."""
    pass


class VoucherNotFoundError(VoucherError):
    """Voucher absent, revoked, or owned by a different sponsor."""
    pass


class VoucherPersistenceError(VoucherError):
    """Storage-layer failure; the unit of work was rolled back."""
    pass


# =============================================================================
# CODE GENERATION
# =============================================================================

def generate_voucher_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _code_taken(code: str) -> bool:
    return db.session.query(Voucher.id).filter(Voucher.voucher_code == code).first() is not None


def _unused_code() -> str:
    for _ in range(CODE_GENERATION_ATTEMPTS):
        code = generate_voucher_code()
        if not _code_taken(code):
            return code
    raise VoucherPersistenceError("Could not allocate a unique voucher code")


# =============================================================================
# LOOKUPS
# =============================================================================

def _voucher_query(include_revoked: bool = False):
    q = db.session.query(Voucher)
    if not include_revoked:
        q = q.filter(Voucher.deleted_at.is_(None))
    return q


def get_voucher(voucher_id: int, sponsor_id: int | None = None, include_revoked: bool = False) -> Voucher:
    """
    Fetch a voucher by id.

    MULTI-SPONSOR: when sponsor_id is given, vouchers of other sponsors are
    reported as not found.

    Raises:
        VoucherNotFoundError
    """
    voucher = _voucher_query(include_revoked).filter(Voucher.id == voucher_id).first()
    if not voucher or (sponsor_id is not None and voucher.sponsor_id != sponsor_id):
        raise VoucherNotFoundError("Voucher not found.")
    return voucher


def get_voucher_by_code(code: str, sponsor_id: int | None = None, include_revoked: bool = False) -> Voucher:
    voucher = _voucher_query(include_revoked).filter(Voucher.voucher_code == code).first()
    if not voucher or (sponsor_id is not None and voucher.sponsor_id != sponsor_id):
        raise VoucherNotFoundError("Voucher not found.")
    return voucher


def list_voucher_transactions(voucher_id: int, sponsor_id: int | None = None) -> list[Transaction]:
    """Ledger rows for a voucher, oldest first. Revoked vouchers stay inspectable."""
    get_voucher(voucher_id, sponsor_id=sponsor_id, include_revoked=True)
    return (
        db.session.query(Transaction)
        .filter(Transaction.voucher_id == voucher_id)
        .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        .all()
    )


# =============================================================================
# HELPERS
# =============================================================================

def _clean_attributes(attributes: dict | None, *, partial: bool) -> dict:
    patch = validate_payload(model=Voucher, payload=attributes or {}, policy=VOUCHER_POLICY, partial=partial)
    enforce_rules_voucher(patch)
    return patch


def _reconcile_status(voucher: Voucher) -> None:
    if VoucherType(voucher.type) == VoucherType.ONE_TIME and voucher.limit == 0:
        voucher.status = VoucherStatus.USED
    else:
        voucher.status = VoucherStatus.UNUSED


def _sync_merchants(voucher: Voucher, merchant_ids: list[int]) -> None:
    """
    Make the voucher's association set exactly `merchant_ids`.

    Associations not in the list are removed, new ones are added, and every
    remaining association is re-stamped with the voucher's code.

    Raises:
        VoucherPersistenceError: if a merchant id does not exist
    """
    if merchant_ids:
        known = {
            row.id
            for row in db.session.query(Merchant.id)
            .filter(Merchant.id.in_(merchant_ids), Merchant.deleted_at.is_(None))
            .all()
        }
        missing = [mid for mid in merchant_ids if mid not in known]
        if missing:
            raise VoucherPersistenceError(
                f"Unknown merchant id(s): {', '.join(str(mid) for mid in missing)}"
            )

    wanted = set(merchant_ids)
    existing = {link.merchant_id: link for link in voucher.merchant_links}
    now = utcnow()

    for merchant_id, link in existing.items():
        if merchant_id not in wanted:
            voucher.merchant_links.remove(link)

    for merchant_id in dict.fromkeys(merchant_ids):
        link = existing.get(merchant_id)
        if link is None:
            voucher.merchant_links.append(
                MerchantVoucher(merchant_id=merchant_id, voucher_code=voucher.voucher_code)
            )
        else:
            link.voucher_code = voucher.voucher_code
            link.updated_at = now


# =============================================================================
# LIFECYCLE
# =============================================================================

def create_voucher(sponsor_id: int | None, attributes: dict | None, merchant_ids: list[int] | None = None) -> Voucher:
    """
    Create a voucher for a sponsor and distribute it to merchants.

    Args:
        sponsor_id: Owning sponsor (required)
        attributes: Voucher fields (see VOUCHER_POLICY)
        merchant_ids: Merchants to associate; each association is stamped
            with the new code

    Returns:
        Voucher with merchant associations loaded

    Raises:
        ValidationError: sponsor missing or attributes invalid
        VoucherPersistenceError: unknown merchant, storage failure, or no
            unique code could be allocated
    """
    if sponsor_id is None:
        raise ValidationError("Missing sponsor_id.")

    sponsor = db.session.query(Sponsor).filter(Sponsor.id == sponsor_id, Sponsor.deleted_at.is_(None)).first()
    if not sponsor:
        raise ValidationError(f"Sponsor {sponsor_id} not found")

    patch = _clean_attributes(attributes, partial=False)

    for _ in range(CODE_GENERATION_ATTEMPTS):
        code = _unused_code()
        voucher = Voucher(sponsor_id=sponsor_id, voucher_code=code, **patch)
        if voucher.type is None:
            voucher.type = VoucherType.ONE_TIME
        if voucher.limit is None:
            voucher.limit = 1
        _reconcile_status(voucher)

        db.session.add(voucher)
        try:
            db.session.flush()
            _sync_merchants(voucher, merchant_ids or [])
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if _code_taken(code):
                # Lost a race for the same code; draw another one
                continue
            raise VoucherPersistenceError(f"Failed to create voucher: {exc.orig}") from exc
        except VoucherPersistenceError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise VoucherPersistenceError(f"Failed to create voucher: {exc}") from exc

        return voucher

    raise VoucherPersistenceError("Could not allocate a unique voucher code")


def update_voucher(
    voucher_id: int,
    attributes: dict | None,
    merchant_ids: list[int] | None = None,
    sponsor_id: int | None = None,
) -> Voucher:
    """
    Partially update a voucher.

    Only the provided fields change. When merchant_ids is not None the
    association set is replaced (merchants omitted from the list lose their
    association).

    Raises:
        VoucherNotFoundError: missing, revoked, or owned by another sponsor
        ValidationError: attributes invalid
        VoucherPersistenceError: unknown merchant or storage failure
    """
    patch = _clean_attributes(attributes, partial=True)

    def _op():
        voucher = get_voucher(voucher_id, sponsor_id=sponsor_id)

        for key, value in patch.items():
            setattr(voucher, key, value)
        _reconcile_status(voucher)

        if merchant_ids is not None:
            _sync_merchants(voucher, merchant_ids)

        db.session.commit()
        return voucher

    try:
        return run_with_retry(_op)
    except (VoucherError, ValidationError):
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise VoucherPersistenceError(f"Failed to update voucher: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise VoucherPersistenceError(f"Failed to update voucher: {exc}") from exc


def revoke_voucher(voucher_id: int, sponsor_id: int | None = None) -> Voucher:
    """
    Soft delete: hide the voucher from default queries and redemption.

    Merchant associations and ledger rows are left untouched.
    """
    def _op():
        voucher = get_voucher(voucher_id, sponsor_id=sponsor_id)
        voucher.deleted_at = utcnow()
        db.session.commit()
        return voucher

    try:
        return run_with_retry(_op)
    except VoucherError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise VoucherPersistenceError(f"Failed to revoke voucher: {exc}") from exc


def delete_voucher(voucher_id: int, sponsor_id: int | None = None) -> None:
    """
    Permanently delete a voucher (revoked vouchers included).

    Merchant associations are detached first. Irreversible.

    Raises:
        VoucherNotFoundError
        ConflictError: the voucher has redemption transactions; revoke it instead
    """
    voucher = get_voucher(voucher_id, sponsor_id=sponsor_id, include_revoked=True)

    has_history = (
        db.session.query(Transaction.id).filter(Transaction.voucher_id == voucher.id).first() is not None
    )
    if has_history:
        raise ConflictError("Voucher has redemption history; revoke it instead of deleting.")

    try:
        voucher.merchant_links.clear()
        db.session.flush()
        db.session.delete(voucher)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise VoucherPersistenceError(f"Failed to delete voucher: {exc}") from exc
