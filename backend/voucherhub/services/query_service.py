# Overview: Read-only reporting queries over a sponsor's vouchers and their redemptions.

"""
Voucher Reporting Queries

All listings are scoped to one sponsor, exclude revoked vouchers and are
paginated with the same envelope:

    {"items": [...], "count": n, "pagination": {...}}
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Beneficiary, MerchantVoucher, Transaction, Voucher, VoucherStatus
from ..validation import ValidationError
from voucherhub.time_utils import end_of_day, parse_iso_date, start_of_day


DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100


def _page_bounds(page: int | None, per_page: int | None) -> tuple[int, int]:
    default = current_app.config.get("VOUCHER_PAGE_SIZE", DEFAULT_PER_PAGE)
    maximum = current_app.config.get("VOUCHER_MAX_PAGE_SIZE", MAX_PER_PAGE)
    per_page = min(per_page or default, maximum)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)
    return page, per_page


def paginate(base_query, page: int | None = None, per_page: int | None = None, serialize=None) -> dict:
    page, per_page = _page_bounds(page, per_page)
    serialize = serialize or (lambda row: row.to_dict())

    total = base_query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _sponsor_vouchers(sponsor_id: int):
    return (
        db.session.query(Voucher)
        .filter(Voucher.sponsor_id == sponsor_id, Voucher.deleted_at.is_(None))
        .order_by(Voucher.created_at.desc(), Voucher.id.desc())
    )


def vouchers_by_sponsor(sponsor_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    return paginate(_sponsor_vouchers(sponsor_id), page, per_page)


def vouchers_by_date_range(
    sponsor_id: int,
    start_date: str | date,
    end_date: str | date,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Vouchers created between start_date and end_date, both days inclusive.

    Raises:
        ValidationError: missing, malformed or inverted dates
    """
    start = _as_date(start_date, "start_date")
    end = _as_date(end_date, "end_date")
    if end < start:
        raise ValidationError("end_date must be on or after start_date")

    q = _sponsor_vouchers(sponsor_id).filter(
        Voucher.created_at >= start_of_day(start),
        Voucher.created_at <= end_of_day(end),
    )
    return paginate(q, page, per_page)


def used_vouchers(sponsor_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    q = _sponsor_vouchers(sponsor_id).filter(Voucher.status == VoucherStatus.USED)
    return paginate(q, page, per_page)


def redeemed_vouchers(sponsor_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    """Vouchers distributed to at least one merchant with a stamped code."""
    stamped = (
        db.session.query(MerchantVoucher.id)
        .filter(MerchantVoucher.voucher_id == Voucher.id, MerchantVoucher.voucher_code.isnot(None))
        .exists()
    )
    return paginate(_sponsor_vouchers(sponsor_id).filter(stamped), page, per_page)


def vouchers_yet_to_be_redeemed(sponsor_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    q = _sponsor_vouchers(sponsor_id).filter(Voucher.status == VoucherStatus.UNUSED)
    return paginate(q, page, per_page)


def beneficiaries_with_redeemed_vouchers(sponsor_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    """Beneficiaries holding at least one transaction against the sponsor's vouchers."""
    redeemed = (
        db.session.query(Transaction.id)
        .join(Voucher, Voucher.id == Transaction.voucher_id)
        .filter(
            Transaction.beneficiary_id == Beneficiary.id,
            Transaction.code.isnot(None),
            Voucher.sponsor_id == sponsor_id,
        )
        .exists()
    )
    q = (
        db.session.query(Beneficiary)
        .filter(Beneficiary.deleted_at.is_(None), redeemed)
        .order_by(Beneficiary.id.asc())
    )
    return paginate(q, page, per_page)


def _as_date(value: str | date | None, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed
