"""
HTTP API tests: authentication, ownership, and error-to-status mapping for
the voucher, redemption and reporting routes.
"""

from datetime import timedelta

import pytest

from voucherhub.models import Transaction, Voucher
from voucherhub.time_utils import utctoday


def _create(client, headers, **payload):
    payload.setdefault("voucher_amount_cents", 10000)
    payload.setdefault("amount_per_code_cents", 1000)
    return client.post("/api/vouchers", json=payload, headers=headers)


class TestAuthentication:
    def test_missing_token(self, client, db_session):
        response = client.post("/api/vouchers", json={})
        assert response.status_code == 401

    def test_invalid_token(self, client, db_session):
        response = client.get("/api/vouchers/by-sponsor", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_beneficiary_cannot_create(self, client, beneficiary_headers):
        response = _create(client, beneficiary_headers)
        assert response.status_code == 403

    def test_sponsor_without_beneficiary_profile_cannot_redeem(self, client, sponsor_headers):
        response = client.post("/api/vouchers/redeem", json={"voucher_code": "ABCDEFGHIJ"}, headers=sponsor_headers)
        assert response.status_code == 403


class TestLifecycleRoutes:
    def test_create_returns_voucher_with_merchants(self, client, sponsor, sponsor_headers, merchant_a):
        response = _create(client, sponsor_headers, merchant_ids=[merchant_a.id], limit=4, type="multiple_time")

        assert response.status_code == 201
        body = response.get_json()
        assert body["sponsor_id"] == sponsor.id
        assert body["limit"] == 4
        assert body["type"] == "multiple_time"
        assert body["status"] == "unused"
        assert len(body["voucher_code"]) == 10
        assert [m["id"] for m in body["merchants"]] == [merchant_a.id]
        assert body["merchants"][0]["voucher_code"] == body["voucher_code"]

    def test_create_validation_error(self, client, sponsor_headers):
        response = _create(client, sponsor_headers, limit=-3)

        assert response.status_code == 400
        assert "limit" in response.get_json()["error"]

    def test_create_with_unknown_merchant_is_500(self, client, sponsor_headers, db_session):
        response = _create(client, sponsor_headers, merchant_ids=[98765])

        assert response.status_code == 500
        assert db_session.query(Voucher).count() == 0

    def test_get_and_get_by_code(self, client, sponsor_headers, make_voucher):
        voucher = make_voucher()

        by_id = client.get(f"/api/vouchers/{voucher.id}", headers=sponsor_headers)
        by_code = client.get(f"/api/vouchers/code/{voucher.voucher_code}", headers=sponsor_headers)

        assert by_id.status_code == 200
        assert by_code.get_json()["id"] == voucher.id

    def test_other_sponsor_gets_404(self, client, other_sponsor_headers, make_voucher):
        voucher = make_voucher()

        assert client.get(f"/api/vouchers/{voucher.id}", headers=other_sponsor_headers).status_code == 404
        assert client.patch(
            f"/api/vouchers/{voucher.id}", json={"purpose": "x"}, headers=other_sponsor_headers
        ).status_code == 404
        assert client.post(f"/api/vouchers/{voucher.id}/revoke", headers=other_sponsor_headers).status_code == 404
        assert client.delete(f"/api/vouchers/{voucher.id}", headers=other_sponsor_headers).status_code == 404

    def test_patch_updates_only_given_fields(self, client, sponsor_headers, make_voucher, merchant_a, merchant_b):
        voucher = make_voucher(purpose="Original", merchant_ids=[merchant_a.id])

        response = client.patch(
            f"/api/vouchers/{voucher.id}",
            json={"location": "Ibadan", "merchant_ids": [merchant_b.id]},
            headers=sponsor_headers,
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["purpose"] == "Original"
        assert body["location"] == "Ibadan"
        assert [m["id"] for m in body["merchants"]] == [merchant_b.id]

    def test_patch_rejects_code_change(self, client, sponsor_headers, make_voucher):
        voucher = make_voucher()

        response = client.patch(f"/api/vouchers/{voucher.id}", json={"voucher_code": "X"}, headers=sponsor_headers)

        assert response.status_code == 400

    def test_revoke_then_get_is_404(self, client, sponsor_headers, make_voucher):
        voucher = make_voucher()

        revoke = client.post(f"/api/vouchers/{voucher.id}/revoke", headers=sponsor_headers)
        assert revoke.status_code == 200
        assert revoke.get_json()["voucher"]["deleted_at"] is not None

        assert client.get(f"/api/vouchers/{voucher.id}", headers=sponsor_headers).status_code == 404
        audit = client.get(f"/api/vouchers/{voucher.id}?include_revoked=true", headers=sponsor_headers)
        assert audit.status_code == 200

    def test_delete_and_conflict(self, client, db_session, sponsor_headers, make_voucher, beneficiary):
        clean = make_voucher()
        redeemed = make_voucher()
        db_session.add(Transaction(voucher_id=redeemed.id, beneficiary_id=beneficiary.id, amount_cents=1000))
        db_session.commit()
        clean_id = clean.id

        assert client.delete(f"/api/vouchers/{clean_id}", headers=sponsor_headers).status_code == 200
        assert client.delete(f"/api/vouchers/{redeemed.id}", headers=sponsor_headers).status_code == 409

        db_session.expire_all()
        assert db_session.query(Voucher).filter_by(id=clean_id).count() == 0
        assert db_session.get(Voucher, redeemed.id) is not None


class TestRedeemRoute:
    def test_success(self, client, db_session, beneficiary, beneficiary_headers, make_voucher, resolver):
        voucher = make_voucher(location="Ibadan")

        response = client.post(
            "/api/vouchers/redeem",
            json={"voucher_code": voucher.voucher_code},
            headers=beneficiary_headers,
            environ_base={"REMOTE_ADDR": "203.0.113.9"},
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["message"] == "Voucher redeemed successfully."
        assert body["redemption"]["remaining_limit"] == 0
        assert resolver.calls == ["203.0.113.9"]

        db_session.expire_all()
        row = db_session.query(Transaction).filter_by(voucher_id=voucher.id).one()
        assert row.beneficiary_id == beneficiary.id

    def test_forwarded_for_ignored_unless_trusted(self, app, client, beneficiary_headers, make_voucher, resolver):
        voucher = make_voucher(location="Ibadan", limit=2, type="multiple_time")
        headers = dict(beneficiary_headers, **{"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})

        client.post("/api/vouchers/redeem", json={"voucher_code": voucher.voucher_code}, headers=headers)
        app.config["TRUST_FORWARDED_FOR"] = True
        try:
            client.post("/api/vouchers/redeem", json={"voucher_code": voucher.voucher_code}, headers=headers)
        finally:
            app.config["TRUST_FORWARDED_FOR"] = False

        assert resolver.calls == ["127.0.0.1", "198.51.100.1"]

    @pytest.mark.parametrize("attributes,status,reason", [
        ({"location": "Lagos"}, 400, "location_mismatch"),
        ({"limit": 0}, 400, "already_used"),
        ({"limit": 0, "type": "multiple_time"}, 400, "none_available"),
        ({"expiry_date": (utctoday() - timedelta(days=1)).isoformat()}, 400, "expired"),
    ])
    def test_business_rejections(self, client, beneficiary_headers, make_voucher, resolver, attributes, status, reason):
        voucher = make_voucher(**attributes)

        response = client.post(
            "/api/vouchers/redeem", json={"voucher_code": voucher.voucher_code}, headers=beneficiary_headers
        )

        assert response.status_code == status
        assert response.get_json()["reason"] == reason

    def test_unknown_code_is_404(self, client, beneficiary_headers, resolver):
        response = client.post("/api/vouchers/redeem", json={"voucher_code": "ZZZZZZZZZZ"}, headers=beneficiary_headers)

        assert response.status_code == 404
        assert response.get_json()["error"] == "Voucher not found."

    def test_merchant_not_associated(self, client, beneficiary_headers, make_voucher, merchant_a, merchant_b, resolver):
        voucher = make_voucher(merchant_ids=[merchant_a.id])

        response = client.post(
            "/api/vouchers/redeem",
            json={"voucher_code": voucher.voucher_code, "merchant_id": merchant_b.id},
            headers=beneficiary_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["reason"] == "merchant_not_associated"

    @pytest.mark.parametrize("payload", [
        {},
        {"voucher_code": ""},
        {"voucher_code": 12},
        {"voucher_code": "X", "merchant_id": "1"},
        ["X"],
        "X",
        5,
    ])
    def test_malformed_payload(self, client, beneficiary_headers, payload):
        response = client.post("/api/vouchers/redeem", json=payload, headers=beneficiary_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("payload", [["X"], "X", 5])
    def test_non_object_body_is_rejected(self, client, beneficiary_headers, payload):
        response = client.post("/api/vouchers/redeem", json=payload, headers=beneficiary_headers)

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid JSON payload"


class TestReportRoutes:
    def test_by_sponsor_envelope(self, client, sponsor_headers, make_voucher):
        for _ in range(3):
            make_voucher()

        response = client.get("/api/vouchers/by-sponsor?per_page=2", headers=sponsor_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert body["count"] == 2
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["has_next"] is True

    def test_date_range_requires_valid_dates(self, client, sponsor_headers):
        response = client.get(
            "/api/vouchers/date-range?start_date=2026-05-01&end_date=2026-04-01", headers=sponsor_headers
        )
        assert response.status_code == 400

    def test_status_views_respond(self, client, sponsor_headers, make_voucher):
        make_voucher(limit=0)
        make_voucher()

        used = client.get("/api/vouchers/used", headers=sponsor_headers).get_json()
        pending = client.get("/api/vouchers/yet-to-be-redeemed", headers=sponsor_headers).get_json()
        redeemed = client.get("/api/vouchers/redeemed", headers=sponsor_headers).get_json()
        beneficiaries = client.get("/api/beneficiaries/redeemed", headers=sponsor_headers).get_json()

        assert used["count"] == 1
        assert pending["count"] == 1
        assert redeemed["count"] == 0
        assert beneficiaries["count"] == 0

    def test_reports_are_sponsor_scoped(self, client, other_sponsor_headers, make_voucher):
        make_voucher()

        body = client.get("/api/vouchers/by-sponsor", headers=other_sponsor_headers).get_json()

        assert body["items"] == []


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"
