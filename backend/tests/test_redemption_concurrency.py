# Overview: Threaded redemption races against a file-backed SQLite database.

"""
Concurrency tests for voucher redemption.

Run with:
    python -m pytest tests/test_redemption_concurrency.py
"""
import os
import tempfile
import threading
import unittest

from voucherhub import create_app
from voucherhub.extensions import db
from voucherhub.models import Transaction, Voucher, VoucherStatus
from voucherhub.services import account_service, voucher_service
from voucherhub.services.geolocation_service import StaticGeolocationResolver
from voucherhub.services.redemption_service import RedemptionFailure, redeem_voucher


class RedemptionConcurrencyTests(unittest.TestCase):
    THREADS = 8

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False, "timeout": 30}},
            "GEOLOCATION_STATIC_LABEL": "Ibadan",
            "REDEMPTION_RETRY_ATTEMPTS": 10,
        })
        self.resolver = StaticGeolocationResolver("Ibadan")

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            sponsor = account_service.create_account("sponsor@example.com", usertype="sponsor").sponsor
            self.sponsor_id = sponsor.id

            self.beneficiary_ids = []
            for i in range(self.THREADS):
                user = account_service.create_account(f"beneficiary{i}@example.com", usertype="user")
                self.beneficiary_ids.append(user.beneficiary.id)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _create_voucher(self, **attributes):
        attributes.setdefault("voucher_amount_cents", 10000)
        attributes.setdefault("amount_per_code_cents", 1000)
        with self.app.app_context():
            voucher = voucher_service.create_voucher(self.sponsor_id, attributes)
            return voucher.id, voucher.voucher_code

    def _race(self, code):
        results = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(self.THREADS)

        def worker(beneficiary_id):
            with self.app.app_context():
                try:
                    barrier.wait()
                    result = redeem_voucher(code, "198.51.100.20", beneficiary_id, resolver=self.resolver)
                    with lock:
                        results.append(result)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(bid,)) for bid in self.beneficiary_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertFalse(errors)
        return results

    def test_exactly_limit_redemptions_succeed(self):
        limit = 3
        voucher_id, code = self._create_voucher(limit=limit, type="multiple_time")

        results = self._race(code)

        successes = [r for r in results if r.success]
        failures = [r for r in results if not r.success]
        self.assertEqual(len(successes), limit)
        self.assertEqual(len(failures), self.THREADS - limit)
        self.assertTrue(all(r.reason == RedemptionFailure.NONE_AVAILABLE for r in failures))

        with self.app.app_context():
            voucher = db.session.get(Voucher, voucher_id)
            self.assertEqual(voucher.limit, 0)
            ledger = db.session.query(Transaction).filter_by(voucher_id=voucher_id).all()
            self.assertEqual(len(ledger), limit)
            self.assertEqual(len({t.beneficiary_id for t in ledger}), limit)

    def test_one_time_voucher_redeemed_once(self):
        voucher_id, code = self._create_voucher(limit=1, type="one_time")

        results = self._race(code)

        self.assertEqual(sum(1 for r in results if r.success), 1)
        # Late arrivals see the flipped status; racers that read it first lose at the limit check
        for r in results:
            if not r.success:
                self.assertIn(r.reason, (RedemptionFailure.ALREADY_USED, RedemptionFailure.NONE_AVAILABLE))

        with self.app.app_context():
            voucher = db.session.get(Voucher, voucher_id)
            self.assertEqual(voucher.limit, 0)
            self.assertEqual(voucher.status, VoucherStatus.USED)
            self.assertEqual(db.session.query(Transaction).filter_by(voucher_id=voucher_id).count(), 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
