"""
Pytest fixtures for voucherhub backend tests.

Provides test database setup, account fixtures, a static geolocation
resolver and a test client.
"""

import pytest
from voucherhub import create_app
from voucherhub.extensions import db
from voucherhub.services import account_service, session_service, voucher_service
from voucherhub.services.geolocation_service import StaticGeolocationResolver


@pytest.fixture(scope='session')
def app():
    """One app per run, backed by an in-memory SQLite database."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'GEOLOCATION_STATIC_LABEL': None,
        'REDEMPTION_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Session over emptied tables; schema is kept between tests."""
    with app.app_context():
        # Children first so foreign keys never dangle
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def resolver(app):
    """Install a resolver that places every requester in Ibadan."""
    previous = app.extensions["geolocation"]
    static = StaticGeolocationResolver("Ibadan")
    app.extensions["geolocation"] = static
    yield static
    app.extensions["geolocation"] = previous


@pytest.fixture(scope='function')
def sponsor(db_session):
    user = account_service.create_account("sponsor@example.com", usertype="sponsor", display_name="Acme Foundation")
    return user.sponsor


@pytest.fixture(scope='function')
def other_sponsor(db_session):
    user = account_service.create_account("other@example.com", usertype="sponsor", display_name="Beta Trust")
    return user.sponsor


@pytest.fixture(scope='function')
def merchant_a(db_session):
    user = account_service.create_account("store-a@example.com", usertype="merchant", display_name="Store A")
    return user.merchant


@pytest.fixture(scope='function')
def merchant_b(db_session):
    user = account_service.create_account("store-b@example.com", usertype="merchant", display_name="Store B")
    return user.merchant


@pytest.fixture(scope='function')
def beneficiary(db_session):
    user = account_service.create_account("ada@example.com", usertype="user", first_name="Ada", state="Oyo")
    return user.beneficiary


@pytest.fixture(scope='function')
def make_voucher(sponsor):
    """Factory creating vouchers for the default sponsor."""
    def _make(merchant_ids=None, owner=None, **attributes):
        attributes.setdefault("voucher_amount_cents", 10000)
        attributes.setdefault("amount_per_code_cents", 1000)
        owner_id = (owner or sponsor).id
        return voucher_service.create_voucher(owner_id, attributes, merchant_ids)
    return _make


def auth_headers_for(user_id: int) -> dict:
    """Helper to create Authorization headers for a user."""
    _, token = session_service.create_session(user_id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def sponsor_headers(sponsor):
    return auth_headers_for(sponsor.user_id)


@pytest.fixture(scope='function')
def other_sponsor_headers(other_sponsor):
    return auth_headers_for(other_sponsor.user_id)


@pytest.fixture(scope='function')
def beneficiary_headers(beneficiary):
    return auth_headers_for(beneficiary.user_id)
