"""
Pytest fixtures for balepos backend tests.

Provides the test app on an in-memory database, a per-test wipe, the test
client and a few seeded rows (bales, customers, a live session).
"""

import pytest

from balepos import create_app
from balepos.extensions import db
from balepos.models import Bale, BaleStatus, Customer, LiveSession
from balepos.services import cart_service
from balepos.time_utils import session_date, utcnow


CLIENT_KEY = "test-device"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEVICE_GATE_ENABLED': False,
        'MIRROR_URL': '',
        'IP_LOOKUP_URL': '',
        'SHOP_TIMEZONE': 'UTC',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def mirror_on(app):
    """Point the mirror at a fake remote for the duration of a test."""
    app.config['MIRROR_URL'] = 'https://mirror.test/rest/v1'
    yield
    app.config['MIRROR_URL'] = ''


@pytest.fixture(scope='function')
def bale(db_session):
    """On Sale bale: 100 pieces, 10,000.00 cost."""
    bale = Bale(name="Spring Mix", status=BaleStatus.ON_SALE, cost_cents=1_000_000, item_count=100)
    db_session.add(bale)
    db_session.commit()
    return bale


@pytest.fixture(scope='function')
def small_bale(db_session):
    """On Sale bale with only 2 pieces."""
    bale = Bale(name="Tiny Lot", status=BaleStatus.ON_SALE, cost_cents=20_000, item_count=2)
    db_session.add(bale)
    db_session.commit()
    return bale


@pytest.fixture(scope='function')
def vip_customer(db_session):
    customer = Customer(username="dogmom_ph", is_vip=True, vip_tickets=1)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def blacklisted_customer(db_session):
    customer = Customer(username="joy_reserver_123", is_blacklisted=True)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def live_session(db_session):
    now = utcnow()
    session = LiveSession(name="Friday Live", date=session_date(now), is_open=True, created_at=now)
    db_session.add(session)
    db_session.commit()
    return session


def prepare_cart(bale, session_key, username, **fields):
    """Point the test device's cart at a bale, session and customer."""
    return cart_service.update_draft(CLIENT_KEY, {
        "session_key": session_key,
        "username": username,
        "selected_bale_id": bale.id,
        **fields,
    })


def checkout_items(bale, session_key, username, prices, **fields):
    """Fill the cart with one piece per price and check out."""
    prepare_cart(bale, session_key, username, **fields)
    for price in prices:
        cart_service.add_to_cart(CLIENT_KEY, price)
    return cart_service.checkout(CLIENT_KEY)
