"""
Pytest fixtures for posledger backend tests.

Provides the application on in-memory SQLite, a per-test table wipe, and
small factories for the catalog rows most tests need.
"""

import pytest
from posledger import create_app
from posledger.extensions import db
from posledger.models import Business, Location, Product, Customer, Supplier
from posledger.models import MOVEMENT_INBOUND
from posledger.services import shift_service, stock_service
from posledger.validation import LineItem, PaymentItem

OPERATOR_ID = 7
OTHER_OPERATOR_ID = 8
MANAGER_ID = 99


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CACHE_ENABLED': False,
        'PRICE_TAX_MODE': 'product',
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
def business(db_session):
    biz = Business(name="Corner Hardware", code="CORNER", is_active=True)
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def other_business(db_session):
    biz = Business(name="Rival Goods", code="RIVAL", is_active=True)
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def location(db_session, business):
    """Primary location of `business`; sales draw from here."""
    loc = Location(business_id=business.id, name="Main Store", is_primary=True, is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def back_room(db_session, business):
    loc = Location(business_id=business.id, name="Back Room", is_primary=False, is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def make_product(db_session, business):
    """Factory: make_product(code, sale_price_cents=..., ...)."""
    def _make(code="P-001", **overrides):
        values = dict(
            business_id=business.id,
            code=code,
            name=f"Product {code}",
            cost_price_cents=1000,
            sale_price_cents=2000,
            tax_rate_bps=1600,
            tax_included=True,
            track_stock=True,
            reorder_threshold=0,
            is_active=True,
        )
        values.update(overrides)
        product = Product(**values)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Tracked product: cost $10, price $20 tax-inclusive at 16%."""
    return make_product("P-001")


@pytest.fixture(scope='function')
def service_product(make_product):
    """Untracked product (e.g. installation service)."""
    return make_product("SVC-001", name="Installation", sale_price_cents=5000, tax_rate_bps=0, track_stock=False)


@pytest.fixture(scope='function')
def customer(db_session, business):
    cust = Customer(business_id=business.id, name="Ana Builder", credit_limit_cents=100000, credit_used_cents=0)
    db_session.add(cust)
    db_session.commit()
    return cust


@pytest.fixture(scope='function')
def supplier(db_session, business):
    sup = Supplier(business_id=business.id, name="Bolt Wholesale", is_active=True)
    db_session.add(sup)
    db_session.commit()
    return sup


@pytest.fixture(scope='function')
def till(business):
    return shift_service.create_till(business.id, "Till 1")


@pytest.fixture(scope='function')
def open_shift(business, location, till):
    """Open shift for OPERATOR_ID with a $500 float."""
    return shift_service.open_shift(
        business_id=business.id,
        till_id=till.id,
        operator_id=OPERATOR_ID,
        opening_float_cents=50000,
    )


@pytest.fixture(scope='function')
def stock(business):
    """stock(product, location, qty): put qty units on the shelf."""
    def _stock(product, location, quantity):
        stock_service.record_movement(
            business_id=business.id,
            product_id=product.id,
            location_id=location.id,
            movement_type=MOVEMENT_INBOUND,
            quantity=quantity,
            actor_id=OPERATOR_ID,
            reason="test seed",
        )
    return _stock


def line(product, quantity, **kwargs):
    """LineItem helper for service calls."""
    return LineItem(product_id=product.id, quantity=quantity, **kwargs)


def cash(amount_cents):
    return PaymentItem(method="CASH", amount_cents=amount_cents)


def credit(amount_cents):
    return PaymentItem(method="CUSTOMER_CREDIT", amount_cents=amount_cents)


def actor_headers(business, actor_id=OPERATOR_ID, role=None) -> dict:
    """Headers the upstream gateway would attach."""
    headers = {'X-Actor-Id': str(actor_id), 'X-Business-Id': str(business.id)}
    if role:
        headers['X-Actor-Role'] = role
    return headers
