# Overview: Pytest coverage for concurrent writers against a file-backed SQLite store.

"""
Concurrency Tests

Runs real threads against one database file. Each thread pushes its own
app context, so each gets its own session and connection, and the
write lock taken by unit_of_work is what serializes them.
"""

import threading

import pytest
from posledger import create_app
from posledger.errors import ConflictError, InsufficientStockError
from posledger.extensions import db
from posledger.models import Business, Location, Order, Product, MOVEMENT_INBOUND
from posledger.services import sales_service, shift_service, stock_service
from posledger.validation import LineItem

from conftest import OPERATOR_ID, cash

WORKERS = 10


@pytest.fixture
def shared_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'CACHE_ENABLED': False,
        'PRICE_TAX_MODE': 'product',
    })
    with app.app_context():
        db.create_all()
        business = Business(name="Busy Shop", code="BUSY", is_active=True)
        db.session.add(business)
        db.session.commit()
        location = Location(business_id=business.id, name="Main Store", is_primary=True, is_active=True)
        product = Product(
            business_id=business.id,
            code="HOT-1",
            name="Hot Item",
            cost_price_cents=500,
            sale_price_cents=1000,
            tax_rate_bps=0,
            tax_included=True,
            track_stock=True,
            is_active=True,
        )
        db.session.add_all([location, product])
        db.session.commit()
        till = shift_service.create_till(business.id, "Till 1")
        app.config['SEED'] = {
            'business_id': business.id,
            'location_id': location.id,
            'product_id': product.id,
            'till_id': till.id,
        }
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_threads(app, target):
    """Start WORKERS threads on target(index) at once; collect (result, error) per thread."""
    results = [None] * WORKERS
    barrier = threading.Barrier(WORKERS)

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = (target(index), None)
            except Exception as exc:
                results[index] = (None, exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(WORKERS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


class TestConcurrentSales:

    def test_last_units_are_never_oversold(self, shared_app):
        seed = shared_app.config['SEED']
        with shared_app.app_context():
            stock_service.record_movement(
                business_id=seed['business_id'],
                product_id=seed['product_id'],
                location_id=seed['location_id'],
                movement_type=MOVEMENT_INBOUND,
                quantity=5,
                actor_id=OPERATOR_ID,
            )
            shift_service.open_shift(seed['business_id'], seed['till_id'], OPERATOR_ID, 0)

        def buy_one(_):
            order = sales_service.create_sale(
                seed['business_id'], OPERATOR_ID, [LineItem(product_id=seed["product_id"], quantity=1)], [cash(1000)]
            )
            return order.number

        results = _run_threads(shared_app, buy_one)

        numbers = [number for number, error in results if error is None]
        errors = [error for _, error in results if error is not None]
        assert len(numbers) == 5
        assert len(set(numbers)) == 5
        assert len(errors) == 5
        assert all(isinstance(error, InsufficientStockError) for error in errors)

        with shared_app.app_context():
            assert stock_service.get_balance(seed['business_id'], seed['product_id'], seed['location_id']) == 0
            assert db.session.query(Order).count() == 5
            assert stock_service.replay_balance(seed["product_id"], seed["location_id"]) == 0

    def test_numbers_stay_unique_under_load(self, shared_app):
        seed = shared_app.config['SEED']
        with shared_app.app_context():
            stock_service.record_movement(
                business_id=seed['business_id'],
                product_id=seed['product_id'],
                location_id=seed['location_id'],
                movement_type=MOVEMENT_INBOUND,
                quantity=WORKERS,
                actor_id=OPERATOR_ID,
            )
            shift_service.open_shift(seed['business_id'], seed['till_id'], OPERATOR_ID, 0)

        def buy_one(_):
            return sales_service.create_sale(
                seed['business_id'], OPERATOR_ID, [LineItem(product_id=seed["product_id"], quantity=1)], [cash(1000)]
            ).number

        results = _run_threads(shared_app, buy_one)

        assert all(error is None for _, error in results)
        numbers = sorted(number for number, _ in results)
        assert len(set(numbers)) == WORKERS
        assert [int(n.rsplit("-", 1)[1]) for n in numbers] == list(range(1, WORKERS + 1))


class TestConcurrentShifts:

    def test_one_open_shift_per_till(self, shared_app):
        seed = shared_app.config['SEED']

        def open_for(index):
            return shift_service.open_shift(seed['business_id'], seed['till_id'], 100 + index, 0).id

        results = _run_threads(shared_app, open_for)

        opened = [shift_id for shift_id, error in results if error is None]
        errors = [error for _, error in results if error is not None]
        assert len(opened) == 1
        assert all(isinstance(error, ConflictError) for error in errors)
