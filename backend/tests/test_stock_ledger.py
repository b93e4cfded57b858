# Overview: Pytest coverage for the stock ledger (balances, movements, transfers).

"""
Stock Ledger Tests

Balances only change through movements, never go negative, and can always
be rebuilt by replaying the movement history.
"""

import pytest
from posledger.errors import BadRequestError, InsufficientStockError, NotFoundError
from posledger.extensions import db
from posledger.models import (
    StockBalance,
    StockMovement,
    ImmutableMovementError,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_INBOUND,
    MOVEMENT_OUTBOUND,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    REF_MANUAL,
    REF_TRANSFER,
)
from posledger.services import stock_service

from conftest import OPERATOR_ID


def _move(business, product, location, movement_type, quantity, **kwargs):
    return stock_service.record_movement(
        business_id=business.id,
        product_id=product.id,
        location_id=location.id,
        movement_type=movement_type,
        quantity=quantity,
        actor_id=OPERATOR_ID,
        **kwargs,
    )


class TestManualMovements:

    def test_inbound_creates_balance_lazily(self, business, location, product):
        movement, balance = _move(business, product, location, MOVEMENT_INBOUND, 12, unit_cost_cents=900)

        assert balance.quantity == 12
        assert movement.quantity_before == 0
        assert movement.quantity_after == 12
        assert movement.reference_type == REF_MANUAL
        assert movement.unit_cost_cents == 900
        assert stock_service.get_balance(business.id, product.id, location.id) == 12

    def test_outbound_decrements(self, business, location, product):
        _move(business, product, location, MOVEMENT_INBOUND, 10)
        movement, balance = _move(business, product, location, MOVEMENT_OUTBOUND, 4)

        assert balance.quantity == 6
        assert movement.signed_quantity == -4

    def test_adjustment_sets_absolute_quantity(self, business, location, product):
        _move(business, product, location, MOVEMENT_INBOUND, 10)
        movement, balance = _move(business, product, location, MOVEMENT_ADJUSTMENT, 3, reason="cycle count")

        assert balance.quantity == 3
        assert movement.quantity_before == 10
        assert movement.signed_quantity == -7

    def test_outbound_below_zero_rejected_and_nothing_written(self, business, location, product):
        _move(business, product, location, MOVEMENT_INBOUND, 2)

        with pytest.raises(InsufficientStockError) as exc:
            _move(business, product, location, MOVEMENT_OUTBOUND, 3)

        assert exc.value.details == {
            "product_id": product.id,
            "location_id": location.id,
            "available": 2,
            "requested": 3,
        }
        assert stock_service.get_balance(business.id, product.id, location.id) == 2
        assert db.session.query(StockMovement).count() == 1

    def test_negative_adjustment_rejected(self, business, location, product):
        with pytest.raises(BadRequestError):
            _move(business, product, location, MOVEMENT_ADJUSTMENT, -1)

    def test_zero_quantity_rejected(self, business, location, product):
        with pytest.raises(BadRequestError):
            _move(business, product, location, MOVEMENT_INBOUND, 0)

    def test_untracked_product_rejected(self, business, location, service_product):
        with pytest.raises(BadRequestError) as exc:
            _move(business, service_product, location, MOVEMENT_INBOUND, 1)
        assert exc.value.code == "NOT_STOCK_TRACKED"

    def test_return_type_not_allowed_manually(self, business, location, product):
        with pytest.raises(BadRequestError):
            _move(business, product, location, "RETURN", 1)

    def test_foreign_location_not_found(self, db_session, business, other_business, product):
        from posledger.models import Location
        foreign = Location(business_id=other_business.id, name="Elsewhere", is_primary=True)
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFoundError):
            _move(business, product, foreign, MOVEMENT_INBOUND, 1)


class TestMovementImmutability:

    def test_movement_rows_cannot_be_updated(self, business, location, product):
        movement, _ = _move(business, product, location, MOVEMENT_INBOUND, 5)
        movement.quantity = 50

        with pytest.raises(ImmutableMovementError):
            db.session.flush()
        db.session.rollback()

    def test_movement_rows_cannot_be_deleted(self, business, location, product):
        movement, _ = _move(business, product, location, MOVEMENT_INBOUND, 5)
        db.session.delete(movement)

        with pytest.raises(ImmutableMovementError):
            db.session.flush()
        db.session.rollback()


class TestTransfers:

    def test_transfer_writes_paired_legs(self, business, location, back_room, product):
        _move(business, product, back_room, MOVEMENT_INBOUND, 8)

        out_leg, in_leg = stock_service.transfer_stock(
            business_id=business.id,
            product_id=product.id,
            from_location_id=back_room.id,
            to_location_id=location.id,
            quantity=5,
            actor_id=OPERATOR_ID,
        )

        assert out_leg.movement_type == MOVEMENT_TRANSFER_OUT
        assert in_leg.movement_type == MOVEMENT_TRANSFER_IN
        assert out_leg.counterpart_location_id == location.id
        assert in_leg.counterpart_location_id == back_room.id
        assert in_leg.reference_type == REF_TRANSFER
        assert in_leg.reference_id == out_leg.id
        assert stock_service.get_balance(business.id, product.id, back_room.id) == 3
        assert stock_service.get_balance(business.id, product.id, location.id) == 5

    def test_transfer_more_than_available_moves_nothing(self, business, location, back_room, product):
        _move(business, product, back_room, MOVEMENT_INBOUND, 2)

        with pytest.raises(InsufficientStockError):
            stock_service.transfer_stock(
                business_id=business.id,
                product_id=product.id,
                from_location_id=back_room.id,
                to_location_id=location.id,
                quantity=3,
                actor_id=OPERATOR_ID,
            )

        assert stock_service.get_balance(business.id, product.id, back_room.id) == 2
        assert stock_service.get_balance(business.id, product.id, location.id) == 0
        assert db.session.query(StockMovement).filter_by(reference_type=REF_TRANSFER).count() == 0

    def test_transfer_to_same_location_rejected(self, business, location, product):
        with pytest.raises(BadRequestError):
            stock_service.transfer_stock(
                business_id=business.id,
                product_id=product.id,
                from_location_id=location.id,
                to_location_id=location.id,
                quantity=1,
                actor_id=OPERATOR_ID,
            )


class TestReplayAndQueries:

    def test_replay_matches_balance_after_mixed_history(self, business, location, back_room, product):
        _move(business, product, location, MOVEMENT_INBOUND, 20)
        _move(business, product, location, MOVEMENT_OUTBOUND, 3)
        _move(business, product, location, MOVEMENT_ADJUSTMENT, 15)
        stock_service.transfer_stock(
            business_id=business.id,
            product_id=product.id,
            from_location_id=location.id,
            to_location_id=back_room.id,
            quantity=6,
            actor_id=OPERATOR_ID,
        )
        _move(business, product, back_room, MOVEMENT_OUTBOUND, 1)

        for loc in (location, back_room):
            balance = db.session.query(StockBalance).filter_by(product_id=product.id, location_id=loc.id).one()
            assert stock_service.replay_balance(product.id, loc.id) == balance.quantity

        assert stock_service.get_balance(business.id, product.id, location.id) == 9
        assert stock_service.get_balance(business.id, product.id, back_room.id) == 5

    def test_low_stock_uses_reorder_threshold(self, business, location, make_product):
        low = make_product("LOW", reorder_threshold=10)
        fine = make_product("FINE", reorder_threshold=2)
        _move(business, low, location, MOVEMENT_INBOUND, 4)
        _move(business, fine, location, MOVEMENT_INBOUND, 4)

        rows = stock_service.list_low_stock(business.id)

        assert [row["product_id"] for row in rows] == [low.id]

    def test_list_movements_newest_first_with_filters(self, business, location, product):
        _move(business, product, location, MOVEMENT_INBOUND, 5)
        _move(business, product, location, MOVEMENT_OUTBOUND, 1)

        movements = stock_service.list_movements(business.id, product_id=product.id)
        assert [m.movement_type for m in movements] == [MOVEMENT_OUTBOUND, MOVEMENT_INBOUND]

        inbound = stock_service.list_movements(business.id, movement_type=MOVEMENT_INBOUND)
        assert len(inbound) == 1


class TestBalanceCache:

    def test_cached_balances_invalidated_after_movement(self, app, business, location, product):
        from posledger.cache import MemoryCache
        original = app.extensions["posledger_cache"]
        app.extensions["posledger_cache"] = MemoryCache(default_ttl=60)
        try:
            _move(business, product, location, MOVEMENT_INBOUND, 5)
            first = stock_service.list_balances(business.id)
            assert first[0]["quantity"] == 5

            _move(business, product, location, MOVEMENT_OUTBOUND, 2)
            second = stock_service.list_balances(business.id)
            assert second[0]["quantity"] == 3
        finally:
            app.extensions["posledger_cache"] = original
