# Overview: Pytest coverage for delivery scheduling and status transitions.

from datetime import timedelta

import pytest
from posledger.errors import BadRequestError, ConflictError, InvalidStateError, NotFoundError
from posledger.models import (
    DELIVERY_ASSIGNED,
    DELIVERY_DELIVERED,
    DELIVERY_FAILED,
    DELIVERY_IN_TRANSIT,
    DELIVERY_RESCHEDULED,
)
from posledger.services import delivery_service, sales_service
from posledger.time_utils import utcnow

from conftest import OPERATOR_ID, cash, line

DRIVER_ID = 31


@pytest.fixture
def sold_order(business, location, product, stock, open_shift):
    stock(product, location, 2)
    return sales_service.create_sale(business.id, OPERATOR_ID, [line(product, 1)], [cash(2000)])


@pytest.fixture
def delivery(business, sold_order):
    return delivery_service.create_delivery(business.id, sold_order.id, "12 Quay Street", OPERATOR_ID, driver_id=DRIVER_ID, notes="ring twice")


def _move(business, delivery, status, **kwargs):
    return delivery_service.update_delivery_status(business.id, delivery.id, status, OPERATOR_ID, **kwargs)


class TestCreateDelivery:

    def test_create_delivery(self, delivery, sold_order):
        assert delivery.status == DELIVERY_ASSIGNED
        assert delivery.order_id == sold_order.id
        assert delivery.driver_id == DRIVER_ID

    def test_one_delivery_per_order(self, business, sold_order, delivery):
        with pytest.raises(ConflictError) as exc:
            delivery_service.create_delivery(business.id, sold_order.id, "Elsewhere 1", OPERATOR_ID)
        assert exc.value.code == "DELIVERY_EXISTS"

    def test_quote_cannot_be_delivered(self, business, location, product):
        quote = sales_service.create_quote(business.id, OPERATOR_ID, [line(product, 1)])

        with pytest.raises(InvalidStateError):
            delivery_service.create_delivery(business.id, quote.id, "12 Quay Street", OPERATOR_ID)

    def test_address_required(self, business, sold_order):
        with pytest.raises(BadRequestError):
            delivery_service.create_delivery(business.id, sold_order.id, "  ", OPERATOR_ID)

    def test_unknown_order(self, business, location):
        with pytest.raises(NotFoundError):
            delivery_service.create_delivery(business.id, 4040, "12 Quay Street", OPERATOR_ID)


class TestDeliveryTransitions:

    def test_happy_path(self, business, delivery):
        _move(business, delivery, DELIVERY_IN_TRANSIT)
        done = _move(business, delivery, DELIVERY_DELIVERED)

        assert done.status == DELIVERY_DELIVERED
        assert done.delivered_at is not None

    def test_cannot_deliver_before_transit(self, business, delivery):
        with pytest.raises(InvalidStateError):
            _move(business, delivery, DELIVERY_DELIVERED)

    def test_failed_needs_reason_and_is_terminal(self, business, delivery):
        with pytest.raises(BadRequestError) as exc:
            _move(business, delivery, DELIVERY_FAILED)
        assert exc.value.code == "FAILURE_REASON_REQUIRED"

        failed = _move(business, delivery, DELIVERY_FAILED, failure_reason="nobody home")
        assert failed.failure_reason == "nobody home"

        with pytest.raises(InvalidStateError):
            _move(business, delivery, DELIVERY_IN_TRANSIT)

    def test_reschedule_then_resume(self, business, delivery):
        with pytest.raises(BadRequestError) as exc:
            _move(business, delivery, DELIVERY_RESCHEDULED)
        assert exc.value.code == "SCHEDULE_REQUIRED"

        when = (utcnow() + timedelta(days=2)).replace(microsecond=0)
        rescheduled = _move(business, delivery, DELIVERY_RESCHEDULED, scheduled_for=when)
        assert rescheduled.scheduled_for == when

        back = _move(business, delivery, DELIVERY_ASSIGNED)
        assert back.status == DELIVERY_ASSIGNED

    def test_status_change_records_notes(self, business, delivery):
        moving = _move(business, delivery, DELIVERY_IN_TRANSIT, notes=" left depot 09:10 ")

        assert moving.notes == "left depot 09:10"

    def test_existing_notes_kept_without_new_ones(self, business, delivery):
        moving = _move(business, delivery, DELIVERY_IN_TRANSIT)
        assert moving.notes == "ring twice"

        blank = _move(business, delivery, DELIVERY_DELIVERED, notes="  ")
        assert blank.notes == "ring twice"

    def test_unknown_status(self, business, delivery):
        with pytest.raises(BadRequestError):
            _move(business, delivery, "LOST_AT_SEA")

    def test_foreign_business_cannot_touch(self, business, other_business, delivery):
        with pytest.raises(NotFoundError):
            delivery_service.update_delivery_status(other_business.id, delivery.id, DELIVERY_IN_TRANSIT, OPERATOR_ID)


@pytest.fixture
def second_order(business, location, product, stock, sold_order):
    return sales_service.create_sale(business.id, OPERATOR_ID, [line(product, 1)], [cash(2000)])


class TestDeliveryQueries:

    def test_filter_by_status_and_driver(self, business, delivery, second_order):
        unassigned = delivery_service.create_delivery(business.id, second_order.id, "4 Rope Walk", OPERATOR_ID)
        _move(business, delivery, DELIVERY_IN_TRANSIT)

        in_transit = delivery_service.list_deliveries(business.id, status="in_transit")
        driven = delivery_service.list_deliveries(business.id, driver_id=DRIVER_ID)
        everything = delivery_service.list_deliveries(business.id)

        assert [d.id for d in in_transit] == [delivery.id]
        assert [d.id for d in driven] == [delivery.id]
        assert {d.id for d in everything} == {delivery.id, unassigned.id}

    def test_pending_excludes_finished(self, business, delivery, second_order):
        other = delivery_service.create_delivery(business.id, second_order.id, "4 Rope Walk", OPERATOR_ID)
        _move(business, delivery, DELIVERY_IN_TRANSIT)
        _move(business, delivery, DELIVERY_DELIVERED)

        pending = delivery_service.list_deliveries(business.id, pending=True)

        assert [d.id for d in pending] == [other.id]

    def test_driver_queue_in_schedule_order(self, business, delivery, second_order):
        soon = (utcnow() + timedelta(hours=1)).replace(microsecond=0)
        later = (utcnow() + timedelta(days=1)).replace(microsecond=0)
        scheduled = delivery_service.create_delivery(
            business.id, second_order.id, "4 Rope Walk", OPERATOR_ID, driver_id=DRIVER_ID, scheduled_for=soon
        )
        _move(business, delivery, DELIVERY_IN_TRANSIT)
        _move(business, delivery, DELIVERY_RESCHEDULED, scheduled_for=later)

        queue = delivery_service.list_driver_deliveries(business.id, DRIVER_ID)

        assert [d.id for d in queue] == [scheduled.id, delivery.id]

    def test_driver_queue_skips_finished_and_other_drivers(self, business, delivery, second_order):
        delivery_service.create_delivery(business.id, second_order.id, "4 Rope Walk", OPERATOR_ID, driver_id=DRIVER_ID + 1)
        _move(business, delivery, DELIVERY_IN_TRANSIT)
        _move(business, delivery, DELIVERY_FAILED, failure_reason="gate locked")

        assert delivery_service.list_driver_deliveries(business.id, DRIVER_ID) == []

    def test_other_business_sees_nothing(self, other_business, delivery):
        assert delivery_service.list_deliveries(other_business.id) == []
        assert delivery_service.list_driver_deliveries(other_business.id, DRIVER_ID) == []
