# Overview: Pytest coverage for purchase creation and receiving.

import pytest
from posledger.errors import BadRequestError, BusinessRuleError, NotFoundError
from posledger.extensions import db
from posledger.models import Product, StockMovement, MOVEMENT_INBOUND, REF_PURCHASE
from posledger.services import purchase_service, stock_service
from posledger.validation import PurchaseLineItem

from conftest import OPERATOR_ID


def _purchase(business, supplier, *lines):
    return purchase_service.create_purchase(
        business_id=business.id,
        supplier_id=supplier.id,
        lines=[PurchaseLineItem(product_id=p.id, quantity=q, unit_cost_cents=c) for p, q, c in lines],
        actor_id=OPERATOR_ID,
    )


class TestCreatePurchase:

    def test_create_purchase_totals_and_number(self, business, location, supplier, product):
        purchase = _purchase(business, supplier, (product, 10, 950))

        assert purchase.number.startswith("PO-")
        assert purchase.number.endswith("-00001")
        assert purchase.subtotal_cents == 9500
        assert purchase.tax_cents == 1520
        assert purchase.total_cents == 11020
        assert purchase.is_received is False
        # No stock until received
        assert stock_service.get_balance(business.id, product.id, location.id) == 0

    def test_unknown_supplier(self, business, product):
        with pytest.raises(NotFoundError):
            purchase_service.create_purchase(
                business.id, 9999, [PurchaseLineItem(product_id=product.id, quantity=1, unit_cost_cents=100)], OPERATOR_ID
            )

    def test_empty_purchase_rejected(self, business, supplier):
        with pytest.raises(BadRequestError):
            purchase_service.create_purchase(business.id, supplier.id, [], OPERATOR_ID)


class TestReceivePurchase:

    def test_receive_adds_stock_and_updates_cost(self, business, location, back_room, supplier, make_product, service_product):
        bolts = make_product("BOLT", cost_price_cents=100)
        nuts = make_product("NUT", cost_price_cents=50)
        purchase = _purchase(business, supplier, (bolts, 100, 120), (nuts, 40, 45), (service_product, 1, 2000))

        received = purchase_service.receive_purchase(business.id, purchase.id, back_room.id, OPERATOR_ID)

        assert received.is_received
        assert received.received_location_id == back_room.id
        assert received.received_by_id == OPERATOR_ID
        assert stock_service.get_balance(business.id, bolts.id, back_room.id) == 100
        assert stock_service.get_balance(business.id, nuts.id, back_room.id) == 40
        assert db.session.get(Product, bolts.id).cost_price_cents == 120
        assert db.session.get(Product, nuts.id).cost_price_cents == 45

        movements = db.session.query(StockMovement).filter_by(reference_type=REF_PURCHASE).all()
        assert {m.product_id for m in movements} == {bolts.id, nuts.id}
        assert all(m.movement_type == MOVEMENT_INBOUND and m.reference_id == purchase.id for m in movements)

    def test_receive_twice_rejected(self, business, location, supplier, product):
        purchase = _purchase(business, supplier, (product, 5, 900))
        purchase_service.receive_purchase(business.id, purchase.id, location.id, OPERATOR_ID)

        with pytest.raises(BusinessRuleError) as exc:
            purchase_service.receive_purchase(business.id, purchase.id, location.id, OPERATOR_ID)

        assert exc.value.code == "ALREADY_RECEIVED"
        assert stock_service.get_balance(business.id, product.id, location.id) == 5

    def test_receive_into_inactive_location(self, db_session, business, location, back_room, supplier, product):
        back_room.is_active = False
        db_session.commit()
        purchase = _purchase(business, supplier, (product, 5, 900))

        with pytest.raises(NotFoundError):
            purchase_service.receive_purchase(business.id, purchase.id, back_room.id, OPERATOR_ID)
        assert purchase_service.get_purchase(business.id, purchase.id).is_received is False

    def test_list_purchases_by_received_state(self, business, location, supplier, product):
        open_po = _purchase(business, supplier, (product, 1, 100))
        done_po = _purchase(business, supplier, (product, 1, 100))
        purchase_service.receive_purchase(business.id, done_po.id, location.id, OPERATOR_ID)

        assert [p.id for p in purchase_service.list_purchases(business.id, received=False)] == [open_po.id]
        assert [p.id for p in purchase_service.list_purchases(business.id, received=True)] == [done_po.id]
