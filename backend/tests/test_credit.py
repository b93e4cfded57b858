# Overview: Pytest coverage for customer credit through sales, cancels and returns.

"""
Customer Credit Tests

credit_used_cents moves only with the order workflow: charged on sale,
released in full on cancel, released proportionally on return.
"""

import pytest
from posledger.errors import BadRequestError, BusinessRuleError, InsufficientCreditError
from posledger.extensions import db
from posledger.models import Customer, Order
from posledger.services import credit_service, return_service, sales_service
from posledger.validation import ReturnItem

from conftest import OPERATOR_ID, cash, credit, line


def _credit_used(customer_id):
    return db.session.get(Customer, customer_id).credit_used_cents


class TestCreditSales:

    def test_credit_sale_charges_customer(self, business, location, product, stock, customer, open_shift):
        stock(product, location, 5)

        order = sales_service.create_sale(
            business.id, OPERATOR_ID, [line(product, 5)], [credit(10000)], customer_id=customer.id
        )

        assert order.credit_used_cents == 10000
        assert order.payment_method == "CUSTOMER_CREDIT"
        assert _credit_used(customer.id) == 10000

    def test_credit_over_limit_rejected(self, db_session, business, location, product, stock, customer, open_shift):
        stock(product, location, 5)
        customer.credit_limit_cents = 3000
        db_session.commit()

        with pytest.raises(InsufficientCreditError) as exc:
            sales_service.create_sale(
                business.id, OPERATOR_ID, [line(product, 2)], [credit(4000)], customer_id=customer.id
            )

        assert exc.value.details["available_cents"] == 3000
        assert exc.value.details["requested_cents"] == 4000
        assert _credit_used(customer.id) == 0
        assert db.session.query(Order).count() == 0

    def test_credit_without_customer(self, business, location, product, stock, open_shift):
        stock(product, location, 1)

        with pytest.raises(BadRequestError) as exc:
            sales_service.create_sale(business.id, OPERATOR_ID, [line(product, 1)], [credit(2000)])
        assert exc.value.code == "CUSTOMER_REQUIRED"

    def test_credit_cannot_exceed_total(self, business, location, product, stock, customer, open_shift):
        stock(product, location, 1)

        with pytest.raises(BusinessRuleError) as exc:
            sales_service.create_sale(
                business.id, OPERATOR_ID, [line(product, 1)], [credit(2500)], customer_id=customer.id
            )
        assert exc.value.code == "CREDIT_EXCEEDS_TOTAL"

    def test_mixed_cash_and_credit(self, business, location, product, stock, customer, open_shift):
        stock(product, location, 2)

        order = sales_service.create_sale(
            business.id, OPERATOR_ID, [line(product, 2)], [cash(1000), credit(3000)], customer_id=customer.id
        )

        assert order.credit_used_cents == 3000
        assert _credit_used(customer.id) == 3000

    def test_limit_rechecked_inside_unit(self, db_session, business, location, product, stock, customer, open_shift, monkeypatch):
        """A stale pre-check cannot push credit past the limit."""
        stock(product, location, 2)
        customer.credit_limit_cents = 2000
        customer.credit_used_cents = 1000
        db_session.commit()

        real_check = credit_service.check_available
        calls = []

        def first_call_passes(customer_row, amount):
            calls.append(amount)
            if len(calls) == 1:
                return None
            return real_check(customer_row, amount)

        monkeypatch.setattr(credit_service, "check_available", first_call_passes)

        with pytest.raises(InsufficientCreditError):
            sales_service.create_sale(
                business.id, OPERATOR_ID, [line(product, 1)], [credit(2000)], customer_id=customer.id
            )
        assert len(calls) == 2
        assert _credit_used(customer.id) == 1000


class TestCreditRelease:

    def test_sale_then_cancel_round_trips(self, db_session, business, location, product, stock, customer, open_shift):
        stock(product, location, 3)
        customer.credit_used_cents = 1500
        db_session.commit()

        order = sales_service.create_sale(
            business.id, OPERATOR_ID, [line(product, 3)], [credit(6000)], customer_id=customer.id
        )
        assert _credit_used(customer.id) == 7500

        cancelled = sales_service.cancel_sale(business.id, order.id, "customer left", OPERATOR_ID)

        assert _credit_used(customer.id) == 1500
        assert cancelled.credit_released_cents == 6000

    def test_half_return_releases_half(self, business, location, product, stock, customer, open_shift):
        stock(product, location, 4)
        order = sales_service.create_sale(
            business.id, OPERATOR_ID, [line(product, 4)], [credit(8000)], customer_id=customer.id
        )

        result = return_service.return_sale(
            business.id, order.id, [ReturnItem(product_id=product.id, quantity=2)], actor_id=OPERATOR_ID
        )

        assert result.credit_released_cents == 4000
        assert _credit_used(customer.id) == 4000

        full = return_service.return_sale(
            business.id, order.id, [ReturnItem(product_id=product.id, quantity=2)], actor_id=OPERATOR_ID
        )

        assert full.order.status == "RETURNED"
        assert full.credit_released_cents == 4000
        assert _credit_used(customer.id) == 0

    def test_partial_credit_order_releases_proportionally(self, business, location, product, stock, customer, open_shift):
        """$40 order, $10 on credit; returning $20 of goods releases $5."""
        stock(product, location, 2)
        order = sales_service.create_sale(
            business.id, OPERATOR_ID, [line(product, 2)], [cash(3000), credit(1000)], customer_id=customer.id
        )

        result = return_service.return_sale(
            business.id, order.id, [ReturnItem(product_id=product.id, quantity=1)], actor_id=OPERATOR_ID
        )

        assert result.credit_released_cents == 500
        assert _credit_used(customer.id) == 500

    def test_cancel_after_partial_return_releases_only_remainder(self, business, location, product, stock, customer, open_shift):
        stock(product, location, 4)
        order = sales_service.create_sale(
            business.id, OPERATOR_ID, [line(product, 4)], [credit(8000)], customer_id=customer.id
        )
        return_service.return_sale(
            business.id, order.id, [ReturnItem(product_id=product.id, quantity=1)], actor_id=OPERATOR_ID
        )
        assert _credit_used(customer.id) == 6000

        cancelled = sales_service.cancel_sale(business.id, order.id, "void rest", OPERATOR_ID)

        assert cancelled.credit_released_cents == 8000
        assert _credit_used(customer.id) == 0

    def test_release_never_goes_below_zero(self, db_session, business, customer):
        customer.credit_used_cents = 300
        db_session.commit()

        released = credit_service.release(business.id, customer.id, 1000)
        db_session.commit()

        assert released == 300
        assert _credit_used(customer.id) == 0
