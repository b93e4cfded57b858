from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z

ORDER_STATUS_QUOTE = "QUOTE"
ORDER_STATUS_COMPLETED = "COMPLETED"
ORDER_STATUS_CANCELLED = "CANCELLED"
ORDER_STATUS_RETURNED = "RETURNED"

PAYMENT_CASH = "CASH"
PAYMENT_DEBIT_CARD = "DEBIT_CARD"
PAYMENT_CREDIT_CARD = "CREDIT_CARD"
PAYMENT_TRANSFER = "TRANSFER"
PAYMENT_CUSTOMER_CREDIT = "CUSTOMER_CREDIT"
PAYMENT_MIXED = "MIXED"

PAYMENT_METHODS = {
    PAYMENT_CASH,
    PAYMENT_DEBIT_CARD,
    PAYMENT_CREDIT_CARD,
    PAYMENT_TRANSFER,
    PAYMENT_CUSTOMER_CREDIT,
}


class Order(db.Model):
    """
    Quotation, sale, cancelled sale or returned sale.

    LIFECYCLE:
    - QUOTE -> (confirm) -> COMPLETED
    - COMPLETED -> (cancel) -> CANCELLED
    - COMPLETED -> (full return) -> RETURNED
    - COMPLETED -> (partial return) -> COMPLETED, annotated in notes

    A QUOTE never touches stock. Reversals never edit past movements; they
    append new ones referencing this order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("business_id", "number", name="uq_orders_business_number"),
        db.Index("ix_orders_business_status_created", "business_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    # Human-readable number (e.g., "SO-2026-00001", "QT-2026-00001")
    number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    till_id = db.Column(db.Integer, db.ForeignKey("tills.id"), nullable=True, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cash_shifts.id"), nullable=True, index=True)
    # Location stock was drawn from; reversals put it back here
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    created_by_id = db.Column(db.Integer, nullable=False)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=True)  # single method or MIXED
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Customer credit bookkeeping
    credit_used_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_released_cents = db.Column(db.Integer, nullable=False, default=0)
    returned_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    cancel_reason = db.Column(db.String(500), nullable=True)
    cancelled_by_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)  # quotes only
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    shift = db.relationship("CashShift", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "number": self.number,
            "status": self.status,
            "customer_id": self.customer_id,
            "till_id": self.till_id,
            "shift_id": self.shift_id,
            "location_id": self.location_id,
            "created_by_id": self.created_by_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "credit_used_cents": self.credit_used_cents,
            "credit_released_cents": self.credit_released_cents,
            "returned_amount_cents": self.returned_amount_cents,
            "notes": self.notes,
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "cancel_reason": self.cancel_reason,
            "cancelled_by_id": self.cancelled_by_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class OrderLine(db.Model):
    """
    One product line of an order.

    unit_cost_cents, tax_rate_bps and tax_included are snapshots taken when
    the line was priced; they never follow later catalog changes.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity_returned <= quantity", name="ck_order_lines_returned_le_sold"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    quantity_returned = db.Column(db.Integer, nullable=False, default=0)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)  # per unit
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_included = db.Column(db.Boolean, nullable=False, default=True)
    stock_tracked = db.Column(db.Boolean, nullable=False, default=True)

    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)  # after discount
    total_cents = db.Column(db.Integer, nullable=False)  # subtotal plus any added tax

    order = db.relationship(
        "Order",
        backref=db.backref("lines", lazy=True, order_by="OrderLine.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "quantity_returned": self.quantity_returned,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_included": self.tax_included,
            "stock_tracked": self.stock_tracked,
            "tax_cents": self.tax_cents,
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
        }


class Payment(db.Model):
    """One tender applied to an order; mixed tender means several rows."""
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "Order",
        backref=db.backref("payments", lazy=True, order_by="Payment.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }
