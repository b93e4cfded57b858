from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z

DELIVERY_ASSIGNED = "ASSIGNED"
DELIVERY_IN_TRANSIT = "IN_TRANSIT"
DELIVERY_DELIVERED = "DELIVERED"
DELIVERY_FAILED = "FAILED"
DELIVERY_RESCHEDULED = "RESCHEDULED"

# DELIVERED and FAILED are terminal
DELIVERY_TRANSITIONS = {
    DELIVERY_ASSIGNED: {DELIVERY_IN_TRANSIT, DELIVERY_FAILED, DELIVERY_RESCHEDULED},
    DELIVERY_IN_TRANSIT: {DELIVERY_DELIVERED, DELIVERY_FAILED, DELIVERY_RESCHEDULED},
    DELIVERY_RESCHEDULED: {DELIVERY_ASSIGNED, DELIVERY_IN_TRANSIT},
    DELIVERY_DELIVERED: set(),
    DELIVERY_FAILED: set(),
}


class Delivery(db.Model):
    """Home delivery of a completed order. One per order."""
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_deliveries_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=DELIVERY_ASSIGNED, index=True)
    driver_id = db.Column(db.Integer, nullable=True)
    address = db.Column(db.String(500), nullable=False)
    scheduled_for = db.Column(db.DateTime(timezone=True), nullable=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failure_reason = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("delivery", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "order_id": self.order_id,
            "status": self.status,
            "driver_id": self.driver_id,
            "address": self.address,
            "scheduled_for": to_utc_z(self.scheduled_for) if self.scheduled_for else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "failure_reason": self.failure_reason,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }
