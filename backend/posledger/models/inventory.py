from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from posledger.time_utils import to_utc_z

"""
posledger Stock Ledger Invariants (authoritative)

- StockBalance.quantity is never negative.
- One StockBalance per (product, location), created lazily on first movement.
- StockMovement rows are append-only: no updates, no deletes.
- Replaying movements in insertion order reproduces the balance:
    INBOUND, TRANSFER_IN, RETURN   -> +quantity
    OUTBOUND, TRANSFER_OUT         -> -quantity
    ADJUSTMENT                     -> quantity_after - quantity_before
"""

MOVEMENT_INBOUND = "INBOUND"
MOVEMENT_OUTBOUND = "OUTBOUND"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_RETURN = "RETURN"

MOVEMENT_TYPES = {
    MOVEMENT_INBOUND,
    MOVEMENT_OUTBOUND,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_RETURN,
}

# Movement types that take stock out of a location
DECREMENTING_TYPES = {MOVEMENT_OUTBOUND, MOVEMENT_TRANSFER_OUT}

REF_ORDER = "ORDER"
REF_QUOTE_CONFIRMATION = "QUOTE_CONFIRMATION"
REF_CANCELLATION = "CANCELLATION"
REF_RETURN = "RETURN"
REF_PURCHASE = "PURCHASE"
REF_TRANSFER = "TRANSFER"
REF_MANUAL = "MANUAL"


class StockBalance(db.Model):
    """Current quantity of one product at one location."""
    __tablename__ = "stock_balances"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_stock_balances_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_balances_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("Location")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity < (self.product.reorder_threshold or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "reorder_threshold": self.product.reorder_threshold if self.product else None,
            "is_low_stock": self.is_low_stock if self.product else None,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Immutable record of one inventory-affecting event.

    quantity is always positive; the direction comes from movement_type.
    quantity_before / quantity_after are the balance around this event at
    location_id, making every row independently auditable.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_location_id", "product_id", "location_id", "id"),
        db.Index("ix_stock_movements_business_created", "business_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    # Counterpart location for transfer legs
    counterpart_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")
    location = db.relationship("Location", foreign_keys=[location_id])

    @property
    def signed_quantity(self) -> int:
        if self.movement_type == MOVEMENT_ADJUSTMENT:
            return self.quantity_after - self.quantity_before
        if self.movement_type in DECREMENTING_TYPES:
            return -self.quantity
        return self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "counterpart_location_id": self.counterpart_location_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "unit_cost_cents": self.unit_cost_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


class ImmutableMovementError(RuntimeError):
    """Raised when code attempts to rewrite ledger history."""


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"StockMovement {target.id} is append-only")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"StockMovement {target.id} is append-only")
