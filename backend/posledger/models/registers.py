from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z

SHIFT_STATUS_OPEN = "OPEN"
SHIFT_STATUS_CLOSED = "CLOSED"


class Till(db.Model):
    """
    Physical cash register / POS terminal.

    DESIGN: Tills are persistent (not deleted when inactive).
    Each till can have many shifts over time, at most one open.
    """
    __tablename__ = "tills"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_tills_business_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CashShift(db.Model):
    """
    One operator's working period on one till.

    LIFECYCLE:
    - OPEN: accepting sales
    - CLOSED: counted, expected and variance frozen

    IMMUTABLE: Once closed, a shift is history and is never modified.
    The partial unique indexes back the "one open shift per till" and
    "one open shift per operator" rules at the database level.
    """
    __tablename__ = "cash_shifts"
    __table_args__ = (
        db.Index(
            "uq_cash_shifts_open_till",
            "till_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        db.Index(
            "uq_cash_shifts_open_operator",
            "operator_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    till_id = db.Column(db.Integer, db.ForeignKey("tills.id"), nullable=False, index=True)
    operator_id = db.Column(db.Integer, nullable=False, index=True)

    # Cash tracking (all amounts in cents)
    opening_float_cents = db.Column(db.Integer, nullable=False, default=0)
    counted_cents = db.Column(db.Integer, nullable=True)
    expected_cents = db.Column(db.Integer, nullable=True)  # float + cash sales - change
    variance_cents = db.Column(db.Integer, nullable=True)  # counted - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    till = db.relationship("Till", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status(self) -> str:
        return SHIFT_STATUS_OPEN if self.closed_at is None else SHIFT_STATUS_CLOSED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "till_id": self.till_id,
            "operator_id": self.operator_id,
            "status": self.status,
            "opening_float_cents": self.opening_float_cents,
            "counted_cents": self.counted_cents,
            "expected_cents": self.expected_cents,
            "variance_cents": self.variance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_id": self.closed_by_id,
            "notes": self.notes,
        }
