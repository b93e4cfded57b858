from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class Business(db.Model):
    """
    Tenant boundary.

    MULTI-TENANT: every catalog row, order, purchase, movement and document
    sequence carries business_id. A reference that resolves to another
    business is treated exactly like a missing one.
    """
    __tablename__ = "businesses"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_businesses_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
