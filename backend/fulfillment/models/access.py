from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class AccessLevel:
    """Per-warehouse access levels, ordered from weakest to strongest."""
    READ_ONLY = "ReadOnly"
    FULL = "Full"

    ALL = (READ_ONLY, FULL)
    RANK = {READ_ONLY: 1, FULL: 2}

    @classmethod
    def satisfies(cls, granted: str | None, required: str) -> bool:
        if granted is None:
            return False
        return cls.RANK.get(granted, 0) >= cls.RANK[required]


class UserWarehouse(db.Model):
    """
    Assignment of a user to a warehouse with an access level.

    INVARIANTS:
    - One row per (user_id, warehouse_id).
    - At most one row per user has is_default = true. The partial unique
      index backs up the service-level "clear all, then set one" logic.
    - A user with any rows has exactly one default (maintained by
      warehouse_access_service, including on removal).
    """
    __tablename__ = "user_warehouses"
    __table_args__ = (
        db.UniqueConstraint("user_id", "warehouse_id", name="uq_user_warehouses_user_warehouse"),
        db.Index(
            "uq_user_warehouses_one_default",
            "user_id",
            unique=True,
            sqlite_where=db.text("is_default = 1"),
            postgresql_where=db.text("is_default"),
        ),
        db.CheckConstraint("access_level IN ('ReadOnly', 'Full')", name="access_level_valid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    access_level = db.Column(db.String(20), nullable=False, default=AccessLevel.FULL)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("warehouse_assignments", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("user_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "access_level": self.access_level,
            "is_default": self.is_default,
            "assigned_at": to_utc_z(self.assigned_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
