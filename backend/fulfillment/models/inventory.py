from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class TransactionType:
    """Inventory movement kinds. Chosen by the producing transition, never by the caller."""
    INCOME = "Income"
    OUTCOME = "Outcome"
    INSTALL = "Install"

    ALL = (INCOME, OUTCOME, INSTALL)


class InventoryTransaction(db.Model):
    """
    Stock movement produced as a side effect of a request transition.

    WHY request_id: every movement created by the fulfillment workflow must be
    traceable back to the request that caused it.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("type IN ('Income', 'Outcome', 'Install')", name="type_valid"),
        db.Index("ix_inventory_transactions_warehouse_date", "warehouse_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Business time
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=True, index=True)
    location_id = db.Column(db.Integer, nullable=True)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    total_price = db.Column(db.Numeric(14, 2), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    # System time
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    request = db.relationship("Request", backref=db.backref("transactions", lazy=True, order_by="InventoryTransaction.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": self.quantity,
            "date": to_utc_z(self.date),
            "request_id": self.request_id,
            "location_id": self.location_id,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "total_price": str(self.total_price) if self.total_price is not None else None,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
