from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class RequestStatus:
    """
    Material request lifecycle states.

    Draft is the only initial state. Completed, Cancelled and Rejected are
    terminal. Allowed moves live in request_service.REQUEST_TRANSITIONS.
    """
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    ITEMS_RECEIVED = "ItemsReceived"
    ITEMS_INSTALLED = "ItemsInstalled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"

    ALL = (
        DRAFT,
        SUBMITTED,
        APPROVED,
        ITEMS_RECEIVED,
        ITEMS_INSTALLED,
        COMPLETED,
        CANCELLED,
        REJECTED,
    )
    TERMINAL = frozenset({COMPLETED, CANCELLED, REJECTED})


class Request(db.Model):
    """
    Material request aggregate: the request row, its items and its history
    are loaded, validated and committed together.

    WHY version_id: two transitions racing from the same source status must
    not both win. The ORM adds "AND version_id = ?" to every UPDATE and the
    loser gets StaleDataError, reported as a concurrency conflict.
    """
    __tablename__ = "requests"
    __table_args__ = (
        db.Index("ix_requests_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.DRAFT, index=True)

    created_by_user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    approved_by_user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "RequestItem",
        back_populates="request",
        order_by="RequestItem.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history = db.relationship(
        "RequestHistory",
        back_populates="request",
        order_by="RequestHistory.id",
        lazy="selectin",
    )
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Request id={self.id} status={self.status}>"

    @property
    def warehouse_ids(self) -> set[int]:
        return {item.warehouse_id for item in self.items}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }

    def to_detail_dict(self) -> dict:
        return {
            **self.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "history": [entry.to_dict() for entry in self.history],
        }


class RequestItem(db.Model):
    __tablename__ = "request_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    location_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(500), nullable=True)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    request = db.relationship("Request", back_populates="items")
    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")

    @property
    def total_price(self) -> Decimal | None:
        if self.unit_price is None:
            return None
        return Decimal(self.unit_price) * self.quantity

    def to_dict(self) -> dict:
        total = self.total_price
        return {
            "id": self.id,
            "request_id": self.request_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "location_id": self.location_id,
            "description": self.description,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "total_price": str(total) if total is not None else None,
        }


class RequestHistory(db.Model):
    """
    Status change trail for a request.

    IMMUTABLE: Never update or delete. One row per successful transition,
    plus the creation row whose previous_status is NULL. Written in the same
    transaction as the status change it records.
    """
    __tablename__ = "request_history"
    __table_args__ = (
        db.Index("ix_request_history_request_changed", "request_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=False, index=True)

    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=False)

    actor_user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    comment = db.Column(db.String(1000), nullable=True)

    request = db.relationship("Request", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "actor_user_id": self.actor_user_id,
            "changed_at": to_utc_z(self.changed_at),
            "comment": self.comment,
        }
