from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class Notification(db.Model):
    """
    User-facing notification stored by the database-backed notification sink.
    Delivery (push, websockets) happens elsewhere and reads from this table.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="INFO")        # INFO, SUCCESS, WARNING, ERROR
    category = db.Column(db.String(32), nullable=False, default="SYSTEM")  # REQUEST, TRANSACTION, SYSTEM
    action_url = db.Column(db.String(255), nullable=True)

    request_id = db.Column(db.Integer, db.ForeignKey("requests.id"), nullable=True, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "category": self.category,
            "action_url": self.action_url,
            "request_id": self.request_id,
            "transaction_id": self.transaction_id,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
