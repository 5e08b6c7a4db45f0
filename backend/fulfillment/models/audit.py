from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Structured change record written by the database-backed audit sink.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    Written after (and outside) the unit of work it describes, so a failed
    audit write can never roll back a committed transition.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_logs_user_occurred", "user_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(64), nullable=False)   # Request, UserWarehouse
    entity_id = db.Column(db.String(64), nullable=True)      # NULL when the entity was never created
    action = db.Column(db.String(64), nullable=False)        # e.g. REQUEST_SUBMIT, WAREHOUSE_ASSIGN
    action_type = db.Column(db.String(16), nullable=False)   # CREATE, READ, UPDATE, DELETE, OTHER

    user_id = db.Column(db.String(64), nullable=True, index=True)

    details = db.Column(db.JSON, nullable=True)
    trace_id = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(500), nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="INFO")

    is_success = db.Column(db.Boolean, nullable=False, index=True)
    error_message = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "action_type": self.action_type,
            "user_id": self.user_id,
            "details": self.details,
            "trace_id": self.trace_id,
            "description": self.description,
            "severity": self.severity,
            "is_success": self.is_success,
            "error_message": self.error_message,
            "occurred_at": to_utc_z(self.occurred_at),
        }
