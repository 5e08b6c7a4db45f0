# Overview: Audit sink for request and warehouse-access operations.

"""
Audit trail for the fulfillment core.

Services call record_audit() once per mutating attempt, after the unit of
work has committed or rolled back. The sink writes in its own transaction,
so a failure here never affects the operation being audited; it is logged
and suppressed.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow


ACTION_TYPES = ("CREATE", "READ", "UPDATE", "DELETE", "OTHER")
SEVERITIES = ("INFO", "WARNING", "ERROR")


class DatabaseAuditSink:
    """Default sink: one append-only AuditLog row per call."""

    def log_detailed_change(
        self,
        entity_type: str,
        entity_id,
        action: str,
        action_type: str,
        details: dict | None = None,
        trace_id: str | None = None,
        description: str | None = None,
        severity: str = "INFO",
        success: bool = True,
        error_message: str | None = None,
        user_id: str | None = None,
    ) -> AuditLog:
        if action_type not in ACTION_TYPES:
            action_type = "OTHER"
        if severity not in SEVERITIES:
            severity = "INFO"

        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            action_type=action_type,
            user_id=user_id,
            details=details,
            trace_id=trace_id,
            description=description,
            severity=severity,
            is_success=success,
            error_message=error_message,
            occurred_at=utcnow(),
        )
        try:
            db.session.add(entry)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return entry


def get_audit_sink():
    return current_app.extensions.get("audit_sink")


def record_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    action_type: str,
    user_id: str | None,
    details: dict | None = None,
    description: str | None = None,
    success: bool = True,
    error_message: str | None = None,
) -> None:
    """Best-effort audit write. Never raises."""
    sink = get_audit_sink()
    if sink is None:
        return
    try:
        sink.log_detailed_change(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            action_type=action_type,
            details=details,
            trace_id=None,
            description=description,
            severity="INFO" if success else "WARNING",
            success=success,
            error_message=error_message,
            user_id=user_id,
        )
    except Exception:
        current_app.logger.exception(
            "Audit sink failed for %s %s (%s)", entity_type, entity_id, action
        )

