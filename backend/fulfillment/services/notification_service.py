# Overview: Notification sink for request status changes and request-driven stock movements.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notification, InventoryTransaction, Request
from ..time_utils import utcnow


class DatabaseNotificationSink:
    """
    Default sink: stores notifications for later delivery.

    Each trigger commits on its own. Callers only invoke the sink after the
    request unit of work has committed.
    """

    def _store(self, **fields) -> Notification:
        notification = Notification(created_at=utcnow(), **fields)
        try:
            db.session.add(notification)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return notification

    def trigger_system_notification(
        self,
        title: str,
        message: str,
        user_id: str,
        action_url: str | None = None,
    ) -> Notification:
        return self._store(
            user_id=user_id,
            title=title,
            message=message,
            type="INFO",
            category="SYSTEM",
            action_url=action_url,
        )

    def trigger_transaction_notification(self, transaction: InventoryTransaction) -> Notification:
        return self._store(
            user_id=transaction.user_id,
            title=f"{transaction.type} recorded",
            message=(
                f"{transaction.quantity} x product {transaction.product_id} "
                f"at warehouse {transaction.warehouse_id}"
            ),
            type="SUCCESS",
            category="TRANSACTION",
            request_id=transaction.request_id,
            transaction_id=transaction.id,
        )

    def trigger_request_notification(
        self,
        request: Request,
        title: str,
        message: str,
        user_id: str,
    ) -> Notification:
        return self._store(
            user_id=user_id,
            title=title,
            message=message,
            type="INFO",
            category="REQUEST",
            action_url=f"/requests/{request.id}",
            request_id=request.id,
        )


def get_notification_sink():
    return current_app.extensions.get("notification_sink")


def _safe_call(label: str, func, *args, **kwargs) -> None:
    try:
        func(*args, **kwargs)
    except Exception:
        current_app.logger.exception("Notification sink failed (%s)", label)


def notify_request(request: Request, title: str, message: str, user_ids) -> None:
    """Best-effort request notification to each distinct user id."""
    sink = get_notification_sink()
    if sink is None:
        return
    seen = set()
    for user_id in user_ids:
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        _safe_call(
            f"request {request.id} -> {user_id}",
            sink.trigger_request_notification,
            request,
            title,
            message,
            user_id,
        )


def notify_transactions(transactions) -> None:
    sink = get_notification_sink()
    if sink is None:
        return
    for txn in transactions:
        _safe_call(f"transaction {txn.id}", sink.trigger_transaction_notification, txn)


def notify_system(title: str, message: str, user_id: str, action_url: str | None = None) -> None:
    sink = get_notification_sink()
    if sink is None:
        return
    _safe_call(f"system -> {user_id}", sink.trigger_system_notification, title, message, user_id, action_url)

