# Overview: Material request lifecycle: creation, item edits, status transitions and reads.

"""
Material request state machine.

LIFECYCLE:
1. Draft: created with at least one item
2. Submitted: waiting for approval
3. Approved: approved_by_user_id recorded
4. ItemsReceived: one Income transaction per item is written
5. ItemsInstalled
6. Completed (terminal)
Cancelled is reachable from every non-terminal state; Rejected only from
Submitted. Both are terminal.

Every mutation is one unit of work over the whole aggregate: the request
row, its items, a history row per status change and any inventory
transactions commit together or not at all. Audit and notification sinks
run after the outcome is known and can never undo it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation as DecimalInvalidOperation
from typing import Callable

from flask import current_app

from ..errors import (
    AccessDeniedError,
    FulfillmentError,
    InvalidOperationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    AccessLevel,
    InventoryTransaction,
    Request,
    RequestHistory,
    RequestItem,
    RequestStatus,
    User,
)
from ..time_utils import utcnow
from .audit_service import record_audit
from .concurrency import lock_for_update, run_unit_of_work
from .directory_service import get_active_user, get_product, get_warehouse, is_admin_role, users_with_roles
from .notification_service import notify_request, notify_transactions
from .transaction_effects import apply_transition_effects
from .warehouse_access_service import get_accessible_warehouse_ids, require_warehouse_access


ENTITY_TYPE = "Request"

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
ITEM_DESCRIPTION_MAX_LENGTH = 500

REQUEST_TRANSITIONS: dict[str, frozenset[str]] = {
    RequestStatus.DRAFT: frozenset({RequestStatus.SUBMITTED, RequestStatus.CANCELLED}),
    RequestStatus.SUBMITTED: frozenset({
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.APPROVED: frozenset({RequestStatus.ITEMS_RECEIVED, RequestStatus.CANCELLED}),
    RequestStatus.ITEMS_RECEIVED: frozenset({RequestStatus.ITEMS_INSTALLED, RequestStatus.CANCELLED}),
    RequestStatus.ITEMS_INSTALLED: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

ITEM_EDITABLE_STATUSES = (RequestStatus.DRAFT,)


def can_transition(current_status: str, target_status: str) -> bool:
    return target_status in REQUEST_TRANSITIONS.get(current_status, frozenset())


@dataclass
class RequestPage:
    items: list[Request]
    total: int
    page: int
    page_size: int

    def to_dict(self) -> dict:
        return {
            "items": [request.to_dict() for request in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }


@dataclass
class _Outcome:
    """Collected inside a unit of work for audit details and post-commit notifications."""
    previous_status: str | None = None
    new_status: str | None = None
    transactions: list[InventoryTransaction] = field(default_factory=list)

    def details(self) -> dict:
        return {"previous_status": self.previous_status, "new_status": self.new_status}


# =============================================================================
# Helpers
# =============================================================================

def _resolve_actor(actor_user_id: str) -> User:
    actor = get_active_user(actor_user_id)
    if actor is None:
        raise AccessDeniedError(f"User {actor_user_id} is unknown or inactive")
    return actor


def _load_request(request_id: int, *, lock: bool = False) -> Request:
    query = db.session.query(Request).filter_by(id=request_id)
    if lock:
        query = lock_for_update(query)
    request = query.first()
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request


def _require_request_access(actor: User, request: Request, level: str) -> None:
    if is_admin_role(actor.role):
        return
    require_warehouse_access(actor.id, request.warehouse_ids, level)


def _validate_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required")
    title = title.strip()
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters"
        )
    return title


def _validate_description(description) -> str | None:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be a string")
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters")
    return description


def _build_item(data) -> RequestItem:
    """Validate one item payload and return an unattached RequestItem."""
    if not isinstance(data, dict):
        raise ValidationError("Each item must be an object")

    quantity = data.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Item quantity must be a positive integer")

    product_id = data.get("product_id")
    product = get_product(product_id) if isinstance(product_id, int) else None
    if product is None or not product.is_active:
        raise ValidationError(f"Product {product_id} not found or inactive")

    warehouse_id = data.get("warehouse_id")
    warehouse = get_warehouse(warehouse_id) if isinstance(warehouse_id, int) else None
    if warehouse is None or not warehouse.is_active:
        raise ValidationError(f"Warehouse {warehouse_id} not found or inactive")

    location_id = data.get("location_id")
    if location_id is not None and (isinstance(location_id, bool) or not isinstance(location_id, int)):
        raise ValidationError("location_id must be an integer")

    description = data.get("description")
    if description is not None and (
        not isinstance(description, str) or len(description) > ITEM_DESCRIPTION_MAX_LENGTH
    ):
        raise ValidationError(
            f"Item description must be a string of at most {ITEM_DESCRIPTION_MAX_LENGTH} characters"
        )

    unit_price = data.get("unit_price")
    if unit_price is not None:
        try:
            unit_price = Decimal(str(unit_price))
        except (DecimalInvalidOperation, ValueError):
            raise ValidationError("unit_price must be a number")
        if not unit_price.is_finite() or unit_price < 0:
            raise ValidationError("unit_price must be a non-negative number")

    return RequestItem(
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        location_id=location_id,
        description=description,
        unit_price=unit_price,
    )


def _append_history(
    request: Request,
    previous_status: str | None,
    new_status: str,
    actor_user_id: str,
    comment: str | None,
) -> RequestHistory:
    entry = RequestHistory(
        previous_status=previous_status,
        new_status=new_status,
        actor_user_id=actor_user_id,
        changed_at=utcnow(),
        comment=comment,
    )
    request.history.append(entry)
    return entry


def _run_audited(
    action: str,
    action_type: str,
    request_id: int | None,
    actor_user_id: str,
    func: Callable,
    outcome: _Outcome,
    *,
    is_cancelled: Callable[[], bool] | None = None,
):
    try:
        result = run_unit_of_work(func, is_cancelled=is_cancelled)
    except Exception as exc:
        message = exc.message if isinstance(exc, FulfillmentError) else str(exc)
        # Rolled back: the status did not move.
        outcome.new_status = outcome.previous_status
        record_audit(
            entity_type=ENTITY_TYPE,
            entity_id=request_id,
            action=action,
            action_type=action_type,
            user_id=actor_user_id,
            details=outcome.details(),
            success=False,
            error_message=message,
        )
        raise

    entity_id = request_id if request_id is not None else getattr(result, "id", None)
    record_audit(
        entity_type=ENTITY_TYPE,
        entity_id=entity_id,
        action=action,
        action_type=action_type,
        user_id=actor_user_id,
        details=outcome.details(),
        success=True,
    )
    return result


# =============================================================================
# Create / items
# =============================================================================

def create_request(
    title: str,
    description: str | None,
    items: list[dict],
    actor_user_id: str,
    *,
    is_cancelled: Callable[[], bool] | None = None,
) -> Request:
    """
    Create a request in Draft with its items and the initial history row.

    Raises:
        ValidationError: bad title/description, no items, bad item
        AccessDeniedError: unknown actor, or no Full access to an item's warehouse
    """
    outcome = _Outcome(new_status=RequestStatus.DRAFT)

    def _op():
        actor = _resolve_actor(actor_user_id)
        clean_title = _validate_title(title)
        clean_description = _validate_description(description)

        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("A request needs at least one item")
        built = [_build_item(data) for data in items]

        if not is_admin_role(actor.role):
            require_warehouse_access(actor.id, {item.warehouse_id for item in built}, AccessLevel.FULL)

        now = utcnow()
        request = Request(
            title=clean_title,
            description=clean_description,
            status=RequestStatus.DRAFT,
            created_by_user_id=actor.id,
            created_at=now,
            updated_at=now,
        )
        for item in built:
            request.items.append(item)
        _append_history(request, None, RequestStatus.DRAFT, actor.id, "Request created")

        db.session.add(request)
        db.session.flush()
        return request

    request = _run_audited("REQUEST_CREATE", "CREATE", None, actor_user_id, _op, outcome, is_cancelled=is_cancelled)
    current_app.logger.info("Request %s created by %s", request.id, actor_user_id)
    return request


def _items_editable(status: str) -> bool:
    if status in ITEM_EDITABLE_STATUSES:
        return True
    return status == RequestStatus.SUBMITTED and bool(
        current_app.config.get("REQUEST_ITEMS_EDITABLE_WHEN_SUBMITTED", True)
    )


def add_request_item(
    request_id: int,
    item: dict,
    actor_user_id: str,
    *,
    is_cancelled: Callable[[], bool] | None = None,
) -> RequestItem:
    outcome = _Outcome()

    def _op():
        actor = _resolve_actor(actor_user_id)
        request = _load_request(request_id, lock=True)
        outcome.previous_status = outcome.new_status = request.status

        _require_request_access(actor, request, AccessLevel.FULL)

        if not _items_editable(request.status):
            raise InvalidOperationError(f"Cannot add items to a request in {request.status} status")

        new_item = _build_item(item)
        if not is_admin_role(actor.role):
            require_warehouse_access(actor.id, {new_item.warehouse_id}, AccessLevel.FULL)

        request.items.append(new_item)
        request.updated_at = utcnow()
        db.session.flush()
        return new_item

    return _run_audited("REQUEST_ITEM_ADD", "UPDATE", request_id, actor_user_id, _op, outcome, is_cancelled=is_cancelled)


def remove_request_item(
    request_id: int,
    item_id: int,
    actor_user_id: str,
    *,
    is_cancelled: Callable[[], bool] | None = None,
) -> None:
    outcome = _Outcome()

    def _op():
        actor = _resolve_actor(actor_user_id)
        request = _load_request(request_id, lock=True)
        outcome.previous_status = outcome.new_status = request.status

        _require_request_access(actor, request, AccessLevel.FULL)

        if not _items_editable(request.status):
            raise InvalidOperationError(f"Cannot remove items from a request in {request.status} status")

        target = next((item for item in request.items if item.id == item_id), None)
        if target is None:
            raise NotFoundError(f"Item {item_id} not found on request {request_id}")
        if len(request.items) <= 1:
            raise InvalidOperationError("Cannot remove the last item of a request")

        request.items.remove(target)
        request.updated_at = utcnow()
        db.session.flush()

    _run_audited("REQUEST_ITEM_REMOVE", "DELETE", request_id, actor_user_id, _op, outcome, is_cancelled=is_cancelled)


# =============================================================================
# Transitions
# =============================================================================

def _transition(
    request_id: int,
    target_status: str,
    actor_user_id: str,
    action: str,
    comment: str | None,
    is_cancelled: Callable[[], bool] | None,
) -> Request:
    outcome = _Outcome(new_status=target_status)

    def _op():
        actor = _resolve_actor(actor_user_id)
        request = _load_request(request_id, lock=True)
        previous = request.status
        outcome.previous_status = previous

        _require_request_access(actor, request, AccessLevel.FULL)

        if not can_transition(previous, target_status):
            raise InvalidTransitionError(previous, target_status)

        request.status = target_status
        request.updated_at = utcnow()
        if target_status == RequestStatus.APPROVED:
            request.approved_by_user_id = actor.id
        _append_history(request, previous, target_status, actor.id, comment)

        outcome.transactions = apply_transition_effects(request, target_status)
        db.session.flush()
        return request

    request = _run_audited(action, "UPDATE", request_id, actor_user_id, _op, outcome, is_cancelled=is_cancelled)
    current_app.logger.info(
        "Request %s: %s -> %s by %s", request_id, outcome.previous_status, target_status, actor_user_id
    )
    _notify_transition(request, outcome)
    return request


def _notify_transition(request: Request, outcome: _Outcome) -> None:
    title = f"Request #{request.id} {outcome.new_status}"
    message = f"Request \"{request.title}\" moved from {outcome.previous_status} to {outcome.new_status}"
    recipients = [request.created_by_user_id]
    if outcome.new_status == RequestStatus.SUBMITTED:
        approver_roles = current_app.config.get("REQUEST_APPROVER_ROLES", ())
        recipients.extend(user.id for user in users_with_roles(approver_roles))
    notify_request(request, title, message, recipients)
    if outcome.transactions:
        notify_transactions(outcome.transactions)


def submit_request(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(request_id, RequestStatus.SUBMITTED, actor_user_id, "REQUEST_SUBMIT", comment, is_cancelled)


def approve_request(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(request_id, RequestStatus.APPROVED, actor_user_id, "REQUEST_APPROVE", comment, is_cancelled)


def mark_items_received(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(
        request_id,
        RequestStatus.ITEMS_RECEIVED,
        actor_user_id,
        "REQUEST_RECEIVE",
        comment or "Items received",
        is_cancelled,
    )


def mark_items_installed(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(
        request_id,
        RequestStatus.ITEMS_INSTALLED,
        actor_user_id,
        "REQUEST_INSTALL",
        comment or "Items installed",
        is_cancelled,
    )


def complete_request(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(request_id, RequestStatus.COMPLETED, actor_user_id, "REQUEST_COMPLETE", comment, is_cancelled)


def cancel_request(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(request_id, RequestStatus.CANCELLED, actor_user_id, "REQUEST_CANCEL", comment, is_cancelled)


def reject_request(request_id: int, actor_user_id: str, comment: str | None = None, is_cancelled=None) -> Request:
    return _transition(request_id, RequestStatus.REJECTED, actor_user_id, "REQUEST_REJECT", comment, is_cancelled)


TRANSITION_OPERATIONS = {
    RequestStatus.SUBMITTED: submit_request,
    RequestStatus.APPROVED: approve_request,
    RequestStatus.ITEMS_RECEIVED: mark_items_received,
    RequestStatus.ITEMS_INSTALLED: mark_items_installed,
    RequestStatus.COMPLETED: complete_request,
    RequestStatus.CANCELLED: cancel_request,
    RequestStatus.REJECTED: reject_request,
}


# =============================================================================
# Reads
# =============================================================================

def get_request(request_id: int, actor_user_id: str) -> Request:
    actor = _resolve_actor(actor_user_id)
    request = _load_request(request_id)
    _require_request_access(actor, request, AccessLevel.READ_ONLY)
    return request


def get_request_history(request_id: int, actor_user_id: str) -> list[RequestHistory]:
    return list(get_request(request_id, actor_user_id).history)


def list_request_transactions(request_id: int, actor_user_id: str) -> list[InventoryTransaction]:
    request = get_request(request_id, actor_user_id)
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.request_id == request.id)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


def list_requests(
    actor_user_id: str,
    status: str | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> RequestPage:
    """
    Requests the actor can see, newest first.

    A request is visible when every one of its items sits in a warehouse the
    actor can access. Admin-equivalent roles see everything.
    """
    actor = _resolve_actor(actor_user_id)

    if status is not None and status not in RequestStatus.ALL:
        raise ValidationError(f"Unknown status {status!r}")

    max_page_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    if page_size is None:
        page_size = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if not 1 <= page_size <= max_page_size:
        raise ValidationError(f"page_size must be between 1 and {max_page_size}")

    query = db.session.query(Request)
    if not is_admin_role(actor.role):
        accessible = get_accessible_warehouse_ids(actor.id, actor.role)
        query = query.filter(
            Request.items.any(),
            ~Request.items.any(~RequestItem.warehouse_id.in_(accessible)),
        )
    if status is not None:
        query = query.filter(Request.status == status)

    total = query.count()
    rows = (
        query.order_by(Request.created_at.desc(), Request.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return RequestPage(items=rows, total=total, page=page, page_size=page_size)
