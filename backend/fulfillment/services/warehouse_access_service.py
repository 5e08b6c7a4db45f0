# Overview: Per-user warehouse assignments, default warehouse bookkeeping and access checks.

"""
Warehouse access control.

INVARIANTS:
- One assignment per (user, warehouse).
- A user with at least one assignment has exactly one default. Assigning a
  first warehouse makes it the default; removing the default hands it to the
  first remaining assignment by id; the last assignment cannot be removed.
- Default changes run "clear all, then set one" inside one unit of work with
  the user's directory row locked. The partial unique index on
  (user_id) WHERE is_default catches racing writers on backends without row
  locks; the violation surfaces as ConcurrencyConflictError.

Access decisions are never cached; every check reads the current rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from flask import current_app

from ..errors import (
    AccessDeniedError,
    DuplicateAssignmentError,
    FulfillmentError,
    InvalidWarehouseError,
    LastAssignmentError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import AccessLevel, User, UserWarehouse, Warehouse
from .audit_service import record_audit
from .concurrency import lock_for_update, run_unit_of_work
from .directory_service import active_warehouse_ids, get_active_user, get_user, get_warehouse, is_admin_role
from .notification_service import notify_system


ENTITY_TYPE = "UserWarehouse"

BULK_ASSIGNED = "assigned"
BULK_ALREADY_ASSIGNED = "already_assigned"
BULK_INVALID = "invalid"
BULK_FAILED = "failed"


@dataclass(frozen=True)
class WarehouseAccess:
    """Result of check_warehouse_access. access_level is None when has_access is False."""
    has_access: bool
    access_level: str | None


@dataclass
class BulkAssignOutcome:
    user_id: str
    outcome: str
    error: str | None = None
    code: str | None = None

    def to_dict(self) -> dict:
        payload = {"user_id": self.user_id, "outcome": self.outcome}
        if self.error:
            payload["error"] = self.error
        if self.code:
            payload["code"] = self.code
        return payload


def _validate_access_level(access_level: str) -> None:
    if access_level not in AccessLevel.ALL:
        raise ValidationError(
            f"Invalid access level {access_level!r}; expected one of {', '.join(AccessLevel.ALL)}"
        )


def _get_assignment(user_id: str, warehouse_id: int) -> UserWarehouse | None:
    return (
        db.session.query(UserWarehouse)
        .filter_by(user_id=user_id, warehouse_id=warehouse_id)
        .first()
    )


def _lock_user(user_id: str) -> User | None:
    return lock_for_update(db.session.query(User).filter_by(id=user_id)).first()


def _clear_defaults(user_id: str, *, keep_id: int | None = None) -> None:
    rows = (
        db.session.query(UserWarehouse)
        .filter(UserWarehouse.user_id == user_id, UserWarehouse.is_default.is_(True))
        .all()
    )
    for row in rows:
        if keep_id is not None and row.id == keep_id:
            continue
        row.is_default = False
    # Cleared rows must reach the database before a new default is written.
    db.session.flush()


def _run_audited(
    action: str,
    action_type: str,
    user_id: str,
    warehouse_id: int | None,
    actor_user_id: str | None,
    func: Callable,
    *,
    details: dict | None = None,
    is_cancelled: Callable[[], bool] | None = None,
):
    entity_id = f"{user_id}:{warehouse_id}" if warehouse_id is not None else user_id
    try:
        result = run_unit_of_work(func, is_cancelled=is_cancelled)
    except Exception as exc:
        message = exc.message if isinstance(exc, FulfillmentError) else str(exc)
        record_audit(
            entity_type=ENTITY_TYPE,
            entity_id=entity_id,
            action=action,
            action_type=action_type,
            user_id=actor_user_id,
            details=details,
            success=False,
            error_message=message,
        )
        raise

    record_audit(
        entity_type=ENTITY_TYPE,
        entity_id=entity_id,
        action=action,
        action_type=action_type,
        user_id=actor_user_id,
        details=details,
        success=True,
    )
    current_app.logger.info("%s %s by %s", action, entity_id, actor_user_id or "system")
    return result


# =============================================================================
# Mutations
# =============================================================================

def assign_warehouse_to_user(
    user_id: str,
    warehouse_id: int,
    access_level: str = AccessLevel.FULL,
    is_default: bool = False,
    *,
    actor_user_id: str | None = None,
    is_cancelled: Callable[[], bool] | None = None,
) -> UserWarehouse:
    """
    Grant a user access to a warehouse.

    The user's first assignment always becomes the default, whatever
    is_default says. is_default=True on a later assignment moves the default.

    Raises:
        ValidationError: unknown access level
        InvalidWarehouseError: unknown user, unknown or inactive warehouse
        DuplicateAssignmentError: the pair is already assigned
    """
    details = {"access_level": access_level, "is_default": bool(is_default)}

    def _op():
        _validate_access_level(access_level)

        user = _lock_user(user_id)
        if user is None:
            raise InvalidWarehouseError(f"User {user_id} not found")

        warehouse = get_warehouse(warehouse_id)
        if warehouse is None or not warehouse.is_active:
            raise InvalidWarehouseError(f"Warehouse {warehouse_id} not found or inactive")

        if _get_assignment(user_id, warehouse_id) is not None:
            raise DuplicateAssignmentError(
                f"User {user_id} is already assigned to warehouse {warehouse_id}"
            )

        has_any = db.session.query(UserWarehouse.id).filter_by(user_id=user_id).first() is not None
        make_default = bool(is_default) or not has_any
        if make_default:
            _clear_defaults(user_id)

        assignment = UserWarehouse(
            user_id=user_id,
            warehouse_id=warehouse_id,
            access_level=access_level,
            is_default=make_default,
        )
        db.session.add(assignment)
        db.session.flush()
        return assignment

    assignment = _run_audited(
        "WAREHOUSE_ASSIGN", "CREATE", user_id, warehouse_id, actor_user_id, _op,
        details=details, is_cancelled=is_cancelled,
    )
    notify_system(
        "Warehouse access granted",
        f"You now have {access_level} access to warehouse {warehouse_id}",
        user_id,
    )
    return assignment


def remove_warehouse_assignment(
    user_id: str,
    warehouse_id: int,
    *,
    actor_user_id: str | None = None,
    is_cancelled: Callable[[], bool] | None = None,
) -> None:
    """
    Remove a user's assignment to a warehouse.

    When the removed row was the default, the first remaining assignment by
    id becomes the new default.
    """
    def _op():
        _lock_user(user_id)

        assignment = _get_assignment(user_id, warehouse_id)
        if assignment is None:
            raise NotFoundError(f"User {user_id} is not assigned to warehouse {warehouse_id}")

        total = db.session.query(UserWarehouse).filter_by(user_id=user_id).count()
        if total <= 1:
            raise LastAssignmentError(
                f"Cannot remove the only warehouse assignment of user {user_id}"
            )

        was_default = assignment.is_default
        db.session.delete(assignment)
        db.session.flush()

        if was_default:
            successor = (
                db.session.query(UserWarehouse)
                .filter_by(user_id=user_id)
                .order_by(UserWarehouse.id.asc())
                .first()
            )
            successor.is_default = True
            db.session.flush()

    _run_audited(
        "WAREHOUSE_REMOVE", "DELETE", user_id, warehouse_id, actor_user_id, _op,
        is_cancelled=is_cancelled,
    )


def update_warehouse_assignment(
    user_id: str,
    warehouse_id: int,
    access_level: str | None = None,
    is_default: bool | None = None,
    *,
    actor_user_id: str | None = None,
    is_cancelled: Callable[[], bool] | None = None,
) -> UserWarehouse:
    details = {"access_level": access_level, "is_default": is_default}

    def _op():
        if access_level is not None:
            _validate_access_level(access_level)

        _lock_user(user_id)
        assignment = _get_assignment(user_id, warehouse_id)
        if assignment is None:
            raise NotFoundError(f"User {user_id} is not assigned to warehouse {warehouse_id}")

        details["previous_access_level"] = assignment.access_level

        if access_level is not None:
            assignment.access_level = access_level

        if is_default is True and not assignment.is_default:
            _clear_defaults(user_id, keep_id=assignment.id)
            assignment.is_default = True
        elif is_default is False and assignment.is_default:
            raise ValidationError(
                "Cannot unset the default warehouse; set another warehouse as default instead"
            )

        db.session.flush()
        return assignment

    return _run_audited(
        "WAREHOUSE_UPDATE", "UPDATE", user_id, warehouse_id, actor_user_id, _op,
        details=details, is_cancelled=is_cancelled,
    )


def set_default_warehouse(
    user_id: str,
    warehouse_id: int,
    *,
    actor_user_id: str | None = None,
    is_cancelled: Callable[[], bool] | None = None,
) -> UserWarehouse:
    def _op():
        _lock_user(user_id)
        assignment = _get_assignment(user_id, warehouse_id)
        if assignment is None:
            raise NotFoundError(f"User {user_id} is not assigned to warehouse {warehouse_id}")
        if assignment.is_default:
            return assignment

        _clear_defaults(user_id, keep_id=assignment.id)
        assignment.is_default = True
        db.session.flush()
        return assignment

    return _run_audited(
        "WAREHOUSE_SET_DEFAULT", "UPDATE", user_id, warehouse_id, actor_user_id, _op,
        is_cancelled=is_cancelled,
    )


def bulk_assign_users_to_warehouse(
    user_ids: Iterable[str],
    warehouse_id: int,
    access_level: str = AccessLevel.FULL,
    set_as_default: bool = False,
    *,
    actor_user_id: str | None = None,
    is_cancelled: Callable[[], bool] | None = None,
) -> list[BulkAssignOutcome]:
    """
    Assign many users to one warehouse. Each user is its own unit of work,
    so one bad id does not undo the others.

    Every user gets an outcome. Conflicts, dependency failures and
    cancellation are reported as "failed" with the error code; users
    committed before the failure stay assigned.
    """
    _validate_access_level(access_level)

    outcomes: list[BulkAssignOutcome] = []
    seen: set[str] = set()
    for user_id in user_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        try:
            assign_warehouse_to_user(
                user_id,
                warehouse_id,
                access_level,
                set_as_default,
                actor_user_id=actor_user_id,
                is_cancelled=is_cancelled,
            )
            outcomes.append(BulkAssignOutcome(user_id, BULK_ASSIGNED))
        except DuplicateAssignmentError:
            outcomes.append(BulkAssignOutcome(user_id, BULK_ALREADY_ASSIGNED))
        except (InvalidWarehouseError, ValidationError) as exc:
            outcomes.append(BulkAssignOutcome(user_id, BULK_INVALID, exc.message, exc.code))
        except FulfillmentError as exc:
            current_app.logger.warning("Bulk assign of %s to warehouse %s failed: %s", user_id, warehouse_id, exc.message)
            outcomes.append(BulkAssignOutcome(user_id, BULK_FAILED, exc.message, exc.code))
    return outcomes


# =============================================================================
# Queries
# =============================================================================

def check_warehouse_access(
    user_id: str,
    warehouse_id: int,
    required_access_level: str | None = None,
) -> WarehouseAccess:
    """
    Report whether a user can see a warehouse and at which level.

    Does not raise for insufficient level: a ReadOnly assignment checked
    against Full still reports (True, ReadOnly). Use require_warehouse_access
    to enforce a level.
    """
    if required_access_level is not None:
        _validate_access_level(required_access_level)

    user = get_active_user(user_id)
    warehouse = get_warehouse(warehouse_id)
    if user is None or warehouse is None or not warehouse.is_active:
        return WarehouseAccess(False, None)

    if is_admin_role(user.role):
        return WarehouseAccess(True, AccessLevel.FULL)

    assignment = _get_assignment(user_id, warehouse_id)
    if assignment is None:
        return WarehouseAccess(False, None)
    return WarehouseAccess(True, assignment.access_level)


def require_warehouse_access(
    user_id: str,
    warehouse_ids: Iterable[int],
    required_access_level: str = AccessLevel.FULL,
) -> None:
    """Raise AccessDeniedError unless every warehouse is reachable at the required level."""
    _validate_access_level(required_access_level)

    user = get_active_user(user_id)
    if user is None:
        raise AccessDeniedError(f"User {user_id} is unknown or inactive")
    if is_admin_role(user.role):
        return

    for warehouse_id in sorted(set(warehouse_ids)):
        access = check_warehouse_access(user_id, warehouse_id)
        if not access.has_access or not AccessLevel.satisfies(access.access_level, required_access_level):
            current_app.logger.warning(
                "Access denied: user=%s warehouse=%s required=%s granted=%s",
                user_id, warehouse_id, required_access_level, access.access_level,
            )
            raise AccessDeniedError(
                f"User {user_id} lacks {required_access_level} access to warehouse {warehouse_id}",
                details={"warehouse_id": warehouse_id, "required_access_level": required_access_level},
            )


def get_accessible_warehouse_ids(user_id: str, user_role: str | None = None) -> list[int]:
    """
    Active warehouses the user may see, sorted ascending.

    Admin-equivalent roles see every active warehouse. user_role overrides
    the directory role when the caller already knows it.
    """
    user = get_active_user(user_id)
    if user is None:
        return []

    role = user_role if user_role is not None else user.role
    if is_admin_role(role):
        return active_warehouse_ids()

    rows = (
        db.session.query(UserWarehouse.warehouse_id)
        .join(Warehouse, Warehouse.id == UserWarehouse.warehouse_id)
        .filter(UserWarehouse.user_id == user_id, Warehouse.is_active.is_(True))
        .order_by(UserWarehouse.warehouse_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def get_user_warehouses(user_id: str) -> list[UserWarehouse]:
    """Assignments of a user, default first, then by warehouse name."""
    return (
        db.session.query(UserWarehouse)
        .join(Warehouse, Warehouse.id == UserWarehouse.warehouse_id)
        .filter(UserWarehouse.user_id == user_id)
        .order_by(UserWarehouse.is_default.desc(), Warehouse.name.asc())
        .all()
    )


def get_warehouse_users(warehouse_id: int) -> list[UserWarehouse]:
    return (
        db.session.query(UserWarehouse)
        .filter(UserWarehouse.warehouse_id == warehouse_id)
        .order_by(UserWarehouse.user_id.asc())
        .all()
    )


def validate_assignment(user_id: str, warehouse_id: int) -> list[str]:
    """Problems that would stop user_id from being assigned to warehouse_id. Empty when none."""
    errors = []
    if get_user(user_id) is None:
        errors.append(f"User {user_id} not found")

    warehouse = get_warehouse(warehouse_id)
    if warehouse is None:
        errors.append(f"Warehouse {warehouse_id} not found")
    elif not warehouse.is_active:
        errors.append(f"Warehouse {warehouse_id} is inactive")

    if not errors and _get_assignment(user_id, warehouse_id) is not None:
        errors.append(f"User {user_id} is already assigned to warehouse {warehouse_id}")
    return errors
