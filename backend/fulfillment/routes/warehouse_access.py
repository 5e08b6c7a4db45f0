# backend/fulfillment/routes/warehouse_access.py
"""
User-warehouse assignment API routes.

Assigning, updating and removing warehouses requires the Admin role.
A user may move their own default; Admin may move anyone's.
Reading assignments is open to the user themself, Admin and Manager.
"""
from flask import Blueprint, request, jsonify, g, current_app
from fulfillment.decorators import require_actor, require_admin, require_self_or_admin, require_self_or_manager
from fulfillment.errors import FulfillmentError, ValidationError
from fulfillment.models import AccessLevel
from fulfillment.services import warehouse_access_service


warehouse_access_bp = Blueprint("warehouse_access", __name__, url_prefix="/api")


def _error_response(e: FulfillmentError):
    return jsonify(e.to_dict()), e.http_status


def _unexpected(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "code": "internal_error", "changed": False}), 500


def _optional_bool(data: dict, key: str):
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be a boolean")


@warehouse_access_bp.route("/users/<user_id>/warehouses", methods=["GET"])
@require_actor
@require_self_or_manager
def list_user_warehouses(user_id: str):
    """Assignments of a user, default first."""
    try:
        rows = warehouse_access_service.get_user_warehouses(user_id)
        return jsonify([row.to_dict() for row in rows]), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to list user warehouses")


@warehouse_access_bp.route("/users/<user_id>/warehouses", methods=["POST"])
@require_actor
@require_admin
def assign_warehouse(user_id: str):
    """
    Assign a warehouse to a user.

    Request body:
    {
        "warehouse_id": int,
        "access_level": "ReadOnly" | "Full" (default "Full"),
        "is_default": bool (optional)
    }

    Returns:
        201: Assignment created
        400: Invalid warehouse, user or access level
        409: Already assigned
    """
    data = request.get_json(silent=True) or {}

    try:
        warehouse_id = data.get("warehouse_id")
        if isinstance(warehouse_id, bool) or not isinstance(warehouse_id, int):
            raise ValidationError("warehouse_id must be an integer")

        assignment = warehouse_access_service.assign_warehouse_to_user(
            user_id,
            warehouse_id,
            data.get("access_level") or AccessLevel.FULL,
            bool(_optional_bool(data, "is_default")),
            actor_user_id=g.current_user.id,
        )
        return jsonify(assignment.to_dict()), 201
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to assign warehouse")


@warehouse_access_bp.route("/users/<user_id>/warehouses/<int:warehouse_id>", methods=["PUT"])
@require_actor
@require_admin
def update_assignment(user_id: str, warehouse_id: int):
    """
    Request body (all optional):
    {
        "access_level": "ReadOnly" | "Full",
        "is_default": true
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        assignment = warehouse_access_service.update_warehouse_assignment(
            user_id,
            warehouse_id,
            access_level=data.get("access_level"),
            is_default=_optional_bool(data, "is_default"),
            actor_user_id=g.current_user.id,
        )
        return jsonify(assignment.to_dict()), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to update warehouse assignment")


@warehouse_access_bp.route("/users/<user_id>/warehouses/<int:warehouse_id>", methods=["DELETE"])
@require_actor
@require_admin
def remove_assignment(user_id: str, warehouse_id: int):
    try:
        warehouse_access_service.remove_warehouse_assignment(
            user_id, warehouse_id, actor_user_id=g.current_user.id
        )
        return jsonify({"user_id": user_id, "warehouse_id": warehouse_id, "removed": True}), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to remove warehouse assignment")


@warehouse_access_bp.route("/users/<user_id>/warehouses/<int:warehouse_id>/default", methods=["PUT"])
@require_actor
@require_self_or_admin
def set_default(user_id: str, warehouse_id: int):
    try:
        assignment = warehouse_access_service.set_default_warehouse(
            user_id, warehouse_id, actor_user_id=g.current_user.id
        )
        return jsonify(assignment.to_dict()), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to set default warehouse")


@warehouse_access_bp.route("/users/<user_id>/warehouses/<int:warehouse_id>/access", methods=["GET"])
@require_actor
@require_self_or_manager
def check_access(user_id: str, warehouse_id: int):
    """Query params: required_access_level (optional)."""
    try:
        access = warehouse_access_service.check_warehouse_access(
            user_id,
            warehouse_id,
            request.args.get("required_access_level") or None,
        )
        return jsonify({
            "user_id": user_id,
            "warehouse_id": warehouse_id,
            "has_access": access.has_access,
            "access_level": access.access_level,
        }), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to check warehouse access")


@warehouse_access_bp.route("/users/<user_id>/accessible-warehouses", methods=["GET"])
@require_actor
@require_self_or_manager
def accessible_warehouses(user_id: str):
    try:
        ids = warehouse_access_service.get_accessible_warehouse_ids(user_id)
        return jsonify({"user_id": user_id, "warehouse_ids": ids}), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to list accessible warehouses")


@warehouse_access_bp.route("/warehouses/<int:warehouse_id>/users", methods=["GET"])
@require_actor
@require_self_or_manager
def warehouse_users(warehouse_id: int):
    try:
        rows = warehouse_access_service.get_warehouse_users(warehouse_id)
        return jsonify([row.to_dict() for row in rows]), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to list warehouse users")


@warehouse_access_bp.route("/warehouses/bulk-assign", methods=["POST"])
@require_actor
@require_admin
def bulk_assign():
    """
    Request body:
    {
        "user_ids": [str],
        "warehouse_id": int,
        "access_level": "ReadOnly" | "Full" (default "Full"),
        "set_as_default": bool (optional)
    }

    Returns:
        200: {"results": [{"user_id", "outcome"}], "assigned": n}
    """
    data = request.get_json(silent=True) or {}

    try:
        user_ids = data.get("user_ids")
        if not isinstance(user_ids, list) or not all(isinstance(uid, str) for uid in user_ids):
            raise ValidationError("user_ids must be a list of strings")
        warehouse_id = data.get("warehouse_id")
        if isinstance(warehouse_id, bool) or not isinstance(warehouse_id, int):
            raise ValidationError("warehouse_id must be an integer")

        outcomes = warehouse_access_service.bulk_assign_users_to_warehouse(
            user_ids,
            warehouse_id,
            data.get("access_level") or AccessLevel.FULL,
            bool(_optional_bool(data, "set_as_default")),
            actor_user_id=g.current_user.id,
        )
        return jsonify({
            "results": [outcome.to_dict() for outcome in outcomes],
            "assigned": sum(1 for o in outcomes if o.outcome == warehouse_access_service.BULK_ASSIGNED),
        }), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to bulk assign warehouse")
