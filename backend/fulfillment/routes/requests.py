# backend/fulfillment/routes/requests.py
"""
Material request API routes.

Errors come back as {"error", "code", "changed": false} with the status
code carried by the raised FulfillmentError.
"""
from flask import Blueprint, request, jsonify, g, current_app
from fulfillment.decorators import require_actor
from fulfillment.errors import FulfillmentError
from fulfillment.services import request_service


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


def _error_response(e: FulfillmentError):
    return jsonify(e.to_dict()), e.http_status


def _unexpected(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error", "code": "internal_error", "changed": False}), 500


@requests_bp.route("", methods=["GET"])
@require_actor
def list_requests():
    """
    List requests visible to the caller, newest first.

    Query params: status, page, page_size
    """
    try:
        result = request_service.list_requests(
            g.current_user.id,
            status=request.args.get("status") or None,
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("page_size", type=int),
        )
        return jsonify(result.to_dict()), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to list requests")


@requests_bp.route("", methods=["POST"])
@require_actor
def create_request():
    """
    Create a new request in Draft.

    Request body:
    {
        "title": str,
        "description": str (optional),
        "items": [
            {"product_id": int, "warehouse_id": int, "quantity": int,
             "location_id": int, "description": str, "unit_price": str}
        ]
    }

    Returns:
        201: Request created
        400: Invalid request
        403: No Full access to an item warehouse
    """
    data = request.get_json(silent=True) or {}

    try:
        created = request_service.create_request(
            title=data.get("title"),
            description=data.get("description"),
            items=data.get("items"),
            actor_user_id=g.current_user.id,
        )
        return jsonify(created.to_detail_dict()), 201
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to create request")


@requests_bp.route("/<int:request_id>", methods=["GET"])
@require_actor
def get_request(request_id: int):
    try:
        found = request_service.get_request(request_id, g.current_user.id)
        return jsonify(found.to_detail_dict()), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to load request")


@requests_bp.route("/<int:request_id>/history", methods=["GET"])
@require_actor
def get_request_history(request_id: int):
    try:
        history = request_service.get_request_history(request_id, g.current_user.id)
        return jsonify([entry.to_dict() for entry in history]), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to load request history")


@requests_bp.route("/<int:request_id>/transactions", methods=["GET"])
@require_actor
def list_request_transactions(request_id: int):
    try:
        transactions = request_service.list_request_transactions(request_id, g.current_user.id)
        return jsonify([txn.to_dict() for txn in transactions]), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to load request transactions")


@requests_bp.route("/<int:request_id>/items", methods=["POST"])
@require_actor
def add_request_item(request_id: int):
    """
    Add an item while the request is still editable.

    Returns:
        201: Item added
        409: Request no longer accepts item changes
    """
    data = request.get_json(silent=True) or {}

    try:
        item = request_service.add_request_item(request_id, data, g.current_user.id)
        return jsonify(item.to_dict()), 201
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to add request item")


@requests_bp.route("/<int:request_id>/items/<int:item_id>", methods=["DELETE"])
@require_actor
def remove_request_item(request_id: int, item_id: int):
    try:
        request_service.remove_request_item(request_id, item_id, g.current_user.id)
        return jsonify({"request_id": request_id, "item_id": item_id, "removed": True}), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to remove request item")


def _run_transition(operation, request_id: int, label: str):
    data = request.get_json(silent=True) or {}

    try:
        updated = operation(request_id, g.current_user.id, comment=data.get("comment"))
        return jsonify(updated.to_detail_dict()), 200
    except FulfillmentError as e:
        return _error_response(e)
    except Exception:
        return _unexpected(f"Failed to {label} request {request_id}")


@requests_bp.route("/<int:request_id>/submit", methods=["POST"])
@require_actor
def submit_request(request_id: int):
    return _run_transition(request_service.submit_request, request_id, "submit")


@requests_bp.route("/<int:request_id>/approve", methods=["POST"])
@require_actor
def approve_request(request_id: int):
    return _run_transition(request_service.approve_request, request_id, "approve")


@requests_bp.route("/<int:request_id>/received", methods=["POST"])
@require_actor
def mark_items_received(request_id: int):
    return _run_transition(request_service.mark_items_received, request_id, "receive items for")


@requests_bp.route("/<int:request_id>/installed", methods=["POST"])
@require_actor
def mark_items_installed(request_id: int):
    return _run_transition(request_service.mark_items_installed, request_id, "install items for")


@requests_bp.route("/<int:request_id>/complete", methods=["POST"])
@require_actor
def complete_request(request_id: int):
    return _run_transition(request_service.complete_request, request_id, "complete")


@requests_bp.route("/<int:request_id>/cancel", methods=["POST"])
@require_actor
def cancel_request(request_id: int):
    return _run_transition(request_service.cancel_request, request_id, "cancel")


@requests_bp.route("/<int:request_id>/reject", methods=["POST"])
@require_actor
def reject_request(request_id: int):
    return _run_transition(request_service.reject_request, request_id, "reject")
