# Overview: Inventory transactions produced by request status transitions.

"""
Transition side effects.

apply_transition_effects() runs inside the caller's unit of work: it only
adds and flushes rows, never commits. If any item is invalid it raises and
the caller's rollback discards the status change along with every
transaction created so far.

Only ItemsReceived produces stock movements today. The handler table is the
place to hang Install/Outcome movements for later statuses.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryTransaction, Request, RequestStatus, TransactionType
from ..time_utils import utcnow
from .directory_service import get_product, get_warehouse


def _income_for_received_items(request: Request) -> list[InventoryTransaction]:
    if not request.items:
        raise ValidationError(f"Request {request.id} has no items to receive")

    now = utcnow()
    description = f"Request #{request.id}: {request.title}"
    created = []
    for item in request.items:
        product = get_product(item.product_id)
        if product is None or not product.is_active:
            raise ValidationError(
                f"Product {item.product_id} on item {item.id} is missing or inactive",
                details={"item_id": item.id, "product_id": item.product_id},
            )
        warehouse = get_warehouse(item.warehouse_id)
        if warehouse is None or not warehouse.is_active:
            raise ValidationError(
                f"Warehouse {item.warehouse_id} on item {item.id} is missing or inactive",
                details={"item_id": item.id, "warehouse_id": item.warehouse_id},
            )

        unit_price = Decimal(item.unit_price) if item.unit_price is not None else None
        txn = InventoryTransaction(
            product_id=item.product_id,
            warehouse_id=item.warehouse_id,
            user_id=request.created_by_user_id,
            type=TransactionType.INCOME,
            quantity=item.quantity,
            date=now,
            request_id=request.id,
            location_id=item.location_id,
            unit_price=unit_price,
            total_price=unit_price * item.quantity if unit_price is not None else None,
            description=description[:255],
            created_at=now,
        )
        db.session.add(txn)
        created.append(txn)

    db.session.flush()
    return created


EFFECT_HANDLERS = {
    RequestStatus.ITEMS_RECEIVED: _income_for_received_items,
}


def apply_transition_effects(request: Request, new_status: str) -> list[InventoryTransaction]:
    """Create the transactions new_status calls for. Returns them (possibly empty)."""
    handler = EFFECT_HANDLERS.get(new_status)
    if handler is None:
        return []
    return handler(request)
