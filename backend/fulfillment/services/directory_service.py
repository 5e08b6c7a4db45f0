# Overview: Read-only lookups of users, warehouses and products for the fulfillment core.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import User, Warehouse, Product


def get_user(user_id: str | None) -> User | None:
    if not user_id:
        return None
    return db.session.get(User, user_id)


def get_active_user(user_id: str | None) -> User | None:
    user = get_user(user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_warehouse(warehouse_id: int | None) -> Warehouse | None:
    if warehouse_id is None:
        return None
    return db.session.get(Warehouse, warehouse_id)


def get_product(product_id: int | None) -> Product | None:
    if product_id is None:
        return None
    return db.session.get(Product, product_id)


def is_admin_role(role: str | None) -> bool:
    """Admin-equivalent roles bypass warehouse assignments (ADMIN_ROLES config)."""
    if not role:
        return False
    return role in current_app.config["ADMIN_ROLES"]


def active_warehouse_ids() -> list[int]:
    rows = (
        db.session.query(Warehouse.id)
        .filter(Warehouse.is_active.is_(True))
        .order_by(Warehouse.id.asc())
        .all()
    )
    return [row[0] for row in rows]


def users_with_roles(roles) -> list[User]:
    roles = list(roles)
    if not roles:
        return []
    return (
        db.session.query(User)
        .filter(User.role.in_(roles), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
