"""
Tenant scoping helpers shared by the inventory workflows.

WHY: every workflow validates that the locations and products it is handed
belong to the calling tenant before it opens a unit of work. The ledger
itself trusts those ids, so this is the only place the check happens.

USAGE:
    location = require_location(tenant_id, location_id, active_only=True)
    products = require_products(tenant_id, [line.product_id for line in lines])
"""
from __future__ import annotations

from typing import Iterable

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Location, Product


def require_location(tenant_id: int, location_id: int, *, active_only: bool = False) -> Location:
    location = (
        db.session.query(Location)
        .filter_by(id=location_id, tenant_id=tenant_id)
        .first()
    )
    if location is None:
        raise ValidationError(
            f"Location with ID {location_id} not found.",
            {"location_id": location_id},
        )
    if active_only and not location.is_active:
        raise ValidationError(
            f"Location {location_id} is inactive.",
            {"location_id": location_id},
        )
    return location


def require_products(
    tenant_id: int,
    product_ids: Iterable[int],
    *,
    stock_tracked: bool = True,
) -> dict[int, Product]:
    """
    Load every referenced product for the tenant, keyed by id.

    Raises ValidationError listing missing ids, or naming the first product
    that is not stock-tracked when ``stock_tracked`` is set.
    """
    wanted = list(dict.fromkeys(product_ids))
    if not wanted:
        return {}

    products = (
        db.session.query(Product)
        .filter(Product.tenant_id == tenant_id, Product.id.in_(wanted))
        .all()
    )
    by_id = {product.id: product for product in products}

    missing = [product_id for product_id in wanted if product_id not in by_id]
    if missing:
        raise ValidationError(
            f"Product IDs not found: {', '.join(str(pid) for pid in missing)}",
            {"product_ids": missing},
        )

    if stock_tracked:
        for product_id in wanted:
            product = by_id[product_id]
            if not product.is_stock_tracked:
                raise ValidationError(
                    f"Product {product.sku} (ID {product.id}) is not stock-tracked.",
                    {"product_id": product.id, "sku": product.sku},
                )

    return by_id


def get_scoped(model, tenant_id: int, entity_id: int, *, label: str | None = None):
    """Fetch a tenant-owned row by id or raise NotFoundError."""
    row = db.session.query(model).filter_by(id=entity_id, tenant_id=tenant_id).first()
    if row is None:
        name = label or model.__name__
        raise NotFoundError(f"{name} {entity_id} not found", {"id": entity_id})
    return row
