from __future__ import annotations

from sqlalchemy import event

from ..errors import ConsistencyError
from ..extensions import db
from ..quantity import format_decimal
from ..time_utils import to_utc_z
from .types import ExactDecimal


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: SKUs are unique within a tenant.
    Only products flagged is_stock_tracked may be moved through the ledger.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    base_price = db.Column(ExactDecimal(), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_stock_tracked = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "base_price": format_decimal(self.base_price),
            "is_active": self.is_active,
            "is_stock_tracked": self.is_stock_tracked,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryBalance(db.Model):
    """
    Current stock position for one (tenant, product, location).

    INVARIANTS:
    - quantity_on_hand is written only by the stock ledger, as an atomic
      increment inside the caller's transaction
    - quantity_on_hand == SUM(inventory_transactions.quantity_change) for the key
    - rows are created on first movement and never deleted
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_balances_key"),
        db.Index("ix_inventory_balances_tenant_location", "tenant_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity_on_hand = db.Column(ExactDecimal(), nullable=False, default=0)
    quantity_allocated = db.Column(ExactDecimal(), nullable=False, default=0)
    quantity_incoming = db.Column(ExactDecimal(), nullable=False, default=0)
    average_cost = db.Column(ExactDecimal(), nullable=True)

    reorder_point = db.Column(ExactDecimal(), nullable=True)
    last_counted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return (
            f"<InventoryBalance product_id={self.product_id} location_id={self.location_id} "
            f"on_hand={self.quantity_on_hand}>"
        )

    @property
    def quantity_available(self):
        return self.quantity_on_hand - self.quantity_allocated

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity_on_hand": format_decimal(self.quantity_on_hand),
            "quantity_allocated": format_decimal(self.quantity_allocated),
            "quantity_incoming": format_decimal(self.quantity_incoming),
            "quantity_available": format_decimal(self.quantity_available),
            "average_cost": format_decimal(self.average_cost),
            "reorder_point": format_decimal(self.reorder_point),
            "last_counted_at": to_utc_z(self.last_counted_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only record of one stock movement.

    Each row explains exactly one balance increment. At most one linkage group
    is populated: order (+ item), adjustment, transfer, purchase order
    (+ item) or return item. Rows are never updated or deleted.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_txn_key", "tenant_id", "product_id", "location_id"),
        db.Index("ix_inventory_txn_order_type", "related_order_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_change = db.Column(ExactDecimal(), nullable=False)
    unit_cost = db.Column(ExactDecimal(), nullable=True)

    lot_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    related_order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=True)
    related_adjustment_id = db.Column(db.Integer, db.ForeignKey("adjustments.id"), nullable=True, index=True)
    related_transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=True, index=True)
    related_po_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    related_po_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True)
    related_return_item_id = db.Column(db.Integer, db.ForeignKey("return_items.id"), nullable=True, index=True)

    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} type={self.transaction_type} "
            f"product_id={self.product_id} change={self.quantity_change}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "transaction_type": self.transaction_type,
            "quantity_change": format_decimal(self.quantity_change),
            "unit_cost": format_decimal(self.unit_cost),
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
            "related_order_id": self.related_order_id,
            "related_order_item_id": self.related_order_item_id,
            "related_adjustment_id": self.related_adjustment_id,
            "related_transfer_id": self.related_transfer_id,
            "related_po_id": self.related_po_id,
            "related_po_item_id": self.related_po_item_id,
            "related_return_item_id": self.related_return_item_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(InventoryTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    raise ConsistencyError(
        f"Inventory transaction {target.id} is immutable",
        {"transaction_id": target.id},
    )


@event.listens_for(InventoryTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise ConsistencyError(
        f"Inventory transaction {target.id} cannot be deleted",
        {"transaction_id": target.id},
    )
