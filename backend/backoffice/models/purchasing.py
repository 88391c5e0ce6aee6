from __future__ import annotations

from ..extensions import db
from ..quantity import format_decimal
from ..time_utils import to_utc_z
from .types import ExactDecimal


class PurchaseOrder(db.Model):
    """
    Supplier purchase order delivered to one location.

    LIFECYCLE:
    1. DRAFT -> PENDING_APPROVAL -> APPROVED -> SENT
    2. SENT -> PARTIALLY_RECEIVED -> FULLY_RECEIVED as goods arrive
    3. CANCELLED: from any status before FULLY_RECEIVED; received stock stays

    Receipts post PURCHASE_RECEIPT movements at the line's unit cost.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_number"),
        db.Index("ix_purchase_orders_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    po_number = db.Column(db.String(64), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=True)
    # DRAFT, PENDING_APPROVAL, APPROVED, SENT, PARTIALLY_RECEIVED, FULLY_RECEIVED, CANCELLED
    status = db.Column(db.String(32), nullable=False, default="DRAFT", index=True)

    expected_delivery_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal = db.Column(ExactDecimal(), nullable=False, default=0)
    shipping_cost = db.Column(ExactDecimal(), nullable=False, default=0)
    total_amount = db.Column(ExactDecimal(), nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.po_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "po_number": self.po_number,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "expected_delivery_date": (
                self.expected_delivery_date.isoformat() if self.expected_delivery_date else None
            ),
            "notes": self.notes,
            "subtotal": format_decimal(self.subtotal),
            "shipping_cost": format_decimal(self.shipping_cost),
            "total_amount": format_decimal(self.total_amount),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseOrderItem(db.Model):
    """
    One product on a purchase order.

    quantity_received only grows, by SQL-side increment, and never exceeds
    quantity_ordered.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_ordered = db.Column(ExactDecimal(), nullable=False)
    quantity_received = db.Column(ExactDecimal(), nullable=False, default=0)
    unit_cost = db.Column(ExactDecimal(), nullable=False)
    line_total = db.Column(ExactDecimal(), nullable=False)

    product = db.relationship("Product")

    @property
    def quantity_outstanding(self):
        return self.quantity_ordered - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "quantity_ordered": format_decimal(self.quantity_ordered),
            "quantity_received": format_decimal(self.quantity_received),
            "quantity_outstanding": format_decimal(self.quantity_outstanding),
            "unit_cost": format_decimal(self.unit_cost),
            "line_total": format_decimal(self.line_total),
        }
