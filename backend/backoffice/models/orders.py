from __future__ import annotations

from ..extensions import db
from ..quantity import format_decimal
from ..time_utils import to_utc_z
from .types import ExactDecimal


class Order(db.Model):
    """
    Customer order.

    Stock is allocated (SALE movements) only while the order is PROCESSING.
    Cancelling an allocated order mirrors every SALE movement back.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        db.Index("ix_orders_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    # Customers live outside this package
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    order_number = db.Column(db.String(64), nullable=False)
    # POS, ONLINE, MANUAL
    order_type = db.Column(db.String(16), nullable=False, default="POS")
    status = db.Column(db.String(24), nullable=False, default="PROCESSING", index=True)

    subtotal = db.Column(ExactDecimal(), nullable=False, default=0)
    discount_amount = db.Column(ExactDecimal(), nullable=False, default=0)
    shipping_cost = db.Column(ExactDecimal(), nullable=False, default=0)
    tax_amount = db.Column(ExactDecimal(), nullable=False, default=0)
    total_amount = db.Column(ExactDecimal(), nullable=False, default=0)
    currency_code = db.Column(db.String(3), nullable=False, default="USD")

    is_backordered = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

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
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "customer_id": self.customer_id,
            "order_number": self.order_number,
            "order_type": self.order_type,
            "status": self.status,
            "subtotal": format_decimal(self.subtotal),
            "discount_amount": format_decimal(self.discount_amount),
            "shipping_cost": format_decimal(self.shipping_cost),
            "tax_amount": format_decimal(self.tax_amount),
            "total_amount": format_decimal(self.total_amount),
            "currency_code": self.currency_code,
            "is_backordered": self.is_backordered,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(ExactDecimal(), nullable=False)
    unit_price = db.Column(ExactDecimal(), nullable=False)
    original_unit_price = db.Column(ExactDecimal(), nullable=True)
    line_total = db.Column(ExactDecimal(), nullable=False)

    lot_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": format_decimal(self.quantity),
            "unit_price": format_decimal(self.unit_price),
            "original_unit_price": format_decimal(self.original_unit_price),
            "line_total": format_decimal(self.line_total),
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
            "notes": self.notes,
        }


class Return(db.Model):
    """
    Customer return against an original order.

    Only SELLABLE items go back into stock (RETURN_RESTOCK); damaged,
    defective and disposed items are recorded without a movement.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "return_number", name="uq_returns_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    original_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True)

    return_number = db.Column(db.String(64), nullable=False)
    # PENDING, APPROVED, COMPLETED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    reason = db.Column(db.Text, nullable=True)
    total_refund_amount = db.Column(ExactDecimal(), nullable=False, default=0)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "ReturnItem",
        backref="return_doc",
        lazy=True,
        order_by="ReturnItem.id",
    )
    refund_payments = db.relationship(
        "Payment",
        backref="return_doc",
        lazy=True,
        order_by="Payment.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Return id={self.id} number={self.return_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "original_order_id": self.original_order_id,
            "location_id": self.location_id,
            "customer_id": self.customer_id,
            "return_number": self.return_number,
            "status": self.status,
            "reason": self.reason,
            "total_refund_amount": format_decimal(self.total_refund_amount),
            "processed_by_user_id": self.processed_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "refund_payments": [payment.to_dict() for payment in self.refund_payments],
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    original_order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)

    quantity = db.Column(ExactDecimal(), nullable=False)
    unit_refund_amount = db.Column(ExactDecimal(), nullable=False)
    line_refund_amount = db.Column(ExactDecimal(), nullable=False)

    # SELLABLE, DAMAGED, DEFECTIVE, DISPOSED
    condition = db.Column(db.String(16), nullable=False)
    restock = db.Column(db.Boolean, nullable=False, default=False)

    lot_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "original_order_item_id": self.original_order_item_id,
            "quantity": format_decimal(self.quantity),
            "unit_refund_amount": format_decimal(self.unit_refund_amount),
            "line_refund_amount": format_decimal(self.line_refund_amount),
            "condition": self.condition,
            "restock": self.restock,
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
        }


class Payment(db.Model):
    """Payment or refund record. Refunds reference the return they settle."""
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)

    payment_method = db.Column(db.String(24), nullable=False)
    amount = db.Column(ExactDecimal(), nullable=False)
    currency_code = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")
    transaction_reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "return_id": self.return_id,
            "payment_method": self.payment_method,
            "amount": format_decimal(self.amount),
            "currency_code": self.currency_code,
            "status": self.status,
            "transaction_reference": self.transaction_reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
