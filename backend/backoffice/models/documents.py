from __future__ import annotations

from ..extensions import db
from ..quantity import format_decimal
from ..time_utils import to_utc_z
from .types import ExactDecimal


class Adjustment(db.Model):
    """
    Manual quantity correction document (damage, shrinkage, count variance).

    One adjustment produces one inventory transaction per non-zero line.
    A header with no lines is a valid "confirmed, no change" outcome.
    """
    __tablename__ = "adjustments"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "adjustment_number", name="uq_adjustments_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    adjustment_number = db.Column(db.String(64), nullable=False)
    reason_code = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "AdjustmentLine",
        backref="adjustment",
        lazy=True,
        order_by="AdjustmentLine.id",
    )

    def __repr__(self) -> str:
        return f"<Adjustment id={self.id} number={self.adjustment_number!r} lines={len(self.lines)}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "adjustment_number": self.adjustment_number,
            "reason_code": self.reason_code,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class AdjustmentLine(db.Model):
    __tablename__ = "adjustment_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("adjustments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_change = db.Column(ExactDecimal(), nullable=False)
    unit_cost = db.Column(ExactDecimal(), nullable=True)
    lot_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    inventory_transaction_id = db.Column(
        db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=False, unique=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_id": self.adjustment_id,
            "product_id": self.product_id,
            "quantity_change": format_decimal(self.quantity_change),
            "unit_cost": format_decimal(self.unit_cost),
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
            "inventory_transaction_id": self.inventory_transaction_id,
        }


class Transfer(db.Model):
    """
    Inter-location inventory transfer document.

    LIFECYCLE:
    1. PENDING: created, nothing shipped
    2. IN_TRANSIT: shipped from source (TRANSFER_OUT) or partially received
    3. COMPLETED: total received >= total requested
    4. CANCELLED: from PENDING or IN_TRANSIT; unreceived stock returns to source

    Status is derived from line quantities by the transfer service and is
    never set directly by callers.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transfer_number", name="uq_transfers_tenant_number"),
        db.Index("ix_transfers_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    transfer_number = db.Column(db.String(64), nullable=False)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # PENDING, IN_TRANSIT, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shipped_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "TransferLine",
        backref="transfer",
        lazy=True,
        order_by="TransferLine.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transfer id={self.id} number={self.transfer_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transfer_number": self.transfer_number,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "status": self.status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "shipped_by_user_id": self.shipped_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "lines": [line.to_dict() for line in self.lines],
        }


class TransferLine(db.Model):
    """
    One product on a transfer.

    quantity_shipped and quantity_received only ever grow and never exceed
    quantity_requested.
    """
    __tablename__ = "transfer_lines"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_lines_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_requested = db.Column(ExactDecimal(), nullable=False)
    quantity_shipped = db.Column(ExactDecimal(), nullable=False, default=0)
    quantity_received = db.Column(ExactDecimal(), nullable=False, default=0)

    lot_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "quantity_requested": format_decimal(self.quantity_requested),
            "quantity_shipped": format_decimal(self.quantity_shipped),
            "quantity_received": format_decimal(self.quantity_received),
            "lot_number": self.lot_number,
            "serial_number": self.serial_number,
        }


class StockCount(db.Model):
    """
    Physical inventory count (full or cycle).

    LIFECYCLE: PENDING -> COUNTING -> REVIEW -> COMPLETED (or CANCELLED)

    Items snapshot the balance at initiation. Variance is always measured
    against that snapshot, never against the live balance.
    """
    __tablename__ = "stock_counts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "count_number", name="uq_stock_counts_tenant_number"),
        db.Index("ix_stock_counts_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    count_number = db.Column(db.String(64), nullable=False)
    # FULL, CYCLE
    count_type = db.Column(db.String(16), nullable=False, default="FULL")
    # PENDING, COUNTING, REVIEW, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=True)

    initiated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    adjustment_id = db.Column(db.Integer, db.ForeignKey("adjustments.id"), nullable=True)

    initiated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "StockCountItem",
        backref="stock_count",
        lazy=True,
        order_by="StockCountItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockCount id={self.id} number={self.count_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "count_number": self.count_number,
            "count_type": self.count_type,
            "status": self.status,
            "notes": self.notes,
            "initiated_by_user_id": self.initiated_by_user_id,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "adjustment_id": self.adjustment_id,
            "initiated_at": to_utc_z(self.initiated_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "completed_at": to_utc_z(self.completed_at),
            "items": [item.to_dict() for item in self.items],
        }


class StockCountItem(db.Model):
    __tablename__ = "stock_count_items"
    __table_args__ = (
        db.UniqueConstraint("stock_count_id", "product_id", name="uq_stock_count_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    stock_count_id = db.Column(db.Integer, db.ForeignKey("stock_counts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Frozen at initiation
    snapshot_quantity = db.Column(ExactDecimal(), nullable=False)
    unit_cost = db.Column(ExactDecimal(), nullable=True)

    counted_quantity = db.Column(ExactDecimal(), nullable=True)
    variance_quantity = db.Column(ExactDecimal(), nullable=True)

    # PENDING, COUNTED, APPROVED, RECOUNT_REQUESTED, SKIPPED
    status = db.Column(db.String(24), nullable=False, default="PENDING")
    notes = db.Column(db.Text, nullable=True)

    counted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_count_id": self.stock_count_id,
            "product_id": self.product_id,
            "snapshot_quantity": format_decimal(self.snapshot_quantity),
            "unit_cost": format_decimal(self.unit_cost),
            "counted_quantity": format_decimal(self.counted_quantity),
            "variance_quantity": format_decimal(self.variance_quantity),
            "status": self.status,
            "notes": self.notes,
            "counted_by_user_id": self.counted_by_user_id,
            "counted_at": to_utc_z(self.counted_at),
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "reviewed_at": to_utc_z(self.reviewed_at),
        }


class DocumentSequence(db.Model):
    """
    Per-tenant, per-document-type counters for human-readable numbers.

    last_number is advanced with an atomic upsert so two concurrent documents
    never read the same value.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_document_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    last_number = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentSequence tenant_id={self.tenant_id} type={self.document_type} "
            f"last={self.last_number}>"
        )
