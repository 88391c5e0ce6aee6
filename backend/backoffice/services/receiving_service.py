# backend/backoffice/services/receiving_service.py
"""
Purchase order receiving service.

WHY: Supplier deliveries are the main inbound source of stock and the only
one that carries a purchase cost. Receiving posts PURCHASE_RECEIPT at the
delivery location with the PO line's unit cost, which feeds the balance's
weighted average cost.

LIFECYCLE:
1. DRAFT: Created with lines and totals
2. PENDING_APPROVAL: Submitted for approval (optional step)
3. APPROVED: Ready to send
4. SENT: With the supplier; receipts allowed
5. PARTIALLY_RECEIVED / FULLY_RECEIVED: Derived from line totals after every receipt
6. CANCELLED: Any status before FULLY_RECEIVED; stock already received stays

RECEIVING:
- Lines are matched by purchase order item id
- A receipt never exceeds quantity_ordered - quantity_received
- quantity_received grows by SQL-side increment
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP
from typing import Any, Optional, Sequence

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..models.enums import InventoryTransactionType, PurchaseOrderStatus
from ..quantity import QUANTUM, ZERO, to_money, to_quantity
from .concurrency import lock_for_update
from .document_service import next_document_number
from .ledger_service import Linkage
from .pagination import paginate_query
from .state_machines import (
    PO_APPROVE,
    PO_CANCEL,
    PO_RECEIVE,
    PO_SEND,
    PO_SUBMIT,
    check_purchase_order_transition,
    require,
)
from .tenant_service import get_scoped, require_location, require_products
from .unit_of_work import unit_of_work


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    product_id: int
    quantity: Any
    unit_cost: Any


@dataclass(frozen=True)
class PurchaseReceiptLineInput:
    item_id: int
    quantity_received: Any
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None


# action -> status entered
_ACTION_TARGETS = {
    PO_SUBMIT: PurchaseOrderStatus.PENDING_APPROVAL.value,
    PO_APPROVE: PurchaseOrderStatus.APPROVED.value,
    PO_SEND: PurchaseOrderStatus.SENT.value,
    PO_CANCEL: PurchaseOrderStatus.CANCELLED.value,
}


def _lock_purchase_order(tenant_id: int, purchase_order_id: int) -> PurchaseOrder:
    purchase_order = lock_for_update(
        db.session.query(PurchaseOrder).filter_by(id=purchase_order_id, tenant_id=tenant_id)
    ).first()
    if purchase_order is None:
        return get_scoped(PurchaseOrder, tenant_id, purchase_order_id, label="Purchase order")
    return purchase_order


def create_purchase_order(
    tenant_id: int,
    user_id: int,
    location_id: int,
    lines: Sequence[PurchaseOrderLineInput],
    *,
    supplier_name: str | None = None,
    expected_delivery_date: date | None = None,
    shipping_cost: Any = 0,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a purchase order (status: DRAFT).

    Raises:
        ValidationError: inactive or unknown location, unknown or untracked
            products, non-positive quantities, negative costs, duplicate lines
    """
    if not lines:
        raise ValidationError("Purchase order requires at least one line")

    require_location(tenant_id, location_id, active_only=True)
    products = require_products(tenant_id, [line.product_id for line in lines])

    prepared = []
    seen = set()
    subtotal = ZERO
    for line in lines:
        product = products[line.product_id]
        if line.product_id in seen:
            raise ValidationError(
                f"Product {product.sku} appears more than once on the purchase order",
                {"product_id": line.product_id},
            )
        seen.add(line.product_id)

        quantity = to_quantity(line.quantity)
        if quantity <= 0:
            raise ValidationError(
                f"Quantity for product {product.sku} must be positive",
                {"product_id": line.product_id, "quantity": str(quantity)},
            )
        unit_cost = to_money(line.unit_cost, field="unit_cost")
        if unit_cost < 0:
            raise ValidationError(
                f"Unit cost for product {product.sku} cannot be negative",
                {"product_id": line.product_id, "unit_cost": str(unit_cost)},
            )
        line_total = (quantity * unit_cost).quantize(QUANTUM, rounding=ROUND_HALF_UP)
        subtotal += line_total
        prepared.append((line, quantity, unit_cost, line_total))

    shipping = to_money(shipping_cost, field="shipping_cost")
    if shipping < 0:
        raise ValidationError("shipping_cost cannot be negative", {"shipping_cost": str(shipping)})

    with unit_of_work(tenant_id):
        purchase_order = PurchaseOrder(
            tenant_id=tenant_id,
            location_id=location_id,
            po_number=next_document_number(
                tenant_id=tenant_id,
                document_type="PURCHASE_ORDER",
                prefix="PO-",
                model=PurchaseOrder,
                column=PurchaseOrder.po_number,
            ),
            supplier_name=supplier_name,
            status=PurchaseOrderStatus.DRAFT.value,
            expected_delivery_date=expected_delivery_date,
            notes=notes,
            subtotal=subtotal,
            shipping_cost=shipping,
            total_amount=subtotal + shipping,
            created_by_user_id=user_id,
        )
        db.session.add(purchase_order)
        db.session.flush()

        for line, quantity, unit_cost, line_total in prepared:
            db.session.add(PurchaseOrderItem(
                tenant_id=tenant_id,
                purchase_order_id=purchase_order.id,
                product_id=line.product_id,
                quantity_ordered=quantity,
                quantity_received=ZERO,
                unit_cost=unit_cost,
                line_total=line_total,
            ))
        db.session.flush()

    current_app.logger.info(
        "Purchase order %s created for location %s with %s line(s), total %s",
        purchase_order.po_number, location_id, len(prepared), purchase_order.total_amount,
    )
    return purchase_order


def _apply_action(
    tenant_id: int,
    user_id: int,
    purchase_order_id: int,
    action: str,
    notes: str | None,
) -> PurchaseOrder:
    with unit_of_work(tenant_id):
        purchase_order = _lock_purchase_order(tenant_id, purchase_order_id)
        require(check_purchase_order_transition(purchase_order.status, action))

        previous = purchase_order.status
        purchase_order.status = _ACTION_TARGETS[action]
        if notes:
            entry = f"[{purchase_order.status} by user {user_id}]: {notes}"
            purchase_order.notes = f"{purchase_order.notes}\n{entry}" if purchase_order.notes else entry

    current_app.logger.info(
        "Purchase order %s: %s -> %s", purchase_order.po_number, previous, purchase_order.status,
    )
    return purchase_order


def submit_purchase_order(tenant_id: int, user_id: int, purchase_order_id: int, *, notes: str | None = None):
    """DRAFT -> PENDING_APPROVAL."""
    return _apply_action(tenant_id, user_id, purchase_order_id, PO_SUBMIT, notes)


def approve_purchase_order(tenant_id: int, user_id: int, purchase_order_id: int, *, notes: str | None = None):
    """DRAFT or PENDING_APPROVAL -> APPROVED."""
    return _apply_action(tenant_id, user_id, purchase_order_id, PO_APPROVE, notes)


def send_purchase_order(tenant_id: int, user_id: int, purchase_order_id: int, *, notes: str | None = None):
    """APPROVED -> SENT. Receipts are accepted from here on."""
    return _apply_action(tenant_id, user_id, purchase_order_id, PO_SEND, notes)


def cancel_purchase_order(tenant_id: int, user_id: int, purchase_order_id: int, *, reason: str | None = None):
    """Cancel before FULLY_RECEIVED. Stock already received is not reversed."""
    return _apply_action(tenant_id, user_id, purchase_order_id, PO_CANCEL, reason or "Cancelled by user")


def receive_purchase_order_items(
    tenant_id: int,
    user_id: int,
    purchase_order_id: int,
    lines: Sequence[PurchaseReceiptLineInput],
) -> PurchaseOrder:
    """
    Receive delivered quantities against a SENT or PARTIALLY_RECEIVED order.

    Each positive line posts one PURCHASE_RECEIPT at the order's location with
    the item's unit cost. Status becomes FULLY_RECEIVED once every ordered
    quantity has arrived, otherwise PARTIALLY_RECEIVED.

    Raises:
        NotFoundError: purchase order not in tenant
        InvalidTransitionError: order not yet sent, cancelled or fully received
        ValidationError: unknown or duplicate item ids, receipt above outstanding
    """
    submitted: dict[int, tuple[PurchaseReceiptLineInput, Any]] = {}
    for entry in lines:
        if entry.item_id in submitted:
            raise ValidationError(
                f"Purchase order item {entry.item_id} appears more than once in the receipt",
                {"item_id": entry.item_id},
            )
        submitted[entry.item_id] = (entry, to_quantity(entry.quantity_received, field="quantity_received"))

    with unit_of_work(tenant_id) as uow:
        purchase_order = _lock_purchase_order(tenant_id, purchase_order_id)
        require(check_purchase_order_transition(purchase_order.status, PO_RECEIVE))

        items_by_id = {item.id: item for item in purchase_order.items}
        unknown = [item_id for item_id in submitted if item_id not in items_by_id]
        if unknown:
            raise ValidationError(
                f"Items not on purchase order {purchase_order.po_number}: "
                f"{', '.join(str(item_id) for item_id in unknown)}",
                {"item_ids": unknown},
            )

        received = 0
        for item_id, (entry, quantity) in submitted.items():
            item = items_by_id[item_id]
            max_receivable = item.quantity_ordered - item.quantity_received
            if quantity > max_receivable:
                raise ValidationError(
                    f"Received quantity {quantity} exceeds outstanding quantity {max_receivable} "
                    f"for product {item.product.sku} on purchase order {purchase_order.po_number}",
                    {
                        "item_id": item_id,
                        "quantity_received": str(quantity),
                        "max_receivable": str(max_receivable),
                    },
                )
            if quantity <= 0:
                current_app.logger.warning(
                    "Skipping non-positive receipt of %s for item %s on purchase order %s",
                    quantity, item_id, purchase_order.po_number,
                )
                continue

            uow.ledger.record_movement(
                user_id=user_id,
                product_id=item.product_id,
                location_id=purchase_order.location_id,
                quantity_change=quantity,
                transaction_type=InventoryTransactionType.PURCHASE_RECEIPT,
                unit_cost=item.unit_cost,
                linkage=Linkage.for_purchase_order(purchase_order.id, item.id),
                notes=f"Received for PO {purchase_order.po_number}",
                lot_number=entry.lot_number,
                serial_number=entry.serial_number,
            )
            item.quantity_received = PurchaseOrderItem.quantity_received + quantity
            received += 1

        db.session.flush()

        total_ordered = sum((item.quantity_ordered for item in purchase_order.items), ZERO)
        total_received = sum((item.quantity_received for item in purchase_order.items), ZERO)

        if total_received > 0:
            if total_received >= total_ordered:
                purchase_order.status = PurchaseOrderStatus.FULLY_RECEIVED.value
            else:
                purchase_order.status = PurchaseOrderStatus.PARTIALLY_RECEIVED.value

    if received == 0 and submitted:
        current_app.logger.warning(
            "Purchase order %s receipt recorded no stock movements", purchase_order.po_number
        )
    current_app.logger.info(
        "Purchase order %s received %s/%s, status %s",
        purchase_order.po_number, total_received, total_ordered, purchase_order.status,
    )
    return purchase_order


def get_purchase_order(tenant_id: int, purchase_order_id: int) -> PurchaseOrder:
    return get_scoped(PurchaseOrder, tenant_id, purchase_order_id, label="Purchase order")


def list_purchase_orders(
    tenant_id: int,
    *,
    status: str | None = None,
    location_id: int | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    if location_id is not None:
        query = query.filter(PurchaseOrder.location_id == location_id)
    query = query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    return paginate_query(query, page, per_page)
