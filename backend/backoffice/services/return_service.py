# backend/backoffice/services/return_service.py
"""
Customer return restocking.

WHY: Returned goods are recorded against the order item they came from so
nothing can be returned twice. Only sellable goods go back on the shelf.

RULES:
1. Original order must be in a returnable status
2. Each item resolves to an order item (by id, else first item for the product)
3. Returnable = original quantity - already returned, counting earlier lines
   of the same request
4. SELLABLE items post RETURN_RESTOCK linked to the return item; other
   conditions are recorded without a stock movement
5. Refund payments that do not add up to the item refunds are logged, not rejected
6. The order becomes RETURNED once every item is fully returned, otherwise
   PARTIALLY_RETURNED
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Sequence

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Order, OrderItem, Payment, Return, ReturnItem
from ..models.enums import (
    InventoryTransactionType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ReturnItemCondition,
    ReturnStatus,
)
from ..quantity import QUANTUM, ZERO, optional_quantity, to_money, to_quantity
from .concurrency import lock_for_update
from .document_service import next_document_number
from .ledger_service import Linkage
from .pagination import paginate_query
from .state_machines import ORDER_RETURN, check_order_transition, check_return_transition, require
from .tenant_service import get_scoped, require_location
from .unit_of_work import unit_of_work


@dataclass(frozen=True)
class ReturnItemInput:
    product_id: int
    quantity: Any
    condition: ReturnItemCondition | str = ReturnItemCondition.SELLABLE
    original_order_item_id: Optional[int] = None
    unit_refund_amount: Any = None
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None


@dataclass(frozen=True)
class RefundPaymentInput:
    payment_method: PaymentMethod | str
    amount: Any
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class _ResolvedItem:
    order_item: OrderItem
    quantity: Decimal
    unit_refund: Decimal
    line_refund: Decimal
    condition: ReturnItemCondition
    lot_number: Optional[str]
    serial_number: Optional[str]

    @property
    def restock(self) -> bool:
        return (
            self.condition == ReturnItemCondition.SELLABLE
            and self.order_item.product.is_stock_tracked
        )


def _returned_so_far(order_item_ids: list[int]) -> dict[int, Decimal]:
    if not order_item_ids:
        return {}
    rows = (
        db.session.query(ReturnItem.original_order_item_id, func.sum(ReturnItem.quantity))
        .filter(ReturnItem.original_order_item_id.in_(order_item_ids))
        .group_by(ReturnItem.original_order_item_id)
        .all()
    )
    return {item_id: to_quantity(total) for item_id, total in rows if total is not None}


def _resolve_order_item(order: Order, entry: ReturnItemInput) -> OrderItem:
    if entry.original_order_item_id is not None:
        for order_item in order.items:
            if order_item.id == entry.original_order_item_id:
                if order_item.product_id != entry.product_id:
                    raise ValidationError(
                        f"Order item {order_item.id} is for product {order_item.product_id}, "
                        f"not {entry.product_id}",
                        {
                            "original_order_item_id": order_item.id,
                            "product_id": entry.product_id,
                        },
                    )
                return order_item
        raise ValidationError(
            f"Order item {entry.original_order_item_id} not found on order {order.order_number}",
            {"original_order_item_id": entry.original_order_item_id, "order_id": order.id},
        )

    for order_item in order.items:
        if order_item.product_id == entry.product_id:
            return order_item
    raise ValidationError(
        f"Product {entry.product_id} was not sold on order {order.order_number}",
        {"product_id": entry.product_id, "order_id": order.id},
    )


def _resolve_items(order: Order, items: Sequence[ReturnItemInput]) -> list[_ResolvedItem]:
    returned = _returned_so_far([order_item.id for order_item in order.items])
    resolved = []

    for entry in items:
        quantity = to_quantity(entry.quantity)
        if quantity <= 0:
            continue
        try:
            condition = ReturnItemCondition(entry.condition)
        except ValueError:
            raise ValidationError(
                f"Invalid return condition {entry.condition!r}",
                {"condition": str(entry.condition)},
            )

        order_item = _resolve_order_item(order, entry)
        already = returned.get(order_item.id, ZERO)
        max_returnable = order_item.quantity - already
        if quantity > max_returnable:
            raise ValidationError(
                f"Cannot return quantity {quantity} for product {entry.product_id} "
                f"(order item {order_item.id}). Max returnable: {max_returnable}",
                {
                    "product_id": entry.product_id,
                    "original_order_item_id": order_item.id,
                    "requested": str(quantity),
                    "max_returnable": str(max_returnable),
                },
            )
        returned[order_item.id] = already + quantity

        unit_refund = optional_quantity(entry.unit_refund_amount, field="unit_refund_amount")
        if unit_refund is None:
            unit_refund = order_item.unit_price
        if unit_refund < 0:
            raise ValidationError(
                "Refund amount cannot be negative",
                {"product_id": entry.product_id, "unit_refund_amount": str(unit_refund)},
            )

        resolved.append(_ResolvedItem(
            order_item=order_item,
            quantity=quantity,
            unit_refund=unit_refund,
            line_refund=(quantity * unit_refund).quantize(QUANTUM, rounding=ROUND_HALF_UP),
            condition=condition,
            lot_number=entry.lot_number,
            serial_number=entry.serial_number,
        ))

    return resolved


def _prepare_refunds(refund_payments: Sequence[RefundPaymentInput] | None) -> list[tuple[RefundPaymentInput, PaymentMethod, Decimal]]:
    prepared = []
    for payment in refund_payments or []:
        try:
            method = PaymentMethod(payment.payment_method)
        except ValueError:
            raise ValidationError(
                f"Invalid payment method {payment.payment_method!r}",
                {"payment_method": str(payment.payment_method)},
            )
        amount = to_money(payment.amount)
        if amount <= 0:
            raise ValidationError(
                "Refund payment amount must be positive",
                {"payment_method": method.value, "amount": str(amount)},
            )
        prepared.append((payment, method, amount))
    return prepared


def create_return(
    tenant_id: int,
    user_id: int,
    original_order_id: int,
    location_id: int,
    items: Sequence[ReturnItemInput],
    *,
    refund_payments: Sequence[RefundPaymentInput] | None = None,
    reason: str | None = None,
    customer_id: int | None = None,
) -> Return:
    """
    Process a return against an order and restock sellable goods.

    Returns:
        Return: committed return (status COMPLETED) with items and refunds

    Raises:
        NotFoundError: order not in tenant
        InvalidTransitionError: order status does not allow returns
        ValidationError: inactive/unknown location, unresolved item,
            over-return, no valid items
    """
    order = get_scoped(Order, tenant_id, original_order_id, label="Order")
    require(check_order_transition(order.status, ORDER_RETURN))
    require_location(tenant_id, location_id, active_only=True)

    resolved = _resolve_items(order, items)
    if not resolved:
        raise ValidationError(
            "Return requires at least one item with a positive quantity",
            {"original_order_id": original_order_id},
        )
    refunds = _prepare_refunds(refund_payments)

    refund_subtotal = sum((item.line_refund for item in resolved), ZERO)
    refund_paid = sum((amount for _, _, amount in refunds), ZERO)
    if refunds and refund_paid != refund_subtotal:
        current_app.logger.warning(
            "Refund payment total %s does not match item refund subtotal %s for order %s",
            refund_paid, refund_subtotal, order.order_number,
        )

    with unit_of_work(tenant_id) as uow:
        order = lock_for_update(
            db.session.query(Order).filter_by(id=original_order_id, tenant_id=tenant_id)
        ).one()

        return_doc = Return(
            tenant_id=tenant_id,
            original_order_id=order.id,
            location_id=location_id,
            customer_id=customer_id if customer_id is not None else order.customer_id,
            return_number=next_document_number(
                tenant_id=tenant_id,
                document_type="RETURN",
                prefix="RTN-",
                model=Return,
                column=Return.return_number,
            ),
            status=ReturnStatus.COMPLETED.value,
            reason=reason,
            total_refund_amount=refund_subtotal,
            processed_by_user_id=user_id,
        )
        db.session.add(return_doc)
        db.session.flush()

        restocked = 0
        for item in resolved:
            return_item = ReturnItem(
                tenant_id=tenant_id,
                return_id=return_doc.id,
                product_id=item.order_item.product_id,
                original_order_item_id=item.order_item.id,
                quantity=item.quantity,
                unit_refund_amount=item.unit_refund,
                line_refund_amount=item.line_refund,
                condition=item.condition.value,
                restock=item.restock,
                lot_number=item.lot_number,
                serial_number=item.serial_number,
            )
            db.session.add(return_item)
            db.session.flush()

            if not item.restock:
                current_app.logger.info(
                    "Return %s: product %s returned %s, not restocked",
                    return_doc.return_number, item.order_item.product_id, item.condition.value,
                )
                continue

            uow.ledger.record_movement(
                user_id=user_id,
                product_id=item.order_item.product_id,
                location_id=location_id,
                quantity_change=item.quantity,
                transaction_type=InventoryTransactionType.RETURN_RESTOCK,
                linkage=Linkage.for_return_item(return_item.id),
                notes=f"Restock from return {return_doc.return_number}",
                lot_number=item.lot_number,
                serial_number=item.serial_number,
            )
            restocked += 1

        for payment, method, amount in refunds:
            db.session.add(Payment(
                tenant_id=tenant_id,
                order_id=order.id,
                return_id=return_doc.id,
                payment_method=method.value,
                amount=amount,
                currency_code=order.currency_code,
                status=PaymentStatus.COMPLETED.value,
                transaction_reference=payment.transaction_reference,
                notes=payment.notes,
                processed_by_user_id=user_id,
            ))
        db.session.flush()

        returned = _returned_so_far([order_item.id for order_item in order.items])
        fully_returned = all(
            returned.get(order_item.id, ZERO) >= order_item.quantity for order_item in order.items
        )
        order.status = (
            OrderStatus.RETURNED.value if fully_returned else OrderStatus.PARTIALLY_RETURNED.value
        )

    current_app.logger.info(
        "Return %s processed for order %s: %s item(s), %s restocked, refund %s",
        return_doc.return_number, order.order_number, len(resolved), restocked, refund_subtotal,
    )
    return return_doc


def update_return_status(
    tenant_id: int,
    user_id: int,
    return_id: int,
    status: ReturnStatus | str,
    *,
    notes: str | None = None,
) -> Return:
    """
    Move a return through PENDING -> APPROVED | REJECTED, APPROVED -> COMPLETED.

    Setting the current status again is a no-op. Notes are appended to the
    return reason with the acting user.
    """
    try:
        target = ReturnStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid return status {status!r}", {"status": str(status)})

    with unit_of_work(tenant_id):
        return_doc = lock_for_update(
            db.session.query(Return).filter_by(id=return_id, tenant_id=tenant_id)
        ).first()
        if return_doc is None:
            get_scoped(Return, tenant_id, return_id, label="Return")

        if return_doc.status == target.value:
            current_app.logger.info(
                "Return %s is already %s", return_doc.return_number, target.value
            )
            return return_doc

        require(check_return_transition(return_doc.status, target))
        return_doc.status = target.value
        if notes:
            entry = f"[{target.value} by user {user_id}]: {notes}"
            return_doc.reason = f"{return_doc.reason}\n{entry}" if return_doc.reason else entry

    current_app.logger.info("Return %s status updated to %s", return_doc.return_number, target.value)
    return return_doc


def get_return(tenant_id: int, return_id: int) -> Return:
    return get_scoped(Return, tenant_id, return_id, label="Return")


def list_returns(
    tenant_id: int,
    *,
    status: str | None = None,
    original_order_id: int | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(Return).filter(Return.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(Return.status == status)
    if original_order_id is not None:
        query = query.filter(Return.original_order_id == original_order_id)
    query = query.order_by(Return.created_at.desc(), Return.id.desc())
    return paginate_query(query, page, per_page)
