# backend/backoffice/services/order_service.py
"""
Order fulfillment allocator.

WHY: An order that reaches PROCESSING consumes stock at its location through
SALE movements. Availability is checked for the whole order before anything
is written, so a short line rejects the order instead of half-allocating it.

LIFECYCLE:
1. PENDING_PAYMENT / SUSPENDED: no stock consumed
2. PROCESSING: one SALE movement per stock-tracked item
3. SHIPPED / COMPLETED: stock stays consumed
4. CANCELLED: SALE movements mirrored back as RETURN_RESTOCK
5. RETURNED / PARTIALLY_RETURNED: driven by return_service

RULES:
- available = on_hand - allocated, zero when no balance row exists
- Requested quantity is aggregated per product across the order
- Short stock is allowed only when the ledger policy allows backorders
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Sequence

from flask import current_app

from ..errors import ConsistencyError, InsufficientStockError, ValidationError
from ..extensions import db
from ..models import InventoryTransaction, Order, OrderItem, Product
from ..models.enums import InventoryTransactionType, OrderStatus, OrderType
from ..quantity import QUANTUM, ZERO, to_money, to_quantity
from .concurrency import lock_for_update
from .document_service import next_document_number
from .ledger_service import Linkage, StockLedger, get_available_quantity
from .pagination import paginate_query
from .policy_service import LedgerPolicy, resolve_ledger_policy
from .state_machines import (
    ALLOCATING_ORDER_STATUSES,
    ORDER_CANCEL,
    check_order_transition,
    require,
)
from .tenant_service import get_scoped, require_location, require_products
from .unit_of_work import unit_of_work


@dataclass(frozen=True)
class OrderItemInput:
    product_id: int
    quantity: Any
    unit_price: Any = None
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None
    notes: Optional[str] = None


def _coerce_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field} {value!r}. Allowed: {allowed}",
            {"field": field, "value": str(value)},
        )


def _check_availability(
    tenant_id: int,
    location_id: int,
    requested: Sequence[tuple[int, Decimal]],
    products: dict[int, Product],
    policy: LedgerPolicy,
) -> bool:
    """
    Compare aggregated requested quantities with available stock.

    Returns True when the order is short but backorders are allowed.
    Raises InsufficientStockError for the first short product otherwise.
    """
    totals: dict[int, Decimal] = {}
    for product_id, quantity in requested:
        if not products[product_id].is_stock_tracked:
            continue
        totals[product_id] = totals.get(product_id, ZERO) + quantity

    backordered = False
    for product_id, quantity in totals.items():
        available = get_available_quantity(tenant_id, product_id, location_id)
        if available >= quantity:
            continue
        if policy.allow_backorder:
            backordered = True
            continue
        product = products[product_id]
        raise InsufficientStockError(
            f"Insufficient stock for {product.sku}. Available: {available}, requested: {quantity}",
            {
                "product_id": product_id,
                "sku": product.sku,
                "location_id": location_id,
                "available": str(available),
                "requested": str(quantity),
            },
        )
    return backordered


def _allocate_stock(ledger: StockLedger, order: Order, products: dict[int, Product], user_id: int) -> int:
    moved = 0
    for item in order.items:
        if not products[item.product_id].is_stock_tracked:
            continue
        ledger.record_movement(
            user_id=user_id,
            product_id=item.product_id,
            location_id=order.location_id,
            quantity_change=-item.quantity,
            transaction_type=InventoryTransactionType.SALE,
            linkage=Linkage.for_order(order.id, item.id),
            notes=f"Order {order.order_number}",
            lot_number=item.lot_number,
            serial_number=item.serial_number,
        )
        moved += 1
    return moved


def _lock_order(tenant_id: int, order_id: int) -> Order:
    order = lock_for_update(
        db.session.query(Order).filter_by(id=order_id, tenant_id=tenant_id)
    ).first()
    if order is None:
        return get_scoped(Order, tenant_id, order_id, label="Order")
    return order


def create_order(
    tenant_id: int,
    user_id: int,
    location_id: int,
    items: Sequence[OrderItemInput],
    *,
    customer_id: int | None = None,
    status: OrderStatus | str = OrderStatus.PROCESSING,
    order_type: OrderType | str = OrderType.POS,
    discount_amount: Any = 0,
    shipping_cost: Any = 0,
    notes: str | None = None,
) -> Order:
    """
    Create an order and, when it starts in PROCESSING, allocate its stock.

    Returns:
        Order: committed order with items

    Raises:
        ValidationError: no items, unknown location/products, bad quantity or price
        InsufficientStockError: short stock and backorders not allowed
    """
    status = _coerce_enum(OrderStatus, status, "status")
    order_type = _coerce_enum(OrderType, order_type, "order_type")
    if status.value not in ALLOCATING_ORDER_STATUSES and status not in (
        OrderStatus.PENDING_PAYMENT,
        OrderStatus.SUSPENDED,
    ):
        raise ValidationError(
            f"Orders cannot be created in {status.value} status",
            {"status": status.value},
        )
    if not items:
        raise ValidationError("Order requires at least one item")

    require_location(tenant_id, location_id)
    products = require_products(tenant_id, [item.product_id for item in items], stock_tracked=False)

    prepared = []
    for item in items:
        product = products[item.product_id]
        quantity = to_quantity(item.quantity)
        if quantity <= 0:
            raise ValidationError(
                f"Quantity for {product.sku} must be positive",
                {"product_id": product.id, "quantity": str(quantity)},
            )
        if item.unit_price is None:
            if product.base_price is None:
                raise ValidationError(
                    f"Product {product.sku} has no price",
                    {"product_id": product.id},
                )
            unit_price = to_money(product.base_price, field="unit_price")
        else:
            unit_price = to_money(item.unit_price, field="unit_price")
        if unit_price < 0:
            raise ValidationError(
                f"Unit price for {product.sku} cannot be negative",
                {"product_id": product.id, "unit_price": str(unit_price)},
            )
        prepared.append((item, quantity, unit_price))

    discount = to_money(discount_amount, field="discount_amount")
    shipping = to_money(shipping_cost, field="shipping_cost")
    if discount < 0 or shipping < 0:
        raise ValidationError(
            "Discount and shipping cannot be negative",
            {"discount_amount": str(discount), "shipping_cost": str(shipping)},
        )

    policy = resolve_ledger_policy(tenant_id)
    backordered = _check_availability(
        tenant_id,
        location_id,
        [(item.product_id, quantity) for item, quantity, _ in prepared],
        products,
        policy,
    )
    if backordered:
        # Backordered lines are sold into negative on-hand
        policy = replace(policy, allow_negative_stock=True)

    with unit_of_work(tenant_id, policy=policy) as uow:
        order = Order(
            tenant_id=tenant_id,
            location_id=location_id,
            customer_id=customer_id,
            order_number=next_document_number(
                tenant_id=tenant_id,
                document_type="ORDER",
                prefix="SO-",
                model=Order,
                column=Order.order_number,
            ),
            order_type=order_type.value,
            status=status.value,
            is_backordered=backordered,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(order)
        db.session.flush()

        subtotal = ZERO
        for item, quantity, unit_price in prepared:
            line_total = (quantity * unit_price).quantize(QUANTUM, rounding=ROUND_HALF_UP)
            subtotal += line_total
            db.session.add(OrderItem(
                tenant_id=tenant_id,
                order_id=order.id,
                product_id=item.product_id,
                quantity=quantity,
                unit_price=unit_price,
                original_unit_price=products[item.product_id].base_price,
                line_total=line_total,
                lot_number=item.lot_number,
                serial_number=item.serial_number,
                notes=item.notes,
            ))

        tax = ZERO
        order.subtotal = subtotal
        order.discount_amount = discount
        order.shipping_cost = shipping
        order.tax_amount = tax
        order.total_amount = subtotal - discount + shipping + tax
        db.session.flush()

        if status.value in ALLOCATING_ORDER_STATUSES:
            _allocate_stock(uow.ledger, order, products, user_id)

    current_app.logger.info(
        "Order %s created at location %s: %s item(s), total %s, status %s%s",
        order.order_number, location_id, len(prepared), order.total_amount, order.status,
        " (backordered)" if backordered else "",
    )
    return order


def cancel_order(
    tenant_id: int,
    user_id: int,
    order_id: int,
    reason: str = "Cancelled by user",
) -> Order:
    """
    Cancel an order and mirror back the stock it consumed.

    Every SALE movement linked to the order is reversed with the exact
    opposite delta (RETURN_RESTOCK) on the same product, location, lot,
    serial and order item.

    Raises:
        NotFoundError: order not in tenant
        InvalidTransitionError: order is SHIPPED, COMPLETED, CANCELLED,
            RETURNED or PARTIALLY_RETURNED
    """
    with unit_of_work(tenant_id) as uow:
        order = _lock_order(tenant_id, order_id)
        require(check_order_transition(order.status, ORDER_CANCEL))

        prior_status = order.status
        order.status = OrderStatus.CANCELLED.value
        note = f"Cancelled: {reason}"
        order.notes = f"{order.notes}\n{note}" if order.notes else note

        reversed_count = 0
        if prior_status in ALLOCATING_ORDER_STATUSES:
            item_ids = {item.id for item in order.items}
            sales = (
                db.session.query(InventoryTransaction)
                .filter(
                    InventoryTransaction.tenant_id == tenant_id,
                    InventoryTransaction.related_order_id == order.id,
                    InventoryTransaction.transaction_type == InventoryTransactionType.SALE.value,
                )
                .order_by(InventoryTransaction.id.asc())
                .all()
            )
            for sale in sales:
                if sale.related_order_item_id is not None and sale.related_order_item_id not in item_ids:
                    raise ConsistencyError(
                        f"SALE transaction {sale.id} references item "
                        f"{sale.related_order_item_id} missing from order {order.order_number}",
                        {"order_id": order.id, "transaction_id": sale.id},
                    )
                uow.ledger.record_movement(
                    user_id=user_id,
                    product_id=sale.product_id,
                    location_id=sale.location_id,
                    quantity_change=-sale.quantity_change,
                    transaction_type=InventoryTransactionType.RETURN_RESTOCK,
                    linkage=Linkage.for_order(order.id, sale.related_order_item_id),
                    notes=f"Order {order.order_number} cancelled",
                    lot_number=sale.lot_number,
                    serial_number=sale.serial_number,
                )
                reversed_count += 1

            if not sales:
                current_app.logger.warning(
                    "Order %s was %s but had no SALE transactions to reverse",
                    order.order_number, prior_status,
                )

    current_app.logger.info(
        "Order %s cancelled from %s; %s movement(s) reversed",
        order.order_number, prior_status, reversed_count,
    )
    return order


def update_order_status(
    tenant_id: int,
    user_id: int,
    order_id: int,
    status: OrderStatus | str,
) -> Order:
    """
    Move an order to a new status through the order state machine.

    Entering PROCESSING from a status that never allocated consumes stock
    exactly as creation does. CANCELLED is delegated to cancel_order.
    """
    target = _coerce_enum(OrderStatus, status, "status")
    if target == OrderStatus.CANCELLED:
        return cancel_order(tenant_id, user_id, order_id)

    policy = resolve_ledger_policy(tenant_id)
    with unit_of_work(tenant_id, policy=policy) as uow:
        order = _lock_order(tenant_id, order_id)
        require(check_order_transition(order.status, target))

        prior_status = order.status
        allocates = (
            target.value in ALLOCATING_ORDER_STATUSES
            and prior_status not in ALLOCATING_ORDER_STATUSES
        )
        if allocates:
            products = require_products(
                tenant_id, [item.product_id for item in order.items], stock_tracked=False
            )
            order.is_backordered = _check_availability(
                tenant_id,
                order.location_id,
                [(item.product_id, item.quantity) for item in order.items],
                products,
                policy,
            )
            if order.is_backordered:
                uow.policy = replace(policy, allow_negative_stock=True)
            _allocate_stock(uow.ledger, order, products, user_id)

        order.status = target.value

    current_app.logger.info(
        "Order %s moved from %s to %s", order.order_number, prior_status, target.value
    )
    return order


def get_order(tenant_id: int, order_id: int) -> Order:
    return get_scoped(Order, tenant_id, order_id, label="Order")


def list_orders(
    tenant_id: int,
    *,
    status: str | None = None,
    location_id: int | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(Order).filter(Order.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(Order.status == status)
    if location_id is not None:
        query = query.filter(Order.location_id == location_id)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate_query(query, page, per_page)
