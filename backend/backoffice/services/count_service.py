# backend/backoffice/services/count_service.py
"""
Physical stock count workflow.

WHY: Counting the shelf and correcting the books are separate steps done by
different people. Each phase is its own short unit of work so a count can
stay open for hours without holding locks.

LIFECYCLE:
1. PENDING: initiated; items snapshot on-hand and average cost
2. COUNTING: first counts entered
3. REVIEW: reviewer approves, skips or asks for a recount per item
4. COMPLETED: approved non-zero variances posted as one Adjustment
5. CANCELLED: abandoned before posting; no stock effect

Variance is counted - snapshot. Stock that moved after initiation is not
part of the variance.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Adjustment, InventoryBalance, Product, StockCount, StockCountItem
from ..models.enums import (
    InventoryTransactionType,
    StockCountItemStatus,
    StockCountStatus,
    StockCountType,
)
from ..quantity import ZERO, to_quantity
from ..time_utils import utcnow
from .adjustment_service import PreparedLine, open_adjustment, post_adjustment_lines
from .concurrency import lock_for_update
from .document_service import next_document_number
from .pagination import paginate_query
from .state_machines import (
    COUNT_CANCEL,
    COUNT_ENTER,
    COUNT_POST,
    COUNT_REVIEW,
    ITEM_COUNT,
    REVIEW_ACTIONS,
    check_count_item_transition,
    check_stock_count_transition,
    require,
)
from .tenant_service import get_scoped, require_location, require_products
from .unit_of_work import unit_of_work

VARIANCE_REASON_CODE = "STOCK_COUNT_VARIANCE"


@dataclass(frozen=True)
class CountEntryInput:
    stock_count_item_id: int
    counted_quantity: Any
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReviewActionInput:
    stock_count_item_id: int
    action: StockCountItemStatus | str
    notes: Optional[str] = None


def _lock_count(tenant_id: int, count_id: int) -> StockCount:
    stock_count = lock_for_update(
        db.session.query(StockCount).filter_by(id=count_id, tenant_id=tenant_id)
    ).first()
    if stock_count is None:
        return get_scoped(StockCount, tenant_id, count_id, label="Stock count")
    return stock_count


def _snapshot_rows(tenant_id: int, location_id: int, count_type: StockCountType, product_ids):
    """(product_id, on_hand, average_cost) rows in scope for a new count."""
    if count_type == StockCountType.CYCLE and product_ids:
        require_products(tenant_id, product_ids)
        balances = {
            balance.product_id: balance
            for balance in db.session.query(InventoryBalance).filter(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.location_id == location_id,
                InventoryBalance.product_id.in_(product_ids),
            )
        }
        rows = []
        for product_id in dict.fromkeys(product_ids):
            balance = balances.get(product_id)
            if balance is None:
                rows.append((product_id, ZERO, None))
            else:
                rows.append((product_id, balance.quantity_on_hand, balance.average_cost))
        return rows

    if count_type == StockCountType.CYCLE:
        current_app.logger.warning(
            "Cycle count at location %s started without product ids; using full count scope",
            location_id,
        )

    balances = (
        db.session.query(InventoryBalance)
        .join(Product, Product.id == InventoryBalance.product_id)
        .filter(
            InventoryBalance.tenant_id == tenant_id,
            InventoryBalance.location_id == location_id,
            Product.is_active.is_(True),
            Product.is_stock_tracked.is_(True),
        )
        .order_by(InventoryBalance.product_id.asc())
        .all()
    )
    return [(b.product_id, b.quantity_on_hand, b.average_cost) for b in balances]


def initiate_stock_count(
    tenant_id: int,
    user_id: int,
    location_id: int,
    count_type: StockCountType | str = StockCountType.FULL,
    *,
    product_ids: Sequence[int] | None = None,
    notes: str | None = None,
) -> StockCount:
    """
    Open a count and snapshot on-hand quantities for its scope.

    Raises:
        ValidationError: inactive/unknown location, bad count type, unknown or
            untracked cycle product, nothing to count
    """
    try:
        count_type = StockCountType(count_type)
    except ValueError:
        raise ValidationError(f"Invalid count type {count_type!r}", {"count_type": str(count_type)})

    require_location(tenant_id, location_id, active_only=True)
    rows = _snapshot_rows(tenant_id, location_id, count_type, list(product_ids or []))
    if not rows:
        raise ValidationError(
            "No active, stock-tracked products found to count at this location",
            {"location_id": location_id},
        )

    year = utcnow().year
    with unit_of_work(tenant_id):
        stock_count = StockCount(
            tenant_id=tenant_id,
            location_id=location_id,
            count_number=next_document_number(
                tenant_id=tenant_id,
                document_type=f"STOCK_COUNT_{year}",
                prefix=f"SC-{year}-",
                model=StockCount,
                column=StockCount.count_number,
                pad=5,
            ),
            count_type=count_type.value,
            status=StockCountStatus.PENDING.value,
            notes=notes,
            initiated_by_user_id=user_id,
        )
        db.session.add(stock_count)
        db.session.flush()

        for product_id, on_hand, average_cost in rows:
            db.session.add(StockCountItem(
                tenant_id=tenant_id,
                stock_count_id=stock_count.id,
                product_id=product_id,
                snapshot_quantity=on_hand,
                unit_cost=average_cost,
                status=StockCountItemStatus.PENDING.value,
            ))

    current_app.logger.info(
        "Stock count %s (%s) initiated at location %s with %s item(s)",
        stock_count.count_number, count_type.value, location_id, len(rows),
    )
    return stock_count


def enter_count_data(
    tenant_id: int,
    user_id: int,
    count_id: int,
    items: Sequence[CountEntryInput],
) -> StockCount:
    """
    Record counted quantities. The first entry moves PENDING to COUNTING.

    Items that are not on this count are skipped with a warning.
    """
    with unit_of_work(tenant_id):
        stock_count = _lock_count(tenant_id, count_id)
        require(check_stock_count_transition(stock_count.status, COUNT_ENTER))

        if stock_count.status == StockCountStatus.PENDING.value:
            stock_count.status = StockCountStatus.COUNTING.value

        by_id = {item.id: item for item in stock_count.items}
        counted_at = utcnow()
        entered = 0
        for entry in items:
            item = by_id.get(entry.stock_count_item_id)
            if item is None:
                current_app.logger.warning(
                    "Stock count item %s is not on count %s; skipped",
                    entry.stock_count_item_id, stock_count.count_number,
                )
                continue

            counted = to_quantity(entry.counted_quantity, field="counted_quantity")
            if counted < 0:
                raise ValidationError(
                    f"Counted quantity for item {item.id} cannot be negative",
                    {"stock_count_item_id": item.id, "counted_quantity": str(counted)},
                )
            require(check_count_item_transition(item.status, ITEM_COUNT))

            item.counted_quantity = counted
            item.variance_quantity = counted - item.snapshot_quantity
            item.status = StockCountItemStatus.COUNTED.value
            item.counted_by_user_id = user_id
            item.counted_at = counted_at
            if entry.notes:
                item.notes = entry.notes
            entered += 1

    current_app.logger.info(
        "Stock count %s: %s count(s) entered", stock_count.count_number, entered
    )
    return stock_count


def review_stock_count(
    tenant_id: int,
    user_id: int,
    count_id: int,
    items: Sequence[ReviewActionInput],
) -> StockCount:
    """
    Apply reviewer decisions and move the count to REVIEW.

    Only COUNTED or RECOUNT_REQUESTED items change; review actions on other
    items are skipped with a warning.
    """
    actions = []
    for entry in items:
        action = entry.action.value if isinstance(entry.action, StockCountItemStatus) else str(entry.action)
        if action not in REVIEW_ACTIONS:
            raise ValidationError(
                f"Invalid review action {action!r}. Allowed: {', '.join(sorted(REVIEW_ACTIONS))}",
                {"stock_count_item_id": entry.stock_count_item_id, "action": action},
            )
        actions.append((entry, action))

    with unit_of_work(tenant_id):
        stock_count = _lock_count(tenant_id, count_id)
        require(check_stock_count_transition(stock_count.status, COUNT_REVIEW))

        reviewed_at = utcnow()
        stock_count.status = StockCountStatus.REVIEW.value
        stock_count.reviewed_by_user_id = user_id
        stock_count.reviewed_at = reviewed_at

        by_id = {item.id: item for item in stock_count.items}
        for entry, action in actions:
            item = by_id.get(entry.stock_count_item_id)
            if item is None or not check_count_item_transition(item.status, action).allowed:
                current_app.logger.warning(
                    "Review action %s skipped for item %s on count %s",
                    action, entry.stock_count_item_id, stock_count.count_number,
                )
                continue
            item.status = action
            item.reviewed_by_user_id = user_id
            item.reviewed_at = reviewed_at
            if entry.notes:
                item.notes = entry.notes

        unresolved = sum(
            1 for item in stock_count.items
            if item.status not in (StockCountItemStatus.APPROVED.value, StockCountItemStatus.SKIPPED.value)
        )

    if unresolved:
        current_app.logger.info(
            "Stock count %s reviewed; %s item(s) still awaiting count or recount",
            stock_count.count_number, unresolved,
        )
    else:
        current_app.logger.info(
            "Stock count %s fully reviewed and ready to post", stock_count.count_number
        )
    return stock_count


def post_stock_count_adjustments(
    tenant_id: int,
    user_id: int,
    count_id: int,
) -> tuple[StockCount, Optional[Adjustment], int]:
    """
    Post approved, non-zero variances and complete the count.

    Returns:
        (stock_count, adjustment or None, number of adjustment lines created)

    Raises:
        InvalidTransitionError: count is not in REVIEW
        InsufficientStockError: a negative variance would drive stock negative
    """
    with unit_of_work(tenant_id) as uow:
        stock_count = _lock_count(tenant_id, count_id)
        require(check_stock_count_transition(stock_count.status, COUNT_POST))

        approved = [
            item for item in stock_count.items
            if item.status == StockCountItemStatus.APPROVED.value
            and item.variance_quantity is not None
            and not item.variance_quantity.is_zero()
        ]

        adjustment = None
        created = []
        if approved:
            adjustment = open_adjustment(
                tenant_id=tenant_id,
                user_id=user_id,
                location_id=stock_count.location_id,
                reason_code=VARIANCE_REASON_CODE,
                notes=f"Variance from stock count {stock_count.count_number}",
            )
            created = post_adjustment_lines(
                uow.ledger,
                adjustment,
                [
                    PreparedLine(
                        product_id=item.product_id,
                        quantity_change=item.variance_quantity,
                        unit_cost=item.unit_cost,
                        lot_number=None,
                        serial_number=None,
                    )
                    for item in approved
                ],
                user_id=user_id,
                transaction_type=InventoryTransactionType.CYCLE_COUNT_ADJUSTMENT,
                notes=f"Variance from stock count {stock_count.count_number}",
            )
            stock_count.adjustment_id = adjustment.id

        completed_at = utcnow()
        stock_count.status = StockCountStatus.COMPLETED.value
        stock_count.completed_by_user_id = user_id
        stock_count.completed_at = completed_at

        counted_product_ids = [
            item.product_id for item in stock_count.items
            if item.status == StockCountItemStatus.APPROVED.value
        ]
        if counted_product_ids:
            db.session.query(InventoryBalance).filter(
                InventoryBalance.tenant_id == tenant_id,
                InventoryBalance.location_id == stock_count.location_id,
                InventoryBalance.product_id.in_(counted_product_ids),
            ).update({InventoryBalance.last_counted_at: completed_at}, synchronize_session=False)

    if adjustment is None:
        current_app.logger.info(
            "Stock count %s completed with no approved variances", stock_count.count_number
        )
    else:
        current_app.logger.info(
            "Stock count %s posted: adjustment %s with %s line(s)",
            stock_count.count_number, adjustment.adjustment_number, len(created),
        )
    return stock_count, adjustment, len(created)


def cancel_stock_count(tenant_id: int, user_id: int, count_id: int, *, reason: str | None = None) -> StockCount:
    """Abandon an open count. Nothing was posted, so no stock moves."""
    with unit_of_work(tenant_id):
        stock_count = _lock_count(tenant_id, count_id)
        require(check_stock_count_transition(stock_count.status, COUNT_CANCEL))

        stock_count.status = StockCountStatus.CANCELLED.value
        stock_count.completed_by_user_id = user_id
        stock_count.completed_at = utcnow()
        if reason:
            note = f"Cancelled: {reason}"
            stock_count.notes = f"{stock_count.notes}\n{note}" if stock_count.notes else note

    current_app.logger.info("Stock count %s cancelled", stock_count.count_number)
    return stock_count


def get_stock_count(tenant_id: int, count_id: int) -> StockCount:
    return get_scoped(StockCount, tenant_id, count_id, label="Stock count")


def get_count_summary(tenant_id: int, count_id: int) -> dict:
    """Item status tallies and variance totals for a count."""
    stock_count = get_stock_count(tenant_id, count_id)

    by_status = {status.value: 0 for status in StockCountItemStatus}
    net_variance = ZERO
    variance_value = ZERO
    items_with_variance = 0
    for item in stock_count.items:
        by_status[item.status] = by_status.get(item.status, 0) + 1
        if item.variance_quantity is None or item.variance_quantity.is_zero():
            continue
        items_with_variance += 1
        net_variance += item.variance_quantity
        if item.unit_cost is not None:
            variance_value += item.variance_quantity * item.unit_cost

    return {
        "id": stock_count.id,
        "count_number": stock_count.count_number,
        "status": stock_count.status,
        "total_items": len(stock_count.items),
        "items_by_status": by_status,
        "items_with_variance": items_with_variance,
        "net_variance_quantity": str(net_variance),
        "variance_value": str(variance_value.quantize(ZERO)),
        "adjustment_id": stock_count.adjustment_id,
    }


def list_stock_counts(
    tenant_id: int,
    *,
    status: str | None = None,
    location_id: int | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(StockCount).filter(StockCount.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(StockCount.status == status)
    if location_id is not None:
        query = query.filter(StockCount.location_id == location_id)
    query = query.order_by(StockCount.initiated_at.desc(), StockCount.id.desc())
    return paginate_query(query, page, per_page)
