"""
Explicit state machines for inventory documents.

Each entity has one transition table and one ``check_*`` function that
answers "may <action> happen from <current status>?" with a ``Transition``
value. Services never compare statuses inline; they call ``require()`` on the
result, which raises ``InvalidTransitionError`` carrying the reason.

TABLES:
- Transfer: actions ship / receive / cancel
- StockCount: actions enter_counts / review / post / cancel
- StockCountItem: actions count / APPROVED / RECOUNT_REQUESTED / SKIPPED
- Order: target statuses plus the cancel / allocate / return actions
- Return: target statuses
- PurchaseOrder: actions submit / approve / send / receive / cancel
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from ..errors import InvalidTransitionError
from ..models.enums import (
    OrderStatus,
    PurchaseOrderStatus,
    ReturnStatus,
    StockCountItemStatus,
    StockCountStatus,
    TransferStatus,
)


@dataclass(frozen=True)
class Transition:
    entity: str
    current: str
    action: str
    allowed: bool
    reason: Optional[str] = None


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class StateMachine:
    """Transition table keyed by current status -> permitted actions."""

    def __init__(self, entity: str, table: Mapping[str, frozenset]):
        self.entity = entity
        self.table = table

    def check(self, current, action) -> Transition:
        current_value = _value(current)
        action_value = _value(action)
        permitted = self.table.get(current_value)
        if permitted is None:
            return Transition(
                self.entity, current_value, action_value, False,
                f"Unknown {self.entity} status {current_value}",
            )
        if action_value not in permitted:
            if action_value in self.table:
                reason = f"Cannot move {self.entity} from {current_value} to {action_value}"
            else:
                verb = action_value.lower().replace("_", " ")
                reason = f"Cannot {verb} {self.entity} in {current_value} status"
            return Transition(self.entity, current_value, action_value, False, reason)
        return Transition(self.entity, current_value, action_value, True)

    def allowed_from(self, action) -> set[str]:
        action_value = _value(action)
        return {status for status, actions in self.table.items() if action_value in actions}


def require(transition: Transition) -> Transition:
    """Raise InvalidTransitionError unless the transition is allowed."""
    if not transition.allowed:
        raise InvalidTransitionError(
            transition.reason or "Transition not allowed",
            {
                "entity": transition.entity,
                "current_status": transition.current,
                "action": transition.action,
            },
        )
    return transition


# =============================================================================
# Transfer
# =============================================================================

TRANSFER_SHIP = "SHIP"
TRANSFER_RECEIVE = "RECEIVE"
TRANSFER_CANCEL = "CANCEL"

TRANSFER_MACHINE = StateMachine("transfer", {
    TransferStatus.PENDING.value: frozenset({TRANSFER_SHIP, TRANSFER_CANCEL}),
    TransferStatus.IN_TRANSIT.value: frozenset({TRANSFER_RECEIVE, TRANSFER_CANCEL}),
    TransferStatus.COMPLETED.value: frozenset(),
    TransferStatus.CANCELLED.value: frozenset(),
})


def check_transfer_transition(current, action) -> Transition:
    return TRANSFER_MACHINE.check(current, action)


# =============================================================================
# Stock count (header and items)
# =============================================================================

COUNT_ENTER = "ENTER_COUNTS"
COUNT_REVIEW = "REVIEW"
COUNT_POST = "POST"
COUNT_CANCEL = "CANCEL"

STOCK_COUNT_MACHINE = StateMachine("stock count", {
    StockCountStatus.PENDING.value: frozenset({COUNT_ENTER, COUNT_CANCEL}),
    StockCountStatus.COUNTING.value: frozenset({COUNT_ENTER, COUNT_REVIEW, COUNT_CANCEL}),
    StockCountStatus.REVIEW.value: frozenset({COUNT_ENTER, COUNT_REVIEW, COUNT_POST, COUNT_CANCEL}),
    StockCountStatus.COMPLETED.value: frozenset(),
    StockCountStatus.CANCELLED.value: frozenset(),
})

ITEM_COUNT = "COUNT"
REVIEW_ACTIONS = frozenset({
    StockCountItemStatus.APPROVED.value,
    StockCountItemStatus.RECOUNT_REQUESTED.value,
    StockCountItemStatus.SKIPPED.value,
})

STOCK_COUNT_ITEM_MACHINE = StateMachine("stock count item", {
    StockCountItemStatus.PENDING.value: frozenset({ITEM_COUNT}),
    StockCountItemStatus.COUNTED.value: frozenset({ITEM_COUNT}) | REVIEW_ACTIONS,
    StockCountItemStatus.RECOUNT_REQUESTED.value: frozenset({ITEM_COUNT}) | REVIEW_ACTIONS,
    StockCountItemStatus.APPROVED.value: frozenset({ITEM_COUNT}),
    StockCountItemStatus.SKIPPED.value: frozenset({ITEM_COUNT}),
})


def check_stock_count_transition(current, action) -> Transition:
    return STOCK_COUNT_MACHINE.check(current, action)


def check_count_item_transition(current, action) -> Transition:
    return STOCK_COUNT_ITEM_MACHINE.check(current, action)


# =============================================================================
# Order
# =============================================================================

ORDER_CANCEL = "CANCEL"
ORDER_RETURN = "RETURN"

# Statuses whose entry consumed stock through SALE movements
ALLOCATING_ORDER_STATUSES = frozenset({OrderStatus.PROCESSING.value})

ORDER_MACHINE = StateMachine("order", {
    OrderStatus.PENDING_PAYMENT.value: frozenset({
        OrderStatus.PROCESSING.value, OrderStatus.SUSPENDED.value, ORDER_CANCEL,
    }),
    OrderStatus.SUSPENDED.value: frozenset({
        OrderStatus.PENDING_PAYMENT.value, OrderStatus.PROCESSING.value, ORDER_CANCEL,
    }),
    OrderStatus.PROCESSING.value: frozenset({
        OrderStatus.SHIPPED.value, OrderStatus.COMPLETED.value, ORDER_CANCEL, ORDER_RETURN,
    }),
    OrderStatus.SHIPPED.value: frozenset({OrderStatus.COMPLETED.value, ORDER_RETURN}),
    OrderStatus.COMPLETED.value: frozenset({ORDER_RETURN}),
    OrderStatus.PARTIALLY_RETURNED.value: frozenset({ORDER_RETURN}),
    OrderStatus.RETURNED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
})


def check_order_transition(current, action) -> Transition:
    """action is a target OrderStatus, or ORDER_CANCEL / ORDER_RETURN."""
    return ORDER_MACHINE.check(current, action)


# =============================================================================
# Return
# =============================================================================

RETURN_MACHINE = StateMachine("return", {
    ReturnStatus.PENDING.value: frozenset({ReturnStatus.APPROVED.value, ReturnStatus.REJECTED.value}),
    ReturnStatus.APPROVED.value: frozenset({ReturnStatus.COMPLETED.value}),
    ReturnStatus.COMPLETED.value: frozenset(),
    ReturnStatus.REJECTED.value: frozenset(),
})


def check_return_transition(current, target) -> Transition:
    return RETURN_MACHINE.check(current, target)


# =============================================================================
# Purchase order
# =============================================================================

PO_SUBMIT = "SUBMIT"
PO_APPROVE = "APPROVE"
PO_SEND = "SEND"
PO_RECEIVE = "RECEIVE"
PO_CANCEL = "CANCEL"

PURCHASE_ORDER_MACHINE = StateMachine("purchase order", {
    PurchaseOrderStatus.DRAFT.value: frozenset({PO_SUBMIT, PO_APPROVE, PO_CANCEL}),
    PurchaseOrderStatus.PENDING_APPROVAL.value: frozenset({PO_APPROVE, PO_CANCEL}),
    PurchaseOrderStatus.APPROVED.value: frozenset({PO_SEND, PO_CANCEL}),
    PurchaseOrderStatus.SENT.value: frozenset({PO_RECEIVE, PO_CANCEL}),
    PurchaseOrderStatus.PARTIALLY_RECEIVED.value: frozenset({PO_RECEIVE, PO_CANCEL}),
    PurchaseOrderStatus.FULLY_RECEIVED.value: frozenset(),
    PurchaseOrderStatus.CANCELLED.value: frozenset(),
})


def check_purchase_order_transition(current, action) -> Transition:
    return PURCHASE_ORDER_MACHINE.check(current, action)
