# Overview: Stock ledger writer; the only code path that changes on-hand quantities.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Optional

from flask import current_app

from ..errors import InsufficientStockError, UsageError, ValidationError
from ..extensions import db
from ..models import InventoryBalance, InventoryTransaction
from ..models.enums import InventoryTransactionType
from ..quantity import QUANTUM, ZERO, optional_quantity, to_quantity
from .concurrency import increment_or_create
from .pagination import paginate_query
from .tenant_service import require_location, require_products

if TYPE_CHECKING:
    from .unit_of_work import UnitOfWork

"""
Stock Ledger Invariants (authoritative)

- quantity_on_hand changes only through StockLedger.record_movement.
- Each movement is one atomic increment of the balance row plus exactly one
  InventoryTransaction row, inside the caller's unit of work.
- The writer never begins, commits or rolls back; a raised error leaves the
  rollback to the enclosing unit of work.
- Negative stock is checked after the increment, against the value the
  database actually holds.
- Not idempotent: two calls are two movements.
"""


NOTES_MAX_LENGTH = 255


@dataclass(frozen=True)
class Linkage:
    """
    Which document a movement belongs to.

    At most one group may be set: order (+ item), adjustment, transfer,
    purchase order (+ item) or return item.
    """
    order_id: Optional[int] = None
    order_item_id: Optional[int] = None
    adjustment_id: Optional[int] = None
    transfer_id: Optional[int] = None
    purchase_order_id: Optional[int] = None
    purchase_order_item_id: Optional[int] = None
    return_item_id: Optional[int] = None

    def __post_init__(self):
        groups = [
            self.order_id is not None or self.order_item_id is not None,
            self.adjustment_id is not None,
            self.transfer_id is not None,
            self.purchase_order_id is not None or self.purchase_order_item_id is not None,
            self.return_item_id is not None,
        ]
        if sum(groups) > 1:
            raise UsageError("A stock movement may link to only one document", {"linkage": repr(self)})

    @classmethod
    def for_order(cls, order_id: int, order_item_id: Optional[int] = None) -> "Linkage":
        return cls(order_id=order_id, order_item_id=order_item_id)

    @classmethod
    def for_adjustment(cls, adjustment_id: int) -> "Linkage":
        return cls(adjustment_id=adjustment_id)

    @classmethod
    def for_transfer(cls, transfer_id: int) -> "Linkage":
        return cls(transfer_id=transfer_id)

    @classmethod
    def for_purchase_order(cls, purchase_order_id: int, purchase_order_item_id: Optional[int] = None) -> "Linkage":
        return cls(purchase_order_id=purchase_order_id, purchase_order_item_id=purchase_order_item_id)

    @classmethod
    def for_return_item(cls, return_item_id: int) -> "Linkage":
        return cls(return_item_id=return_item_id)


@dataclass(frozen=True)
class MovementResult:
    balance: InventoryBalance
    transaction: InventoryTransaction


class StockLedger:
    """
    Ledger writer bound to one unit of work.

    Obtain it from ``UnitOfWork.ledger``; it refuses to write once that unit
    of work has committed or rolled back.
    """

    def __init__(self, uow: "UnitOfWork"):
        self._uow = uow

    @property
    def tenant_id(self) -> int:
        return self._uow.tenant_id

    @property
    def policy(self):
        return self._uow.policy

    def record_movement(
        self,
        *,
        user_id: Optional[int],
        product_id: int,
        location_id: int,
        quantity_change,
        transaction_type: InventoryTransactionType | str,
        unit_cost=None,
        linkage: Optional[Linkage] = None,
        notes: Optional[str] = None,
        lot_number: Optional[str] = None,
        serial_number: Optional[str] = None,
    ) -> MovementResult:
        """
        Apply one signed quantity change to (tenant, product, location).

        Raises:
            UsageError: zero change, unknown transaction type, inactive unit of work
            InsufficientStockError: balance would go negative and policy forbids it
            ValidationError: bad quantity or cost, notes longer than NOTES_MAX_LENGTH
        """
        self._uow.ensure_active()

        change = to_quantity(quantity_change, field="quantity_change")
        if change.is_zero():
            raise UsageError(
                "Stock movement quantity_change must be non-zero",
                {"product_id": product_id, "location_id": location_id},
            )
        try:
            txn_type = InventoryTransactionType(transaction_type)
        except ValueError:
            raise UsageError(
                f"Unknown inventory transaction type {transaction_type!r}",
                {"transaction_type": str(transaction_type)},
            )
        cost = optional_quantity(unit_cost, field="unit_cost")
        if notes and len(notes) > NOTES_MAX_LENGTH:
            raise ValidationError(
                f"Movement notes are limited to {NOTES_MAX_LENGTH} characters",
                {"field": "notes", "length": len(notes), "max_length": NOTES_MAX_LENGTH},
            )
        linkage = linkage or Linkage()

        keys = {
            "tenant_id": self.tenant_id,
            "product_id": product_id,
            "location_id": location_id,
        }
        increment_or_create(
            InventoryBalance,
            keys=keys,
            column=InventoryBalance.quantity_on_hand,
            amount=change,
        )
        balance = (
            db.session.query(InventoryBalance)
            .filter_by(**keys)
            .populate_existing()
            .one()
        )

        if balance.quantity_on_hand < 0 and not self.policy.allow_negative_stock:
            raise InsufficientStockError(
                f"Insufficient stock for product {product_id} at location {location_id}. "
                f"Change: {change}, resulting on-hand: {balance.quantity_on_hand}",
                {
                    "product_id": product_id,
                    "location_id": location_id,
                    "quantity_change": str(change),
                    "available": str(balance.quantity_on_hand - change),
                    "resulting_quantity": str(balance.quantity_on_hand),
                },
            )

        if cost is not None and change > 0:
            balance.average_cost = _weighted_average_cost(balance, change, cost)

        txn = InventoryTransaction(
            tenant_id=self.tenant_id,
            product_id=product_id,
            location_id=location_id,
            user_id=user_id,
            transaction_type=txn_type.value,
            quantity_change=change,
            unit_cost=cost,
            lot_number=lot_number,
            serial_number=serial_number,
            related_order_id=linkage.order_id,
            related_order_item_id=linkage.order_item_id,
            related_adjustment_id=linkage.adjustment_id,
            related_transfer_id=linkage.transfer_id,
            related_po_id=linkage.purchase_order_id,
            related_po_item_id=linkage.purchase_order_item_id,
            related_return_item_id=linkage.return_item_id,
            notes=notes or None,
        )
        db.session.add(txn)
        db.session.flush()

        current_app.logger.debug(
            "Stock movement %s: tenant=%s product=%s location=%s change=%s on_hand=%s",
            txn_type.value, self.tenant_id, product_id, location_id, change, balance.quantity_on_hand,
        )
        if change < 0 and is_low_stock(balance):
            current_app.logger.warning(
                "Low stock: tenant=%s product=%s location=%s available=%s reorder_point=%s",
                self.tenant_id, product_id, location_id,
                balance.quantity_available, balance.reorder_point,
            )
        return MovementResult(balance=balance, transaction=txn)


def _weighted_average_cost(balance: InventoryBalance, change: Decimal, unit_cost: Decimal) -> Decimal:
    """Blend an inbound cost into the balance's average (on-hand already includes change)."""
    prior_quantity = balance.quantity_on_hand - change
    if balance.average_cost is None or prior_quantity <= 0:
        return unit_cost
    total_value = prior_quantity * balance.average_cost + change * unit_cost
    return (total_value / balance.quantity_on_hand).quantize(QUANTUM, rounding=ROUND_HALF_UP)


# =============================================================================
# Read helpers
# =============================================================================

def get_balance(tenant_id: int, product_id: int, location_id: int) -> InventoryBalance | None:
    return (
        db.session.query(InventoryBalance)
        .filter_by(tenant_id=tenant_id, product_id=product_id, location_id=location_id)
        .first()
    )


def get_quantity_on_hand(tenant_id: int, product_id: int, location_id: int) -> Decimal:
    balance = get_balance(tenant_id, product_id, location_id)
    return balance.quantity_on_hand if balance is not None else ZERO


def get_available_quantity(tenant_id: int, product_id: int, location_id: int) -> Decimal:
    """on_hand - allocated; zero when the product never moved at the location."""
    balance = get_balance(tenant_id, product_id, location_id)
    if balance is None:
        return ZERO
    return balance.quantity_on_hand - balance.quantity_allocated


def list_balances(
    tenant_id: int,
    *,
    location_id: int | None = None,
    product_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(InventoryBalance).filter(InventoryBalance.tenant_id == tenant_id)
    if location_id is not None:
        query = query.filter(InventoryBalance.location_id == location_id)
    if product_id is not None:
        query = query.filter(InventoryBalance.product_id == product_id)
    query = query.order_by(InventoryBalance.location_id.asc(), InventoryBalance.product_id.asc())
    return paginate_query(query, page, per_page)


def is_low_stock(balance: InventoryBalance) -> bool:
    """Available (on_hand - allocated) at or below a configured reorder point."""
    if balance.reorder_point is None:
        return False
    return balance.quantity_available <= balance.reorder_point


def set_reorder_point(tenant_id: int, product_id: int, location_id: int, reorder_point) -> InventoryBalance:
    """
    Set or clear (None) the reorder point of a balance.

    The balance row is created with zero on hand when the product never moved
    at the location; no transaction is written.
    """
    from .unit_of_work import unit_of_work

    point = optional_quantity(reorder_point, field="reorder_point")
    if point is not None and point < 0:
        raise ValidationError("reorder_point cannot be negative", {"reorder_point": str(point)})

    require_location(tenant_id, location_id)
    require_products(tenant_id, [product_id])

    keys = {"tenant_id": tenant_id, "product_id": product_id, "location_id": location_id}
    with unit_of_work(tenant_id):
        increment_or_create(InventoryBalance, keys=keys, column=InventoryBalance.quantity_on_hand, amount=ZERO)
        balance = db.session.query(InventoryBalance).filter_by(**keys).populate_existing().one()
        balance.reorder_point = point

    current_app.logger.info(
        "Reorder point for product %s at location %s set to %s", product_id, location_id, point,
    )
    return balance


def list_low_stock(
    tenant_id: int,
    *,
    location_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Balances whose available quantity is at or below their reorder point."""
    available = InventoryBalance.quantity_on_hand - InventoryBalance.quantity_allocated
    query = db.session.query(InventoryBalance).filter(
        InventoryBalance.tenant_id == tenant_id,
        InventoryBalance.reorder_point.isnot(None),
        available <= InventoryBalance.reorder_point,
    )
    if location_id is not None:
        query = query.filter(InventoryBalance.location_id == location_id)
    query = query.order_by(InventoryBalance.location_id.asc(), InventoryBalance.product_id.asc())
    return paginate_query(query, page, per_page)


def list_transactions(
    tenant_id: int,
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    transaction_type: str | None = None,
    page: int | None = 1,
    per_page: int | None = 50,
) -> dict:
    """Newest-first audit feed for a tenant."""
    query = db.session.query(InventoryTransaction).filter(InventoryTransaction.tenant_id == tenant_id)
    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if location_id is not None:
        query = query.filter(InventoryTransaction.location_id == location_id)
    if transaction_type is not None:
        query = query.filter(InventoryTransaction.transaction_type == transaction_type)
    query = query.order_by(InventoryTransaction.id.desc())
    return paginate_query(query, page, per_page)
