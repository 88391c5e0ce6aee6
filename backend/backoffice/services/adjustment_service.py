# backend/backoffice/services/adjustment_service.py
"""
Manual inventory adjustments.

WHY: Damage, shrinkage, found stock and count variances are corrected with an
Adjustment document so every quantity change still flows through the stock
ledger with a reason attached.

RULES:
1. Location and every product are validated before the unit of work opens
2. Positive lines post ADJUSTMENT_IN, negative lines ADJUSTMENT_OUT
3. Zero lines are skipped; an all-zero adjustment still commits as a no-op
4. Any ledger failure rolls back every line
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Adjustment, AdjustmentLine
from ..models.enums import InventoryTransactionType
from ..quantity import optional_quantity, to_quantity
from .document_service import next_document_number
from .ledger_service import Linkage, StockLedger
from .pagination import paginate_query
from .tenant_service import get_scoped, require_location, require_products
from .unit_of_work import unit_of_work


@dataclass(frozen=True)
class AdjustmentLineInput:
    product_id: int
    quantity_change: Any
    unit_cost: Any = None
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None


@dataclass(frozen=True)
class PreparedLine:
    product_id: int
    quantity_change: Decimal
    unit_cost: Optional[Decimal]
    lot_number: Optional[str]
    serial_number: Optional[str]


def _prepare_lines(lines: Sequence[AdjustmentLineInput]) -> list[PreparedLine]:
    return [
        PreparedLine(
            product_id=line.product_id,
            quantity_change=to_quantity(line.quantity_change, field="quantity_change"),
            unit_cost=optional_quantity(line.unit_cost, field="unit_cost"),
            lot_number=line.lot_number,
            serial_number=line.serial_number,
        )
        for line in lines
    ]


def post_adjustment_lines(
    ledger: StockLedger,
    adjustment: Adjustment,
    lines: Sequence[PreparedLine],
    *,
    user_id: int,
    transaction_type: InventoryTransactionType | None = None,
    notes: str | None = None,
) -> list[AdjustmentLine]:
    """
    Post lines of an open adjustment through the ledger.

    Must run inside the unit of work that created ``adjustment``. When
    ``transaction_type`` is omitted the sign picks ADJUSTMENT_IN / _OUT.
    """
    created = []
    for line in lines:
        if line.quantity_change.is_zero():
            continue

        txn_type = transaction_type
        if txn_type is None:
            txn_type = (
                InventoryTransactionType.ADJUSTMENT_IN
                if line.quantity_change > 0
                else InventoryTransactionType.ADJUSTMENT_OUT
            )

        movement = ledger.record_movement(
            user_id=user_id,
            product_id=line.product_id,
            location_id=adjustment.location_id,
            quantity_change=line.quantity_change,
            transaction_type=txn_type,
            unit_cost=line.unit_cost,
            linkage=Linkage.for_adjustment(adjustment.id),
            notes=notes,
            lot_number=line.lot_number,
            serial_number=line.serial_number,
        )

        adjustment_line = AdjustmentLine(
            tenant_id=adjustment.tenant_id,
            adjustment_id=adjustment.id,
            product_id=line.product_id,
            quantity_change=line.quantity_change,
            unit_cost=line.unit_cost,
            lot_number=line.lot_number,
            serial_number=line.serial_number,
            inventory_transaction_id=movement.transaction.id,
        )
        db.session.add(adjustment_line)
        created.append(adjustment_line)

    db.session.flush()
    return created


def open_adjustment(
    *,
    tenant_id: int,
    user_id: int,
    location_id: int,
    reason_code: str | None,
    notes: str | None,
) -> Adjustment:
    """Create an adjustment header inside the current unit of work."""
    adjustment = Adjustment(
        tenant_id=tenant_id,
        location_id=location_id,
        adjustment_number=next_document_number(
            tenant_id=tenant_id,
            document_type="ADJUSTMENT",
            prefix="ADJ-",
            model=Adjustment,
            column=Adjustment.adjustment_number,
        ),
        reason_code=reason_code,
        notes=notes,
        created_by_user_id=user_id,
    )
    db.session.add(adjustment)
    db.session.flush()
    return adjustment


def create_adjustment(
    tenant_id: int,
    user_id: int,
    location_id: int,
    lines: Sequence[AdjustmentLineInput],
    *,
    reason_code: str | None = None,
    notes: str | None = None,
) -> Adjustment:
    """
    Create an adjustment and post its non-zero lines.

    Returns:
        Adjustment: committed header with its lines loaded

    Raises:
        ValidationError: no lines, unknown location, unknown or untracked product
        InsufficientStockError: a line would drive stock negative
    """
    if not lines:
        raise ValidationError("Adjustment requires at least one line")

    require_location(tenant_id, location_id)
    require_products(tenant_id, [line.product_id for line in lines])
    prepared = _prepare_lines(lines)

    with unit_of_work(tenant_id) as uow:
        adjustment = open_adjustment(
            tenant_id=tenant_id,
            user_id=user_id,
            location_id=location_id,
            reason_code=reason_code,
            notes=notes,
        )
        posted = post_adjustment_lines(
            uow.ledger,
            adjustment,
            prepared,
            user_id=user_id,
            notes=reason_code or notes,
        )

    if not posted:
        current_app.logger.warning(
            "Adjustment %s at location %s had no non-zero lines; recorded as no-op",
            adjustment.adjustment_number, location_id,
        )
    else:
        current_app.logger.info(
            "Adjustment %s created with %s line(s) at location %s",
            adjustment.adjustment_number, len(posted), location_id,
        )
    return adjustment


def get_adjustment(tenant_id: int, adjustment_id: int) -> Adjustment:
    return get_scoped(Adjustment, tenant_id, adjustment_id, label="Adjustment")


def list_adjustments(
    tenant_id: int,
    *,
    location_id: int | None = None,
    reason_code: str | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(Adjustment).filter(Adjustment.tenant_id == tenant_id)
    if location_id is not None:
        query = query.filter(Adjustment.location_id == location_id)
    if reason_code is not None:
        query = query.filter(Adjustment.reason_code == reason_code)
    query = query.order_by(Adjustment.created_at.desc(), Adjustment.id.desc())
    return paginate_query(query, page, per_page)
