# backend/backoffice/services/transfer_service.py
"""
Inter-location transfer service.

WHY: Move stock between two locations of a tenant with an auditable document.
Shipping posts TRANSFER_OUT at the source, receiving posts TRANSFER_IN at the
destination, and line quantities track how much of each request has moved.

LIFECYCLE:
1. PENDING: Transfer created, nothing shipped
2. IN_TRANSIT: Shipped from source (full requested quantities); receipts happen here
3. COMPLETED: Total received >= total requested
4. CANCELLED: From PENDING, or from IN_TRANSIT returning unreceived stock to source

Status is derived from line totals after every receipt; callers never set it.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Transfer, TransferLine
from ..models.enums import InventoryTransactionType, TransferStatus
from ..quantity import ZERO, to_quantity
from ..time_utils import utcnow
from .concurrency import lock_for_update
from .document_service import next_document_number
from .ledger_service import Linkage
from .pagination import paginate_query
from .state_machines import (
    TRANSFER_CANCEL,
    TRANSFER_RECEIVE,
    TRANSFER_SHIP,
    check_transfer_transition,
    require,
)
from .tenant_service import get_scoped, require_location, require_products
from .unit_of_work import unit_of_work


@dataclass(frozen=True)
class TransferLineInput:
    product_id: int
    quantity: Any
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None


@dataclass(frozen=True)
class ReceiveLineInput:
    product_id: int
    quantity_received: Any
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None


def _lock_transfer(tenant_id: int, transfer_id: int) -> Transfer:
    transfer = lock_for_update(
        db.session.query(Transfer).filter_by(id=transfer_id, tenant_id=tenant_id)
    ).first()
    if transfer is None:
        # Raises NotFoundError with the standard message
        return get_scoped(Transfer, tenant_id, transfer_id, label="Transfer")
    return transfer


def create_transfer(
    tenant_id: int,
    user_id: int,
    from_location_id: int,
    to_location_id: int,
    lines: Sequence[TransferLineInput],
    *,
    notes: str | None = None,
) -> Transfer:
    """
    Create a transfer document (status: PENDING).

    Raises:
        ValidationError: same source and destination, unknown locations or
            products, untracked products, non-positive or duplicate lines
    """
    if from_location_id == to_location_id:
        raise ValidationError(
            "Cannot transfer to the same location",
            {"from_location_id": from_location_id, "to_location_id": to_location_id},
        )
    if not lines:
        raise ValidationError("Transfer requires at least one line")

    require_location(tenant_id, from_location_id)
    require_location(tenant_id, to_location_id)
    products = require_products(tenant_id, [line.product_id for line in lines])

    prepared = []
    seen = set()
    for line in lines:
        product = products[line.product_id]
        if line.product_id in seen:
            raise ValidationError(
                f"Product {product.sku} appears more than once on the transfer",
                {"product_id": line.product_id},
            )
        seen.add(line.product_id)

        quantity = to_quantity(line.quantity)
        if quantity <= 0:
            raise ValidationError(
                f"Quantity for product {product.sku} must be positive",
                {"product_id": line.product_id, "quantity": str(quantity)},
            )
        prepared.append((line, quantity))

    with unit_of_work(tenant_id):
        transfer = Transfer(
            tenant_id=tenant_id,
            transfer_number=next_document_number(
                tenant_id=tenant_id,
                document_type="TRANSFER",
                prefix="TRF-",
                model=Transfer,
                column=Transfer.transfer_number,
            ),
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status=TransferStatus.PENDING.value,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(transfer)
        db.session.flush()

        for line, quantity in prepared:
            db.session.add(TransferLine(
                tenant_id=tenant_id,
                transfer_id=transfer.id,
                product_id=line.product_id,
                quantity_requested=quantity,
                quantity_shipped=ZERO,
                quantity_received=ZERO,
                lot_number=line.lot_number,
                serial_number=line.serial_number,
            ))
        db.session.flush()

    current_app.logger.info(
        "Transfer %s created: %s -> %s with %s line(s)",
        transfer.transfer_number, from_location_id, to_location_id, len(prepared),
    )
    return transfer


def ship_transfer(tenant_id: int, user_id: int, transfer_id: int) -> Transfer:
    """
    Ship the full requested quantity of every line (PENDING -> IN_TRANSIT).

    Raises:
        NotFoundError: transfer not in tenant
        InvalidTransitionError: transfer is not PENDING
        InsufficientStockError: source location cannot cover a line
    """
    with unit_of_work(tenant_id) as uow:
        transfer = _lock_transfer(tenant_id, transfer_id)
        require(check_transfer_transition(transfer.status, TRANSFER_SHIP))

        transfer.status = TransferStatus.IN_TRANSIT.value
        transfer.shipped_by_user_id = user_id
        transfer.shipped_at = utcnow()

        moved = 0
        for line in transfer.lines:
            if line.quantity_requested <= 0:
                continue
            uow.ledger.record_movement(
                user_id=user_id,
                product_id=line.product_id,
                location_id=transfer.from_location_id,
                quantity_change=-line.quantity_requested,
                transaction_type=InventoryTransactionType.TRANSFER_OUT,
                linkage=Linkage.for_transfer(transfer.id),
                notes=f"Transfer {transfer.transfer_number} shipped",
                lot_number=line.lot_number,
                serial_number=line.serial_number,
            )
            line.quantity_shipped = line.quantity_requested
            moved += 1

        db.session.flush()

    if moved == 0:
        current_app.logger.warning(
            "Transfer %s shipped with no stock movement", transfer.transfer_number
        )
    else:
        current_app.logger.info(
            "Transfer %s shipped: %s line(s) left location %s",
            transfer.transfer_number, moved, transfer.from_location_id,
        )
    return transfer


def receive_transfer(
    tenant_id: int,
    user_id: int,
    transfer_id: int,
    lines: Sequence[ReceiveLineInput],
) -> Transfer:
    """
    Receive some or all shipped quantities at the destination.

    Lines are matched by product id. Omitted lines keep their received totals.
    Status becomes COMPLETED once everything requested has arrived, otherwise
    IN_TRANSIT when anything has.

    Raises:
        NotFoundError: transfer not in tenant
        InvalidTransitionError: transfer is not IN_TRANSIT (never shipped, or closed)
        ValidationError: over-receipt, unknown or duplicate product in payload
    """
    submitted: dict[int, tuple[ReceiveLineInput, Decimal]] = {}
    for entry in lines:
        if entry.product_id in submitted:
            raise ValidationError(
                f"Product {entry.product_id} appears more than once in the receipt",
                {"product_id": entry.product_id},
            )
        submitted[entry.product_id] = (entry, to_quantity(entry.quantity_received, field="quantity_received"))

    with unit_of_work(tenant_id) as uow:
        transfer = _lock_transfer(tenant_id, transfer_id)
        require(check_transfer_transition(transfer.status, TRANSFER_RECEIVE))

        lines_by_product = {line.product_id: line for line in transfer.lines}
        unknown = [product_id for product_id in submitted if product_id not in lines_by_product]
        if unknown:
            raise ValidationError(
                f"Products not on transfer {transfer.transfer_number}: "
                f"{', '.join(str(pid) for pid in unknown)}",
                {"product_ids": unknown},
            )

        for product_id, line in lines_by_product.items():
            if product_id not in submitted:
                continue
            entry, quantity = submitted[product_id]

            max_receivable = line.quantity_shipped - line.quantity_received
            if quantity > max_receivable:
                raise ValidationError(
                    f"Cannot receive {quantity} of product {line.product.sku} on transfer "
                    f"{transfer.transfer_number}. Max receivable: {max_receivable}",
                    {
                        "product_id": product_id,
                        "quantity_received": str(quantity),
                        "max_receivable": str(max_receivable),
                    },
                )
            if quantity <= 0:
                current_app.logger.warning(
                    "Skipping non-positive receipt of %s for product %s on transfer %s",
                    quantity, product_id, transfer.transfer_number,
                )
                continue

            uow.ledger.record_movement(
                user_id=user_id,
                product_id=product_id,
                location_id=transfer.to_location_id,
                quantity_change=quantity,
                transaction_type=InventoryTransactionType.TRANSFER_IN,
                linkage=Linkage.for_transfer(transfer.id),
                notes=f"Transfer {transfer.transfer_number} received",
                lot_number=entry.lot_number or line.lot_number,
                serial_number=entry.serial_number or line.serial_number,
            )
            # SQL-side increment; the attribute reloads after flush
            line.quantity_received = TransferLine.quantity_received + quantity

        db.session.flush()

        total_requested = sum((line.quantity_requested for line in transfer.lines), ZERO)
        total_received = sum((line.quantity_received for line in transfer.lines), ZERO)

        new_status = transfer.status
        if total_requested > 0 and total_received >= total_requested:
            new_status = TransferStatus.COMPLETED.value
        elif total_received > 0:
            new_status = TransferStatus.IN_TRANSIT.value

        if new_status != transfer.status:
            transfer.status = new_status
            if new_status == TransferStatus.COMPLETED.value:
                transfer.received_by_user_id = user_id
                transfer.completed_at = utcnow()

    current_app.logger.info(
        "Transfer %s received %s/%s, status %s",
        transfer.transfer_number, total_received, total_requested, new_status,
    )
    return transfer


def cancel_transfer(
    tenant_id: int,
    user_id: int,
    transfer_id: int,
    *,
    reason: str | None = None,
) -> Transfer:
    """
    Cancel a PENDING or IN_TRANSIT transfer.

    Stock that left the source but never arrived (shipped - received) is put
    back at the source with a TRANSFER_IN linked to the transfer. Received
    stock stays at the destination.
    """
    with unit_of_work(tenant_id) as uow:
        transfer = _lock_transfer(tenant_id, transfer_id)
        require(check_transfer_transition(transfer.status, TRANSFER_CANCEL))

        restored = 0
        for line in transfer.lines:
            in_flight = line.quantity_shipped - line.quantity_received
            if in_flight <= 0:
                continue
            uow.ledger.record_movement(
                user_id=user_id,
                product_id=line.product_id,
                location_id=transfer.from_location_id,
                quantity_change=in_flight,
                transaction_type=InventoryTransactionType.TRANSFER_IN,
                linkage=Linkage.for_transfer(transfer.id),
                notes=f"Transfer {transfer.transfer_number} cancelled, returned to source",
                lot_number=line.lot_number,
                serial_number=line.serial_number,
            )
            restored += 1

        transfer.status = TransferStatus.CANCELLED.value
        transfer.cancelled_by_user_id = user_id
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason

    current_app.logger.info(
        "Transfer %s cancelled; %s line(s) returned to source", transfer.transfer_number, restored
    )
    return transfer


def get_transfer(tenant_id: int, transfer_id: int) -> Transfer:
    return get_scoped(Transfer, tenant_id, transfer_id, label="Transfer")


def get_transfer_summary(tenant_id: int, transfer_id: int) -> dict:
    """Transfer with outstanding quantities per line."""
    transfer = get_transfer(tenant_id, transfer_id)
    lines = []
    for line in transfer.lines:
        data = line.to_dict()
        data["sku"] = line.product.sku
        data["quantity_outstanding"] = str(line.quantity_requested - line.quantity_received)
        lines.append(data)

    total_requested = sum((line.quantity_requested for line in transfer.lines), ZERO)
    total_shipped = sum((line.quantity_shipped for line in transfer.lines), ZERO)
    total_received = sum((line.quantity_received for line in transfer.lines), ZERO)

    summary = transfer.to_dict()
    summary["lines"] = lines
    summary["totals"] = {
        "requested": str(total_requested),
        "shipped": str(total_shipped),
        "received": str(total_received),
    }
    return summary


def list_transfers(
    tenant_id: int,
    *,
    status: str | None = None,
    location_id: int | None = None,
    page: int | None = 1,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(Transfer).filter(Transfer.tenant_id == tenant_id)
    if status is not None:
        query = query.filter(Transfer.status == status)
    if location_id is not None:
        query = query.filter(
            (Transfer.from_location_id == location_id) | (Transfer.to_location_id == location_id)
        )
    query = query.order_by(Transfer.created_at.desc(), Transfer.id.desc())
    return paginate_query(query, page, per_page)
