# Overview: Compare stored balances with the sum of their ledger transactions.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryBalance, InventoryTransaction
from ..quantity import ZERO, to_quantity


@dataclass(frozen=True)
class BalanceDrift:
    tenant_id: int
    product_id: int
    location_id: int
    balance_quantity: Decimal
    ledger_quantity: Decimal

    @property
    def drift(self) -> Decimal:
        return self.balance_quantity - self.ledger_quantity

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "balance_quantity": str(self.balance_quantity),
            "ledger_quantity": str(self.ledger_quantity),
            "drift": str(self.drift),
        }


def reconcile_balances(tenant_id: int | None = None) -> list[BalanceDrift]:
    """
    Every (tenant, product, location) whose on-hand differs from its ledger sum.

    A transaction key with no balance row counts as a zero balance. An empty
    list means the ledger and balances agree.
    """
    balance_query = db.session.query(
        InventoryBalance.tenant_id,
        InventoryBalance.product_id,
        InventoryBalance.location_id,
        InventoryBalance.quantity_on_hand,
    )
    ledger_query = db.session.query(
        InventoryTransaction.tenant_id,
        InventoryTransaction.product_id,
        InventoryTransaction.location_id,
        func.sum(InventoryTransaction.quantity_change),
    ).group_by(
        InventoryTransaction.tenant_id,
        InventoryTransaction.product_id,
        InventoryTransaction.location_id,
    )
    if tenant_id is not None:
        balance_query = balance_query.filter(InventoryBalance.tenant_id == tenant_id)
        ledger_query = ledger_query.filter(InventoryTransaction.tenant_id == tenant_id)

    balances = {
        (row_tenant, product_id, location_id): to_quantity(on_hand)
        for row_tenant, product_id, location_id, on_hand in balance_query.all()
    }
    ledger = {
        (row_tenant, product_id, location_id): to_quantity(total if total is not None else 0)
        for row_tenant, product_id, location_id, total in ledger_query.all()
    }

    drifts = []
    for key in sorted(set(balances) | set(ledger)):
        balance_quantity = balances.get(key, ZERO)
        ledger_quantity = ledger.get(key, ZERO)
        if balance_quantity != ledger_quantity:
            drifts.append(BalanceDrift(*key, balance_quantity, ledger_quantity))

    if drifts:
        current_app.logger.warning(
            "Ledger reconciliation found %s drifting balance(s)%s",
            len(drifts), f" for tenant {tenant_id}" if tenant_id is not None else "",
        )
    return drifts
