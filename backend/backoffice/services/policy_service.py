# Overview: Resolve per-tenant ledger policy once per unit of work.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Tenant


@dataclass(frozen=True)
class LedgerPolicy:
    """Stock rules applied by the ledger for one unit of work."""
    allow_negative_stock: bool = False
    allow_backorder: bool = False


def resolve_ledger_policy(tenant_id: int) -> LedgerPolicy:
    """
    Tenant.allow_negative_stock wins when set; otherwise the app config
    defaults (ALLOW_NEGATIVE_STOCK, ALLOW_BACKORDER) apply.
    """
    allow_negative = bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))
    allow_backorder = bool(current_app.config.get("ALLOW_BACKORDER", False))

    tenant = db.session.get(Tenant, tenant_id)
    if tenant is not None and tenant.allow_negative_stock is not None:
        allow_negative = tenant.allow_negative_stock

    return LedgerPolicy(
        allow_negative_stock=allow_negative,
        allow_backorder=allow_backorder,
    )
