# Overview: Transaction scope that owns the stock ledger handle for one workflow call.

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask import current_app

from ..errors import BackofficeError, UsageError
from ..extensions import db
from .ledger_service import StockLedger
from .policy_service import LedgerPolicy, resolve_ledger_policy


class UnitOfWork:
    """
    One relational transaction plus the ledger bound to it.

    Workflows receive this from ``unit_of_work()``; the ledger handle it
    exposes is only valid until the block exits.
    """

    def __init__(self, tenant_id: int, policy: LedgerPolicy):
        self.tenant_id = tenant_id
        self.policy = policy
        self.session = db.session
        self.active = True
        self.ledger = StockLedger(self)

    def ensure_active(self) -> None:
        if not self.active:
            raise UsageError(
                "Stock ledger used outside its unit of work",
                {"tenant_id": self.tenant_id},
            )


@contextmanager
def unit_of_work(tenant_id: int, *, policy: LedgerPolicy | None = None) -> Iterator[UnitOfWork]:
    """
    Run the enclosed block as one transaction.

    Commits when the block finishes; rolls back and re-raises on any error so
    a multi-line workflow is applied completely or not at all. Nothing is
    retried here.
    """
    if policy is None:
        policy = resolve_ledger_policy(tenant_id)

    uow = UnitOfWork(tenant_id, policy)
    try:
        yield uow
        db.session.commit()
    except BackofficeError as exc:
        db.session.rollback()
        current_app.logger.info(
            "Unit of work for tenant %s rolled back: %s (%s)", tenant_id, exc.message, exc.kind.value
        )
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unit of work for tenant %s rolled back", tenant_id)
        raise
    finally:
        uow.active = False
