# Overview: Human-readable document numbers (SO-, RTN-, TRF-, ADJ-, SC-, PO-) for tenants.

from __future__ import annotations

import secrets
import time

from flask import current_app

from ..errors import UsageError
from ..extensions import db
from ..models import DocumentSequence
from .concurrency import increment_or_create

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


class SequenceGenerator:
    """
    Allocates document numbers inside the caller's unit of work.

    CONTRACT:
    - Numbers come from an atomically incremented DocumentSequence row, so
      concurrent callers never draw the same value.
    - Each candidate is checked against the target table; a collision (e.g.
      rows imported with numbers the sequence never issued) draws again.
    - After max_attempts collisions the number falls back to
      <prefix><base36 millis><random hex>, which is unique without a lookup.
    - Never rolls back the session; it is safe to call mid-transaction.
    """

    def __init__(self, max_attempts: int | None = None):
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        if self._max_attempts is not None:
            return self._max_attempts
        return int(current_app.config.get("DOCUMENT_NUMBER_MAX_ATTEMPTS", 5))

    def next_number(
        self,
        *,
        tenant_id: int,
        document_type: str,
        prefix: str,
        model,
        column,
        pad: int = 6,
    ) -> str:
        if not tenant_id:
            raise UsageError("tenant_id is required for document numbers")
        if not document_type:
            raise UsageError("document_type is required for document numbers")

        for attempt in range(1, self.max_attempts + 1):
            number = self._draw(tenant_id, document_type)
            candidate = f"{prefix}{number:0{pad}d}"
            taken = (
                db.session.query(model.id)
                .filter(model.tenant_id == tenant_id, column == candidate)
                .first()
            )
            if taken is None:
                return candidate
            current_app.logger.warning(
                "Document number %s already exists, retrying (attempt %s/%s)",
                candidate, attempt, self.max_attempts,
            )

        fallback = f"{prefix}{_base36(time.time_ns() // 1_000_000)}{secrets.token_hex(2).upper()}"
        current_app.logger.warning("Falling back to timestamp-based document number: %s", fallback)
        return fallback

    def _draw(self, tenant_id: int, document_type: str) -> int:
        increment_or_create(
            DocumentSequence,
            keys={"tenant_id": tenant_id, "document_type": document_type},
            column=DocumentSequence.last_number,
            amount=1,
        )
        return (
            db.session.query(DocumentSequence.last_number)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .scalar()
        )


sequence_generator = SequenceGenerator()


def next_document_number(
    *,
    tenant_id: int,
    document_type: str,
    prefix: str,
    model,
    column,
    pad: int = 6,
) -> str:
    """Draw the next number from the module-level generator."""
    return sequence_generator.next_number(
        tenant_id=tenant_id,
        document_type=document_type,
        prefix=prefix,
        model=model,
        column=column,
        pad=pad,
    )
