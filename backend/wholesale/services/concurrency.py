# Overview: Serializes writes that move an invoice balance (row lock plus version retry).

"""
Invoice Write Serialization

Recording or deleting a payment and a manual status change read the invoice,
derive its new paid_amount/payment_status and write it back.
Two such writers on one invoice must not both build on the same paid_amount.
Deleting an invoice takes the same lock so it cannot race a payment.

- The invoice row is read under SELECT ... FOR UPDATE (lock_invoice); the
  second writer waits on PostgreSQL/MySQL. SQLite ignores the clause.
- Invoice.version_id is the fallback: a writer whose read went stale fails
  its flush with StaleDataError, the session is rolled back and the whole
  unit reruns against the fresh balance (run_with_retry).
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Invoice


# Lock timeouts/deadlocks and lost version checks
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_invoice(invoice_id: int) -> Invoice | None:
    """Reload an invoice under a row lock for the rest of the transaction."""
    return db.session.query(Invoice).filter_by(id=invoice_id).with_for_update().first()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one invoice write unit, rerunning it after a lost race.

    func must do its own reads: after a rollback every instance it loaded
    is expired. The final failure propagates unchanged.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            current_app.logger.warning(
                "Invoice write conflict (%s), retry %d of %d",
                type(exc).__name__, attempt, attempts - 1,
            )
            time.sleep(delay)
