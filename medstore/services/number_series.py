# FILE: medstore/services/number_series.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from medstore.core.config import settings
from medstore.models.inventory import NumberSeries
from medstore.utils.timezone import period_key


def _lock_series(db: Session, owner_id: int, key: str, pk: int) -> NumberSeries | None:
    return (
        db.query(NumberSeries)
        .filter(
            NumberSeries.owner_id == owner_id,
            NumberSeries.key == key,
            NumberSeries.period_key == pk,
        )
        .with_for_update()
        .first()
    )


def next_document_number(
    db: Session,
    owner_id: int,
    key: str,            # e.g. "BILL", "RET"
    prefix: str,         # e.g. "BILL", "RET"
    doc_time: datetime,
    pad: int | None = None,
) -> str:
    """
    Concurrency-safe number generator using NumberSeries with
    UNIQUE(owner_id, key, period_key). The counter row stays locked until the
    caller's transaction ends, so numbers are handed out strictly in order.

    Example: BILL-202610-0001
    """
    pad = pad or settings.NUMBER_SEQ_PAD
    pk = period_key(doc_time)

    row = _lock_series(db, owner_id, key, pk)

    if not row:
        # Two first-of-the-month allocations can race on the insert; the loser
        # falls back to the winner's row.
        try:
            with db.begin_nested():
                row = NumberSeries(owner_id=owner_id, key=key, period_key=pk, next_seq=1)
                db.add(row)
                db.flush()
        except IntegrityError:
            row = _lock_series(db, owner_id, key, pk)
            if not row:
                raise

    seq = int(row.next_seq or 1)
    row.next_seq = seq + 1
    db.flush()

    return f"{prefix}-{pk:06d}-{seq:0{pad}d}"


def next_bill_number(db: Session, owner_id: int, doc_time: datetime) -> str:
    return next_document_number(
        db, owner_id, "BILL", settings.BILL_NUMBER_PREFIX, doc_time)


def next_return_number(db: Session, owner_id: int, doc_time: datetime) -> str:
    return next_document_number(
        db, owner_id, "RET", settings.RETURN_NUMBER_PREFIX, doc_time)
