# FILE: medstore/services/stock_alerts.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from medstore.models.inventory import BatchStatus, InventoryBatch
from medstore.services.batch_status import (
    apply_status,
    available_quantity,
    days_until_expiry,
    derive_status,
)
from medstore.services.inventory import AVAILABLE_EXPR, batch_view
from medstore.utils.timezone import now_local

logger = logging.getLogger(__name__)

ALERT_STATUSES = (
    BatchStatus.LOW_STOCK,
    BatchStatus.NEAR_EXPIRY,
    BatchStatus.EXPIRED,
    BatchStatus.OUT_OF_STOCK,
)


def _money(v) -> Decimal:
    return Decimal(str(v or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _active_batches_query(db: Session, owner_id: int):
    return (
        db.query(InventoryBatch)
        .options(selectinload(InventoryBatch.medicine))
        .filter(InventoryBatch.owner_id == owner_id, InventoryBatch.is_active.is_(True))
    )


def _ordered(q) -> List[InventoryBatch]:
    return q.order_by(InventoryBatch.expiry_date.asc(), InventoryBatch.id.asc()).all()


def _alert_message(status: BatchStatus, batch: InventoryBatch, now: datetime) -> str:
    days = days_until_expiry(batch, now)
    if status == BatchStatus.OUT_OF_STOCK:
        return "Out of stock"
    if status == BatchStatus.EXPIRED:
        ago = -days
        return "Expired today" if ago <= 0 else f"Expired {ago} day(s) ago"
    if status == BatchStatus.NEAR_EXPIRY:
        return f"Near expiry in {days} day(s)"
    if status == BatchStatus.LOW_STOCK:
        return f"Low stock: {available_quantity(batch)} left (reorder level {batch.reorder_level})"
    return ""


def _rows(batches: List[InventoryBatch], status: BatchStatus, now: datetime) -> List[Dict[str, Any]]:
    out = []
    for b in batches:
        row = batch_view(b, now)
        row["alert_message"] = _alert_message(status, b, now)
        out.append(row)
    return out


def _by_derived_status(db: Session, owner_id: int, status: BatchStatus, now: datetime) -> List[Dict[str, Any]]:
    # derived at read time so the answer does not depend on when status was last written
    batches = [b for b in _ordered(_active_batches_query(db, owner_id)) if derive_status(b, now) == status]
    return _rows(batches, status, now)


def low_stock(db: Session, owner_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    return _by_derived_status(db, owner_id, BatchStatus.LOW_STOCK, now or now_local())


def expired(db: Session, owner_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    return _by_derived_status(db, owner_id, BatchStatus.EXPIRED, now or now_local())


def out_of_stock(db: Session, owner_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    return _by_derived_status(db, owner_id, BatchStatus.OUT_OF_STOCK, now or now_local())


def near_expiry(
    db: Session,
    owner_id: int,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Without `days`: batches whose status is near_expiry (each batch's own
    expiry_alert_days). With `days`: stock on hand expiring in (now, now + days].
    """
    now = now or now_local()
    if days is None:
        return _by_derived_status(db, owner_id, BatchStatus.NEAR_EXPIRY, now)

    # expiry is midnight of expiry_date, so (now, now + days] is a date range
    q = _active_batches_query(db, owner_id).filter(
        InventoryBatch.expiry_date > now.date(),
        InventoryBatch.expiry_date <= (now + timedelta(days=days)).date(),
        AVAILABLE_EXPR > 0,
    )
    return _rows(_ordered(q), BatchStatus.NEAR_EXPIRY, now)


def stock_summary(db: Session, owner_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_local()
    batches = _active_batches_query(db, owner_id).all()

    counts: Dict[str, int] = {s.value: 0 for s in ALERT_STATUSES}
    total_value = Decimal("0")
    for b in batches:
        avail = available_quantity(b)
        total_value += Decimal(avail) * Decimal(str(b.purchase_price or 0))
        status = derive_status(b, now)
        if status.value in counts:
            counts[status.value] += 1

    return {
        "total_items": len(batches),
        "total_value": _money(total_value),
        "alert_counts": counts,
    }


def refresh_statuses(
    db: Session,
    owner_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Re-derive persisted status for every active batch. Status otherwise only
    changes on writes, so a batch can age into near_expiry/expired unnoticed.
    Returns how many rows changed.
    """
    now = now or now_local()
    q = db.query(InventoryBatch).filter(InventoryBatch.is_active.is_(True))
    if owner_id is not None:
        q = q.filter(InventoryBatch.owner_id == owner_id)

    changed = 0
    for b in q.all():
        before = b.status
        if apply_status(b, now).value != before:
            changed += 1
    db.flush()

    logger.info("Batch status refresh owner_id=%s changed=%s", owner_id, changed)
    return changed

