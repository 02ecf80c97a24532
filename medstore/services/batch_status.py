# FILE: medstore/services/batch_status.py
"""
Batch lifecycle status. Pure functions of (counters, dates, now); no DB access.

Precedence, first match wins:
    out_of_stock -> expired -> near_expiry -> low_stock -> active
"""
from __future__ import annotations

import math
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

from medstore.models.inventory import BatchStatus

SECONDS_PER_DAY = 86400


class BatchLike(Protocol):
    received_quantity: int
    sold_quantity: int
    damaged_quantity: int
    expiry_date: date
    reorder_level: int
    expiry_alert_days: int


def available_quantity(batch: BatchLike) -> int:
    return int(batch.received_quantity or 0) - int(batch.sold_quantity or 0) - int(batch.damaged_quantity or 0)


def expiry_instant(expiry_date: date) -> datetime:
    # stock is unsellable from the first moment of its expiry date
    return datetime.combine(expiry_date, time.min)


def is_expired(batch: BatchLike, now: datetime) -> bool:
    return now > expiry_instant(batch.expiry_date)


def days_until_expiry(batch: BatchLike, now: datetime) -> int:
    delta = expiry_instant(batch.expiry_date) - now
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def derive_status(batch: BatchLike, now: datetime) -> BatchStatus:
    available = available_quantity(batch)
    if available <= 0:
        return BatchStatus.OUT_OF_STOCK

    if is_expired(batch, now):
        return BatchStatus.EXPIRED

    days_left = days_until_expiry(batch, now)
    if 0 < days_left <= int(batch.expiry_alert_days or 0):
        return BatchStatus.NEAR_EXPIRY

    if available <= int(batch.reorder_level or 0):
        return BatchStatus.LOW_STOCK

    return BatchStatus.ACTIVE


def apply_status(batch, now: datetime) -> BatchStatus:
    """Recompute and store status on the ORM object (caller flushes)."""
    status = derive_status(batch, now)
    batch.status = status.value
    return status


def profit_margin(batch) -> Decimal:
    """Per-unit selling minus purchase price."""
    return Decimal(str(batch.selling_price or 0)) - Decimal(str(batch.purchase_price or 0))


def profit_percentage(batch) -> Decimal:
    cost = Decimal(str(batch.purchase_price or 0))
    if cost == 0:
        return Decimal("0.00")
    pct = profit_margin(batch) / cost * 100
    return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
