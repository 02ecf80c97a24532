# FILE: medstore/services/inventory.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from medstore.core.config import settings
from medstore.models.catalog import Medicine
from medstore.models.inventory import (
    BatchStatus,
    InventoryBatch,
    StockTransaction,
    TransactionType,
    TXN_COUNTER,
)
from medstore.schemas.inventory import BatchCreate, BatchOut, BatchUpdate
from medstore.services.batch_status import (
    apply_status,
    available_quantity,
    days_until_expiry,
    is_expired,
    profit_margin,
    profit_percentage,
)
from medstore.services.catalog import resolve_medicine
from medstore.services.errors import (
    ConflictError,
    ExpiredStockError,
    InsufficientStockError,
    InvalidAdjustmentError,
    InvalidBatchError,
    NotFoundError,
)
from medstore.utils.timezone import now_local

logger = logging.getLogger(__name__)

B = InventoryBatch
AVAILABLE_EXPR = B.received_quantity - B.sold_quantity - B.damaged_quantity


@dataclass(frozen=True)
class LedgerCounters:
    received_quantity: int
    sold_quantity: int
    damaged_quantity: int


# -------------------------
# Ledger
# -------------------------
def create_stock_transaction(
    db: Session,
    *,
    batch: InventoryBatch,
    txn_type: TransactionType,
    quantity_delta: int,
    previous_quantity: int,
    reason: Optional[str] = None,
    reference_number: Optional[str] = None,
    sale_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> StockTransaction:
    """
    Central creator for StockTransaction. Every ledger row goes through here.
    Only the adjustment paths in this module call it.
    """
    st = StockTransaction(
        batch_id=batch.id,
        owner_id=batch.owner_id,
        type=txn_type.value,
        quantity_delta=quantity_delta,
        previous_quantity=previous_quantity,
        new_quantity=previous_quantity + quantity_delta,
        reason=reason,
        reference_number=reference_number,
        sale_id=sale_id,
        created_at=now or now_local(),
    )
    db.add(st)
    return st


def transaction_history(
    db: Session,
    batch_id: int,
    owner_id: int,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[StockTransaction], int]:
    get_batch(db, batch_id, owner_id, include_inactive=True)

    page = max(page or 1, 1)
    limit = max(limit or 50, 1)

    q = db.query(StockTransaction).filter(
        StockTransaction.batch_id == batch_id,
        StockTransaction.owner_id == owner_id,
    )
    total = q.count()
    rows = (
        q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def replay_counters(db: Session, batch_id: int, owner_id: int) -> LedgerCounters:
    """Fold the full ledger of a batch back into its three counters."""
    get_batch(db, batch_id, owner_id, include_inactive=True)

    totals = {"received_quantity": 0, "sold_quantity": 0, "damaged_quantity": 0}
    rows = (
        db.query(StockTransaction)
        .filter(StockTransaction.batch_id == batch_id, StockTransaction.owner_id == owner_id)
        .order_by(StockTransaction.id.asc())
        .all()
    )
    for txn in rows:
        counter = TXN_COUNTER[TransactionType(txn.type)]
        totals[counter] += int(txn.quantity_delta)
    return LedgerCounters(**totals)


# -------------------------
# Batch store
# -------------------------
def get_batch(
    db: Session,
    batch_id: int,
    owner_id: int,
    *,
    include_inactive: bool = False,
) -> InventoryBatch:
    q = (
        db.query(InventoryBatch)
        .options(selectinload(InventoryBatch.medicine))
        .filter(InventoryBatch.id == batch_id, InventoryBatch.owner_id == owner_id)
    )
    if not include_inactive:
        q = q.filter(InventoryBatch.is_active.is_(True))
    batch = q.first()
    if not batch:
        raise NotFoundError(f"Inventory batch {batch_id} not found")
    return batch


def find_batch_by_identity(
    db: Session, owner_id: int, medicine_id: int, batch_number: str
) -> Optional[InventoryBatch]:
    return (
        db.query(InventoryBatch)
        .filter(
            InventoryBatch.owner_id == owner_id,
            InventoryBatch.medicine_id == medicine_id,
            InventoryBatch.batch_number == batch_number.strip(),
        )
        .first()
    )


def _validate_batch_dates(expiry: date, manufacture: date, today: date) -> None:
    if expiry <= today:
        raise InvalidBatchError("Expiry date must be in the future")
    if manufacture > today:
        raise InvalidBatchError("Manufacture date cannot be in the future")
    if manufacture >= expiry:
        raise InvalidBatchError("Manufacture date must be before expiry date")


def create_batch(
    db: Session,
    owner_id: int,
    payload: BatchCreate,
    now: Optional[datetime] = None,
) -> InventoryBatch:
    """
    First purchase receipt of a lot. Records the opening purchase in the
    ledger (previous 0 -> received).
    """
    now = now or now_local()
    resolve_medicine(db, payload.medicine_id)
    _validate_batch_dates(payload.expiry_date, payload.manufacture_date, now.date())

    if find_batch_by_identity(db, owner_id, payload.medicine_id, payload.batch_number):
        raise ConflictError(
            "Batch number already exists for this medicine. Use a purchase adjustment to add more stock.")

    batch = InventoryBatch(
        owner_id=owner_id,
        medicine_id=payload.medicine_id,
        batch_number=payload.batch_number,
        expiry_date=payload.expiry_date,
        manufacture_date=payload.manufacture_date,
        received_quantity=payload.quantity,
        sold_quantity=0,
        damaged_quantity=0,
        purchase_price=payload.purchase_price,
        selling_price=payload.selling_price,
        mrp=payload.mrp,
        supplier=payload.supplier,
        supplier_invoice_number=payload.supplier_invoice_number,
        purchase_date=payload.purchase_date or now.date(),
        rack_number=payload.rack_number,
        shelf_number=payload.shelf_number,
        notes=payload.notes,
        reorder_level=(
            payload.reorder_level if payload.reorder_level is not None
            else settings.DEFAULT_REORDER_LEVEL),
        expiry_alert_days=(
            payload.expiry_alert_days if payload.expiry_alert_days is not None
            else settings.DEFAULT_EXPIRY_ALERT_DAYS),
        is_active=True,
    )
    apply_status(batch, now)

    try:
        with db.begin_nested():
            db.add(batch)
            db.flush()
    except IntegrityError:
        raise ConflictError(
            "Batch number already exists for this medicine. Use a purchase adjustment to add more stock.")

    # an empty lot has no opening purchase to record
    if payload.quantity > 0:
        create_stock_transaction(
            db,
            batch=batch,
            txn_type=TransactionType.PURCHASE,
            quantity_delta=payload.quantity,
            previous_quantity=0,
            reason="Initial stock purchase",
            reference_number=payload.supplier_invoice_number,
            now=now,
        )
        db.flush()

    logger.info(
        "Batch created batch_id=%s owner_id=%s medicine_id=%s batch_no=%s qty=%s",
        batch.id, owner_id, batch.medicine_id, batch.batch_number, payload.quantity)
    return batch


def list_batches(
    db: Session,
    owner_id: int,
    *,
    page: int = 1,
    limit: int = 50,
    status: Optional[BatchStatus] = None,
    medicine_id: Optional[int] = None,
    batch_number: Optional[str] = None,
    query: Optional[str] = None,
    supplier: Optional[str] = None,
    expiry_from: Optional[date] = None,
    expiry_to: Optional[date] = None,
) -> Tuple[List[InventoryBatch], int]:
    page = max(page or 1, 1)
    limit = max(limit or 50, 1)

    q = (
        db.query(InventoryBatch)
        .options(selectinload(InventoryBatch.medicine))
        .filter(InventoryBatch.owner_id == owner_id, InventoryBatch.is_active.is_(True))
    )
    if status is not None:
        q = q.filter(InventoryBatch.status == status.value)
    if medicine_id is not None:
        q = q.filter(InventoryBatch.medicine_id == medicine_id)
    if batch_number:
        q = q.filter(InventoryBatch.batch_number.ilike(f"%{batch_number.strip()}%"))
    if query and query.strip():
        term = f"%{query.strip()}%"
        q = q.join(Medicine, InventoryBatch.medicine_id == Medicine.id).filter(
            or_(Medicine.name.ilike(term), Medicine.generic_name.ilike(term)))
    if supplier and supplier.strip():
        q = q.filter(InventoryBatch.supplier.ilike(f"%{supplier.strip()}%"))
    if expiry_from:
        q = q.filter(InventoryBatch.expiry_date >= expiry_from)
    if expiry_to:
        q = q.filter(InventoryBatch.expiry_date <= expiry_to)

    total = q.count()
    rows = (
        q.order_by(InventoryBatch.expiry_date.asc(), InventoryBatch.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def batches_for_medicine(db: Session, owner_id: int, medicine_id: int) -> List[InventoryBatch]:
    rows, _ = list_batches(db, owner_id, medicine_id=medicine_id, limit=10_000)
    return rows


def update_batch(
    db: Session,
    batch_id: int,
    owner_id: int,
    payload: BatchUpdate,
    now: Optional[datetime] = None,
) -> InventoryBatch:
    """Non-counter fields only. Thresholds feed status, so it is recomputed."""
    now = now or now_local()
    batch = get_batch(db, batch_id, owner_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("reorder_level", "expiry_alert_days") and value is None:
            continue
        setattr(batch, field, value)

    apply_status(batch, now)
    db.flush()
    return batch


def deactivate_batch(db: Session, batch_id: int, owner_id: int) -> InventoryBatch:
    batch = get_batch(db, batch_id, owner_id)
    batch.is_active = False
    db.flush()
    logger.info("Batch deactivated batch_id=%s owner_id=%s", batch_id, owner_id)
    return batch


def batch_view(batch: InventoryBatch, now: Optional[datetime] = None) -> Dict[str, Any]:
    """BatchOut-ready dict with the read-time projections filled in."""
    now = now or now_local()
    data = BatchOut.model_validate(batch).model_dump()
    data["days_until_expiry"] = days_until_expiry(batch, now)
    data["is_expired"] = is_expired(batch, now)
    data["profit_margin"] = profit_margin(batch)
    data["profit_percentage"] = profit_percentage(batch)
    return data


# -------------------------
# Stock adjustment service
# -------------------------
def _conditional_increment(
    db: Session,
    batch: InventoryBatch,
    counter: str,
    delta: int,
    *guards,
    require_active: bool = True,
) -> bool:
    """
    Single guarded UPDATE: counter += delta WHERE <guards>. Returns False when
    the guard (or ownership / active flag) no longer holds. On success the
    batch is re-read so the caller sees the committed-in-transaction value.
    """
    conditions = [B.id == batch.id, B.owner_id == batch.owner_id, *guards]
    if require_active:
        conditions.append(B.is_active.is_(True))

    stmt = (
        update(B)
        .where(*conditions)
        .values({counter: getattr(B, counter) + delta})
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        return False

    db.refresh(batch)
    return True


def _insufficient(batch: InventoryBatch, requested: int, action: str) -> InsufficientStockError:
    return InsufficientStockError(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        medicine_name=batch.medicine_name,
        requested=requested,
        available=available_quantity(batch),
        action=action,
    )


def _check_quantity(txn_type: TransactionType, quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidAdjustmentError("Quantity must be a whole number of units")
    if txn_type == TransactionType.ADJUSTMENT:
        if quantity == 0:
            raise InvalidAdjustmentError("Adjustment quantity cannot be zero")
    elif quantity <= 0:
        raise InvalidAdjustmentError(f"{txn_type.value.capitalize()} quantity must be greater than zero")


def adjust_stock(
    db: Session,
    batch_id: int,
    owner_id: int,
    txn_type: TransactionType,
    quantity: int,
    reason: Optional[str] = None,
    reference_number: Optional[str] = None,
    sale_id: Optional[int] = None,
    now: Optional[datetime] = None,
    allow_inactive: bool = False,
) -> InventoryBatch:
    """
    Apply one purchase / sale / damage / return / adjustment to a batch.

    Validation happens on the loaded row first (clear errors, no writes), then
    the counter moves through one conditional UPDATE so two concurrent callers
    can never both pass the availability check. Status is recomputed and one
    ledger row appended in the same transaction; the caller owns commit.
    """
    now = now or now_local()
    txn_type = TransactionType(txn_type)
    _check_quantity(txn_type, quantity)

    # sale returns may credit a batch that was soft-deleted after the sale
    require_active = not (allow_inactive and txn_type == TransactionType.RETURN)
    batch = get_batch(db, batch_id, owner_id, include_inactive=not require_active)
    counter = TXN_COUNTER[txn_type]

    if txn_type == TransactionType.PURCHASE:
        delta = quantity
        guards = ()

    elif txn_type == TransactionType.SALE:
        if is_expired(batch, now):
            raise ExpiredStockError(
                f"Cannot sell expired medicine: {batch.medicine_name} (batch {batch.batch_number}, "
                f"expired {batch.expiry_date.isoformat()})",
                details={"batch_id": batch.id, "expiry_date": batch.expiry_date.isoformat()},
            )
        if quantity > available_quantity(batch):
            raise _insufficient(batch, quantity, "sell")
        delta = quantity
        guards = (AVAILABLE_EXPR >= quantity,)

    elif txn_type == TransactionType.DAMAGE:
        if quantity > available_quantity(batch):
            raise _insufficient(batch, quantity, "mark damaged")
        delta = quantity
        guards = (AVAILABLE_EXPR >= quantity,)

    elif txn_type == TransactionType.RETURN:
        if quantity > int(batch.sold_quantity or 0):
            raise InvalidAdjustmentError(
                f"Cannot return {quantity} units to batch {batch.batch_number}: only {batch.sold_quantity} sold",
                details={"batch_id": batch.id, "sold_quantity": batch.sold_quantity, "requested": quantity},
            )
        delta = -quantity
        guards = (B.sold_quantity >= quantity,)

    else:  # ADJUSTMENT: signed change to received
        consumed = int(batch.sold_quantity or 0) + int(batch.damaged_quantity or 0)
        if int(batch.received_quantity or 0) + quantity < consumed:
            raise InvalidAdjustmentError(
                "Adjustment would result in negative quantity",
                details={
                    "batch_id": batch.id,
                    "received_quantity": batch.received_quantity,
                    "consumed_quantity": consumed,
                    "delta": quantity,
                },
            )
        delta = quantity
        guards = (B.received_quantity + quantity >= B.sold_quantity + B.damaged_quantity,)

    return _commit_adjustment(
        db, batch, txn_type, counter, delta, guards,
        requested=quantity,
        require_active=require_active,
        reason=reason,
        reference_number=reference_number,
        sale_id=sale_id,
        now=now,
    )


def reverse_sale_consumption(
    db: Session,
    batch_id: int,
    owner_id: int,
    quantity: int,
    reason: Optional[str] = None,
    reference_number: Optional[str] = None,
    sale_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> InventoryBatch:
    """
    Credit back exactly `quantity` previously consumed by a sale. Recorded as
    a `sale` transaction with a negative delta so the sold counter replays.
    """
    now = now or now_local()
    _check_quantity(TransactionType.SALE, quantity)
    batch = get_batch(db, batch_id, owner_id, include_inactive=True)

    if quantity > int(batch.sold_quantity or 0):
        raise InvalidAdjustmentError(
            f"Cannot reverse {quantity} units on batch {batch.batch_number}: only {batch.sold_quantity} sold")

    return _commit_adjustment(
        db, batch, TransactionType.SALE, "sold_quantity", -quantity,
        (B.sold_quantity >= quantity,),
        requested=quantity,
        require_active=False,
        reason=reason,
        reference_number=reference_number,
        sale_id=sale_id,
        now=now,
    )


def _commit_adjustment(
    db: Session,
    batch: InventoryBatch,
    txn_type: TransactionType,
    counter: str,
    delta: int,
    guards: tuple,
    *,
    requested: int,
    require_active: bool,
    reason: Optional[str],
    reference_number: Optional[str],
    sale_id: Optional[int],
    now: datetime,
) -> InventoryBatch:
    if not _conditional_increment(db, batch, counter, delta, *guards, require_active=require_active):
        # lost a race: classify against the fresh row
        db.refresh(batch)
        if require_active and not batch.is_active:
            raise NotFoundError(f"Inventory batch {batch.id} not found")
        logger.warning(
            "Adjustment rejected after re-check batch_id=%s type=%s requested=%s available=%s",
            batch.id, txn_type.value, requested, available_quantity(batch))
        if txn_type in (TransactionType.SALE, TransactionType.DAMAGE) and delta > 0:
            raise _insufficient(batch, requested, "sell" if txn_type == TransactionType.SALE else "mark damaged")
        raise InvalidAdjustmentError(
            f"{txn_type.value.capitalize()} of {requested} no longer fits batch {batch.batch_number}")

    new_value = int(getattr(batch, counter))
    apply_status(batch, now)

    create_stock_transaction(
        db,
        batch=batch,
        txn_type=txn_type,
        quantity_delta=delta,
        previous_quantity=new_value - delta,
        reason=reason,
        reference_number=reference_number,
        sale_id=sale_id,
        now=now,
    )
    db.flush()

    logger.info(
        "Stock %s batch_id=%s owner_id=%s delta=%s %s=%s status=%s",
        txn_type.value, batch.id, batch.owner_id, delta, counter, new_value, batch.status)
    return batch
