# FILE: medstore/api/routes_inventory.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from medstore.api.deps import current_owner_id, get_db
from medstore.api.exception_handlers import safe_err
from medstore.models.inventory import BatchStatus
from medstore.schemas.common import make_pagination
from medstore.schemas.inventory import (
    BatchCreate,
    BatchUpdate,
    ReceiveOrderIn,
    StockAdjustIn,
    StockTransactionOut,
)
from medstore.services.catalog import resolve_medicine
from medstore.services.inventory import (
    adjust_stock,
    batch_view,
    batches_for_medicine,
    create_batch,
    deactivate_batch,
    get_batch,
    list_batches,
    transaction_history,
    update_batch,
)
from medstore.services.order_intake import receive_order_lines
from medstore.services.stock_alerts import refresh_statuses
from medstore.utils.resp import ok

router = APIRouter(prefix="/inventory", tags=["inventory"])


# =========================
# BATCHES
# =========================
@router.post("/batches")
def create_batch_api(
    payload: BatchCreate,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            batch = create_batch(db, owner_id, payload)
            data = batch_view(batch)
        return ok(data, status_code=201)
    except Exception as e:
        return safe_err(e)


@router.get("/batches")
def list_batches_api(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    status: Optional[BatchStatus] = Query(None),
    medicine_id: Optional[int] = Query(None),
    batch_number: Optional[str] = Query(None),
    query: Optional[str] = Query(None, description="medicine name or generic name"),
    supplier: Optional[str] = Query(None),
    expiry_from: Optional[date] = Query(None),
    expiry_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            rows, total = list_batches(
                db,
                owner_id,
                page=page,
                limit=limit,
                status=status,
                medicine_id=medicine_id,
                batch_number=batch_number,
                query=query,
                supplier=supplier,
                expiry_from=expiry_from,
                expiry_to=expiry_to,
            )
            data = [batch_view(b) for b in rows]
        return ok(data, meta=make_pagination(page, limit, total).model_dump())
    except Exception as e:
        return safe_err(e)


@router.get("/batches/{batch_id}")
def get_batch_api(
    batch_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            data = batch_view(get_batch(db, batch_id, owner_id))
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.patch("/batches/{batch_id}")
def update_batch_api(
    batch_id: int,
    payload: BatchUpdate,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            batch = update_batch(db, batch_id, owner_id, payload)
            data = batch_view(batch)
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.delete("/batches/{batch_id}")
def deactivate_batch_api(
    batch_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            batch = deactivate_batch(db, batch_id, owner_id)
        return ok({"id": batch.id, "is_active": batch.is_active})
    except Exception as e:
        return safe_err(e)


@router.get("/medicines/{medicine_id}/batches")
def medicine_batches_api(
    medicine_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            resolve_medicine(db, medicine_id)
            data = [batch_view(b) for b in batches_for_medicine(db, owner_id, medicine_id)]
        return ok(data, meta={"count": len(data)})
    except Exception as e:
        return safe_err(e)


# =========================
# ADJUSTMENTS / LEDGER
# =========================
@router.post("/batches/{batch_id}/adjust")
def adjust_stock_api(
    batch_id: int,
    payload: StockAdjustIn,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            batch = adjust_stock(
                db,
                batch_id,
                owner_id,
                payload.type,
                payload.quantity,
                reason=payload.reason,
                reference_number=payload.reference_number,
            )
            data = batch_view(batch)
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.get("/batches/{batch_id}/transactions")
def batch_transactions_api(
    batch_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            rows, total = transaction_history(db, batch_id, owner_id, page=page, limit=limit)
            data = [StockTransactionOut.model_validate(t).model_dump() for t in rows]
        return ok(data, meta=make_pagination(page, limit, total).model_dump())
    except Exception as e:
        return safe_err(e)


# =========================
# RECEIVING / MAINTENANCE
# =========================
@router.post("/receive")
def receive_order_api(
    payload: ReceiveOrderIn,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            batches = receive_order_lines(
                db,
                owner_id,
                payload.lines,
                reference_number=payload.reference_number,
                supplier=payload.supplier,
            )
            data = [batch_view(b) for b in batches]
        return ok(data, status_code=201)
    except Exception as e:
        return safe_err(e)


@router.post("/status/refresh")
def refresh_status_api(
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            changed = refresh_statuses(db, owner_id)
        return ok({"updated": changed})
    except Exception as e:
        return safe_err(e)
