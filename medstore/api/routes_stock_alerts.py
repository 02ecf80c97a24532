# FILE: medstore/api/routes_stock_alerts.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from medstore.api.deps import current_owner_id, get_db
from medstore.api.exception_handlers import safe_err
from medstore.schemas.inventory import StockSummaryOut
from medstore.services import stock_alerts
from medstore.utils.resp import ok

router = APIRouter(prefix="/inventory", tags=["Inventory Alerts"])


@router.get("/alerts/low-stock")
def low_stock_api(db: Session = Depends(get_db), owner_id: int = Depends(current_owner_id)):
    try:
        with db.begin():
            rows = stock_alerts.low_stock(db, owner_id)
        return ok(rows, meta={"count": len(rows)})
    except Exception as e:
        return safe_err(e)


@router.get("/alerts/near-expiry")
def near_expiry_api(
    days: Optional[int] = Query(None, ge=1, le=3650),
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            rows = stock_alerts.near_expiry(db, owner_id, days=days)
        return ok(rows, meta={"count": len(rows)})
    except Exception as e:
        return safe_err(e)


@router.get("/alerts/expired")
def expired_api(db: Session = Depends(get_db), owner_id: int = Depends(current_owner_id)):
    try:
        with db.begin():
            rows = stock_alerts.expired(db, owner_id)
        return ok(rows, meta={"count": len(rows)})
    except Exception as e:
        return safe_err(e)


@router.get("/alerts/out-of-stock")
def out_of_stock_api(db: Session = Depends(get_db), owner_id: int = Depends(current_owner_id)):
    try:
        with db.begin():
            rows = stock_alerts.out_of_stock(db, owner_id)
        return ok(rows, meta={"count": len(rows)})
    except Exception as e:
        return safe_err(e)


@router.get("/summary")
def stock_summary_api(db: Session = Depends(get_db), owner_id: int = Depends(current_owner_id)):
    try:
        with db.begin():
            summary = stock_alerts.stock_summary(db, owner_id)
        return ok(StockSummaryOut(**summary).model_dump())
    except Exception as e:
        return safe_err(e)
