# FILE: medstore/api/routes_sales.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from medstore.api.deps import current_owner_id, get_db
from medstore.api.exception_handlers import safe_err
from medstore.models.sales import PaymentMethod, PaymentStatus, SaleStatus
from medstore.schemas.common import make_pagination
from medstore.schemas.sales import (
    SaleCancelIn,
    SaleCreate,
    SaleOut,
    SaleReturnCreate,
    SaleReturnOut,
)
from medstore.services.sales import (
    cancel_sale,
    create_return,
    create_sale,
    get_sale,
    get_sale_by_bill_number,
    list_returns_for_sale,
    list_sales,
)
from medstore.utils.resp import ok

router = APIRouter(prefix="/sales", tags=["sales"])


def _sale_out(sale) -> dict:
    return SaleOut.model_validate(sale).model_dump()


@router.post("")
def create_sale_api(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            sale = create_sale(db, owner_id, payload)
            data = _sale_out(sale)
        return ok(data, status_code=201)
    except Exception as e:
        return safe_err(e)


@router.get("")
def list_sales_api(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    bill_number: Optional[str] = Query(None),
    customer: Optional[str] = Query(None, description="Customer name or phone"),
    status: Optional[SaleStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            rows, total = list_sales(
                db,
                owner_id,
                page=page,
                limit=limit,
                bill_number=bill_number,
                customer=customer,
                status=status,
                payment_status=payment_status,
                payment_method=payment_method.value if payment_method else None,
                date_from=date_from,
                date_to=date_to,
            )
            data = [_sale_out(s) for s in rows]
        return ok(data, meta=make_pagination(page, limit, total).model_dump())
    except Exception as e:
        return safe_err(e)


@router.post("/returns")
def create_return_api(
    payload: SaleReturnCreate,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            sale_return = create_return(db, owner_id, payload)
            data = SaleReturnOut.model_validate(sale_return).model_dump()
        return ok(data, status_code=201)
    except Exception as e:
        return safe_err(e)


@router.get("/bill/{bill_number}")
def get_sale_by_bill_api(
    bill_number: str,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            data = _sale_out(get_sale_by_bill_number(db, bill_number, owner_id))
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.get("/{sale_id}")
def get_sale_api(
    sale_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            data = _sale_out(get_sale(db, sale_id, owner_id))
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.post("/{sale_id}/cancel")
def cancel_sale_api(
    sale_id: int,
    payload: SaleCancelIn,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            sale = cancel_sale(db, sale_id, owner_id, payload.reason)
            data = _sale_out(sale)
        return ok(data)
    except Exception as e:
        return safe_err(e)


@router.get("/{sale_id}/returns")
def list_sale_returns_api(
    sale_id: int,
    db: Session = Depends(get_db),
    owner_id: int = Depends(current_owner_id),
):
    try:
        with db.begin():
            rows = list_returns_for_sale(db, sale_id, owner_id)
            data = [SaleReturnOut.model_validate(r).model_dump() for r in rows]
        return ok(data)
    except Exception as e:
        return safe_err(e)
