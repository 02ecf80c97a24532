# FILE: medstore/api/routes_medicines.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from medstore.api.deps import get_db
from medstore.api.exception_handlers import safe_err
from medstore.models.catalog import Medicine
from medstore.schemas.catalog import MedicineOut
from medstore.services.catalog import resolve_medicine
from medstore.utils.resp import ok

router = APIRouter(prefix="/medicines", tags=["medicines"])


@router.get("/{medicine_id}")
def get_medicine_api(medicine_id: int, db: Session = Depends(get_db)):
    try:
        with db.begin():
            ref = resolve_medicine(db, medicine_id)
            med = db.get(Medicine, ref.id)
            data = MedicineOut.model_validate(med).model_dump()
        return ok(data)
    except Exception as e:
        return safe_err(e)
