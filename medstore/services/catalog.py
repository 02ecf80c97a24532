# FILE: medstore/services/catalog.py
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from medstore.models.catalog import Medicine
from medstore.services.errors import NotFoundError


@dataclass(frozen=True)
class MedicineRef:
    id: int
    name: str
    manufacturer: str


def resolve_medicine(db: Session, medicine_id: int) -> MedicineRef:
    """Display/audit lookup only; never used for stock math."""
    med = db.get(Medicine, medicine_id)
    if not med or not med.is_active:
        raise NotFoundError(f"Medicine {medicine_id} not found")
    return MedicineRef(id=med.id, name=med.name or "", manufacturer=med.manufacturer or "")


def create_medicine(
    db: Session,
    *,
    name: str,
    generic_name: str = "",
    manufacturer: str = "",
    form: str = "",
    strength: str = "",
) -> Medicine:
    med = Medicine(
        name=name.strip(),
        generic_name=(generic_name or "").strip(),
        manufacturer=(manufacturer or "").strip(),
        form=form or "",
        strength=strength or "",
    )
    db.add(med)
    db.flush()
    return med
