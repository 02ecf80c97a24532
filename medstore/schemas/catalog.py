# FILE: medstore/schemas/catalog.py
from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class MedicineOut(BaseModel):
    id: int
    name: str
    generic_name: str = ""
    manufacturer: str = ""
    form: str = ""
    strength: str = ""
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
