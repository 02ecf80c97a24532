# FILE: medstore/schemas/inventory.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from medstore.models.inventory import TransactionType

# ---------- Batches ----------


class BatchBase(BaseModel):
    batch_number: str = Field(..., min_length=1, max_length=100)
    expiry_date: date
    manufacture_date: date

    purchase_price: Decimal = Field(..., ge=0)
    selling_price: Decimal = Field(..., ge=0)
    mrp: Optional[Decimal] = Field(None, ge=0)

    supplier: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    purchase_date: Optional[date] = None
    rack_number: Optional[str] = None
    shelf_number: Optional[str] = None
    notes: Optional[str] = None

    reorder_level: Optional[int] = Field(None, ge=0)
    expiry_alert_days: Optional[int] = Field(None, ge=1)

    @field_validator("batch_number")
    @classmethod
    def _strip_batch_number(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("batch_number is required")
        return v


class BatchCreate(BatchBase):
    medicine_id: int
    quantity: int = Field(..., ge=0)


class BatchUpdate(BaseModel):
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    mrp: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    rack_number: Optional[str] = None
    shelf_number: Optional[str] = None
    notes: Optional[str] = None
    reorder_level: Optional[int] = Field(None, ge=0)
    expiry_alert_days: Optional[int] = Field(None, ge=1)

    @field_validator("purchase_price", "selling_price")
    @classmethod
    def _price_not_null(cls, v: Optional[Decimal]) -> Decimal:
        # omit the field to keep the current price
        if v is None:
            raise ValueError("price cannot be null")
        return v


class BatchOut(BaseModel):
    id: int
    owner_id: int
    medicine_id: int
    medicine_name: str = ""
    batch_number: str
    expiry_date: date
    manufacture_date: date

    received_quantity: int
    sold_quantity: int
    damaged_quantity: int
    available_quantity: int
    days_until_expiry: Optional[int] = None
    is_expired: Optional[bool] = None
    profit_margin: Optional[Decimal] = None
    profit_percentage: Optional[Decimal] = None

    purchase_price: Decimal
    selling_price: Decimal
    mrp: Optional[Decimal] = None

    supplier: Optional[str] = None
    supplier_invoice_number: Optional[str] = None
    purchase_date: Optional[date] = None
    rack_number: Optional[str] = None
    shelf_number: Optional[str] = None
    notes: Optional[str] = None

    reorder_level: int
    expiry_alert_days: int
    status: str
    is_active: bool

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- Adjustments / ledger ----------


class StockAdjustIn(BaseModel):
    type: TransactionType
    quantity: int
    reason: Optional[str] = None
    reference_number: Optional[str] = None


class StockTransactionOut(BaseModel):
    id: int
    batch_id: int
    owner_id: int
    type: str
    quantity_delta: int
    previous_quantity: int
    new_quantity: int
    reason: Optional[str] = None
    reference_number: Optional[str] = None
    sale_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- Order intake ----------


class OrderLineIn(BaseModel):
    medicine_id: int
    batch_number: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    verified: bool = False

    # only needed when the batch does not exist yet
    expiry_date: Optional[date] = None
    manufacture_date: Optional[date] = None
    selling_price: Optional[Decimal] = Field(None, ge=0)
    mrp: Optional[Decimal] = Field(None, ge=0)


class ReceiveOrderIn(BaseModel):
    reference_number: Optional[str] = None
    supplier: Optional[str] = None
    lines: List[OrderLineIn] = Field(..., min_length=1)


# ---------- Summary ----------


class StockSummaryOut(BaseModel):
    total_items: int
    total_value: Decimal
    alert_counts: Dict[str, int]
