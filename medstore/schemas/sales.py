# FILE: medstore/schemas/sales.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from medstore.models.sales import PaymentMethod


# ---------- Create sale ----------


class SaleItemIn(BaseModel):
    batch_id: int
    quantity: int = Field(..., ge=1)
    # defaults to the batch selling price
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    tax_percent: Decimal = Field(Decimal("0"), ge=0)


class CustomerInfo(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    doctor_name: Optional[str] = None
    prescription_number: Optional[str] = None


class SaleCreate(CustomerInfo):
    sale_date: Optional[datetime] = None
    items: List[SaleItemIn] = Field(..., min_length=1)

    shipping_charges: Decimal = Field(Decimal("0"), ge=0)
    other_charges: Decimal = Field(Decimal("0"), ge=0)
    amount_paid: Decimal = Field(..., ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class SaleCancelIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


# ---------- Returns ----------


class ReturnItemIn(BaseModel):
    sale_item_id: Optional[int] = None
    batch_id: Optional[int] = None
    quantity: int = Field(..., ge=1)
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if self.sale_item_id is None and self.batch_id is None:
            raise ValueError("sale_item_id or batch_id is required")
        return self


class SaleReturnCreate(BaseModel):
    sale_id: int
    items: List[ReturnItemIn] = Field(..., min_length=1)
    reason: Optional[str] = None
    notes: Optional[str] = None


# ---------- Out ----------


class SaleItemOut(BaseModel):
    id: int
    batch_id: int
    medicine_id: int
    medicine_name: str
    batch_number: Optional[str] = None
    quantity: int
    returned_quantity: int
    unit_price: Decimal
    mrp: Optional[Decimal] = None
    discount_percent: Decimal
    discount_amount: Decimal
    tax_percent: Decimal
    tax_amount: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class SaleOut(BaseModel):
    id: int
    owner_id: int
    bill_number: str
    sale_date: datetime

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    doctor_name: Optional[str] = None
    prescription_number: Optional[str] = None

    items: List[SaleItemOut] = []
    items_count: int
    total_quantity: int

    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    shipping_charges: Decimal
    other_charges: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal

    payment_method: str
    payment_status: str
    transaction_id: Optional[str] = None
    status: str
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SaleReturnItemOut(BaseModel):
    id: int
    sale_item_id: int
    batch_id: int
    medicine_id: int
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SaleReturnOut(BaseModel):
    id: int
    owner_id: int
    return_number: str
    sale_id: int
    return_date: datetime
    items: List[SaleReturnItemOut] = []
    total_amount: Decimal
    return_type: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)
