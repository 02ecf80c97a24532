# FILE: medstore/models/sales.py
from __future__ import annotations

import enum
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey, Text,
    CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from medstore.db.base import Base
from medstore.utils.timezone import now_local

Money = Numeric(14, 2)
Percent = Numeric(5, 2)


class SaleStatus(str, enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, enum.Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    PENDING = "pending"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    CHEQUE = "cheque"
    MIXED = "mixed"


class ReturnType(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint("owner_id", "bill_number", name="uq_sales_owner_bill_number"),
        Index("ix_sales_owner_date", "owner_id", "sale_date"),
        Index("ix_sales_owner_status", "owner_id", "status", "payment_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    bill_number = Column(String(50), nullable=False, index=True)
    sale_date = Column(DateTime, nullable=False, default=now_local)

    # walk-in customer details (optional)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_address = Column(String(1000), nullable=True)
    doctor_name = Column(String(255), nullable=True)
    prescription_number = Column(String(100), nullable=True)

    subtotal = Column(Money, nullable=False, default=Decimal("0"))
    total_discount = Column(Money, nullable=False, default=Decimal("0"))
    total_tax = Column(Money, nullable=False, default=Decimal("0"))
    shipping_charges = Column(Money, nullable=False, default=Decimal("0"))
    other_charges = Column(Money, nullable=False, default=Decimal("0"))
    total_amount = Column(Money, nullable=False, default=Decimal("0"))
    amount_paid = Column(Money, nullable=False, default=Decimal("0"))
    balance_due = Column(Money, nullable=False, default=Decimal("0"))

    payment_method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED.value)
    transaction_id = Column(String(100), nullable=True)

    status = Column(String(20), nullable=False, default=SaleStatus.COMPLETED.value)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(String(1000), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    items = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    returns = relationship("SaleReturn", back_populates="sale", order_by="SaleReturn.id")

    @property
    def items_count(self) -> int:
        return len(self.items or [])

    @property
    def total_quantity(self) -> int:
        return sum(int(i.quantity or 0) for i in (self.items or []))


class SaleItem(Base):
    __tablename__ = "sale_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_item_qty_pos"),
        CheckConstraint("returned_quantity >= 0 AND returned_quantity <= quantity", name="ck_sale_item_returned_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("inventory_batches.id"), nullable=False, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False)

    medicine_name = Column(String(255), nullable=False, default="")
    batch_number = Column(String(100), nullable=True)

    quantity = Column(Integer, nullable=False)
    returned_quantity = Column(Integer, nullable=False, default=0)

    unit_price = Column(Money, nullable=False)
    mrp = Column(Money, nullable=True)
    discount_percent = Column(Percent, nullable=False, default=Decimal("0"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0"))
    tax_percent = Column(Percent, nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0"))
    line_total = Column(Money, nullable=False)

    sale = relationship("Sale", back_populates="items")
    batch = relationship("InventoryBatch")

    @property
    def returnable_quantity(self) -> int:
        return int(self.quantity or 0) - int(self.returned_quantity or 0)


class SaleReturn(Base):
    __tablename__ = "sale_returns"
    __table_args__ = (
        UniqueConstraint("owner_id", "return_number", name="uq_sale_returns_owner_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    return_number = Column(String(50), nullable=False, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)

    return_date = Column(DateTime, nullable=False, default=now_local)
    total_amount = Column(Money, nullable=False, default=Decimal("0"))
    return_type = Column(String(20), nullable=False, default=ReturnType.PARTIAL.value)
    reason = Column(String(1000), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="completed")

    created_at = Column(DateTime, default=now_local, nullable=False)

    sale = relationship("Sale", back_populates="returns")
    items = relationship(
        "SaleReturnItem",
        back_populates="sale_return",
        cascade="all, delete-orphan",
        order_by="SaleReturnItem.id",
    )


class SaleReturnItem(Base):
    __tablename__ = "sale_return_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_return_id = Column(Integer, ForeignKey("sale_returns.id"), nullable=False, index=True)
    sale_item_id = Column(Integer, ForeignKey("sale_items.id"), nullable=False)
    batch_id = Column(Integer, ForeignKey("inventory_batches.id"), nullable=False)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    line_total = Column(Money, nullable=False)
    reason = Column(String(1000), nullable=True)

    sale_return = relationship("SaleReturn", back_populates="items")
    sale_item = relationship("SaleItem")
