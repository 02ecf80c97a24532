# FILE: medstore/models/inventory.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric,
    ForeignKey, Text, CheckConstraint, Index, UniqueConstraint, event
)
from sqlalchemy.orm import relationship

from medstore.db.base import Base
from medstore.utils.timezone import now_local

Money = Numeric(14, 2)


# -------------------------
# Enums
# -------------------------
class BatchStatus(str, enum.Enum):
    ACTIVE = "active"
    LOW_STOCK = "low_stock"
    NEAR_EXPIRY = "near_expiry"
    EXPIRED = "expired"
    OUT_OF_STOCK = "out_of_stock"


class TransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    DAMAGE = "damage"
    RETURN = "return"
    ADJUSTMENT = "adjustment"


# counter each transaction type moves
TXN_COUNTER = {
    TransactionType.PURCHASE: "received_quantity",
    TransactionType.ADJUSTMENT: "received_quantity",
    TransactionType.SALE: "sold_quantity",
    TransactionType.RETURN: "sold_quantity",
    TransactionType.DAMAGE: "damaged_quantity",
}


# -------------------------
# Batches
# -------------------------
class InventoryBatch(Base):
    """
    One purchased lot of one medicine for one owner (pharmacy account).
    Counters only move through services.inventory; status is persisted and
    recomputed on every write.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        UniqueConstraint("medicine_id", "batch_number", "owner_id", name="uq_inventory_batch_identity"),
        CheckConstraint("received_quantity >= 0", name="ck_batch_received_nonneg"),
        CheckConstraint("sold_quantity >= 0", name="ck_batch_sold_nonneg"),
        CheckConstraint("damaged_quantity >= 0", name="ck_batch_damaged_nonneg"),
        CheckConstraint("sold_quantity + damaged_quantity <= received_quantity", name="ck_batch_consumed_le_received"),
        Index("ix_batch_owner_status", "owner_id", "status"),
        Index("ix_batch_owner_expiry", "owner_id", "expiry_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False, index=True)

    batch_number = Column(String(100), nullable=False)
    expiry_date = Column(Date, nullable=False)
    manufacture_date = Column(Date, nullable=False)

    received_quantity = Column(Integer, nullable=False, default=0)
    sold_quantity = Column(Integer, nullable=False, default=0)
    damaged_quantity = Column(Integer, nullable=False, default=0)

    purchase_price = Column(Money, nullable=False, default=0)
    selling_price = Column(Money, nullable=False, default=0)
    mrp = Column(Money, nullable=True)

    supplier = Column(String(255), nullable=True)
    supplier_invoice_number = Column(String(100), nullable=True)
    purchase_date = Column(Date, nullable=True)
    rack_number = Column(String(50), nullable=True)
    shelf_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    reorder_level = Column(Integer, nullable=False, default=10)
    expiry_alert_days = Column(Integer, nullable=False, default=30)

    status = Column(String(20), nullable=False, default=BatchStatus.ACTIVE.value)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local, nullable=False)

    medicine = relationship("Medicine", back_populates="batches")
    transactions = relationship("StockTransaction", back_populates="batch")

    @property
    def available_quantity(self) -> int:
        return int(self.received_quantity or 0) - int(self.sold_quantity or 0) - int(self.damaged_quantity or 0)

    @property
    def medicine_name(self) -> str:
        return self.medicine.name if self.medicine is not None else ""


# -------------------------
# Ledger
# -------------------------
class StockTransaction(Base):
    """
    Append-only. quantity_delta is the signed change of the counter the
    type moves (see TXN_COUNTER), new_quantity = previous_quantity + delta.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        Index("ix_stock_txn_batch_time", "batch_id", "created_at"),
        Index("ix_stock_txn_owner_type", "owner_id", "type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("inventory_batches.id"), nullable=False, index=True)
    owner_id = Column(Integer, nullable=False, index=True)

    type = Column(String(20), nullable=False)
    quantity_delta = Column(Integer, nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)

    reason = Column(String(1000), nullable=True)
    reference_number = Column(String(100), nullable=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=True, index=True)

    created_at = Column(DateTime, default=now_local, nullable=False)

    batch = relationship("InventoryBatch", back_populates="transactions")


class LedgerImmutableError(RuntimeError):
    pass


@event.listens_for(StockTransaction, "before_update")
def _block_txn_update(mapper, connection, target):
    raise LedgerImmutableError(f"Stock transaction {target.id} is immutable")


@event.listens_for(StockTransaction, "before_delete")
def _block_txn_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Stock transaction {target.id} cannot be deleted")


# -------------------------
# Safe number generator
# -------------------------
class NumberSeries(Base):
    __tablename__ = "number_series"
    __table_args__ = (
        UniqueConstraint("owner_id", "key", "period_key", name="uq_number_series_owner_key_period"),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False)
    key = Column(String(30), nullable=False)         # BILL / RET
    period_key = Column(Integer, nullable=False)     # YYYYMM
    next_seq = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=now_local, onupdate=now_local)
