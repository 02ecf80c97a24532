# FILE: medstore/models/__init__.py
from .catalog import Medicine
from .inventory import (
    BatchStatus,
    TransactionType,
    InventoryBatch,
    StockTransaction,
    NumberSeries,
)
from .sales import (
    SaleStatus,
    PaymentStatus,
    PaymentMethod,
    ReturnType,
    Sale,
    SaleItem,
    SaleReturn,
    SaleReturnItem,
)

__all__ = [
    "Medicine",
    "BatchStatus",
    "TransactionType",
    "InventoryBatch",
    "StockTransaction",
    "NumberSeries",
    "SaleStatus",
    "PaymentStatus",
    "PaymentMethod",
    "ReturnType",
    "Sale",
    "SaleItem",
    "SaleReturn",
    "SaleReturnItem",
]
