# FILE: medstore/services/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(RuntimeError):
    """Base for every rejection raised by the inventory/sales services."""

    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, msg: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(msg)
        self.details = details or {}


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = 404


class InsufficientStockError(LedgerError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        *,
        batch_id: int,
        batch_number: str,
        medicine_name: str,
        requested: int,
        available: int,
        action: str = "sell",
    ) -> None:
        self.batch_id = batch_id
        self.batch_number = batch_number
        self.medicine_name = medicine_name
        self.requested = requested
        self.available = max(available, 0)
        self.shortfall = requested - self.available
        super().__init__(
            f"Insufficient stock to {action} {requested} of {medicine_name or 'medicine'} "
            f"(batch {batch_number}): available {self.available}, short by {self.shortfall}",
            details={
                "batch_id": batch_id,
                "batch_number": batch_number,
                "medicine_name": medicine_name,
                "requested": requested,
                "available": self.available,
                "shortfall": self.shortfall,
            },
        )


class ExpiredStockError(LedgerError):
    code = "EXPIRED"
    status_code = 409


class InvalidAdjustmentError(LedgerError):
    code = "INVALID_ADJUSTMENT"
    status_code = 400


class InvalidBatchError(LedgerError):
    code = "INVALID_BATCH"
    status_code = 400


class InvalidReturnError(LedgerError):
    code = "INVALID_RETURN"
    status_code = 400


class ConflictError(LedgerError):
    code = "CONFLICT"
    status_code = 409
