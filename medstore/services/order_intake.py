# FILE: medstore/services/order_intake.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from medstore.models.inventory import InventoryBatch, TransactionType
from medstore.schemas.inventory import BatchCreate, OrderLineIn
from medstore.services.errors import ConflictError, InvalidAdjustmentError
from medstore.services.inventory import adjust_stock, create_batch, find_batch_by_identity
from medstore.utils.timezone import now_local

logger = logging.getLogger(__name__)


def receive_order_lines(
    db: Session,
    owner_id: int,
    lines: List[OrderLineIn],
    reference_number: Optional[str] = None,
    supplier: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[InventoryBatch]:
    """
    Turn verified supplier order lines into stock. A known batch identity gets
    a purchase adjustment; an unknown one becomes a new batch. All lines are
    checked before the first write and applied together.
    """
    now = now or now_local()
    if not lines:
        raise InvalidAdjustmentError("Order has no lines to receive")

    unverified = [i for i, line in enumerate(lines, start=1) if not line.verified]
    if unverified:
        raise InvalidAdjustmentError(
            "All order lines must be verified before receiving stock",
            details={"unverified_lines": unverified},
        )

    plan = []
    for idx, line in enumerate(lines, start=1):
        existing = find_batch_by_identity(db, owner_id, line.medicine_id, line.batch_number)
        if existing is not None and not existing.is_active:
            raise ConflictError(
                f"Line {idx}: batch {existing.batch_number} (id {existing.id}) is deactivated; "
                "receive under a new batch number",
                details={"line": idx, "batch_id": existing.id, "batch_number": existing.batch_number},
            )
        if existing is None and (line.expiry_date is None or line.manufacture_date is None):
            raise InvalidAdjustmentError(
                f"Line {idx}: expiry_date and manufacture_date are required for new batch {line.batch_number}")
        plan.append((line, existing))

    received: List[InventoryBatch] = []
    with db.begin_nested():
        for line, existing in plan:
            # an earlier line of this order may have created the batch
            if existing is None:
                existing = find_batch_by_identity(db, owner_id, line.medicine_id, line.batch_number)

            if existing is not None:
                batch = adjust_stock(
                    db,
                    existing.id,
                    owner_id,
                    TransactionType.PURCHASE,
                    line.quantity,
                    reason="Supplier order received",
                    reference_number=reference_number,
                    now=now,
                )
            else:
                batch = create_batch(
                    db,
                    owner_id,
                    BatchCreate(
                        medicine_id=line.medicine_id,
                        batch_number=line.batch_number,
                        expiry_date=line.expiry_date,
                        manufacture_date=line.manufacture_date,
                        quantity=line.quantity,
                        purchase_price=line.unit_price,
                        selling_price=line.selling_price if line.selling_price is not None else line.unit_price,
                        mrp=line.mrp,
                        supplier=supplier,
                        supplier_invoice_number=reference_number,
                        purchase_date=now.date(),
                    ),
                    now=now,
                )
            received.append(batch)

    logger.info(
        "Order received owner_id=%s ref=%s lines=%s", owner_id, reference_number, len(received))
    return received
