# FILE: medstore/services/sales.py
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from medstore.models.inventory import InventoryBatch, TransactionType
from medstore.models.sales import (
    PaymentStatus,
    ReturnType,
    Sale,
    SaleItem,
    SaleReturn,
    SaleReturnItem,
    SaleStatus,
)
from medstore.schemas.sales import SaleCreate, SaleReturnCreate
from medstore.services.batch_status import available_quantity, is_expired
from medstore.services.errors import (
    ConflictError,
    ExpiredStockError,
    InsufficientStockError,
    InvalidReturnError,
    NotFoundError,
)
from medstore.services.inventory import adjust_stock, get_batch, reverse_sale_consumption
from medstore.services.number_series import next_bill_number, next_return_number
from medstore.utils.timezone import now_local

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY, rounding=ROUND_HALF_UP)


def _d(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


@dataclass(frozen=True)
class LinePrice:
    item_subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


def price_line(
    unit_price: Decimal,
    quantity: int,
    discount_percent: Decimal = ZERO,
    tax_percent: Decimal = ZERO,
) -> LinePrice:
    """
    Tax is charged on the discounted amount. Each component is rounded to
    paise, so line_total = subtotal - discount + tax holds exactly.
    """
    item_subtotal = _round_money(_d(unit_price) * quantity)
    discount = _round_money(item_subtotal * _d(discount_percent) / HUNDRED)
    tax = _round_money((item_subtotal - discount) * _d(tax_percent) / HUNDRED)
    return LinePrice(
        item_subtotal=item_subtotal,
        discount_amount=discount,
        tax_amount=tax,
        line_total=item_subtotal - discount + tax,
    )


def _payment_status(balance_due: Decimal, amount_paid: Decimal) -> PaymentStatus:
    if balance_due > 0:
        return PaymentStatus.PARTIAL if amount_paid > 0 else PaymentStatus.PENDING
    return PaymentStatus.COMPLETED


# -------------------------
# Sale fulfillment
# -------------------------
def _validate_sale_lines(
    db: Session, owner_id: int, payload: SaleCreate, now: datetime
) -> Dict[int, InventoryBatch]:
    """
    Read-only pass over every line: batches exist, none expired, and the
    summed quantity per batch fits what is on hand. Nothing is written.
    """
    batches: Dict[int, InventoryBatch] = {}
    requested: "OrderedDict[int, int]" = OrderedDict()

    for line in payload.items:
        batch = batches.get(line.batch_id)
        if batch is None:
            batch = get_batch(db, line.batch_id, owner_id)
            batches[line.batch_id] = batch

        if is_expired(batch, now):
            raise ExpiredStockError(
                f"Cannot sell expired medicine: {batch.medicine_name} (batch {batch.batch_number}, "
                f"expired {batch.expiry_date.isoformat()})",
                details={"batch_id": batch.id, "expiry_date": batch.expiry_date.isoformat()},
            )
        requested[line.batch_id] = requested.get(line.batch_id, 0) + line.quantity

    for batch_id, qty in requested.items():
        batch = batches[batch_id]
        if qty > available_quantity(batch):
            logger.warning(
                "Sale rejected owner_id=%s batch_id=%s requested=%s available=%s",
                owner_id, batch_id, qty, available_quantity(batch))
            raise InsufficientStockError(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                medicine_name=batch.medicine_name,
                requested=qty,
                available=available_quantity(batch),
            )
    return batches


def create_sale(
    db: Session,
    owner_id: int,
    payload: SaleCreate,
    now: Optional[datetime] = None,
) -> Sale:
    """
    Validate everything, price it, then in one SAVEPOINT allocate the bill
    number, insert the sale and consume each line. If any consumption fails
    the savepoint rolls back every counter already moved for this request.
    """
    now = now or now_local()
    batches = _validate_sale_lines(db, owner_id, payload, now)

    items: List[SaleItem] = []
    subtotal = total_discount = total_tax = ZERO

    for line in payload.items:
        batch = batches[line.batch_id]
        unit_price = line.unit_price if line.unit_price is not None else _d(batch.selling_price)
        price = price_line(unit_price, line.quantity, line.discount_percent, line.tax_percent)

        subtotal += price.item_subtotal
        total_discount += price.discount_amount
        total_tax += price.tax_amount

        items.append(SaleItem(
            batch_id=batch.id,
            medicine_id=batch.medicine_id,
            medicine_name=batch.medicine_name,
            batch_number=batch.batch_number,
            quantity=line.quantity,
            returned_quantity=0,
            unit_price=_round_money(_d(unit_price)),
            mrp=batch.mrp,
            discount_percent=_d(line.discount_percent),
            discount_amount=price.discount_amount,
            tax_percent=_d(line.tax_percent),
            tax_amount=price.tax_amount,
            line_total=price.line_total,
        ))

    shipping = _round_money(_d(payload.shipping_charges))
    other = _round_money(_d(payload.other_charges))
    amount_paid = _round_money(_d(payload.amount_paid))
    total_amount = subtotal - total_discount + total_tax + shipping + other
    balance_due = total_amount - amount_paid

    with db.begin_nested():
        bill_number = next_bill_number(db, owner_id, now)

        sale = Sale(
            owner_id=owner_id,
            bill_number=bill_number,
            sale_date=payload.sale_date or now,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            customer_email=payload.customer_email,
            customer_address=payload.customer_address,
            doctor_name=payload.doctor_name,
            prescription_number=payload.prescription_number,
            subtotal=subtotal,
            total_discount=total_discount,
            total_tax=total_tax,
            shipping_charges=shipping,
            other_charges=other,
            total_amount=total_amount,
            amount_paid=amount_paid,
            balance_due=balance_due,
            payment_method=payload.payment_method.value,
            payment_status=_payment_status(balance_due, amount_paid).value,
            transaction_id=payload.transaction_id,
            status=SaleStatus.COMPLETED.value,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )
        sale.items = items
        db.add(sale)
        db.flush()

        for item in items:
            adjust_stock(
                db,
                item.batch_id,
                owner_id,
                TransactionType.SALE,
                item.quantity,
                reason=f"Sale {bill_number}",
                reference_number=bill_number,
                sale_id=sale.id,
                now=now,
            )

    logger.info(
        "Sale created sale_id=%s owner_id=%s bill=%s items=%s total=%s status=%s",
        sale.id, owner_id, bill_number, len(items), total_amount, sale.payment_status)
    return sale


# -------------------------
# Lookups
# -------------------------
def _sale_query(db: Session, owner_id: int):
    return (
        db.query(Sale)
        .options(selectinload(Sale.items))
        .filter(Sale.owner_id == owner_id)
    )


def get_sale(db: Session, sale_id: int, owner_id: int, *, for_update: bool = False) -> Sale:
    q = _sale_query(db, owner_id).filter(Sale.id == sale_id)
    if for_update:
        q = q.with_for_update()
    sale = q.first()
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def get_sale_by_bill_number(db: Session, bill_number: str, owner_id: int) -> Sale:
    sale = _sale_query(db, owner_id).filter(Sale.bill_number == (bill_number or "").strip()).first()
    if not sale:
        raise NotFoundError(f"Sale with bill number {bill_number} not found")
    return sale


def list_sales(
    db: Session,
    owner_id: int,
    *,
    page: int = 1,
    limit: int = 50,
    bill_number: Optional[str] = None,
    customer: Optional[str] = None,
    status: Optional[SaleStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    payment_method: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Tuple[List[Sale], int]:
    page = max(page or 1, 1)
    limit = max(limit or 50, 1)

    q = _sale_query(db, owner_id)
    if bill_number:
        q = q.filter(Sale.bill_number.ilike(f"%{bill_number.strip()}%"))
    if customer:
        like = f"%{customer.strip()}%"
        q = q.filter(or_(Sale.customer_name.ilike(like), Sale.customer_phone.ilike(like)))
    if status is not None:
        q = q.filter(Sale.status == SaleStatus(status).value)
    if payment_status is not None:
        q = q.filter(Sale.payment_status == PaymentStatus(payment_status).value)
    if payment_method:
        q = q.filter(Sale.payment_method == str(getattr(payment_method, "value", payment_method)))
    if date_from:
        q = q.filter(Sale.sale_date >= date_from)
    if date_to:
        q = q.filter(Sale.sale_date <= date_to)

    total = q.count()
    rows = (
        q.order_by(Sale.sale_date.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def list_returns_for_sale(db: Session, sale_id: int, owner_id: int) -> List[SaleReturn]:
    get_sale(db, sale_id, owner_id)
    return (
        db.query(SaleReturn)
        .options(selectinload(SaleReturn.items))
        .filter(SaleReturn.sale_id == sale_id, SaleReturn.owner_id == owner_id)
        .order_by(SaleReturn.id.asc())
        .all()
    )


# -------------------------
# Cancellation
# -------------------------
def cancel_sale(
    db: Session,
    sale_id: int,
    owner_id: int,
    reason: str,
    now: Optional[datetime] = None,
) -> Sale:
    """
    Credits back whatever the sale still holds (quantity - returned) on the
    exact batch each line consumed, then marks the sale cancelled.
    """
    now = now or now_local()
    sale = get_sale(db, sale_id, owner_id, for_update=True)

    if sale.status == SaleStatus.CANCELLED.value:
        raise ConflictError(f"Sale {sale.bill_number} is already cancelled")
    if sale.status == SaleStatus.RETURNED.value:
        raise ConflictError(f"Sale {sale.bill_number} has been fully returned and cannot be cancelled")

    with db.begin_nested():
        for item in sale.items:
            outstanding = item.returnable_quantity
            if outstanding <= 0:
                continue
            reverse_sale_consumption(
                db,
                item.batch_id,
                owner_id,
                outstanding,
                reason=f"Sale cancelled: {reason}",
                reference_number=sale.bill_number,
                sale_id=sale.id,
                now=now,
            )

        sale.status = SaleStatus.CANCELLED.value
        sale.payment_status = PaymentStatus.CANCELLED.value
        sale.cancellation_reason = reason
        sale.cancelled_at = now
        sale.updated_at = now
        db.flush()

    logger.info("Sale cancelled sale_id=%s owner_id=%s bill=%s", sale.id, owner_id, sale.bill_number)
    return sale


# -------------------------
# Returns
# -------------------------
def _allocate_return_lines(
    sale: Sale, payload: SaleReturnCreate
) -> List[Tuple[SaleItem, int, Optional[str]]]:
    """
    Resolve each requested line to sale items. A batch_id line spreads over
    the sale's items for that batch in line order. Repeated lines draw from
    the same remaining quantity.
    """
    remaining = {item.id: item.returnable_quantity for item in sale.items}
    by_id = {item.id: item for item in sale.items}
    allocations: List[Tuple[SaleItem, int, Optional[str]]] = []

    for line in payload.items:
        reason = line.reason or payload.reason
        if line.sale_item_id is not None:
            item = by_id.get(line.sale_item_id)
            if item is None:
                raise InvalidReturnError(
                    f"Item {line.sale_item_id} is not part of sale {sale.bill_number}")
            if line.quantity > remaining[item.id]:
                raise InvalidReturnError(
                    f"Cannot return {line.quantity} of {item.medicine_name}: "
                    f"only {remaining[item.id]} left to return",
                    details={"sale_item_id": item.id, "requested": line.quantity,
                             "returnable": remaining[item.id]},
                )
            remaining[item.id] -= line.quantity
            allocations.append((item, line.quantity, reason))
            continue

        matches = [i for i in sale.items if i.batch_id == line.batch_id]
        if not matches:
            raise InvalidReturnError(
                f"Batch {line.batch_id} is not part of sale {sale.bill_number}")
        returnable = sum(remaining[i.id] for i in matches)
        if line.quantity > returnable:
            raise InvalidReturnError(
                f"Cannot return {line.quantity} from batch {matches[0].batch_number}: "
                f"only {returnable} left to return",
                details={"batch_id": line.batch_id, "requested": line.quantity, "returnable": returnable},
            )
        left = line.quantity
        for item in matches:
            if left == 0:
                break
            take = min(left, remaining[item.id])
            if take <= 0:
                continue
            remaining[item.id] -= take
            left -= take
            allocations.append((item, take, reason))

    return allocations


def create_return(
    db: Session,
    owner_id: int,
    payload: SaleReturnCreate,
    now: Optional[datetime] = None,
) -> SaleReturn:
    now = now or now_local()
    sale = get_sale(db, payload.sale_id, owner_id, for_update=True)

    if sale.status == SaleStatus.CANCELLED.value:
        raise InvalidReturnError(f"Cannot return items from cancelled sale {sale.bill_number}")
    if sale.status == SaleStatus.RETURNED.value:
        raise InvalidReturnError(f"Sale {sale.bill_number} has already been fully returned")

    allocations = _allocate_return_lines(sale, payload)

    with db.begin_nested():
        return_number = next_return_number(db, owner_id, now)
        sale_return = SaleReturn(
            owner_id=owner_id,
            return_number=return_number,
            sale_id=sale.id,
            return_date=now,
            reason=payload.reason,
            notes=payload.notes,
            status="completed",
            created_at=now,
        )

        total = ZERO
        for item, qty, reason in allocations:
            adjust_stock(
                db,
                item.batch_id,
                owner_id,
                TransactionType.RETURN,
                qty,
                reason=reason or f"Return {return_number}",
                reference_number=return_number,
                sale_id=sale.id,
                now=now,
                allow_inactive=True,
            )
            before = int(item.returned_quantity or 0)
            item.returned_quantity = before + qty

            line_total = _d(item.line_total)
            sold = int(item.quantity)
            effective_unit = line_total / sold
            # cumulative rounding so piecewise refunds sum to line_total
            refund = (
                _round_money(line_total * (before + qty) / sold)
                - _round_money(line_total * before / sold)
            )
            total += refund
            sale_return.items.append(SaleReturnItem(
                sale_item_id=item.id,
                batch_id=item.batch_id,
                medicine_id=item.medicine_id,
                quantity=qty,
                unit_price=_round_money(effective_unit),
                line_total=refund,
                reason=reason,
            ))

        fully_returned = all(i.returnable_quantity == 0 for i in sale.items)
        sale_return.total_amount = total
        sale_return.return_type = (ReturnType.FULL if fully_returned else ReturnType.PARTIAL).value

        if fully_returned:
            sale.status = SaleStatus.RETURNED.value
            sale.payment_status = PaymentStatus.REFUNDED.value
        sale.updated_at = now

        db.add(sale_return)
        db.flush()

    logger.info(
        "Sale return created return_id=%s number=%s sale_id=%s owner_id=%s type=%s total=%s",
        sale_return.id, return_number, sale.id, owner_id, sale_return.return_type, total)
    return sale_return
