"""
Sale cancellation and returns: exact credit-back to the consumed batches.
"""

from decimal import Decimal

import pytest

from conftest import NOW, OTHER_OWNER, OWNER
from medstore.models.inventory import StockTransaction
from medstore.schemas.sales import SaleCreate, SaleReturnCreate
from medstore.services.errors import ConflictError, InvalidReturnError, NotFoundError
from medstore.services.inventory import deactivate_batch, replay_counters
from medstore.services.sales import cancel_sale, create_return, create_sale, list_returns_for_sale


@pytest.fixture
def sold(db, make_batch):
    """Two batches, one sale taking 4 + 6 units."""
    a = make_batch(quantity=20, selling_price=Decimal("10.00"))
    b = make_batch(quantity=20, selling_price=Decimal("3.00"))
    sale = create_sale(db, OWNER, SaleCreate(
        items=[
            {"batch_id": a.id, "quantity": 4, "tax_percent": "12"},
            {"batch_id": b.id, "quantity": 6},
        ],
        amount_paid=Decimal("62.80"),
    ), now=NOW)
    return sale, a, b


def _return(sale, items, **kw):
    return SaleReturnCreate(sale_id=sale.id, items=items, **kw)


class TestCancelSale:
    def test_restores_every_batch(self, db, sold):
        sale, a, b = sold
        cancel_sale(db, sale.id, OWNER, "customer changed mind", now=NOW)

        assert a.sold_quantity == 0
        assert b.sold_quantity == 0
        assert sale.status == "cancelled"
        assert sale.payment_status == "cancelled"
        assert sale.cancellation_reason == "customer changed mind"
        assert sale.cancelled_at == NOW

    def test_reversals_are_negative_sale_rows(self, db, sold):
        sale, a, _ = sold
        cancel_sale(db, sale.id, OWNER, "void", now=NOW)

        deltas = [
            t.quantity_delta
            for t in db.query(StockTransaction)
            .filter(StockTransaction.batch_id == a.id, StockTransaction.sale_id == sale.id)
            .order_by(StockTransaction.id.asc())
        ]
        assert deltas == [4, -4]
        assert replay_counters(db, a.id, OWNER).sold_quantity == 0

    def test_twice_is_conflict(self, db, sold):
        sale, a, _ = sold
        cancel_sale(db, sale.id, OWNER, "void", now=NOW)
        with pytest.raises(ConflictError):
            cancel_sale(db, sale.id, OWNER, "again", now=NOW)
        assert a.sold_quantity == 0

    def test_after_partial_return_credits_only_outstanding(self, db, sold):
        sale, a, _ = sold
        create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 1}]), now=NOW)
        assert a.sold_quantity == 3

        cancel_sale(db, sale.id, OWNER, "void", now=NOW)
        assert a.sold_quantity == 0

    def test_fully_returned_sale_cannot_be_cancelled(self, db, sold):
        sale, a, b = sold
        create_return(db, OWNER, _return(sale, [
            {"batch_id": a.id, "quantity": 4},
            {"batch_id": b.id, "quantity": 6},
        ]), now=NOW)
        with pytest.raises(ConflictError):
            cancel_sale(db, sale.id, OWNER, "void", now=NOW)

    def test_foreign_owner(self, db, sold):
        sale, _, _ = sold
        with pytest.raises(NotFoundError):
            cancel_sale(db, sale.id, OTHER_OWNER, "void", now=NOW)


class TestReturns:
    def test_partial_return(self, db, sold):
        sale, a, b = sold
        ret = create_return(db, OWNER, _return(sale, [{"batch_id": b.id, "quantity": 2, "reason": "damaged box"}]),
                            now=NOW)

        assert ret.return_number == "RET-202610-0001"
        assert ret.return_type == "partial"
        assert ret.status == "completed"
        assert ret.total_amount == Decimal("6.00")
        assert ret.items[0].reason == "damaged box"
        assert b.sold_quantity == 4
        assert a.sold_quantity == 4
        assert sale.items[1].returned_quantity == 2
        assert sale.status == "completed"

    def test_refund_uses_taxed_line_total(self, db, sold):
        sale, a, _ = sold
        # 4 x 10.00 + 12% tax = 44.80, so 1 unit refunds 11.20
        ret = create_return(db, OWNER, _return(sale, [{"sale_item_id": sale.items[0].id, "quantity": 1}]), now=NOW)
        assert ret.items[0].unit_price == Decimal("11.20")
        assert ret.total_amount == Decimal("11.20")

    def test_full_return_marks_sale(self, db, sold):
        sale, a, b = sold
        create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 2}]), now=NOW)
        ret = create_return(db, OWNER, _return(sale, [
            {"batch_id": a.id, "quantity": 2},
            {"batch_id": b.id, "quantity": 6},
        ]), now=NOW)

        assert ret.return_type == "full"
        assert sale.status == "returned"
        assert sale.payment_status == "refunded"
        assert a.sold_quantity == 0
        assert b.sold_quantity == 0

    def test_over_return_rejected(self, db, sold):
        sale, a, _ = sold
        with pytest.raises(InvalidReturnError):
            create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 5}]), now=NOW)
        assert a.sold_quantity == 4

    def test_cumulative_over_return_rejected(self, db, sold):
        sale, a, _ = sold
        create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 3}]), now=NOW)
        with pytest.raises(InvalidReturnError):
            create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 2}]), now=NOW)

    def test_repeated_lines_are_summed(self, db, sold):
        sale, a, _ = sold
        with pytest.raises(InvalidReturnError):
            create_return(db, OWNER, _return(sale, [
                {"batch_id": a.id, "quantity": 3},
                {"sale_item_id": sale.items[0].id, "quantity": 2},
            ]), now=NOW)

    def test_item_not_in_sale(self, db, sold, make_batch):
        sale, _, _ = sold
        other = make_batch()
        with pytest.raises(InvalidReturnError):
            create_return(db, OWNER, _return(sale, [{"batch_id": other.id, "quantity": 1}]), now=NOW)
        with pytest.raises(InvalidReturnError):
            create_return(db, OWNER, _return(sale, [{"sale_item_id": 999999, "quantity": 1}]), now=NOW)

    def test_cancelled_sale_rejected(self, db, sold):
        sale, a, _ = sold
        cancel_sale(db, sale.id, OWNER, "void", now=NOW)
        with pytest.raises(InvalidReturnError):
            create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 1}]), now=NOW)

    def test_return_to_deactivated_batch(self, db, sold):
        sale, a, _ = sold
        deactivate_batch(db, a.id, OWNER)
        create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 4}]), now=NOW)
        assert a.sold_quantity == 0

    def test_ledger_rows_are_returns(self, db, sold):
        sale, _, b = sold
        ret = create_return(db, OWNER, _return(sale, [{"batch_id": b.id, "quantity": 2}]), now=NOW)
        txn = (
            db.query(StockTransaction)
            .filter(StockTransaction.batch_id == b.id, StockTransaction.type == "return")
            .one()
        )
        assert txn.quantity_delta == -2
        assert txn.sale_id == sale.id
        assert txn.reference_number == ret.return_number

    def test_list_returns_for_sale(self, db, sold):
        sale, a, b = sold
        create_return(db, OWNER, _return(sale, [{"batch_id": a.id, "quantity": 1}]), now=NOW)
        create_return(db, OWNER, _return(sale, [{"batch_id": b.id, "quantity": 1}]), now=NOW)
        rows = list_returns_for_sale(db, sale.id, OWNER)
        assert [r.return_number for r in rows] == ["RET-202610-0001", "RET-202610-0002"]
        with pytest.raises(NotFoundError):
            list_returns_for_sale(db, sale.id, OTHER_OWNER)

    def test_piecewise_refunds_never_exceed_line_total(self, db, make_batch):
        batch = make_batch(quantity=10, selling_price=Decimal("10.00"))
        sale = create_sale(db, OWNER, SaleCreate(
            items=[{"batch_id": batch.id, "quantity": 3, "discount_percent": "33.33"}],
            amount_paid=Decimal("20.00"),
        ), now=NOW)
        item = sale.items[0]
        assert item.line_total == Decimal("20.00")

        refunds = [
            create_return(db, OWNER, _return(sale, [{"sale_item_id": item.id, "quantity": 1}]), now=NOW).total_amount
            for _ in range(3)
        ]
        assert refunds == [Decimal("6.67"), Decimal("6.66"), Decimal("6.67")]
        assert sum(refunds) == item.line_total
        assert sale.payment_status == "refunded"
