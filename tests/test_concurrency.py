"""
Concurrency: counters and document numbers under parallel writers.

Each worker runs its own session and transaction against the same SQLite
file; the engine's BEGIN IMMEDIATE makes writers queue on the lock the way
row locks do on MySQL.
"""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, OWNER, TODAY
from medstore.db.session import session_scope
from medstore.models.inventory import InventoryBatch, StockTransaction, TransactionType
from medstore.models.sales import Sale
from medstore.schemas.inventory import BatchCreate
from medstore.schemas.sales import SaleCreate
from medstore.services import inventory as inventory_service
from medstore.services.catalog import create_medicine
from medstore.services.errors import InsufficientStockError, InvalidAdjustmentError, NotFoundError
from medstore.services.inventory import adjust_stock, create_batch, deactivate_batch, replay_counters
from medstore.services.number_series import next_bill_number
from medstore.services.sales import create_sale


def _seed_batch(session_factory, quantity=100) -> int:
    with session_scope(session_factory) as s:
        med = create_medicine(s, name="Amoxicillin 250mg", manufacturer="Acme Pharma")
        batch = create_batch(s, OWNER, BatchCreate(
            medicine_id=med.id,
            batch_number="C-1",
            expiry_date=TODAY + timedelta(days=365),
            manufacture_date=TODAY - timedelta(days=30),
            quantity=quantity,
            purchase_price=Decimal("2.00"),
            selling_price=Decimal("4.00"),
        ), now=NOW)
        return batch.id


def _run_threads(n, target):
    barrier = threading.Barrier(n)
    errors = []

    def worker(i):
        barrier.wait()
        try:
            target(i)
        except Exception as e:  # surfaced to the test below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)
    return errors


class TestConcurrentSales:
    def test_two_sales_cannot_oversell(self, session_factory):
        """100 on hand, two 60-unit sales at once: exactly one succeeds."""
        batch_id = _seed_batch(session_factory, quantity=100)
        results = []

        def sell(_):
            with session_scope(session_factory) as s:
                sale = create_sale(s, OWNER, SaleCreate(
                    items=[{"batch_id": batch_id, "quantity": 60}],
                    amount_paid=Decimal("240.00"),
                ), now=NOW)
                results.append(sale.bill_number)

        errors = _run_threads(2, sell)

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)
        assert errors[0].available == 40

        with session_scope(session_factory) as s:
            batch = s.get(InventoryBatch, batch_id)
            assert batch.sold_quantity == 60
            assert batch.available_quantity == 40
            assert s.query(Sale).count() == 1
            assert replay_counters(s, batch_id, OWNER).sold_quantity == 60

    def test_many_small_sales_never_go_negative(self, session_factory):
        batch_id = _seed_batch(session_factory, quantity=25)
        sold = []

        def sell(_):
            with session_scope(session_factory) as s:
                create_sale(s, OWNER, SaleCreate(
                    items=[{"batch_id": batch_id, "quantity": 3}],
                    amount_paid=Decimal("12.00"),
                ), now=NOW)
                sold.append(3)

        errors = _run_threads(12, sell)

        assert sum(sold) == 24
        assert len(errors) == 4
        assert all(isinstance(e, InsufficientStockError) for e in errors)
        with session_scope(session_factory) as s:
            batch = s.get(InventoryBatch, batch_id)
            assert batch.available_quantity == 1
            assert batch.status == "low_stock"


class TestConcurrentBillNumbers:
    def test_thousand_allocations_distinct_and_increasing(self, session_factory):
        """Issued in lock order, so the issuance log is already sorted."""
        issued = []
        per_thread = 125

        def allocate(_):
            for _ in range(per_thread):
                with session_scope(session_factory) as s:
                    number = next_bill_number(s, OWNER, NOW)
                    # still holding the write lock here
                    issued.append(number)

        errors = _run_threads(8, allocate)

        assert errors == []
        assert len(issued) == 1000
        assert len(set(issued)) == 1000
        seqs = [int(n.rsplit("-", 1)[1]) for n in issued]
        assert seqs == list(range(1, 1001))
        assert issued[0] == "BILL-202610-0001"


class TestStaleReadLosesRace:
    """
    The availability check runs on a row read earlier; another session
    commits in between. The guarded UPDATE must catch what the read missed.
    """

    def _stale_copy(self, session_factory, batch_id):
        with session_scope(session_factory) as s:
            return inventory_service.get_batch(s, batch_id, OWNER)

    def _serve_stale(self, monkeypatch, stale):
        monkeypatch.setattr(
            inventory_service, "get_batch",
            lambda db, batch_id, owner_id, **kw: db.merge(stale, load=False),
        )

    def _ledger_rows(self, session_factory, batch_id):
        with session_scope(session_factory) as s:
            return (
                s.query(StockTransaction)
                .filter(StockTransaction.batch_id == batch_id)
                .count()
            )

    def test_sale_after_competing_commit(self, session_factory, monkeypatch):
        batch_id = _seed_batch(session_factory, quantity=10)
        stale = self._stale_copy(session_factory, batch_id)

        with session_scope(session_factory) as s:
            adjust_stock(s, batch_id, OWNER, TransactionType.SALE, 8, now=NOW)

        self._serve_stale(monkeypatch, stale)
        with pytest.raises(InsufficientStockError) as exc:
            with session_scope(session_factory) as s:
                adjust_stock(s, batch_id, OWNER, TransactionType.SALE, 5, now=NOW)

        assert exc.value.available == 2
        assert exc.value.shortfall == 3
        assert self._ledger_rows(session_factory, batch_id) == 2
        with session_scope(session_factory) as s:
            assert s.get(InventoryBatch, batch_id).sold_quantity == 8

    def test_deactivated_in_between(self, session_factory, monkeypatch):
        batch_id = _seed_batch(session_factory, quantity=10)
        stale = self._stale_copy(session_factory, batch_id)

        with session_scope(session_factory) as s:
            deactivate_batch(s, batch_id, OWNER)

        self._serve_stale(monkeypatch, stale)
        with pytest.raises(NotFoundError):
            with session_scope(session_factory) as s:
                adjust_stock(s, batch_id, OWNER, TransactionType.DAMAGE, 1, now=NOW)

        assert self._ledger_rows(session_factory, batch_id) == 1

    def test_adjustment_after_competing_sale(self, session_factory, monkeypatch):
        batch_id = _seed_batch(session_factory, quantity=10)
        stale = self._stale_copy(session_factory, batch_id)

        with session_scope(session_factory) as s:
            adjust_stock(s, batch_id, OWNER, TransactionType.SALE, 8, now=NOW)

        self._serve_stale(monkeypatch, stale)
        with pytest.raises(InvalidAdjustmentError):
            with session_scope(session_factory) as s:
                # fits the stale read (10 - 5 >= 0) but not the committed sale
                adjust_stock(s, batch_id, OWNER, TransactionType.ADJUSTMENT, -5, now=NOW)

        assert self._ledger_rows(session_factory, batch_id) == 2
