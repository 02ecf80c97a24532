"""
Transaction ledger: append-only history that replays to the batch counters.
"""

import pytest

from conftest import NOW, OTHER_OWNER, OWNER
from medstore.models.inventory import LedgerImmutableError, StockTransaction, TransactionType
from medstore.services.errors import InvalidAdjustmentError, NotFoundError
from medstore.services.inventory import (
    adjust_stock,
    replay_counters,
    reverse_sale_consumption,
    transaction_history,
)


def _exercise(db, batch):
    adjust_stock(db, batch.id, OWNER, TransactionType.PURCHASE, 50, now=NOW)
    adjust_stock(db, batch.id, OWNER, TransactionType.SALE, 30, now=NOW)
    adjust_stock(db, batch.id, OWNER, TransactionType.DAMAGE, 4, now=NOW)
    adjust_stock(db, batch.id, OWNER, TransactionType.RETURN, 6, now=NOW)
    adjust_stock(db, batch.id, OWNER, TransactionType.ADJUSTMENT, -10, now=NOW)
    reverse_sale_consumption(db, batch.id, OWNER, 5, now=NOW)


class TestReplay:
    def test_replay_matches_counters(self, db, make_batch):
        batch = make_batch(quantity=100)
        _exercise(db, batch)

        counters = replay_counters(db, batch.id, OWNER)
        assert counters.received_quantity == batch.received_quantity == 140
        assert counters.sold_quantity == batch.sold_quantity == 19
        assert counters.damaged_quantity == batch.damaged_quantity == 4

    def test_every_row_chains(self, db, make_batch):
        batch = make_batch(quantity=100)
        _exercise(db, batch)

        for txn in db.query(StockTransaction).filter(StockTransaction.batch_id == batch.id):
            assert txn.new_quantity == txn.previous_quantity + txn.quantity_delta
            assert txn.new_quantity >= 0

    def test_failed_adjustment_leaves_replay_intact(self, db, make_batch):
        batch = make_batch(quantity=10)
        with pytest.raises(InvalidAdjustmentError):
            adjust_stock(db, batch.id, OWNER, TransactionType.RETURN, 1, now=NOW)
        counters = replay_counters(db, batch.id, OWNER)
        assert (counters.received_quantity, counters.sold_quantity, counters.damaged_quantity) == (10, 0, 0)


class TestReversal:
    def test_reversal_is_negative_sale(self, db, make_batch):
        batch = make_batch(quantity=10)
        adjust_stock(db, batch.id, OWNER, TransactionType.SALE, 7, now=NOW)
        reverse_sale_consumption(db, batch.id, OWNER, 7, reason="void", now=NOW)

        assert batch.sold_quantity == 0
        last = (
            db.query(StockTransaction)
            .filter(StockTransaction.batch_id == batch.id)
            .order_by(StockTransaction.id.desc())
            .first()
        )
        assert last.type == "sale"
        assert (last.previous_quantity, last.quantity_delta, last.new_quantity) == (7, -7, 0)

    def test_reversal_limited_to_sold(self, db, make_batch):
        batch = make_batch(quantity=10)
        adjust_stock(db, batch.id, OWNER, TransactionType.SALE, 2, now=NOW)
        with pytest.raises(InvalidAdjustmentError):
            reverse_sale_consumption(db, batch.id, OWNER, 3, now=NOW)


class TestHistory:
    def test_newest_first_and_paginated(self, db, make_batch):
        batch = make_batch(quantity=100)
        for qty in (1, 2, 3):
            adjust_stock(db, batch.id, OWNER, TransactionType.SALE, qty, now=NOW)

        rows, total = transaction_history(db, batch.id, OWNER, page=1, limit=2)
        assert total == 4
        assert [r.quantity_delta for r in rows] == [3, 2]

        rows, _ = transaction_history(db, batch.id, OWNER, page=2, limit=2)
        assert [r.type for r in rows] == ["sale", "purchase"]

    def test_foreign_owner_not_found(self, db, make_batch):
        batch = make_batch()
        with pytest.raises(NotFoundError):
            transaction_history(db, batch.id, OTHER_OWNER)


class TestImmutability:
    def test_update_blocked(self, db, make_batch):
        batch = make_batch()
        txn = db.query(StockTransaction).filter(StockTransaction.batch_id == batch.id).first()
        txn.reason = "edited"
        with pytest.raises(LedgerImmutableError):
            db.flush()

    def test_delete_blocked(self, db, make_batch):
        batch = make_batch()
        txn = db.query(StockTransaction).filter(StockTransaction.batch_id == batch.id).first()
        db.delete(txn)
        with pytest.raises(LedgerImmutableError):
            db.flush()
