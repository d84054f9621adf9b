"""
Tests for backfilling batch columns on legacy transactions.
"""
from datetime import datetime

import pytest
from kitty.db.migrations.add_batch_columns_to_transactions import add_columns, backfill_batches
from kitty.models import Transaction, TransactionKind


def _legacy_row(activity_id, member_id, amount, description, timestamp, kind=TransactionKind.EXPENSE):
    return Transaction(
        activity_id=activity_id,
        member_id=member_id,
        kind=kind,
        amount=amount,
        description=description,
        timestamp=timestamp
    )


def test_add_columns_skips_existing(db):
    assert add_columns(db) == []


def test_backfill_groups_rows_by_timestamp(db, split_activity, members_of):
    members = members_of(split_activity.id)
    first = datetime(2024, 1, 10, 20, 0)
    second = datetime(2024, 1, 17, 20, 0)
    db.add_all([
        _legacy_row(split_activity.id, members["Alice"].id, -25.0, "shared cost (total $100)", first),
        _legacy_row(split_activity.id, members["Bob"].id, -75.0, "shared cost (total $100) [2 guests]", first),
        _legacy_row(split_activity.id, members["Alice"].id, -10.0, "court", second),
        _legacy_row(split_activity.id, members["Carol"].id, -10.0, "court", second),
        _legacy_row(split_activity.id, members["Carol"].id, 50.0, "deposit", second, kind=TransactionKind.DEPOSIT),
    ])
    db.commit()

    assert backfill_batches(db) == 2
    db.commit()

    rows = db.query(Transaction).order_by(Transaction.id).all()
    first_batch, second_batch, deposit = rows[:2], rows[2:4], rows[4]

    assert first_batch[0].batch_id == first_batch[1].batch_id
    assert second_batch[0].batch_id == second_batch[1].batch_id
    assert first_batch[0].batch_id != second_batch[0].batch_id
    assert deposit.batch_id is None

    assert [r.batch_total for r in first_batch] == [100, 100]
    assert [r.weight for r in first_batch] == [1, 3]
    # No total in the description: fall back to the sum of amounts
    assert [r.batch_total for r in second_batch] == [pytest.approx(20), pytest.approx(20)]
    assert [r.weight for r in second_batch] == [1, 1]


def test_backfill_is_idempotent(db, split_activity, members_of):
    members = members_of(split_activity.id)
    db.add(_legacy_row(split_activity.id, members["Alice"].id, -5.0, "court", datetime(2024, 2, 1)))
    db.commit()

    assert backfill_batches(db) == 1
    db.commit()
    assert backfill_batches(db) == 0
