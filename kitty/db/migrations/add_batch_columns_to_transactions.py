"""
Migration script to add structured batch columns to the transactions table.

Older databases grouped charge rows only by their shared timestamp and kept
the total and guest/game counts inside the description text. This adds
batch_id, batch_total, weight and paid_cash, then backfills them: rows of
one activity recorded at the same timestamp get a common batch id, and the
total and weights are parsed from the descriptions where possible.
"""
import uuid
from itertools import groupby
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session
from kitty.db.session import SessionLocal
from kitty.models.transaction import Transaction, TransactionKind
from kitty.services.allocation_service import parse_total, parse_weight

NEW_COLUMNS = [
    ("batch_id", "VARCHAR(36) NULL"),
    ("batch_total", "FLOAT NULL"),
    ("weight", "FLOAT NULL"),
    ("paid_cash", "BOOLEAN NOT NULL DEFAULT 0"),
]


def add_columns(db: Session) -> list:
    """Add any missing batch columns. Returns the names that were added."""
    existing = {c["name"] for c in inspect(db.get_bind()).get_columns("transactions")}
    added = []
    for name, ddl in NEW_COLUMNS:
        if name in existing:
            print(f"{name} column already exists, skipping column creation")
            continue
        db.execute(text(f"ALTER TABLE transactions ADD COLUMN {name} {ddl}"))
        added.append(name)
        print(f"Added {name} column to transactions table")

    if "batch_id" in added:
        db.execute(text("CREATE INDEX ix_transactions_batch_id ON transactions (batch_id)"))
        print("Created index on batch_id")
    return added


def backfill_batches(db: Session) -> int:
    """Assign batch ids and allocation parameters to legacy expense rows. Returns batches created."""
    rows = db.query(Transaction).filter(
        Transaction.kind == TransactionKind.EXPENSE,
        Transaction.batch_id.is_(None)
    ).order_by(Transaction.activity_id, Transaction.timestamp, Transaction.id).all()

    created = 0
    for _, group in groupby(rows, key=lambda t: (t.activity_id, t.timestamp)):
        batch = list(group)
        total = next(
            (parsed for parsed in (parse_total(t.description) for t in batch) if parsed is not None),
            None
        )
        if total is None:
            total = sum(abs(t.amount or 0.0) for t in batch)

        batch_id = str(uuid.uuid4())
        for row in batch:
            row.batch_id = batch_id
            row.batch_total = total
            weight = parse_weight(row.description)
            row.weight = weight if weight is not None else 1.0
        created += 1

    db.flush()
    return created


def migrate():
    """Add the batch columns and backfill existing rows."""
    db = SessionLocal()
    try:
        add_columns(db)
        db.commit()
        created = backfill_batches(db)
        db.commit()
        print(f"Backfilled {created} batches")
        print("Migration completed successfully!")
    except Exception as e:
        db.rollback()
        print(f"Migration failed: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    migrate()
