"""
Run migration to add structured batch columns to the transactions table.
"""
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from kitty.db.migrations.add_batch_columns_to_transactions import migrate

if __name__ == "__main__":
    migrate()
