"""
Database initialization script.

    python -m kitty.db.init_db           # create missing tables
    python -m kitty.db.init_db --reset   # drop everything and start over
"""
import argparse
from kitty.db.session import init_db, reset_db

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the Kitty database.")
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()

    if args.reset:
        print("Resetting database...")
        reset_db()
        print("Database has been reset.")
    else:
        print("Initializing database...")
        init_db()
        print("Database initialized successfully!")
