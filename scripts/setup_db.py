#!/usr/bin/env python3
"""Initialize the database schema."""

import sys
from pathlib import Path

# Add project root to path so we can import web_analyzer
sys.path.insert(0, str(Path(__file__).parent.parent))

from web_analyzer.database import init_db, IS_POSTGRES
from web_analyzer.config import DATABASE_PATH


def main():
    target = "PostgreSQL (DATABASE_URL)" if IS_POSTGRES else DATABASE_PATH
    print(f"Initializing database at {target}...")
    init_db()
    print("Database initialized successfully!")


if __name__ == "__main__":
    main()
