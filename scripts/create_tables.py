#!/usr/bin/env python3
"""Create the asset store tables in the configured database."""

import sys
from pathlib import Path

# Add the src directory to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taro_assetdb.config import get_config
from taro_assetdb.storage import AssetStore

def create_tables():
    """Create all database tables."""
    config = get_config()
    print(f"Creating asset store tables in {config.database_url}...")

    store = AssetStore()
    store.create_schema()

    for table, rows in store.table_counts().items():
        print(f"  {table}: {rows} rows")

    print("Database tables created successfully!")

if __name__ == "__main__":
    create_tables()
