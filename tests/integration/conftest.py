"""
Integration Test Fixtures.

Migrations exercised against real SQLite databases.
"""

from typing import List

import pytest

from schemaledger.migrations.base import SQLMigration

# Recreating the table drops the column on any SQLite version
_DROP_PRICE_COLUMN = """
CREATE TABLE items_tmp (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
INSERT INTO items_tmp (id, name) SELECT id, name FROM items;
DROP TABLE items;
ALTER TABLE items_tmp RENAME TO items;
"""


@pytest.fixture
def catalog_migrations() -> List[SQLMigration]:
    """Create table, add column, add index."""
    return [
        SQLMigration(
            1,
            "create_items",
            "CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT NOT NULL);",
            "DROP TABLE items;",
        ),
        SQLMigration(
            2,
            "add_price_column",
            "ALTER TABLE items ADD COLUMN price INTEGER;",
            _DROP_PRICE_COLUMN,
        ),
        SQLMigration(
            3,
            "add_price_index",
            "CREATE INDEX idx_items_price ON items (price);",
            "DROP INDEX idx_items_price;",
        ),
    ]
