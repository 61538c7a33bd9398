# database.py
import json
import logging
import sqlite3
from datetime import datetime

from errors import PersistenceError
from models import CartItem

logger = logging.getLogger("storefront.database")

SCHEMA_VERSION = 1


class Database:
    """
    Manages the local SQLite file holding named slots (cart, session).
    Each slot is one JSON payload tagged with a schema version.
    """
    def __init__(self, db_name: str = "storefront.db"):
        try:
            self.conn = sqlite3.connect(db_name)
            self.conn.row_factory = sqlite3.Row
            self._create_tables()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open storage {db_name}: {e}") from e

    def _create_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS slots (
            name TEXT PRIMARY KEY,
            version INTEGER NOT NULL,
            payload TEXT NOT NULL,
            updated_at TEXT
        )
        """)
        self.conn.commit()

    def read_slot(self, name: str):
        """Return (version, payload) for a slot, or None if it was never written."""
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT version, payload FROM slots WHERE name = ?", (name,))
            row = cur.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read slot {name}: {e}") from e
        if row is None:
            return None
        try:
            return row['version'], json.loads(row['payload'])
        except ValueError as e:
            raise PersistenceError(f"Slot {name} holds invalid JSON: {e}") from e

    def write_slot(self, name: str, payload, version: int = SCHEMA_VERSION):
        """Insert or replace a slot in a single transaction."""
        ts = datetime.now().isoformat(timespec='seconds')
        try:
            with self.conn:
                self.conn.execute("""
                INSERT INTO slots (name, version, payload, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    version = excluded.version,
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """, (name, version, json.dumps(payload), ts))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write slot {name}: {e}") from e

    def delete_slot(self, name: str):
        try:
            with self.conn:
                self.conn.execute("DELETE FROM slots WHERE name = ?", (name,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete slot {name}: {e}") from e

    def close(self):
        self.conn.close()


def migrate_legacy_cart(records: list) -> list:
    """
    Convert the unversioned cart layout (a bare list with _id, price,
    originalPrice and selectedSize) into version 1 item dicts.
    """
    migrated = []
    for rec in records:
        size = rec.get('selectedSize') or {}
        price = rec.get('price', 0)
        migrated.append({
            'product_id': str(rec['_id']),
            'name': rec.get('name', ''),
            'image': rec.get('image', ''),
            'category': rec.get('category', ''),
            'unit_price': str(price),
            'original_price': str(rec.get('originalPrice', price)),
            'quantity': int(rec.get('quantity', 1)),
            'selected_variant_label': size.get('label'),
        })
    return migrated


class SqliteCartStorage:
    """Cart persistence port backed by a Database slot."""
    def __init__(self, db: Database, slot: str = "cart"):
        self.db = db
        self.slot = slot

    def load(self):
        stored = self.db.read_slot(self.slot)
        if stored is None:
            return []
        version, payload = stored
        if version > SCHEMA_VERSION:
            raise PersistenceError(
                f"Cart was saved by a newer version (schema {version}, supported {SCHEMA_VERSION})")
        try:
            if version == 0 or isinstance(payload, list):
                logger.info("Migrating legacy cart record to schema version %s", SCHEMA_VERSION)
                payload = {'items': migrate_legacy_cart(payload)}
            return [CartItem.from_dict(d) for d in payload.get('items', [])]
        except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
            raise PersistenceError(f"Saved cart is corrupt: {e}") from e

    def save(self, items):
        self.db.write_slot(self.slot, {'items': [it.to_dict() for it in items]})

    def clear(self):
        self.db.delete_slot(self.slot)


class SqliteSessionStorage:
    """Session slot: token and user record, stored as-is."""
    def __init__(self, db: Database, slot: str = "session"):
        self.db = db
        self.slot = slot

    def load(self):
        stored = self.db.read_slot(self.slot)
        if stored is None:
            return None
        version, payload = stored
        if version > SCHEMA_VERSION:
            raise PersistenceError(f"Session was saved by a newer version (schema {version})")
        return payload

    def save(self, session: dict):
        self.db.write_slot(self.slot, session)

    def clear(self):
        self.db.delete_slot(self.slot)


class MemoryCartStorage:
    """In-process cart storage for tests and throwaway runs."""
    def __init__(self, items=None):
        self._saved = [it.to_dict() for it in (items or [])]
        self.saves = 0

    def load(self):
        return [CartItem.from_dict(d) for d in self._saved]

    def save(self, items):
        self._saved = [it.to_dict() for it in items]
        self.saves += 1

    def clear(self):
        self._saved = []
