"""Snapshot store and run history sink backed by aiosqlite.

A single connection is shared by every detection worker. aiosqlite runs all
statements on one background thread, so concurrent callers are serialized
there; writes for different product ids never touch the same row.
"""

import json
import re
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from changewatch.api.schemas import ProductSnapshot, RunReport
from changewatch.errors import StoreError, InvalidProductKey

MAX_KEY_LENGTH = 128
_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")


def parse_product_key(raw: str, key_format: str = "text") -> str:
    """Turn a catalog product id into the key used by the store.

    "text" keys are any non-blank string; "objectid" keys must also be
    24 hex characters and are lower-cased.
    """
    if not isinstance(raw, str):
        raise InvalidProductKey(f"product id must be a string, got {type(raw).__name__}")
    key = raw.strip()
    if not key:
        raise InvalidProductKey("product id is empty")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidProductKey(f"product id longer than {MAX_KEY_LENGTH} characters")
    if key_format == "objectid":
        if not _OBJECT_ID.match(key):
            raise InvalidProductKey(f"'{key}' is not a valid ObjectId, it must be a 24-character hex string")
        key = key.lower()
    return key


def _row_to_snapshot(row) -> ProductSnapshot:
    return ProductSnapshot(
        id=row["id"],
        competitors_hash=row["competitors_hash"],
        competitors=json.loads(row["competitors"]) if row["competitors"] else [],
        last_checked=datetime.fromisoformat(row["last_checked"]),
        last_changed=datetime.fromisoformat(row["last_changed"]),
    )


class SnapshotStore:
    """Keyed read/write of per-product snapshots."""

    def __init__(self, db: aiosqlite.Connection, key_format: str = "text"):
        self.db = db
        self.key_format = key_format

    def parse_key(self, raw: str) -> str:
        return parse_product_key(raw, self.key_format)

    async def get(self, key: str) -> Optional[ProductSnapshot]:
        """Return the snapshot for key, or None when it was never seen."""
        try:
            cursor = await self.db.execute(
                """SELECT id, competitors_hash, competitors, last_checked, last_changed
                   FROM product_snapshots WHERE id = ?""",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"lookup of {key} failed: {e}") from e
        if row is None:
            return None
        return _row_to_snapshot(row)

    async def upsert(self, snapshot: ProductSnapshot):
        """Insert the snapshot or replace every field of the existing one."""
        try:
            await self.db.execute(
                """INSERT INTO product_snapshots
                   (id, competitors_hash, competitors, last_checked, last_changed)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                    competitors_hash=excluded.competitors_hash,
                    competitors=excluded.competitors,
                    last_checked=excluded.last_checked,
                    last_changed=excluded.last_changed""",
                (
                    snapshot.id,
                    snapshot.competitors_hash,
                    json.dumps(snapshot.competitors),
                    snapshot.last_checked.isoformat(),
                    snapshot.last_changed.isoformat(),
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"upsert of {snapshot.id} failed: {e}") from e

    async def mark_checked(self, key: str, checked_at: datetime):
        """Advance last_checked only; hash, competitors and last_changed stay."""
        try:
            await self.db.execute(
                "UPDATE product_snapshots SET last_checked = ? WHERE id = ?",
                (checked_at.isoformat(), key),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"timestamp update of {key} failed: {e}") from e


class HistorySink:
    """Append-only record of run reports."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def append(self, report: RunReport) -> int:
        try:
            cursor = await self.db.execute(
                """INSERT INTO run_history
                   (timestamp, added, removed, checked, updated, skipped, failed,
                    pages_fetched, pages_failed, duration_seconds)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    (report.timestamp or datetime.now(timezone.utc)).isoformat(),
                    report.added, report.removed, report.checked, report.updated,
                    report.skipped, report.failed,
                    report.pages_fetched, report.pages_failed,
                    report.duration_seconds,
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"history insert failed: {e}") from e
        return cursor.lastrowid
