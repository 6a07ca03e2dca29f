"""Read-only aggregates over snapshots and run history for the dashboard API."""

import json
import aiosqlite
from typing import List


async def get_run_history(db: aiosqlite.Connection, limit: int = 30) -> List[dict]:
    """Get the most recent runs, newest first."""
    cursor = await db.execute(
        """SELECT timestamp, added, removed, checked, updated, skipped, failed,
                  pages_fetched, pages_failed, duration_seconds
           FROM run_history ORDER BY id DESC LIMIT ?""",
        (limit,),
    )
    rows = await cursor.fetchall()

    return [
        {
            "timestamp": r[0], "added": r[1], "removed": r[2], "checked": r[3],
            "updated": r[4], "skipped": r[5], "failed": r[6],
            "pages_fetched": r[7], "pages_failed": r[8], "duration_seconds": r[9],
        }
        for r in rows
    ]


async def get_recently_changed(db: aiosqlite.Connection, limit: int = 50) -> List[dict]:
    """Products whose competitor set changed most recently.

    Products only ever seen once have last_changed equal to their first
    sighting and are included too.
    """
    cursor = await db.execute(
        """SELECT id, competitors, last_checked, last_changed
           FROM product_snapshots ORDER BY last_changed DESC LIMIT ?""",
        (limit,),
    )
    rows = await cursor.fetchall()

    return [
        {
            "id": r[0],
            "competitors": json.loads(r[1]) if r[1] else [],
            "last_checked": r[2],
            "last_changed": r[3],
        }
        for r in rows
    ]


async def get_totals(db: aiosqlite.Connection) -> dict:
    """Overall counts across all runs."""
    cursor = await db.execute("SELECT COUNT(*) FROM product_snapshots")
    products = (await cursor.fetchone())[0]

    cursor = await db.execute(
        """SELECT COUNT(*), COALESCE(SUM(added), 0), COALESCE(SUM(removed), 0),
                  COALESCE(SUM(updated), 0)
           FROM run_history"""
    )
    runs, added, removed, updated = await cursor.fetchone()

    return {
        "products": products,
        "runs": runs,
        "competitors_added": added,
        "competitors_removed": removed,
        "product_updates": updated,
    }
