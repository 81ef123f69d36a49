"""
database.py — async SQLite persistence via aiosqlite.

Tables:
  inquiries   — one row per "contact supplier" form submission

The search pipeline itself persists nothing; this is only used by the
contact endpoint and the health check. The DB file is created automatically
on first run.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

# Store the DB in a dedicated data/ directory so Docker volume mounts work
# correctly (mount ./data:/app/data) and the file survives container restarts.
_DATA_DIR = Path(os.getenv("DATA_DIR", "data"))
_DATA_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = str(_DATA_DIR / "sourcing.db")
_lock = asyncio.Lock()          # serialise schema creation


@dataclass
class Inquiry:
    id: int
    supplier_id: str
    product_id: str
    buyer_name: str
    buyer_email: str
    quantity: Optional[int]
    message: str
    created_at: datetime


_SCHEMA = """
CREATE TABLE IF NOT EXISTS inquiries (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    supplier_id TEXT    NOT NULL,
    product_id  TEXT    NOT NULL DEFAULT '',
    buyer_name  TEXT    NOT NULL,
    buyer_email TEXT    NOT NULL,
    quantity    INTEGER,
    message     TEXT    NOT NULL DEFAULT '',
    created_at  TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_inquiries_supplier ON inquiries (supplier_id);
"""


async def init_db() -> None:
    """Create tables if they don't exist. Safe to call multiple times."""
    async with _lock:
        async with aiosqlite.connect(DB_PATH) as db:
            await db.executescript(_SCHEMA)
            await db.commit()
    logger.info("Database initialised at %s", DB_PATH)


async def save_inquiry(
    supplier_id: str,
    product_id: str,
    buyer_name: str,
    buyer_email: str,
    quantity: Optional[int],
    message: str,
) -> int:
    """Insert an inquiry and return its row id."""
    now = datetime.now(timezone.utc).isoformat()
    async with aiosqlite.connect(DB_PATH) as db:
        cursor = await db.execute(
            """INSERT INTO inquiries
               (supplier_id, product_id, buyer_name, buyer_email, quantity, message, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (supplier_id, product_id, buyer_name, buyer_email, quantity, message, now),
        )
        await db.commit()
        return cursor.lastrowid


async def get_inquiry_count() -> int:
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute("SELECT COUNT(*) FROM inquiries") as cur:
            row = await cur.fetchone()
    return row[0] if row else 0


async def get_recent_inquiries(limit: int = 20, supplier_id: Optional[str] = None) -> list[Inquiry]:
    """Newest first, optionally for one supplier."""
    sql = "SELECT * FROM inquiries"
    params: tuple = ()
    if supplier_id is not None:
        sql += " WHERE supplier_id = ?"
        params = (supplier_id,)
    sql += " ORDER BY id DESC LIMIT ?"
    params += (limit,)

    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(sql, params) as cur:
            rows = await cur.fetchall()
    return [
        Inquiry(
            id=r["id"],
            supplier_id=r["supplier_id"],
            product_id=r["product_id"],
            buyer_name=r["buyer_name"],
            buyer_email=r["buyer_email"],
            quantity=r["quantity"],
            message=r["message"],
            created_at=datetime.fromisoformat(r["created_at"]),
        )
        for r in rows
    ]
