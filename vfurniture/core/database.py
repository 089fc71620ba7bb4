"""
VFurniture — core/database.py
─────────────────────────────────────────────────────────────────
Single place for:
  - The Database handle (one aiosqlite connection per process)
  - init_all_tables() on startup
  - The get_db() dependency every route uses

The handle is opened once in the app lifespan and parked on
app.state.db; routes never open their own connections.

Usage:
    from vfurniture.core.database import Database, get_db

    # In main.py lifespan:
    db = Database(cfg.DB_PATH)
    await db.connect()
    await db.init_all_tables()
    app.state.db = db

    # In any route:
    async def handler(db: Database = Depends(get_db)):
        row = await db.fetch_one("SELECT ...", (...))

        async with db.transaction():
            await db.execute("INSERT ...", (...))
            await db.execute("UPDATE ...", (...))
─────────────────────────────────────────────────────────────────
"""

import asyncio
import json
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import aiosqlite
from fastapi import Request

from vfurniture.core.errors import Internal

logger = logging.getLogger("vfurniture.database")


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────
def now_utc() -> str:
    return datetime.now(timezone.utc).isoformat()

def parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts

def new_id() -> str:
    return secrets.token_urlsafe(12)

def to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value)

def from_json(value: Optional[str], default: Any = None) -> Any:
    if value is None or value == "":
        return default
    return json.loads(value)


# ─────────────────────────────────────────────
# Database handle
# ─────────────────────────────────────────────
class Database:
    """
    Thin wrapper around one aiosqlite connection.

    Rows come back as plain dicts. A lone execute() commits itself;
    several writes that belong together go inside transaction().
    """

    def __init__(self, path: str):
        self.path = path
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock  = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None

    async def connect(self):
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA foreign_keys = ON")
        await self._conn.execute("PRAGMA busy_timeout = 5000")
        logger.info(f"Connected → {self.path}")

    async def close(self):
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Connection closed.")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise Internal("Database is not connected")
        return self._conn

    # ─── Locking ──────────────────────────────
    #
    # Every request shares the one connection, so there is only one
    # SQLite transaction at a time. The lock decides who owns it; the
    # owning task re-enters freely, everyone else waits their turn.

    def _owns_lock(self) -> bool:
        return self._owner is not None and self._owner is asyncio.current_task()

    @asynccontextmanager
    async def _turn(self):
        if self._owns_lock():
            yield
            return
        async with self._lock:
            self._owner = asyncio.current_task()
            try:
                yield
            finally:
                self._owner = None

    @asynccontextmanager
    async def transaction(self):
        """
        Group several writes into one unit.

            async with db.transaction():
                await db.execute("INSERT ...")
                await db.execute("UPDATE ...")

        Commits when the block exits cleanly, rolls back if it raises.
        Nested blocks join the outer one.
        """
        if self._owns_lock():
            yield self
            return
        async with self._turn():
            try:
                yield self
            except BaseException:
                await self.conn.rollback()
                raise
            await self.conn.commit()

    # ─── Reads ────────────────────────────────

    async def fetch_one(self, sql: str, params: Sequence = ()) -> Optional[dict]:
        async with self._turn():
            async with self.conn.execute(sql, params) as cur:
                row = await cur.fetchone()
                return dict(row) if row else None

    async def fetch_all(self, sql: str, params: Sequence = ()) -> List[dict]:
        async with self._turn():
            async with self.conn.execute(sql, params) as cur:
                return [dict(r) for r in await cur.fetchall()]

    async def fetch_value(self, sql: str, params: Sequence = (), default: Any = None) -> Any:
        async with self._turn():
            async with self.conn.execute(sql, params) as cur:
                row = await cur.fetchone()
                return row[0] if row else default

    # ─── Writes ───────────────────────────────

    async def execute(self, sql: str, params: Sequence = ()) -> int:
        """
        Run one statement. Returns affected row count.

        Inside transaction() the statement joins the open unit;
        otherwise it is committed (or rolled back) on its own.
        """
        async with self.transaction():
            async with self.conn.execute(sql, params) as cur:
                return cur.rowcount

    async def executemany(self, sql: str, rows: Sequence[Sequence]):
        async with self.transaction():
            await self.conn.executemany(sql, rows)

    # ─── Schema ───────────────────────────────

    async def init_all_tables(self):
        """
        Creates all tables in correct order.
        Safe to call multiple times (IF NOT EXISTS).

        Order matters, children reference parents:
        users → catalog → shop
        """
        from vfurniture.models.user import USERS_SQL
        from vfurniture.models.catalog import CATALOG_SQL
        from vfurniture.models.shop import SHOP_SQL

        await self.conn.executescript(USERS_SQL)
        logger.info("✓ Users table")

        await self.conn.executescript(CATALOG_SQL)
        logger.info("✓ Catalog tables")

        await self.conn.executescript(SHOP_SQL)
        logger.info("✓ Wishlist / cart / checkout / review tables")

        await self.conn.commit()
        logger.info(f"✅ Database ready → {self.path}")


# ─────────────────────────────────────────────
# Dependency
# ─────────────────────────────────────────────
def get_db(request: Request) -> Database:
    """FastAPI dependency — the handle opened in the lifespan."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise Internal("Database is not initialized")
    return db
