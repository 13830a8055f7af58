"""Database connections: Supabase (Postgres) in production, SQLite locally."""

import aiosqlite
from supabase import Client, create_client

from src.monitor.config import MonitorConfig
from src.monitor.errors import StorageError

SCHEMA = """
    CREATE TABLE IF NOT EXISTS seller_monitor (
        id INTEGER PRIMARY KEY,
        data TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS seller_monitor_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        changes_summary TEXT NOT NULL,
        monitoring_day INTEGER DEFAULT 0,
        total_checks INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS seller_monitor_meta (
        id INTEGER PRIMARY KEY,
        start_date TEXT NOT NULL,
        total_checks INTEGER DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_history_created ON seller_monitor_history(created_at);
"""


def get_supabase(config: MonitorConfig) -> Client:
    if not config.supabase_url or not config.supabase_key:
        raise StorageError("SUPABASE_URL and SUPABASE_ANON_KEY must be set", code="STORAGE_UNCONFIGURED")
    return create_client(config.supabase_url, config.supabase_key)


async def get_db(path: str) -> aiosqlite.Connection:
    db = await aiosqlite.connect(path)
    db.row_factory = aiosqlite.Row
    if path != ":memory:":
        await db.execute("PRAGMA journal_mode=WAL")
    return db


async def init_db(db: aiosqlite.Connection):
    """Create tables if they don't exist."""
    await db.executescript(SCHEMA)
    await db.commit()
