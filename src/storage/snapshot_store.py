"""Persistence of the monitoring snapshot, change history and run metadata.

One logical snapshot row (id = 1) is overwritten each cycle. Every save
carries the version the caller loaded; a save against a row whose version
has moved on is rejected, so two overlapping cycles cannot silently
overwrite each other's snapshot.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import aiosqlite
from postgrest.exceptions import APIError
from supabase import Client

from src.api.schemas import (
    ChangeCounts, MonitoringStats, RecentStats, Snapshot, VersionedSnapshot,
)
from src.db.database import get_db, get_supabase, init_db
from src.monitor.config import MonitorConfig
from src.monitor.errors import SnapshotConflictError, StorageError

logger = logging.getLogger(__name__)

SNAPSHOT_ROW_ID = 1
META_ROW_ID = 1
RECENT_WINDOW = timedelta(days=7)
_FRACTION = re.compile(r"\.(\d+)")

# Postgres error codes surfaced by PostgREST
UNIQUE_VIOLATION = "23505"
UNDEFINED_COLUMN = "42703"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    # Postgres trims trailing zeros from fractional seconds (".12345+00:00");
    # fromisoformat before 3.11 only accepts 3 or 6 digits.
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def monitoring_days_since(start_date: str, now: datetime) -> int:
    return max((now - parse_timestamp(start_date)).days, 0)


def sum_recent(history: List[dict], now: datetime) -> RecentStats:
    """Sum history rows created within the last seven days."""
    cutoff = now - RECENT_WINDOW
    recent = RecentStats()
    for row in history:
        summary = row.get("changes_summary") or {}
        created_at = row.get("created_at")
        if not created_at or parse_timestamp(created_at) < cutoff:
            continue
        recent.total_changes += summary.get("totalChanges", 0)
        recent.price_changes += summary.get("priceChanges", 0)
        recent.new_listings += summary.get("newListings", 0)
        recent.removed_listings += summary.get("removedListings", 0)
    return recent


def dump_snapshot(snapshot: Snapshot) -> dict:
    return snapshot.model_dump(mode="json", by_alias=True)


class SnapshotStore(ABC):
    """Storage interface used by the monitoring cycle."""

    @abstractmethod
    async def load_snapshot(self) -> VersionedSnapshot:
        """Return the stored snapshot, or an empty one at version 0."""

    @abstractmethod
    async def save_snapshot(self, snapshot: Snapshot, expected_version: int) -> int:
        """Overwrite the stored snapshot if still at expected_version. Returns the new version."""

    @abstractmethod
    async def append_history(self, counts: ChangeCounts, stats: MonitoringStats):
        ...

    @abstractmethod
    async def get_meta(self) -> Optional[dict]:
        ...

    @abstractmethod
    async def get_history(self, limit: int = 30, since: Optional[datetime] = None) -> List[dict]:
        """History rows, newest first."""

    @abstractmethod
    async def _write_meta(self, start_date: Optional[str], total_checks: int):
        """Insert the meta row when start_date is given, otherwise bump total_checks."""

    async def record_check(self, now: Optional[datetime] = None) -> MonitoringStats:
        """Count this check and compute monitoring stats."""
        now = now or utcnow()
        meta = await self.get_meta()

        if meta is None:
            await self._write_meta(now.isoformat(), 1)
            logger.info("Created monitoring metadata")
            monitoring_days, total_checks = 0, 1
        else:
            monitoring_days = monitoring_days_since(meta["start_date"], now)
            total_checks = (meta.get("total_checks") or 0) + 1
            await self._write_meta(None, total_checks)

        history = await self.get_history(limit=1000, since=now - RECENT_WINDOW)
        return MonitoringStats(
            monitoring_days=monitoring_days,
            total_checks=total_checks,
            recent_stats=sum_recent(history, now),
            last_check_time=now.isoformat(),
        )

    async def close(self):
        pass


class SqliteSnapshotStore(SnapshotStore):
    """Local store on an aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def load_snapshot(self) -> VersionedSnapshot:
        cursor = await self.db.execute(
            "SELECT data, version FROM seller_monitor WHERE id = ?", (SNAPSHOT_ROW_ID,)
        )
        row = await cursor.fetchone()
        if not row:
            logger.info("No previous snapshot found")
            return VersionedSnapshot(snapshot=Snapshot.empty(), version=0)
        return VersionedSnapshot(
            snapshot=Snapshot.model_validate(json.loads(row[0])), version=row[1],
        )

    async def _current_version(self) -> Optional[int]:
        cursor = await self.db.execute(
            "SELECT version FROM seller_monitor WHERE id = ?", (SNAPSHOT_ROW_ID,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def save_snapshot(self, snapshot: Snapshot, expected_version: int) -> int:
        data = json.dumps(dump_snapshot(snapshot))
        now = utcnow().isoformat()
        new_version = expected_version + 1

        if expected_version == 0:
            cursor = await self.db.execute(
                """INSERT OR IGNORE INTO seller_monitor (id, data, version, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (SNAPSHOT_ROW_ID, data, new_version, now),
            )
        else:
            cursor = await self.db.execute(
                """UPDATE seller_monitor SET data = ?, version = ?, updated_at = ?
                   WHERE id = ? AND version = ?""",
                (data, new_version, now, SNAPSHOT_ROW_ID, expected_version),
            )

        if cursor.rowcount != 1:
            await self.db.rollback()
            raise SnapshotConflictError(expected_version, await self._current_version())

        await self.db.commit()
        logger.info("Snapshot saved at version %d", new_version)
        return new_version

    async def append_history(self, counts: ChangeCounts, stats: MonitoringStats):
        await self.db.execute(
            """INSERT INTO seller_monitor_history
               (changes_summary, monitoring_day, total_checks, created_at)
               VALUES (?, ?, ?, ?)""",
            (
                json.dumps(counts.model_dump(by_alias=True)),
                stats.monitoring_days, stats.total_checks, utcnow().isoformat(),
            ),
        )
        await self.db.commit()

    async def get_meta(self) -> Optional[dict]:
        cursor = await self.db.execute(
            "SELECT start_date, total_checks FROM seller_monitor_meta WHERE id = ?", (META_ROW_ID,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return {"start_date": row[0], "total_checks": row[1]}

    async def _write_meta(self, start_date: Optional[str], total_checks: int):
        if start_date is not None:
            await self.db.execute(
                "INSERT INTO seller_monitor_meta (id, start_date, total_checks) VALUES (?, ?, ?)",
                (META_ROW_ID, start_date, total_checks),
            )
        else:
            await self.db.execute(
                "UPDATE seller_monitor_meta SET total_checks = ? WHERE id = ?",
                (total_checks, META_ROW_ID),
            )
        await self.db.commit()

    async def get_history(self, limit: int = 30, since: Optional[datetime] = None) -> List[dict]:
        query = "SELECT changes_summary, monitoring_day, created_at FROM seller_monitor_history"
        params: list = []
        if since is not None:
            query += " WHERE created_at >= ?"
            params.append(since.isoformat())
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        cursor = await self.db.execute(query, params)
        rows = await cursor.fetchall()
        return [
            {
                "changes_summary": json.loads(r[0]) if r[0] else {},
                "monitoring_day": r[1],
                "created_at": r[2],
            }
            for r in rows
        ]

    async def close(self):
        await self.db.close()


class SupabaseSnapshotStore(SnapshotStore):
    """Production store on Supabase (Postgres).

    The supabase client is synchronous; calls are made inline from the
    async methods.
    """

    def __init__(self, client: Client):
        self.client = client

    async def load_snapshot(self) -> VersionedSnapshot:
        try:
            result = self.client.table("seller_monitor").select(
                "data, version"
            ).eq("id", SNAPSHOT_ROW_ID).limit(1).execute()
        except APIError as e:
            if e.code == UNDEFINED_COLUMN:
                raise StorageError(
                    "seller_monitor has no version column; apply sql/supabase_schema.sql",
                    code="STORAGE_SCHEMA_OUTDATED", cause=e,
                )
            raise StorageError(f"Failed to load snapshot: {e.message}", cause=e)

        if not result.data:
            logger.info("No previous snapshot found")
            return VersionedSnapshot(snapshot=Snapshot.empty(), version=0)

        row = result.data[0]
        data = row.get("data") or {}
        if isinstance(data, str):
            data = json.loads(data)
        # A row written before versioning has a NULL version; it is loaded as
        # version 0 and claimed by the first save.
        return VersionedSnapshot(
            snapshot=Snapshot.model_validate(data), version=row.get("version") or 0,
        )

    def _current_version(self) -> Optional[int]:
        try:
            result = self.client.table("seller_monitor").select(
                "version"
            ).eq("id", SNAPSHOT_ROW_ID).limit(1).execute()
        except APIError as e:
            logger.warning("Could not read current snapshot version: %s", e.message)
            return None
        return result.data[0].get("version") if result.data else None

    async def save_snapshot(self, snapshot: Snapshot, expected_version: int) -> int:
        new_version = expected_version + 1
        row = {
            "data": dump_snapshot(snapshot),
            "version": new_version,
            "updated_at": utcnow().isoformat(),
        }

        try:
            if expected_version == 0:
                claimed = self.client.table("seller_monitor").update(row).eq(
                    "id", SNAPSHOT_ROW_ID
                ).is_("version", "null").execute()
                if not claimed.data:
                    self.client.table("seller_monitor").insert(
                        {"id": SNAPSHOT_ROW_ID, **row}
                    ).execute()
            else:
                result = self.client.table("seller_monitor").update(row).eq(
                    "id", SNAPSHOT_ROW_ID
                ).eq("version", expected_version).execute()
                if not result.data:
                    raise SnapshotConflictError(expected_version, self._current_version())
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:  # another cycle inserted first
                raise SnapshotConflictError(expected_version, self._current_version())
            raise StorageError(f"Failed to save snapshot: {e.message}", cause=e)

        logger.info("Snapshot saved at version %d", new_version)
        return new_version

    async def append_history(self, counts: ChangeCounts, stats: MonitoringStats):
        try:
            self.client.table("seller_monitor_history").insert({
                "changes_summary": counts.model_dump(by_alias=True),
                "monitoring_day": stats.monitoring_days,
                "total_checks": stats.total_checks,
                "created_at": utcnow().isoformat(),
            }).execute()
        except APIError as e:
            raise StorageError(f"Failed to save change history: {e.message}", cause=e)

    async def get_meta(self) -> Optional[dict]:
        try:
            result = self.client.table("seller_monitor_meta").select(
                "start_date, total_checks"
            ).eq("id", META_ROW_ID).limit(1).execute()
        except APIError as e:
            raise StorageError(f"Failed to read monitoring metadata: {e.message}", cause=e)
        return result.data[0] if result.data else None

    async def _write_meta(self, start_date: Optional[str], total_checks: int):
        try:
            if start_date is not None:
                self.client.table("seller_monitor_meta").insert({
                    "id": META_ROW_ID, "start_date": start_date, "total_checks": total_checks,
                }).execute()
            else:
                self.client.table("seller_monitor_meta").update(
                    {"total_checks": total_checks}
                ).eq("id", META_ROW_ID).execute()
        except APIError as e:
            raise StorageError(f"Failed to write monitoring metadata: {e.message}", cause=e)

    async def get_history(self, limit: int = 30, since: Optional[datetime] = None) -> List[dict]:
        try:
            query = self.client.table("seller_monitor_history").select(
                "changes_summary, monitoring_day, created_at"
            )
            if since is not None:
                query = query.gte("created_at", since.isoformat())
            result = query.order("created_at", desc=True).limit(limit).execute()
        except APIError as e:
            raise StorageError(f"Failed to read change history: {e.message}", cause=e)
        return result.data or []


async def create_store(config: MonitorConfig) -> SnapshotStore:
    """Open the store selected by config.store_backend."""
    if config.store_backend == "sqlite":
        db = await get_db(config.sqlite_path)
        await init_db(db)
        return SqliteSnapshotStore(db)
    return SupabaseSnapshotStore(get_supabase(config))
