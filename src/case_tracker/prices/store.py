"""SQLite-backed price storage: current prices, history, sweep log.

Uses aiosqlite for async access, WAL mode for concurrent readers, and a
version-tracked migration system. One connection is shared by the sweeper
and the API; an asyncio lock around it keeps readers from seeing a
reconciliation half-applied.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, ClassVar, Protocol, runtime_checkable

import aiosqlite

from case_tracker.core.config import StorageConfig
from case_tracker.core.exceptions import StorageError
from case_tracker.core.models import (
    ItemId,
    PriceObservation,
    SweepReport,
    ensure_utc,
    utc_now,
)

logger = logging.getLogger(__name__)


def percent_change(previous: float | None, current: float) -> float | None:
    """Percentage move from ``previous`` to ``current``.

    None when there is no previous price or it is zero.
    """
    if previous is None or previous == 0:
        return None
    return (current - previous) / previous * 100


def _to_db_time(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


@runtime_checkable
class PriceStore(Protocol):
    """Protocol for price persistence backends."""

    async def record_observation(
        self, item_id: ItemId, price: float, observed_at: datetime
    ) -> float | None: ...
    async def current_snapshot(self) -> dict[ItemId, dict[str, Any]]: ...
    async def history_snapshot(
        self, since: datetime | None = None
    ) -> dict[ItemId, list[dict[str, Any]]]: ...
    async def nearest_observation_to(
        self, item_id: ItemId, target: datetime, now: datetime | None = None
    ) -> PriceObservation | None: ...
    async def record_sweep(self, report: SweepReport) -> None: ...
    async def last_sweep(self) -> SweepReport | None: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqlitePriceStore:
    """SQLite implementation of the PriceStore protocol."""

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS current_prices (
                    item_id TEXT PRIMARY KEY,
                    price REAL NOT NULL CHECK (price >= 0),
                    observed_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    item_id TEXT NOT NULL,
                    price REAL NOT NULL CHECK (price >= 0),
                    observed_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS sweeps (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sweep_number INTEGER NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT NOT NULL,
                    items_updated INTEGER NOT NULL,
                    items_skipped INTEGER NOT NULL,
                    requests_issued INTEGER NOT NULL
                )""",
                "CREATE INDEX IF NOT EXISTS idx_history_item_time ON price_history(item_id, observed_at)",
                "CREATE INDEX IF NOT EXISTS idx_sweeps_completed ON sweeps(completed_at)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._lock:
                async with self._db.execute("SELECT 1") as cursor:
                    row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": "query"},
            )
        return self._db

    # --- Reconciliation ---

    async def record_observation(
        self, item_id: ItemId, price: float, observed_at: datetime
    ) -> float | None:
        """Reconcile one new observation against stored state.

        In a single transaction: read the item's current price, upsert the
        current price row, append a history row. Either all of it lands or
        none of it does.

        Returns:
            The price stored before this call, or None for a first observation.

        Raises:
            StorageError: On any failure; the transaction is rolled back.
        """
        db = self._require_db()
        stamp = _to_db_time(observed_at)
        async with self._lock:
            try:
                await db.execute("BEGIN IMMEDIATE")
                previous = await self._read_current_price(db, item_id)
                await self._upsert_current(db, item_id, price, stamp)
                await self._append_history(db, item_id, price, stamp)
                await db.commit()
            except Exception as e:
                await db.rollback()
                raise StorageError(
                    f"Failed to record observation for {item_id!r}: {e}",
                    context={
                        "operation": "record_observation",
                        "table": "current_prices,price_history",
                        "item_id": item_id,
                    },
                ) from e
        return previous

    async def _read_current_price(
        self, db: aiosqlite.Connection, item_id: ItemId
    ) -> float | None:
        async with db.execute(
            "SELECT price FROM current_prices WHERE item_id = ?", (item_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return row["price"] if row is not None else None

    async def _upsert_current(
        self, db: aiosqlite.Connection, item_id: ItemId, price: float, stamp: str
    ) -> None:
        await db.execute(
            """INSERT INTO current_prices (item_id, price, observed_at)
               VALUES (?, ?, ?)
               ON CONFLICT(item_id) DO UPDATE SET
                   price = excluded.price,
                   observed_at = excluded.observed_at""",
            (item_id, price, stamp),
        )

    async def _append_history(
        self, db: aiosqlite.Connection, item_id: ItemId, price: float, stamp: str
    ) -> None:
        await db.execute(
            "INSERT INTO price_history (item_id, price, observed_at) VALUES (?, ?, ?)",
            (item_id, price, stamp),
        )

    # --- Snapshots ---

    async def current_snapshot(self) -> dict[ItemId, dict[str, Any]]:
        """Every item's latest price: ``{item: {"price", "timestamp"}}``."""
        rows = await self._fetchall(
            "SELECT item_id, price, observed_at FROM current_prices ORDER BY item_id"
        )
        return {
            row["item_id"]: {
                "price": row["price"],
                "timestamp": _from_db_time(row["observed_at"]),
            }
            for row in rows
        }

    async def history_snapshot(
        self, since: datetime | None = None
    ) -> dict[ItemId, list[dict[str, Any]]]:
        """All history rows grouped by item, in insertion order.

        Args:
            since: If given, only observations at or after this time.
        """
        if since is None:
            rows = await self._fetchall(
                "SELECT item_id, price, observed_at FROM price_history ORDER BY id"
            )
        else:
            rows = await self._fetchall(
                """SELECT item_id, price, observed_at FROM price_history
                   WHERE observed_at >= ? ORDER BY id""",
                (_to_db_time(since),),
            )

        result: dict[ItemId, list[dict[str, Any]]] = {}
        for row in rows:
            result.setdefault(row["item_id"], []).append(
                {"price": row["price"], "timestamp": _from_db_time(row["observed_at"])}
            )
        return result

    async def get_history(
        self, item_id: ItemId, since: datetime | None = None
    ) -> list[PriceObservation]:
        """One item's observations in insertion order."""
        sql = "SELECT item_id, price, observed_at FROM price_history WHERE item_id = ?"
        params: list[Any] = [item_id]
        if since is not None:
            sql += " AND observed_at >= ?"
            params.append(_to_db_time(since))
        sql += " ORDER BY id"
        rows = await self._fetchall(sql, tuple(params))
        return [self._row_to_observation(row) for row in rows]

    async def get_current(self, item_id: ItemId) -> PriceObservation | None:
        rows = await self._fetchall(
            "SELECT item_id, price, observed_at FROM current_prices WHERE item_id = ?",
            (item_id,),
        )
        return self._row_to_observation(rows[0]) if rows else None

    async def nearest_observation_to(
        self, item_id: ItemId, target: datetime, now: datetime | None = None
    ) -> PriceObservation | None:
        """The history row closest in time to ``target``.

        Rows observed after ``now`` are ignored. When several rows are
        equally close, the earliest-inserted one wins.
        """
        target = ensure_utc(target)
        cutoff = ensure_utc(now) if now is not None else utc_now()

        best: PriceObservation | None = None
        best_diff: float | None = None
        for obs in await self.get_history(item_id):
            if obs.observed_at > cutoff:
                continue
            diff = abs((obs.observed_at - target).total_seconds())
            if best_diff is None or diff < best_diff:
                best_diff = diff
                best = obs
        return best

    # --- Sweep Log ---

    async def record_sweep(self, report: SweepReport) -> None:
        db = self._require_db()
        async with self._lock:
            try:
                await db.execute(
                    """INSERT INTO sweeps
                       (sweep_number, started_at, completed_at,
                        items_updated, items_skipped, requests_issued)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        report.sweep_number,
                        _to_db_time(report.started_at),
                        _to_db_time(report.completed_at),
                        report.items_updated,
                        report.items_skipped,
                        report.requests_issued,
                    ),
                )
                await db.commit()
            except Exception as e:
                await db.rollback()
                raise StorageError(
                    f"Failed to record sweep: {e}",
                    context={"operation": "insert", "table": "sweeps"},
                ) from e

    async def last_sweep(self) -> SweepReport | None:
        """Most recently completed sweep, or None if none finished yet."""
        rows = await self._fetchall(
            """SELECT sweep_number, started_at, completed_at,
                      items_updated, items_skipped, requests_issued
               FROM sweeps ORDER BY id DESC LIMIT 1"""
        )
        if not rows:
            return None
        row = rows[0]
        return SweepReport(
            sweep_number=row["sweep_number"],
            started_at=_from_db_time(row["started_at"]),
            completed_at=_from_db_time(row["completed_at"]),
            items_updated=row["items_updated"],
            items_skipped=row["items_skipped"],
            requests_issued=row["requests_issued"],
        )

    async def get_statistics(self) -> dict[str, Any]:
        rows = await self._fetchall(
            """SELECT
                   (SELECT COUNT(*) FROM current_prices) AS tracked_items,
                   (SELECT COUNT(*) FROM price_history) AS history_rows,
                   (SELECT COUNT(*) FROM sweeps) AS completed_sweeps"""
        )
        row = rows[0]
        return {
            "tracked_items": row["tracked_items"],
            "history_rows": row["history_rows"],
            "completed_sweeps": row["completed_sweeps"],
        }

    # --- Helpers ---

    async def _fetchall(
        self, sql: str, params: tuple[Any, ...] = ()
    ) -> list[aiosqlite.Row]:
        db = self._require_db()
        async with self._lock:
            try:
                async with db.execute(sql, params) as cursor:
                    return list(await cursor.fetchall())
            except aiosqlite.Error as e:
                raise StorageError(
                    f"Query failed: {e}",
                    context={"operation": "query"},
                ) from e

    @staticmethod
    def _row_to_observation(row: aiosqlite.Row) -> PriceObservation:
        return PriceObservation(
            item_id=row["item_id"],
            price=row["price"],
            observed_at=_from_db_time(row["observed_at"]),
        )


async def create_store(config: StorageConfig) -> SqlitePriceStore:
    """Create and initialize the price store from configuration."""
    store = SqlitePriceStore(config)
    await store.initialize()
    return store
