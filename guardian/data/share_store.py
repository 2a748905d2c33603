"""Module share_store: persistence of reports behind short share identifiers."""
#
# PURPOSE:
# A produced report can be saved once and re-read later through a short,
# URL-safe share id. A saved report is never modified: its created_at is
# the only input to the read-time freshness computation.
#
# BACKENDS:
# - InMemoryShareStore: process-local dict (tests, single-shot CLI use)
# - SqliteShareStore: aiosqlite file in WAL mode, one INSERT per save
#
# KEY CONCEPTS:
# - Atomic write: a save is a single INSERT keyed by a fresh id; an id
#   collision is retried with a new id, never overwritten
# - TTL: reports older than result_ttl_days read as not found
#

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol, Tuple

import aiosqlite

from guardian.base.config import GuardianConfig, get_config
from guardian.contracts.schemas import GuardianCheckResponse
from guardian.errors import ErrorCode, GuardianError

logger = logging.getLogger(__name__)

SHARE_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_-"
MAX_ID_ATTEMPTS = 5

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_share_id(length: int = 10) -> str:
    return "".join(secrets.choice(SHARE_ID_ALPHABET) for _ in range(length))


class ShareStore(Protocol):
    async def save(self, response: GuardianCheckResponse) -> GuardianCheckResponse:
        """Persist a report; return it stamped with its share id and created_at."""
        ...

    async def get(self, share_id: str, now: Optional[datetime] = None) -> Optional[GuardianCheckResponse]:
        ...

    async def close(self) -> None:
        ...


class _ExpiringStore:
    def __init__(self, ttl_days: int, id_length: int, clock: Optional[Clock]):
        self.ttl = timedelta(days=ttl_days)
        self.id_length = id_length
        self._clock = clock or _utcnow

    def _expired(self, created_at: datetime, now: Optional[datetime]) -> bool:
        now = now or self._clock()
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now - created_at > self.ttl

    def _stamp(self, response: GuardianCheckResponse, share_id: str) -> GuardianCheckResponse:
        return response.model_copy(
            update={"share_id": share_id, "created_at": self._clock(), "freshness": None}
        )


class InMemoryShareStore(_ExpiringStore):
    def __init__(self, ttl_days: int = 30, id_length: int = 10, clock: Optional[Clock] = None):
        super().__init__(ttl_days, id_length, clock)
        self._reports: Dict[str, GuardianCheckResponse] = {}

    async def save(self, response: GuardianCheckResponse) -> GuardianCheckResponse:
        for _ in range(MAX_ID_ATTEMPTS):
            share_id = generate_share_id(self.id_length)
            if share_id not in self._reports:
                stored = self._stamp(response, share_id)
                self._reports[share_id] = stored
                return stored
        raise GuardianError(ErrorCode.STORE_WRITE_FAILED, "Could not allocate a unique share id")

    async def get(self, share_id: str, now: Optional[datetime] = None) -> Optional[GuardianCheckResponse]:
        stored = self._reports.get(share_id)
        if stored is None or self._expired(stored.created_at, now):
            return None
        return stored

    async def close(self) -> None:
        self._reports.clear()


class SqliteShareStore(_ExpiringStore):
    """Reports serialized as JSON in one SQLite table."""

    def __init__(
        self,
        db_path: str,
        ttl_days: int = 30,
        id_length: int = 10,
        clock: Optional[Clock] = None,
    ):
        super().__init__(ttl_days, id_length, clock)
        self.db_path = str(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        # Created lazily: asyncio.Lock must be made inside the running loop
        self._init_lock: Optional[asyncio.Lock] = None

    @classmethod
    def from_config(cls, config: Optional[GuardianConfig] = None) -> "SqliteShareStore":
        cfg = config or get_config()
        return cls(
            str(cfg.storage.db_path),
            ttl_days=cfg.storage.result_ttl_days,
            id_length=cfg.storage.share_id_length,
        )

    async def init(self) -> None:
        if self._db is not None:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()

        async with self._init_lock:
            if self._db is not None:
                return
            try:
                if self.db_path != ":memory:":
                    os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
                db = await aiosqlite.connect(self.db_path, timeout=5.0)
                await db.execute("PRAGMA journal_mode=WAL;")
                await db.execute("PRAGMA synchronous=NORMAL;")
                await db.execute("PRAGMA busy_timeout=5000;")
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS shared_reports (
                        share_id TEXT PRIMARY KEY,
                        created_at TEXT NOT NULL,
                        function_name TEXT,
                        overall_risk TEXT,
                        data JSON NOT NULL CHECK(json_valid(data))
                    )
                """)
                await db.commit()
                self._db = db
                logger.info(f"[ShareStore] SQLite store ready at {self.db_path} (WAL mode)")
            except (sqlite3.Error, OSError) as e:
                logger.error(f"[ShareStore] Init failed: {e}")
                raise GuardianError(
                    ErrorCode.STORE_INIT_FAILED,
                    f"Could not open share store: {e}",
                    details={"db_path": self.db_path},
                )

    async def save(self, response: GuardianCheckResponse) -> GuardianCheckResponse:
        await self.init()
        for _ in range(MAX_ID_ATTEMPTS):
            stored = self._stamp(response, generate_share_id(self.id_length))
            try:
                await self._db.execute(
                    "INSERT INTO shared_reports (share_id, created_at, function_name, overall_risk, data) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        stored.share_id,
                        stored.created_at.isoformat(),
                        stored.function_name,
                        stored.overall_risk.value,
                        stored.model_dump_json(),
                    ),
                )
                await self._db.commit()
                return stored
            except sqlite3.IntegrityError:
                logger.debug(f"[ShareStore] Share id collision on {stored.share_id}, retrying")
                continue
            except sqlite3.Error as e:
                raise GuardianError(ErrorCode.STORE_WRITE_FAILED, f"Could not save report: {e}")
        raise GuardianError(ErrorCode.STORE_WRITE_FAILED, "Could not allocate a unique share id")

    async def get(self, share_id: str, now: Optional[datetime] = None) -> Optional[GuardianCheckResponse]:
        await self.init()
        row = await self._fetch(share_id)
        if row is None:
            return None
        created_at, data = row
        if self._expired(datetime.fromisoformat(created_at), now):
            return None
        return GuardianCheckResponse.model_validate_json(data)

    async def _fetch(self, share_id: str) -> Optional[Tuple[str, str]]:
        try:
            async with self._db.execute(
                "SELECT created_at, data FROM shared_reports WHERE share_id = ?", (share_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"[ShareStore] Read failed for {share_id}: {e}")
            raise GuardianError(
                ErrorCode.STORE_READ_FAILED,
                f"Could not read shared report: {e}",
                details={"share_id": share_id},
            )
        return (row[0], row[1]) if row else None

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("[ShareStore] Connection closed.")


def create_share_store(config: Optional[GuardianConfig] = None) -> ShareStore:
    cfg = config or get_config()
    if cfg.storage.backend == "memory":
        return InMemoryShareStore(cfg.storage.result_ttl_days, cfg.storage.share_id_length)
    return SqliteShareStore.from_config(cfg)
