"""
Idempotency records for side-effecting tools.

A key is derived from the tool name, the owner and a canonical JSON
rendering of the configured key fields. The first successful result for a
key is stored as canonical JSON text and replayed unchanged until it
expires.

Stores:
- MemoryIdempotencyStore: in-process, for tests and single-node use
- PostgreSQLIdempotencyStore: shared asyncpg pool, insert-if-absent
"""

import asyncio
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, Optional

from ..clock import Clock, now_ms
from ..db.database import Database

logger = logging.getLogger(__name__)


def canonical_json(value: Any) -> str:
    """Deterministic JSON: sorted keys, no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def compute_idempotency_key(
    tool_name: str,
    owner_id: str,
    input: Dict[str, Any],
    key_fields: Iterable[str] = (),
) -> str:
    """``<tool>:<sha256>`` over the owner and the selected input fields."""
    fields = sorted(key_fields) or sorted(input)
    payload = {
        "owner_id": owner_id,
        "fields": {name: input.get(name) for name in fields},
    }
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f"{tool_name}:{digest}"


@dataclass(frozen=True)
class IdempotencyRecord:
    key: str
    tool_name: str
    result_json: str
    created_at_ms: int
    expires_at_ms: int

    def is_expired(self, at_ms: int) -> bool:
        return at_ms >= self.expires_at_ms

    def result(self) -> Any:
        return json.loads(self.result_json)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "tool_name": self.tool_name,
            "result_json": self.result_json,
            "created_at_ms": self.created_at_ms,
            "expires_at_ms": self.expires_at_ms,
        }


class IdempotencyStore(ABC):
    """Storage for idempotency records."""

    @abstractmethod
    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        """Return the record for ``key`` (expired or not), or None."""
        pass

    @abstractmethod
    async def put_if_absent(self, record: IdempotencyRecord, at_ms: int) -> IdempotencyRecord:
        """
        Store ``record`` unless a live record already holds the key.

        Returns:
            Whichever record holds the key afterwards
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def purge_expired(self, at_ms: int) -> int:
        """Delete expired records. Returns how many were removed."""
        pass


class MemoryIdempotencyStore(IdempotencyStore):
    """In-memory idempotency store; all data is lost when the process exits."""

    def __init__(self):
        self._records: Dict[str, IdempotencyRecord] = {}

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        return self._records.get(key)

    async def put_if_absent(self, record: IdempotencyRecord, at_ms: int) -> IdempotencyRecord:
        existing = self._records.get(record.key)
        if existing is not None and not existing.is_expired(at_ms):
            return existing
        self._records[record.key] = record
        return record

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def purge_expired(self, at_ms: int) -> int:
        expired = [k for k, r in self._records.items() if r.is_expired(at_ms)]
        for key in expired:
            del self._records[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS idempotency_records (
    key TEXT PRIMARY KEY,
    tool_name TEXT NOT NULL,
    result_json TEXT NOT NULL,
    created_at_ms BIGINT NOT NULL,
    expires_at_ms BIGINT NOT NULL
)
"""

SETUP_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_idempotency_expires ON idempotency_records(expires_at_ms)",
]


class PostgreSQLIdempotencyStore(IdempotencyStore):
    """
    PostgreSQL idempotency store.

    ``put_if_absent`` is a single upsert that only overwrites an expired
    row, so concurrent writers across processes agree on one stored result.

    Usage:
        store = PostgreSQLIdempotencyStore(db=db)
        await store.initialize()
    """

    def __init__(self, db: Optional[Database] = None, dsn: Optional[str] = None):
        if db is None and dsn is None:
            raise ValueError("Either db or dsn must be provided")
        self._db = db
        self._dsn = dsn
        self._owns_db = db is None
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._db is None:
            self._db = Database(dsn=self._dsn)
            await self._db.initialize()
        await self._db.ensure_schema("idempotency_records", [CREATE_TABLE_SQL, *SETUP_SQL])
        self._initialized = True
        logger.info("PostgreSQL idempotency store initialized")

    async def close(self) -> None:
        if self._owns_db and self._db is not None:
            await self._db.close()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "PostgreSQLIdempotencyStore not initialized. Call await store.initialize() first."
            )

    @staticmethod
    def _row_to_record(row: Any) -> IdempotencyRecord:
        return IdempotencyRecord(
            key=row["key"],
            tool_name=row["tool_name"],
            result_json=row["result_json"],
            created_at_ms=row["created_at_ms"],
            expires_at_ms=row["expires_at_ms"],
        )

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        self._ensure_initialized()
        row = await self._db.fetchrow(
            "SELECT * FROM idempotency_records WHERE key = $1", key
        )
        return self._row_to_record(row) if row else None

    async def put_if_absent(self, record: IdempotencyRecord, at_ms: int) -> IdempotencyRecord:
        self._ensure_initialized()
        await self._db.execute(
            """
            INSERT INTO idempotency_records (key, tool_name, result_json, created_at_ms, expires_at_ms)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (key) DO UPDATE SET
                tool_name = EXCLUDED.tool_name,
                result_json = EXCLUDED.result_json,
                created_at_ms = EXCLUDED.created_at_ms,
                expires_at_ms = EXCLUDED.expires_at_ms
            WHERE idempotency_records.expires_at_ms <= $6
            """,
            record.key,
            record.tool_name,
            record.result_json,
            record.created_at_ms,
            record.expires_at_ms,
            at_ms,
        )
        stored = await self.get(record.key)
        return stored or record

    async def delete(self, key: str) -> bool:
        self._ensure_initialized()
        deleted = await self._db.execute_count(
            "DELETE FROM idempotency_records WHERE key = $1", key
        )
        return deleted == 1

    async def purge_expired(self, at_ms: int) -> int:
        self._ensure_initialized()
        return await self._db.execute_count(
            "DELETE FROM idempotency_records WHERE expires_at_ms <= $1", at_ms
        )


class KeyedLocks:
    """asyncio locks keyed by string, dropped once nobody holds or waits on them."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class IdempotencyGuard:
    """
    Lookup-execute-store around one call, serialized per key.

    Usage:
        async with guard.claim(key) as claim:
            if claim.record is not None:
                return claim.record.result()
            result = await run()
            record = await claim.store(tool_name, result, ttl_seconds)
    """

    def __init__(self, store: Optional[IdempotencyStore] = None, clock: Optional[Clock] = None):
        self.store = store or MemoryIdempotencyStore()
        self._clock = clock or now_ms
        self._locks = KeyedLocks()

    @asynccontextmanager
    async def claim(self, key: str) -> AsyncIterator["_Claim"]:
        async with self._locks.hold(key):
            now = self._clock()
            record = await self.store.get(key)
            if record is not None and record.is_expired(now):
                record = None
            yield _Claim(self, key, record)

    async def _store(self, key: str, tool_name: str, data: Any, ttl_seconds: int) -> IdempotencyRecord:
        now = self._clock()
        record = IdempotencyRecord(
            key=key,
            tool_name=tool_name,
            result_json=canonical_json(data),
            created_at_ms=now,
            expires_at_ms=now + ttl_seconds * 1000,
        )
        return await self.store.put_if_absent(record, now)


class _Claim:
    def __init__(self, guard: IdempotencyGuard, key: str, record: Optional[IdempotencyRecord]):
        self._guard = guard
        self.key = key
        self.record = record

    async def store(self, tool_name: str, data: Any, ttl_seconds: int) -> IdempotencyRecord:
        self.record = await self._guard._store(self.key, tool_name, data, ttl_seconds)
        return self.record
