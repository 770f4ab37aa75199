"""
PostgreSQL checkpoint storage backend.

Uses asyncpg via the shared Database pool for production-grade
checkpoint persistence with JSONB storage and indexed queries.
"""

import json
import logging
from typing import List, Optional

from ..db.database import Database
from ..workflow.models import WorkflowStatus
from .models import WorkflowCheckpoint
from .storage import CheckpointStorage

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS workflow_checkpoints (
    workflow_id TEXT PRIMARY KEY,
    workflow_name TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    status TEXT NOT NULL,
    schema_version INTEGER NOT NULL,
    data JSONB NOT NULL,
    updated_at_ms BIGINT NOT NULL,
    expires_at_ms BIGINT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
)
"""

SETUP_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_workflow_checkpoints_owner_id ON workflow_checkpoints(owner_id)",
    "CREATE INDEX IF NOT EXISTS idx_workflow_checkpoints_status ON workflow_checkpoints(status)",
    "CREATE INDEX IF NOT EXISTS idx_workflow_checkpoints_expires_at ON workflow_checkpoints(expires_at_ms)",
]


class PostgreSQLCheckpointStorage(CheckpointStorage):
    """
    PostgreSQL checkpoint storage for production.

    Stores the full checkpoint as JSONB; owner, status and expiry are
    mirrored into indexed columns for listing and expiry sweeps.

    Usage with shared Database pool (recommended):
        db = Database(dsn="postgresql://...")
        await db.initialize()
        storage = PostgreSQLCheckpointStorage(db=db)
        await storage.initialize()

    Usage standalone:
        storage = PostgreSQLCheckpointStorage(dsn="postgresql://...")
        await storage.initialize()
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        dsn: Optional[str] = None,
    ):
        if db is None and dsn is None:
            raise ValueError("Either db or dsn must be provided")
        self._db = db
        self._dsn = dsn
        self._owns_db = db is None
        self._initialized = False

    async def initialize(self) -> None:
        """Create table and indexes. Must be called before use."""
        if self._initialized:
            return

        if self._db is None:
            self._db = Database(dsn=self._dsn)
            await self._db.initialize()

        await self._db.ensure_schema("workflow_checkpoints", [CREATE_TABLE_SQL, *SETUP_SQL])

        self._initialized = True
        logger.info("PostgreSQL checkpoint storage initialized")

    async def close(self) -> None:
        """Close database connection if we own it."""
        if self._owns_db and self._db is not None:
            await self._db.close()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "PostgreSQLCheckpointStorage not initialized. Call await storage.initialize() first."
            )

    # -- CheckpointStorage interface ------------------------------------------

    async def save(self, checkpoint: WorkflowCheckpoint) -> str:
        self._ensure_initialized()
        await self._db.execute(
            """
            INSERT INTO workflow_checkpoints
                (workflow_id, workflow_name, owner_id, status, schema_version, data, updated_at_ms, expires_at_ms)
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8)
            ON CONFLICT (workflow_id) DO UPDATE SET
                status = EXCLUDED.status,
                schema_version = EXCLUDED.schema_version,
                data = EXCLUDED.data,
                updated_at_ms = EXCLUDED.updated_at_ms,
                expires_at_ms = EXCLUDED.expires_at_ms
            """,
            checkpoint.workflow_id,
            checkpoint.workflow_name,
            checkpoint.owner_id,
            checkpoint.status.value,
            checkpoint.schema_version,
            checkpoint.to_json(),
            checkpoint.updated_at_ms,
            checkpoint.expires_at_ms,
        )
        return checkpoint.workflow_id

    async def save_if_unchanged(
        self,
        checkpoint: WorkflowCheckpoint,
        expected_status: WorkflowStatus,
        expected_updated_at_ms: int,
    ) -> bool:
        self._ensure_initialized()
        claimed = await self._db.execute_count(
            """
            UPDATE workflow_checkpoints SET
                status = $2,
                schema_version = $3,
                data = $4::jsonb,
                updated_at_ms = $5,
                expires_at_ms = $6
            WHERE workflow_id = $1 AND status = $7 AND updated_at_ms = $8
            """,
            checkpoint.workflow_id,
            checkpoint.status.value,
            checkpoint.schema_version,
            checkpoint.to_json(),
            checkpoint.updated_at_ms,
            checkpoint.expires_at_ms,
            expected_status.value,
            expected_updated_at_ms,
        )
        return claimed == 1

    async def get(self, workflow_id: str) -> Optional[WorkflowCheckpoint]:
        self._ensure_initialized()
        row = await self._db.fetchrow(
            "SELECT data FROM workflow_checkpoints WHERE workflow_id = $1",
            workflow_id,
        )
        if row is None:
            return None
        return self._parse_checkpoint(row["data"])

    async def delete(self, workflow_id: str) -> bool:
        self._ensure_initialized()
        deleted = await self._db.execute_count(
            "DELETE FROM workflow_checkpoints WHERE workflow_id = $1",
            workflow_id,
        )
        return deleted == 1

    async def list_by_owner(
        self,
        owner_id: str,
        status: Optional[WorkflowStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowCheckpoint]:
        self._ensure_initialized()
        if status is None:
            rows = await self._db.fetch(
                """
                SELECT data FROM workflow_checkpoints
                WHERE owner_id = $1
                ORDER BY updated_at_ms DESC
                LIMIT $2
                """,
                owner_id,
                limit,
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT data FROM workflow_checkpoints
                WHERE owner_id = $1 AND status = $2
                ORDER BY updated_at_ms DESC
                LIMIT $3
                """,
                owner_id,
                status.value,
                limit,
            )
        return [self._parse_checkpoint(r["data"]) for r in rows]

    async def list_by_status(self, status: WorkflowStatus, limit: int = 100) -> List[WorkflowCheckpoint]:
        self._ensure_initialized()
        rows = await self._db.fetch(
            """
            SELECT data FROM workflow_checkpoints
            WHERE status = $1
            ORDER BY updated_at_ms DESC
            LIMIT $2
            """,
            status.value,
            limit,
        )
        return [self._parse_checkpoint(r["data"]) for r in rows]

    # -- Helpers --------------------------------------------------------------

    @staticmethod
    def _parse_checkpoint(data) -> WorkflowCheckpoint:
        """Parse JSONB data (returned as dict or str) into a WorkflowCheckpoint."""
        if isinstance(data, str):
            return WorkflowCheckpoint.from_json(data)
        return WorkflowCheckpoint.from_dict(data)
