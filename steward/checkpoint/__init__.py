"""
Steward Checkpoint System - Versioned persistence for workflow instances

A checkpoint is saved when a workflow starts, after every step, when it
pauses at a gate and on every terminal status. Paused instances are not
kept in memory; they are rehydrated from their checkpoint on resume.

Storage Backends:
- Memory (testing/development)
- PostgreSQL (production)

Example usage:
    from steward.checkpoint import MemoryStorage, WorkflowCheckpoint

    storage = MemoryStorage()
    await storage.save(checkpoint)
    checkpoint = await storage.get(workflow_id)
"""

from .models import (
    CHECKPOINT_SCHEMA_VERSION,
    CheckpointExpiredError,
    CheckpointVersionError,
    CompensationAction,
    WorkflowCheckpoint,
)

from .storage import (
    CheckpointStorage,
    MemoryStorage,
)

from .postgres_storage import PostgreSQLCheckpointStorage

__all__ = [
    # Models
    "CHECKPOINT_SCHEMA_VERSION",
    "CheckpointExpiredError",
    "CheckpointVersionError",
    "CompensationAction",
    "WorkflowCheckpoint",
    # Storage
    "CheckpointStorage",
    "MemoryStorage",
    "PostgreSQLCheckpointStorage",
]
