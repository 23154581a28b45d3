# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler SQLite Vault - Snapshots and the operation log.

The vault keeps what a reconciliation needs between invocations:

1. Snapshots - the last RecordedState of each bucket and the last
   DesiredState applied to it (the only source for write-only facets)
2. Operation log - append-only history of every engine operation
"""

import json
from datetime import datetime, UTC
from pathlib import Path
from typing import List, TypedDict

import aiosqlite
import structlog

from s3recon.exceptions import S3ReconError, VaultError
from s3recon.model import DesiredState, RecordedState
from s3recon.serialization import (
    desired_state_from_dict,
    recorded_state_from_dict,
    state_to_json,
)

logger = structlog.get_logger()


class Snapshot(TypedDict):
    """Last known state of one bucket."""

    bucket: str
    recorded: RecordedState | None
    applied: DesiredState | None
    updated_at: str  # ISO 8601


class OperationRecord(TypedDict):
    """Record of one engine operation."""

    id: str  # ULID
    bucket: str
    action: str  # create, update, read, delete, import
    timestamp: str  # ISO 8601
    changed_facets: List[str]
    completed_at: str | None  # ISO 8601 or None while running
    error: str | None


async def init_vault_db(db_path: Path) -> None:
    """
    Initialize the vault database schema.

    Creates tables if they don't exist. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    bucket TEXT PRIMARY KEY,
                    recorded TEXT,
                    applied TEXT,
                    updated_at TEXT NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS operations (
                    id TEXT PRIMARY KEY,
                    bucket TEXT NOT NULL,
                    action TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    changed_facets TEXT NOT NULL DEFAULT '[]',
                    completed_at TEXT,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_operations_bucket
                ON operations(bucket)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_operations_timestamp
                ON operations(timestamp)
            """)

            await db.commit()

        logger.info("vault_db_initialized", db_path=str(db_path))

    except Exception as e:
        raise VaultError(
            f"Failed to initialize vault database: {e}",
            details={"db_path": str(db_path)},
        ) from e


# ============================================================================
# Snapshots
# ============================================================================

async def save_snapshot(
    db: aiosqlite.Connection,
    bucket: str,
    recorded: RecordedState | None,
    applied: DesiredState | None,
) -> None:
    """
    Replace the stored snapshot of a bucket.

    Args:
        db: SQLite database connection
        bucket: Bucket name
        recorded: State read back from the remote, if any
        applied: Desired state last applied, if any
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        INSERT INTO snapshots (bucket, recorded, applied, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(bucket) DO UPDATE SET
            recorded = excluded.recorded,
            applied = excluded.applied,
            updated_at = excluded.updated_at
        """,
        (
            bucket,
            state_to_json(recorded) if recorded is not None else None,
            state_to_json(applied) if applied is not None else None,
            now,
        ),
    )
    await db.commit()

    logger.debug("snapshot_saved", bucket=bucket)


async def load_snapshot(db: aiosqlite.Connection, bucket: str) -> Snapshot | None:
    """
    Load the stored snapshot of a bucket.

    Returns:
        The snapshot, or None if the bucket was never recorded

    Raises:
        VaultError: If the stored JSON no longer matches the model
    """
    async with db.execute(
        "SELECT bucket, recorded, applied, updated_at FROM snapshots WHERE bucket = ?",
        (bucket,),
    ) as cursor:
        row = await cursor.fetchone()

    if not row:
        return None

    try:
        recorded = recorded_state_from_dict(json.loads(row[1])) if row[1] else None
        applied = desired_state_from_dict(json.loads(row[2])) if row[2] else None
    except (ValueError, S3ReconError) as e:
        raise VaultError(
            f"Stored snapshot for bucket {bucket} is unreadable: {e}",
            details={"bucket": bucket},
        ) from e

    return Snapshot(
        bucket=row[0],
        recorded=recorded,
        applied=applied,
        updated_at=row[3],
    )


async def delete_snapshot(db: aiosqlite.Connection, bucket: str) -> None:
    await db.execute("DELETE FROM snapshots WHERE bucket = ?", (bucket,))
    await db.commit()


# ============================================================================
# Operation log
# ============================================================================

async def record_operation(
    db: aiosqlite.Connection,
    operation_id: str,
    bucket: str,
    action: str,
) -> None:
    """
    Record the start of an operation.

    Args:
        db: SQLite database connection
        operation_id: Unique operation ID (ULID)
        bucket: Bucket the operation targets
        action: create, update, read, delete or import
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        INSERT INTO operations (id, bucket, action, timestamp)
        VALUES (?, ?, ?, ?)
        """,
        (operation_id, bucket, action, now),
    )
    await db.commit()

    logger.info(
        "operation_recorded",
        operation_id=operation_id,
        bucket=bucket,
        action=action,
    )


async def complete_operation(
    db: aiosqlite.Connection,
    operation_id: str,
    changed_facets: List[str],
    error: str | None = None,
) -> None:
    """
    Mark an operation as completed.

    Args:
        db: SQLite database connection
        operation_id: Operation ID
        changed_facets: Facets synchronized by the operation
        error: Error message if operation failed
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        UPDATE operations
        SET changed_facets = ?, completed_at = ?, error = ?
        WHERE id = ?
        """,
        (json.dumps(sorted(changed_facets)), now, error, operation_id),
    )
    await db.commit()


def _operation_from_row(row) -> OperationRecord:
    return OperationRecord(
        id=row[0],
        bucket=row[1],
        action=row[2],
        timestamp=row[3],
        changed_facets=json.loads(row[4]),
        completed_at=row[5],
        error=row[6],
    )


async def get_operation(db: aiosqlite.Connection, operation_id: str) -> OperationRecord | None:
    async with db.execute(
        """
        SELECT id, bucket, action, timestamp, changed_facets, completed_at, error
        FROM operations
        WHERE id = ?
        """,
        (operation_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _operation_from_row(row) if row else None


async def list_operations(
    db: aiosqlite.Connection,
    bucket: str | None = None,
    limit: int = 100,
) -> List[OperationRecord]:
    """
    List recent operations, newest first.

    Args:
        db: SQLite database connection
        bucket: Only operations on this bucket, if given
        limit: Maximum results

    Returns:
        List of operation records
    """
    query = """
        SELECT id, bucket, action, timestamp, changed_facets, completed_at, error
        FROM operations
    """
    params: List = []

    if bucket is not None:
        query += " WHERE bucket = ?"
        params.append(bucket)

    # ULIDs sort by creation time
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)

    records: List[OperationRecord] = []
    async with db.execute(query, params) as cursor:
        async for row in cursor:
            records.append(_operation_from_row(row))

    return records
