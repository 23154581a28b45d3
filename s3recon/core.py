# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Core - Orchestrator functions for bucket reconciliation.

This module drives one bucket through its lifecycle:

    create_bucket -> update_bucket(creating=True) -> read_bucket
    update_bucket -> changed facets applied in order -> read_bucket
    delete_bucket -> destroy (optionally emptying the bucket first)

Every operation gets a ULID, is logged, optionally recorded in the vault,
and returns a ReconcileResult. Facets are applied one at a time on a single
client; a failing facet aborts the pass and nothing is rolled back.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Set, TypedDict

import aiosqlite
import structlog
from botocore.exceptions import ClientError
from ulid import ULID

from s3recon.changes import changed_facets, comparison_base
from s3recon.config import EngineConfig
from s3recon.destroy import destroy_bucket
from s3recon.endpoints import (
    bucket_arn,
    bucket_domain_name,
    bucket_regional_domain_name,
    hosted_zone_id,
    normalize_region,
    partition_for_region,
    website_domain,
    website_endpoint,
)
from s3recon.errors import explain_missing_identity
from s3recon.exceptions import (
    FacetSyncError,
    NotFoundError,
    S3OperationError,
    TransientError,
    ValidationError,
    classify_client_error,
    error_code,
    wrap_client_error,
)
from s3recon.facets import SYNCHRONIZERS, SyncContext
from s3recon.model import DesiredState, Facet, RecordedState
from s3recon.naming import generate_bucket_name, validate_bucket_name
from s3recon.retry import is_creation_transient, retry, retry_on_codes

logger = structlog.get_logger()

_ABSENT_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})


class ResourceStatus(str, Enum):
    """Lifecycle status of the reconciled bucket."""

    ABSENT = "absent"
    CREATING = "creating"
    SYNCING_FACETS = "syncing_facets"
    READY = "ready"
    DELETING = "deleting"


@dataclass
class ReconcileResult:
    """Result of one orchestrator operation."""

    operation_id: str  # ULID
    action: str
    bucket: str
    status: str
    changed_facets: List[str]
    duration_seconds: float
    recorded: RecordedState | None = None
    versions_deleted: int = 0


@dataclass
class EngineMetrics:
    """Counters for reconciler operations."""

    total_operations: int
    total_facets_applied: int
    last_run_at: datetime | None
    last_error: str | None
    status: str
    bucket: str | None = None
    facets_by_name: Dict[str, int] = field(default_factory=dict)


class ReconcilerState(TypedDict):
    """Runtime state for one reconciled bucket."""

    s3_session: Any  # aiobotocore session
    vault_db_path: Path | None
    status: ResourceStatus
    bucket: str | None
    recorded: RecordedState | None  # replaced wholesale after every read
    applied: DesiredState | None  # last desired state applied
    cancelled: asyncio.Event
    last_run_at: datetime | None
    total_operations: int
    total_facets_applied: int
    facets_by_name: Dict[str, int]
    last_error: str | None


async def initialize_reconciler_state(
    config: EngineConfig,
    *,
    session: Any = None,
    use_vault: bool = True,
) -> ReconcilerState:
    """
    Initialize runtime state for reconciliation.

    Args:
        config: Engine configuration
        session: aiobotocore session to use (a new one by default)
        use_vault: Persist snapshots and operations in config.vault_path

    Returns:
        Initialized ReconcilerState dictionary
    """
    if session is None:
        from aiobotocore.session import get_session

        session = get_session()

    vault_db_path = None
    if use_vault:
        from s3recon.vault import init_vault_db

        config.vault_path.parent.mkdir(parents=True, exist_ok=True)
        vault_db_path = config.vault_path
        await init_vault_db(vault_db_path)

    return ReconcilerState(
        s3_session=session,
        vault_db_path=vault_db_path,
        status=ResourceStatus.ABSENT,
        bucket=None,
        recorded=None,
        applied=None,
        cancelled=asyncio.Event(),
        last_run_at=None,
        total_operations=0,
        total_facets_applied=0,
        facets_by_name={},
        last_error=None,
    )


def request_cancel(state: ReconcilerState) -> None:
    """
    Stop retry loops and facet passes at their next iteration boundary.

    The request applies to the operation in flight, or to the next one if
    none is running, and is cleared when that operation finishes.
    """
    state["cancelled"].set()


def _create_client(config: EngineConfig, state: ReconcilerState, region: str):
    return state["s3_session"].create_client(
        "s3",
        region_name=region,
        endpoint_url=config.endpoint_url,
    )


# ============================================================================
# Vault bookkeeping
# ============================================================================

async def _begin_operation(
    state: ReconcilerState,
    operation_id: str,
    bucket: str,
    action: str,
) -> None:
    state["total_operations"] += 1
    state["last_run_at"] = datetime.now(UTC)
    if state["vault_db_path"] is None:
        return

    from s3recon.vault import record_operation

    async with aiosqlite.connect(state["vault_db_path"]) as db:
        await record_operation(db, operation_id, bucket, action)


async def _finish_operation(
    state: ReconcilerState,
    operation_id: str,
    applied: List[Facet],
    error: str | None = None,
) -> None:
    state["cancelled"].clear()
    if error is not None:
        state["last_error"] = error
    if state["vault_db_path"] is None:
        return

    from s3recon.vault import complete_operation

    async with aiosqlite.connect(state["vault_db_path"]) as db:
        await complete_operation(db, operation_id, [f.value for f in applied], error)


async def _load_snapshot(state: ReconcilerState, bucket: str) -> None:
    """Restore recorded/applied state from the vault if not already known."""
    if state["recorded"] is not None and state["bucket"] == bucket:
        return
    if state["vault_db_path"] is None:
        return

    from s3recon.vault import load_snapshot

    async with aiosqlite.connect(state["vault_db_path"]) as db:
        snapshot = await load_snapshot(db, bucket)

    if snapshot is None:
        return
    state["bucket"] = bucket
    state["recorded"] = snapshot["recorded"]
    state["applied"] = snapshot["applied"]
    # A snapshot without a recorded state marks a bucket whose creating
    # pass never finished
    if snapshot["recorded"] is not None:
        state["status"] = ResourceStatus.READY
    else:
        state["status"] = ResourceStatus.SYNCING_FACETS
    logger.debug("snapshot_loaded", bucket=bucket, updated_at=snapshot["updated_at"])


async def _save_snapshot(state: ReconcilerState, bucket: str) -> None:
    if state["vault_db_path"] is None:
        return

    from s3recon.vault import delete_snapshot, save_snapshot

    async with aiosqlite.connect(state["vault_db_path"]) as db:
        if state["status"] == ResourceStatus.ABSENT:
            await delete_snapshot(db, bucket)
        else:
            await save_snapshot(db, bucket, state["recorded"], state["applied"])


def _result(
    operation_id: str,
    action: str,
    bucket: str,
    state: ReconcilerState,
    applied: List[Facet],
    start_time: datetime,
    **kwargs: Any,
) -> ReconcileResult:
    return ReconcileResult(
        operation_id=operation_id,
        action=action,
        bucket=bucket,
        status=state["status"].value,
        changed_facets=[f.value for f in applied],
        duration_seconds=(datetime.now(UTC) - start_time).total_seconds(),
        recorded=state["recorded"],
        **kwargs,
    )


# ============================================================================
# Validation and facet passes
# ============================================================================

def validate_desired_state(
    desired: DesiredState,
    ctx: SyncContext,
    *,
    desired_only: bool = False,
) -> None:
    """
    Run every synchronizer's validation against a desired state.

    Called before any remote call of a create or update pass. With
    desired_only, checks that depend on what the bucket currently holds are
    skipped, so it can run before the bucket has been read.

    Raises:
        ValidationError: On the first rejected facet value
    """
    for facet, synchronizer in SYNCHRONIZERS.items():
        if desired_only:
            synchronizer.check_value(desired.value(facet), ctx)
        else:
            synchronizer.validate(desired.value(facet), ctx)


async def _sync_facets(
    client: Any,
    ctx: SyncContext,
    changed: Set[Facet],
    state: ReconcilerState,
    applied: List[Facet],
) -> None:
    """Apply changed facets in Facet order, stopping at the first failure."""
    state["status"] = ResourceStatus.SYNCING_FACETS

    for facet in Facet:
        if facet not in changed:
            continue
        if ctx.cancelled is not None and ctx.cancelled.is_set():
            pending = sorted(f.value for f in changed - set(applied))
            raise TransientError(
                "Reconciliation cancelled",
                details={"bucket": ctx.bucket, "pending": pending},
            )

        synchronizer = SYNCHRONIZERS[facet]
        value = ctx.desired.value(facet)
        try:
            await synchronizer.apply(client, ctx, value)
        except ValidationError:
            raise
        except Exception as e:
            logger.error(
                "facet_sync_failed",
                bucket=ctx.bucket,
                facet=facet.value,
                error=str(e),
            )
            raise FacetSyncError(facet.value, ctx.bucket, value, e) from e

        applied.append(facet)
        state["total_facets_applied"] += 1
        state["facets_by_name"][facet.value] = state["facets_by_name"].get(facet.value, 0) + 1
        logger.info("facet_applied", bucket=ctx.bucket, facet=facet.value)


async def _read_state(
    client: Any,
    config: EngineConfig,
    state: ReconcilerState,
    bucket: str,
    *,
    just_created: bool = False,
) -> RecordedState | None:
    """
    Rebuild the recorded state of a bucket from remote reads.

    Returns:
        The recorded state, or None if the bucket does not exist
    """
    async def head():
        return await client.head_bucket(Bucket=bucket)

    try:
        if just_created:
            # A new bucket may not be visible yet
            await retry(
                head,
                retry_on_codes(*_ABSENT_CODES),
                config.facet_timeout,
                interval=config.retry_interval,
                max_interval=config.max_retry_interval,
                cancelled=state["cancelled"],
                description="head_bucket",
            )
        else:
            await head()
    except ClientError as e:
        if error_code(e) in _ABSENT_CODES:
            logger.warning("bucket_not_found", bucket=bucket)
            return None
        raise wrap_client_error(e, f"Failed to read bucket {bucket}: {e}", bucket=bucket) from e

    values: Dict[str, Any] = {}
    for facet, synchronizer in SYNCHRONIZERS.items():
        try:
            values[facet.value] = await synchronizer.read(client, bucket)
        except ClientError as e:
            raise wrap_client_error(
                e,
                f"Failed to read {facet.value} of bucket {bucket}: {e}",
                bucket=bucket,
                facet=facet.value,
            ) from e

    try:
        location = await client.get_bucket_location(Bucket=bucket)
    except ClientError as e:
        raise wrap_client_error(
            e, f"Failed to read location of bucket {bucket}: {e}", bucket=bucket
        ) from e
    region = normalize_region(location.get("LocationConstraint"))

    has_website = values[Facet.WEBSITE.value] is not None
    recorded = RecordedState(
        **{k: v for k, v in values.items() if v is not None},
        bucket=bucket,
        region=region,
        arn=bucket_arn(bucket, partition_for_region(region)),
        bucket_domain_name=bucket_domain_name(bucket),
        bucket_regional_domain_name=bucket_regional_domain_name(bucket, region),
        hosted_zone_id=hosted_zone_id(region),
        website_endpoint=website_endpoint(bucket, region) if has_website else None,
        website_domain=website_domain(region) if has_website else None,
    )

    logger.debug("bucket_read", bucket=bucket, region=region)
    return recorded


async def _update_with_client(
    client: Any,
    config: EngineConfig,
    state: ReconcilerState,
    desired: DesiredState,
    applied: List[Facet],
    *,
    creating: bool,
) -> None:
    bucket = desired.bucket

    if creating:
        base = None
    else:
        base = comparison_base(state["recorded"], state["applied"])

    ctx = SyncContext(
        bucket=bucket,
        desired=desired,
        previous=base,
        creating=creating,
        config=config,
        cancelled=state["cancelled"],
    )
    validate_desired_state(desired, ctx)

    changed = changed_facets(base, desired, creating=creating)
    logger.info(
        "facets_changed",
        bucket=bucket,
        creating=creating,
        facets=sorted(f.value for f in changed),
    )

    await _sync_facets(client, ctx, changed, state, applied)
    state["applied"] = desired

    recorded = await _read_state(client, config, state, bucket, just_created=creating)
    if recorded is None:
        state["status"] = ResourceStatus.ABSENT
        raise NotFoundError(
            f"Bucket {bucket} disappeared during reconciliation",
            details={"bucket": bucket},
        )
    state["recorded"] = recorded
    state["status"] = ResourceStatus.READY


# ============================================================================
# Public operations
# ============================================================================

async def create_bucket(
    config: EngineConfig,
    state: ReconcilerState,
    desired: DesiredState,
) -> ReconcileResult:
    """
    Create a bucket and bring every facet to its desired value.

    The bucket identity is resolved once here: the explicit name, a prefix
    plus a unique suffix, or a fully generated name.

    Args:
        config: Engine configuration
        state: Runtime state
        desired: Desired state of the new bucket

    Returns:
        ReconcileResult with the recorded state of the new bucket

    Raises:
        ValidationError: If the name or any facet is invalid (no remote call made)
        S3OperationError: If the bucket could not be created
        FacetSyncError: If a facet failed after creation
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)
    applied: List[Facet] = []

    bucket = generate_bucket_name(desired.bucket, desired.bucket_prefix)
    region = normalize_region(desired.region or config.region)
    validate_bucket_name(bucket, region)
    desired = desired.with_bucket(bucket)

    validate_desired_state(
        desired,
        SyncContext(bucket=bucket, desired=desired, previous=None, creating=True, config=config),
    )

    params: Dict[str, Any] = {"Bucket": bucket, "ACL": desired.acl}
    # us-east-1 rejects an explicit location constraint
    if region != "us-east-1":
        params["CreateBucketConfiguration"] = {"LocationConstraint": region}
    if desired.object_lock is not None and desired.object_lock.enabled:
        params["ObjectLockEnabledForBucket"] = True

    await _begin_operation(state, operation_id, bucket, "create")
    logger.info("bucket_create_started", operation_id=operation_id, bucket=bucket, region=region)

    try:
        async with _create_client(config, state, region) as client:
            state["status"] = ResourceStatus.CREATING

            async def create():
                return await client.create_bucket(**params)

            try:
                await retry(
                    create,
                    is_creation_transient,
                    config.create_timeout,
                    interval=config.retry_interval,
                    max_interval=config.max_retry_interval,
                    cancelled=state["cancelled"],
                    description="create_bucket",
                )
            except ClientError as e:
                state["status"] = ResourceStatus.ABSENT
                raise S3OperationError(
                    f"Failed to create bucket {bucket}: {e}",
                    details={
                        "bucket": bucket,
                        "region": region,
                        "error_code": error_code(e),
                        "category": classify_client_error(e).__name__,
                    },
                ) from e

            state["bucket"] = bucket
            state["recorded"] = None
            state["applied"] = None
            logger.info("bucket_created", bucket=bucket, region=region)
            # The bucket exists from here on; a failed facet pass is
            # finished by the next reconcile as an update
            await _save_snapshot(state, bucket)

            await _update_with_client(client, config, state, desired, applied, creating=True)

        await _save_snapshot(state, bucket)
        await _finish_operation(state, operation_id, applied)

    except Exception as e:
        logger.error("bucket_create_failed", operation_id=operation_id, bucket=bucket, error=str(e))
        await _finish_operation(state, operation_id, applied, str(e))
        raise

    result = _result(operation_id, "create", bucket, state, applied, start_time)
    logger.info(
        "bucket_create_completed",
        operation_id=operation_id,
        bucket=bucket,
        facets=result.changed_facets,
        duration=result.duration_seconds,
    )
    return result


async def update_bucket(
    config: EngineConfig,
    state: ReconcilerState,
    desired: DesiredState,
) -> ReconcileResult:
    """
    Bring an existing bucket's facets to a new desired state.

    Only facets that differ from the last snapshot are touched. Without a
    snapshot (in memory or in the vault) the bucket is read first.

    Raises:
        ValidationError: If the desired state is invalid or changes the region
        NotFoundError: If the bucket does not exist
        FacetSyncError: On the first facet that fails; earlier facets stay applied
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)
    applied: List[Facet] = []

    bucket = desired.bucket or state["bucket"]
    if not bucket:
        raise ValidationError(explain_missing_identity())
    desired = desired.with_bucket(bucket)

    # Checks that need no remote state run before anything is read
    validate_desired_state(
        desired,
        SyncContext(bucket=bucket, desired=desired, previous=None, creating=False, config=config),
        desired_only=True,
    )

    await _load_snapshot(state, bucket)
    region = normalize_region(
        state["recorded"].region if state["recorded"] is not None else desired.region or config.region
    )
    if desired.region and normalize_region(desired.region) != region:
        raise ValidationError(
            f"Bucket {bucket} lives in {region} and cannot move to {desired.region}",
            details={"bucket": bucket, "region": region},
        )

    await _begin_operation(state, operation_id, bucket, "update")
    logger.info("bucket_update_started", operation_id=operation_id, bucket=bucket)

    try:
        async with _create_client(config, state, region) as client:
            if state["recorded"] is None or state["bucket"] != bucket:
                recorded = await _read_state(client, config, state, bucket)
                if recorded is None:
                    state["status"] = ResourceStatus.ABSENT
                    raise NotFoundError(f"Bucket {bucket} does not exist", details={"bucket": bucket})
                state["bucket"] = bucket
                state["recorded"] = recorded
                state["applied"] = None

            await _update_with_client(client, config, state, desired, applied, creating=False)

        await _save_snapshot(state, bucket)
        await _finish_operation(state, operation_id, applied)

    except Exception as e:
        logger.error("bucket_update_failed", operation_id=operation_id, bucket=bucket, error=str(e))
        await _finish_operation(state, operation_id, applied, str(e))
        raise

    result = _result(operation_id, "update", bucket, state, applied, start_time)
    logger.info(
        "bucket_update_completed",
        operation_id=operation_id,
        bucket=bucket,
        facets=result.changed_facets,
        duration=result.duration_seconds,
    )
    return result


async def read_bucket(
    config: EngineConfig,
    state: ReconcilerState,
    bucket: str | None = None,
    *,
    region: str | None = None,
) -> ReconcileResult:
    """
    Refresh the recorded state from the remote.

    A missing bucket is not an error: the result carries recorded=None and
    the status becomes absent.
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)

    bucket = bucket or state["bucket"]
    if not bucket:
        raise ValidationError(explain_missing_identity())

    await _load_snapshot(state, bucket)
    if region is None and state["recorded"] is not None and state["bucket"] == bucket:
        region = state["recorded"].region
    region = normalize_region(region or config.region)

    await _begin_operation(state, operation_id, bucket, "read")

    try:
        async with _create_client(config, state, region) as client:
            recorded = await _read_state(client, config, state, bucket)

        if state["bucket"] != bucket:
            state["applied"] = None
        state["bucket"] = bucket
        state["recorded"] = recorded
        state["status"] = ResourceStatus.READY if recorded is not None else ResourceStatus.ABSENT
        await _save_snapshot(state, bucket)
        await _finish_operation(state, operation_id, [])

    except Exception as e:
        logger.error("bucket_read_failed", operation_id=operation_id, bucket=bucket, error=str(e))
        await _finish_operation(state, operation_id, [], str(e))
        raise

    return _result(operation_id, "read", bucket, state, [], start_time)


async def delete_bucket(
    config: EngineConfig,
    state: ReconcilerState,
    bucket: str | None = None,
    force_destroy: bool | None = None,
) -> ReconcileResult:
    """
    Delete a bucket.

    Args:
        config: Engine configuration
        state: Runtime state
        bucket: Bucket to delete (defaults to the reconciled bucket)
        force_destroy: Delete all object versions first; defaults to the
            last applied desired state's force_destroy

    Raises:
        ConflictError: If the bucket is not empty and emptying is not allowed
    """
    operation_id = str(ULID())
    start_time = datetime.now(UTC)

    bucket = bucket or state["bucket"]
    if not bucket:
        raise ValidationError(explain_missing_identity())

    await _load_snapshot(state, bucket)
    if force_destroy is None:
        applied_state = state["applied"] if state["bucket"] == bucket else None
        force_destroy = bool(applied_state and applied_state.force_destroy)

    region = config.region
    if state["recorded"] is not None and state["bucket"] == bucket:
        region = state["recorded"].region

    await _begin_operation(state, operation_id, bucket, "delete")
    logger.info(
        "bucket_delete_started",
        operation_id=operation_id,
        bucket=bucket,
        force_destroy=force_destroy,
    )

    previous_status = state["status"]
    state["status"] = ResourceStatus.DELETING
    try:
        async with _create_client(config, state, normalize_region(region)) as client:
            removed = await destroy_bucket(
                client,
                bucket,
                force_empty=force_destroy,
                max_rounds=config.max_destroy_rounds,
            )
    except Exception as e:
        state["status"] = previous_status
        logger.error("bucket_delete_failed", operation_id=operation_id, bucket=bucket, error=str(e))
        await _finish_operation(state, operation_id, [], str(e))
        raise

    state["bucket"] = bucket
    state["recorded"] = None
    state["applied"] = None
    state["status"] = ResourceStatus.ABSENT
    await _save_snapshot(state, bucket)
    await _finish_operation(state, operation_id, [])

    result = _result(
        operation_id, "delete", bucket, state, [], start_time, versions_deleted=removed
    )
    logger.info(
        "bucket_delete_completed",
        operation_id=operation_id,
        bucket=bucket,
        versions_deleted=removed,
        duration=result.duration_seconds,
    )
    return result


async def reconcile(
    config: EngineConfig,
    state: ReconcilerState,
    desired: DesiredState,
) -> ReconcileResult:
    """
    Create the bucket when it is not known to exist, otherwise update it.

    A bucket whose creating pass failed after the remote create is known
    to exist, so reconciling again updates it instead of creating another.
    """
    bucket = desired.bucket or state["bucket"]
    if bucket:
        await _load_snapshot(state, bucket)
    if bucket and state["bucket"] == bucket and state["status"] != ResourceStatus.ABSENT:
        return await update_bucket(config, state, desired)
    return await create_bucket(config, state, desired)


async def import_bucket(
    config: EngineConfig,
    state: ReconcilerState,
    bucket: str,
    *,
    region: str | None = None,
) -> ReconcileResult:
    """
    Adopt an existing bucket by reading its current configuration.

    Raises:
        NotFoundError: If the bucket does not exist
    """
    result = await read_bucket(config, state, bucket, region=region)
    if result.recorded is None:
        raise NotFoundError(f"Bucket {bucket} does not exist", details={"bucket": bucket})

    # An imported bucket has no applied desired state yet
    state["applied"] = None
    await _save_snapshot(state, bucket)
    logger.info("bucket_imported", bucket=bucket, region=result.recorded.region)
    result.action = "import"
    return result


def get_metrics(state: ReconcilerState) -> EngineMetrics:
    """Get current reconciler metrics."""
    return EngineMetrics(
        total_operations=state["total_operations"],
        total_facets_applied=state["total_facets_applied"],
        last_run_at=state["last_run_at"],
        last_error=state["last_error"],
        status=state["status"].value,
        bucket=state["bucket"],
        facets_by_name=dict(state["facets_by_name"]),
    )
