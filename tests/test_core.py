# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Core Orchestrator Tests.

Runs the public operations (create, update, read, delete, reconcile,
import) against the in-memory S3 fake. Verifies:
1. Creation parameters depend on region, ACL and object lock
2. Update passes only touch facets that changed
3. Validation failures happen before any remote call
4. A failing facet aborts the pass without rolling back earlier facets
5. A bucket whose creating pass failed is finished by the next reconcile
6. Snapshots survive in the vault between engine instances
"""

import json
from dataclasses import replace

import aiosqlite
import pytest

from s3recon.builder import create_desired_state
from s3recon.core import (
    ResourceStatus,
    create_bucket,
    delete_bucket,
    get_metrics,
    import_bucket,
    initialize_reconciler_state,
    read_bucket,
    reconcile,
    request_cancel,
    update_bucket,
)
from s3recon.exceptions import (
    ConflictError,
    FacetSyncError,
    NotFoundError,
    PermanentError,
    S3OperationError,
    TransientError,
    ValidationError,
)
from s3recon.model import (
    CorsRule,
    DefaultRetention,
    DesiredState,
    LifecycleExpiration,
    LifecycleRule,
    ObjectLockConfiguration,
    ReplicationConfiguration,
    ReplicationDestination,
    ReplicationRule,
    Versioning,
    Website,
)
from s3recon.vault import list_operations, load_snapshot

BUCKET = "recon-test-bucket"


def put_calls(fake_s3):
    return [name for name in fake_s3.call_names() if name.startswith("put_") or name.startswith("delete_")]


def replicated() -> DesiredState:
    return DesiredState(
        bucket=BUCKET,
        versioning=Versioning(enabled=True),
        replication=ReplicationConfiguration(
            role="arn:aws:iam::123456789012:role/replication",
            rules=(
                ReplicationRule(
                    status="Enabled",
                    destination=ReplicationDestination(bucket="arn:aws:s3:::replica"),
                ),
            ),
        ),
    )


# ============================================================================
# Create
# ============================================================================

@pytest.mark.asyncio
async def test_create_in_us_east_1_has_no_location_constraint(test_config, test_state, fake_s3):
    result = await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))

    [params] = fake_s3.calls_to("create_bucket")
    assert params == {"Bucket": BUCKET, "ACL": "private"}
    assert result.action == "create"
    assert result.status == ResourceStatus.READY.value
    assert result.recorded.region == "us-east-1"
    assert result.recorded.arn == f"arn:aws:s3:::{BUCKET}"
    assert result.recorded.bucket_domain_name == f"{BUCKET}.s3.amazonaws.com"
    assert result.recorded.hosted_zone_id == "Z3AQBSTGFYJSTF"
    assert result.recorded.website_endpoint is None


@pytest.mark.asyncio
async def test_create_elsewhere_sends_location_constraint(
    test_config, test_state, fake_s3, fake_session
):
    desired = DesiredState(
        bucket=BUCKET,
        region="eu-central-1",
        website=Website(index_document="index.html"),
    )

    result = await create_bucket(test_config, test_state, desired)

    [params] = fake_s3.calls_to("create_bucket")
    assert params["CreateBucketConfiguration"] == {"LocationConstraint": "eu-central-1"}
    assert fake_session.created[0]["region_name"] == "eu-central-1"
    assert result.recorded.region == "eu-central-1"
    assert result.recorded.bucket_regional_domain_name == f"{BUCKET}.s3.eu-central-1.amazonaws.com"
    assert result.recorded.website_endpoint == f"{BUCKET}.s3-website.eu-central-1.amazonaws.com"
    assert result.recorded.website_domain == "s3-website.eu-central-1.amazonaws.com"


@pytest.mark.asyncio
async def test_acl_is_sent_with_create_only(test_config, test_state, fake_s3):
    """The creating pass does not repeat the ACL."""
    desired = DesiredState(bucket=BUCKET, acl="public-read", tags={"team": "web"})

    result = await create_bucket(test_config, test_state, desired)

    assert fake_s3.calls_to("create_bucket")[0]["ACL"] == "public-read"
    assert fake_s3.calls_to("put_bucket_acl") == []
    assert result.changed_facets == ["tags"]
    assert fake_s3.buckets[BUCKET].acl == "public-read"


@pytest.mark.asyncio
async def test_generated_name_from_prefix(test_config, test_state, fake_s3):
    result = await create_bucket(
        test_config, test_state, DesiredState(bucket_prefix="site-")
    )

    assert result.bucket.startswith("site-")
    assert len(result.bucket) == len("site-") + 26
    assert result.bucket in fake_s3.buckets
    assert test_state["applied"].bucket == result.bucket
    assert test_state["applied"].bucket_prefix is None


@pytest.mark.asyncio
async def test_invalid_name_makes_no_calls(test_config, test_state, fake_s3):
    desired = DesiredState(bucket="Invalid_Name", region="eu-west-1")

    with pytest.raises(ValidationError):
        await create_bucket(test_config, test_state, desired)

    assert fake_s3.calls == []


@pytest.mark.asyncio
async def test_replication_without_versioning_makes_no_calls(test_config, test_state, fake_s3):
    desired = replace(replicated(), versioning=None)

    with pytest.raises(ValidationError):
        await create_bucket(test_config, test_state, desired)

    assert fake_s3.calls == []


@pytest.mark.asyncio
async def test_create_retries_conflicting_operation(test_config, test_state, fake_s3):
    fake_s3.fail_next("create_bucket", "OperationAborted", times=2)

    result = await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))

    assert len(fake_s3.calls_to("create_bucket")) == 3
    assert result.status == "ready"


@pytest.mark.asyncio
async def test_create_failure_leaves_bucket_absent(test_config, test_state, fake_s3):
    fake_s3.fail_next("create_bucket", "BucketAlreadyExists")

    with pytest.raises(S3OperationError) as exc_info:
        await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))

    assert exc_info.value.details["error_code"] == "BucketAlreadyExists"
    assert exc_info.value.details["category"] == "PermanentError"
    assert test_state["status"] == ResourceStatus.ABSENT
    assert len(fake_s3.calls_to("create_bucket")) == 1


@pytest.mark.asyncio
async def test_versioning_applied_before_replication(test_config, test_state, fake_s3):
    result = await create_bucket(test_config, test_state, replicated())

    names = fake_s3.call_names()
    assert names.index("put_bucket_versioning") < names.index("put_bucket_replication")
    assert result.changed_facets == ["versioning", "replication"]
    assert result.recorded.replication == replicated().replication


@pytest.mark.asyncio
async def test_object_lock_requested_at_creation(test_config, test_state, fake_s3):
    desired = DesiredState(
        bucket=BUCKET,
        versioning=Versioning(enabled=True),
        object_lock=ObjectLockConfiguration(rule=DefaultRetention(mode="GOVERNANCE", days=7)),
    )

    result = await create_bucket(test_config, test_state, desired)

    assert fake_s3.calls_to("create_bucket")[0]["ObjectLockEnabledForBucket"] is True
    assert result.recorded.object_lock == desired.object_lock

    with pytest.raises(ValidationError):
        await update_bucket(test_config, test_state, replace(desired, object_lock=None))


# ============================================================================
# Update
# ============================================================================

@pytest.mark.asyncio
async def test_identical_update_makes_no_facet_calls(test_config, test_state, fake_s3):
    desired = DesiredState(
        bucket=BUCKET,
        acl="public-read",
        cors=(CorsRule(allowed_methods=("GET",), allowed_origins=("*",)),),
        lifecycle=(LifecycleRule(enabled=True, prefix="tmp/", expiration=LifecycleExpiration(days=1)),),
        policy=json.dumps({"Version": "2012-10-17", "Statement": []}),
        tags={"team": "data"},
    )
    await create_bucket(test_config, test_state, desired)
    fake_s3.calls.clear()

    result = await update_bucket(test_config, test_state, desired)

    assert result.changed_facets == []
    assert put_calls(fake_s3) == []


@pytest.mark.asyncio
async def test_update_touches_only_changed_facets(test_config, test_state, fake_s3):
    desired = DesiredState(bucket=BUCKET, tags={"team": "data"}, versioning=Versioning(enabled=True))
    await create_bucket(test_config, test_state, desired)
    fake_s3.calls.clear()

    result = await update_bucket(
        test_config, test_state, replace(desired, acl="public-read", tags={"team": "web"})
    )

    assert result.changed_facets == ["tags", "acl"]
    assert put_calls(fake_s3) == ["put_bucket_tagging", "put_bucket_acl"]
    assert result.recorded.tags == {"team": "web"}


@pytest.mark.asyncio
async def test_removed_facet_is_reset(test_config, test_state, fake_s3):
    desired = DesiredState(bucket=BUCKET, website=Website(index_document="index.html"))
    await create_bucket(test_config, test_state, desired)

    result = await update_bucket(test_config, test_state, replace(desired, website=None))

    assert result.changed_facets == ["website"]
    assert result.recorded.website is None
    assert result.recorded.website_endpoint is None


@pytest.mark.asyncio
async def test_failing_facet_aborts_without_rollback(test_config, test_state, fake_s3):
    fake_s3.fail_next("put_bucket_cors", "AccessDenied")
    desired = DesiredState(
        bucket=BUCKET,
        tags={"team": "data"},
        cors=(CorsRule(allowed_methods=("GET",), allowed_origins=("*",)),),
        versioning=Versioning(enabled=True),
    )

    with pytest.raises(FacetSyncError) as exc_info:
        await create_bucket(test_config, test_state, desired)

    assert exc_info.value.facet == "cors"
    assert exc_info.value.details["error_code"] == "AccessDenied"
    assert exc_info.value.category is PermanentError
    bucket = fake_s3.buckets[BUCKET]
    assert "Tagging" in bucket.config
    assert "VersioningConfiguration" not in bucket.config
    assert test_state["status"] == ResourceStatus.SYNCING_FACETS


@pytest.mark.asyncio
async def test_lag_outliving_the_deadline_is_transient(test_config, test_state, fake_s3):
    await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))
    fake_s3.fail_next("put_bucket_tagging", "OperationAborted", times=500)

    with pytest.raises(FacetSyncError) as exc_info:
        await update_bucket(test_config, test_state, DesiredState(bucket=BUCKET, tags={"a": "b"}))

    assert exc_info.value.category is TransientError
    assert exc_info.value.details["category"] == "TransientError"


@pytest.mark.asyncio
async def test_update_validates_before_reading_unknown_bucket(test_config, memory_state, fake_s3):
    fake_s3.add_bucket(BUCKET)

    with pytest.raises(ValidationError):
        await update_bucket(test_config, memory_state, replace(replicated(), versioning=None))
    with pytest.raises(ValidationError):
        await update_bucket(
            test_config,
            memory_state,
            DesiredState(bucket=BUCKET, object_lock=ObjectLockConfiguration(enabled=False)),
        )

    assert fake_s3.calls == []


@pytest.mark.asyncio
async def test_read_failure_is_classified(test_config, memory_state, fake_s3):
    fake_s3.add_bucket(BUCKET)
    fake_s3.fail_next("get_bucket_policy", "AccessDenied")

    with pytest.raises(PermanentError) as exc_info:
        await read_bucket(test_config, memory_state, BUCKET)

    assert exc_info.value.details["facet"] == "policy"
    assert exc_info.value.details["error_code"] == "AccessDenied"


@pytest.mark.asyncio
async def test_update_of_unknown_bucket_reads_it_first(test_config, memory_state, fake_s3):
    fake_s3.add_bucket(BUCKET).config["Tagging"] = {"TagSet": [{"Key": "team", "Value": "data"}]}

    result = await update_bucket(test_config, memory_state, DesiredState(bucket=BUCKET, tags={"team": "data"}))

    assert result.changed_facets == []
    assert fake_s3.call_names()[0] == "head_bucket"


@pytest.mark.asyncio
async def test_update_of_missing_bucket_is_not_found(test_config, memory_state):
    with pytest.raises(NotFoundError):
        await update_bucket(test_config, memory_state, DesiredState(bucket=BUCKET))

    assert memory_state["status"] == ResourceStatus.ABSENT


@pytest.mark.asyncio
async def test_region_cannot_change(test_config, test_state):
    await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET, region="eu-west-1"))

    with pytest.raises(ValidationError):
        await update_bucket(
            test_config, test_state, DesiredState(bucket=BUCKET, region="us-west-2")
        )


@pytest.mark.asyncio
async def test_cancelled_update_applies_nothing(test_config, test_state, fake_s3):
    await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))
    fake_s3.calls.clear()
    request_cancel(test_state)

    with pytest.raises(TransientError) as exc_info:
        await update_bucket(test_config, test_state, DesiredState(bucket=BUCKET, tags={"a": "b"}))

    assert exc_info.value.details["pending"] == ["tags"]
    assert put_calls(fake_s3) == []


@pytest.mark.asyncio
async def test_cancel_only_stops_one_operation(test_config, test_state, fake_s3):
    await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))
    request_cancel(test_state)

    with pytest.raises(TransientError):
        await update_bucket(test_config, test_state, DesiredState(bucket=BUCKET, tags={"a": "b"}))

    result = await update_bucket(test_config, test_state, DesiredState(bucket=BUCKET, tags={"a": "c"}))

    assert result.changed_facets == ["tags"]
    assert result.recorded.tags == {"a": "c"}
    assert not test_state["cancelled"].is_set()


# ============================================================================
# Read, import and reconcile
# ============================================================================

@pytest.mark.asyncio
async def test_read_missing_bucket_is_absent(test_config, test_state):
    result = await read_bucket(test_config, test_state, "nowhere-bucket")

    assert result.recorded is None
    assert result.status == "absent"


@pytest.mark.asyncio
async def test_import_adopts_existing_configuration(test_config, test_state, fake_s3):
    bucket = fake_s3.add_bucket("legacy-bucket", region="eu-west-1")
    bucket.config["Tagging"] = {"TagSet": [{"Key": "owner", "Value": "ops"}]}
    bucket.config["VersioningConfiguration"] = {"Status": "Enabled"}

    result = await import_bucket(test_config, test_state, "legacy-bucket")

    assert result.action == "import"
    assert result.recorded.region == "eu-west-1"
    assert result.recorded.tags == {"owner": "ops"}
    assert result.recorded.versioning == Versioning(enabled=True)
    assert test_state["applied"] is None


@pytest.mark.asyncio
async def test_import_missing_bucket_is_not_found(test_config, test_state):
    with pytest.raises(NotFoundError):
        await import_bucket(test_config, test_state, "nowhere-bucket")


@pytest.mark.asyncio
async def test_reconcile_creates_then_updates(test_config, test_state, fake_s3):
    desired = create_desired_state(BUCKET, tags={"team": "data"})

    first = await reconcile(test_config, test_state, desired)
    second = await reconcile(test_config, test_state, desired)

    assert first.action == "create"
    assert second.action == "update"
    assert second.changed_facets == []
    assert len(fake_s3.calls_to("create_bucket")) == 1


# ============================================================================
# Recovery from a failed creating pass
# ============================================================================

@pytest.mark.asyncio
async def test_reconcile_finishes_failed_creating_pass(test_config, test_state, fake_s3):
    fake_s3.fail_next("put_bucket_tagging", "AccessDenied")
    desired = DesiredState(bucket=BUCKET, tags={"team": "data"})

    with pytest.raises(FacetSyncError):
        await reconcile(test_config, test_state, desired)

    assert test_state["bucket"] == BUCKET
    assert test_state["status"] == ResourceStatus.SYNCING_FACETS

    result = await reconcile(test_config, test_state, desired)

    assert result.action == "update"
    assert result.changed_facets == ["tags"]
    assert result.recorded.tags == {"team": "data"}
    assert len(fake_s3.calls_to("create_bucket")) == 1


@pytest.mark.asyncio
async def test_reconcile_with_prefix_does_not_create_second_bucket(
    test_config, memory_state, fake_s3
):
    fake_s3.fail_next("put_bucket_tagging", "AccessDenied")
    desired = DesiredState(bucket_prefix="retry-", tags={"team": "data"})

    with pytest.raises(FacetSyncError):
        await reconcile(test_config, memory_state, desired)

    result = await reconcile(test_config, memory_state, desired)

    assert result.action == "update"
    assert list(fake_s3.buckets) == [result.bucket]
    assert result.bucket.startswith("retry-")
    assert result.recorded.tags == {"team": "data"}


@pytest.mark.asyncio
async def test_failed_creating_pass_is_remembered_by_vault(
    test_config, test_state, fake_session, fake_s3
):
    fake_s3.fail_next("put_bucket_tagging", "AccessDenied")
    desired = DesiredState(bucket=BUCKET, tags={"team": "data"})

    with pytest.raises(FacetSyncError):
        await create_bucket(test_config, test_state, desired)

    async with aiosqlite.connect(test_config.vault_path) as db:
        snapshot = await load_snapshot(db, BUCKET)
    assert snapshot is not None
    assert snapshot["recorded"] is None

    fresh_state = await initialize_reconciler_state(test_config, session=fake_session)
    result = await reconcile(test_config, fresh_state, desired)

    assert result.action == "update"
    assert len(fake_s3.calls_to("create_bucket")) == 1
    assert fake_s3.buckets[BUCKET].config["Tagging"] == {
        "TagSet": [{"Key": "team", "Value": "data"}]
    }


# ============================================================================
# Delete
# ============================================================================

@pytest.mark.asyncio
async def test_delete_uses_applied_force_destroy(test_config, test_state, fake_s3):
    await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET, force_destroy=True))
    fake_s3.add_versions(BUCKET, 12, delete_markers=3)

    result = await delete_bucket(test_config, test_state)

    assert result.versions_deleted == 15
    assert result.status == "absent"
    assert result.recorded is None
    assert BUCKET not in fake_s3.buckets


@pytest.mark.asyncio
async def test_delete_non_empty_without_force_keeps_state(test_config, test_state, fake_s3):
    await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET))
    fake_s3.add_versions(BUCKET, 2)

    with pytest.raises(ConflictError):
        await delete_bucket(test_config, test_state)

    assert test_state["status"] == ResourceStatus.READY
    assert fake_s3.calls_to("delete_objects") == []
    assert test_state["recorded"] is not None


# ============================================================================
# Vault and metrics
# ============================================================================

@pytest.mark.asyncio
async def test_snapshot_survives_new_engine_instance(test_config, test_state, fake_session, fake_s3):
    desired = DesiredState(bucket=BUCKET, acl="public-read", tags={"team": "data"})
    await create_bucket(test_config, test_state, desired)

    async with aiosqlite.connect(test_config.vault_path) as db:
        snapshot = await load_snapshot(db, BUCKET)
        operations = await list_operations(db, BUCKET)

    assert snapshot["recorded"].tags == {"team": "data"}
    assert snapshot["applied"].acl == "public-read"
    assert [op["action"] for op in operations] == ["create"]
    assert operations[0]["completed_at"] is not None
    assert operations[0]["changed_facets"] == ["tags"]

    fresh_state = await initialize_reconciler_state(test_config, session=fake_session)
    fake_s3.calls.clear()
    result = await update_bucket(test_config, fresh_state, desired)

    assert result.changed_facets == []
    assert put_calls(fake_s3) == []


@pytest.mark.asyncio
async def test_failed_operation_is_logged_with_error(test_config, test_state, fake_s3):
    fake_s3.fail_next("put_bucket_tagging", "AccessDenied")

    with pytest.raises(FacetSyncError):
        await create_bucket(test_config, test_state, DesiredState(bucket=BUCKET, tags={"a": "b"}))

    async with aiosqlite.connect(test_config.vault_path) as db:
        [operation] = await list_operations(db, BUCKET)

    assert "AccessDenied" in operation["error"]
    assert get_metrics(test_state).last_error == operation["error"]


@pytest.mark.asyncio
async def test_metrics_count_operations_and_facets(test_config, test_state):
    desired = DesiredState(bucket=BUCKET, tags={"team": "data"}, versioning=Versioning(enabled=True))
    await create_bucket(test_config, test_state, desired)
    await update_bucket(test_config, test_state, replace(desired, tags={"team": "web"}))

    metrics = get_metrics(test_state)

    assert metrics.total_operations == 2
    assert metrics.total_facets_applied == 3
    assert metrics.facets_by_name == {"tags": 2, "versioning": 1}
    assert metrics.status == "ready"
    assert metrics.bucket == BUCKET
