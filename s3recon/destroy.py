# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Destroy - Delete a bucket, emptying it first when allowed.

A versioned bucket is only empty once every object version and every
delete marker is gone, so forced emptying lists both and removes them in
batches before retrying the delete. The loop is bounded by max_rounds in
case writers keep adding objects.
"""

from typing import Any, Dict, List

import structlog
from botocore.exceptions import ClientError

from s3recon.exceptions import ConflictError, S3OperationError, error_code, wrap_client_error

logger = structlog.get_logger()

# delete_objects accepts at most this many keys per call
DELETE_BATCH_SIZE = 1000


async def list_all_versions(client: Any, bucket: str) -> List[Dict[str, str]]:
    """Every object version and delete marker as Key/VersionId pairs."""
    identifiers: List[Dict[str, str]] = []
    paginator = client.get_paginator("list_object_versions")
    async for page in paginator.paginate(Bucket=bucket):
        for entry in page.get("DeleteMarkers", []) + page.get("Versions", []):
            identifiers.append({"Key": entry["Key"], "VersionId": entry["VersionId"]})
    return identifiers


async def delete_versions(
    client: Any,
    bucket: str,
    identifiers: List[Dict[str, str]],
) -> int:
    """
    Delete object versions in batches.

    Raises:
        S3OperationError: If any key in a batch fails to delete
    """
    deleted = 0
    for start in range(0, len(identifiers), DELETE_BATCH_SIZE):
        batch = identifiers[start:start + DELETE_BATCH_SIZE]
        response = await client.delete_objects(
            Bucket=bucket,
            Delete={"Objects": batch, "Quiet": True},
        )
        errors = response.get("Errors") or []
        if errors:
            raise S3OperationError(
                f"Failed to delete {len(errors)} object versions from bucket {bucket}",
                details={
                    "bucket": bucket,
                    "errors": [
                        f"{e.get('Key')}@{e.get('VersionId')}: {e.get('Code')} {e.get('Message')}"
                        for e in errors[:10]
                    ],
                },
            )
        deleted += len(batch)
    return deleted


async def destroy_bucket(
    client: Any,
    bucket: str,
    *,
    force_empty: bool,
    max_rounds: int = 10,
) -> int:
    """
    Delete a bucket, optionally emptying it first.

    Args:
        client: aiobotocore S3 client
        bucket: Bucket name
        force_empty: Delete every object version and delete marker when the
            bucket is not empty
        max_rounds: Maximum number of empty-then-delete rounds

    Returns:
        Number of object versions and delete markers removed

    Raises:
        ConflictError: If the bucket is not empty and force_empty is False,
            or it is still not empty after max_rounds rounds
        S3OperationError: If some object versions could not be deleted
        PermanentError, TransientError: For any other remote failure, as
            classified by classify_client_error
    """
    removed = 0

    # Every emptying round is followed by another delete attempt
    for round_number in range(1, max_rounds + 2):
        try:
            await client.delete_bucket(Bucket=bucket)
        except ClientError as exc:
            code = error_code(exc)
            if code == "NoSuchBucket":
                logger.info("bucket_already_absent", bucket=bucket)
                return removed
            if code != "BucketNotEmpty":
                raise wrap_client_error(
                    exc, f"Failed to delete bucket {bucket}: {exc}", bucket=bucket
                ) from exc
            if not force_empty:
                raise ConflictError(
                    f"Bucket {bucket} is not empty; set force_destroy to delete its objects",
                    details={"bucket": bucket},
                ) from exc
            if round_number > max_rounds:
                break

            try:
                identifiers = await list_all_versions(client, bucket)
                removed += await delete_versions(client, bucket, identifiers)
            except ClientError as list_exc:
                raise wrap_client_error(
                    list_exc, f"Failed to empty bucket {bucket}: {list_exc}", bucket=bucket
                ) from list_exc

            logger.info(
                "force_destroy_round",
                bucket=bucket,
                round=round_number,
                versions_deleted=len(identifiers),
            )
            continue

        logger.info("bucket_deleted", bucket=bucket, versions_deleted=removed)
        return removed

    raise ConflictError(
        f"Bucket {bucket} still not empty after {max_rounds} rounds",
        details={"bucket": bucket, "versions_deleted": removed},
    )
