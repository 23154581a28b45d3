# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Encryption facets: default server-side encryption and object lock.
"""

from typing import Any, Dict

from s3recon.errors import explain_object_lock_after_creation, explain_object_lock_immutable
from s3recon.exceptions import ValidationError
from s3recon.facets.base import FacetSynchronizer, SyncContext, read_optional
from s3recon.model import (
    DefaultRetention,
    Facet,
    ObjectLockConfiguration,
    ServerSideEncryption,
)


class EncryptionSynchronizer(FacetSynchronizer):
    facet = Facet.ENCRYPTION

    async def apply(
        self,
        client: Any,
        ctx: SyncContext,
        value: ServerSideEncryption | None,
    ) -> None:
        if value is None:
            async def delete():
                return await client.delete_bucket_encryption(Bucket=ctx.bucket)

            await ctx.retry(delete, description="delete_bucket_encryption")
            return

        default: Dict[str, Any] = {"SSEAlgorithm": value.sse_algorithm}
        if value.kms_master_key_id:
            default["KMSMasterKeyID"] = value.kms_master_key_id

        async def put():
            return await client.put_bucket_encryption(
                Bucket=ctx.bucket,
                ServerSideEncryptionConfiguration={
                    "Rules": [{"ApplyServerSideEncryptionByDefault": default}],
                },
            )

        await ctx.retry(put, description="put_bucket_encryption")

    async def read(self, client: Any, bucket: str) -> ServerSideEncryption | None:
        response = await read_optional(
            lambda: client.get_bucket_encryption(Bucket=bucket),
            ("ServerSideEncryptionConfigurationNotFoundError",),
        )
        rules = ((response or {}).get("ServerSideEncryptionConfiguration") or {}).get("Rules")
        if not rules:
            return None
        default = rules[0].get("ApplyServerSideEncryptionByDefault") or {}
        if not default.get("SSEAlgorithm"):
            return None
        return ServerSideEncryption(
            sse_algorithm=default["SSEAlgorithm"],
            kms_master_key_id=default.get("KMSMasterKeyID"),
        )


class ObjectLockSynchronizer(FacetSynchronizer):
    """
    Object lock.

    Enabled only by the create call; afterwards only the default retention
    rule can be changed. There is no remote delete.
    """

    facet = Facet.OBJECT_LOCK

    def check_value(self, value: ObjectLockConfiguration | None, ctx: SyncContext) -> None:
        if value is not None and not value.enabled:
            raise ValidationError(
                "object_lock.enabled=False is not supported, omit object_lock instead",
                details={"bucket": ctx.bucket},
            )

    def validate(self, value: ObjectLockConfiguration | None, ctx: SyncContext) -> None:
        previous = ctx.previous_value(Facet.OBJECT_LOCK)
        was_enabled = previous is not None and previous.enabled

        if was_enabled and (value is None or not value.enabled):
            raise ValidationError(
                explain_object_lock_immutable(ctx.bucket),
                details={"bucket": ctx.bucket},
            )
        self.check_value(value, ctx)
        if value is not None and not ctx.creating and not was_enabled:
            raise ValidationError(
                explain_object_lock_after_creation(ctx.bucket),
                details={"bucket": ctx.bucket},
            )

    async def apply(
        self,
        client: Any,
        ctx: SyncContext,
        value: ObjectLockConfiguration | None,
    ) -> None:
        if value is None or not value.enabled:
            raise ValidationError(
                explain_object_lock_immutable(ctx.bucket),
                details={"bucket": ctx.bucket},
            )

        configuration: Dict[str, Any] = {"ObjectLockEnabled": "Enabled"}
        if value.rule is not None:
            retention: Dict[str, Any] = {"Mode": value.rule.mode}
            if value.rule.days is not None:
                retention["Days"] = value.rule.days
            if value.rule.years is not None:
                retention["Years"] = value.rule.years
            configuration["Rule"] = {"DefaultRetention": retention}

        async def put():
            return await client.put_object_lock_configuration(
                Bucket=ctx.bucket,
                ObjectLockConfiguration=configuration,
            )

        await ctx.retry(put, description="put_object_lock_configuration")

    async def read(self, client: Any, bucket: str) -> ObjectLockConfiguration | None:
        response = await read_optional(
            lambda: client.get_object_lock_configuration(Bucket=bucket),
            ("ObjectLockConfigurationNotFoundError",),
        )
        remote = (response or {}).get("ObjectLockConfiguration")
        if not remote or remote.get("ObjectLockEnabled") != "Enabled":
            return None
        retention = (remote.get("Rule") or {}).get("DefaultRetention")
        return ObjectLockConfiguration(
            enabled=True,
            rule=DefaultRetention(
                mode=retention["Mode"],
                days=retention.get("Days"),
                years=retention.get("Years"),
            )
            if retention
            else None,
        )
