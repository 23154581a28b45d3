# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Versioning and access logging facets.

Neither can be deleted remotely; resetting means putting the disabled form
(Suspended versioning, an empty logging status).
"""

from typing import Any

from s3recon.facets.base import FacetSynchronizer, SyncContext, read_optional
from s3recon.model import Facet, Logging, Versioning


class VersioningSynchronizer(FacetSynchronizer):
    facet = Facet.VERSIONING

    async def apply(self, client: Any, ctx: SyncContext, value: Versioning | None) -> None:
        value = value or Versioning()
        configuration = {"Status": "Enabled" if value.enabled else "Suspended"}

        # MFADelete is only sent when it is on, or has to be turned off
        previous = ctx.previous_value(Facet.VERSIONING)
        if value.mfa_delete or (previous is not None and previous.mfa_delete):
            configuration["MFADelete"] = "Enabled" if value.mfa_delete else "Disabled"

        async def put():
            return await client.put_bucket_versioning(
                Bucket=ctx.bucket,
                VersioningConfiguration=configuration,
            )

        await ctx.retry(put, description="put_bucket_versioning")

    async def read(self, client: Any, bucket: str) -> Versioning:
        response = await read_optional(lambda: client.get_bucket_versioning(Bucket=bucket))
        response = response or {}
        return Versioning(
            enabled=response.get("Status") == "Enabled",
            mfa_delete=response.get("MFADelete") == "Enabled",
        )


class LoggingSynchronizer(FacetSynchronizer):
    facet = Facet.LOGGING

    async def apply(self, client: Any, ctx: SyncContext, value: Logging | None) -> None:
        status = {}
        if value is not None:
            status["LoggingEnabled"] = {
                "TargetBucket": value.target_bucket,
                "TargetPrefix": value.target_prefix,
            }

        async def put():
            return await client.put_bucket_logging(
                Bucket=ctx.bucket,
                BucketLoggingStatus=status,
            )

        await ctx.retry(put, description="put_bucket_logging")

    async def read(self, client: Any, bucket: str) -> Logging | None:
        response = await read_optional(lambda: client.get_bucket_logging(Bucket=bucket))
        enabled = (response or {}).get("LoggingEnabled")
        if not enabled:
            return None
        return Logging(
            target_bucket=enabled["TargetBucket"],
            target_prefix=enabled.get("TargetPrefix") or "",
        )
