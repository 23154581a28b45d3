# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Access facets: canned ACL, bucket policy and tags.
"""

from typing import Any, Dict

import structlog

from s3recon.facets.base import (
    FacetSynchronizer,
    SyncContext,
    read_optional,
    tag_set,
    tags_from_set,
)
from s3recon.model import FACET_DEFAULTS, Facet, normalize_policy
from s3recon.retry import is_policy_propagation

logger = structlog.get_logger()


class AclSynchronizer(FacetSynchronizer):
    """
    Canned ACL.

    The remote reports grants, not the canned ACL that produced them, so the
    ACL is write-only: read() returns None and change detection falls back
    to the last applied value.
    """

    facet = Facet.ACL

    async def apply(self, client: Any, ctx: SyncContext, value: str | None) -> None:
        acl = value or FACET_DEFAULTS[Facet.ACL]

        async def put():
            return await client.put_bucket_acl(Bucket=ctx.bucket, ACL=acl)

        await ctx.retry(put, description="put_bucket_acl")

    async def read(self, client: Any, bucket: str) -> None:
        return None


class PolicySynchronizer(FacetSynchronizer):
    facet = Facet.POLICY

    async def apply(self, client: Any, ctx: SyncContext, value: str | None) -> None:
        if not value:
            async def delete():
                return await read_optional(
                    lambda: client.delete_bucket_policy(Bucket=ctx.bucket),
                    ("NoSuchBucketPolicy",),
                )

            await ctx.retry(delete, description="delete_bucket_policy")
            return

        # Rejects malformed JSON before the call
        document = normalize_policy(value)

        async def put():
            return await client.put_bucket_policy(Bucket=ctx.bucket, Policy=document)

        # Principals created moments ago are reported as a malformed policy
        await ctx.retry(put, is_policy_propagation, description="put_bucket_policy")

    async def read(self, client: Any, bucket: str) -> str | None:
        response = await read_optional(
            lambda: client.get_bucket_policy(Bucket=bucket),
            ("NoSuchBucketPolicy",),
        )
        if not response or not response.get("Policy"):
            return None
        return normalize_policy(response["Policy"])


class TagsSynchronizer(FacetSynchronizer):
    facet = Facet.TAGS

    async def apply(self, client: Any, ctx: SyncContext, value: Dict[str, str] | None) -> None:
        if not value:
            async def delete():
                return await client.delete_bucket_tagging(Bucket=ctx.bucket)

            await ctx.retry(delete, description="delete_bucket_tagging")
            return

        async def put():
            return await client.put_bucket_tagging(
                Bucket=ctx.bucket,
                Tagging={"TagSet": tag_set(value)},
            )

        await ctx.retry(put, description="put_bucket_tagging")

    async def read(self, client: Any, bucket: str) -> Dict[str, str]:
        response = await read_optional(
            lambda: client.get_bucket_tagging(Bucket=bucket),
            ("NoSuchTagSet",),
        )
        if not response:
            return {}
        return tags_from_set(response.get("TagSet"))
