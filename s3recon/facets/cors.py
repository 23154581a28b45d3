# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
CORS facet.

Rules form an unordered set; duplicates (same fingerprint) are sent once.
"""

from typing import Any, Dict, List, Tuple

from s3recon.facets.base import FacetSynchronizer, SyncContext, read_optional
from s3recon.fingerprint import fingerprint
from s3recon.model import CorsRule, Facet


def cors_rule_to_remote(rule: CorsRule) -> Dict[str, Any]:
    remote: Dict[str, Any] = {
        "AllowedMethods": list(rule.allowed_methods),
        "AllowedOrigins": list(rule.allowed_origins),
    }
    if rule.allowed_headers:
        remote["AllowedHeaders"] = list(rule.allowed_headers)
    if rule.expose_headers:
        remote["ExposeHeaders"] = list(rule.expose_headers)
    if rule.max_age_seconds is not None:
        remote["MaxAgeSeconds"] = rule.max_age_seconds
    return remote


def cors_rule_from_remote(remote: Dict[str, Any]) -> CorsRule:
    return CorsRule(
        allowed_methods=tuple(remote.get("AllowedMethods") or ()),
        allowed_origins=tuple(remote.get("AllowedOrigins") or ()),
        allowed_headers=tuple(remote.get("AllowedHeaders") or ()),
        expose_headers=tuple(remote.get("ExposeHeaders") or ()),
        max_age_seconds=remote.get("MaxAgeSeconds"),
    )


def unique_rules(rules: Tuple[CorsRule, ...]) -> List[CorsRule]:
    seen = set()
    result = []
    for rule in rules:
        key = fingerprint(rule)
        if key not in seen:
            seen.add(key)
            result.append(rule)
    return result


class CorsSynchronizer(FacetSynchronizer):
    facet = Facet.CORS

    async def apply(self, client: Any, ctx: SyncContext, value: Tuple[CorsRule, ...]) -> None:
        if not value:
            async def delete():
                return await client.delete_bucket_cors(Bucket=ctx.bucket)

            await ctx.retry(delete, description="delete_bucket_cors")
            return

        configuration = {"CORSRules": [cors_rule_to_remote(r) for r in unique_rules(value)]}

        async def put():
            return await client.put_bucket_cors(
                Bucket=ctx.bucket,
                CORSConfiguration=configuration,
            )

        await ctx.retry(put, description="put_bucket_cors")

    async def read(self, client: Any, bucket: str) -> Tuple[CorsRule, ...]:
        response = await read_optional(
            lambda: client.get_bucket_cors(Bucket=bucket),
            ("NoSuchCORSConfiguration",),
        )
        if not response:
            return ()
        return tuple(cors_rule_from_remote(r) for r in response.get("CORSRules") or ())
