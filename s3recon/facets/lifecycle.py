# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Lifecycle facet.

Filter shape:
- prefix and tags: {"And": {"Prefix": ..., "Tags": [...]}}
- prefix only: {"Prefix": ...}
- a single tag may come back as {"Tag": {...}}

Expiration sends exactly one of Date, Days or ExpiredObjectDeleteMarker,
in that order of precedence. Dates are sent as midnight UTC.
"""

from datetime import UTC, date, datetime
from typing import Any, Dict, Tuple

import structlog
from ulid import ULID

from s3recon.facets.base import (
    FacetSynchronizer,
    SyncContext,
    read_optional,
    tag_set,
    tags_from_set,
)
from s3recon.model import (
    Facet,
    LifecycleExpiration,
    LifecycleRule,
    LifecycleTransition,
    NoncurrentVersionExpiration,
    NoncurrentVersionTransition,
)

logger = structlog.get_logger()

GENERATED_ID_PREFIX = "s3recon-lifecycle-"


def generate_rule_id() -> str:
    return GENERATED_ID_PREFIX + str(ULID())


def _midnight_utc(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=UTC)


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.astimezone(UTC).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()


def expiration_to_remote(expiration: LifecycleExpiration) -> Dict[str, Any]:
    if expiration.date is not None:
        return {"Date": _midnight_utc(expiration.date)}
    if expiration.days:
        return {"Days": expiration.days}
    return {"ExpiredObjectDeleteMarker": bool(expiration.expired_object_delete_marker)}


def rule_to_remote(rule: LifecycleRule) -> Dict[str, Any]:
    remote: Dict[str, Any] = {
        "ID": rule.id or generate_rule_id(),
        "Status": "Enabled" if rule.enabled else "Disabled",
    }

    if rule.tags:
        remote["Filter"] = {"And": {"Prefix": rule.prefix, "Tags": tag_set(rule.tags)}}
    else:
        remote["Filter"] = {"Prefix": rule.prefix}

    if rule.abort_incomplete_multipart_upload_days:
        remote["AbortIncompleteMultipartUpload"] = {
            "DaysAfterInitiation": rule.abort_incomplete_multipart_upload_days,
        }
    if rule.expiration is not None:
        remote["Expiration"] = expiration_to_remote(rule.expiration)
    if rule.noncurrent_version_expiration is not None:
        remote["NoncurrentVersionExpiration"] = {
            "NoncurrentDays": rule.noncurrent_version_expiration.days,
        }

    if rule.transitions:
        transitions = []
        for transition in rule.transitions:
            item: Dict[str, Any] = {"StorageClass": transition.storage_class}
            if transition.date is not None:
                item["Date"] = _midnight_utc(transition.date)
            else:
                item["Days"] = transition.days or 0
            transitions.append(item)
        remote["Transitions"] = transitions

    if rule.noncurrent_version_transitions:
        remote["NoncurrentVersionTransitions"] = [
            {"StorageClass": t.storage_class, "NoncurrentDays": t.days or 0}
            for t in rule.noncurrent_version_transitions
        ]
    return remote


def rule_from_remote(remote: Dict[str, Any]) -> LifecycleRule:
    prefix = remote.get("Prefix") or ""
    tags: Dict[str, str] = {}
    remote_filter = remote.get("Filter")
    if remote_filter:
        if "And" in remote_filter:
            prefix = remote_filter["And"].get("Prefix") or ""
            tags = tags_from_set(remote_filter["And"].get("Tags"))
        elif "Tag" in remote_filter:
            tags = tags_from_set([remote_filter["Tag"]])
        else:
            prefix = remote_filter.get("Prefix") or ""

    expiration = None
    remote_expiration = remote.get("Expiration")
    if remote_expiration:
        expiration = LifecycleExpiration(
            date=_as_date(remote_expiration.get("Date")),
            days=remote_expiration.get("Days"),
            expired_object_delete_marker=remote_expiration.get("ExpiredObjectDeleteMarker"),
        )

    noncurrent_expiration = None
    if remote.get("NoncurrentVersionExpiration"):
        noncurrent_expiration = NoncurrentVersionExpiration(
            days=remote["NoncurrentVersionExpiration"]["NoncurrentDays"],
        )

    abort = remote.get("AbortIncompleteMultipartUpload") or {}

    return LifecycleRule(
        enabled=remote.get("Status") == "Enabled",
        id=remote.get("ID"),
        prefix=prefix,
        tags=tags,
        abort_incomplete_multipart_upload_days=abort.get("DaysAfterInitiation"),
        expiration=expiration,
        noncurrent_version_expiration=noncurrent_expiration,
        transitions=tuple(
            LifecycleTransition(
                storage_class=t["StorageClass"],
                date=_as_date(t.get("Date")),
                days=t.get("Days"),
            )
            for t in remote.get("Transitions") or ()
        ),
        noncurrent_version_transitions=tuple(
            NoncurrentVersionTransition(
                storage_class=t["StorageClass"],
                days=t.get("NoncurrentDays"),
            )
            for t in remote.get("NoncurrentVersionTransitions") or ()
        ),
    )


class LifecycleSynchronizer(FacetSynchronizer):
    facet = Facet.LIFECYCLE

    async def apply(
        self,
        client: Any,
        ctx: SyncContext,
        value: Tuple[LifecycleRule, ...],
    ) -> None:
        if not value:
            async def delete():
                return await client.delete_bucket_lifecycle(Bucket=ctx.bucket)

            await ctx.retry(delete, description="delete_bucket_lifecycle")
            return

        rules = [rule_to_remote(rule) for rule in value]
        logger.debug(
            "lifecycle_rules_prepared",
            bucket=ctx.bucket,
            rule_ids=[r["ID"] for r in rules],
        )

        async def put():
            return await client.put_bucket_lifecycle_configuration(
                Bucket=ctx.bucket,
                LifecycleConfiguration={"Rules": rules},
            )

        await ctx.retry(put, description="put_bucket_lifecycle_configuration")

    async def read(self, client: Any, bucket: str) -> Tuple[LifecycleRule, ...]:
        response = await read_optional(
            lambda: client.get_bucket_lifecycle_configuration(Bucket=bucket),
            ("NoSuchLifecycleConfiguration",),
        )
        if not response:
            return ()
        return tuple(rule_from_remote(r) for r in response.get("Rules") or ())
