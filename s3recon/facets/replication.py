# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Replication facet.

Two rule schemas coexist remotely:

- filter rules (newer): Priority, Filter and DeleteMarkerReplication
  (always Disabled); a legacy prefix is not allowed
- prefix rules (legacy): a bare Prefix and no priority

Rules with an empty status are not sent.
"""

from typing import Any, Dict, List

from s3recon.errors import explain_replication_requires_versioning
from s3recon.exceptions import ValidationError
from s3recon.facets.base import (
    FacetSynchronizer,
    SyncContext,
    read_optional,
    tag_set,
    tags_from_set,
)
from s3recon.model import (
    AccessControlTranslation,
    Facet,
    ReplicationConfiguration,
    ReplicationDestination,
    ReplicationFilter,
    ReplicationRule,
    SourceSelectionCriteria,
)
from s3recon.retry import is_replication_propagation


def rule_errors(rule: ReplicationRule) -> List[str]:
    errors: List[str] = []
    label = rule.id or rule.destination.bucket
    if rule.uses_filter_schema and rule.prefix:
        errors.append(f"rule {label!r}: prefix cannot be combined with filter, use filter.prefix")
    if not rule.uses_filter_schema and rule.priority is not None:
        errors.append(f"rule {label!r}: priority requires a filter block")
    return errors


def destination_to_remote(destination: ReplicationDestination) -> Dict[str, Any]:
    remote: Dict[str, Any] = {"Bucket": destination.bucket}
    if destination.storage_class:
        remote["StorageClass"] = destination.storage_class
    if destination.replica_kms_key_id:
        remote["EncryptionConfiguration"] = {"ReplicaKmsKeyID": destination.replica_kms_key_id}
    if destination.account_id:
        remote["Account"] = destination.account_id
    if destination.access_control_translation is not None:
        remote["AccessControlTranslation"] = {
            "Owner": destination.access_control_translation.owner,
        }
    return remote


def rule_to_remote(rule: ReplicationRule) -> Dict[str, Any]:
    remote: Dict[str, Any] = {
        "Status": rule.status,
        "Destination": destination_to_remote(rule.destination),
    }
    if rule.id:
        remote["ID"] = rule.id

    criteria = rule.source_selection_criteria
    if criteria is not None and criteria.sse_kms_encrypted_objects is not None:
        remote["SourceSelectionCriteria"] = {
            "SseKmsEncryptedObjects": {
                "Status": "Enabled" if criteria.sse_kms_encrypted_objects else "Disabled",
            },
        }

    if rule.uses_filter_schema:
        remote["Priority"] = rule.priority or 0
        remote["DeleteMarkerReplication"] = {"Status": "Disabled"}
        if rule.filter.tags:
            remote["Filter"] = {
                "And": {"Prefix": rule.filter.prefix, "Tags": tag_set(rule.filter.tags)},
            }
        else:
            remote["Filter"] = {"Prefix": rule.filter.prefix}
    else:
        remote["Prefix"] = rule.prefix or ""
    return remote


def configuration_to_remote(configuration: ReplicationConfiguration) -> Dict[str, Any]:
    return {
        "Role": configuration.role,
        "Rules": [rule_to_remote(r) for r in configuration.rules if r.status],
    }


def destination_from_remote(remote: Dict[str, Any]) -> ReplicationDestination:
    translation = remote.get("AccessControlTranslation")
    return ReplicationDestination(
        bucket=remote["Bucket"],
        storage_class=remote.get("StorageClass"),
        replica_kms_key_id=(remote.get("EncryptionConfiguration") or {}).get("ReplicaKmsKeyID"),
        account_id=remote.get("Account"),
        access_control_translation=(
            AccessControlTranslation(owner=translation["Owner"]) if translation else None
        ),
    )


def filter_from_remote(remote: Dict[str, Any]) -> ReplicationFilter:
    if "And" in remote:
        return ReplicationFilter(
            prefix=remote["And"].get("Prefix") or "",
            tags=tags_from_set(remote["And"].get("Tags")),
        )
    if "Tag" in remote:
        return ReplicationFilter(tags=tags_from_set([remote["Tag"]]))
    return ReplicationFilter(prefix=remote.get("Prefix") or "")


def rule_from_remote(remote: Dict[str, Any]) -> ReplicationRule:
    criteria = None
    sse = (remote.get("SourceSelectionCriteria") or {}).get("SseKmsEncryptedObjects")
    if sse:
        criteria = SourceSelectionCriteria(sse_kms_encrypted_objects=sse.get("Status") == "Enabled")

    remote_filter = remote.get("Filter")
    return ReplicationRule(
        status=remote.get("Status") or "",
        destination=destination_from_remote(remote["Destination"]),
        id=remote.get("ID"),
        prefix=None if remote_filter is not None else (remote.get("Prefix") or None),
        priority=remote.get("Priority") if remote_filter is not None else None,
        filter=filter_from_remote(remote_filter) if remote_filter is not None else None,
        source_selection_criteria=criteria,
    )


class ReplicationSynchronizer(FacetSynchronizer):
    facet = Facet.REPLICATION

    def check_value(self, value: ReplicationConfiguration | None, ctx: SyncContext) -> None:
        if value is None:
            return
        versioning = ctx.desired.versioning
        if versioning is None or not versioning.enabled:
            raise ValidationError(
                explain_replication_requires_versioning(ctx.bucket),
                details={"bucket": ctx.bucket},
            )
        errors: List[str] = []
        for rule in value.rules:
            errors.extend(rule_errors(rule))
        if errors:
            raise ValidationError(
                "Invalid replication rules",
                details={"bucket": ctx.bucket, "errors": errors},
            )

    async def apply(
        self,
        client: Any,
        ctx: SyncContext,
        value: ReplicationConfiguration | None,
    ) -> None:
        if value is None:
            async def delete():
                return await client.delete_bucket_replication(Bucket=ctx.bucket)

            await ctx.retry(delete, description="delete_bucket_replication")
            return

        self.validate(value, ctx)
        configuration = configuration_to_remote(value)

        async def put():
            return await client.put_bucket_replication(
                Bucket=ctx.bucket,
                ReplicationConfiguration=configuration,
            )

        # Versioning enabled earlier in this pass may not be visible yet
        await ctx.retry(put, is_replication_propagation, description="put_bucket_replication")

    async def read(self, client: Any, bucket: str) -> ReplicationConfiguration | None:
        response = await read_optional(
            lambda: client.get_bucket_replication(Bucket=bucket),
            ("ReplicationConfigurationNotFoundError",),
        )
        remote = (response or {}).get("ReplicationConfiguration")
        if not remote or not remote.get("Rules"):
            return None
        return ReplicationConfiguration(
            role=remote.get("Role") or "",
            rules=tuple(rule_from_remote(r) for r in remote["Rules"]),
        )
