# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Model - Typed, immutable facet records.

Every configurable aspect of a bucket is a facet with its own record type.
Records are frozen after creation; list-valued fields are stored as tuples
so a record can never be mutated by a synchronizer.
"""

import json
from dataclasses import dataclass, field, fields, replace
from datetime import date as Date, datetime
from enum import Enum
from typing import Any, Dict, List, Tuple

from s3recon.exceptions import ValidationError


class Facet(str, Enum):
    """
    Independently configurable aspect of a bucket.

    Declaration order is the order facets are applied in during an update
    pass. Versioning must stay ahead of replication.
    """

    TAGS = "tags"
    POLICY = "policy"
    CORS = "cors"
    WEBSITE = "website"
    VERSIONING = "versioning"
    ACL = "acl"
    LOGGING = "logging"
    LIFECYCLE = "lifecycle"
    ACCELERATION = "acceleration"
    REQUEST_PAYER = "request_payer"
    REPLICATION = "replication"
    ENCRYPTION = "encryption"
    OBJECT_LOCK = "object_lock"


CANNED_ACLS = frozenset(
    {
        "private",
        "public-read",
        "public-read-write",
        "aws-exec-read",
        "authenticated-read",
        "bucket-owner-read",
        "bucket-owner-full-control",
        "log-delivery-write",
    }
)
CORS_METHODS = frozenset({"GET", "PUT", "POST", "DELETE", "HEAD"})
ACCELERATION_STATUSES = frozenset({"Enabled", "Suspended"})
PAYERS = frozenset({"Requester", "BucketOwner"})
SSE_ALGORITHMS = frozenset({"AES256", "aws:kms"})
OBJECT_LOCK_MODES = frozenset({"GOVERNANCE", "COMPLIANCE"})
REPLICATION_STATUSES = frozenset({"Enabled", "Disabled"})
TRANSITION_STORAGE_CLASSES = frozenset(
    {"STANDARD_IA", "ONEZONE_IA", "INTELLIGENT_TIERING", "GLACIER", "DEEP_ARCHIVE"}
)
REPLICATION_STORAGE_CLASSES = frozenset(
    {
        "STANDARD",
        "REDUCED_REDUNDANCY",
        "STANDARD_IA",
        "ONEZONE_IA",
        "INTELLIGENT_TIERING",
        "GLACIER",
        "DEEP_ARCHIVE",
    }
)


def _require(errors: List[str], record: str) -> None:
    if errors:
        raise ValidationError(
            f"Invalid {record}",
            details={"errors": errors},
        )


def _as_tuple(record: Any, name: str) -> None:
    """Store a list-valued field as a tuple on a frozen record."""
    value = getattr(record, name)
    if value is None:
        object.__setattr__(record, name, ())
    elif not isinstance(value, tuple):
        object.__setattr__(record, name, tuple(value))


def _as_dict(record: Any, name: str) -> None:
    value = getattr(record, name)
    object.__setattr__(record, name, dict(value or {}))


def _as_date(value: Any) -> Date | None:
    """Accept a date, a datetime or an ISO YYYY-MM-DD string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, Date):
        return value
    try:
        return Date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(
            f"Invalid lifecycle date: {value!r}, expected YYYY-MM-DD",
        ) from exc


def normalize_policy(document: str) -> str:
    """
    Normalize a JSON policy document so key order and whitespace do not matter.

    Raises:
        ValidationError: If the document is not valid JSON
    """
    try:
        parsed = json.loads(document)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Policy is not a valid JSON document",
            details={"policy": document},
        ) from exc
    return json.dumps(parsed, sort_keys=True, separators=(",", ":"))


# ============================================================================
# CORS
# ============================================================================

@dataclass(frozen=True)
class CorsRule:
    """One cross-origin resource sharing rule."""

    allowed_methods: Tuple[str, ...]
    allowed_origins: Tuple[str, ...]
    allowed_headers: Tuple[str, ...] = ()
    expose_headers: Tuple[str, ...] = ()
    max_age_seconds: int | None = None

    def __post_init__(self) -> None:
        for name in ("allowed_methods", "allowed_origins", "allowed_headers", "expose_headers"):
            _as_tuple(self, name)

        errors: List[str] = []
        if not self.allowed_methods:
            errors.append("allowed_methods must not be empty")
        unknown = [m for m in self.allowed_methods if m not in CORS_METHODS]
        if unknown:
            errors.append(f"unsupported CORS methods: {unknown}")
        if not self.allowed_origins:
            errors.append("allowed_origins must not be empty")
        if self.max_age_seconds is not None and self.max_age_seconds < 0:
            errors.append(f"max_age_seconds must be >= 0, got {self.max_age_seconds}")
        _require(errors, "CORS rule")


# ============================================================================
# Website
# ============================================================================

@dataclass(frozen=True)
class RedirectTarget:
    """Decomposed form of a redirect-all-requests target."""

    host: str
    path: str = ""
    query: str = ""
    protocol: str | None = None

    @property
    def host_name(self) -> str:
        """Host name as the remote API stores it: host + path + ?query."""
        value = self.host + self.path
        if self.query:
            value += "?" + self.query
        return value

    def to_url(self) -> str:
        if self.protocol is None:
            return self.host_name
        return f"{self.protocol}://{self.host_name}"


@dataclass(frozen=True)
class Website:
    """Static website hosting configuration."""

    index_document: str | None = None
    error_document: str | None = None
    redirect_all_requests_to: str | None = None
    # JSON array of routing rules in the remote API's shape
    routing_rules: str | None = None

    def __post_init__(self) -> None:
        errors: List[str] = []
        if self.redirect_all_requests_to and (
            self.index_document or self.error_document or self.routing_rules
        ):
            errors.append(
                "redirect_all_requests_to conflicts with index_document, "
                "error_document and routing_rules"
            )
        if self.routing_rules:
            try:
                rules = json.loads(self.routing_rules)
            except ValueError:
                errors.append("routing_rules is not valid JSON")
            else:
                if not isinstance(rules, list):
                    errors.append("routing_rules must be a JSON array")
                else:
                    object.__setattr__(
                        self, "routing_rules", json.dumps(rules, sort_keys=True)
                    )
        _require(errors, "website configuration")


# ============================================================================
# Versioning and logging
# ============================================================================

@dataclass(frozen=True)
class Versioning:
    """Bucket versioning state."""

    enabled: bool = False
    mfa_delete: bool = False


@dataclass(frozen=True)
class Logging:
    """Server access logging target."""

    target_bucket: str
    target_prefix: str = ""

    def __post_init__(self) -> None:
        if not self.target_bucket:
            raise ValidationError("Logging target_bucket is required")


# ============================================================================
# Lifecycle
# ============================================================================

@dataclass(frozen=True)
class LifecycleExpiration:
    """
    Current-version expiration.

    Only one of date, days or expired_object_delete_marker is sent to the
    remote API, chosen in that order of precedence.
    """

    date: Date | None = None
    days: int | None = None
    expired_object_delete_marker: bool | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _as_date(self.date))
        errors: List[str] = []
        if self.days is not None and self.days < 0:
            errors.append(f"expiration days must be >= 0, got {self.days}")
        if self.date is None and not self.days and self.expired_object_delete_marker is None:
            errors.append("expiration needs one of date, days or expired_object_delete_marker")
        _require(errors, "lifecycle expiration")


@dataclass(frozen=True)
class NoncurrentVersionExpiration:
    days: int

    def __post_init__(self) -> None:
        if self.days < 1:
            raise ValidationError(
                f"noncurrent version expiration days must be >= 1, got {self.days}"
            )


@dataclass(frozen=True)
class LifecycleTransition:
    storage_class: str
    date: Date | None = None
    days: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _as_date(self.date))
        # Sent as Days=0 when neither is given
        if self.date is None and self.days is None:
            object.__setattr__(self, "days", 0)
        errors: List[str] = []
        if self.storage_class not in TRANSITION_STORAGE_CLASSES:
            errors.append(f"unsupported transition storage class: {self.storage_class}")
        if self.days is not None and self.days < 0:
            errors.append(f"transition days must be >= 0, got {self.days}")
        _require(errors, "lifecycle transition")


@dataclass(frozen=True)
class NoncurrentVersionTransition:
    storage_class: str
    days: int | None = None

    def __post_init__(self) -> None:
        if self.days is None:
            object.__setattr__(self, "days", 0)
        if self.storage_class not in TRANSITION_STORAGE_CLASSES:
            raise ValidationError(
                f"Invalid noncurrent version transition storage class: {self.storage_class}"
            )


@dataclass(frozen=True)
class LifecycleRule:
    """
    One lifecycle rule.

    A rule with tags is filtered with a compound AND of prefix and tags;
    otherwise with the bare prefix. Rules without an id get a generated one
    when applied.
    """

    enabled: bool
    id: str | None = None
    prefix: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    abort_incomplete_multipart_upload_days: int | None = None
    expiration: LifecycleExpiration | None = None
    noncurrent_version_expiration: NoncurrentVersionExpiration | None = None
    transitions: Tuple[LifecycleTransition, ...] = ()
    noncurrent_version_transitions: Tuple[NoncurrentVersionTransition, ...] = ()

    def __post_init__(self) -> None:
        _as_dict(self, "tags")
        _as_tuple(self, "transitions")
        _as_tuple(self, "noncurrent_version_transitions")
        if self.prefix is None:
            object.__setattr__(self, "prefix", "")
        if self.abort_incomplete_multipart_upload_days == 0:
            object.__setattr__(self, "abort_incomplete_multipart_upload_days", None)

        errors: List[str] = []
        if self.id is not None and len(self.id) > 255:
            errors.append("lifecycle rule id must be at most 255 characters")
        if (
            self.abort_incomplete_multipart_upload_days is not None
            and self.abort_incomplete_multipart_upload_days < 0
        ):
            errors.append("abort_incomplete_multipart_upload_days must be >= 0")
        _require(errors, "lifecycle rule")


# ============================================================================
# Replication
# ============================================================================

@dataclass(frozen=True)
class AccessControlTranslation:
    owner: str = "Destination"

    def __post_init__(self) -> None:
        if self.owner != "Destination":
            raise ValidationError(
                f"access_control_translation owner must be 'Destination', got {self.owner!r}"
            )


@dataclass(frozen=True)
class ReplicationDestination:
    # ARN of the destination bucket
    bucket: str
    storage_class: str | None = None
    replica_kms_key_id: str | None = None
    account_id: str | None = None
    access_control_translation: AccessControlTranslation | None = None

    def __post_init__(self) -> None:
        errors: List[str] = []
        if not self.bucket.startswith("arn:"):
            errors.append(f"destination bucket must be an ARN, got {self.bucket!r}")
        if self.storage_class and self.storage_class not in REPLICATION_STORAGE_CLASSES:
            errors.append(f"unsupported replication storage class: {self.storage_class}")
        if self.account_id and not (
            len(self.account_id) == 12 and self.account_id.isdigit()
        ):
            errors.append(f"account_id must be a 12 digit account number, got {self.account_id!r}")
        _require(errors, "replication destination")


@dataclass(frozen=True)
class SourceSelectionCriteria:
    sse_kms_encrypted_objects: bool | None = None


@dataclass(frozen=True)
class ReplicationFilter:
    prefix: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _as_dict(self, "tags")
        if self.prefix is None:
            object.__setattr__(self, "prefix", "")
        if len(self.prefix) > 1024:
            raise ValidationError("replication filter prefix must be at most 1024 characters")


@dataclass(frozen=True)
class ReplicationRule:
    """
    One replication rule.

    With a filter block the rule uses the newer schema (priority, filter,
    delete marker replication disabled); without one it uses the legacy
    schema (bare prefix, no priority).
    """

    status: str
    destination: ReplicationDestination
    id: str | None = None
    prefix: str | None = None
    priority: int | None = None
    filter: ReplicationFilter | None = None
    source_selection_criteria: SourceSelectionCriteria | None = None

    def __post_init__(self) -> None:
        # The remote reports priority 0 for filter rules sent without one
        if self.filter is not None and self.priority is None:
            object.__setattr__(self, "priority", 0)

        errors: List[str] = []
        if self.status and self.status not in REPLICATION_STATUSES:
            errors.append(f"replication status must be Enabled or Disabled, got {self.status!r}")
        if self.id is not None and len(self.id) > 255:
            errors.append("replication rule id must be at most 255 characters")
        if self.prefix is not None and len(self.prefix) > 1024:
            errors.append("replication rule prefix must be at most 1024 characters")
        _require(errors, "replication rule")

    @property
    def uses_filter_schema(self) -> bool:
        return self.filter is not None


@dataclass(frozen=True)
class ReplicationConfiguration:
    # IAM role assumed by the replication service
    role: str
    rules: Tuple[ReplicationRule, ...]

    def __post_init__(self) -> None:
        _as_tuple(self, "rules")
        errors: List[str] = []
        if not self.role:
            errors.append("replication role is required")
        if not self.rules:
            errors.append("replication needs at least one rule")
        _require(errors, "replication configuration")


# ============================================================================
# Encryption and object lock
# ============================================================================

@dataclass(frozen=True)
class ServerSideEncryption:
    """Default server-side encryption rule."""

    sse_algorithm: str
    kms_master_key_id: str | None = None

    def __post_init__(self) -> None:
        if self.sse_algorithm not in SSE_ALGORITHMS:
            raise ValidationError(
                f"sse_algorithm must be one of {sorted(SSE_ALGORITHMS)}, got {self.sse_algorithm!r}"
            )


@dataclass(frozen=True)
class DefaultRetention:
    """
    Default object lock retention.

    Days and years are not checked for mutual exclusivity; both are sent
    and the remote API decides.
    """

    mode: str
    days: int | None = None
    years: int | None = None

    def __post_init__(self) -> None:
        errors: List[str] = []
        if self.mode not in OBJECT_LOCK_MODES:
            errors.append(f"retention mode must be GOVERNANCE or COMPLIANCE, got {self.mode!r}")
        if self.days is not None and self.days < 1:
            errors.append(f"retention days must be >= 1, got {self.days}")
        if self.years is not None and self.years < 1:
            errors.append(f"retention years must be >= 1, got {self.years}")
        _require(errors, "object lock retention")


@dataclass(frozen=True)
class ObjectLockConfiguration:
    enabled: bool = True
    rule: DefaultRetention | None = None


# ============================================================================
# States
# ============================================================================

# Values the remote reports when a facet was never configured
FACET_DEFAULTS: Dict[Facet, Any] = {
    Facet.ACL: "private",
    Facet.VERSIONING: Versioning(enabled=False, mfa_delete=False),
    Facet.ACCELERATION: "Suspended",
    Facet.REQUEST_PAYER: "BucketOwner",
}


def is_absent(facet: Facet, value: Any) -> bool:
    """True when a facet value means "not configured / remote default"."""
    if value is None:
        return True
    if isinstance(value, (tuple, list, dict, str)) and not value:
        return True
    return FACET_DEFAULTS.get(facet, None) == value


@dataclass(frozen=True)
class FacetValues:
    """One optional value per facet, shared by desired and recorded states."""

    acl: str | None = None
    policy: str | None = None
    cors: Tuple[CorsRule, ...] = ()
    website: Website | None = None
    versioning: Versioning | None = None
    logging: Logging | None = None
    lifecycle: Tuple[LifecycleRule, ...] = ()
    acceleration: str | None = None
    request_payer: str | None = None
    replication: ReplicationConfiguration | None = None
    encryption: ServerSideEncryption | None = None
    object_lock: ObjectLockConfiguration | None = None
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _as_tuple(self, "cors")
        _as_tuple(self, "lifecycle")
        _as_dict(self, "tags")
        if self.policy:
            object.__setattr__(self, "policy", normalize_policy(self.policy))

        errors: List[str] = []
        if self.acl is not None and self.acl not in CANNED_ACLS:
            errors.append(f"unsupported canned ACL: {self.acl!r}")
        if self.acceleration is not None and self.acceleration not in ACCELERATION_STATUSES:
            errors.append(f"acceleration must be Enabled or Suspended, got {self.acceleration!r}")
        if self.request_payer is not None and self.request_payer not in PAYERS:
            errors.append(
                f"request_payer must be Requester or BucketOwner, got {self.request_payer!r}"
            )
        for key, value in self.tags.items():
            if not isinstance(key, str) or not isinstance(value, str):
                errors.append(f"tag {key!r} must map a string to a string")
        _require(errors, type(self).__name__)

    def value(self, facet: Facet) -> Any:
        return getattr(self, facet.value)

    def facets(self) -> Dict[Facet, Any]:
        """Present facets only, in apply order."""
        present: Dict[Facet, Any] = {}
        for facet in Facet:
            value = self.value(facet)
            if not is_absent(facet, value):
                present[facet] = value
        return present

    def facet_values(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(FacetValues)}


@dataclass(frozen=True)
class DesiredState(FacetValues):
    """
    Full declarative description of one bucket.

    The identity is either an explicit bucket name, a prefix that receives a
    generated unique suffix, or neither (fully generated).
    """

    bucket: str | None = None
    bucket_prefix: str | None = None
    # Region to create the bucket in; falls back to the engine config
    region: str | None = None
    # Empty the bucket (all versions and delete markers) before deleting it
    force_destroy: bool = False

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.acl is None:
            object.__setattr__(self, "acl", "private")
        if self.bucket and self.bucket_prefix:
            raise ValidationError(
                "bucket and bucket_prefix are mutually exclusive",
                details={"bucket": self.bucket, "bucket_prefix": self.bucket_prefix},
            )

    def with_bucket(self, bucket: str) -> "DesiredState":
        """Return a copy pinned to a resolved bucket name."""
        return replace(self, bucket=bucket, bucket_prefix=None)


@dataclass(frozen=True)
class RecordedState(FacetValues):
    """
    Canonical bucket state rebuilt from remote reads.

    Produced fresh by every read pass and replaced wholesale, never updated.
    """

    bucket: str = ""
    region: str = ""
    arn: str = ""
    bucket_domain_name: str = ""
    bucket_regional_domain_name: str = ""
    hosted_zone_id: str | None = None
    website_endpoint: str | None = None
    website_domain: str | None = None
