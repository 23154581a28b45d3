# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Naming - Bucket identity derivation and validation.
"""

import re
from typing import List

from ulid import ULID

from s3recon.endpoints import normalize_region
from s3recon.exceptions import ValidationError

GENERATED_PREFIX = "s3recon-"
MAX_PREFIX_LENGTH = 37

_STRICT_CHARS = re.compile(r"^[0-9a-z.-]+$")
_LEGACY_CHARS = re.compile(r"^[0-9a-zA-Z._-]+$")
_IP_SHAPED = re.compile(r"^(\d+\.){3}\d+$")


def bucket_name_errors(bucket: str, region: str | None) -> List[str]:
    """
    Collect every rule a bucket name breaks.

    us-east-1 still accepts the legacy naming rules (up to 255 characters,
    upper case and underscores allowed). Every other region enforces the
    DNS-compatible rules.
    """
    errors: List[str] = []
    if normalize_region(region) == "us-east-1":
        if not bucket or len(bucket) > 255:
            errors.append(f"{bucket!r}: must be 1 to 255 characters long")
        if bucket and not _LEGACY_CHARS.match(bucket):
            errors.append(
                f"{bucket!r}: only alphanumeric characters, hyphens, periods "
                "and underscores are allowed"
            )
        return errors

    if len(bucket) < 3 or len(bucket) > 63:
        errors.append(f"{bucket!r}: must be 3 to 63 characters long")
    if not _STRICT_CHARS.match(bucket or "-"):
        errors.append(
            f"{bucket!r}: only lowercase alphanumeric characters, hyphens "
            "and periods are allowed"
        )
    if _IP_SHAPED.match(bucket):
        errors.append(f"{bucket!r}: must not be formatted as an IP address")
    if bucket.startswith(".") or bucket.endswith("."):
        errors.append(f"{bucket!r}: must not start or end with a period")
    if ".." in bucket:
        errors.append(f"{bucket!r}: must not contain two adjacent periods")
    return errors


def validate_bucket_name(bucket: str, region: str | None) -> None:
    """
    Raises:
        ValidationError: If the name is not valid in the target region
    """
    errors = bucket_name_errors(bucket, region)
    if errors:
        raise ValidationError(
            f"Invalid bucket name: {bucket!r}",
            details={"region": normalize_region(region), "errors": errors},
        )


def unique_suffix() -> str:
    """26 lowercase characters, sortable by creation time."""
    return str(ULID()).lower()


def generate_bucket_name(bucket: str | None = None, bucket_prefix: str | None = None) -> str:
    """
    Resolve the identity of a bucket about to be created.

    An explicit name wins, then a prefix with a unique suffix, then a fully
    generated name.
    """
    if bucket:
        return bucket
    if bucket_prefix:
        if len(bucket_prefix) > MAX_PREFIX_LENGTH:
            raise ValidationError(
                f"bucket_prefix must be at most {MAX_PREFIX_LENGTH} characters",
                details={"bucket_prefix": bucket_prefix},
            )
        return bucket_prefix + unique_suffix()
    return GENERATED_PREFIX + unique_suffix()
