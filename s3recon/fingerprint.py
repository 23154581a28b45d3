# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Fingerprint - Order-independent digests of facet records.

The remote API treats several nested collections (CORS rules, lifecycle
expirations and transitions, replication rules and destinations) as
unordered sets. A fingerprint is the identity key used to compare and
deduplicate such items within one reconciliation run.

Encoding rules:
- fields are visited in the record's declared field order
- absent values (None, empty string, empty collection) contribute nothing
- sequence items are encoded individually and sorted before joining
- mappings are encoded as sorted key:value pairs
- nested records contribute their own fingerprint

The digest is not meant for security or persistence.
"""

import hashlib
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, FrozenSet, Iterable


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, tuple, list, set, frozenset, dict)) and not value:
        return True
    return False


def _encode(value: Any) -> str:
    """Encode one value into its canonical string form."""
    if is_dataclass(value) and not isinstance(value, type):
        return "#" + fingerprint(value)
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        pairs = sorted(f"{_encode(k)}:{_encode(v)}" for k, v in value.items())
        return "{" + ",".join(pairs) + "}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + ",".join(sorted(_encode(v) for v in value)) + "]"
    return str(value)


def canonical_string(record: Any) -> str:
    """
    Build the canonical string a fingerprint is computed over.

    Exposed for debugging digests that unexpectedly differ.
    """
    if not is_dataclass(record) or isinstance(record, type):
        return _encode(record)

    parts = []
    for f in fields(record):
        value = getattr(record, f.name)
        if _is_empty(value):
            continue
        parts.append(f"{f.name}={_encode(value)};")
    return type(record).__name__ + ":" + "".join(parts)


def fingerprint(record: Any) -> str:
    """
    Compute the digest of a record.

    Args:
        record: A facet record (dataclass instance) or a plain value

    Returns:
        16 hex characters (64 bits) of a SHA-256 digest
    """
    return hashlib.sha256(canonical_string(record).encode("utf-8")).hexdigest()[:16]


def fingerprint_set(records: Iterable[Any]) -> FrozenSet[str]:
    """Fingerprints of a collection, ignoring order and duplicates."""
    return frozenset(fingerprint(r) for r in records)


def same_items(left: Iterable[Any], right: Iterable[Any]) -> bool:
    """True when two collections hold the same records in any order."""
    return fingerprint_set(left) == fingerprint_set(right)
