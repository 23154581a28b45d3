# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for the S3 reconciler.

These helpers centralize wording for common configuration and validation
errors so that all modules present consistent, actionable messages.
"""


def explain_invalid_timeout_env(name: str, value: str | None) -> str:
    """
    Explain that a timeout environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a positive number of seconds."
    )


def explain_invalid_rounds_env(value: str | None) -> str:
    """
    Explain that S3RECON_MAX_DESTROY_ROUNDS is invalid.
    """

    return (
        f"Invalid S3RECON_MAX_DESTROY_ROUNDS value: {value!r}. "
        "It must be a positive integer."
    )


def explain_replication_requires_versioning(bucket: str) -> str:
    """
    Explain that replication cannot be configured without versioning.
    """

    return (
        f"Replication on bucket {bucket!r} requires versioning to be enabled. "
        "Add versioning={'enabled': True} to the desired state."
    )


def explain_object_lock_immutable(bucket: str) -> str:
    """
    Explain that object lock cannot be turned off once enabled.
    """

    return (
        f"Object lock is enabled on bucket {bucket!r} and cannot be disabled "
        "or removed. Only its default retention rule may be changed."
    )


def explain_object_lock_after_creation(bucket: str) -> str:
    """
    Explain that object lock can only be requested when creating a bucket.
    """

    return (
        f"Object lock can only be enabled when bucket {bucket!r} is created. "
        "Recreate the bucket with object_lock configured to use it."
    )


def explain_missing_identity() -> str:
    """
    Explain that an operation needs a bucket name.
    """

    return (
        "No bucket name is known for this operation. "
        "Pass bucket=... or create the bucket first."
    )
