# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Exceptions - Error taxonomy for the s3recon package.

Callers are expected to react by class:

- NotFoundError: the bucket or a sub-configuration does not exist
- TransientError: eventual-consistency lag or a conflicting concurrent write
- ValidationError: a desired state violates an invariant, raised before any
  remote call is made
- ConflictError: the bucket is not empty and forced emptying was not allowed
- PermanentError: malformed input, permission denial or unsupported feature
"""

from typing import Any

from botocore.exceptions import ClientError


class S3ReconError(Exception):
    """Base exception for all s3recon errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(S3ReconError):
    """Raised when engine configuration is invalid."""

    pass


class ValidationError(S3ReconError):
    """Raised when a desired state is rejected before reaching the remote API."""

    pass


class NotFoundError(S3ReconError):
    """Raised when the bucket or one of its configurations does not exist."""

    pass


class TransientError(S3ReconError):
    """Raised when a retryable condition outlived its retry deadline."""

    pass


class ConflictError(S3ReconError):
    """Raised when a bucket cannot be deleted because it still holds objects."""

    pass


class PermanentError(S3ReconError):
    """Raised for remote failures that retrying cannot fix."""

    pass


class S3OperationError(S3ReconError):
    """Raised when a bucket-level S3 operation fails."""

    pass


class FacetSyncError(S3OperationError):
    """Raised when synchronizing a single facet fails."""

    def __init__(
        self,
        facet: str,
        bucket: str,
        value: Any,
        cause: BaseException,
    ):
        self.facet = facet
        self.bucket = bucket
        self.value = value
        self.cause = cause
        # How a caller should react: retry later, fix input, give up
        self.category = classify_client_error(cause)
        super().__init__(
            f"Failed to synchronize {facet} on bucket {bucket}: {cause}",
            details={
                "facet": facet,
                "bucket": bucket,
                "value": repr(value),
                "error_code": error_code(cause),
                "category": self.category.__name__,
            },
        )


class VaultError(S3ReconError):
    """Raised when snapshot vault operations fail."""

    pass


# Error codes grouped by how the engine reacts to them.
NOT_FOUND_CODES = frozenset(
    {
        "NoSuchBucket",
        "NotFound",
        "404",
        "NoSuchBucketPolicy",
        "NoSuchCORSConfiguration",
        "NoSuchWebsiteConfiguration",
        "NoSuchLifecycleConfiguration",
        "ReplicationConfigurationNotFoundError",
        "ServerSideEncryptionConfigurationNotFoundError",
        "ObjectLockConfigurationNotFoundError",
        "NoSuchTagSet",
    }
)

TRANSIENT_CODES = frozenset({"OperationAborted"})

UNSUPPORTED_CODES = frozenset(
    {"NotImplemented", "MethodNotAllowed", "UnsupportedArgument"}
)

CONFLICT_CODES = frozenset({"BucketNotEmpty"})


def error_code(exc: BaseException) -> str | None:
    """Return the S3 error code carried by a botocore ClientError, if any."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def error_message(exc: BaseException) -> str:
    """Return the S3 error message, falling back to str(exc)."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Message") or str(exc)
    return str(exc)


def classify_client_error(exc: BaseException) -> type[S3ReconError]:
    """Map a remote error onto the s3recon taxonomy."""
    code = error_code(exc)
    if code is None:
        return PermanentError
    if code in NOT_FOUND_CODES:
        return NotFoundError
    if code in TRANSIENT_CODES:
        return TransientError
    if code in CONFLICT_CODES:
        return ConflictError
    return PermanentError


def wrap_client_error(exc: BaseException, message: str, **details: Any) -> S3ReconError:
    """
    Build the taxonomy exception for a failed remote call.

    The caller raises the result from exc so the botocore error stays
    attached as the cause.
    """
    error_class = classify_client_error(exc)
    return error_class(message, details={**details, "error_code": error_code(exc)})
