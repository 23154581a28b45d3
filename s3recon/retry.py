# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Retry - Bounded-time retry for eventually consistent calls.

Right after a bucket is created, or after a prerequisite facet is changed,
the control plane may still answer as if nothing happened. retry() keeps
calling an operation while a classifier says the failure is one of those
lag conditions, until a deadline passes. At the deadline exactly one more
unconditional attempt is made, so a call that was merely slow is not
reported as a failure.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from s3recon.exceptions import error_code, error_message

logger = structlog.get_logger()

T = TypeVar("T")

Classifier = Callable[[BaseException], bool]

# Default deadlines (seconds) for the two kinds of call sites
CREATE_DEADLINE = 5 * 60.0
FACET_DEADLINE = 60.0


def is_creation_transient(exc: BaseException) -> bool:
    """A concurrent conflicting operation aborted the create call."""
    return error_code(exc) == "OperationAborted"


def is_eventual_consistency(exc: BaseException) -> bool:
    """The bucket is not visible yet, or a conflicting write is in flight."""
    return error_code(exc) in ("NoSuchBucket", "OperationAborted")


def is_policy_propagation(exc: BaseException) -> bool:
    """
    Policy principals (roles, users) created moments ago are reported as a
    malformed policy until they propagate.
    """
    return is_eventual_consistency(exc) or error_code(exc) == "MalformedPolicy"


def is_replication_propagation(exc: BaseException) -> bool:
    """Versioning was enabled in this pass but is not visible yet."""
    if is_eventual_consistency(exc):
        return True
    return (
        error_code(exc) == "InvalidRequest"
        and "Versioning must be 'Enabled' on the bucket" in error_message(exc)
    )


def retry_on_codes(*codes: str) -> Classifier:
    """Build a classifier that retries on the given S3 error codes."""
    wanted = frozenset(codes)

    def classifier(exc: BaseException) -> bool:
        return error_code(exc) in wanted

    return classifier


async def retry(
    operation: Callable[[], Awaitable[T]],
    classifier: Classifier,
    deadline: float,
    *,
    interval: float = 2.0,
    max_interval: float = 20.0,
    cancelled: asyncio.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """
    Call operation until it succeeds, fails permanently or the deadline passes.

    Args:
        operation: Zero-argument coroutine function performing one attempt
        classifier: Returns True for errors worth retrying
        deadline: Seconds to keep retrying
        interval: First backoff delay, doubled after each retry
        max_interval: Upper bound for the backoff delay
        cancelled: Caller-owned event; once set, retrying stops at the next
            iteration boundary and the last error is raised
        clock: Monotonic clock (injectable for tests)
        sleep: Async sleep (injectable for tests)
        description: Label used in log events

    Returns:
        The operation's result

    Raises:
        The last error when it is not retryable, when the caller cancels,
        or when the final post-deadline attempt fails
    """
    expires_at = clock() + deadline
    delay = interval
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not classifier(exc):
                raise
            if cancelled is not None and cancelled.is_set():
                logger.info(
                    "retry_cancelled",
                    operation=description,
                    attempt=attempt,
                    error_code=error_code(exc),
                )
                raise
            if clock() + delay > expires_at:
                logger.warning(
                    "retry_deadline_reached",
                    operation=description,
                    attempts=attempt,
                    error_code=error_code(exc),
                )
                break
            logger.debug(
                "retrying",
                operation=description,
                attempt=attempt,
                delay=delay,
                error_code=error_code(exc),
            )

        await sleep(delay)
        delay = min(delay * 2, max_interval)

    return await operation()
