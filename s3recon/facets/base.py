# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Facets - Synchronizer protocol shared by every facet.

A synchronizer owns exactly one facet. apply() drives the remote
configuration to a value (None meaning "reset to the remote default"),
read() reports the current remote value in canonical form, and validate()
rejects values that must never reach the remote API.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable

import structlog
from botocore.exceptions import ClientError

from s3recon.config import EngineConfig
from s3recon.exceptions import UNSUPPORTED_CODES, error_code
from s3recon.model import DesiredState, Facet, FacetValues
from s3recon.retry import Classifier, is_eventual_consistency, retry

logger = structlog.get_logger()


@dataclass(frozen=True)
class SyncContext:
    """Everything a synchronizer may consult besides its own value."""

    bucket: str
    desired: DesiredState
    # Last known snapshot, None when the bucket has never been read
    previous: FacetValues | None
    # True for the update pass that immediately follows creation
    creating: bool
    config: EngineConfig
    cancelled: asyncio.Event | None = None

    def previous_value(self, facet: Facet) -> Any:
        if self.previous is None:
            return None
        return self.previous.value(facet)

    async def retry(
        self,
        operation: Callable[[], Awaitable[Any]],
        classifier: Classifier = is_eventual_consistency,
        description: str = "facet_put",
    ) -> Any:
        """Run a remote call under the facet retry deadline."""
        return await retry(
            operation,
            classifier,
            self.config.facet_timeout,
            interval=self.config.retry_interval,
            max_interval=self.config.max_retry_interval,
            cancelled=self.cancelled,
            description=description,
        )


class FacetSynchronizer:
    """Base class for the per-facet synchronizers."""

    facet: Facet

    def check_value(self, value: Any, ctx: SyncContext) -> None:
        """
        Raise ValidationError for values that are wrong whatever the bucket holds.

        Only the desired state may be consulted here, so these checks can
        run before the bucket has been read.
        """
        return None

    def validate(self, value: Any, ctx: SyncContext) -> None:
        """Raise ValidationError for values the remote must never see."""
        self.check_value(value, ctx)

    async def apply(self, client: Any, ctx: SyncContext, value: Any) -> None:
        raise NotImplementedError

    async def read(self, client: Any, bucket: str) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(facet={self.facet.value!r})"


async def read_optional(
    call: Callable[[], Awaitable[Dict[str, Any]]],
    not_configured: Iterable[str] = (),
) -> Dict[str, Any] | None:
    """
    Perform a read that may legitimately find nothing.

    Returns None when the remote reports the configuration as missing or the
    feature as unsupported (S3-compatible servers often lack some facets).
    Every other error propagates.
    """
    tolerated = frozenset(not_configured) | UNSUPPORTED_CODES
    try:
        return await call()
    except ClientError as exc:
        code = error_code(exc)
        if code in tolerated:
            logger.debug("facet_not_configured", error_code=code)
            return None
        raise


def tag_set(tags: Dict[str, str]) -> list:
    """Tags in the remote API's Key/Value list form, sorted by key."""
    return [{"Key": key, "Value": tags[key]} for key in sorted(tags)]


def tags_from_set(items: Iterable[Dict[str, str]] | None) -> Dict[str, str]:
    return {item["Key"]: item["Value"] for item in items or ()}
