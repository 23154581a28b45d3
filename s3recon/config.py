# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Configuration - Immutable engine settings.

The engine configuration is frozen after creation; derive variants with
with_updates() instead of mutating it.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List

from s3recon.exceptions import ConfigurationError

_REGION_SHAPE = ("us-", "eu-", "ap-", "sa-", "ca-", "me-", "af-", "il-", "mx-", "cn-")


def _looks_like_region(region: str) -> bool:
    return region.startswith(_REGION_SHAPE) and region.count("-") >= 2


@dataclass(frozen=True)
class EngineConfig:
    """
    Settings shared by every reconciliation run.

    Timeouts are in seconds.
    """

    # Region used when a desired state does not name one
    region: str = "us-east-1"

    # Custom S3 endpoint (MinIO, LocalStack, ...)
    endpoint_url: str | None = None

    # How long to retry bucket creation while the name is still being released
    create_timeout: float = 300.0

    # How long to retry a facet put through eventual-consistency errors
    facet_timeout: float = 60.0

    # Backoff between retries, doubled after each attempt up to the cap
    retry_interval: float = 2.0
    max_retry_interval: float = 20.0

    # SQLite file holding snapshots and the operation log
    vault_path: Path = field(default_factory=lambda: Path("./s3recon_vault.db"))

    # Upper bound on empty-then-delete rounds during a forced destroy
    max_destroy_rounds: int = 10

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.region or not _looks_like_region(self.region):
            errors.append(f"Invalid region: {self.region!r}")

        if self.endpoint_url and not self.endpoint_url.startswith(("http://", "https://")):
            errors.append(f"endpoint_url must be an http(s) URL, got {self.endpoint_url!r}")

        for name in ("create_timeout", "facet_timeout", "retry_interval", "max_retry_interval"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be > 0, got {getattr(self, name)}")

        if self.max_retry_interval < self.retry_interval:
            errors.append("max_retry_interval must be >= retry_interval")

        if self.max_destroy_rounds < 1:
            errors.append(f"max_destroy_rounds must be >= 1, got {self.max_destroy_rounds}")

        if isinstance(self.vault_path, str):
            object.__setattr__(self, "vault_path", Path(self.vault_path))

        if errors:
            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "EngineConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        current = asdict(self)
        current.update(kwargs)
        return EngineConfig(**current)
