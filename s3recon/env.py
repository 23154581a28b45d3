# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers and engine profiles.

These helpers are small wrappers around EngineConfig and
EngineConfig.with_updates(). They make it easy to:

- Build an engine configuration from environment variables
- Apply ready-made retry profiles
"""

from __future__ import annotations

import os
from pathlib import Path

from s3recon.config import EngineConfig
from s3recon.errors import explain_invalid_rounds_env, explain_invalid_timeout_env
from s3recon.exceptions import ConfigurationError


def _parse_seconds(name: str, value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_timeout_env(name, value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_timeout_env(name, value))
    return seconds


def _parse_rounds(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        rounds = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_rounds_env(value)) from exc
    if rounds < 1:
        raise ConfigurationError(explain_invalid_rounds_env(value))
    return rounds


def create_config_from_env(**overrides) -> EngineConfig:
    """
    Create an EngineConfig from environment variables.

    Optional environment variables:
        - AWS_REGION: Default region for new buckets (default: us-east-1)
        - S3RECON_ENDPOINT_URL: Custom S3 endpoint, e.g. http://localhost:9000
        - S3RECON_CREATE_TIMEOUT: Seconds to retry bucket creation (default: 300)
        - S3RECON_FACET_TIMEOUT: Seconds to retry a facet update (default: 60)
        - S3RECON_RETRY_INTERVAL: First backoff delay in seconds (default: 2)
        - S3RECON_VAULT_PATH: SQLite snapshot vault (default: ./s3recon_vault.db)
        - S3RECON_MAX_DESTROY_ROUNDS: Forced destroy round limit (default: 10)

    Keyword overrides win over the environment.
    """

    defaults = EngineConfig()
    vault_path_env = os.getenv("S3RECON_VAULT_PATH")

    values = {
        "region": os.getenv("AWS_REGION") or defaults.region,
        "endpoint_url": os.getenv("S3RECON_ENDPOINT_URL") or None,
        "create_timeout": _parse_seconds(
            "S3RECON_CREATE_TIMEOUT",
            os.getenv("S3RECON_CREATE_TIMEOUT"),
            defaults.create_timeout,
        ),
        "facet_timeout": _parse_seconds(
            "S3RECON_FACET_TIMEOUT",
            os.getenv("S3RECON_FACET_TIMEOUT"),
            defaults.facet_timeout,
        ),
        "retry_interval": _parse_seconds(
            "S3RECON_RETRY_INTERVAL",
            os.getenv("S3RECON_RETRY_INTERVAL"),
            defaults.retry_interval,
        ),
        "vault_path": Path(vault_path_env) if vault_path_env else defaults.vault_path,
        "max_destroy_rounds": _parse_rounds(
            os.getenv("S3RECON_MAX_DESTROY_ROUNDS"),
            defaults.max_destroy_rounds,
        ),
    }
    values.update(overrides)

    if values["retry_interval"] > defaults.max_retry_interval and "max_retry_interval" not in values:
        values["max_retry_interval"] = values["retry_interval"]

    return EngineConfig(**values)


# ============================================================================
# Profiles
# ============================================================================

def patient(config: EngineConfig) -> EngineConfig:
    """
    Tolerate slow control planes.

    - At least 15 minutes for bucket creation
    - At least 5 minutes per facet update
    """

    return config.with_updates(
        create_timeout=max(config.create_timeout, 900.0),
        facet_timeout=max(config.facet_timeout, 300.0),
    )


def fail_fast(config: EngineConfig) -> EngineConfig:
    """
    Surface errors quickly, e.g. in CI pipelines.

    - Short creation and facet deadlines
    - A single forced destroy round
    """

    return config.with_updates(
        create_timeout=min(config.create_timeout, 30.0),
        facet_timeout=min(config.facet_timeout, 10.0),
        retry_interval=min(config.retry_interval, 1.0),
        max_retry_interval=min(config.max_retry_interval, 5.0),
        max_destroy_rounds=1,
    )


def local_endpoint(config: EngineConfig, endpoint_url: str = "http://localhost:9000") -> EngineConfig:
    """
    Target an S3-compatible server running locally.

    Local servers are strongly consistent, so retry intervals are short.
    """

    return config.with_updates(
        endpoint_url=endpoint_url,
        retry_interval=0.1,
        max_retry_interval=1.0,
    )
