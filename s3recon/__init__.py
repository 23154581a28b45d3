# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler - Declarative multi-facet reconciliation for S3 buckets.

Drives a bucket's ACL, policy, CORS, website, versioning, logging,
lifecycle, replication, encryption, object lock, acceleration, request
payment and tags to a desired state through idempotent, ordered API calls
that tolerate eventual consistency. Package name: s3recon.
"""

__version__ = "0.1.0"

# Desired state creation (user-facing API)
from s3recon.builder import create_desired_state
from s3recon.config import EngineConfig
from s3recon.model import DesiredState, Facet, RecordedState

# Core functions
from s3recon.core import (
    initialize_reconciler_state,
    create_bucket,
    update_bucket,
    read_bucket,
    delete_bucket,
    reconcile,
    import_bucket,
    get_metrics,
)

# Environment-based configuration and profiles (additional helpers)
from s3recon.env import (
    create_config_from_env,
    patient,
    fail_fast,
    local_endpoint,
)

__all__ = [
    # Version
    "__version__",
    # Desired state and configuration
    "create_desired_state",
    "DesiredState",
    "RecordedState",
    "Facet",
    "EngineConfig",
    # Core orchestration functions
    "initialize_reconciler_state",
    "create_bucket",
    "update_bucket",
    "read_bucket",
    "delete_bucket",
    "reconcile",
    "import_bucket",
    "get_metrics",
    # Environment helpers
    "create_config_from_env",
    "patient",
    "fail_fast",
    "local_endpoint",
]
