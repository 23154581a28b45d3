# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Builder - Functional builder for desired states.

This module provides pure functions for building DesiredState objects.
Each function takes a state dict in its JSON shape and returns a new dict
with the modification applied (immutable updates). build_desired_state()
turns the final dict into a validated DesiredState.
"""

import json
from typing import Any, Callable, Dict, List

from s3recon.model import DesiredState
from s3recon.serialization import desired_state_from_dict


# Type alias for builder functions
StateDict = Dict[str, Any]
BuilderFunc = Callable[[StateDict], StateDict]


def create_empty_state() -> StateDict:
    """
    Create an initial desired-state dictionary.

    Returns:
        Dict with the private ACL and no other facets
    """
    return {"acl": "private", "tags": {}, "cors": [], "lifecycle": []}


def with_bucket(state: StateDict, bucket: str) -> StateDict:
    """
    Set an explicit bucket name.

    Args:
        state: Current desired-state dictionary
        bucket: Bucket name

    Returns:
        New dictionary with the name set and any prefix cleared
    """
    return {**state, "bucket": bucket, "bucket_prefix": None}


def with_bucket_prefix(state: StateDict, prefix: str) -> StateDict:
    """Let the engine generate a unique name starting with prefix."""
    return {**state, "bucket_prefix": prefix, "bucket": None}


def in_region(state: StateDict, region: str) -> StateDict:
    return {**state, "region": region}


def with_acl(state: StateDict, acl: str) -> StateDict:
    return {**state, "acl": acl}


def with_policy(state: StateDict, policy: str | Dict[str, Any]) -> StateDict:
    """
    Attach a bucket policy.

    Args:
        state: Current desired-state dictionary
        policy: Policy document as a JSON string or a dict

    Returns:
        New dictionary with the policy set
    """
    document = policy if isinstance(policy, str) else json.dumps(policy)
    return {**state, "policy": document}


def add_cors_rule(
    state: StateDict,
    methods: List[str],
    origins: List[str],
    *,
    headers: List[str] | None = None,
    expose_headers: List[str] | None = None,
    max_age_seconds: int | None = None,
) -> StateDict:
    rule = {
        "allowed_methods": list(methods),
        "allowed_origins": list(origins),
        "allowed_headers": list(headers or []),
        "expose_headers": list(expose_headers or []),
        "max_age_seconds": max_age_seconds,
    }
    return {**state, "cors": list(state.get("cors") or []) + [rule]}


def host_website(
    state: StateDict,
    index_document: str = "index.html",
    error_document: str | None = None,
) -> StateDict:
    """Serve the bucket as a static website."""
    return {
        **state,
        "website": {"index_document": index_document, "error_document": error_document},
    }


def redirect_all_requests(state: StateDict, target: str) -> StateDict:
    """
    Redirect every website request to another host.

    Args:
        state: Current desired-state dictionary
        target: Host name, or a URL such as https://example.com/path

    Returns:
        New dictionary with a redirect-only website configuration
    """
    return {**state, "website": {"redirect_all_requests_to": target}}


def enable_versioning(state: StateDict, *, mfa_delete: bool = False) -> StateDict:
    return {**state, "versioning": {"enabled": True, "mfa_delete": mfa_delete}}


def log_to(state: StateDict, target_bucket: str, target_prefix: str = "") -> StateDict:
    """Deliver server access logs to another bucket."""
    return {
        **state,
        "logging": {"target_bucket": target_bucket, "target_prefix": target_prefix},
    }


def add_lifecycle_rule(state: StateDict, rule: Dict[str, Any]) -> StateDict:
    """
    Add a lifecycle rule.

    Example:
        add_lifecycle_rule(state, {
            "enabled": True,
            "prefix": "logs/",
            "expiration": {"days": 90},
        })
    """
    return {**state, "lifecycle": list(state.get("lifecycle") or []) + [dict(rule)]}


def expire_after(state: StateDict, days: int, *, prefix: str = "") -> StateDict:
    """Shortcut for a lifecycle rule expiring objects under prefix."""
    return add_lifecycle_rule(
        state,
        {"enabled": True, "prefix": prefix, "expiration": {"days": days}},
    )


def enable_acceleration(state: StateDict) -> StateDict:
    return {**state, "acceleration": "Enabled"}


def requester_pays(state: StateDict) -> StateDict:
    return {**state, "request_payer": "Requester"}


def replicate_to(
    state: StateDict,
    role: str,
    destination_bucket_arn: str,
    *,
    storage_class: str | None = None,
    rule_id: str | None = None,
) -> StateDict:
    """
    Replicate every object to another bucket.

    Versioning is enabled as well, since replication requires it.
    """
    rule = {
        "id": rule_id,
        "status": "Enabled",
        "prefix": "",
        "destination": {"bucket": destination_bucket_arn, "storage_class": storage_class},
    }
    state = enable_versioning(state)
    return {**state, "replication": {"role": role, "rules": [rule]}}


def encrypt_with(
    state: StateDict,
    sse_algorithm: str = "AES256",
    kms_master_key_id: str | None = None,
) -> StateDict:
    return {
        **state,
        "encryption": {"sse_algorithm": sse_algorithm, "kms_master_key_id": kms_master_key_id},
    }


def lock_objects(
    state: StateDict,
    mode: str | None = None,
    *,
    days: int | None = None,
    years: int | None = None,
) -> StateDict:
    """
    Enable object lock, optionally with a default retention rule.

    Object lock can only be enabled when the bucket is created.
    """
    rule = {"mode": mode, "days": days, "years": years} if mode else None
    return {**state, "object_lock": {"enabled": True, "rule": rule}}


def with_tags(state: StateDict, tags: Dict[str, str]) -> StateDict:
    return {**state, "tags": {**(state.get("tags") or {}), **tags}}


def force_destroy(state: StateDict) -> StateDict:
    """Allow destroying the bucket together with every object version."""
    return {**state, "force_destroy": True}


def build_desired_state(state: StateDict) -> DesiredState:
    """
    Validate and build an immutable DesiredState.

    Raises:
        ValidationError: If any facet value is rejected
    """
    return desired_state_from_dict(state)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

        state = pipe(
            lambda s: with_bucket(s, "my-bucket"),
            enable_versioning,
        )(create_empty_state())
    """

    def composed(state: StateDict) -> StateDict:
        result = state
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> DesiredState:
    """
    Build a desired state by applying a sequence of builder functions.

    Example:
        desired = build_from_steps(
            lambda s: with_bucket(s, "my-bucket"),
            enable_versioning,
            lambda s: with_tags(s, {"team": "data"}),
        )
    """
    return build_desired_state(pipe(*steps)(create_empty_state()))


def create_desired_state(
    bucket: str | None = None,
    *,
    bucket_prefix: str | None = None,
    region: str | None = None,
    **facets: Any,
) -> DesiredState:
    """
    Create a desired state from simple parameters.

    Facet keyword arguments take the same JSON shape as a desired-state file.

    Example:
        desired = create_desired_state(
            "my-bucket",
            region="eu-west-1",
            versioning={"enabled": True},
            tags={"team": "data"},
        )
    """
    state = create_empty_state()
    if bucket:
        state = with_bucket(state, bucket)
    elif bucket_prefix:
        state = with_bucket_prefix(state, bucket_prefix)
    if region:
        state = in_region(state, region)
    state.update(facets)
    return build_desired_state(state)
