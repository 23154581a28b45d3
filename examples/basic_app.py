# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example: reconcile a static-site bucket with s3recon.

This example demonstrates the functional builder, a full reconcile pass,
an incremental update and a forced destroy.

Run with:
    python examples/basic_app.py

Environment variables:
    AWS_ACCESS_KEY_ID: AWS access key
    AWS_SECRET_ACCESS_KEY: AWS secret key
    AWS_REGION: Region for the bucket (default: us-east-1)
    S3RECON_ENDPOINT_URL: Optional S3-compatible endpoint (MinIO, LocalStack)
    SITE_BUCKET_PREFIX: Prefix of the generated bucket name
"""

import asyncio
import os
from dataclasses import replace

import structlog

from s3recon.builder import (
    add_cors_rule,
    build_from_steps,
    enable_versioning,
    encrypt_with,
    expire_after,
    force_destroy,
    host_website,
    with_bucket_prefix,
    with_tags,
)
from s3recon.core import (
    delete_bucket,
    initialize_reconciler_state,
    reconcile,
    update_bucket,
)
from s3recon.env import create_config_from_env

logger = structlog.get_logger()


def site_bucket():
    """
    Desired state of a static-site bucket.

    Uses the functional builder so every step is a small pure function.
    """
    prefix = os.getenv("SITE_BUCKET_PREFIX", "s3recon-site-")
    return build_from_steps(
        lambda s: with_bucket_prefix(s, prefix),
        lambda s: host_website(s, "index.html", "404.html"),
        lambda s: add_cors_rule(s, ["GET", "HEAD"], ["*"], max_age_seconds=3600),
        enable_versioning,
        lambda s: expire_after(s, 30, prefix="tmp/"),
        encrypt_with,
        lambda s: with_tags(s, {"app": "site", "managed-by": "s3recon"}),
        force_destroy,
    )


async def main() -> None:
    config = create_config_from_env()
    state = await initialize_reconciler_state(config)

    # First pass creates the bucket and applies every facet
    created = await reconcile(config, state, site_bucket())
    logger.info(
        "site_bucket_ready",
        bucket=created.bucket,
        website=created.recorded.website_endpoint,
        facets=created.changed_facets,
    )

    # A second pass with one more tag only touches the tags facet
    desired = site_bucket().with_bucket(created.bucket)
    retagged = replace(desired, tags={**desired.tags, "stage": "demo"})
    updated = await update_bucket(config, state, retagged)
    logger.info("site_bucket_updated", bucket=updated.bucket, facets=updated.changed_facets)

    # force_destroy from the applied state empties the bucket first
    deleted = await delete_bucket(config, state)
    logger.info("site_bucket_deleted", bucket=deleted.bucket, versions=deleted.versions_deleted)


if __name__ == "__main__":
    asyncio.run(main())
