# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Endpoints - Region-derived bucket attributes.

Pure functions that turn a bucket name and region into the addresses and
identifiers reported alongside a recorded state.
"""

import structlog

logger = structlog.get_logger()

DEFAULT_REGION = "us-east-1"

# Route 53 hosted zone ids of the S3 website endpoints
HOSTED_ZONE_IDS = {
    "us-east-1": "Z3AQBSTGFYJSTF",
    "us-east-2": "Z2O1EMRO9K5GLX",
    "us-west-1": "Z2F56UZL2M1ACD",
    "us-west-2": "Z3BJ6K6RIION7M",
    "ap-east-1": "ZNB98KWMFR0R6",
    "ap-south-1": "Z11RGJOFQNVJUP",
    "ap-northeast-1": "Z2M4EHUR26P7ZW",
    "ap-northeast-2": "Z3W03O7B5YMIYP",
    "ap-northeast-3": "Z2YQB5RD63NC85",
    "ap-southeast-1": "Z3O0J2DXBE1FTB",
    "ap-southeast-2": "Z1WCIGYICN2BYD",
    "ca-central-1": "Z1QDHH18159H29",
    "eu-central-1": "Z21DNDUVLTQW6Q",
    "eu-west-1": "Z1BKCTXD74EZPE",
    "eu-west-2": "Z3GKZC51ZF0DB4",
    "eu-west-3": "Z3R1K369G5AVDG",
    "eu-north-1": "Z3BAZG2TWCNX0D",
    "sa-east-1": "Z7KQH4QJS55SO",
    "us-gov-east-1": "Z2NIFVYYW2VKV1",
    "us-gov-west-1": "Z31GFT0UA1I2HV",
    "me-south-1": "Z1MPMWCPA7YB62",
    "cn-north-1": "Z5CN8UMXT92WN",
    "cn-northwest-1": "Z282HJ1KT0DH03",
}

# Regions whose website endpoints use a dash instead of a dot
LEGACY_WEBSITE_REGIONS = frozenset(
    {
        "ap-northeast-1",
        "ap-southeast-1",
        "ap-southeast-2",
        "eu-west-1",
        "sa-east-1",
        "us-east-1",
        "us-gov-west-1",
        "us-west-1",
        "us-west-2",
    }
)


def normalize_region(region: str | None) -> str:
    """The location API reports us-east-1 as an empty constraint."""
    if not region:
        return DEFAULT_REGION
    # Very old buckets report the EU alias
    if region == "EU":
        return "eu-west-1"
    return region


def is_china_region(region: str) -> bool:
    return region.startswith("cn-")


def partition_for_region(region: str) -> str:
    region = normalize_region(region)
    if is_china_region(region):
        return "aws-cn"
    if region.startswith("us-gov-"):
        return "aws-us-gov"
    return "aws"


def bucket_arn(bucket: str, partition: str = "aws") -> str:
    return f"arn:{partition}:s3:::{bucket}"


def bucket_domain_name(bucket: str) -> str:
    return f"{bucket}.s3.amazonaws.com"


def bucket_regional_domain_name(bucket: str, region: str) -> str:
    region = normalize_region(region)
    suffix = "amazonaws.com.cn" if is_china_region(region) else "amazonaws.com"
    return f"{bucket}.s3.{region}.{suffix}"


def hosted_zone_id(region: str) -> str | None:
    """
    Look up the website hosted zone id of a region.

    Unknown regions are logged and yield None rather than failing the read.
    """
    region = normalize_region(region)
    zone_id = HOSTED_ZONE_IDS.get(region)
    if zone_id is None:
        logger.warning("hosted_zone_id_unknown", region=region)
    return zone_id


def website_domain(region: str) -> str:
    region = normalize_region(region)
    if region in LEGACY_WEBSITE_REGIONS:
        return f"s3-website-{region}.amazonaws.com"
    if is_china_region(region):
        return f"s3-website.{region}.amazonaws.com.cn"
    return f"s3-website.{region}.amazonaws.com"


def website_endpoint(bucket: str, region: str) -> str:
    return f"{bucket}.{website_domain(region)}"
