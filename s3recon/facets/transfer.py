# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Transfer facets: acceleration and request payment.
"""

from typing import Any

from s3recon.facets.base import FacetSynchronizer, SyncContext, read_optional
from s3recon.model import FACET_DEFAULTS, Facet


class AccelerationSynchronizer(FacetSynchronizer):
    """
    Transfer acceleration.

    Only reached when the value changed, so an absent value here means it
    was previously set and must be suspended.
    """

    facet = Facet.ACCELERATION

    async def apply(self, client: Any, ctx: SyncContext, value: str | None) -> None:
        status = value or FACET_DEFAULTS[Facet.ACCELERATION]

        async def put():
            return await client.put_bucket_accelerate_configuration(
                Bucket=ctx.bucket,
                AccelerateConfiguration={"Status": status},
            )

        await ctx.retry(put, description="put_bucket_accelerate_configuration")

    async def read(self, client: Any, bucket: str) -> str | None:
        # Regions without acceleration answer MethodNotAllowed/UnsupportedArgument
        response = await read_optional(
            lambda: client.get_bucket_accelerate_configuration(Bucket=bucket)
        )
        return (response or {}).get("Status") or None


class RequestPayerSynchronizer(FacetSynchronizer):
    facet = Facet.REQUEST_PAYER

    async def apply(self, client: Any, ctx: SyncContext, value: str | None) -> None:
        payer = value or FACET_DEFAULTS[Facet.REQUEST_PAYER]

        async def put():
            return await client.put_bucket_request_payment(
                Bucket=ctx.bucket,
                RequestPaymentConfiguration={"Payer": payer},
            )

        await ctx.retry(put, description="put_bucket_request_payment")

    async def read(self, client: Any, bucket: str) -> str | None:
        response = await read_optional(lambda: client.get_bucket_request_payment(Bucket=bucket))
        return (response or {}).get("Payer") or None
