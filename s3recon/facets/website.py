# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Static website hosting facet.

A redirect target written as a URL (https://example.com/docs?x=1) is split
into the host name the remote stores (example.com/docs?x=1) and a protocol.
A bare target (example.com) is sent as a host name with no protocol. read()
reassembles the URL, so both forms survive a round trip unchanged.
"""

import json
from typing import Any, Dict
from urllib.parse import urlparse

from s3recon.exceptions import ValidationError
from s3recon.facets.base import FacetSynchronizer, SyncContext, read_optional
from s3recon.model import Facet, RedirectTarget, Website


def parse_redirect(target: str) -> RedirectTarget:
    parsed = urlparse(target)
    if parsed.scheme and parsed.netloc:
        return RedirectTarget(
            host=parsed.netloc,
            path=parsed.path,
            query=parsed.query,
            protocol=parsed.scheme,
        )
    return RedirectTarget(host=target)


def website_to_remote(website: Website) -> Dict[str, Any]:
    if website.redirect_all_requests_to:
        redirect = parse_redirect(website.redirect_all_requests_to)
        remote_redirect = {"HostName": redirect.host_name}
        if redirect.protocol:
            remote_redirect["Protocol"] = redirect.protocol
        return {"RedirectAllRequestsTo": remote_redirect}

    remote: Dict[str, Any] = {"IndexDocument": {"Suffix": website.index_document}}
    if website.error_document:
        remote["ErrorDocument"] = {"Key": website.error_document}
    if website.routing_rules:
        remote["RoutingRules"] = json.loads(website.routing_rules)
    return remote


def website_from_remote(remote: Dict[str, Any]) -> Website | None:
    redirect = remote.get("RedirectAllRequestsTo")
    if redirect:
        protocol = redirect.get("Protocol")
        host_name = redirect["HostName"]
        url = f"{protocol}://{host_name}" if protocol else host_name
        return Website(redirect_all_requests_to=url)

    index = (remote.get("IndexDocument") or {}).get("Suffix")
    error = (remote.get("ErrorDocument") or {}).get("Key")
    rules = remote.get("RoutingRules")
    if not index and not error and not rules:
        return None
    return Website(
        index_document=index,
        error_document=error,
        routing_rules=json.dumps(rules) if rules else None,
    )


class WebsiteSynchronizer(FacetSynchronizer):
    facet = Facet.WEBSITE

    def check_value(self, value: Website | None, ctx: SyncContext) -> None:
        if value is not None and not value.index_document and not value.redirect_all_requests_to:
            raise ValidationError(
                "Website needs index_document or redirect_all_requests_to",
                details={"bucket": ctx.bucket},
            )

    async def apply(self, client: Any, ctx: SyncContext, value: Website | None) -> None:
        if value is None:
            async def delete():
                return await client.delete_bucket_website(Bucket=ctx.bucket)

            await ctx.retry(delete, description="delete_bucket_website")
            return

        self.validate(value, ctx)
        configuration = website_to_remote(value)

        async def put():
            return await client.put_bucket_website(
                Bucket=ctx.bucket,
                WebsiteConfiguration=configuration,
            )

        await ctx.retry(put, description="put_bucket_website")

    async def read(self, client: Any, bucket: str) -> Website | None:
        response = await read_optional(
            lambda: client.get_bucket_website(Bucket=bucket),
            ("NoSuchWebsiteConfiguration",),
        )
        if not response:
            return None
        return website_from_remote(response)
