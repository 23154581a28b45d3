# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Facets - One synchronizer per bucket facet.

SYNCHRONIZERS is ordered like the Facet enum, which is the order facets are
applied in.
"""

from typing import Dict

from s3recon.facets.access import AclSynchronizer, PolicySynchronizer, TagsSynchronizer
from s3recon.facets.base import FacetSynchronizer, SyncContext, read_optional
from s3recon.facets.cors import CorsSynchronizer
from s3recon.facets.encryption import EncryptionSynchronizer, ObjectLockSynchronizer
from s3recon.facets.lifecycle import LifecycleSynchronizer
from s3recon.facets.replication import ReplicationSynchronizer
from s3recon.facets.transfer import AccelerationSynchronizer, RequestPayerSynchronizer
from s3recon.facets.versioning import LoggingSynchronizer, VersioningSynchronizer
from s3recon.facets.website import WebsiteSynchronizer
from s3recon.model import Facet

_ALL = (
    TagsSynchronizer(),
    PolicySynchronizer(),
    CorsSynchronizer(),
    WebsiteSynchronizer(),
    VersioningSynchronizer(),
    AclSynchronizer(),
    LoggingSynchronizer(),
    LifecycleSynchronizer(),
    AccelerationSynchronizer(),
    RequestPayerSynchronizer(),
    ReplicationSynchronizer(),
    EncryptionSynchronizer(),
    ObjectLockSynchronizer(),
)

SYNCHRONIZERS: Dict[Facet, FacetSynchronizer] = {
    facet: next(s for s in _ALL if s.facet == facet) for facet in Facet
}


def get_synchronizer(facet: Facet) -> FacetSynchronizer:
    return SYNCHRONIZERS[facet]


__all__ = [
    "SYNCHRONIZERS",
    "get_synchronizer",
    "FacetSynchronizer",
    "SyncContext",
    "read_optional",
]
