# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 Reconciler Change Detection - Which facets need a remote call.

A facet changes when its presence differs between the old and new snapshot
or when their canonical forms differ. Canonical forms are chosen so that
equal configurations compare equal regardless of ordering or formatting:

- scalars and policies compare by value (policies are normalized JSON)
- tags compare as dicts
- single records compare by fingerprint
- collections compare as fingerprint sets
"""

from dataclasses import is_dataclass, replace
from typing import Any, FrozenSet, Set, Tuple

from s3recon.fingerprint import fingerprint, fingerprint_set
from s3recon.model import Facet, FacetValues, LifecycleRule, is_absent

# Facets the remote API cannot report back in the form they were written
WRITE_ONLY_FACETS = frozenset({Facet.ACL})


def canonical_form(facet: Facet, value: Any) -> Any:
    """Comparable form of a facet value; None when the facet is absent."""
    if is_absent(facet, value):
        return None
    if facet == Facet.LIFECYCLE:
        return fingerprint_set(replace(rule, id=None) for rule in value)
    if isinstance(value, tuple):
        return fingerprint_set(value)
    if isinstance(value, dict):
        return tuple(sorted(value.items()))
    if is_dataclass(value):
        return fingerprint(value)
    return value


def _explicit_ids(rules: Tuple[LifecycleRule, ...]) -> FrozenSet[str]:
    return frozenset(rule.id for rule in rules if rule.id)


def facet_changed(facet: Facet, old: Any, new: Any) -> bool:
    if canonical_form(facet, old) != canonical_form(facet, new):
        return True
    if facet == Facet.LIFECYCLE and not is_absent(facet, new):
        # Ids left unset by the caller are assigned remotely; only the ones
        # the caller pinned have to match.
        return not _explicit_ids(new) <= _explicit_ids(old or ())
    return False


def changed_facets(
    old: FacetValues | None,
    new: FacetValues,
    *,
    creating: bool = False,
) -> Set[Facet]:
    """
    Decide which facets need to be synchronized.

    Args:
        old: Last known snapshot, or None on the first reconciliation
        new: Desired facet values
        creating: True for the pass right after bucket creation, where the
            ACL was already sent with the create call

    Returns:
        Set of facets whose remote state must change
    """
    changed: Set[Facet] = set()
    for facet in Facet:
        if creating and facet == Facet.ACL:
            continue
        new_value = new.value(facet)
        old_value = old.value(facet) if old is not None else None
        if facet_changed(facet, old_value, new_value):
            changed.add(facet)
    return changed


def comparison_base(
    recorded: FacetValues | None,
    previous: FacetValues | None,
) -> FacetValues | None:
    """
    Snapshot to compare a new desired state against.

    The recorded state is authoritative, except for write-only facets whose
    last known value is the one last applied.
    """
    if recorded is None:
        return previous
    if previous is None:
        return recorded
    overrides = {facet.value: previous.value(facet) for facet in WRITE_ONLY_FACETS}
    return replace(recorded, **overrides)
