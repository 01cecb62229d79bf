"""Ownership marker for resources created by this controller.

Ownership is encoded in the free-text ``description`` field of a resource.
There is no separate ledger: a resource is self-owned iff its description
equals the tag for the cluster. An externally created resource whose
description happens to match is indistinguishable from a self-owned one.

Call sites must go through :func:`is_owned_by` so the encoding can change
(e.g. to structured labels) without touching the reconcilers.
"""

from __future__ import annotations

from typing import Any

OWNERSHIP_TAG_PREFIX = "gcp-controller-cluster-"


def cluster_tag(cluster_name: str) -> str:
    """Return the ownership tag written into resources created for a cluster."""
    if not cluster_name:
        raise ValueError("cluster_name cannot be empty")
    return f"{OWNERSHIP_TAG_PREFIX}{cluster_name}"


def is_owned_by(resource: Any, cluster_name: str) -> bool:
    """Check whether a resource was created by this controller for a cluster.

    Args:
        resource: Any observed resource exposing a ``description`` attribute.
            ``None`` is treated as not owned.
        cluster_name: Logical name of the cluster.

    Returns:
        True if the resource's description equals the cluster's tag.
    """
    if resource is None:
        return False
    return getattr(resource, "description", None) == cluster_tag(cluster_name)
