"""Compute Engine API mock for integration testing.

This package provides an in-memory implementation of the capability sets
the reconcilers use, so full reconcile/delete cycles run without GCP
connectivity.

Key Features:
- In-memory state per resource kind with self-links and ids
- Instance group membership with instance status filtering
- Call recording (reads vs. mutations) for idempotence checks
- Error injection for testing failure scenarios

Usage:
    from gcp_mock import MockGCPContext

    ctx = MockGCPContext()
    result = await ClusterReconciler(scope, ctx.cloud).reconcile()
    assert ctx.state.resource_count("networks") == 1
"""

from .context import DEFAULT_REGION, DEFAULT_ZONES, MockGCPContext, create_mock_cloud
from .resources import (
    MockCall,
    MockComputeState,
    MockInstanceGroupClient,
    MockResourceClient,
    MockZoneLister,
)

__all__ = [
    "DEFAULT_REGION",
    "DEFAULT_ZONES",
    "MockCall",
    "MockComputeState",
    "MockGCPContext",
    "MockInstanceGroupClient",
    "MockResourceClient",
    "MockZoneLister",
    "create_mock_cloud",
]
