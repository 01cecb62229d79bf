"""Firewall rule reconciliation."""

from __future__ import annotations

import logging
from typing import Any

from .cloud import Cloud, delete_if_exists, get_or_none, insert_tolerating_conflict
from .keys import ResourceKey
from .models import Firewall
from .scope import ClusterScope

logger = logging.getLogger(__name__)

# Output-only fields never compared against the desired spec
_OUTPUT_FIELDS = {"self_link", "id"}


def firewall_drifted(desired: Firewall, observed: Firewall) -> bool:
    """Check whether ``observed`` differs from ``desired`` on the fields it sets.

    Fields left unset in the desired spec are provider-defaulted and ignored.
    """
    wanted: dict[str, Any] = desired.model_dump(exclude_none=True, exclude=_OUTPUT_FIELDS)
    actual = observed.model_dump(include=set(wanted))
    return wanted != actual


class FirewallReconciler:
    """Create-or-update cycle over the cluster's firewall rules."""

    def __init__(self, scope: ClusterScope, cloud: Cloud) -> None:
        self._scope = scope
        self._firewalls = cloud.firewalls

    async def reconcile(self) -> None:
        """Insert missing rules and update drifted ones.

        Raises:
            GoogleAPICallError: First provider error encountered.
        """
        for spec in self._scope.firewall_rules_spec():
            key = ResourceKey.global_(spec.name)
            logger.debug("Looking for firewall rule", extra={"resource": str(key)})
            observed = await get_or_none(self._firewalls, key)

            if observed is None:
                logger.info("Creating firewall rule", extra={"resource": str(key)})
                if await insert_tolerating_conflict(
                    self._firewalls, key, spec, kind="firewall rule"
                ):
                    continue
                observed = await self._firewalls.get(key)

            if firewall_drifted(spec, observed):
                logger.info("Updating firewall rule", extra={"resource": str(key)})
                await self._firewalls.update(key, spec)

    async def delete(self) -> None:
        """Delete every desired rule, tolerating missing rules."""
        for spec in self._scope.firewall_rules_spec():
            await delete_if_exists(
                self._firewalls, ResourceKey.global_(spec.name), kind="firewall rule"
            )
