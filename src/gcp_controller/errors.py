"""Error taxonomy for the reconciliation engine.

- NotFound: ``google.api_core.exceptions.NotFound``. Expected; decides
  create-vs-update paths and is swallowed on delete paths.
- Provider errors: every other exception from a provider call. Always
  propagated unmodified, never retried here.
- PreconditionError: a required input is unavailable (e.g. bootstrap data).
  Fatal for the current resource.

Ownership mismatches are not errors; reconcilers log and skip.
"""

from __future__ import annotations

from google.api_core.exceptions import NotFound


class PreconditionError(Exception):
    """Raised when a required input for a reconciliation step is unavailable."""

    pass


class BootstrapDataError(PreconditionError):
    """Raised when the bootstrap payload for an instance cannot be retrieved."""

    pass


class ReconcileTimeoutError(Exception):
    """Raised when a reconcile or delete call exceeds its deadline."""

    pass


class OperationTimeoutError(Exception):
    """Raised when a provider operation does not finish within its deadline."""

    pass


def is_not_found(err: BaseException | None) -> bool:
    """Return True if ``err`` is the provider's not-found signal."""
    return isinstance(err, NotFound)
