"""Provenance records for audit of every engine invocation.

Each cluster or machine reconcile/delete emits exactly one structured
record answering:
- "What did the controller do to cluster X, and when?"
- "Which controller version and which spec commit were running?"
- "Did it finish, and if not, why?"
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
CONTROLLER_VERSION = os.environ.get("CONTROLLER_VERSION", "dev")


@dataclass
class ReconcileProvenance:
    """Provenance record for one reconcile or delete call."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Identity
    cluster: str = ""
    machine: str = ""
    action: str = ""  # reconcile, delete
    controller_version: str = CONTROLLER_VERSION
    controller_instance_id: str = ""

    # Git source of truth
    git_commit_sha: str = ""
    git_branch: str = ""
    git_repo: str = ""

    # GCP context
    project: str = ""
    region: str = ""

    # Outcome
    ready: bool = False
    requeue_after_seconds: int | None = None
    duration_seconds: float = 0.0

    # Error tracking
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class ProvenanceLogger:
    """Emits provenance records to the structured log."""

    def __init__(self) -> None:
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")
        self._git_branch = os.environ.get("GIT_BRANCH", "")
        self._git_repo = os.environ.get("GIT_REPO", "")
        self._instance_id = os.environ.get("CONTAINER_INSTANCE_ID", "")

    def create_provenance(
        self,
        cluster: str,
        action: str,
        project: str,
        region: str,
        machine: str | None = None,
    ) -> ReconcileProvenance:
        """Create a provenance record for one engine call.

        Args:
            cluster: Cluster name.
            action: ``reconcile`` or ``delete``.
            project: Target GCP project.
            region: Cluster region.
            machine: Machine name for machine-level calls.

        Returns:
            Initialized provenance record.
        """
        return ReconcileProvenance(
            cluster=cluster,
            machine=machine or "",
            action=action,
            controller_version=CONTROLLER_VERSION,
            controller_instance_id=self._instance_id,
            git_commit_sha=self._git_commit_sha,
            git_branch=self._git_branch,
            git_repo=self._git_repo,
            project=project,
            region=region,
        )

    def log_provenance(self, provenance: ReconcileProvenance) -> None:
        """Log a completed provenance record.

        Failed calls log at ERROR, calls that asked to be requeued at
        WARNING, everything else at INFO.
        """
        log_level = logging.INFO
        if provenance.error:
            log_level = logging.ERROR
        elif provenance.requeue_after_seconds is not None:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Reconciliation provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "cluster": provenance.cluster,
                "action": provenance.action,
                "ready": provenance.ready,
                "git_commit": provenance.git_commit_sha,
                "controller_version": provenance.controller_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )


_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
