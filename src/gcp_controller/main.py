"""Process-level runners for the GCP cluster infrastructure controller.

Each runner loads configuration and definitions, builds the compute
clients, performs one reconcile or delete call and maps the outcome to an
exit code. Scheduling and requeueing belong to whatever invokes the
process; exit code 3 asks it to run again after the requested delay.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .bootstrap import (
    BootstrapDataProvider,
    FileBootstrapDataProvider,
    StaticBootstrapDataProvider,
)
from .cloud import Cloud
from .compute import new_cloud
from .config import Config, ConfigurationError
from .reconciler import ClusterReconciler, MachineReconciler, ReconcileResult
from .scope import ClusterScope, MachineScope
from .spec_loader import SpecLoadError, load_cluster_definition, load_machine_definition

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_NOT_READY = 3

CloudFactory = Callable[[str, Config], Cloud]

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(config: Config | None = None) -> None:
    """Configure root logging: JSON to stdout, or plain text for local runs."""
    config = config or Config()

    handler = logging.StreamHandler(sys.stdout)
    if config.enable_json_logging:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(config.log_level)

    # Reduce noise from Google client libraries
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def exit_code(result: ReconcileResult) -> int:
    """Map a reconcile result to a process exit code."""
    if not result.success:
        return EXIT_FAILURE
    if result.requeue_after_seconds is not None:
        return EXIT_NOT_READY
    return EXIT_SUCCESS


def _cancel_on_signals() -> None:
    """Cancel the running task on SIGTERM/SIGINT."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    if task is None:
        return

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal, cancelling", extra={"signal": sig.name})
        task.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))


async def run_cluster(
    cluster_spec: Path,
    *,
    delete: bool = False,
    config: Config | None = None,
    cloud_factory: CloudFactory = new_cloud,
) -> int:
    """Reconcile or delete one cluster.

    Returns:
        Exit code (0 success, 1 failure, 3 not ready yet).
    """
    try:
        config = config or Config.from_env()
        definition = load_cluster_definition(cluster_spec)
    except (ConfigurationError, SpecLoadError) as e:
        logger.error("Failed to load configuration", extra={"error": str(e)})
        return EXIT_FAILURE

    scope = ClusterScope(definition)
    logger.info(
        "Starting cluster %s",
        "delete" if delete else "reconcile",
        extra={"cluster": scope.name, "project": scope.project, "region": scope.region},
    )

    try:
        cloud = cloud_factory(scope.project, config)
    except Exception as e:
        logger.error(
            "Failed to create compute clients",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_FAILURE

    reconciler = ClusterReconciler(scope, cloud, config)
    try:
        result = await (reconciler.delete() if delete else reconciler.reconcile())
    except asyncio.CancelledError:
        logger.warning("Cluster reconciliation cancelled", extra={"cluster": scope.name})
        return EXIT_FAILURE

    if result.cluster_status is not None and result.cluster_status.control_plane_endpoint:
        endpoint = result.cluster_status.control_plane_endpoint
        logger.info(
            "Control plane endpoint",
            extra={"cluster": scope.name, "host": endpoint.host, "port": endpoint.port},
        )
    return exit_code(result)


async def run_machine(
    cluster_spec: Path,
    machine_spec: Path,
    *,
    bootstrap_data: Path | None = None,
    delete: bool = False,
    config: Config | None = None,
    cloud_factory: CloudFactory = new_cloud,
) -> int:
    """Reconcile or delete one machine of a cluster.

    ``bootstrap_data`` is required for reconcile and ignored for delete.

    Returns:
        Exit code (0 success, 1 failure, 3 instance not running yet).
    """
    try:
        config = config or Config.from_env()
        cluster = ClusterScope(load_cluster_definition(cluster_spec))
        scope = MachineScope(cluster, load_machine_definition(machine_spec))
    except (ConfigurationError, SpecLoadError) as e:
        logger.error("Failed to load configuration", extra={"error": str(e)})
        return EXIT_FAILURE

    if not delete and bootstrap_data is None:
        logger.error("Bootstrap data file is required", extra={"machine": scope.name})
        return EXIT_FAILURE

    try:
        cloud = cloud_factory(cluster.project, config)
    except Exception as e:
        logger.error(
            "Failed to create compute clients",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_FAILURE

    bootstrap: BootstrapDataProvider = (
        FileBootstrapDataProvider(bootstrap_data)
        if bootstrap_data is not None
        else StaticBootstrapDataProvider(None)
    )
    reconciler = MachineReconciler(scope, cloud, bootstrap, config)
    try:
        result = await (reconciler.delete() if delete else reconciler.reconcile())
    except asyncio.CancelledError:
        logger.warning(
            "Machine reconciliation cancelled",
            extra={"cluster": cluster.name, "machine": scope.name},
        )
        return EXIT_FAILURE

    return exit_code(result)


def run_async(coro: Coroutine[Any, Any, int]) -> int:
    """Run a runner coroutine with signal-driven cancellation."""

    async def runner() -> int:
        _cancel_on_signals()
        return await coro

    return asyncio.run(runner())
