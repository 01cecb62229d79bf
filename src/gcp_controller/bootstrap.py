"""Bootstrap payload providers for machine instances.

An instance cannot be created without its init payload (cloud-init user
data). The payload is produced outside this controller; providers only
fetch it. A provider failure is a precondition failure for the machine.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from .config import MAX_BOOTSTRAP_DATA_SIZE_BYTES
from .errors import BootstrapDataError

logger = logging.getLogger(__name__)


class BootstrapDataProvider(Protocol):
    """Source of the opaque bootstrap payload of one machine."""

    async def get_bootstrap_data(self) -> str: ...


class StaticBootstrapDataProvider:
    """Provider returning a payload known up front."""

    def __init__(self, data: str | None) -> None:
        self._data = data

    async def get_bootstrap_data(self) -> str:
        if not self._data:
            raise BootstrapDataError("bootstrap data is not available yet")
        return self._data


class FileBootstrapDataProvider:
    """Provider reading the payload from a file, e.g. a mounted secret."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> str:
        if not self._path.exists():
            raise BootstrapDataError(f"bootstrap data file not found: {self._path}")

        try:
            file_size = self._path.stat().st_size
        except OSError as e:
            raise BootstrapDataError(f"failed to stat bootstrap data file {self._path}: {e}") from e

        if file_size > MAX_BOOTSTRAP_DATA_SIZE_BYTES:
            raise BootstrapDataError(
                f"bootstrap data exceeds maximum size of {MAX_BOOTSTRAP_DATA_SIZE_BYTES} bytes: "
                f"{self._path}"
            )

        try:
            data = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise BootstrapDataError(f"failed to read bootstrap data file {self._path}: {e}") from e

        if not data.strip():
            raise BootstrapDataError(f"bootstrap data file is empty: {self._path}")
        return data

    async def get_bootstrap_data(self) -> str:
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._read)
        logger.debug("Loaded bootstrap data", extra={"path": str(self._path), "size": len(data)})
        return data
