"""Filesystem probe."""

import asyncio
import logging
import stat
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field

from configsentinel.core.cancellation import CancellationToken
from configsentinel.probes.protocols import ProbeProvider, ProbeResult
from configsentinel.probes.registry import register_provider

logger = logging.getLogger(__name__)

# Never read more than this into memory for `content`
MAX_CONTENT_BYTES = 1024 * 1024


class FileSystemParameters(BaseModel):
    path: str = Field(..., min_length=1)
    property: Literal["exists", "is_file", "is_dir", "size", "mode", "content"] = "exists"
    encoding: str = "utf-8"


@register_provider("filesystem")
class FileSystemProbe(ProbeProvider):
    """
    Inspect a path on the local filesystem.

    Properties:
        exists   -> bool
        is_file  -> bool
        is_dir   -> bool
        size     -> int (bytes), None when the path is missing
        mode     -> octal permission string such as "0644", None when missing
        content  -> text content (first MAX_CONTENT_BYTES), probe failure when missing

    Filesystem access runs in a worker thread so that slow or remote mounts
    do not block the event loop.
    """

    @property
    def name(self) -> str:
        return "filesystem"

    async def execute(
        self,
        parameters: Mapping[str, Any],
        cancellation: CancellationToken,
    ) -> ProbeResult:
        cancellation.raise_if_cancelled()

        params = self.parse_parameters(FileSystemParameters, parameters)
        if isinstance(params, ProbeResult):
            return params

        result = await asyncio.to_thread(self._read, params)
        cancellation.raise_if_cancelled()
        return result

    def _read(self, params: FileSystemParameters) -> ProbeResult:
        path = Path(params.path).expanduser()
        prop = params.property

        try:
            if prop == "exists":
                return ProbeResult.ok(path.exists(), path=str(path))
            if prop == "is_file":
                return ProbeResult.ok(path.is_file(), path=str(path))
            if prop == "is_dir":
                return ProbeResult.ok(path.is_dir(), path=str(path))

            if not path.exists():
                if prop == "content":
                    return ProbeResult.failed(f"Path not found: {path}", path=str(path))
                return ProbeResult.ok(None, f"Path not found: {path}", path=str(path))

            if prop == "size":
                return ProbeResult.ok(path.stat().st_size, path=str(path))
            if prop == "mode":
                return ProbeResult.ok(
                    f"{stat.S_IMODE(path.stat().st_mode):04o}", path=str(path)
                )

            with path.open("rb") as f:
                data = f.read(MAX_CONTENT_BYTES)
            return ProbeResult.ok(
                data.decode(params.encoding, errors="replace"),
                path=str(path),
                truncated=len(data) == MAX_CONTENT_BYTES,
            )
        except PermissionError:
            return ProbeResult.failed(f"Access denied: {path}", path=str(path))
        except OSError as e:
            logger.debug(f"Filesystem probe failed for {path}: {e}")
            return ProbeResult.failed(f"Cannot read {path}: {e}", path=str(path))
