"""Windows registry value probe."""

import asyncio
import logging
import sys
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field

from configsentinel.core.cancellation import CancellationToken
from configsentinel.probes.protocols import ProbeProvider, ProbeResult
from configsentinel.probes.registry import register_provider

logger = logging.getLogger(__name__)

_HIVE_NAMES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKCU": "HKEY_CURRENT_USER",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKEY_CLASSES_ROOT": "HKEY_CLASSES_ROOT",
    "HKU": "HKEY_USERS",
    "HKEY_USERS": "HKEY_USERS",
    "HKCC": "HKEY_CURRENT_CONFIG",
    "HKEY_CURRENT_CONFIG": "HKEY_CURRENT_CONFIG",
}


class RegistryParameters(BaseModel):
    hive: str = "HKLM"
    key: str = Field(..., min_length=1)
    value_name: str = ""  # Empty string reads the key's default value
    view: Literal["default", "32", "64"] = "default"


@register_provider("registry")
class RegistryProbe(ProbeProvider):
    """
    Read a value from the Windows registry.

    A missing key or value is a successful probe with value None, so
    Exists / NotExists rules work. On non-Windows platforms every execution
    is a probe failure.

    Parameters:
        hive: HKLM, HKCU, HKCR, HKU, HKCC (or their long names)
        key: Subkey path, e.g. SOFTWARE\\Policies\\Microsoft\\Windows
        value_name: Value to read
        view: Registry view to use ("32", "64" or "default")
    """

    @property
    def name(self) -> str:
        return "registry"

    async def execute(
        self,
        parameters: Mapping[str, Any],
        cancellation: CancellationToken,
    ) -> ProbeResult:
        cancellation.raise_if_cancelled()

        if sys.platform != "win32":
            return ProbeResult.failed("Registry is not available on this platform")

        params = self.parse_parameters(RegistryParameters, parameters)
        if isinstance(params, ProbeResult):
            return params

        hive_name = _HIVE_NAMES.get(params.hive.upper())
        if hive_name is None:
            return ProbeResult.failed(f"Unknown registry hive: {params.hive}")

        result = await asyncio.to_thread(self._read, hive_name, params)
        cancellation.raise_if_cancelled()
        return result

    def _read(self, hive_name: str, params: RegistryParameters) -> ProbeResult:
        import winreg

        location = f"{hive_name}\\{params.key}"
        access = winreg.KEY_READ
        if params.view == "64":
            access |= winreg.KEY_WOW64_64KEY
        elif params.view == "32":
            access |= winreg.KEY_WOW64_32KEY

        try:
            with winreg.OpenKey(getattr(winreg, hive_name), params.key, 0, access) as key:
                value, value_type = winreg.QueryValueEx(key, params.value_name)
        except FileNotFoundError:
            return ProbeResult.ok(
                None,
                f"Registry value not found: {location}\\{params.value_name}",
                path=location,
                value_name=params.value_name,
            )
        except PermissionError:
            return ProbeResult.failed(f"Access denied: {location}", path=location)
        except OSError as e:
            logger.debug(f"Registry probe failed for {location}: {e}")
            return ProbeResult.failed(f"Cannot read {location}: {e}", path=location)

        return ProbeResult.ok(
            value,
            path=location,
            value_name=params.value_name,
            value_type=value_type,
        )
