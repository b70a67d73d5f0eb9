"""
Config Sentinel probe providers.

A probe retrieves one piece of system state for a rule. This package holds
the provider contract, the registries, and the built-in providers:

- environment: environment variables
- filesystem: path existence, size, mode and content
- registry: Windows registry values

Usage:
    ```python
    from configsentinel.probes import ProbeProviderRegistry

    providers = ProbeProviderRegistry.create_all(["filesystem", "environment"])
    ```
"""

from configsentinel.probes.protocols import ProbeProvider, ProbeResult
from configsentinel.probes.registry import (
    ProbeProviderRegistry,
    ProbeRegistry,
    register_provider,
)

# Import built-in providers to trigger auto-registration
from configsentinel.probes.providers import (
    EnvironmentProbe,
    FileSystemProbe,
    RegistryProbe,
)

__all__ = [
    "ProbeProvider",
    "ProbeResult",
    "ProbeProviderRegistry",
    "ProbeRegistry",
    "register_provider",
    "EnvironmentProbe",
    "FileSystemProbe",
    "RegistryProbe",
]
