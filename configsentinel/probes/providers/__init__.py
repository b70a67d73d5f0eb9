"""
Built-in probe provider implementations.

Providers are auto-registered with ProbeProviderRegistry when imported.
"""

from configsentinel.probes.providers.environment import EnvironmentProbe
from configsentinel.probes.providers.filesystem import FileSystemProbe
from configsentinel.probes.providers.registry_value import RegistryProbe

__all__ = ["EnvironmentProbe", "FileSystemProbe", "RegistryProbe"]
