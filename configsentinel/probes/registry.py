"""
Probe provider registries.

Two registries live here:

- ProbeProviderRegistry: a class-level catalog of provider *classes*,
  populated by the @register_provider decorator, used to instantiate the
  built-in providers.
- ProbeRegistry: a per-orchestration map from provider name to provider
  *instance*, built from an injected list and looked up case-insensitively.
"""

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Type
import logging

from configsentinel.core.errors import DuplicateProviderError
from configsentinel.probes.protocols import ProbeProvider

logger = logging.getLogger(__name__)


class ProbeProviderRegistry:
    """
    Registry for probe provider implementations.

    Usage:
        # Registration (usually via decorator)
        ProbeProviderRegistry.register("filesystem", FileSystemProbe)

        # Lookup
        provider_class = ProbeProviderRegistry.get("filesystem")

        # Factory
        provider = ProbeProviderRegistry.create("filesystem")
    """

    _providers: Dict[str, Type[ProbeProvider]] = {}

    @classmethod
    def register(cls, provider_name: str, provider_class: Type[ProbeProvider]) -> None:
        """
        Register a probe provider class.

        Args:
            provider_name: Provider identifier (e.g., 'registry', 'filesystem')
            provider_class: The provider class to register
        """
        key = provider_name.lower()
        if key in cls._providers:
            logger.warning(
                f"Overwriting existing probe provider registration: {provider_name}"
            )
        cls._providers[key] = provider_class
        logger.debug(f"Registered probe provider: {provider_name}")

    @classmethod
    def get(cls, provider_name: str) -> Optional[Type[ProbeProvider]]:
        """Get a provider class by name (case-insensitive)."""
        return cls._providers.get(provider_name.lower())

    @classmethod
    def create(cls, provider_name: str) -> ProbeProvider:
        """
        Create a probe provider instance.

        Raises:
            ValueError: If the provider is not registered
        """
        provider_class = cls.get(provider_name)
        if not provider_class:
            available = ", ".join(cls._providers.keys()) or "none"
            raise ValueError(
                f"Unknown probe provider: '{provider_name}'. "
                f"Available providers: {available}"
            )

        return provider_class()

    @classmethod
    def create_all(cls, names: Optional[Iterable[str]] = None) -> List[ProbeProvider]:
        """Instantiate the named providers, or every registered provider."""
        selected = list(names) if names is not None else cls.list_providers()
        return [cls.create(name) for name in selected]

    @classmethod
    def list_providers(cls) -> List[str]:
        """List all registered provider names."""
        return list(cls._providers.keys())

    @classmethod
    def is_registered(cls, provider_name: str) -> bool:
        return provider_name.lower() in cls._providers

    @classmethod
    def clear(cls) -> None:
        """
        Clear all registrations.

        Mainly useful for testing.
        """
        cls._providers.clear()


def register_provider(
    provider_name: str,
) -> Callable[[Type[ProbeProvider]], Type[ProbeProvider]]:
    """
    Decorator to auto-register a probe provider class.

    Usage:
        @register_provider("filesystem")
        class FileSystemProbe(ProbeProvider):
            ...
    """

    def decorator(cls: Type[ProbeProvider]) -> Type[ProbeProvider]:
        ProbeProviderRegistry.register(provider_name, cls)
        return cls

    return decorator


class ProbeRegistry:
    """
    Name-keyed lookup of provider instances for one orchestration.

    Names are matched case-insensitively. Two providers with the same name
    are rejected at construction.
    """

    def __init__(self, providers: Iterable[ProbeProvider]):
        self._providers: Dict[str, ProbeProvider] = {}
        for provider in providers:
            key = provider.name.lower()
            if key in self._providers:
                raise DuplicateProviderError(provider.name)
            self._providers[key] = provider

    def get(self, name: str) -> Optional[ProbeProvider]:
        """Resolve a provider by name; None when absent."""
        if not name:
            return None
        return self._providers.get(name.lower())

    def names(self) -> List[str]:
        return [p.name for p in self._providers.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._providers

    def __iter__(self) -> Iterator[ProbeProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
