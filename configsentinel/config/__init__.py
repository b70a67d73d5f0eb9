from configsentinel.config.settings import (
    EngineConfig,
    ProvidersConfig,
    SentinelSettings,
    YamlConfigSource,
)

__all__ = ["EngineConfig", "ProvidersConfig", "SentinelSettings", "YamlConfigSource"]
