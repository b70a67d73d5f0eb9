"""
Config Sentinel configuration management using Pydantic Settings.

Configuration can be provided via:
1. csentinel.yaml config file
2. CSNTL_* env vars (nested with double underscore, e.g. CSNTL_ENGINE__MAX_CONCURRENCY)
3. .env file
4. Direct instantiation

Priority (highest wins): init kwargs > csentinel.yaml > env vars > .env > defaults

The simplified csentinel.yaml format:
    max_concurrency: 8
    timeout: 30            # default workflow timeout (seconds)
    enforce_product: false
    providers:             # built-in providers to enable (all when omitted)
      - filesystem
      - environment
    workflows:
      - ./workflows/baseline.yaml
    log_level: INFO

The nested form (engine:, providers: {enabled: [...]}) is accepted as well.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """Audit engine configuration."""

    # None = unbounded fan-out within a dependency layer
    max_concurrency: Optional[int] = Field(default=None, ge=1)
    # Applied to workflows that declare no timeout of their own
    default_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    # Product applicability is advisory unless this is set
    enforce_product: bool = False


class ProvidersConfig(BaseModel):
    """Built-in probe provider selection.

    Names refer to providers registered via @register_provider in the
    ProbeProviderRegistry (see configsentinel/probes/registry.py). An empty
    list enables every registered provider.
    """

    enabled: List[str] = Field(default_factory=list)

    @field_validator("enabled")
    @classmethod
    def normalize_names(cls, v: List[str]) -> List[str]:
        return [name.strip().lower() for name in v if name and name.strip()]


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that reads from a csentinel.yaml config file.

    Discovers config at:
    1. Explicit path passed via _config_path init kwarg
    2. $CSNTL_CONFIG env var
    3. ./csentinel.yaml
    4. ./csentinel.yml

    Maps simplified YAML keys to the nested SentinelSettings structure.
    """

    def __init__(
        self, settings_cls: Type[BaseSettings], config_path: Optional[str] = None
    ):
        super().__init__(settings_cls)
        self._config_path = config_path
        self._yaml_data: Optional[Dict[str, Any]] = None
        self._load()

    def _discover_config_file(self) -> Optional[Path]:
        """Find the config file to load."""
        if self._config_path:
            p = Path(self._config_path)
            return p if p.is_file() else None

        env_path = os.environ.get("CSNTL_CONFIG")
        if env_path:
            p = Path(env_path)
            return p if p.is_file() else None

        for name in ("csentinel.yaml", "csentinel.yml"):
            p = Path(name)
            if p.is_file():
                return p

        return None

    def _load(self) -> None:
        """Load and parse the YAML config file."""
        path = self._discover_config_file()
        if path is None:
            self._yaml_data = {}
            return

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
            self._yaml_data = data if isinstance(data, dict) else {}
            logger.debug(f"Loaded config from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            self._yaml_data = {}

    def _map_to_settings(self) -> Dict[str, Any]:
        """Map simplified YAML keys to nested SentinelSettings structure."""
        if not self._yaml_data:
            return {}

        data = self._yaml_data
        result: Dict[str, Any] = {}

        # engine: {...} passes through as-is
        engine_cfg = data.get("engine")
        if isinstance(engine_cfg, dict):
            result["engine"] = dict(engine_cfg)

        # max_concurrency -> engine.max_concurrency
        if "max_concurrency" in data:
            result.setdefault("engine", {})["max_concurrency"] = data["max_concurrency"]

        # timeout -> engine.default_timeout_seconds
        if "timeout" in data:
            result.setdefault("engine", {})["default_timeout_seconds"] = data["timeout"]

        # enforce_product -> engine.enforce_product
        if "enforce_product" in data:
            result.setdefault("engine", {})["enforce_product"] = data["enforce_product"]

        # providers: [names] -> providers.enabled; providers: {...} passes through
        if "providers" in data:
            providers_val = data["providers"]
            if isinstance(providers_val, list):
                result["providers"] = {"enabled": providers_val}
            elif isinstance(providers_val, str):
                result["providers"] = {"enabled": [providers_val]}
            elif isinstance(providers_val, dict):
                result["providers"] = dict(providers_val)

        # workflows: single path or list of paths
        if "workflows" in data:
            workflows_val = data["workflows"]
            result["workflows"] = (
                [workflows_val] if isinstance(workflows_val, str) else workflows_val
            )

        # debug
        if "debug" in data:
            result["debug"] = data["debug"]

        # log_level
        if "log_level" in data:
            result["log_level"] = data["log_level"]

        return result

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        mapped = self._map_to_settings()
        value = mapped.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> Dict[str, Any]:
        return self._map_to_settings()


class SentinelSettings(BaseSettings):
    """
    Main Config Sentinel configuration.

    All settings can be overridden via environment variables with CSNTL_ prefix.
    Nested settings use double underscore: CSNTL_ENGINE__MAX_CONCURRENCY

    A csentinel.yaml config file is also supported (config takes priority).
    Pass _config_path to override the config file location.
    """

    model_config = SettingsConfigDict(
        env_prefix="CSNTL_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Path to csentinel.yaml (set via _config_path kwarg, not a real setting field)
    _config_path: Optional[str] = None

    # General settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Component configurations
    engine: EngineConfig = Field(default_factory=EngineConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    # Workflow files run when the CLI is given none
    workflows: List[str] = Field(default_factory=list)

    def __init__(self, _config_path: Optional[str] = None, **kwargs: Any):
        self.__class__._config_path = _config_path
        super().__init__(**kwargs)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Insert YAML config source before env vars.

        Priority (highest first): init > yaml > env > dotenv > file_secret
        """
        yaml_source = YamlConfigSource(settings_cls, config_path=cls._config_path)
        return (
            init_settings,
            yaml_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
