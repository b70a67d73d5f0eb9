"""
Core protocol definitions for probe providers.

A probe provider retrieves one piece of system state (a registry value, a
file property, an environment variable, ...) for a rule. The orchestrator is
provider-agnostic: it only relies on the contract defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Type, TypeVar

from pydantic import BaseModel, ValidationError

from configsentinel.core.cancellation import CancellationToken

ParamsT = TypeVar("ParamsT", bound=BaseModel)


@dataclass
class ProbeResult:
    """Raw value retrieved by a probe, before condition evaluation."""

    value: Any = None
    success: bool = True                 # Probe ran; says nothing about the condition
    message: str = ""                    # Diagnostic or error message
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)  # Provenance (path, query, ...)
    provider: str = ""

    @classmethod
    def ok(cls, value: Any, message: str = "", **metadata: Any) -> "ProbeResult":
        return cls(value=value, success=True, message=message, metadata=metadata)

    @classmethod
    def failed(cls, message: str, **metadata: Any) -> "ProbeResult":
        return cls(value=None, success=False, message=message, metadata=metadata)


class ProbeProvider(ABC):
    """
    Base class for all probe providers.

    Implementations must not raise for ordinary failures (path not found,
    access denied, ...): they return `ProbeResult(success=False)` instead.
    Cancellation is the only exceptional signal; long-running probes should
    check `cancellation` between I/O steps.

    Implementations are registered using the @register_provider decorator.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name matched (case-insensitively) against RuleDefinition.provider."""
        ...

    @abstractmethod
    async def execute(
        self,
        parameters: Mapping[str, Any],
        cancellation: CancellationToken,
    ) -> ProbeResult:
        """
        Execute the probe.

        Args:
            parameters: Provider-specific parameters from the rule definition
            cancellation: Token cancelled on timeout or caller request

        Returns:
            ProbeResult with the raw value and provenance metadata
        """
        ...

    def parse_parameters(
        self, model: Type[ParamsT], parameters: Mapping[str, Any]
    ) -> "ParamsT | ProbeResult":
        """
        Deserialize opaque rule parameters into a typed model.

        Returns a failed ProbeResult instead of raising when validation fails,
        so bad parameters surface as a probe failure.
        """
        try:
            return model.model_validate(dict(parameters))
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            return ProbeResult.failed(f"Invalid parameters for provider '{self.name}': {errors}")
