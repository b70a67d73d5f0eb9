"""Environment variable probe."""

import logging
import os
from typing import Any, Mapping

from pydantic import BaseModel, Field

from configsentinel.core.cancellation import CancellationToken
from configsentinel.probes.protocols import ProbeProvider, ProbeResult
from configsentinel.probes.registry import register_provider

logger = logging.getLogger(__name__)


class EnvironmentParameters(BaseModel):
    variable: str = Field(..., min_length=1)
    # Absence is a probe failure instead of a None value
    required: bool = False


@register_provider("environment")
class EnvironmentProbe(ProbeProvider):
    """
    Read an environment variable of the current process.

    A missing variable is a successful probe with value None, so rules can
    use Exists / NotExists on it. Set `required: true` to treat absence as a
    probe failure instead.

    Parameters:
        variable: Name of the environment variable
        required: Fail the probe when the variable is not set
    """

    @property
    def name(self) -> str:
        return "environment"

    async def execute(
        self,
        parameters: Mapping[str, Any],
        cancellation: CancellationToken,
    ) -> ProbeResult:
        cancellation.raise_if_cancelled()

        params = self.parse_parameters(EnvironmentParameters, parameters)
        if isinstance(params, ProbeResult):
            return params

        value = os.environ.get(params.variable)
        if value is None and params.required:
            return ProbeResult.failed(
                f"Environment variable not set: {params.variable}",
                variable=params.variable,
            )

        logger.debug(f"Environment probe {params.variable} -> {'<unset>' if value is None else 'set'}")
        return ProbeResult.ok(value, variable=params.variable)
