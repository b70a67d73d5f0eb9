"""Pytest fixtures for Config Sentinel tests."""

import asyncio
import platform
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest

from configsentinel.core.cancellation import CancellationToken
from configsentinel.engine.schema import RuleDefinition, WorkflowDefinition
from configsentinel.probes.protocols import ProbeProvider, ProbeResult


class FakeProbe(ProbeProvider):
    """
    In-memory probe driven entirely by rule parameters.

    Parameters understood:
        key: identifier recorded in `events` (defaults to "")
        value: value returned on success
        delay: seconds to sleep before answering
        fail: return a failed ProbeResult with this message
        error: raise RuntimeError with this message
    """

    def __init__(self, name: str = "fake"):
        self._name = name
        self.events: List[Tuple[str, str]] = []  # ("start" | "end", key)
        self.active = 0
        self.max_active = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def started(self) -> List[str]:
        return [key for kind, key in self.events if kind == "start"]

    def index(self, kind: str, key: str) -> int:
        return self.events.index((kind, key))

    async def execute(
        self,
        parameters: Mapping[str, Any],
        cancellation: CancellationToken,
    ) -> ProbeResult:
        key = parameters.get("key", "")
        self.events.append(("start", key))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = parameters.get("delay", 0)
            if delay:
                await asyncio.sleep(delay)
            if "error" in parameters:
                raise RuntimeError(parameters["error"])
            if "fail" in parameters:
                return ProbeResult.failed(parameters["fail"], key=key)
            return ProbeResult.ok(parameters.get("value"), key=key)
        finally:
            self.active -= 1
            self.events.append(("end", key))


@pytest.fixture
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def make_rule():
    """Factory for rules served by FakeProbe; passing rules return True."""

    def _make(
        name: str,
        value: Any = True,
        depends_on: Optional[List[str]] = None,
        severity: int = 5,
        provider: str = "fake",
        expected: Any = True,
        operator: str = "Equals",
        **extra: Any,
    ) -> RuleDefinition:
        parameters: Dict[str, Any] = {"key": name, "value": value}
        for param in ("delay", "fail", "error"):
            if param in extra:
                parameters[param] = extra.pop(param)

        execution_options = {"depends_on": depends_on or []}
        for option in ("stop_on_failure", "timeout", "run_mode"):
            if option in extra:
                execution_options[option] = extra.pop(option)

        return RuleDefinition(
            name=name,
            provider=provider,
            parameters=parameters,
            condition={"operator": operator, "expected": expected},
            severity=severity,
            execution_options=execution_options,
            **extra,
        )

    return _make


@pytest.fixture
def make_workflow():
    """Factory for workflows applicable to the running platform."""

    def _make(
        rules: List[RuleDefinition],
        name: str = "test-workflow",
        sequential: bool = False,
        stop_on_failure: bool = False,
        timeout: Optional[float] = None,
        applicability: Optional[Dict[str, Any]] = None,
        **extra: Any,
    ) -> WorkflowDefinition:
        if applicability is None:
            applicability = {"os_family": platform.system()}
        return WorkflowDefinition(
            name=name,
            applicability=applicability,
            constraints={
                "run_sequentially": sequential,
                "stop_on_failure": stop_on_failure,
                "timeout": timeout,
            },
            rules=rules,
            **extra,
        )

    return _make


@pytest.fixture
def examples_dir() -> Path:
    """Get path to examples directory."""
    return Path(__file__).parent.parent / "examples"


@pytest.fixture
def simple_workflow_dict() -> Dict[str, Any]:
    """Minimal workflow definition as a dict, in workflow-file (camelCase) form."""
    return {
        "name": "env-baseline",
        "schemaVersion": "1.0",
        "description": "Environment checks",
        "applicability": {"osFamily": "Linux", "minVersion": "5.0"},
        "constraints": {"runSequentially": False, "stopOnFailure": False, "timeout": 30},
        "rules": [
            {
                "name": "path_set",
                "provider": "environment",
                "parameters": {"variable": "PATH"},
                "condition": {"operator": "Exists"},
                "severity": 3,
                "message": "PATH is set",
            },
            {
                "name": "no_debug",
                "provider": "environment",
                "parameters": {"variable": "APP_DEBUG"},
                "condition": {"operator": "NotEquals", "expected": "1"},
                "severity": 6,
                "failureMessage": "Debug mode is enabled",
                "executionOptions": {"dependsOn": ["path_set"], "runMode": "sequential"},
            },
        ],
    }
