"""
Config Sentinel - Configuration audit engine.

Runs declarative workflows of probe-and-condition rules against the local
machine and produces scored result sets.

Quick Start:
    From the command line:
    ```bash
    csentinel run workflows/baseline.yaml
    ```

    Or programmatically:
    ```python
    from configsentinel import AuditEngine, ProbeProviderRegistry, WorkflowParser

    workflows = WorkflowParser.parse_files(["workflows/baseline.yaml"])
    engine = AuditEngine(ProbeProviderRegistry.create_all())
    results = await engine.run(workflows)

    for result in results:
        print(result.workflow_name, result.success, result.severity_score)
    ```

Writing a probe provider:
    ```python
    from configsentinel.probes import ProbeProvider, ProbeResult, register_provider

    @register_provider("service")
    class ServiceProbe(ProbeProvider):
        @property
        def name(self) -> str:
            return "service"

        async def execute(self, parameters, cancellation) -> ProbeResult:
            ...
    ```
"""

__version__ = "0.1.0"

# Core primitives
from configsentinel.core import (
    AuditCancelledError,
    CancellationToken,
    CancelReason,
    ConfigSentinelError,
    DuplicateProviderError,
    OperationCancelledError,
    WorkflowCancelledError,
)

# Configuration
from configsentinel.config.settings import SentinelSettings

# Probe providers
from configsentinel.probes import (
    ProbeProvider,
    ProbeProviderRegistry,
    ProbeRegistry,
    ProbeResult,
    register_provider,
)

# Engine
from configsentinel.engine import (
    ApplicabilityEvaluator,
    AuditEngine,
    CompletionStatus,
    ConditionEvaluator,
    PlatformInfo,
    RuleDefinition,
    RuleResult,
    WorkflowDefinition,
    WorkflowOrchestrator,
    WorkflowParser,
    WorkflowResultSet,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "AuditCancelledError",
    "CancellationToken",
    "CancelReason",
    "ConfigSentinelError",
    "DuplicateProviderError",
    "OperationCancelledError",
    "WorkflowCancelledError",
    # Configuration
    "SentinelSettings",
    # Probes
    "ProbeProvider",
    "ProbeProviderRegistry",
    "ProbeRegistry",
    "ProbeResult",
    "register_provider",
    # Engine
    "ApplicabilityEvaluator",
    "AuditEngine",
    "CompletionStatus",
    "ConditionEvaluator",
    "PlatformInfo",
    "RuleDefinition",
    "RuleResult",
    "WorkflowDefinition",
    "WorkflowOrchestrator",
    "WorkflowParser",
    "WorkflowResultSet",
]
