"""
Exception hierarchy for the audit engine.

Only cancellation is allowed to escape rule execution and the orchestrator's
public entry point. Everything else (probe failures, missing providers,
unexpected provider errors) is folded into a failed RuleResult instead.
"""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from configsentinel.core.cancellation import CancelReason
    from configsentinel.engine.results import WorkflowResultSet


class ConfigSentinelError(Exception):
    """Base class for all Config Sentinel errors."""


class DuplicateProviderError(ConfigSentinelError, ValueError):
    """Two probe providers share the same (case-insensitive) name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate probe provider registration: '{name}'")


class OperationCancelledError(ConfigSentinelError):
    """Raised when a cancellation token has been cancelled."""

    def __init__(self, message: str = "Operation was cancelled", reason: "CancelReason | None" = None):
        self.reason = reason
        super().__init__(message)


class WorkflowCancelledError(OperationCancelledError):
    """
    Caller-requested cancellation of a single workflow orchestration.

    Carries the partial result set built from whatever rules reported in
    before the cancellation was observed.
    """

    def __init__(self, partial_result: "WorkflowResultSet"):
        self.partial_result = partial_result
        super().__init__(
            f"Workflow '{partial_result.workflow_name}' was cancelled after "
            f"{len(partial_result.results)}/{partial_result.rule_count} rules"
        )


class AuditCancelledError(OperationCancelledError):
    """Caller-requested cancellation of a whole audit run (many workflows)."""

    def __init__(self, partial_results: List["WorkflowResultSet"]):
        self.partial_results = partial_results
        super().__init__(
            f"Audit run was cancelled; {len(partial_results)} workflow result set(s) collected"
        )
