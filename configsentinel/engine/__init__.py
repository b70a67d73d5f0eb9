"""
Workflow execution engine.

Components, leaves first:
- ConditionEvaluator: (probed value, operator, expected) -> bool
- ApplicabilityEvaluator: decides whether a workflow targets this machine
- WorkflowOrchestrator: schedules the rules of one workflow and scores them
- AuditEngine: filters and fans a batch of workflows out to orchestrators
"""

from configsentinel.engine.schema import (
    Applicability,
    Condition,
    ConditionOperator,
    ExecutionOptions,
    RuleDefinition,
    RunMode,
    WorkflowConstraints,
    WorkflowDefinition,
)
from configsentinel.engine.results import (
    CompletionStatus,
    RiskLevel,
    RuleResult,
    RuleState,
    SkippedRule,
    SkipReason,
    WorkflowResultSet,
    WorkflowState,
    score_results,
)
from configsentinel.engine.conditions import ConditionEvaluator
from configsentinel.engine.applicability import ApplicabilityEvaluator, PlatformInfo
from configsentinel.engine.orchestrator import WorkflowOrchestrator
from configsentinel.engine.engine import AuditEngine
from configsentinel.engine.parser import WorkflowParser

__all__ = [
    # Schema
    "Applicability",
    "Condition",
    "ConditionOperator",
    "ExecutionOptions",
    "RuleDefinition",
    "RunMode",
    "WorkflowConstraints",
    "WorkflowDefinition",
    # Results
    "CompletionStatus",
    "RiskLevel",
    "RuleResult",
    "RuleState",
    "SkippedRule",
    "SkipReason",
    "WorkflowResultSet",
    "WorkflowState",
    "score_results",
    # Components
    "ConditionEvaluator",
    "ApplicabilityEvaluator",
    "PlatformInfo",
    "WorkflowOrchestrator",
    "AuditEngine",
    "WorkflowParser",
]
