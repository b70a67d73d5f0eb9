"""
Result types produced by the orchestrator, plus severity scoring.

RuleResults are created fresh for every rule execution and folded into a
WorkflowResultSet once the scheduling loop ends, whether or not every rule
ran. Callers detect partial runs through `is_partial` or by comparing
`len(results)` to `rule_count`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

# Severity assigned by the orchestrator for failures it synthesizes itself
SEVERITY_PROBE_FAILURE = 9
SEVERITY_MISSING_PROVIDER = 10
SEVERITY_INTERNAL_ERROR = 10
SEVERITY_RULE_TIMEOUT = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuleState(str, Enum):
    """Lifecycle of a rule within one orchestration."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowState(str, Enum):
    """Lifecycle of one orchestration."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"


class CompletionStatus(str, Enum):
    """How the scheduling loop ended."""

    COMPLETED = "completed"                    # Every rule produced a result
    STOPPED_ON_FAILURE = "stopped_on_failure"  # stopOnFailure cut the run short
    DEADLOCKED = "deadlocked"                  # Remaining rules had unsatisfiable dependencies
    TIMED_OUT = "timed_out"                    # Workflow timeout elapsed
    CANCELLED = "cancelled"                    # Caller requested cancellation


class SkipReason(str, Enum):
    """Why a rule never produced a RuleResult."""

    DEPENDENCY_FAILED = "dependency_failed"    # A dependency ran and failed
    UNKNOWN_DEPENDENCY = "unknown_dependency"  # A dependency names no rule in the workflow
    UNMET_DEPENDENCY = "unmet_dependency"      # Cycle, or blocked transitively
    STOPPED_ON_FAILURE = "stopped_on_failure"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class RiskLevel(str, Enum):
    """Coarse risk bucket derived from a severity score."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_severity(cls, severity: int) -> "RiskLevel":
        if severity <= 0:
            return cls.NONE
        if severity <= 3:
            return cls.LOW
        if severity <= 6:
            return cls.MEDIUM
        if severity <= 8:
            return cls.HIGH
        return cls.CRITICAL


@dataclass
class RuleResult:
    """Outcome of executing a single rule."""

    rule_name: str
    success: bool
    message: str
    severity_score: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    schema_version: str = "1.0"
    completed_at: Optional[datetime] = None
    provider: str = ""
    actual: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.timestamp).total_seconds()


@dataclass
class SkippedRule:
    """A rule that never produced a RuleResult, and why."""

    rule_name: str
    reason: SkipReason
    state: RuleState = RuleState.PENDING
    detail: str = ""


def score_results(results: Iterable[RuleResult]) -> Tuple[bool, int]:
    """
    Aggregate rule results into (success, severity_score).

    Success is true iff every result succeeded, which is vacuously true for
    an empty list. The severity score is the maximum severity over failed
    results, 0 if nothing failed.
    """
    success = True
    severity = 0
    for result in results:
        if not result.success:
            success = False
            severity = max(severity, result.severity_score)
    return success, severity


@dataclass
class WorkflowResultSet:
    """Scored outcome of one workflow orchestration."""

    workflow_name: str
    success: bool = True
    severity_score: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    results: List[RuleResult] = field(default_factory=list)
    schema_version: str = "1.0"
    description: str = ""
    completed_at: Optional[datetime] = None
    rule_count: int = 0
    completion: CompletionStatus = CompletionStatus.COMPLETED
    skipped: List[SkippedRule] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        workflow_name: str,
        results: List[RuleResult],
        rule_count: int,
        started_at: datetime,
        completion: CompletionStatus = CompletionStatus.COMPLETED,
        skipped: Optional[List[SkippedRule]] = None,
        schema_version: str = "1.0",
        description: str = "",
    ) -> "WorkflowResultSet":
        """Score `results` and assemble the result set."""
        success, severity = score_results(results)
        return cls(
            workflow_name=workflow_name,
            success=success,
            severity_score=severity,
            timestamp=started_at,
            results=list(results),
            schema_version=schema_version,
            description=description,
            completed_at=utcnow(),
            rule_count=rule_count,
            completion=completion,
            skipped=list(skipped or []),
        )

    @property
    def is_partial(self) -> bool:
        """True when some declared rules never produced a result."""
        return len(self.results) < self.rule_count

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_severity(self.severity_score)

    @property
    def failed_results(self) -> List[RuleResult]:
        return [r for r in self.results if not r.success]

    def get_result(self, rule_name: str) -> Optional[RuleResult]:
        for result in self.results:
            if result.rule_name == rule_name:
                return result
        return None
