"""
Workflow definition schema using Pydantic models.

Supports:
- Applicability metadata (OS family, version range, product)
- Execution constraints (sequential vs. concurrent, stop on failure, timeout)
- Rules with a probe provider, opaque provider parameters and a condition
- Per-rule execution options (dependencies, stop on failure, timeout, run mode)

Models are immutable once validated. Both snake_case and the camelCase names
used by workflow files are accepted.

Example YAML:
```yaml
name: windows-baseline
schemaVersion: "1.0"

applicability:
  osFamily: Windows
  minVersion: "10.0"

constraints:
  runSequentially: false
  stopOnFailure: false
  timeout: 30

rules:
  - name: firewall_enabled
    provider: registry
    parameters:
      hive: HKLM
      key: SYSTEM\\CurrentControlSet\\Services\\SharedAccess\\Parameters\\FirewallPolicy\\StandardProfile
      value_name: EnableFirewall
    condition:
      operator: Equals
      expected: 1
    severity: 8
    message: Firewall is enabled
    failureMessage: Firewall is disabled

  - name: firewall_logging
    provider: registry
    parameters: {...}
    condition: {operator: Exists}
    severity: 4
    executionOptions:
      dependsOn: [firewall_enabled]
```
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ConditionOperator(str, Enum):
    """Fixed set of condition operators understood by the evaluator."""

    EQUALS = "Equals"
    NOT_EQUALS = "NotEquals"
    GREATER_THAN = "GreaterThan"
    LESS_THAN = "LessThan"
    CONTAINS = "Contains"
    NOT_CONTAINS = "NotContains"
    REGEX_MATCH = "RegexMatch"
    EXISTS = "Exists"
    NOT_EXISTS = "NotExists"


class RunMode(str, Enum):
    """
    Per-rule scheduling hint for concurrent workflows.

    - PARALLEL: run alongside the other runnable rules of its layer
    - SEQUENTIAL: run alone, after the parallel rules of its layer finished
    """

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Applicability(_FrozenModel):
    """
    Gate deciding whether a workflow should run on the current machine.

    Only `os_family` is required for a workflow to be applicable; an empty
    family makes the workflow inapplicable everywhere.
    """

    os_family: str = Field(default="", alias="osFamily")
    min_version: Optional[str] = Field(default=None, alias="minVersion")
    max_version: Optional[str] = Field(default=None, alias="maxVersion")
    # Advisory only unless the engine is configured to enforce it
    product: Optional[str] = None


class WorkflowConstraints(_FrozenModel):
    """Workflow-level execution constraints."""

    run_sequentially: bool = Field(default=False, alias="runSequentially")
    stop_on_failure: bool = Field(default=False, alias="stopOnFailure")

    # Numbers are seconds; ISO-8601 durations ("PT30S") are accepted too
    timeout: Optional[timedelta] = None

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[timedelta]) -> Optional[timedelta]:
        if v is not None and v.total_seconds() <= 0:
            raise ValueError("Workflow timeout must be positive")
        return v


class Condition(_FrozenModel):
    """
    Condition evaluated against the probed value.

    The operator is kept as a plain string so that unknown operators reach
    the evaluator and fail closed instead of rejecting the whole workflow.
    """

    operator: str
    expected: Any = None


class ExecutionOptions(_FrozenModel):
    """Per-rule scheduling options."""

    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    stop_on_failure: bool = Field(default=False, alias="stopOnFailure")
    timeout: Optional[timedelta] = None
    run_mode: RunMode = Field(default=RunMode.PARALLEL, alias="runMode")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[timedelta]) -> Optional[timedelta]:
        if v is not None and v.total_seconds() <= 0:
            raise ValueError("Rule timeout must be positive")
        return v


class RuleDefinition(_FrozenModel):
    """
    A single probe-and-condition check.

    `parameters` are provider-specific and never interpreted by the
    orchestrator. `severity` expresses how bad a failure is (0-10).
    """

    name: str = Field(..., min_length=1, max_length=200)
    provider: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    condition: Condition
    severity: int = Field(default=0, ge=0, le=10)

    message: str = ""
    failure_message: str = Field(default="", alias="failureMessage")

    category: str = ""
    tags: List[str] = Field(default_factory=list)

    execution_options: ExecutionOptions = Field(
        default_factory=ExecutionOptions, alias="executionOptions"
    )

    @property
    def depends_on(self) -> List[str]:
        return self.execution_options.depends_on


class WorkflowDefinition(_FrozenModel):
    """
    Complete workflow definition.

    A workflow defines:
    - Applicability: which machines it targets
    - Constraints: how its rules are scheduled
    - Rules: the checks themselves, in declaration order
    """

    name: str = Field(..., min_length=1, max_length=200)
    schema_version: str = Field(default="1.0", alias="schemaVersion")
    description: Optional[str] = None

    applicability: Applicability = Field(default_factory=Applicability)
    constraints: WorkflowConstraints = Field(default_factory=WorkflowConstraints)
    rules: List[RuleDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_rule_names(self):
        """Rule names identify results and dependencies, so they must be unique."""
        seen = set()
        for rule in self.rules:
            if rule.name in seen:
                raise ValueError(
                    f"Duplicate rule name in workflow '{self.name}': {rule.name}"
                )
            seen.add(rule.name)
        return self

    def get_rule(self, name: str) -> Optional[RuleDefinition]:
        """Get rule by name."""
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def rule_names(self) -> List[str]:
        """Rule names in declaration order."""
        return [r.name for r in self.rules]

    def unknown_dependencies(self) -> Dict[str, List[str]]:
        """Map rule name -> dependencies that name no rule in this workflow."""
        names = set(self.rule_names())
        unknown: Dict[str, List[str]] = {}
        for rule in self.rules:
            missing = [d for d in rule.depends_on if d not in names]
            if missing:
                unknown[rule.name] = missing
        return unknown
