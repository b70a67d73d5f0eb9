"""
Workflow orchestrator.

Runs every rule of one workflow exactly once (barring deadlock, stop on
failure, timeout or cancellation) and folds the rule outcomes into a scored
WorkflowResultSet.

Two scheduling modes:

- Sequential: declaration order, one rule at a time.
- Concurrent: dependency-aware layers. A rule becomes runnable once every
  rule it depends on has a *successful* result; a failed dependency never
  unblocks its dependents. Each layer runs concurrently and is joined before
  the next layer is selected.

Only cancellation escapes rule execution. Probe failures, missing providers
and unexpected provider errors all become failed RuleResults.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from configsentinel.core.cancellation import CancellationToken
from configsentinel.core.errors import OperationCancelledError, WorkflowCancelledError
from configsentinel.engine.conditions import ConditionEvaluator
from configsentinel.engine.results import (
    SEVERITY_INTERNAL_ERROR,
    SEVERITY_MISSING_PROVIDER,
    SEVERITY_PROBE_FAILURE,
    SEVERITY_RULE_TIMEOUT,
    CompletionStatus,
    RuleResult,
    RuleState,
    SkippedRule,
    SkipReason,
    WorkflowResultSet,
    WorkflowState,
    utcnow,
)
from configsentinel.engine.schema import RuleDefinition, RunMode, WorkflowDefinition
from configsentinel.probes.protocols import ProbeProvider, ProbeResult
from configsentinel.probes.registry import ProbeRegistry

logger = logging.getLogger(__name__)

_SKIP_REASONS = {
    CompletionStatus.STOPPED_ON_FAILURE: SkipReason.STOPPED_ON_FAILURE,
    CompletionStatus.TIMED_OUT: SkipReason.TIMED_OUT,
    CompletionStatus.CANCELLED: SkipReason.CANCELLED,
}


@dataclass
class _RunState:
    """Mutable state of one orchestration. `results` is guarded by `lock`."""

    workflow: WorkflowDefinition
    token: CancellationToken
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    limit: Union[asyncio.Semaphore, contextlib.nullcontext] = field(
        default_factory=contextlib.nullcontext
    )
    results: List[RuleResult] = field(default_factory=list)
    skipped: List[SkippedRule] = field(default_factory=list)


class WorkflowOrchestrator:
    """
    Scheduler for a single workflow.

    One orchestrator runs one workflow at a time; `state` and `rule_states`
    describe the most recent run. The engine front door creates a fresh
    orchestrator per workflow.

    Example:
        ```python
        orchestrator = WorkflowOrchestrator([FileSystemProbe(), EnvironmentProbe()])
        result = await orchestrator.run(workflow)

        if result.is_partial:
            print(f"{len(result.results)}/{result.rule_count} rules ran")
        ```
    """

    def __init__(
        self,
        providers: Union[ProbeRegistry, Iterable[ProbeProvider]],
        max_concurrency: Optional[int] = None,
        default_timeout: Optional[float] = None,
    ):
        """
        Args:
            providers: Provider instances, or an already-built ProbeRegistry
            max_concurrency: Upper bound on rules probing at once (None = unbounded)
            default_timeout: Seconds applied when the workflow declares no timeout

        Raises:
            DuplicateProviderError: If two providers share a name
            ValueError: If max_concurrency is not positive
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.registry = providers if isinstance(providers, ProbeRegistry) else ProbeRegistry(providers)
        self.max_concurrency = max_concurrency
        self.default_timeout = default_timeout

        self.state = WorkflowState.NOT_STARTED
        self.rule_states: Dict[str, RuleState] = {}

    async def run(
        self,
        workflow: WorkflowDefinition,
        cancellation: Optional[CancellationToken] = None,
    ) -> WorkflowResultSet:
        """
        Execute a workflow and score the collected rule results.

        Args:
            workflow: Validated workflow definition
            cancellation: Caller token; cancelling it aborts the run

        Returns:
            The scored result set. When the workflow's own timeout elapses the
            result set is partial and `completion` is TIMED_OUT.

        Raises:
            WorkflowCancelledError: If the caller cancelled; carries the
                partial result set
        """
        token = CancellationToken(parent=cancellation)
        timeout = self._effective_timeout(workflow)
        if timeout is not None:
            token.cancel_after(timeout)

        run = _RunState(workflow=workflow, token=token)
        if self.max_concurrency is not None:
            run.limit = asyncio.Semaphore(self.max_concurrency)

        started_at = utcnow()
        self.state = WorkflowState.RUNNING
        self.rule_states = {rule.name: RuleState.PENDING for rule in workflow.rules}

        mode = "sequential" if workflow.constraints.run_sequentially else "concurrent"
        logger.info(
            f"Starting workflow '{workflow.name}' ({len(workflow.rules)} rules, {mode} mode)"
        )

        try:
            if workflow.constraints.run_sequentially:
                completion = await self._run_sequential(run)
            else:
                completion = await self._run_concurrent(run)

            if len(run.results) < len(workflow.rules) and token.cancelled:
                completion = self._cancel_status(cancellation)
        finally:
            token.close()
            self.state = WorkflowState.COMPLETED

        self._record_unrun(run, completion)
        result_set = WorkflowResultSet.build(
            workflow_name=workflow.name,
            results=run.results,
            rule_count=len(workflow.rules),
            started_at=started_at,
            completion=completion,
            skipped=run.skipped,
            schema_version=workflow.schema_version,
            description=workflow.description or "",
        )
        self._log_outcome(result_set, timeout)

        if completion == CompletionStatus.CANCELLED:
            raise WorkflowCancelledError(result_set)
        return result_set

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _run_sequential(self, run: _RunState) -> CompletionStatus:
        constraints = run.workflow.constraints

        for rule in run.workflow.rules:
            if run.token.cancelled:
                break

            results = await self._run_layer([rule], run)
            failed = any(not r.success for r in results)
            if failed and (constraints.stop_on_failure or rule.execution_options.stop_on_failure):
                logger.info(
                    f"Rule '{rule.name}' failed; stopping workflow '{run.workflow.name}'"
                )
                return CompletionStatus.STOPPED_ON_FAILURE

        return CompletionStatus.COMPLETED

    async def _run_concurrent(self, run: _RunState) -> CompletionStatus:
        workflow = run.workflow
        remaining: Dict[str, RuleDefinition] = {rule.name: rule for rule in workflow.rules}

        while not run.token.cancelled:
            async with run.lock:
                if not remaining:
                    return CompletionStatus.COMPLETED

                succeeded = {r.rule_name for r in run.results if r.success}
                runnable = [
                    rule
                    for rule in remaining.values()
                    if all(dep in succeeded for dep in rule.depends_on)
                ]
                if not runnable:
                    self._record_deadlock(run, list(remaining.values()))
                    return CompletionStatus.DEADLOCKED

                for rule in runnable:
                    del remaining[rule.name]

            logger.debug(
                f"Workflow '{workflow.name}': dispatching layer "
                f"{[rule.name for rule in runnable]}"
            )

            parallel = [r for r in runnable if r.execution_options.run_mode == RunMode.PARALLEL]
            serial = [r for r in runnable if r.execution_options.run_mode == RunMode.SEQUENTIAL]

            layer_results = await self._run_layer(parallel, run) if parallel else []
            for rule in serial:
                if run.token.cancelled:
                    break
                layer_results.extend(await self._run_layer([rule], run))

            if self._should_stop(layer_results, run):
                return CompletionStatus.STOPPED_ON_FAILURE

        return CompletionStatus.COMPLETED

    async def _run_layer(self, rules: Sequence[RuleDefinition], run: _RunState) -> List[RuleResult]:
        """
        Run `rules` concurrently and wait for all of them.

        In-flight tasks are cancelled as soon as the orchestration token is.
        Returns the results of the rules that finished.
        """
        tasks = [
            asyncio.create_task(self._execute_tracked(rule, run), name=f"rule:{rule.name}")
            for rule in rules
        ]

        def cancel_tasks() -> None:
            for task in tasks:
                if not task.done():
                    task.cancel()

        unregister = run.token.register(cancel_tasks)
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            unregister()

        results: List[RuleResult] = []
        for rule, outcome in zip(rules, outcomes):
            if isinstance(outcome, RuleResult):
                results.append(outcome)
            elif isinstance(outcome, (asyncio.CancelledError, OperationCancelledError)):
                logger.debug(f"Rule '{rule.name}' interrupted by cancellation")
            else:
                logger.error(f"Rule '{rule.name}' task failed: {outcome}")
        return results

    async def _execute_tracked(self, rule: RuleDefinition, run: _RunState) -> RuleResult:
        async with run.limit:
            run.token.raise_if_cancelled()
            self.rule_states[rule.name] = RuleState.RUNNING
            result = await self.execute_rule(rule, run.token, run.workflow.schema_version)

        self.rule_states[rule.name] = RuleState.SUCCEEDED if result.success else RuleState.FAILED
        async with run.lock:
            run.results.append(result)
        return result

    def _should_stop(self, layer_results: List[RuleResult], run: _RunState) -> bool:
        workflow = run.workflow
        for result in layer_results:
            if result.success:
                continue
            rule = workflow.get_rule(result.rule_name)
            if workflow.constraints.stop_on_failure or (
                rule is not None and rule.execution_options.stop_on_failure
            ):
                logger.info(
                    f"Rule '{result.rule_name}' failed; no further layers of "
                    f"workflow '{workflow.name}' will be scheduled"
                )
                return True
        return False

    # ------------------------------------------------------------------
    # Rule execution
    # ------------------------------------------------------------------

    async def execute_rule(
        self,
        rule: RuleDefinition,
        cancellation: CancellationToken,
        schema_version: str = "1.0",
    ) -> RuleResult:
        """
        Probe and evaluate a single rule.

        Never raises except for cancellation.
        """
        cancellation.raise_if_cancelled()
        started = utcnow()

        provider = self.registry.get(rule.provider)
        if provider is None:
            logger.warning(f"Rule '{rule.name}': probe provider '{rule.provider}' is not registered")
            return self._failure(
                rule,
                started,
                f"Probe provider '{rule.provider}' is not registered",
                SEVERITY_MISSING_PROVIDER,
                schema_version,
            )

        try:
            return await self._probe_and_evaluate(rule, provider, cancellation, started, schema_version)
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.error(f"Rule '{rule.name}' raised an unexpected error: {e}")
            return self._failure(
                rule,
                started,
                f"Unexpected error in provider '{provider.name}': {e}",
                SEVERITY_INTERNAL_ERROR,
                schema_version,
                provider=provider.name,
            )

    async def _probe_and_evaluate(
        self,
        rule: RuleDefinition,
        provider: ProbeProvider,
        cancellation: CancellationToken,
        started: datetime,
        schema_version: str,
    ) -> RuleResult:
        logger.debug(f"Rule '{rule.name}': probing with '{provider.name}'")

        timeout = rule.execution_options.timeout
        if timeout is None:
            probe = await provider.execute(rule.parameters, cancellation)
        else:
            try:
                probe = await asyncio.wait_for(
                    provider.execute(rule.parameters, cancellation),
                    timeout.total_seconds(),
                )
            except asyncio.TimeoutError:
                return self._failure(
                    rule,
                    started,
                    f"Probe timed out after {timeout.total_seconds():g}s",
                    SEVERITY_RULE_TIMEOUT,
                    schema_version,
                    provider=provider.name,
                )

        if not isinstance(probe, ProbeResult):
            raise TypeError(
                f"Provider '{provider.name}' returned {type(probe).__name__}, expected ProbeResult"
            )
        if not probe.provider:
            probe.provider = provider.name

        if not probe.success:
            logger.debug(f"Rule '{rule.name}': probe failed: {probe.message}")
            return self._failure(
                rule,
                started,
                probe.message or f"Probe '{provider.name}' failed",
                SEVERITY_PROBE_FAILURE,
                schema_version,
                provider=provider.name,
                metadata=probe.metadata,
            )

        condition = rule.condition
        passed = ConditionEvaluator.evaluate(probe.value, condition.operator, condition.expected)
        logger.debug(f"Rule '{rule.name}': {condition.operator} -> {passed}")

        if passed:
            message = rule.message or f"Rule '{rule.name}' passed"
        else:
            message = self._failure_message(rule, probe.value)

        return RuleResult(
            rule_name=rule.name,
            success=passed,
            message=message,
            severity_score=0 if passed else rule.severity,
            timestamp=started,
            schema_version=schema_version,
            completed_at=utcnow(),
            provider=provider.name,
            actual=probe.value,
            metadata=dict(probe.metadata),
            tags=list(rule.tags),
        )

    @staticmethod
    def _failure_message(rule: RuleDefinition, actual) -> str:
        condition = rule.condition
        if not ConditionEvaluator.is_known_operator(condition.operator):
            detail = f"Unknown condition operator '{condition.operator}'"
        else:
            detail = (
                f"Condition failed: expected {condition.operator} "
                f"{condition.expected!r}, got {actual!r}"
            )
        if rule.failure_message:
            return f"{rule.failure_message} ({detail})"
        return detail

    @staticmethod
    def _failure(
        rule: RuleDefinition,
        started: datetime,
        message: str,
        severity: int,
        schema_version: str,
        provider: str = "",
        metadata: Optional[dict] = None,
    ) -> RuleResult:
        return RuleResult(
            rule_name=rule.name,
            success=False,
            message=message,
            severity_score=severity,
            timestamp=started,
            schema_version=schema_version,
            completed_at=utcnow(),
            provider=provider,
            metadata=dict(metadata or {}),
            tags=list(rule.tags),
        )

    # ------------------------------------------------------------------
    # Partial-run bookkeeping
    # ------------------------------------------------------------------

    def _record_deadlock(self, run: _RunState, stuck: List[RuleDefinition]) -> None:
        """Classify every rule left in `remaining` when no rule is runnable."""
        declared = set(run.workflow.rule_names())
        failed = {r.rule_name for r in run.results if not r.success}
        succeeded = {r.rule_name for r in run.results if r.success}

        for rule in stuck:
            unknown = [d for d in rule.depends_on if d not in declared]
            failed_deps = [d for d in rule.depends_on if d in failed]
            if unknown:
                reason, detail = SkipReason.UNKNOWN_DEPENDENCY, f"Unknown dependencies: {unknown}"
            elif failed_deps:
                reason, detail = SkipReason.DEPENDENCY_FAILED, f"Failed dependencies: {failed_deps}"
            else:
                pending = [d for d in rule.depends_on if d not in succeeded]
                reason, detail = SkipReason.UNMET_DEPENDENCY, f"Unsatisfiable dependencies: {pending}"
            run.skipped.append(
                SkippedRule(rule_name=rule.name, reason=reason, state=RuleState.PENDING, detail=detail)
            )

        logger.warning(
            f"Workflow '{run.workflow.name}' deadlocked: {len(stuck)} rule(s) can never run "
            f"({', '.join(f'{s.rule_name}: {s.reason.value}' for s in run.skipped)})"
        )

    def _record_unrun(self, run: _RunState, completion: CompletionStatus) -> None:
        reason = _SKIP_REASONS.get(completion)
        if reason is None:
            return

        recorded = {r.rule_name for r in run.results} | {s.rule_name for s in run.skipped}
        for rule in run.workflow.rules:
            if rule.name not in recorded:
                run.skipped.append(
                    SkippedRule(
                        rule_name=rule.name,
                        reason=reason,
                        state=self.rule_states.get(rule.name, RuleState.PENDING),
                    )
                )

    def _effective_timeout(self, workflow: WorkflowDefinition) -> Optional[float]:
        if workflow.constraints.timeout is not None:
            return workflow.constraints.timeout.total_seconds()
        return self.default_timeout

    @staticmethod
    def _cancel_status(caller: Optional[CancellationToken]) -> CompletionStatus:
        if caller is not None and caller.cancelled:
            return CompletionStatus.CANCELLED
        return CompletionStatus.TIMED_OUT

    @staticmethod
    def _log_outcome(result_set: WorkflowResultSet, timeout: Optional[float]) -> None:
        ran = f"{len(result_set.results)}/{result_set.rule_count}"
        if result_set.completion == CompletionStatus.TIMED_OUT:
            after = f" after {timeout:g}s" if timeout is not None else ""
            logger.warning(
                f"Workflow '{result_set.workflow_name}' timed out{after}; {ran} rules completed"
            )
        elif result_set.completion == CompletionStatus.CANCELLED:
            logger.warning(
                f"Workflow '{result_set.workflow_name}' cancelled by caller; {ran} rules completed"
            )

        logger.info(
            f"Finished workflow '{result_set.workflow_name}': {ran} rules, "
            f"success={result_set.success}, severity={result_set.severity_score}, "
            f"completion={result_set.completion.value}"
        )
