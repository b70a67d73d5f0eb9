"""Tests for the workflow orchestrator."""

import asyncio
import time

import pytest

from configsentinel.core.cancellation import CancellationToken
from configsentinel.core.errors import DuplicateProviderError, WorkflowCancelledError
from configsentinel.engine.orchestrator import WorkflowOrchestrator
from configsentinel.engine.results import (
    CompletionStatus,
    RuleState,
    SkipReason,
    WorkflowState,
)

from conftest import FakeProbe


class TestSequentialMode:
    """Tests for run_sequentially workflows."""

    @pytest.mark.asyncio
    async def test_all_rules_in_declaration_order(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("first", delay=0.03),
            make_rule("second", value=False),
            make_rule("third"),
        ]
        workflow = make_workflow(rules, sequential=True)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert [r.rule_name for r in result.results] == ["first", "second", "third"]
        assert len(result.results) == result.rule_count == 3
        assert fake_probe.started == ["first", "second", "third"]
        assert result.completion == CompletionStatus.COMPLETED
        assert not result.is_partial

    @pytest.mark.asyncio
    async def test_one_rule_at_a_time(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule(f"r{i}", delay=0.01) for i in range(4)]
        workflow = make_workflow(rules, sequential=True)

        await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert fake_probe.max_active == 1

    @pytest.mark.asyncio
    async def test_stop_on_failure_halts_after_failed_rule(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("first"),
            make_rule("second", value=False),
            make_rule("third"),
            make_rule("fourth"),
        ]
        workflow = make_workflow(rules, sequential=True, stop_on_failure=True)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert [r.rule_name for r in result.results] == ["first", "second"]
        assert "third" not in fake_probe.started
        assert result.completion == CompletionStatus.STOPPED_ON_FAILURE
        assert result.is_partial
        assert [(s.rule_name, s.reason) for s in result.skipped] == [
            ("third", SkipReason.STOPPED_ON_FAILURE),
            ("fourth", SkipReason.STOPPED_ON_FAILURE),
        ]

    @pytest.mark.asyncio
    async def test_rule_level_stop_on_failure(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("soft", value=False),
            make_rule("hard", value=False, stop_on_failure=True),
            make_rule("never"),
        ]
        workflow = make_workflow(rules, sequential=True)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert [r.rule_name for r in result.results] == ["soft", "hard"]
        assert result.completion == CompletionStatus.STOPPED_ON_FAILURE


class TestConcurrentMode:
    """Tests for dependency-aware concurrent scheduling."""

    @pytest.mark.asyncio
    async def test_dependencies_start_after_successful_dependency(
        self, fake_probe, make_rule, make_workflow
    ):
        rules = [
            make_rule("d", depends_on=["b", "c"]),
            make_rule("a", delay=0.02),
            make_rule("b", depends_on=["a"], delay=0.01),
            make_rule("c", depends_on=["a"]),
            make_rule("e"),
        ]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        names = [r.rule_name for r in result.results]
        assert sorted(names) == ["a", "b", "c", "d", "e"]
        assert len(names) == len(set(names))
        assert result.success is True

        for rule in rules:
            for dep in rule.depends_on:
                assert fake_probe.index("end", dep) < fake_probe.index("start", rule.name)

    @pytest.mark.asyncio
    async def test_independent_rules_run_concurrently(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule(f"r{i}", delay=0.1) for i in range(5)]
        workflow = make_workflow(rules)

        started = time.monotonic()
        result = await WorkflowOrchestrator([fake_probe]).run(workflow)
        elapsed = time.monotonic() - started

        assert len(result.results) == 5
        assert fake_probe.max_active == 5
        assert elapsed < 0.4

    @pytest.mark.asyncio
    async def test_max_concurrency_bounds_fan_out(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule(f"r{i}", delay=0.02) for i in range(6)]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe], max_concurrency=2).run(workflow)

        assert len(result.results) == 6
        assert fake_probe.max_active == 2

    def test_max_concurrency_must_be_positive(self, fake_probe):
        with pytest.raises(ValueError):
            WorkflowOrchestrator([fake_probe], max_concurrency=0)

    @pytest.mark.asyncio
    async def test_sequential_run_mode_runs_alone_after_layer(
        self, fake_probe, make_rule, make_workflow
    ):
        rules = [
            make_rule("exclusive", run_mode="sequential"),
            make_rule("p1", delay=0.02),
            make_rule("p2", delay=0.02),
        ]
        workflow = make_workflow(rules)

        await WorkflowOrchestrator([fake_probe]).run(workflow)

        exclusive_start = fake_probe.index("start", "exclusive")
        assert fake_probe.index("end", "p1") < exclusive_start
        assert fake_probe.index("end", "p2") < exclusive_start

    @pytest.mark.asyncio
    async def test_cycle_terminates_and_omits_both_rules(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("a", depends_on=["b"]),
            make_rule("b", depends_on=["a"]),
            make_rule("free"),
        ]
        workflow = make_workflow(rules)

        result = await asyncio.wait_for(WorkflowOrchestrator([fake_probe]).run(workflow), 2)

        assert [r.rule_name for r in result.results] == ["free"]
        assert result.completion == CompletionStatus.DEADLOCKED
        assert result.is_partial
        assert {s.rule_name: s.reason for s in result.skipped} == {
            "a": SkipReason.UNMET_DEPENDENCY,
            "b": SkipReason.UNMET_DEPENDENCY,
        }

    @pytest.mark.asyncio
    async def test_deadlock_detail_lists_only_unsatisfied_dependencies(
        self, fake_probe, make_rule, make_workflow
    ):
        rules = [
            make_rule("base"),
            make_rule("a", depends_on=["b"]),
            make_rule("b", depends_on=["a"]),
            make_rule("joined", depends_on=["base", "b"]),
        ]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        skipped = {s.rule_name: s for s in result.skipped}
        assert skipped["joined"].reason == SkipReason.UNMET_DEPENDENCY
        assert skipped["joined"].detail == "Unsatisfiable dependencies: ['b']"

    @pytest.mark.asyncio
    async def test_cycle_with_timeout_still_deadlocks(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule("a", depends_on=["b"]), make_rule("b", depends_on=["a"])]
        workflow = make_workflow(rules, timeout=10)

        started = time.monotonic()
        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert time.monotonic() - started < 1
        assert result.results == []
        assert result.completion == CompletionStatus.DEADLOCKED
        # Vacuously successful, but visibly partial
        assert result.success is True
        assert result.is_partial

    @pytest.mark.asyncio
    async def test_failed_dependency_never_unblocks(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("prereq", value=False),
            make_rule("dependent", depends_on=["prereq"]),
            make_rule("transitive", depends_on=["dependent"]),
        ]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert [r.rule_name for r in result.results] == ["prereq"]
        assert "dependent" not in fake_probe.started
        assert "transitive" not in fake_probe.started
        skipped = {s.rule_name: s.reason for s in result.skipped}
        assert skipped == {
            "dependent": SkipReason.DEPENDENCY_FAILED,
            "transitive": SkipReason.UNMET_DEPENDENCY,
        }

    @pytest.mark.asyncio
    async def test_unknown_dependency(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule("orphan", depends_on=["ghost"])]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert result.results == []
        assert result.skipped[0].reason == SkipReason.UNKNOWN_DEPENDENCY
        assert "ghost" in result.skipped[0].detail

    @pytest.mark.asyncio
    async def test_stop_on_failure_stops_after_layer(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("bad", value=False, delay=0.01),
            make_rule("sibling", delay=0.03),
            make_rule("next_layer", depends_on=["sibling"]),
        ]
        workflow = make_workflow(rules, stop_on_failure=True)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        # The failing layer is joined, no later layer is scheduled
        assert sorted(r.rule_name for r in result.results) == ["bad", "sibling"]
        assert result.completion == CompletionStatus.STOPPED_ON_FAILURE
        assert result.skipped[0].rule_name == "next_layer"
        assert result.skipped[0].reason == SkipReason.STOPPED_ON_FAILURE


class TestRuleExecution:
    """Tests for per-rule outcomes."""

    @pytest.mark.asyncio
    async def test_missing_provider_is_severity_ten(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule("lost", provider="wmi", severity=2)]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert len(result.results) == 1
        rule_result = result.results[0]
        assert rule_result.success is False
        assert rule_result.severity_score == 10
        assert "wmi" in rule_result.message
        assert fake_probe.events == []

    @pytest.mark.asyncio
    async def test_provider_lookup_is_case_insensitive(self, fake_probe, make_rule, make_workflow):
        workflow = make_workflow([make_rule("upper", provider="FAKE")])

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert result.results[0].success is True
        assert result.results[0].provider == "fake"

    @pytest.mark.asyncio
    async def test_probe_failure_is_severity_nine(self, fake_probe, make_rule, make_workflow):
        workflow = make_workflow([make_rule("denied", fail="Access denied", severity=1)])

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        rule_result = result.results[0]
        assert rule_result.success is False
        assert rule_result.severity_score == 9
        assert rule_result.message == "Access denied"

    @pytest.mark.asyncio
    async def test_provider_exception_is_severity_ten(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule("boom", error="driver exploded"), make_rule("fine")]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        boom = result.get_result("boom")
        assert boom.success is False
        assert boom.severity_score == 10
        assert "driver exploded" in boom.message
        assert result.get_result("fine").success is True

    @pytest.mark.asyncio
    async def test_condition_failure_uses_declared_severity(
        self, fake_probe, make_rule, make_workflow
    ):
        rules = [make_rule("port", value=22, operator="Equals", expected=2222, severity=6)]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        rule_result = result.results[0]
        assert rule_result.success is False
        assert rule_result.severity_score == 6
        assert rule_result.actual == 22
        assert "expected Equals 2222, got 22" in rule_result.message

    @pytest.mark.asyncio
    async def test_failure_message_prefix(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule("fw", value=0, expected=1, failure_message="Firewall is disabled")]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert result.results[0].message.startswith("Firewall is disabled (")

    @pytest.mark.asyncio
    async def test_unknown_operator_fails_closed(self, fake_probe, make_rule, make_workflow):
        workflow = make_workflow([make_rule("odd", operator="Between", severity=4)])

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert result.results[0].success is False
        assert result.results[0].severity_score == 4
        assert "Between" in result.results[0].message

    @pytest.mark.asyncio
    async def test_success_message_and_zero_severity(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("custom", message="All good", severity=8),
            make_rule("default"),
        ]
        workflow = make_workflow(rules, schema_version="2.0")

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        custom = result.get_result("custom")
        assert custom.message == "All good"
        assert custom.severity_score == 0
        assert custom.schema_version == "2.0"
        assert result.get_result("default").message == "Rule 'default' passed"
        assert result.severity_score == 0

    @pytest.mark.asyncio
    async def test_rule_timeout(self, fake_probe, make_rule, make_workflow):
        rules = [make_rule("slow", delay=5, timeout=0.05), make_rule("quick")]
        workflow = make_workflow(rules)

        started = time.monotonic()
        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert time.monotonic() - started < 1
        slow = result.get_result("slow")
        assert slow.success is False
        assert slow.severity_score == 10
        assert "timed out" in slow.message
        assert result.completion == CompletionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_rule_states_and_workflow_state(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("ok"),
            make_rule("bad", value=False),
            make_rule("blocked", depends_on=["bad"]),
        ]
        workflow = make_workflow(rules)
        orchestrator = WorkflowOrchestrator([fake_probe])
        assert orchestrator.state == WorkflowState.NOT_STARTED

        await orchestrator.run(workflow)

        assert orchestrator.state == WorkflowState.COMPLETED
        assert orchestrator.rule_states == {
            "ok": RuleState.SUCCEEDED,
            "bad": RuleState.FAILED,
            "blocked": RuleState.PENDING,
        }

    @pytest.mark.asyncio
    async def test_scoring(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("pass", severity=3),
            make_rule("medium", value=False, severity=6),
            make_rule("critical", value=False, severity=9),
        ]
        workflow = make_workflow(rules)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert result.success is False
        assert result.severity_score == 9
        assert result.risk_level.value == "critical"

    @pytest.mark.asyncio
    async def test_empty_workflow_is_vacuously_successful(self, fake_probe, make_workflow):
        result = await WorkflowOrchestrator([fake_probe]).run(make_workflow([]))

        assert result.success is True
        assert result.severity_score == 0
        assert result.results == []
        assert result.completion == CompletionStatus.COMPLETED

    def test_duplicate_providers_rejected(self):
        with pytest.raises(DuplicateProviderError):
            WorkflowOrchestrator([FakeProbe("fake"), FakeProbe("FAKE")])


class TestTimeoutAndCancellation:
    """Tests for workflow timeouts and caller cancellation."""

    @pytest.mark.asyncio
    async def test_workflow_timeout_returns_partial_result(
        self, fake_probe, make_rule, make_workflow
    ):
        rules = [make_rule("quick"), make_rule("slow", delay=5)]
        workflow = make_workflow(rules, timeout=0.1)

        started = time.monotonic()
        result = await WorkflowOrchestrator([fake_probe]).run(workflow)
        elapsed = time.monotonic() - started

        assert elapsed < 1
        assert [r.rule_name for r in result.results] == ["quick"]
        assert result.completion == CompletionStatus.TIMED_OUT
        assert result.skipped[0].rule_name == "slow"
        assert result.skipped[0].reason == SkipReason.TIMED_OUT
        assert result.skipped[0].state == RuleState.RUNNING

    @pytest.mark.asyncio
    async def test_timeout_leaves_unstarted_rules_absent(self, fake_probe, make_rule, make_workflow):
        rules = [
            make_rule("slow", delay=5),
            make_rule("later"),
            make_rule("last"),
        ]
        workflow = make_workflow(rules, sequential=True, timeout=0.1)

        result = await WorkflowOrchestrator([fake_probe]).run(workflow)

        assert result.results == []
        assert fake_probe.started == ["slow"]
        assert [s.rule_name for s in result.skipped] == ["slow", "later", "last"]
        assert all(s.reason == SkipReason.TIMED_OUT for s in result.skipped)
        assert result.skipped[1].state == RuleState.PENDING

    @pytest.mark.asyncio
    async def test_default_timeout_applies(self, fake_probe, make_rule, make_workflow):
        workflow = make_workflow([make_rule("slow", delay=5)])

        result = await WorkflowOrchestrator([fake_probe], default_timeout=0.05).run(workflow)

        assert result.completion == CompletionStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_caller_cancellation_raises_with_partial_result(
        self, fake_probe, make_rule, make_workflow
    ):
        rules = [make_rule("quick"), make_rule("slow", delay=5)]
        workflow = make_workflow(rules)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        started = time.monotonic()
        with pytest.raises(WorkflowCancelledError) as exc_info:
            await WorkflowOrchestrator([fake_probe]).run(workflow, token)

        assert time.monotonic() - started < 1
        partial = exc_info.value.partial_result
        assert partial.completion == CompletionStatus.CANCELLED
        assert [r.rule_name for r in partial.results] == ["quick"]
        assert partial.skipped[0].reason == SkipReason.CANCELLED

    @pytest.mark.asyncio
    async def test_already_cancelled_token_runs_nothing(self, fake_probe, make_rule, make_workflow):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(WorkflowCancelledError) as exc_info:
            await WorkflowOrchestrator([fake_probe]).run(make_workflow([make_rule("a")]), token)

        assert fake_probe.events == []
        assert exc_info.value.partial_result.results == []

    @pytest.mark.asyncio
    async def test_completed_run_ignores_late_cancellation(
        self, fake_probe, make_rule, make_workflow
    ):
        token = CancellationToken()
        result = await WorkflowOrchestrator([fake_probe]).run(make_workflow([make_rule("a")]), token)
        token.cancel()

        assert result.completion == CompletionStatus.COMPLETED
