"""
Audit engine front door.

Filters workflows by applicability and fans the applicable ones out to one
WorkflowOrchestrator each, running them concurrently.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from configsentinel.core.cancellation import CancellationToken
from configsentinel.core.errors import AuditCancelledError, WorkflowCancelledError
from configsentinel.engine.applicability import ApplicabilityEvaluator
from configsentinel.engine.orchestrator import WorkflowOrchestrator
from configsentinel.engine.results import WorkflowResultSet
from configsentinel.engine.schema import WorkflowDefinition
from configsentinel.probes.protocols import ProbeProvider
from configsentinel.probes.registry import ProbeProviderRegistry, ProbeRegistry

if TYPE_CHECKING:
    from configsentinel.config.settings import SentinelSettings

logger = logging.getLogger(__name__)


class AuditEngine:
    """
    Runs a batch of workflows against a set of probe providers.

    Workflows that are not applicable to the current platform are omitted
    from the returned list. The remaining result sets keep input order.

    Example:
        ```python
        engine = AuditEngine(ProbeProviderRegistry.create_all())
        token = CancellationToken()

        try:
            results = await engine.run(workflows, token)
        except AuditCancelledError as e:
            results = e.partial_results
        ```
    """

    def __init__(
        self,
        providers: Iterable[ProbeProvider],
        applicability: Optional[ApplicabilityEvaluator] = None,
        max_concurrency: Optional[int] = None,
        default_timeout: Optional[float] = None,
    ):
        self.providers: List[ProbeProvider] = list(providers)
        # Fails fast on duplicate provider names
        self.registry = ProbeRegistry(self.providers)
        self.applicability = applicability or ApplicabilityEvaluator()
        self.max_concurrency = max_concurrency
        self.default_timeout = default_timeout

    @classmethod
    def from_settings(
        cls,
        settings: "SentinelSettings",
        providers: Optional[Iterable[ProbeProvider]] = None,
    ) -> "AuditEngine":
        """
        Build an engine from configuration.

        Args:
            settings: Loaded SentinelSettings
            providers: Provider instances; defaults to the built-in providers
                enabled in settings (all of them when the list is empty)
        """
        if providers is None:
            providers = ProbeProviderRegistry.create_all(settings.providers.enabled or None)

        return cls(
            providers,
            applicability=ApplicabilityEvaluator(enforce_product=settings.engine.enforce_product),
            max_concurrency=settings.engine.max_concurrency,
            default_timeout=settings.engine.default_timeout_seconds,
        )

    def filter_applicable(self, workflows: Iterable[WorkflowDefinition]) -> List[WorkflowDefinition]:
        """Keep only the workflows targeting the current platform."""
        applicable = []
        for workflow in workflows:
            if self.applicability.is_applicable(workflow.applicability):
                applicable.append(workflow)
            else:
                logger.info(f"Skipping workflow '{workflow.name}': not applicable to this platform")
        return applicable

    async def run(
        self,
        workflows: Sequence[WorkflowDefinition],
        cancellation: Optional[CancellationToken] = None,
    ) -> List[WorkflowResultSet]:
        """
        Run every applicable workflow concurrently.

        Args:
            workflows: Validated workflow definitions
            cancellation: Caller token shared by every orchestration

        Returns:
            One result set per applicable workflow, in input order

        Raises:
            AuditCancelledError: If the caller cancelled; carries every
                result set gathered, complete or partial
        """
        applicable = self.filter_applicable(workflows)
        logger.info(
            f"Running {len(applicable)} of {len(workflows)} workflows "
            f"with providers {self.registry.names()}"
        )

        outcomes = await asyncio.gather(
            *(self._orchestrator().run(workflow, cancellation) for workflow in applicable),
            return_exceptions=True,
        )

        results: List[WorkflowResultSet] = []
        cancelled = False
        for outcome in outcomes:
            if isinstance(outcome, WorkflowCancelledError):
                results.append(outcome.partial_result)
                cancelled = True
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        if cancelled:
            raise AuditCancelledError(results)
        return results

    def _orchestrator(self) -> WorkflowOrchestrator:
        return WorkflowOrchestrator(
            self.registry,
            max_concurrency=self.max_concurrency,
            default_timeout=self.default_timeout,
        )
