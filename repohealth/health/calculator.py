"""Main health assessment orchestrator."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from pathlib import Path

from repohealth.health.aggregator import aggregate
from repohealth.health.assessors import (
    AssessmentContext,
    AssessorRegistry,
    BaseAssessor,
    default_registry,
)
from repohealth.health.config import HealthConfig
from repohealth.health.errors import AssessmentCancelled, ProjectNotFoundError
from repohealth.health.models import DimensionResult, Finding, HealthReport, Severity
from repohealth.health.tools import ToolRunner

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Lifecycle of one assessment run."""

    IDLE = "idle"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    DONE = "done"


class HealthCalculator:
    """Orchestrates the dimension assessors and aggregates their results.

    Assessors run concurrently on a thread pool (one worker when
    ``config.parallel`` is off). ``config.run_timeout`` bounds the whole run:
    when it expires the run is cancelled, running external tools are killed,
    and every dimension that has not finished is reported as incomplete.
    A ``KeyboardInterrupt`` is handled the same way, so an interrupted run
    still produces a report from the dimensions that finished.
    """

    def __init__(
        self,
        registry: AssessorRegistry | None = None,
        tools: ToolRunner | None = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.tools = tools
        self.state = RunState.IDLE

    def calculate(self, project_path: Path, config: HealthConfig | None = None) -> HealthReport:
        """Assess a project and return its health report.

        Args:
            project_path: Path to the project root
            config: Run configuration; defaults are used if omitted

        Returns:
            HealthReport aggregated from every registered dimension

        Raises:
            ProjectNotFoundError: If the path is not an existing directory
        """
        config = config or HealthConfig()
        if not project_path.is_dir():
            raise ProjectNotFoundError(str(project_path))
        project_path = project_path.resolve()

        if self.tools is not None:
            # Each run gets its own cancellation signal
            self.tools.cancel_event = threading.Event()
            tools = self.tools
        else:
            tools = ToolRunner(
                default_timeout=config.tool_timeout,
                cancel_event=threading.Event(),
                enabled=config.run_tools,
            )

        self._set_state(RunState.RUNNING)
        started = time.monotonic()
        results = self._run_assessors(project_path, config, tools)
        logger.debug(f"Assessors finished in {time.monotonic() - started:.2f}s")

        self._set_state(RunState.AGGREGATING)
        report = aggregate(results, config, project_path)
        self._set_state(RunState.DONE)
        return report

    def _run_assessors(
        self, project_path: Path, config: HealthConfig, tools: ToolRunner
    ) -> list[DimensionResult]:
        assessors = list(self.registry)
        if not assessors:
            return []

        workers = len(assessors) if config.parallel else 1
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="health")
        futures: dict[Future[DimensionResult], BaseAssessor] = {}
        interrupted = False
        try:
            for assessor in assessors:
                futures[executor.submit(self._assess, assessor, project_path, config, tools)] = (
                    assessor
                )
            done, pending = wait(futures, timeout=config.run_timeout)
        except KeyboardInterrupt:
            logger.warning("Interrupted; reporting the dimensions that finished")
            interrupted = True
            done = {f for f in futures if f.done() and not f.cancelled()}
            pending = set(futures) - done

        if interrupted:
            reason = "Assessment cancelled"
            self._cancel(executor, tools)
        elif pending:
            reason = f"Assessment timed out after {config.run_timeout}s"
            logger.warning(
                f"Run timeout of {config.run_timeout}s expired; "
                f"{len(pending)} assessor(s) did not finish"
            )
            self._cancel(executor, tools)
        else:
            executor.shutdown(wait=True)

        results: list[DimensionResult] = []
        for future, assessor in futures.items():
            if future in done:
                results.append(future.result())
            else:
                results.append(self._incomplete(assessor, config, reason))
        # Assessors never submitted because the interrupt arrived first
        for assessor in assessors[len(futures) :]:
            results.append(self._incomplete(assessor, config, reason))
        return results

    def _assess(
        self,
        assessor: BaseAssessor,
        project_path: Path,
        config: HealthConfig,
        tools: ToolRunner,
    ) -> DimensionResult:
        """Run one assessor, converting failures into an incomplete result."""
        # Each assessor gets its own probes; the tool runner and cancel event are shared
        context = AssessmentContext.create(project_path, config, tools=tools)
        try:
            return assessor.assess(project_path, config, context)
        except AssessmentCancelled:
            logger.debug(f"{assessor.name} cancelled")
            return self._incomplete(assessor, config, "Assessment cancelled")
        except Exception as e:
            logger.warning(f"Failed to assess {assessor.name}: {e}")
            return self._incomplete(assessor, config, f"Assessment failed: {str(e)[:100]}")

    def _cancel(self, executor: ThreadPoolExecutor, tools: ToolRunner) -> None:
        tools.cancel()
        executor.shutdown(wait=False, cancel_futures=True)

    def _incomplete(
        self, assessor: BaseAssessor, config: HealthConfig, reason: str
    ) -> DimensionResult:
        return DimensionResult(
            name=assessor.name,
            score=100,
            weight=assessor.weight(config),
            findings=(
                Finding(
                    severity=Severity.INFO,
                    category="incomplete",
                    message=reason,
                    source_assessor=assessor.name,
                ),
            ),
            description=reason,
            details={"error": reason},
            complete=False,
        )

    def _set_state(self, state: RunState) -> None:
        logger.debug(f"Run state: {self.state.value} -> {state.value}")
        self.state = state
