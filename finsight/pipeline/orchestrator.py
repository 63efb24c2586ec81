"""
Parallel Sub-pipeline Orchestrator

Fans out independent analyses concurrently with settle-all semantics: every
task runs to completion (success or failure) before ``run_all`` returns, and one
failure never cancels the others. Coroutine functions are awaited directly;
plain callables run in the default thread pool so blocking numeric work does not
stall the event loop.

Usage::

    from finsight.pipeline.orchestrator import SubAnalysis, run_all

    result = await run_all([
        SubAnalysis("forecasting", forecast_series, args=(values,)),
        SubAnalysis("health", score_health, kwargs={"transactions": transactions}),
    ])
    state_update = result.as_state()   # {"forecastingResults": ..., "healthResults": ...}
"""

import asyncio
import inspect
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from finsight.core.logging_config import get_logger
from finsight.pipeline.executor import error_record

logger = get_logger(__name__)

RESULT_SUFFIX = "Results"


@dataclass(frozen=True)
class SubAnalysis:
    """A named, independent computation."""

    name: str
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrchestrationResult:
    """
    Settled outcome of ``run_all``.

    ``failed`` maps task names to wire-format error records tagged with the task.
    """

    succeeded: dict[str, Any]
    failed: dict[str, dict[str, Any]]
    duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def as_state(self) -> dict[str, Any]:
        """Results keyed ``<name>Results`` plus success counters."""
        state: dict[str, Any] = {f"{name}{RESULT_SUFFIX}": value for name, value in self.succeeded.items()}
        state["successful_workflows"] = len(self.succeeded)
        state["total_workflows"] = self.total
        return state

    def error_records(self) -> list[dict[str, Any]]:
        return list(self.failed.values())


async def _run_one(task: SubAnalysis) -> Any:
    if inspect.iscoroutinefunction(task.func):
        return await task.func(*task.args, **task.kwargs)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, lambda: task.func(*task.args, **task.kwargs))
    if inspect.isawaitable(result):
        return await result
    return result


async def run_all(tasks: Iterable[SubAnalysis], stage_name: str = "orchestrate") -> OrchestrationResult:
    """
    Run every task concurrently and wait for all of them to settle.

    Args:
        tasks: Sub-analyses with unique names
        stage_name: Stage recorded on the error records of failed tasks

    Returns:
        OrchestrationResult with succeeded results and failure records by name

    Raises:
        ValueError: If two tasks share a name
    """
    tasks = list(tasks)
    names = [task.name for task in tasks]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate sub-analysis names: {names}")

    logger.info("Starting parallel analyses", extra={"tasks": names})

    start = time.perf_counter()
    outcomes = await asyncio.gather(*(_run_one(task) for task in tasks), return_exceptions=True)
    duration_ms = round((time.perf_counter() - start) * 1000, 2)

    succeeded: dict[str, Any] = {}
    failed: dict[str, dict[str, Any]] = {}
    for task, outcome in zip(tasks, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            logger.error(
                f"Sub-analysis {task.name} failed: {outcome}",
                extra={"task": task.name, "exception": outcome.__class__.__name__},
            )
            failed[task.name] = error_record(stage_name, str(outcome) or outcome.__class__.__name__, task=task.name)
        else:
            succeeded[task.name] = outcome

    logger.info(
        f"Parallel analyses settled: {len(succeeded)}/{len(tasks)} succeeded in {duration_ms:.0f}ms",
        extra={"succeeded": len(succeeded), "failed": len(failed), "duration_ms": duration_ms},
    )

    return OrchestrationResult(succeeded=succeeded, failed=failed, duration_ms=duration_ms)
