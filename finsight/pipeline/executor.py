"""
Stage Executor

Runs an ordered list of stages against a fresh ChannelStore. Stages run strictly
in sequence; each one receives a read-only snapshot and returns a partial update
that the executor commits. A stage that raises, returns something other than a
mapping, or writes a channel it did not declare is recorded as a failure: only
``{"errors": [record]}`` is committed and the pipeline moves on.

Error records use the wire format ``{stageName, message, timestampMillis}``.

Usage::

    from finsight.pipeline.executor import Pipeline, Stage

    pipeline = Pipeline(
        "example",
        schema,
        [
            Stage("load", load_stage, writes={"transaction_data"}),
            Stage("score", score_stage, writes={"health_score"}),
        ],
    )
    final_state = await pipeline.invoke({"transactions": records})
"""

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

import numpy as np

from finsight.core.logging_config import get_logger, log_with_context
from finsight.core.observability import track_performance
from finsight.pipeline.channels import ERRORS_CHANNEL, ChannelError, PipelineSchema
from finsight.utils.datetime_utils import epoch_millis

logger = get_logger(__name__)

INPUT_STAGE = "input"

StageFunction = Callable[[Mapping[str, Any]], Mapping[str, Any] | None | Awaitable[Mapping[str, Any] | None]]


def error_record(stage_name: str, message: str, **extra: Any) -> dict[str, Any]:
    """Build a wire-format error record."""
    record: dict[str, Any] = {
        "stageName": stage_name,
        "message": message,
        "timestampMillis": epoch_millis(),
    }
    record.update(extra)
    return record


def dependency_error(stage_name: str, message: str) -> dict[str, Any]:
    """
    Error record for a stage that ran degraded because an input was missing.

    Stages return it inside their own ``errors`` list instead of raising.
    """
    return error_record(stage_name, message, kind="dependency")


def to_jsonable(value: Any) -> Any:
    """
    Convert a state value into plain JSON types.

    Handles dataclass-style models (``to_dict``), datetimes, enums, numpy
    scalars/arrays, tuples and sets. Non-finite floats become None.
    """
    if value is None or isinstance(value, bool | str | int):
        return value
    if isinstance(value, float):
        return value if np.isfinite(value) else None
    if isinstance(value, np.generic):
        return to_jsonable(value.item())
    if isinstance(value, np.ndarray):
        return [to_jsonable(item) for item in value.tolist()]
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return to_jsonable(value.value)
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_jsonable(item) for item in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_jsonable(to_dict())
    return str(value)


@dataclass(frozen=True)
class Stage:
    """
    One pipeline step.

    Attributes:
        name: Stage name used in logs and error records
        func: Sync or async callable ``(snapshot) -> partial update``
        writes: Channels the stage may write (``errors`` is always allowed)
    """

    name: str
    func: StageFunction
    writes: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "writes", frozenset(self.writes))


class StageExecutor:
    """
    Sequential stage runner with per-stage failure isolation.

    Args:
        schema: Channel declarations for the state
        pipeline_name: Name used in log records
        phase_channel: Optional APPEND channel that receives one timing entry per stage
    """

    def __init__(self, schema: PipelineSchema, pipeline_name: str = "pipeline", phase_channel: str | None = None):
        self.schema = schema
        self.pipeline_name = pipeline_name
        self.phase_channel = phase_channel

    async def run(self, stages: Iterable[Stage], initial_partial: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        Execute stages in order and return the final state.

        Unknown keys in ``initial_partial`` are dropped with an ``input`` error record.

        Returns:
            JSON-serializable dict with every registered channel
        """
        store = self.schema.build_store()
        self._seed(store, initial_partial or {})

        for stage in stages:
            snapshot = store.snapshot()
            with track_performance(f"stage:{stage.name}", alert_threshold_ms=2000) as perf:
                update, failure = await self._execute(stage, snapshot)
                if failure is None:
                    try:
                        store.commit(update)
                    except ChannelError as e:
                        failure = error_record(stage.name, str(e))
                if failure is not None:
                    store.commit({ERRORS_CHANNEL: [failure]})
                perf["pipeline"] = self.pipeline_name
                perf["success"] = failure is None

            if failure is None:
                logger.info(
                    f"Stage {stage.name} complete",
                    extra={"pipeline": self.pipeline_name, "stage": stage.name, "duration_ms": perf["duration_ms"]},
                )
            else:
                logger.warning(
                    f"Stage {stage.name} failed: {failure['message']}",
                    extra={"pipeline": self.pipeline_name, "stage": stage.name, "duration_ms": perf["duration_ms"]},
                )

            if self.phase_channel and self.phase_channel in store:
                store.commit(
                    {
                        self.phase_channel: [
                            {
                                "phase": stage.name,
                                "duration_ms": perf["duration_ms"],
                                "timestamp": epoch_millis(),
                                "success": failure is None,
                            }
                        ]
                    }
                )

        return to_jsonable(dict(store.snapshot()))

    def _seed(self, store, initial_partial: Mapping[str, Any]) -> None:
        accepted: dict[str, Any] = {}
        rejected: list[dict[str, Any]] = []

        for key, value in initial_partial.items():
            if key not in store:
                rejected.append(error_record(INPUT_STAGE, f"Unknown input channel dropped: {key}"))
            elif not store.policy_of(key).accepts(value):
                rejected.append(
                    error_record(INPUT_STAGE, f"Input channel {key} rejected value of type {type(value).__name__}")
                )
            else:
                accepted[key] = value

        store.commit(accepted)
        if rejected:
            store.commit({ERRORS_CHANNEL: rejected})
            logger.warning(
                "Initial state contained rejected keys",
                extra={"pipeline": self.pipeline_name, "rejected": len(rejected)},
            )

    async def _execute(
        self, stage: Stage, snapshot: Mapping[str, Any]
    ) -> tuple[Mapping[str, Any], dict[str, Any] | None]:
        try:
            result = stage.func(snapshot)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.debug("Stage raised", exc_info=True, extra={"stage": stage.name})
            return {}, error_record(stage.name, str(e) or e.__class__.__name__)

        if result is None:
            return {}, None

        if not isinstance(result, Mapping):
            return {}, error_record(stage.name, f"Stage returned {type(result).__name__}, expected a mapping")

        undeclared = set(result) - stage.writes - {ERRORS_CHANNEL}
        if undeclared:
            return {}, error_record(stage.name, f"Stage wrote undeclared channels: {sorted(undeclared)}")

        return result, None


class Pipeline:
    """
    A named workflow: channel schema plus ordered stages.

    ``invoke`` builds a fresh store per call, so one Pipeline can be invoked
    repeatedly (not concurrently against shared collaborators with state).

    Raises:
        ChannelError: At construction, if a stage declares a channel the schema lacks
    """

    def __init__(
        self,
        name: str,
        schema: PipelineSchema,
        stages: Iterable[Stage],
        phase_channel: str | None = None,
    ):
        self.name = name
        self.schema = schema
        self.stages: tuple[Stage, ...] = tuple(stages)

        declared = set(schema.channel_names)
        for stage in self.stages:
            missing = stage.writes - declared
            if missing:
                raise ChannelError(f"Stage {stage.name} writes unknown channels: {sorted(missing)}")

        self.executor = StageExecutor(schema, pipeline_name=name, phase_channel=phase_channel)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def invoke(self, initial: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        Run every stage and return the final JSON-serializable state.

        Stage failures end up in ``errors``; only executor defects propagate.
        """
        with track_performance(f"pipeline:{self.name}", alert_threshold_ms=10000) as perf:
            perf["stage_count"] = len(self.stages)
            final_state = await self.executor.run(self.stages, initial)
            perf["error_count"] = len(final_state.get(ERRORS_CHANNEL, []))

        log_with_context(
            logger,
            "warning" if perf["error_count"] else "info",
            f"Pipeline {self.name} finished",
            pipeline=self.name,
            stage_count=len(self.stages),
            error_count=perf["error_count"],
            duration_ms=perf["duration_ms"],
        )
        return final_state
