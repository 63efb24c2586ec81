"""
Tests for finsight/pipeline/executor.py

Verifies sequential execution, per-stage failure isolation, write declarations,
input seeding, phase tracking and JSON conversion of the final state.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

import numpy as np
import pytest

from finsight.pipeline import (
    Channel,
    ChannelError,
    MergePolicy,
    Pipeline,
    PipelineSchema,
    Stage,
    dependency_error,
    error_record,
    to_jsonable,
)


@pytest.fixture
def schema():
    """Three channels covering every merge policy, plus phases."""
    return PipelineSchema(
        [
            Channel("value", MergePolicy.REPLACE),
            Channel("log", MergePolicy.APPEND),
            Channel("meta", MergePolicy.SHALLOW_MERGE),
            Channel("phases", MergePolicy.APPEND),
        ]
    )


def _boom(state):
    raise RuntimeError("stage exploded")


class TestStageExecution:
    """Ordering and commit behavior."""

    @pytest.mark.asyncio
    async def test_stages_run_in_order_and_see_earlier_writes(self, schema):
        """Each stage receives the state committed by the previous ones."""
        seen = []

        def first(state):
            seen.append(state["value"])
            return {"value": 1, "log": ["first"]}

        async def second(state):
            seen.append(state["value"])
            return {"value": state["value"] + 1, "log": ["second"]}

        pipeline = Pipeline(
            "ordered", schema, [Stage("first", first, {"value", "log"}), Stage("second", second, {"value", "log"})]
        )
        final = await pipeline.invoke()

        assert seen == [None, 1]
        assert final["value"] == 2
        assert final["log"] == ["first", "second"]
        assert final["errors"] == []

    @pytest.mark.asyncio
    async def test_stage_returning_none_commits_nothing(self, schema):
        pipeline = Pipeline("noop", schema, [Stage("noop", lambda state: None)])
        final = await pipeline.invoke({"value": 3})
        assert final["value"] == 3
        assert final["errors"] == []

    @pytest.mark.asyncio
    async def test_pipeline_can_be_invoked_repeatedly(self, schema):
        """Each invoke starts from a fresh store."""
        pipeline = Pipeline("repeat", schema, [Stage("log", lambda state: {"log": ["x"]}, {"log"})])
        await pipeline.invoke()
        final = await pipeline.invoke()
        assert final["log"] == ["x"]


class TestFailureIsolation:
    """A failing stage is recorded and the pipeline keeps going."""

    @pytest.mark.asyncio
    async def test_raising_stage_records_error_and_continues(self, schema):
        pipeline = Pipeline(
            "isolated",
            schema,
            [
                Stage("before", lambda state: {"log": ["before"]}, {"log"}),
                Stage("broken", _boom, {"value"}),
                Stage("after", lambda state: {"log": ["after"]}, {"log"}),
            ],
        )
        final = await pipeline.invoke()

        assert final["log"] == ["before", "after"]
        assert final["value"] is None
        assert len(final["errors"]) == 1
        error = final["errors"][0]
        assert error["stageName"] == "broken"
        assert error["message"] == "stage exploded"
        assert isinstance(error["timestampMillis"], int)

    @pytest.mark.asyncio
    async def test_failed_stage_commits_nothing_but_errors(self, schema):
        """A stage whose update is rejected leaves its other channels untouched."""

        def bad_merge(state):
            return {"value": 99, "meta": ["not", "a", "mapping"]}

        pipeline = Pipeline("bad_merge", schema, [Stage("bad_merge", bad_merge, {"value", "meta"})])
        final = await pipeline.invoke()

        assert final["value"] is None
        assert final["meta"] == {}
        assert final["errors"][0]["stageName"] == "bad_merge"

    @pytest.mark.asyncio
    async def test_in_place_changes_by_failed_stage_discarded(self, schema):
        """Changes a failing stage makes to its snapshot lists and dicts do not reach the state."""

        def seed(state):
            return {"log": ["kept"], "meta": {"run": 1}}

        def mutate_then_fail(state):
            state["log"].append("leaked")
            state["meta"]["leaked"] = True
            raise RuntimeError("boom")

        pipeline = Pipeline(
            "mutating",
            schema,
            [Stage("seed", seed, {"log", "meta"}), Stage("bad", mutate_then_fail, {"log", "meta"})],
        )
        final = await pipeline.invoke()

        assert final["log"] == ["kept"]
        assert final["meta"] == {"run": 1}
        assert [error["stageName"] for error in final["errors"]] == ["bad"]

    @pytest.mark.asyncio
    async def test_undeclared_write_is_a_failure(self, schema):
        """Writing a channel outside ``writes`` is rejected as a whole."""
        pipeline = Pipeline("sneaky", schema, [Stage("sneaky", lambda state: {"value": 1, "log": ["x"]}, {"log"})])
        final = await pipeline.invoke()

        assert final["log"] == []
        assert final["value"] is None
        assert "undeclared" in final["errors"][0]["message"]

    @pytest.mark.asyncio
    async def test_non_mapping_result_is_a_failure(self, schema):
        pipeline = Pipeline("odd", schema, [Stage("odd", lambda state: [1, 2])])
        final = await pipeline.invoke()
        assert "expected a mapping" in final["errors"][0]["message"]

    @pytest.mark.asyncio
    async def test_stage_may_report_its_own_errors(self, schema):
        """A degraded stage returns results plus dependency errors."""

        def degraded(state):
            return {"value": 0, "errors": [dependency_error("degraded", "upstream missing")]}

        pipeline = Pipeline("degraded", schema, [Stage("degraded", degraded, {"value"})])
        final = await pipeline.invoke()

        assert final["value"] == 0
        assert final["errors"][0]["kind"] == "dependency"
        assert final["errors"][0]["message"] == "upstream missing"

    def test_unknown_write_declaration_rejected_at_construction(self, schema):
        with pytest.raises(ChannelError, match="unknown channels"):
            Pipeline("broken", schema, [Stage("writer", lambda state: None, {"nowhere"})])


class TestSeeding:
    """Initial state handling."""

    @pytest.mark.asyncio
    async def test_unknown_input_keys_dropped_with_error(self, schema):
        pipeline = Pipeline("seeded", schema, [])
        final = await pipeline.invoke({"value": 5, "bogus": 1})

        assert final["value"] == 5
        assert "bogus" not in final
        assert final["errors"][0]["stageName"] == "input"

    @pytest.mark.asyncio
    async def test_incompatible_input_value_rejected(self, schema):
        pipeline = Pipeline("seeded", schema, [])
        final = await pipeline.invoke({"meta": "not a mapping"})

        assert final["meta"] == {}
        assert final["errors"][0]["stageName"] == "input"


class TestPhaseTracking:
    """One phase entry per stage when a phase channel is configured."""

    @pytest.mark.asyncio
    async def test_phase_entries_recorded(self, schema):
        pipeline = Pipeline(
            "phased",
            schema,
            [Stage("ok", lambda state: {"value": 1}, {"value"}), Stage("broken", _boom)],
            phase_channel="phases",
        )
        final = await pipeline.invoke()

        assert [phase["phase"] for phase in final["phases"]] == ["ok", "broken"]
        assert [phase["success"] for phase in final["phases"]] == [True, False]
        assert all(phase["duration_ms"] >= 0 for phase in final["phases"])

    @pytest.mark.asyncio
    async def test_no_phase_channel_no_entries(self, schema):
        pipeline = Pipeline("plain", schema, [Stage("ok", lambda state: {"value": 1}, {"value"})])
        final = await pipeline.invoke()
        assert final["phases"] == []


@dataclass
class _Model:
    name: str

    def to_dict(self):
        return {"name": self.name}


class TestToJsonable:
    """Final state is plain JSON."""

    def test_converts_models_numpy_and_datetimes(self):
        value = {
            "model": _Model("x"),
            "array": np.array([1.0, 2.0]),
            "scalar": np.float64(1.5),
            "when": datetime(2026, 1, 1, tzinfo=UTC),
            "items": (1, 2),
            "bad": float("nan"),
        }
        converted = to_jsonable(value)

        assert converted == {
            "model": {"name": "x"},
            "array": [1.0, 2.0],
            "scalar": 1.5,
            "when": "2026-01-01T00:00:00+00:00",
            "items": [1, 2],
            "bad": None,
        }
        json.dumps(converted)

    def test_error_record_extra_fields(self):
        record = error_record("stage", "failed", task="forecasting")
        assert record["task"] == "forecasting"
        assert set(record) == {"stageName", "message", "timestampMillis", "task"}
