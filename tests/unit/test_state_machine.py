"""
Tests for the recipe runner.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from shipreport.core.constants import StepStatus
from shipreport.orchestration.state_machine import Step, StepResult, StepSnapshot, run_recipe


@dataclass
class Trace:
    calls: list[str] = field(default_factory=list)


def _record(name: str, result: Optional[StepResult] = None):
    def run(ctx: Trace) -> Optional[StepResult]:
        ctx.calls.append(name)
        return result

    return run


class TestRunRecipe:
    """Tests for run_recipe."""

    @pytest.mark.asyncio
    async def test_runs_steps_in_order(self) -> None:
        """Test sync and async steps run strictly in order."""

        async def second(ctx: Trace) -> None:
            ctx.calls.append("b")

        steps = [Step(name="a", run=_record("a")), Step(name="b", run=second), Step(name="c", run=_record("c"))]

        result = await run_recipe(steps, Trace())

        assert result.context.calls == ["a", "b", "c"]
        assert result.halted is None
        assert [s.status for s in result.snapshots] == [StepStatus.SUCCEEDED] * 3

    @pytest.mark.asyncio
    async def test_transitions_are_reported(self) -> None:
        """Test the pending → running → succeeded moves per step."""
        seen: list[tuple[str, StepStatus]] = []

        def observe(snapshot: StepSnapshot, ctx: Any) -> None:
            seen.append((snapshot.name, snapshot.status))

        await run_recipe([Step(name="a", run=_record("a"))], Trace(), on_transition=observe)

        assert seen == [("a", StepStatus.RUNNING), ("a", StepStatus.SUCCEEDED)]

    @pytest.mark.asyncio
    async def test_halt_stops_without_error(self) -> None:
        """Test that a halt result skips the remaining steps."""
        steps = [
            Step(name="a", run=_record("a", StepResult.halt("nothing to do"))),
            Step(name="b", run=_record("b")),
        ]

        result = await run_recipe(steps, Trace())

        assert result.context.calls == ["a"]
        assert result.halted is not None
        assert result.halted.reason == "nothing to do"
        assert result.snapshots[1].status == StepStatus.PENDING

    @pytest.mark.asyncio
    async def test_failure_is_reraised(self) -> None:
        """Test that a failing step is marked failed and its error propagates."""
        error = ValueError("upstream down")

        def boom(ctx: Trace) -> None:
            raise error

        phases: list[tuple[str, Optional[dict]]] = []
        seen: list[StepSnapshot] = []
        steps = [Step(name="a", run=boom), Step(name="b", run=_record("b"))]

        with pytest.raises(ValueError):
            await run_recipe(
                steps,
                Trace(),
                on_transition=lambda snapshot, ctx: seen.append(snapshot),
                phase_names={"a": "Doing A"},
                on_phase=lambda label, meta: phases.append((label, meta)),
            )

        assert seen[-1].status == StepStatus.FAILED
        assert seen[-1].error is error
        assert phases == [("Doing A", None), ("Doing A", {"complete": True, "failed": True})]

    @pytest.mark.asyncio
    async def test_silent_steps_report_no_phase(self) -> None:
        """Test that steps without a display name emit no phases."""
        phases: list[str] = []
        steps = [Step(name="quiet", run=_record("quiet")), Step(name="loud", run=_record("loud"))]

        await run_recipe(
            steps,
            Trace(),
            phase_names={"quiet": None, "loud": "Loud step"},
            on_phase=lambda label, meta: phases.append(label),
        )

        assert phases == ["Loud step", "Loud step"]
