"""
Ordered step runner for status recipes.
"""

import copy
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Mapping, Optional, TypeVar, Union

from shipreport.core.constants import StepStatus
from shipreport.core.logging import get_logger

logger = get_logger(__name__)

C = TypeVar("C")


class StepOutcome(str, Enum):
    PROCEED = "proceed"
    HALT = "halt"


@dataclass(frozen=True)
class StepResult:
    """What a step asks the runner to do next. Returning None means proceed."""

    outcome: StepOutcome = StepOutcome.PROCEED
    reason: Optional[str] = None

    @classmethod
    def proceed(cls) -> "StepResult":
        return cls()

    @classmethod
    def halt(cls, reason: str) -> "StepResult":
        return cls(outcome=StepOutcome.HALT, reason=reason)

    @property
    def halted(self) -> bool:
        return self.outcome == StepOutcome.HALT


@dataclass
class Step(Generic[C]):
    """A named callable run against the shared context; it may be async."""

    name: str
    run: Callable[[C], Union[Optional[StepResult], Awaitable[Optional[StepResult]]]]


@dataclass
class StepSnapshot:
    name: str
    status: StepStatus = StepStatus.PENDING
    error: Optional[BaseException] = None


@dataclass
class RunResult(Generic[C]):
    context: C
    snapshots: list[StepSnapshot] = field(default_factory=list)
    halted: Optional[StepResult] = None


TransitionHook = Callable[[StepSnapshot, Any], None]
PhaseHook = Callable[[str, Optional[dict[str, Any]]], None]


async def run_recipe(
    steps: list[Step[C]],
    context: C,
    on_transition: Optional[TransitionHook] = None,
    phase_names: Optional[Mapping[str, Optional[str]]] = None,
    on_phase: Optional[PhaseHook] = None,
) -> RunResult[C]:
    """
    Run ``steps`` strictly in order against ``context``.

    Each step moves pending → running → succeeded or failed, and
    ``on_transition`` receives a copy of the snapshot at every move. Steps
    with a display name in ``phase_names`` also report a phase before they
    start and a completed (or failed) phase afterwards. A halt result stops
    the run without error; an exception marks the step failed and is
    re-raised, leaving the remaining steps pending.

    Args:
        steps: Recipe to execute
        context: Mutable state shared by all steps
        on_transition: Snapshot observer
        phase_names: Step name to progress label; None or missing means silent
        on_phase: Receives (label, meta) for phase notifications

    Returns:
        RunResult with the context, final snapshots and the halt, if any
    """
    snapshots = [StepSnapshot(name=step.name) for step in steps]

    def notify(snapshot: StepSnapshot) -> None:
        if on_transition is not None:
            on_transition(copy.copy(snapshot), context)

    def phase(name: str, meta: Optional[dict[str, Any]] = None) -> None:
        if on_phase is None or phase_names is None:
            return
        label = phase_names.get(name)
        if label:
            on_phase(label, meta)

    for step, snapshot in zip(steps, snapshots):
        phase(step.name)
        snapshot.status = StepStatus.RUNNING
        notify(snapshot)
        logger.debug("Step started", step=step.name)

        try:
            result = step.run(context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            phase(step.name, {"complete": True, "failed": True})
            snapshot.status = StepStatus.FAILED
            snapshot.error = e
            notify(snapshot)
            logger.error("Step failed", step=step.name, error=str(e))
            raise

        phase(step.name, {"complete": True})
        snapshot.status = StepStatus.SUCCEEDED
        notify(snapshot)

        if result is not None and result.halted:
            logger.info("Recipe halted", step=step.name, reason=result.reason)
            return RunResult(context=context, snapshots=snapshots, halted=result)

    return RunResult(context=context, snapshots=snapshots)
