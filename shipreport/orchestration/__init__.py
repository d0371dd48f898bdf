"""
Orchestration module for status recipes.
"""

from shipreport.orchestration.state_machine import (
    RunResult,
    Step,
    StepOutcome,
    StepResult,
    StepSnapshot,
    run_recipe,
)

__all__ = [
    "RunResult",
    "Step",
    "StepOutcome",
    "StepResult",
    "StepSnapshot",
    "run_recipe",
]
