"""
Summarizer result models.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Assessment(BaseModel):
    """Per-item impact assessment returned by the model."""

    model_config = ConfigDict(extra="ignore")

    # Jira issues are assessed under their key, so ids are not always numeric
    bug_id: Union[int, str]
    impact_score: float = 0
    short_reason: Optional[str] = None
    demo_suggestion: Optional[str] = None

    @field_validator("impact_score", mode="before")
    @classmethod
    def _coerce_score(cls, v: Any) -> float:
        try:
            return float(v)
        except (TypeError, ValueError):
            return float("nan")


class SummarizerResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    assessments: list[Assessment] = Field(default_factory=list)
    summary_md: str = ""

    @field_validator("assessments", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("summary_md", mode="before")
    @classmethod
    def _none_as_blank(cls, v: Any) -> Any:
        return "" if v is None else v
