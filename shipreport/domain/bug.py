"""
Bugzilla domain models.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AssigneeDetail(BaseModel):
    """Subset of Bugzilla's ``assigned_to_detail`` object."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: Optional[str] = None
    real_name: Optional[str] = None
    nick: Optional[str] = None
    display_name: Optional[str] = None


class Bug(BaseModel):
    """A candidate bug as returned by ``/rest/bug``."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., description="Bug number")
    summary: str = ""
    product: str = ""
    component: str = ""
    status: str = ""
    resolution: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_to_detail: Optional[AssigneeDetail] = None
    last_change_time: str = ""
    groups: list[str] = Field(default_factory=list, description="Restriction groups")
    depends_on: list[int] = Field(default_factory=list)
    blocks: list[int] = Field(default_factory=list)

    @field_validator("groups", "depends_on", "blocks", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_candidate(self) -> dict[str, Any]:
        """Compact representation returned by the discover endpoint."""
        return {
            "id": self.id,
            "last_change_time": self.last_change_time,
            "product": self.product,
            "component": self.component,
        }


class HistoryChange(BaseModel):
    """One field change inside a history entry."""

    model_config = ConfigDict(extra="ignore")

    field_name: str = ""
    removed: str = ""
    added: str = ""

    @field_validator("removed", "added", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> str:
        return "" if v is None else str(v)


class HistoryEvent(BaseModel):
    """A timestamped group of changes."""

    model_config = ConfigDict(extra="ignore")

    when: str
    who: Optional[str] = None
    changes: list[HistoryChange] = Field(default_factory=list)

    @field_validator("changes", mode="before")
    @classmethod
    def _non_list_as_empty(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []


class BugHistory(BaseModel):
    """History payload for a single bug from ``/rest/bug/{id}/history``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    history: list[HistoryEvent] = Field(default_factory=list)

    @field_validator("history", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ProductComponent(BaseModel):
    """A ``PRODUCT[:COMPONENT]`` selector."""

    product: str
    component: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "ProductComponent":
        product, _, component = raw.partition(":")
        return cls(product=product.strip(), component=component.strip() or None)

    def label(self) -> str:
        return f"{self.product}:{self.component}" if self.component else self.product
