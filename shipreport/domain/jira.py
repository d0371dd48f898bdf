"""
Normalized Jira models.
"""

from typing import Optional

from pydantic import BaseModel, Field


class JiraIssue(BaseModel):
    """A Jira issue flattened from the search API response."""

    key: str
    id: str
    summary: str = ""
    project: str = ""
    project_name: str = ""
    component: Optional[str] = None
    status: str = ""
    status_category: str = ""
    resolution: Optional[str] = None
    assignee: Optional[str] = None
    assignee_display_name: Optional[str] = None
    assignee_email: Optional[str] = None
    updated: str = ""
    resolution_date: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    is_secure: bool = False


class JiraChangelogChange(BaseModel):
    """A single item inside a changelog entry."""

    field: str
    fieldtype: str = ""
    from_value: Optional[str] = None
    from_string: Optional[str] = None
    to_value: Optional[str] = None
    to_string: Optional[str] = None


class JiraChangelogEntry(BaseModel):
    id: str
    created: str
    items: list[JiraChangelogChange] = Field(default_factory=list)


class JiraIssueHistory(BaseModel):
    """Complete changelog for one issue."""

    key: str
    id: str
    changelog: list[JiraChangelogEntry] = Field(default_factory=list)
