"""
GitHub activity and commit patch models.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class GitHubCommit(BaseModel):
    sha: str
    message: str
    author: str
    author_email: str = ""
    date: str = ""
    url: str = ""


class GitHubPullRequest(BaseModel):
    number: int
    title: str
    author: str
    url: str
    state: Literal["open", "closed", "merged"]
    merged_at: Optional[str] = None
    closed_at: Optional[str] = None
    additions: int = 0
    deletions: int = 0


class GitHubActivity(BaseModel):
    """Commits and pull requests collected for one repository."""

    repo: str
    commits: list[GitHubCommit] = Field(default_factory=list)
    pull_requests: list[GitHubPullRequest] = Field(default_factory=list)


class GitHubContributor(BaseModel):
    """Activity grouped by GitHub user, optionally linked to a Bugzilla email."""

    github_username: str
    bugzilla_email: Optional[str] = None
    commits: list[GitHubCommit] = Field(default_factory=list)
    pull_requests: list[GitHubPullRequest] = Field(default_factory=list)


class CommitPatch(BaseModel):
    """A landed commit referenced from a bug, with its downloaded patch."""

    commit_url: str
    message: str
    patch: str = ""
    error: Optional[str] = None
