"""
Run parameters and the mutable context shared by recipe steps.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shipreport.connectors.bugzilla_client import BugzillaClient
from shipreport.connectors.github_client import GitHubClient
from shipreport.connectors.jira_client import JiraClient
from shipreport.connectors.openai_client import OpenAIClient
from shipreport.connectors.patch_client import PatchClient
from shipreport.core.config import Settings
from shipreport.core.constants import DEFAULT_DAYS, Audience, OutputFormat, Voice
from shipreport.domain.bug import Bug, BugHistory, ProductComponent
from shipreport.domain.github import CommitPatch, GitHubActivity, GitHubContributor
from shipreport.domain.jira import JiraIssue, JiraIssueHistory
from shipreport.domain.summary import SummarizerResult
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.collector import CandidateCollection
from shipreport.services.output import build_buglist_url
from shipreport.services.progress import ProgressHooks
from shipreport.services.qualification import to_iso


class StatusParams(BaseModel):
    """Inputs of one status run, shared by the API, the CLI and the service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    components: list[ProductComponent] = Field(default_factory=list, description="PRODUCT[:COMPONENT] selectors")
    metabugs: list[int] = Field(default_factory=list, description="Tracking bugs whose children are candidates")
    whiteboards: list[str] = Field(default_factory=list, description="Whiteboard substrings")
    assignees: list[str] = Field(default_factory=list, description="Assignee emails")
    ids: list[int] = Field(default_factory=list, description="Pre-qualified bug ids")
    days: Optional[int] = Field(default=None, description="Window length in days")
    model: Optional[str] = Field(default=None, description="Summarizer model")
    format: OutputFormat = Field(default=OutputFormat.MARKDOWN, description="Rendered output format")
    voice: Optional[Voice] = None
    audience: Optional[Audience] = None
    include_patch_context: bool = Field(default=True, alias="includePatchContext")
    include_github_activity: bool = Field(default=False, alias="includeGithubActivity")
    github_repos: list[str] = Field(default_factory=list, alias="githubRepos")
    email_mapping: dict[str, str] = Field(default_factory=dict, alias="emailMapping")
    jira_jql: list[str] = Field(default_factory=list, alias="jiraJql")
    jira_projects: list[str] = Field(default_factory=list, alias="jiraProjects")
    debug: bool = False

    @field_validator("components", mode="before")
    @classmethod
    def _parse_components(cls, v: Any) -> Any:
        if v is None:
            return []
        return [ProductComponent.parse(item) if isinstance(item, str) else item for item in v]

    @field_validator("assignees", "whiteboards", "github_repos", "jira_jql", "jira_projects", mode="before")
    @classmethod
    def _strip_blank(cls, v: Any) -> Any:
        if v is None:
            return []
        return [item.strip() for item in v if isinstance(item, str) and item.strip()]

    @property
    def has_bugzilla_filters(self) -> bool:
        return bool(self.components or self.whiteboards or self.metabugs or self.assignees)

    @property
    def has_jira_inputs(self) -> bool:
        return bool(self.jira_jql or self.jira_projects)

    def resolved_days(self) -> int:
        return max(1, self.days if self.days is not None else DEFAULT_DAYS)


def since_iso_for(days: int, now: Optional[datetime] = None) -> str:
    """Start of a trailing window of ``days`` days, as ISO-8601 UTC."""
    now = now or datetime.now(timezone.utc)
    return to_iso(now - timedelta(days=days))


@dataclass
class Connectors:
    """Upstream clients for one run; Jira and GitHub only when configured."""

    bugzilla: BugzillaClient
    patches: PatchClient
    openai: OpenAIClient
    jira: Optional[JiraClient] = None
    github: Optional[GitHubClient] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: Optional[InMemoryResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Connectors":
        http = {
            "timeout": settings.http.timeout,
            "max_in_flight": settings.http.max_in_flight_per_host,
            "max_retries": settings.http.max_retries,
        }
        jira = None
        if settings.jira_configured:
            jira = JiraClient(
                url=settings.jira.url,
                api_key=settings.jira.api_key,
                cache=cache,
                transport=transport,
                **http,
            )
        github = None
        if settings.github.api_key:
            github = GitHubClient(
                api_key=settings.github.api_key,
                api_url=settings.github.api_url,
                cache=cache,
                transport=transport,
                **http,
            )
        return cls(
            bugzilla=BugzillaClient(
                api_key=settings.bugzilla.api_key,
                host=settings.bugzilla.host,
                cache=cache,
                transport=transport,
                **http,
            ),
            patches=PatchClient(host=settings.bugzilla.host, cache=cache, transport=transport, **http),
            openai=OpenAIClient(
                api_key=settings.openai.api_key,
                base_url=settings.openai.base_url,
                transport=transport,
                timeout=float(settings.openai.timeout),
                max_in_flight=settings.http.max_in_flight_per_host,
                max_retries=settings.http.max_retries,
            ),
            jira=jira,
            github=github,
        )

    async def close(self) -> None:
        for client in (self.bugzilla, self.patches, self.openai, self.jira, self.github):
            if client is not None:
                await client.close()


@dataclass
class StatusContext:
    """State owned by exactly one status run."""

    params: StatusParams
    settings: Settings
    hooks: ProgressHooks
    connectors: Connectors

    days: int = DEFAULT_DAYS
    since_iso: str = ""
    components: list[ProductComponent] = field(default_factory=list)
    whiteboards: list[str] = field(default_factory=list)
    metabugs: list[int] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    voice: Voice = Voice.NORMAL
    audience: Audience = Audience.TECHNICAL
    model: str = ""
    format: OutputFormat = OutputFormat.MARKDOWN
    include_patch_context: bool = True
    is_debug: bool = False

    # Bugzilla
    collection: Optional[CandidateCollection] = None
    candidates: list[Bug] = field(default_factory=list)
    histories: list[BugHistory] = field(default_factory=list)
    by_id_history: dict[int, BugHistory] = field(default_factory=dict)
    final_bugs: list[Bug] = field(default_factory=list)
    ai_candidates: list[Bug] = field(default_factory=list)
    trimmed_count: int = 0
    patch_context: dict[int, list[CommitPatch]] = field(default_factory=dict)

    # Jira
    jira_issues: list[JiraIssue] = field(default_factory=list)
    jira_histories: list[JiraIssueHistory] = field(default_factory=list)
    by_key_jira_history: dict[str, JiraIssueHistory] = field(default_factory=dict)
    final_jira_issues: list[JiraIssue] = field(default_factory=list)

    # GitHub
    github_repos: list[str] = field(default_factory=list)
    email_mapping: dict[str, str] = field(default_factory=dict)
    github_activity: list[GitHubActivity] = field(default_factory=list)
    github_contributors: dict[str, GitHubContributor] = field(default_factory=dict)

    # Output
    summary: Optional[SummarizerResult] = None
    output: Optional[str] = None
    html: Optional[str] = None
    buglist_link: Optional[str] = None
    ids: list[int] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        params: StatusParams,
        settings: Settings,
        hooks: ProgressHooks,
        connectors: Connectors,
        now: Optional[datetime] = None,
    ) -> "StatusContext":
        """Resolve defaults from ``params`` and ``settings``."""
        days = params.resolved_days()
        default_audience = Audience.PRODUCT if params.ids else Audience.TECHNICAL
        return cls(
            params=params,
            settings=settings,
            hooks=hooks,
            connectors=connectors,
            days=days,
            since_iso=since_iso_for(days, now),
            components=list(params.components),
            whiteboards=list(params.whiteboards),
            metabugs=list(params.metabugs),
            assignees=list(params.assignees),
            voice=params.voice or Voice.NORMAL,
            audience=params.audience or default_audience,
            model=params.model or settings.openai.model,
            format=params.format,
            include_patch_context=params.include_patch_context,
            is_debug=params.debug,
            github_repos=list(params.github_repos),
            email_mapping={**settings.email_mapping, **params.email_mapping},
        )

    def buglist_link_for(self, ids: list[int]) -> str:
        return build_buglist_url(
            since_iso=self.since_iso,
            whiteboards=self.whiteboards,
            assignees=self.assignees,
            ids=ids,
            components=self.components,
            host=self.settings.bugzilla.host,
        )
