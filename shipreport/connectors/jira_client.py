"""
Jira Cloud REST connector.
"""

from typing import Any, Optional, Sequence

import httpx

from shipreport.core.concurrency import run_bounded
from shipreport.core.config import settings
from shipreport.core.constants import HISTORY_CONCURRENCY, JIRA_FIELDS, JIRA_PAGE_SIZE, SubPhase
from shipreport.core.exceptions import ConfigurationError
from shipreport.core.logging import get_logger
from shipreport.connectors.base_client import BaseHttpClient
from shipreport.domain.jira import (
    JiraChangelogChange,
    JiraChangelogEntry,
    JiraIssue,
    JiraIssueHistory,
)
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.progress import ProgressHooks

logger = get_logger(__name__)


def normalize_issue(raw: dict[str, Any]) -> JiraIssue:
    """Flatten a raw search-result issue."""
    fields = raw.get("fields") or {}
    components = fields.get("components") or []
    project = fields.get("project") or {}
    status = fields.get("status") or {}
    assignee = fields.get("assignee") or {}

    return JiraIssue(
        key=raw["key"],
        id=str(raw.get("id", raw["key"])),
        summary=fields.get("summary") or "",
        project=project.get("key", ""),
        project_name=project.get("name", ""),
        component=components[0].get("name") if components else None,
        status=status.get("name", ""),
        status_category=(status.get("statusCategory") or {}).get("key", ""),
        resolution=(fields.get("resolution") or {}).get("name"),
        assignee=assignee.get("accountId"),
        assignee_display_name=assignee.get("displayName"),
        assignee_email=assignee.get("emailAddress"),
        updated=fields.get("updated") or "",
        resolution_date=fields.get("resolutiondate") or None,
        labels=fields.get("labels") or [],
        is_secure=bool(fields.get("security")),
    )


def _normalize_changelog_entry(raw: dict[str, Any]) -> JiraChangelogEntry:
    return JiraChangelogEntry(
        id=str(raw.get("id", "")),
        created=raw.get("created", ""),
        items=[
            JiraChangelogChange(
                field=item.get("field", ""),
                fieldtype=item.get("fieldtype") or "",
                from_value=item.get("from"),
                from_string=item.get("fromString"),
                to_value=item.get("to"),
                to_string=item.get("toString"),
            )
            for item in raw.get("items") or []
        ],
    )


class JiraClient(BaseHttpClient):
    """Client for the Jira REST API v3, authenticated with a Bearer token."""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        cache: Optional[InMemoryResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        url = url if url is not None else settings.jira.url
        api_key = api_key if api_key is not None else settings.jira.api_key
        if not url:
            raise ConfigurationError("JIRA_URL environment variable is required")
        if not api_key:
            raise ConfigurationError("JIRA_API_KEY environment variable is required")

        self.api_key = api_key
        super().__init__(url, cache=cache, transport=transport, **kwargs)

    @property
    def service_name(self) -> str:
        return "Jira"

    def _default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @staticmethod
    def generate_project_jql(project: str, since_days: int) -> str:
        return f"project = {project} AND statusCategory = Done AND updated >= -{since_days}d"

    async def search_by_jql(self, jql: str, hooks: Optional[ProgressHooks] = None) -> list[JiraIssue]:
        """Run a JQL search, following ``startAt`` pagination to the end."""
        if hooks:
            hooks.info(f"Executing JQL: {jql}")

        issues: list[JiraIssue] = []
        start_at = 0
        while True:
            payload = await self._get_json(
                "/rest/api/3/search",
                {
                    "jql": jql,
                    "startAt": start_at,
                    "maxResults": JIRA_PAGE_SIZE,
                    "fields": ",".join(JIRA_FIELDS),
                },
            )
            page = payload.get("issues") or []
            issues.extend(normalize_issue(raw) for raw in page)
            start_at += len(page)
            if len(page) < JIRA_PAGE_SIZE or start_at >= int(payload.get("total") or 0):
                break

        if hooks:
            hooks.info(f"Found {len(issues)} issues")
        return issues

    async def fetch_issues_by_projects(
        self,
        projects: Sequence[str],
        since_days: int,
        hooks: Optional[ProgressHooks] = None,
    ) -> list[JiraIssue]:
        if not projects:
            return []
        batches = await run_bounded(
            list(projects),
            lambda project: self.search_by_jql(self.generate_project_jql(project, since_days), hooks),
            concurrency=HISTORY_CONCURRENCY,
        )
        return [issue for batch in batches for issue in batch]

    async def fetch_issues_by_jql(
        self,
        queries: Sequence[str],
        hooks: Optional[ProgressHooks] = None,
    ) -> list[JiraIssue]:
        if not queries:
            return []
        batches = await run_bounded(
            list(queries),
            lambda jql: self.search_by_jql(jql, hooks),
            concurrency=HISTORY_CONCURRENCY,
        )
        return [issue for batch in batches for issue in batch]

    async def fetch_issues_by_keys(self, keys: Sequence[str]) -> list[JiraIssue]:
        """Fetch issues by key, 100 keys per ``key IN (...)`` query."""
        issues: list[JiraIssue] = []
        for i in range(0, len(keys), JIRA_PAGE_SIZE):
            chunk = keys[i:i + JIRA_PAGE_SIZE]
            payload = await self._get_json(
                "/rest/api/3/search",
                {
                    "jql": f"key IN ({','.join(chunk)})",
                    "maxResults": JIRA_PAGE_SIZE,
                    "fields": ",".join(JIRA_FIELDS),
                },
            )
            issues.extend(normalize_issue(raw) for raw in payload.get("issues") or [])
        return issues

    async def fetch_changelog(self, key: str) -> JiraIssueHistory:
        """Full changelog for one issue, paging through ``startAt``."""
        entries: list[JiraChangelogEntry] = []
        start_at = 0
        while True:
            payload = await self._get_json(
                f"/rest/api/3/issue/{key}/changelog",
                {"startAt": start_at, "maxResults": JIRA_PAGE_SIZE},
            )
            histories = payload.get("histories") or payload.get("values") or []
            entries.extend(_normalize_changelog_entry(raw) for raw in histories)
            start_at += JIRA_PAGE_SIZE
            if len(histories) < JIRA_PAGE_SIZE or start_at >= int(payload.get("total") or 0):
                break

        return JiraIssueHistory(key=key, id=key, changelog=entries)

    async def fetch_changelogs(
        self,
        keys: Sequence[str],
        hooks: Optional[ProgressHooks] = None,
    ) -> list[JiraIssueHistory]:
        """Fetch changelogs with a bounded pool; failing keys are skipped."""
        if not keys:
            return []

        hooks = hooks or ProgressHooks()
        total = len(keys)
        hooks.phase(SubPhase.HISTORIES.value, total=total)
        hooks.info(
            f"History mode: per-issue /rest/api/3/issue/<key>/changelog (concurrency={HISTORY_CONCURRENCY})"
        )

        def skip(key: str, error: Exception) -> None:
            logger.warning("Changelog fetch failed", key=key, error=str(error))
            hooks.warn(f"Skipping changelog for {key} ({error})")

        return await run_bounded(
            list(keys),
            self.fetch_changelog,
            concurrency=HISTORY_CONCURRENCY,
            on_error=skip,
            on_progress=lambda handled, _: hooks.progress(SubPhase.HISTORIES.value, handled, total),
        )
