"""
GitHub REST connector for repository activity.
"""

from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

import httpx

from shipreport.core.config import settings
from shipreport.core.constants import GITHUB_MAX_COMMITS_PER_REPO, GITHUB_MAX_PRS_PER_REPO
from shipreport.core.exceptions import ExternalServiceError, RateLimitError
from shipreport.core.logging import get_logger
from shipreport.connectors.base_client import BaseHttpClient
from shipreport.domain.github import GitHubActivity, GitHubCommit, GitHubPullRequest
from shipreport.repositories.cache_repo import InMemoryResponseCache

logger = get_logger(__name__)

USER_AGENT = "shipreport-status-bot"


class GitHubClient(BaseHttpClient):
    """
    Client for commits and closed pull requests of a repository.

    List endpoints follow ``Link: rel="next"`` headers and bypass the cache;
    pull request detail lookups are cached.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        cache: Optional[InMemoryResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.github.api_key
        super().__init__(
            api_url or settings.github.api_url,
            cache=cache,
            transport=transport,
            **kwargs,
        )

    @property
    def service_name(self) -> str:
        return "GitHub"

    def _default_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _raise_for_status(self, response: httpx.Response) -> NoReturn:
        if response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0":
            reset = response.headers.get("x-ratelimit-reset")
            reset_at = None
            if reset and reset.isdigit():
                reset_at = (
                    datetime.fromtimestamp(int(reset), tz=timezone.utc)
                    .isoformat(timespec="milliseconds")
                    .replace("+00:00", "Z")
                )
            logger.warning("GitHub rate limit exhausted", reset_at=reset_at)
            raise RateLimitError(self.service_name, reset_at=reset_at)
        super()._raise_for_status(response)

    async def _paginate(self, path: str, params: dict[str, Any], limit: int) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        url: Optional[httpx.URL] = self.build_url(path, params)
        while url is not None and len(items) < limit:
            response = await self._request("GET", url)
            items.extend(response.json())
            next_url = response.links.get("next", {}).get("url")
            url = httpx.URL(next_url) if next_url else None
        return items[:limit]

    async def fetch_commits(self, repo: str, since_iso: str) -> list[GitHubCommit]:
        raw_commits = await self._paginate(
            f"/repos/{repo}/commits",
            {"since": since_iso, "per_page": 100},
            GITHUB_MAX_COMMITS_PER_REPO,
        )
        commits = []
        for raw in raw_commits:
            commit = raw.get("commit") or {}
            author = commit.get("author") or {}
            login = (raw.get("author") or {}).get("login")
            commits.append(
                GitHubCommit(
                    sha=raw["sha"],
                    message=commit.get("message", ""),
                    author=login or author.get("name", ""),
                    author_email=author.get("email") or "",
                    date=author.get("date") or "",
                    url=raw.get("html_url", ""),
                )
            )
        return commits

    async def fetch_pull_requests(self, repo: str) -> list[GitHubPullRequest]:
        """Recently closed pull requests; merged ones carry line counts."""
        raw_prs = await self._paginate(
            f"/repos/{repo}/pulls",
            {"state": "closed", "sort": "updated", "direction": "desc", "per_page": 100},
            GITHUB_MAX_PRS_PER_REPO,
        )

        pull_requests = []
        for raw in raw_prs:
            additions = deletions = 0
            merged_at = raw.get("merged_at")
            if merged_at:
                try:
                    details = await self._get_json(f"/repos/{repo}/pulls/{raw['number']}")
                    additions = details.get("additions") or 0
                    deletions = details.get("deletions") or 0
                except ExternalServiceError as e:
                    logger.warning(
                        "Failed to fetch PR details",
                        repo=repo,
                        number=raw["number"],
                        error=str(e),
                    )

            pull_requests.append(
                GitHubPullRequest(
                    number=raw["number"],
                    title=raw.get("title", ""),
                    author=(raw.get("user") or {}).get("login", ""),
                    url=raw.get("html_url", ""),
                    state="merged" if merged_at else "closed",
                    merged_at=merged_at,
                    closed_at=raw.get("closed_at"),
                    additions=additions,
                    deletions=deletions,
                )
            )
        return pull_requests

    async def get_repo_activity(self, repo: str, since_iso: str) -> GitHubActivity:
        commits = await self.fetch_commits(repo, since_iso)
        pull_requests = await self.fetch_pull_requests(repo)
        return GitHubActivity(repo=repo, commits=commits, pull_requests=pull_requests)
