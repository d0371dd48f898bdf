"""
Tests for upstream connectors against mocked transports.
"""

from typing import Any

import httpx
import pytest
from conftest import (
    BUGZILLA_HOST,
    GITHUB_API_URL,
    JIRA_URL,
    FakeBugzilla,
    FakeUpstream,
    fixed_history,
    iso_days_ago,
    make_bug,
)

from shipreport.connectors.bugzilla_client import BugzillaClient
from shipreport.connectors.github_client import GitHubClient
from shipreport.connectors.jira_client import JiraClient, normalize_issue
from shipreport.connectors.patch_client import PatchClient, extract_commit_urls, parse_patch_message
from shipreport.core.exceptions import ConfigurationError, RateLimitError
from shipreport.domain.bug import ProductComponent
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.progress import RecordingHooks

COMMIT_A = "https://github.com/mozilla/example/commit/abc1234"
COMMIT_B = "https://github.com/mozilla/example/commit/def5678"

LANDING_XML = f"""<?xml version="1.0"?>
<bugzilla>
  <bug>
    <bug_id>42</bug_id>
    <long_desc><who>dev@example.com</who><thetext>Patch up for review {COMMIT_B}</thetext></long_desc>
    <long_desc><who>pulsebot</who><thetext>Pushed by dev: {COMMIT_A} {COMMIT_B} {COMMIT_A}</thetext></long_desc>
  </bug>
</bugzilla>"""


class TestBugzillaClient:
    """Tests for BugzillaClient."""

    @pytest.fixture
    def upstream(self) -> FakeUpstream:
        return FakeUpstream()

    def _client(self, upstream: FakeUpstream, **kwargs: Any) -> BugzillaClient:
        return BugzillaClient(
            api_key="bz-key",
            host=BUGZILLA_HOST,
            transport=upstream.transport,
            max_retries=1,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_key_in_header_and_status_repeated(self, upstream: FakeUpstream) -> None:
        """Test that the key never reaches the URL and statuses are repeated params."""
        upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1)]))
        client = self._client(upstream)

        bugs = await client.fetch_bugs_by_assignees(["dev@example.com"], iso_days_ago(8))
        await client.close()

        assert [b.id for b in bugs] == [1]
        request = upstream.requests[0]
        assert request.headers["X-BUGZILLA-API-KEY"] == "bz-key"
        assert "bz-key" not in str(request.url)
        assert request.url.params.get_list("status") == ["RESOLVED", "VERIFIED", "CLOSED"]
        assert request.url.params["resolution"] == "FIXED"
        assert request.url.params["chfield"] == "resolution"

    @pytest.mark.asyncio
    async def test_product_subsumes_its_components(self, upstream: FakeUpstream) -> None:
        """Test that a bare product skips its component-specific queries."""
        upstream.mount(BUGZILLA_HOST, FakeBugzilla(search=lambda params: []))
        client = self._client(upstream)

        await client.fetch_bugs_by_components(
            [
                ProductComponent.parse("Firefox:Sidebar"),
                ProductComponent.parse("Firefox"),
                ProductComponent.parse("Core:Networking"),
                ProductComponent.parse("Core:Networking"),
            ],
            iso_days_ago(8),
        )
        await client.close()

        queried = [(r.url.params.get("product"), r.url.params.get("component")) for r in upstream.requests]
        assert queried == [("Firefox", None), ("Core", "Networking")]

    @pytest.mark.asyncio
    async def test_metabug_children_union(self, upstream: FakeUpstream) -> None:
        upstream.mount(
            BUGZILLA_HOST,
            FakeBugzilla(
                metabugs={
                    100: {"id": 100, "depends_on": [1, 2], "blocks": [3]},
                    200: {"id": 200, "depends_on": [2, 4], "blocks": []},
                }
            ),
        )
        client = self._client(upstream)

        children = await client.fetch_metabug_children([100, 200])
        await client.close()

        assert children == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_ids_are_chunked(self, upstream: FakeUpstream) -> None:
        """Test that id lookups are split into chunks of 300."""
        upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(i) for i in range(1, 651)]))
        client = self._client(upstream)

        bugs = await client.fetch_bugs_by_ids(list(range(1, 651)))
        await client.close()

        assert [b.id for b in bugs] == list(range(1, 651))
        assert len(upstream.requests_to("/rest/bug")) == 3

    @pytest.mark.asyncio
    async def test_history_failures_are_skipped(self, upstream: FakeUpstream) -> None:
        """Test that one failing history is reported without aborting the batch."""
        upstream.mount(
            BUGZILLA_HOST,
            FakeBugzilla(histories={1: fixed_history(), 3: fixed_history()}, failing_histories={2}),
        )
        client = self._client(upstream)
        hooks = RecordingHooks()

        histories = await client.fetch_histories([1, 2, 3], hooks)
        await client.close()

        assert sorted(h.id for h in histories) == [1, 3]
        warnings = [log["msg"] for log in hooks.logs() if log["kind"] == "warn"]
        assert len(warnings) == 1
        assert warnings[0].startswith("Skipping history for #2")

    @pytest.mark.asyncio
    async def test_responses_are_cached(self, upstream: FakeUpstream) -> None:
        """Test that a repeated query is served from the cache."""
        upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1)]))
        client = self._client(upstream, cache=InMemoryResponseCache())

        await client.fetch_bugs_by_ids([1])
        await client.fetch_bugs_by_ids([1])
        await client.close()

        assert len(upstream.requests) == 1


class TestPatchClient:
    """Tests for PatchClient."""

    def test_extract_commit_urls_dedupes(self) -> None:
        assert extract_commit_urls(f"{COMMIT_A} and {COMMIT_A}, {COMMIT_B}") == [COMMIT_A, COMMIT_B]

    def test_parse_patch_message(self) -> None:
        assert parse_patch_message("From abc\nSubject: [PATCH] Bug 42 - Faster\n\nbody") == "Bug 42 - Faster"
        assert parse_patch_message("first line\nsecond") == "first line"

    @pytest.mark.asyncio
    async def test_load_patch_context(self) -> None:
        """Test patches from the last landing comment, with per-commit errors recorded."""
        upstream = FakeUpstream()
        upstream.mount(BUGZILLA_HOST, FakeBugzilla(bug_xml={42: LANDING_XML}))

        def github(request: httpx.Request) -> httpx.Response:
            if "abc1234" in request.url.path:
                return httpx.Response(200, text="Subject: [PATCH] Bug 42 - Faster sidebar\n\ndiff --git a/x b/x")
            return httpx.Response(404, text="missing")

        upstream.mount("https://github.com", github)
        cache = InMemoryResponseCache()
        client = PatchClient(host=BUGZILLA_HOST, cache=cache, transport=upstream.transport, max_retries=1)

        patches = await client.load_patch_context(42)

        assert [p.commit_url for p in patches] == [COMMIT_A, COMMIT_B]
        assert patches[0].message == "Bug 42 - Faster sidebar"
        assert patches[0].error is None
        assert patches[1].error == "Patch download failed (HTTP 404)"
        assert patches[1].message == "Commit def5678"
        assert await cache.get(client.cache_key(42)) is not None

        requests_before = len(upstream.requests)
        again = await client.load_patch_context(42)
        await client.close()

        assert again == patches
        assert len(upstream.requests) == requests_before

    @pytest.mark.asyncio
    async def test_no_landing_comment(self) -> None:
        upstream = FakeUpstream()
        upstream.mount(BUGZILLA_HOST, FakeBugzilla())
        client = PatchClient(host=BUGZILLA_HOST, transport=upstream.transport, max_retries=1)

        assert await client.load_patch_context(7) == []
        await client.close()


class TestGitHubClient:
    """Tests for GitHubClient."""

    @pytest.mark.asyncio
    async def test_rate_limit(self) -> None:
        """Test that an exhausted rate limit raises with the reset time."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"},
                json={"message": "API rate limit exceeded"},
            )

        client = GitHubClient(api_key="", api_url=GITHUB_API_URL, transport=httpx.MockTransport(handler), max_retries=1)

        with pytest.raises(RateLimitError) as exc_info:
            await client.fetch_commits("mozilla/example", iso_days_ago(8))
        await client.close()

        assert exc_info.value.details["reset_at"] == "2023-11-14T22:13:20.000Z"
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_commit_pagination(self) -> None:
        """Test that Link rel=next pages are followed."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[_raw_commit("b")])
            return httpx.Response(
                200,
                headers={"Link": f'<{GITHUB_API_URL}/repos/mozilla/example/commits?page=2>; rel="next"'},
                json=[_raw_commit("a")],
            )

        client = GitHubClient(
            api_key="gh-token", api_url=GITHUB_API_URL, transport=httpx.MockTransport(handler), max_retries=1
        )

        commits = await client.fetch_commits("mozilla/example", iso_days_ago(8))
        await client.close()

        assert [c.sha for c in commits] == ["a", "b"]
        assert commits[0].author == "octo"
        assert commits[0].author_email == "octo@example.com"
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_pull_requests_merged_and_closed(self) -> None:
        """Test merged pull requests carry line counts from the detail lookup."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/pulls"):
                return httpx.Response(
                    200,
                    json=[
                        {
                            "number": 1,
                            "title": "Merged",
                            "user": {"login": "octo"},
                            "html_url": "https://github.com/mozilla/example/pull/1",
                            "merged_at": iso_days_ago(1),
                            "closed_at": iso_days_ago(1),
                        },
                        {
                            "number": 2,
                            "title": "Abandoned",
                            "user": {"login": "octo"},
                            "html_url": "https://github.com/mozilla/example/pull/2",
                            "merged_at": None,
                            "closed_at": iso_days_ago(2),
                        },
                    ],
                )
            return httpx.Response(200, json={"additions": 10, "deletions": 3})

        client = GitHubClient(api_key="", api_url=GITHUB_API_URL, transport=httpx.MockTransport(handler), max_retries=1)

        prs = await client.fetch_pull_requests("mozilla/example")
        await client.close()

        assert [(p.number, p.state, p.additions, p.deletions) for p in prs] == [
            (1, "merged", 10, 3),
            (2, "closed", 0, 0),
        ]


def _raw_commit(sha: str) -> dict[str, Any]:
    return {
        "sha": sha,
        "html_url": f"https://github.com/mozilla/example/commit/{sha}",
        "author": {"login": "octo"},
        "commit": {
            "message": f"Commit {sha}",
            "author": {"name": "Octo Cat", "email": "octo@example.com", "date": iso_days_ago(1)},
        },
    }


def _raw_issue(n: int) -> dict[str, Any]:
    return {
        "key": f"FXVPN-{n}",
        "id": str(10000 + n),
        "fields": {
            "summary": f"Issue {n}",
            "project": {"key": "FXVPN", "name": "VPN"},
            "components": [{"name": "Client"}],
            "status": {"name": "Done", "statusCategory": {"key": "done"}},
            "resolution": {"name": "Fixed"},
            "assignee": {"accountId": "abc", "displayName": "Sam", "emailAddress": "sam@example.com"},
            "updated": iso_days_ago(1),
            "labels": ["vpn"],
            "security": None,
        },
    }


class TestJiraClient:
    """Tests for JiraClient."""

    def test_requires_configuration(self) -> None:
        with pytest.raises(ConfigurationError):
            JiraClient(url="", api_key="token")
        with pytest.raises(ConfigurationError):
            JiraClient(url=JIRA_URL, api_key="")

    def test_normalize_issue(self) -> None:
        """Test flattening of a raw search result."""
        issue = normalize_issue(_raw_issue(1))

        assert issue.key == "FXVPN-1"
        assert issue.project == "FXVPN"
        assert issue.component == "Client"
        assert issue.status_category == "done"
        assert issue.resolution == "Fixed"
        assert issue.assignee_display_name == "Sam"
        assert issue.is_secure is False

    def test_project_jql(self) -> None:
        assert JiraClient.generate_project_jql("FXVPN", 8) == (
            "project = FXVPN AND statusCategory = Done AND updated >= -8d"
        )

    @pytest.mark.asyncio
    async def test_search_pagination(self) -> None:
        """Test that startAt pages are followed until the total is reached."""
        starts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            start = int(request.url.params["startAt"])
            starts.append(str(start))
            count = 100 if start == 0 else 50
            return httpx.Response(
                200,
                json={"total": 150, "issues": [_raw_issue(start + i) for i in range(count)]},
            )

        client = JiraClient(url=JIRA_URL, api_key="token", transport=httpx.MockTransport(handler), max_retries=1)

        issues = await client.search_by_jql("project = FXVPN")
        await client.close()

        assert len(issues) == 150
        assert starts == ["0", "100"]

    @pytest.mark.asyncio
    async def test_changelog_failures_are_skipped(self) -> None:
        """Test bearer auth and that a failing changelog is skipped."""
        auth: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth.append(request.headers["Authorization"])
            if "FXVPN-2" in request.url.path:
                return httpx.Response(404, json={"errorMessages": ["gone"]})
            return httpx.Response(
                200,
                json={
                    "total": 1,
                    "values": [
                        {
                            "id": "1",
                            "created": iso_days_ago(1),
                            "items": [{"field": "status", "fromString": "In Progress", "toString": "Done"}],
                        }
                    ],
                },
            )

        client = JiraClient(url=JIRA_URL, api_key="token", transport=httpx.MockTransport(handler), max_retries=1)
        hooks = RecordingHooks()

        histories = await client.fetch_changelogs(["FXVPN-1", "FXVPN-2"], hooks)
        await client.close()

        assert [h.key for h in histories] == ["FXVPN-1"]
        assert histories[0].changelog[0].items[0].to_string == "Done"
        assert set(auth) == {"Bearer token"}
        assert any(log["msg"].startswith("Skipping changelog for FXVPN-2") for log in hooks.logs())
