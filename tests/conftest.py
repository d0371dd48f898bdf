"""
Pytest configuration and fixtures.

Upstream services are faked with ``httpx.MockTransport``: ``FakeUpstream``
dispatches each request to the handler mounted for its host.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Callable, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from shipreport.api.deps import get_status_service
from shipreport.core.config import (
    BugzillaSettings,
    GitHubSettings,
    HttpSettings,
    JiraSettings,
    OpenAISettings,
    Settings,
)
from shipreport.main import app
from shipreport.services.qualification import to_iso
from shipreport.services.status_service import StatusService

BUGZILLA_HOST = "https://bugzilla.test"
OPENAI_URL = "https://openai.test"
JIRA_URL = "https://jira.test"
GITHUB_API_URL = "https://api.github.test"

Handler = Callable[[httpx.Request], httpx.Response]


def iso_days_ago(days: float) -> str:
    return to_iso(datetime.now(timezone.utc) - timedelta(days=days))


def make_bug(bug_id: int, **overrides: Any) -> dict[str, Any]:
    bug = {
        "id": bug_id,
        "summary": f"Bug {bug_id}",
        "product": "Firefox",
        "component": "General",
        "status": "RESOLVED",
        "resolution": "FIXED",
        "assigned_to": "dev@example.com",
        "assigned_to_detail": {"email": "dev@example.com", "real_name": "Dev Person [:dev]"},
        "last_change_time": iso_days_ago(1),
        "groups": [],
        "depends_on": [],
        "blocks": [],
    }
    bug.update(overrides)
    return bug


def fixed_history(days_ago: float = 1) -> list[dict[str, Any]]:
    """History with a single in-window RESOLVED FIXED transition."""
    return [
        {
            "when": iso_days_ago(days_ago),
            "who": "dev@example.com",
            "changes": [
                {"field_name": "status", "removed": "ASSIGNED", "added": "RESOLVED"},
                {"field_name": "resolution", "removed": "", "added": "FIXED"},
            ],
        }
    ]


class FakeUpstream:
    """Host-keyed dispatcher used as an ``httpx.MockTransport`` handler."""

    def __init__(self) -> None:
        self.hosts: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def mount(self, base_url: str, handler: Handler) -> None:
        self.hosts[httpx.URL(base_url).host] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.hosts.get(request.url.host)
        if handler is None:
            return httpx.Response(404, json={"error": f"no fake for {request.url.host}"})
        return handler(request)

    def requests_to(self, path_prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(path_prefix)]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


class FakeBugzilla:
    """
    In-memory Bugzilla serving ``/rest/bug``, histories and bug XML.

    Searches (no ``id`` param) return ``search(params)``, which defaults to
    every known bug.
    """

    def __init__(
        self,
        bugs: Optional[list[dict[str, Any]]] = None,
        histories: Optional[dict[int, list[dict[str, Any]]]] = None,
        metabugs: Optional[dict[int, dict[str, Any]]] = None,
        search: Optional[Callable[[httpx.QueryParams], list[dict[str, Any]]]] = None,
        failing_histories: Optional[set[int]] = None,
        bug_xml: Optional[dict[int, str]] = None,
    ) -> None:
        self.bugs = {bug["id"]: bug for bug in bugs or []}
        self.histories = histories or {}
        self.metabugs = metabugs or {}
        self.search = search or (lambda params: list(self.bugs.values()))
        self.failing_histories = failing_histories or set()
        self.bug_xml = bug_xml or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = request.url.params

        if path == "/rest/bug":
            if "id" in params:
                ids = [int(i) for i in params["id"].split(",")]
                if params.get("include_fields") == "id,depends_on,blocks":
                    return httpx.Response(200, json={"bugs": [self.metabugs[i] for i in ids if i in self.metabugs]})
                return httpx.Response(200, json={"bugs": [self.bugs[i] for i in ids if i in self.bugs]})
            return httpx.Response(200, json={"bugs": self.search(params)})

        if path.startswith("/rest/bug/") and path.endswith("/history"):
            bug_id = int(path.split("/")[3])
            if bug_id in self.failing_histories:
                return httpx.Response(404, json={"error": True, "message": "Bug not found"})
            if bug_id not in self.histories:
                return httpx.Response(200, json={"bugs": []})
            return httpx.Response(200, json={"bugs": [{"id": bug_id, "history": self.histories[bug_id]}]})

        if path == "/show_bug.cgi":
            bug_id = int(params["id"])
            xml = self.bug_xml.get(bug_id, f"<bugzilla><bug><bug_id>{bug_id}</bug_id></bug></bugzilla>")
            return httpx.Response(200, text=xml)

        return httpx.Response(404, json={"error": True})


class FakeOpenAI:
    """Chat completions endpoint returning a fixed message body."""

    def __init__(self, result: Optional[dict[str, Any]] = None, content: Optional[str] = None) -> None:
        self.content = content if content is not None else json.dumps(
            result or {"assessments": [], "summary_md": "Shipped things."}
        )
        self.bodies: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": self.content}}]})


@pytest.fixture
def settings() -> Settings:
    """Settings with test credentials and fake upstream hosts."""
    return Settings(
        _env_file=None,
        bugzilla=BugzillaSettings(api_key="bz-test-key", host=BUGZILLA_HOST),
        openai=OpenAISettings(api_key="sk-test", base_url=OPENAI_URL, model="gpt-test"),
        jira=JiraSettings(url="", api_key=""),
        github=GitHubSettings(api_key="", api_url=GITHUB_API_URL),
        http=HttpSettings(max_retries=1),
        email_mapping={},
    )


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def status_service(settings: Settings, fake_upstream: FakeUpstream) -> StatusService:
    return StatusService(settings=settings, cache=None, transport=fake_upstream.transport)


@pytest.fixture
async def async_client(status_service: StatusService) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    app.dependency_overrides[get_status_service] = lambda: status_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
