"""
Tests for the status endpoint.
"""

import json

import httpx
import pytest
from conftest import (
    BUGZILLA_HOST,
    OPENAI_URL,
    FakeBugzilla,
    FakeOpenAI,
    FakeUpstream,
    fixed_history,
    iso_days_ago,
    make_bug,
)


def _ndjson(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestStatusEndpoint:
    """Tests for POST /api/v1/status."""

    @pytest.mark.asyncio
    async def test_discover(self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream) -> None:
        """Test candidate discovery with logs."""
        fake_upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1), make_bug(2)]))

        response = await async_client.post(
            "/api/v1/status",
            json={"mode": "discover", "components": ["Firefox:General"], "days": 8},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [c["id"] for c in data["candidates"]] == [1, 2]
        assert data["candidates"][0]["product"] == "Firefox"
        assert data["sinceISO"].endswith("Z")
        assert any(log["msg"] == "Bugzilla Candidates: 2" for log in data["logs"])

    @pytest.mark.asyncio
    async def test_page_with_candidates(self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream) -> None:
        """Test one page of qualification from client-held candidates."""
        fake_upstream.mount(
            BUGZILLA_HOST,
            FakeBugzilla(histories={1: fixed_history(), 2: fixed_history(days_ago=30), 3: fixed_history()}),
        )

        response = await async_client.post(
            "/api/v1/status",
            json={
                "mode": "page",
                "sinceISO": iso_days_ago(8),
                "candidates": [{"id": 1}, {"id": 2}, 3],
                "cursor": 0,
                "pageSize": 2,
            },
        )

        assert response.status_code == 200
        assert response.json()["qualifiedIds"] == [1]
        assert response.json()["nextCursor"] == 2
        assert response.json()["total"] == 3

    @pytest.mark.asyncio
    async def test_page_rediscovers_without_candidates(
        self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream
    ) -> None:
        fake_upstream.mount(
            BUGZILLA_HOST,
            FakeBugzilla(bugs=[make_bug(7)], histories={7: fixed_history()}),
        )

        response = await async_client.post(
            "/api/v1/status",
            json={"mode": "page", "whiteboards": ["[fx-vpn]"]},
        )

        assert response.status_code == 200
        assert response.json()["qualifiedIds"] == [7]
        assert response.json()["nextCursor"] is None

    @pytest.mark.asyncio
    async def test_oneshot_json(self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream) -> None:
        """Test a full run returned as a single JSON body."""
        fake_upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1)], histories={1: fixed_history()}))
        fake_upstream.mount(OPENAI_URL, FakeOpenAI(result={"assessments": [], "summary_md": "Shipped."}))

        response = await async_client.post(
            "/api/v1/status",
            json={"components": ["Firefox"], "includePatchContext": False},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ids"] == [1]
        assert data["output"].startswith("Shipped.")
        assert "<p>Shipped.</p>" in data["html"]
        assert data["stats"]["trimmed_count"] == 0

    @pytest.mark.asyncio
    async def test_oneshot_stream(self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream) -> None:
        """Test NDJSON streaming from start to done."""
        fake_upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1)], histories={1: fixed_history()}))
        fake_upstream.mount(OPENAI_URL, FakeOpenAI(result={"assessments": [], "summary_md": "Shipped."}))

        response = await async_client.post(
            "/api/v1/status",
            json={"components": ["Firefox"], "includePatchContext": False},
            headers={"Accept": "application/x-ndjson"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        events = _ndjson(response.text)
        kinds = [event["kind"] for event in events]
        assert events[0] == {"kind": "start", "mode": "oneshot"}
        assert kinds[-1] == "done"
        assert "phase" in kinds
        assert "progress" in kinds
        assert events[-1]["ids"] == [1]
        assert events[-1]["output"].startswith("Shipped.")
        assert any(e["kind"] == "phase" and e["name"] == "Generating AI summary" for e in events)

    @pytest.mark.asyncio
    async def test_stream_header_and_error_event(self, async_client: httpx.AsyncClient) -> None:
        """Test that stream failures end with an error event carrying a tracking id."""
        response = await async_client.post(
            "/api/v1/status",
            json={"mode": "finalize", "ids": []},
            headers={"x-shipreport-stream": "1"},
        )

        events = _ndjson(response.text)
        assert events[0]["mode"] == "finalize"
        assert events[-1]["kind"] == "error"
        assert events[-1]["msg"] == "finalize requires at least one id"
        assert len(events[-1]["trackingId"]) == 32

    @pytest.mark.asyncio
    async def test_error_response_has_tracking_id(self, async_client: httpx.AsyncClient) -> None:
        """Test the JSON error body for an invalid request."""
        response = await async_client.post("/api/v1/status", json={"mode": "oneshot"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_REQUEST"
        assert error["trackingId"]

    @pytest.mark.asyncio
    async def test_upstream_failure_maps_to_502(self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream) -> None:
        """Test that a summarizer failure surfaces as an upstream error."""
        fake_upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1)]))
        fake_upstream.mount(OPENAI_URL, lambda request: httpx.Response(401, json={"error": "bad key"}))

        response = await async_client.post(
            "/api/v1/status",
            json={"mode": "finalize", "ids": [1], "includePatchContext": False},
        )

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "SUMMARIZER_ERROR"

    @pytest.mark.asyncio
    async def test_upstream_error_text_is_not_returned(
        self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream
    ) -> None:
        """Test that upstream error bodies stay out of JSON and stream errors."""
        fake_upstream.mount(BUGZILLA_HOST, FakeBugzilla(bugs=[make_bug(1)]))
        fake_upstream.mount(OPENAI_URL, lambda request: httpx.Response(400, text="INTERNAL-SECRET org-abc quota trace"))
        body = {"mode": "finalize", "ids": [1], "includePatchContext": False}

        response = await async_client.post("/api/v1/status", json=body)
        streamed = await async_client.post("/api/v1/status", json=body, headers={"x-shipreport-stream": "1"})

        error = response.json()["error"]
        assert response.status_code == 502
        assert error == {
            "code": "SUMMARIZER_ERROR",
            "message": "The summarizer request failed",
            "trackingId": error["trackingId"],
        }
        event = _ndjson(streamed.text)[-1]
        assert event["kind"] == "error"
        assert event["msg"] == "The summarizer request failed"
        assert "INTERNAL-SECRET" not in response.text
        assert "INTERNAL-SECRET" not in streamed.text

    @pytest.mark.asyncio
    async def test_page_with_non_finite_cursor(
        self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream
    ) -> None:
        """Test that a NaN cursor is served from the start of the list."""
        fake_upstream.mount(BUGZILLA_HOST, FakeBugzilla(histories={1: fixed_history(), 2: fixed_history()}))
        since = iso_days_ago(8)

        response = await async_client.post(
            "/api/v1/status",
            content=f'{{"mode": "page", "sinceISO": "{since}", "candidates": [1, 2], "cursor": NaN, "pageSize": 2}}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["qualifiedIds"] == [1, 2]
        assert response.json()["nextCursor"] is None

    @pytest.mark.asyncio
    async def test_page_keeps_candidates_without_since(
        self, async_client: httpx.AsyncClient, fake_upstream: FakeUpstream
    ) -> None:
        """Test that supplied candidates are paged as given when sinceISO is omitted."""
        fake_upstream.mount(
            BUGZILLA_HOST,
            FakeBugzilla(bugs=[make_bug(9)], histories={5: fixed_history(), 6: fixed_history(), 9: fixed_history()}),
        )

        response = await async_client.post(
            "/api/v1/status",
            json={"mode": "page", "whiteboards": ["[fx-vpn]"], "candidates": [5, 6], "pageSize": 10},
        )

        assert response.status_code == 200
        assert response.json()["qualifiedIds"] == [5, 6]
        assert response.json()["total"] == 2
        assert not any(r.url.path == "/rest/bug" for r in fake_upstream.requests)
