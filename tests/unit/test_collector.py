"""
Tests for multi-source candidate collection.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import iso_days_ago, make_bug

from shipreport.domain.bug import Bug, ProductComponent
from shipreport.services.collector import collect_candidates, dedupe_bugs
from shipreport.services.progress import RecordingHooks


def _bugs(*ids: int, **overrides) -> list[Bug]:
    return [Bug(**make_bug(i, **overrides)) for i in ids]


class TestDedupeBugs:
    """Tests for dedupe_bugs."""

    def test_first_occurrence_wins(self) -> None:
        """Test that the copy from the earliest source is kept."""
        first = _bugs(1, summary="from components")
        second = _bugs(1, 2, summary="from whiteboards")

        union = dedupe_bugs(first, second)

        assert [b.id for b in union] == [1, 2]
        assert union[0].summary == "from components"

    def test_empty_sources(self) -> None:
        assert dedupe_bugs([], []) == []


class TestCollectCandidates:
    """Tests for collect_candidates."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.fetch_metabug_children = AsyncMock(return_value=[10, 11])
        client.fetch_bugs_by_components = AsyncMock(return_value=_bugs(1, 2))
        client.fetch_bugs_by_whiteboards = AsyncMock(return_value=_bugs(2, 3))
        client.fetch_bugs_by_assignees = AsyncMock(
            return_value=_bugs(4, groups=["core-security"]) + _bugs(5)
        )
        client.fetch_bugs_by_ids = AsyncMock(return_value=_bugs(10, 11, 1))
        return client

    @pytest.mark.asyncio
    async def test_merges_sources_in_fixed_order(self, client: MagicMock) -> None:
        """Test union order, restriction partition and per-source counts."""
        hooks = RecordingHooks()
        since = iso_days_ago(8)

        collection = await collect_candidates(
            client,
            hooks,
            since,
            components=[ProductComponent.parse("Firefox:General")],
            whiteboards=["[fx-vpn]"],
            metabugs=[99],
            assignees=["dev@example.com"],
        )

        assert [b.id for b in collection.union] == [1, 2, 3, 4, 5, 10, 11]
        assert [b.id for b in collection.restricted] == [4]
        assert [b.id for b in collection.candidates] == [1, 2, 3, 5, 10, 11]
        client.fetch_bugs_by_ids.assert_awaited_once_with([10, 11])

        counts = collection.count_by_source()
        assert counts["components"] == 2
        assert counts["whiteboards"] == 2
        assert counts["assignees"] == 2
        assert counts["metabug_children"] == 2
        assert counts["ids"] == 3
        assert counts["union"] == 7
        assert counts["restricted"] == 1
        assert counts["candidates"] == 6

        assert {"kind": "info", "msg": "Candidates after initial query: 6"} in hooks.logs()

    @pytest.mark.asyncio
    async def test_debug_lines_only_when_enabled(self, client: MagicMock) -> None:
        """Test that source diagnostics reach the caller only in debug mode."""
        quiet = RecordingHooks(debug_enabled=False)
        loud = RecordingHooks(debug_enabled=True)

        await collect_candidates(client, quiet, iso_days_ago(8), metabugs=[99])
        await collect_candidates(client, loud, iso_days_ago(8), metabugs=[99])

        assert not any(log["msg"].startswith("[debug]") for log in quiet.logs())
        assert any(log["msg"].startswith("[debug] union candidates:") for log in loud.logs())
