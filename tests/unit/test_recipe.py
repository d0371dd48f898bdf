"""
Tests for recipe construction.
"""

from typing import Any
from unittest.mock import MagicMock

from shipreport.core.config import Settings
from shipreport.core.constants import StepName
from shipreport.orchestration.context import Connectors, StatusContext, StatusParams
from shipreport.orchestration.recipe import build_status_recipe
from shipreport.services.progress import ProgressHooks


def _names(settings: Settings, *, jira: bool = False, github: bool = False, **params: Any) -> list[str]:
    connectors = Connectors(
        bugzilla=MagicMock(),
        patches=MagicMock(),
        openai=MagicMock(),
        jira=MagicMock() if jira else None,
        github=MagicMock() if github else None,
    )
    ctx = StatusContext.create(StatusParams(**params), settings, ProgressHooks(), connectors)
    return [step.name for step in build_status_recipe(ctx)]


TAIL = [
    StepName.HANDLE_EMPTY,
    StepName.LIMIT_OPENAI,
    StepName.LOAD_PATCH_CONTEXT,
    StepName.SUMMARIZE_OPENAI,
    StepName.FORMAT_OUTPUT,
]


class TestBuildStatusRecipe:
    """Tests for build_status_recipe."""

    def test_bugzilla_discovery(self, settings: Settings) -> None:
        """Test the full Bugzilla recipe."""
        assert _names(settings, components=["Firefox:General"]) == [
            StepName.LOG_WINDOW,
            StepName.COLLECT_CANDIDATES,
            StepName.FETCH_HISTORIES,
            StepName.FILTER_BY_HISTORY,
            *TAIL,
        ]

    def test_prequalified_ids_skip_discovery(self, settings: Settings) -> None:
        """Test that pre-qualified ids go straight to summarization."""
        assert _names(settings, ids=[1, 2]) == [StepName.FETCH_PREQUALIFIED, *TAIL]

    def test_patch_context_can_be_disabled(self, settings: Settings) -> None:
        names = _names(settings, ids=[1], include_patch_context=False)

        assert StepName.LOAD_PATCH_CONTEXT not in names

    def test_jira_steps_need_a_connector(self, settings: Settings) -> None:
        """Test that Jira steps appear only with inputs and a configured client."""
        without_client = _names(settings, jira_projects=["FXVPN"])
        with_client = _names(settings, jira=True, jira_projects=["FXVPN"])

        assert StepName.COLLECT_JIRA_ISSUES not in without_client
        assert with_client == [
            StepName.LOG_WINDOW,
            StepName.COLLECT_JIRA_ISSUES,
            StepName.FETCH_JIRA_CHANGELOGS,
            StepName.FILTER_JIRA_BY_HISTORY,
            *TAIL,
        ]

    def test_github_activity(self, settings: Settings) -> None:
        """Test that GitHub activity needs the flag, repos and a client."""
        params = {"assignees": ["dev@example.com"], "github_repos": ["mozilla/example"]}

        assert StepName.FETCH_GITHUB_ACTIVITY not in _names(settings, github=True, **params)
        assert StepName.FETCH_GITHUB_ACTIVITY not in _names(
            settings, include_github_activity=True, **params
        )

        names = _names(settings, github=True, include_github_activity=True, **params)
        assert names.index(StepName.FETCH_GITHUB_ACTIVITY) == names.index(StepName.HANDLE_EMPTY) - 1

    def test_prequalified_with_github(self, settings: Settings) -> None:
        names = _names(
            settings,
            github=True,
            ids=[5],
            include_github_activity=True,
            github_repos=["mozilla/example"],
        )

        assert names[:2] == [StepName.FETCH_PREQUALIFIED, StepName.FETCH_GITHUB_ACTIVITY]
