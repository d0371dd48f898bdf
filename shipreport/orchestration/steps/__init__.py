"""
Recipe steps. Each module groups the steps of one source or stage.
"""

from shipreport.orchestration.steps.bugzilla import (
    collect_candidates_step,
    fetch_histories_step,
    fetch_prequalified_step,
    filter_by_history_step,
    log_window_step,
)
from shipreport.orchestration.steps.enrichment import (
    fetch_github_activity_step,
    load_patch_context_step,
)
from shipreport.orchestration.steps.jira import (
    collect_jira_issues_step,
    fetch_jira_changelogs_step,
    filter_jira_by_history_step,
)
from shipreport.orchestration.steps.summary import (
    format_output_step,
    handle_empty_step,
    limit_openai_step,
    summarize_openai_step,
)

__all__ = [
    "collect_candidates_step",
    "collect_jira_issues_step",
    "fetch_github_activity_step",
    "fetch_histories_step",
    "fetch_jira_changelogs_step",
    "fetch_prequalified_step",
    "filter_by_history_step",
    "filter_jira_by_history_step",
    "format_output_step",
    "handle_empty_step",
    "limit_openai_step",
    "load_patch_context_step",
    "log_window_step",
    "summarize_openai_step",
]
