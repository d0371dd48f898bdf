"""
Recipe construction for status runs.
"""

from shipreport.orchestration.context import StatusContext
from shipreport.orchestration.state_machine import Step
from shipreport.orchestration.steps import (
    collect_candidates_step,
    collect_jira_issues_step,
    fetch_github_activity_step,
    fetch_histories_step,
    fetch_jira_changelogs_step,
    fetch_prequalified_step,
    filter_by_history_step,
    filter_jira_by_history_step,
    format_output_step,
    handle_empty_step,
    limit_openai_step,
    load_patch_context_step,
    log_window_step,
    summarize_openai_step,
)


def _wants_github(ctx: StatusContext) -> bool:
    return bool(
        ctx.params.include_github_activity
        and ctx.github_repos
        and ctx.connectors.github is not None
    )


def _summary_tail(ctx: StatusContext) -> list[Step[StatusContext]]:
    steps: list[Step[StatusContext]] = [handle_empty_step, limit_openai_step]
    if ctx.include_patch_context:
        steps.append(load_patch_context_step)
    steps.extend([summarize_openai_step, format_output_step])
    return steps


def build_status_recipe(ctx: StatusContext) -> list[Step[StatusContext]]:
    """
    Ordered steps for one run.

    With pre-qualified ids the run skips discovery and history checks.
    Otherwise each source contributes its steps only when it was asked for
    and can be reached.
    """
    steps: list[Step[StatusContext]] = []

    if ctx.params.ids:
        steps.append(fetch_prequalified_step)
        if _wants_github(ctx):
            steps.append(fetch_github_activity_step)
        return steps + _summary_tail(ctx)

    steps.append(log_window_step)
    if ctx.params.has_bugzilla_filters:
        steps.extend([collect_candidates_step, fetch_histories_step, filter_by_history_step])
    if ctx.params.has_jira_inputs and ctx.connectors.jira is not None:
        steps.extend([collect_jira_issues_step, fetch_jira_changelogs_step, filter_jira_by_history_step])
    if _wants_github(ctx):
        steps.append(fetch_github_activity_step)
    return steps + _summary_tail(ctx)
