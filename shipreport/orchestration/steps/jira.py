"""
Jira steps: issue collection, changelog fetch and changelog qualification.
"""

from collections import Counter
from typing import Optional

from shipreport.core.constants import StepName
from shipreport.domain.jira import JiraIssue
from shipreport.orchestration.context import StatusContext
from shipreport.orchestration.state_machine import Step, StepResult
from shipreport.services.qualification import (
    NO_CHANGELOG,
    filter_jira_issues,
    qualifies_by_jira_history_why,
)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


async def collect_jira_issues(ctx: StatusContext) -> Optional[StepResult]:
    client = ctx.connectors.jira
    if client is None:
        ctx.hooks.warn("Jira client not initialized, skipping Jira collection")
        return None

    issues: list[JiraIssue] = []
    queries = ctx.params.jira_jql
    projects = ctx.params.jira_projects
    if queries:
        ctx.hooks.info(
            f"Collecting Jira issues from {len(queries)} JQL {_plural(len(queries), 'query', 'queries')}"
        )
        issues.extend(await client.fetch_issues_by_jql(queries, ctx.hooks))
    if projects:
        ctx.hooks.info(
            f"Collecting Jira issues from {len(projects)} {_plural(len(projects), 'project', 'projects')}"
        )
        issues.extend(await client.fetch_issues_by_projects(projects, ctx.days, ctx.hooks))

    unique: dict[str, JiraIssue] = {}
    for issue in issues:
        unique.setdefault(issue.key, issue)

    result = filter_jira_issues(list(unique.values()), ctx.since_iso)
    ctx.jira_issues = result.qualified
    count = len(ctx.jira_issues)
    ctx.hooks.info(f"Jira Candidates: {count} {_plural(count, 'issue', 'issues')}")

    if result.excluded_secure + result.excluded_status + result.excluded_stale > 0:
        ctx.hooks.info(
            f"Jira filters removed: {result.excluded_secure} secure, "
            f"{result.excluded_status} status, {result.excluded_stale} stale"
        )
    if ctx.jira_issues:
        ctx.hooks.debug(f"sample Jira issues: {', '.join(i.key for i in ctx.jira_issues[:3])}")
    return None


async def fetch_jira_changelogs(ctx: StatusContext) -> Optional[StepResult]:
    client = ctx.connectors.jira
    if client is None:
        ctx.hooks.warn("Jira client not initialized, skipping changelog fetching")
        return None
    if not ctx.jira_issues:
        ctx.hooks.info("No Jira issues to fetch changelogs for")
        return None

    histories = await client.fetch_changelogs([issue.key for issue in ctx.jira_issues], ctx.hooks)
    ctx.jira_histories = histories
    ctx.by_key_jira_history = {history.key: history for history in histories}
    ctx.hooks.info(f"Fetched changelogs for {len(histories)}/{len(ctx.jira_issues)} Jira issues")
    return None


def filter_jira_by_history(ctx: StatusContext) -> Optional[StepResult]:
    if not ctx.jira_issues:
        ctx.hooks.info("No Jira issues to filter")
        ctx.final_jira_issues = []
        return None

    reasons: Counter[str] = Counter()
    examples: dict[str, list[str]] = {}
    final = []
    for issue in ctx.jira_issues:
        result = qualifies_by_jira_history_why(ctx.by_key_jira_history.get(issue.key), ctx.since_iso)
        if result.ok:
            final.append(issue)
            detail = f" – {result.detail}" if result.detail else ""
            ctx.hooks.debug(f"[jira-history] qualified {issue.key}{detail}")
            continue
        why = result.why or NO_CHANGELOG
        reasons[why] += 1
        examples.setdefault(why, [])
        if len(examples[why]) < 6:
            examples[why].append(issue.key)
        ctx.hooks.debug(f"[jira-history] excluded {issue.key}: {why}")

    for why, count in reasons.items():
        keys = examples.get(why) or []
        eg = f" (e.g., {', '.join(keys)})" if keys else ""
        ctx.hooks.debug(f"[jira-history] {why}: {count} {_plural(count, 'issue', 'issues')}{eg}")

    ctx.final_jira_issues = final
    ctx.hooks.info(f"Qualified Jira issues: {len(final)}")
    return None


collect_jira_issues_step = Step(name=StepName.COLLECT_JIRA_ISSUES, run=collect_jira_issues)
fetch_jira_changelogs_step = Step(name=StepName.FETCH_JIRA_CHANGELOGS, run=fetch_jira_changelogs)
filter_jira_by_history_step = Step(name=StepName.FILTER_JIRA_BY_HISTORY, run=filter_jira_by_history)
