"""
Optional enrichment steps: GitHub repository activity and commit patches.
"""

from typing import Optional

from shipreport.core.concurrency import run_bounded
from shipreport.core.constants import HISTORY_CONCURRENCY, StepName, SubPhase
from shipreport.core.exceptions import ShipReportError
from shipreport.core.logging import get_logger
from shipreport.domain.bug import Bug
from shipreport.domain.github import CommitPatch, GitHubActivity, GitHubContributor
from shipreport.orchestration.context import StatusContext
from shipreport.orchestration.state_machine import Step, StepResult
from shipreport.services.qualification import filter_github_activity

logger = get_logger(__name__)


def group_contributors(
    activities: list[GitHubActivity],
    email_mapping: dict[str, str],
) -> dict[str, GitHubContributor]:
    """
    Group commits and pull requests by GitHub user.

    ``email_mapping`` maps Bugzilla email to GitHub username. A commit author
    is linked by username or, failing that, by commit email.
    """
    by_username = {username.lower(): email for email, username in email_mapping.items()}
    by_email = {email.lower(): email for email in email_mapping}
    contributors: dict[str, GitHubContributor] = {}

    for activity in activities:
        for commit in activity.commits:
            if commit.author not in contributors:
                contributors[commit.author] = GitHubContributor(
                    github_username=commit.author,
                    bugzilla_email=by_username.get(commit.author.lower())
                    or by_email.get(commit.author_email.lower()),
                )
            contributors[commit.author].commits.append(commit)

        for pr in activity.pull_requests:
            if pr.author not in contributors:
                contributors[pr.author] = GitHubContributor(
                    github_username=pr.author,
                    bugzilla_email=by_username.get(pr.author.lower()),
                )
            contributors[pr.author].pull_requests.append(pr)

    return contributors


async def fetch_github_activity(ctx: StatusContext) -> Optional[StepResult]:
    ctx.github_activity = []
    ctx.github_contributors = {}
    if not ctx.params.include_github_activity or not ctx.github_repos:
        return None

    client = ctx.connectors.github
    if client is None:
        ctx.hooks.warn("GitHub API key not provided; skipping GitHub activity")
        return None

    activities = []
    for repo in ctx.github_repos:
        ctx.hooks.info(f"Fetching GitHub activity for {repo}")
        try:
            activity = await client.get_repo_activity(repo, ctx.since_iso)
        except ShipReportError as e:
            ctx.hooks.warn(f"Failed to fetch GitHub activity for {repo}: {e.message}")
            continue
        filtered = filter_github_activity(activity, ctx.since_iso)
        if filtered.dropped_commits or filtered.dropped_pull_requests:
            ctx.hooks.debug(
                f"[github] {repo}: dropped {filtered.dropped_commits} commit(s) and "
                f"{filtered.dropped_pull_requests} pull request(s) outside the window"
            )
        activities.append(filtered.activity)

    ctx.github_activity = activities
    ctx.github_contributors = group_contributors(activities, ctx.email_mapping)
    ctx.hooks.debug(
        f"[github] Collected {len(activities)} repos, {len(ctx.github_contributors)} contributors"
    )
    return None


async def load_patch_contexts(ctx: StatusContext, bugs: list[Bug]) -> dict[int, list[CommitPatch]]:
    """Patch context per bug id; a bug whose lookup fails is skipped with a warning."""
    if not ctx.include_patch_context:
        ctx.hooks.debug("[patch] patch context disabled via settings")
        return {}

    unique = list({bug.id: bug for bug in reversed(bugs)}.values())[::-1]
    if not unique:
        ctx.hooks.debug("[patch] no bugs provided for patch context lookup")
        return {}

    total = len(unique)
    ctx.hooks.phase(SubPhase.PATCH_CONTEXT.value, total=total)

    def skip(bug: Bug, error: Exception) -> None:
        logger.warning("Patch context failed", bug_id=bug.id, error=str(error))
        ctx.hooks.warn(f"Skipping patch context for #{bug.id}: {error}")

    async def load(bug: Bug) -> tuple[int, list[CommitPatch]]:
        return bug.id, await ctx.connectors.patches.load_patch_context(bug.id)

    results = await run_bounded(
        unique,
        load,
        concurrency=HISTORY_CONCURRENCY,
        on_error=skip,
        on_progress=lambda done, _: ctx.hooks.progress(SubPhase.PATCH_CONTEXT.value, done, total),
    )

    patch_map: dict[int, list[CommitPatch]] = {}
    for bug_id, patches in results:
        if not patches:
            ctx.hooks.debug(f"[patch] bug #{bug_id} no patch context found")
            continue
        patch_map[bug_id] = patches
        failures = sum(1 for patch in patches if patch.error)
        failed = f", {failures} failed" if failures else ""
        ctx.hooks.debug(
            f"[patch] bug #{bug_id} patch context loaded ({len(patches) - failures}/{len(patches)} fetched{failed})"
        )

    ctx.hooks.debug(f"[patch] collected patch context for {len(patch_map)}/{total} bug(s)")
    return patch_map


async def load_patch_context(ctx: StatusContext) -> Optional[StepResult]:
    ctx.patch_context = await load_patch_contexts(ctx, ctx.ai_candidates)
    label = "[patch] pre-qualified run" if ctx.params.ids else "[patch] summary run"
    ctx.hooks.debug(
        f"{label} collected context for {len(ctx.patch_context)}/{len(ctx.ai_candidates)} bug(s)"
    )
    return None


fetch_github_activity_step = Step(name=StepName.FETCH_GITHUB_ACTIVITY, run=fetch_github_activity)
load_patch_context_step = Step(name=StepName.LOAD_PATCH_CONTEXT, run=load_patch_context)
