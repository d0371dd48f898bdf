"""
Qualification rules.

Decides whether a candidate genuinely became "done" inside the reporting
window by reading its own change log, and applies the snapshot, restriction
and staleness filters used around that decision.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from shipreport.core.constants import (
    FIXED_RESOLUTION,
    JIRA_DONE_CATEGORY,
    RESOLVED_BUG_STATUSES,
    RESTRICTED_GROUP_PATTERNS,
)
from shipreport.domain.bug import Bug, BugHistory
from shipreport.domain.github import GitHubActivity
from shipreport.domain.jira import JiraIssue, JiraIssueHistory

NO_HISTORY = "no history"
NO_HISTORY_ENTRIES = "no history entries"
NO_RECENT_HISTORY = "no recent history in window"
NO_QUALIFYING_TRANSITION = "no qualifying transitions (bug_status/resolution)"

NO_CHANGELOG = "no changelog"
NO_CHANGELOG_ENTRIES = "no changelog entries"
NO_RECENT_CHANGELOG = "no recent changelog in window"
NO_QUALIFYING_JIRA_TRANSITION = "no qualifying transitions (status/statusCategory/resolution)"

_STATUS_FIELDS = {"status", "bug_status"}
_JIRA_DONE_WORDS = ("done", "resolved", "closed", "complete")
_RESTRICTED_RES = [re.compile(pattern, re.IGNORECASE) for pattern in RESTRICTED_GROUP_PATTERNS]


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime, or None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: datetime) -> str:
    """Format as the millisecond UTC ``...Z`` form used on the wire."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_after_since(value: Optional[str], since_iso: Optional[str]) -> bool:
    if not since_iso:
        return True
    when, since = parse_iso(value), parse_iso(since_iso)
    if when is None or since is None:
        return False
    return when >= since


@dataclass(frozen=True)
class Qualification:
    """Outcome of a history check: ``why`` on rejection, ``detail`` on success."""

    ok: bool
    why: Optional[str] = None
    detail: Optional[str] = None


# =============================================================================
# Bugzilla
# =============================================================================


def is_restricted(groups: Optional[Iterable[str]]) -> bool:
    return any(pattern.search(group) for group in groups or () for pattern in _RESTRICTED_RES)


def partition_restricted(bugs: Sequence[Bug]) -> tuple[list[Bug], list[Bug]]:
    """Split bugs into (restricted, eligible), preserving order."""
    restricted: list[Bug] = []
    eligible: list[Bug] = []
    for bug in bugs:
        (restricted if is_restricted(bug.groups) else eligible).append(bug)
    return restricted, eligible


def qualifies_bug_snapshot(bug: Bug, since_iso: Optional[str] = None) -> bool:
    """Current-state check: resolved, fixed and touched inside the window."""
    return (
        bug.status in RESOLVED_BUG_STATUSES
        and bug.resolution == FIXED_RESOLUTION
        and is_after_since(bug.last_change_time, since_iso)
    )


def qualifies_by_history_why(history: Optional[BugHistory], since_iso: str) -> Qualification:
    """
    Check a bug's history for a done transition inside the window.

    Every in-window entry is examined in chronological order; an early
    in-window entry that changes unrelated fields does not end the scan.
    Within one entry a FIXED resolution wins over a status change for the
    reported detail.
    """
    if history is None:
        return Qualification(ok=False, why=NO_HISTORY)
    if not history.history:
        return Qualification(ok=False, why=NO_HISTORY_ENTRIES)

    since = parse_iso(since_iso)
    in_window = []
    for event in history.history:
        when = parse_iso(event.when)
        if when is None or (since is not None and when < since):
            continue
        in_window.append((when, event))
    if not in_window:
        return Qualification(ok=False, why=NO_RECENT_HISTORY)

    in_window.sort(key=lambda pair: pair[0])
    for _, event in in_window:
        detail = None
        for change in event.changes:
            field_name = change.field_name.lower()
            if field_name in _STATUS_FIELDS and change.added in RESOLVED_BUG_STATUSES:
                detail = detail or f"status {change.added} on {event.when}"
            if field_name == "resolution" and change.added == FIXED_RESOLUTION:
                detail = f"resolution {FIXED_RESOLUTION} on {event.when}"
        if detail:
            return Qualification(ok=True, detail=detail)

    return Qualification(ok=False, why=NO_QUALIFYING_TRANSITION)


def qualifies_by_history(history: Optional[BugHistory], since_iso: str) -> bool:
    return qualifies_by_history_why(history, since_iso).ok


# =============================================================================
# Jira
# =============================================================================


def qualifies_by_jira_history_why(history: Optional[JiraIssueHistory], since_iso: str) -> Qualification:
    """Jira counterpart of ``qualifies_by_history_why`` over changelog items."""
    if history is None:
        return Qualification(ok=False, why=NO_CHANGELOG)
    if not history.changelog:
        return Qualification(ok=False, why=NO_CHANGELOG_ENTRIES)

    since = parse_iso(since_iso)
    in_window = []
    for entry in history.changelog:
        when = parse_iso(entry.created)
        if when is None or (since is not None and when < since):
            continue
        in_window.append((when, entry))
    if not in_window:
        return Qualification(ok=False, why=NO_RECENT_CHANGELOG)

    in_window.sort(key=lambda pair: pair[0])
    for _, entry in in_window:
        for item in entry.items:
            field_name = item.field.lower()
            to_string = (item.to_string or "").lower()
            from_string = (item.from_string or "").lower()

            if field_name == "status" and any(word in to_string for word in _JIRA_DONE_WORDS):
                return Qualification(ok=True, detail=f"status → {item.to_string} on {entry.created}")
            if field_name == "statuscategory" and to_string in ("done", "complete"):
                return Qualification(ok=True, detail=f"statusCategory → {item.to_string} on {entry.created}")
            if (
                field_name == "resolution"
                and to_string
                and to_string != "unresolved"
                and from_string in ("", "null")
            ):
                return Qualification(ok=True, detail=f"resolution → {item.to_string} on {entry.created}")

    return Qualification(ok=False, why=NO_QUALIFYING_JIRA_TRANSITION)


def qualifies_by_jira_history(history: Optional[JiraIssueHistory], since_iso: str) -> bool:
    return qualifies_by_jira_history_why(history, since_iso).ok


@dataclass
class JiraFilterResult:
    qualified: list[JiraIssue]
    excluded_secure: int = 0
    excluded_status: int = 0
    excluded_stale: int = 0


def filter_jira_issues(issues: Sequence[JiraIssue], since_iso: Optional[str] = None) -> JiraFilterResult:
    """Drop secured, not-done and stale issues, counting each reason."""
    result = JiraFilterResult(qualified=[])
    for issue in issues:
        if issue.is_secure:
            result.excluded_secure += 1
        elif issue.status_category.lower() != JIRA_DONE_CATEGORY:
            result.excluded_status += 1
        elif not is_after_since(issue.updated, since_iso):
            result.excluded_stale += 1
        else:
            result.qualified.append(issue)
    return result


# =============================================================================
# GitHub
# =============================================================================


@dataclass
class GitHubFilterResult:
    activity: GitHubActivity
    dropped_commits: int = 0
    dropped_pull_requests: int = 0


def filter_github_activity(activity: GitHubActivity, since_iso: Optional[str] = None) -> GitHubFilterResult:
    """Keep commits authored and pull requests closed inside the window."""
    commits = [commit for commit in activity.commits if is_after_since(commit.date, since_iso)]
    pull_requests = [pr for pr in activity.pull_requests if is_after_since(pr.closed_at, since_iso)]
    return GitHubFilterResult(
        activity=activity.model_copy(update={"commits": commits, "pull_requests": pull_requests}),
        dropped_commits=len(activity.commits) - len(commits),
        dropped_pull_requests=len(activity.pull_requests) - len(pull_requests),
    )
