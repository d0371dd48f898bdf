"""
Domain models for tracker items, histories and summaries.
"""

from shipreport.domain.bug import AssigneeDetail, Bug, BugHistory, HistoryChange, HistoryEvent, ProductComponent
from shipreport.domain.github import (
    CommitPatch,
    GitHubActivity,
    GitHubCommit,
    GitHubContributor,
    GitHubPullRequest,
)
from shipreport.domain.jira import JiraChangelogChange, JiraChangelogEntry, JiraIssue, JiraIssueHistory
from shipreport.domain.summary import Assessment, SummarizerResult

__all__ = [
    "AssigneeDetail",
    "Bug",
    "BugHistory",
    "HistoryChange",
    "HistoryEvent",
    "ProductComponent",
    "CommitPatch",
    "GitHubActivity",
    "GitHubCommit",
    "GitHubContributor",
    "GitHubPullRequest",
    "JiraChangelogChange",
    "JiraChangelogEntry",
    "JiraIssue",
    "JiraIssueHistory",
    "Assessment",
    "SummarizerResult",
]
