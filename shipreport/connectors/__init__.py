"""
Clients for the upstream trackers, code host and summarizer.
"""

from shipreport.connectors.base_client import BaseHttpClient
from shipreport.connectors.bugzilla_client import BugzillaClient
from shipreport.connectors.github_client import GitHubClient
from shipreport.connectors.jira_client import JiraClient
from shipreport.connectors.openai_client import OpenAIClient
from shipreport.connectors.patch_client import PatchClient

__all__ = [
    "BaseHttpClient",
    "BugzillaClient",
    "GitHubClient",
    "JiraClient",
    "OpenAIClient",
    "PatchClient",
]
