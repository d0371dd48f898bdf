"""
System-wide constants for shipreport.
"""

from enum import Enum
from typing import Optional


# =============================================================================
# Enums
# =============================================================================


class StepStatus(str, Enum):
    """Lifecycle of a single recipe step."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepName(str, Enum):
    """Every step a status recipe can contain."""

    FETCH_PREQUALIFIED = "fetch-prequalified"
    LOG_WINDOW = "log-window"
    COLLECT_CANDIDATES = "collect-candidates"
    FETCH_HISTORIES = "fetch-histories"
    FILTER_BY_HISTORY = "filter-by-history"
    COLLECT_JIRA_ISSUES = "collect-jira-issues"
    FETCH_JIRA_CHANGELOGS = "fetch-jira-changelogs"
    FILTER_JIRA_BY_HISTORY = "filter-jira-by-history"
    FETCH_GITHUB_ACTIVITY = "fetch-github-activity"
    HANDLE_EMPTY = "handle-empty"
    LIMIT_OPENAI = "limit-openai"
    LOAD_PATCH_CONTEXT = "load-patch-context"
    SUMMARIZE_OPENAI = "summarize-openai"
    FORMAT_OUTPUT = "format-output"

    @property
    def display_name(self) -> Optional[str]:
        """Progress label for this step, or None when it reports no phase."""
        return STEP_PHASE_NAMES[self]


# None means the step runs silently. Every StepName must have an entry.
STEP_PHASE_NAMES: dict[StepName, Optional[str]] = {
    StepName.FETCH_PREQUALIFIED: "Loading bugs",
    StepName.LOG_WINDOW: None,
    StepName.COLLECT_CANDIDATES: "Collecting candidate bugs",
    StepName.FETCH_HISTORIES: "Fetching bug histories",
    StepName.FILTER_BY_HISTORY: "Filtering by history",
    StepName.COLLECT_JIRA_ISSUES: "Collecting Jira issues",
    StepName.FETCH_JIRA_CHANGELOGS: "Fetching Jira changelogs",
    StepName.FILTER_JIRA_BY_HISTORY: "Filtering Jira by history",
    StepName.FETCH_GITHUB_ACTIVITY: "Fetching GitHub activity",
    StepName.HANDLE_EMPTY: None,
    StepName.LIMIT_OPENAI: None,
    StepName.LOAD_PATCH_CONTEXT: "Loading commit context",
    StepName.SUMMARIZE_OPENAI: "Generating AI summary",
    StepName.FORMAT_OUTPUT: "Formatting output",
}

if set(STEP_PHASE_NAMES) != set(StepName):
    raise RuntimeError("STEP_PHASE_NAMES must cover every StepName")


class SubPhase(str, Enum):
    """Finer-grained progress labels emitted from inside connectors."""

    PATCH_CONTEXT = "Loading commit context"
    COLLECT_WHITEBOARDS = "Collecting whiteboard bugs"
    HISTORIES = "Fetching bug histories"
    OPENAI = "Generating AI summary"


class Voice(str, Enum):
    """Narration style for the generated summary."""

    NORMAL = "normal"
    PIRATE = "pirate"
    SNAZZY_ROBOT = "snazzy-robot"


class Audience(str, Enum):
    """Who the summary is written for."""

    TECHNICAL = "technical"
    PRODUCT = "product"
    LEADERSHIP = "leadership"


class OutputFormat(str, Enum):
    """Rendered output format."""

    MARKDOWN = "md"
    HTML = "html"


class StatusMode(str, Enum):
    """Entry points of the status HTTP contract."""

    DISCOVER = "discover"
    PAGE = "page"
    FINALIZE = "finalize"
    ONESHOT = "oneshot"


class EventKind(str, Enum):
    """Kinds of NDJSON progress events."""

    START = "start"
    INFO = "info"
    WARN = "warn"
    PHASE = "phase"
    PROGRESS = "progress"
    DONE = "done"
    ERROR = "error"


# =============================================================================
# Pipeline Limits
# =============================================================================

MAX_BUGS_FOR_SUMMARY = 60
DEFAULT_DAYS = 8
DEFAULT_MODEL = "gpt-5"
DEFAULT_PAGE_SIZE = 35
HISTORY_CONCURRENCY = 8
BUGZILLA_ID_CHUNK_SIZE = 300
JIRA_PAGE_SIZE = 100
GITHUB_MAX_COMMITS_PER_REPO = 500
GITHUB_MAX_PRS_PER_REPO = 100
DEMO_SCORE_THRESHOLD = 8
PATCH_CONTEXT_CHAR_LIMIT = 8000

# =============================================================================
# Bugzilla
# =============================================================================

DEFAULT_BUGZILLA_HOST = "https://bugzilla.mozilla.org"
RESOLVED_BUG_STATUSES = ("RESOLVED", "VERIFIED", "CLOSED")
FIXED_RESOLUTION = "FIXED"
BUG_FIELDS = (
    "id",
    "summary",
    "product",
    "component",
    "status",
    "resolution",
    "assigned_to",
    "assigned_to_detail",
    "last_change_time",
    "groups",
    "depends_on",
    "blocks",
)
RESTRICTED_GROUP_PATTERNS = (r"security", r"confidential")

# =============================================================================
# Jira
# =============================================================================

JIRA_DONE_CATEGORY = "done"
JIRA_FIELDS = (
    "key",
    "summary",
    "status",
    "resolution",
    "resolutiondate",
    "updated",
    "project",
    "components",
    "assignee",
    "labels",
    "security",
)

# =============================================================================
# API
# =============================================================================

API_PREFIX = "/api/v1"
NDJSON_MEDIA_TYPE = "application/x-ndjson"
STREAM_HEADER = "x-shipreport-stream"
