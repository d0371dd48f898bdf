"""
Prompt construction for the impact summarizer.

Everything here is pure: it turns qualified bugs, Jira issues, patch context
and GitHub contributors into the chat messages sent to the model.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from shipreport.core.constants import PATCH_CONTEXT_CHAR_LIMIT, Audience, Voice
from shipreport.domain.bug import Bug
from shipreport.domain.github import CommitPatch, GitHubContributor
from shipreport.domain.jira import JiraIssue

UNKNOWN_EMAIL = "dev-null+email-unknown@example.com"
GITHUB_COMMIT_LIMIT = 10


# =============================================================================
# Prompt Text
# =============================================================================

VOICE_HINTS = {
    Voice.NORMAL: "Write in a clear, friendly, professional tone.",
    Voice.PIRATE: (
        "Write in light, readable pirate-speak (sprinkle nautical words like 'Ahoy', 'ship', 'crew'). "
        "Keep it professional, clear, and not overdone."
    ),
    Voice.SNAZZY_ROBOT: (
        "Write as a friendly, upbeat robot narrator (light 'beep boop', 'systems nominal'). "
        "Keep it human-readable and charming, not spammy."
    ),
}

LENGTH_HINTS = {
    Audience.TECHNICAL: "~220 words total.",
    Audience.LEADERSHIP: "~120 words total.",
    Audience.PRODUCT: "~170 words total.",
}

_TECHNICAL_BASE = (
    "Audience: engineers. Include specific technical details where valuable (file/feature areas, "
    "prefs/flags, APIs, perf metrics, platform scopes). Assume context; keep acronyms if common. "
    "Avoid business framing.\n"
)

TECHNICAL_HINT = _TECHNICAL_BASE + """\
Refer to each bug's assignee using the provided `assignee.name` (fall back to the email handle if the name is missing). Start every sentence with that assignee so the update credits the correct person.
Structure: one concise sentence per bug with a blank line separating each sentence so they render as distinct paragraphs. Use the inline Markdown link style from the samples so the spoken summary can call out the bug ID.
Keep the tone crisp and technical; highlight concrete fixes, affected surfaces, and any measurable impact.

Below are samples showing the intended style. Replace the names, bug descriptions, and IDs with real data from the payload; never emit placeholders like "[Name]". All Bugzilla links should use the shorthand style 'https://bugzil.la/<ID>', where ID is the bug's specific ID.

Good examples:
Rosa Kim [added a dedicated switch_to_parent_frame method to the WebDriver Classic Python client and renamed switch_frame to switch_to_frame](https://bugzil.la/1900453) for spec alignment.

Mateo Singh updated the network.getData command to [return response bodies for data: scheme requests](https://bugzil.la/1900453).

Priya Iqbal fixed a bug where [different requests could reuse the same id](https://bugzil.la/1900453), which broke targeted commands like network.provideResponse and network.getData.

Avoid these patterns:
- [Fixed bug 1900453](https://bugzil.la/1900453) (too vague, no assignee, no technical detail)
- Rosa Kim made improvements to bug [1900453](https://bugzil.la/1900453) (link on bug ID instead of description)
- Update: various fixes (no specific assignee or technical content)
"""

TECHNICAL_HINT_GROUPED = _TECHNICAL_BASE + """\
Group the summary by assignee: for each assignee, emit a Markdown h2 heading like `## Rosa Kim` followed by bullet points describing each of their bugs. Use inline Markdown links so the spoken summary can call out the bug ID. The heading already credits the assignee; do not repeat their name inside every bullet.
Keep the tone crisp and technical; highlight concrete fixes, affected surfaces, and any measurable impact. Summaries should stay within the requested length budget overall.
"""

TECHNICAL_HINT_SINGLE = _TECHNICAL_BASE + """\
All bugs belong to a single assignee; mention their name once near the start, then describe each bug's impact without repeating their name in every sentence. Keep one concise sentence per bug with inline Markdown links for IDs, and leave a blank line between sentences so they render separately.
Maintain a crisp, technical tone and highlight concrete fixes, affected surfaces, and measurable impact.
"""

LEADERSHIP_HINT = """\
Audience: leadership. Be high-level and concise. Focus on user/business impact, risks, timelines, and cross-team blockers. Avoid low-level tech details and code paths.

Structure: Group updates by feature or subproject area using Markdown headings (e.g., `## WebDriver`, `## Network`). For each area, write a brief paragraph (2-3 sentences) describing the collective improvements and their user/business impact. Lead with what changed and why it matters; do not lead with individual names.

Attribution: At the end of each feature/subproject section, add a separate line crediting contributors with linked bug numbers: `Contributors: Name ([bug_id](https://bugzil.la/bug_id))`. If a contributor fixed multiple bugs, list all their bug IDs.

Good example:
## WebDriver
Improved spec compliance for frame switching and added support for response bodies on data: scheme requests. These changes bring the implementation closer to W3C standards and unblock automated testing workflows that depend on data URLs.

Contributors: Rosa Kim ([1900453](https://bugzil.la/1900453)), Mateo Singh ([1900454](https://bugzil.la/1900454), [1900455](https://bugzil.la/1900455))

Avoid these patterns:
- Rosa Kim improved WebDriver this week... (leading with individual names)
- 5 bugs were fixed in Network (using counts instead of narrative)
- Fixed bug 1900453 (too vague, no context on impact)
- Contributors: Rosa Kim, Mateo Singh (missing bug links)
"""

PRODUCT_HINT = (
    "Audience: product managers. Emphasize user impact, product implications, rollout/experimentation "
    "notes, and notable tradeoffs. Include light technical context only when it clarifies impact.\n"
)

IMPACT_RUBRIC = """\
Impact Score Calibration (1-10):
- 1-3: Internal/tooling changes, code cleanup, refactoring with no direct user-facing impact
- 4-6: Bug fixes or minor features affecting some users in specific scenarios
- 7-8: Significant features, widely-used bug fixes, or notable performance improvements
- 9-10: Major features, critical bug fixes, or changes affecting all users
Provide a one-line technical reason citing specific changes from the patch context when available."""

RESPONSE_SHAPE = """\
Return JSON:
{
  "assessments": [
    { "bug_id": number, "impact_score": number, "short_reason": string, "demo_suggestion": string | null }
  ],
  "summary_md": string
}"""

GITHUB_INSTRUCTION = (
    "Integrate GitHub activity into the summary. When a GitHub user has a mapped Bugzilla email, merge "
    "their GitHub contributions with their Bugzilla work in the summary. For GitHub-only contributors "
    "(no mapped Bugzilla email), include their contributions in a separate section or mention them separately."
)

# Lockfiles and build output carry no signal for an impact summary
PATCH_SKIP_PATTERNS = [
    re.compile(r"^diff --git .*" + pattern)
    for pattern in (
        r"package-lock\.json",
        r"yarn\.lock",
        r"pnpm-lock\.yaml",
        r"Cargo\.lock",
        r"Gemfile\.lock",
        r"poetry\.lock",
        r"\.min\.js",
        r"\.bundle\.js",
        r"/dist/",
        r"/build/",
        r"/target/",
        r"\.generated\.",
    )
]
_DIFF_FILE_RE = re.compile(r"diff --git a/(.*?) b/")


# =============================================================================
# Helpers
# =============================================================================


def clean_bugzilla_username(name: Optional[str]) -> Optional[str]:
    """
    Strip Bugzilla display-name decorations.

    ``"Jane Smith [:jsmith]"`` becomes ``"Jane Smith"``, out-of-office notes
    after ``|`` or in multi-word brackets are dropped, and the placeholder
    ``nobody@...`` account becomes ``"Unassigned"``.
    """
    if name is None:
        return None
    trimmed = name.strip()
    if not trimmed:
        return None
    if trimmed.lower().startswith("nobody"):
        return "Unassigned"

    cleaned = re.sub(r"\s*\|.*$", "", trimmed)
    cleaned = re.sub(r"\s*\(:[^)]*\)", "", cleaned)
    cleaned = re.sub(r"\s*\([^)]*\s[^)]*\)", "", cleaned)
    cleaned = re.sub(r"\s*\([^)]*\)\s*$", "", cleaned)
    cleaned = re.sub(r"\s*\[[^\]]*\s[^\]]*\]", "", cleaned)
    cleaned = re.sub(r"\s*\[:\w+\]", "", cleaned)
    cleaned = re.sub(r"\s*\[\w+\]", "", cleaned)
    return cleaned.strip() or None


def filter_patch_content(patch: str) -> tuple[str, list[str]]:
    """Drop per-file diffs of lockfiles and generated output; return (kept, removed paths)."""
    kept: list[str] = []
    removed: list[str] = []
    skipping = False
    for line in patch.split("\n"):
        if line.startswith("diff --git "):
            skipping = any(pattern.search(line) for pattern in PATCH_SKIP_PATTERNS)
            if skipping:
                match = _DIFF_FILE_RE.search(line)
                if match:
                    removed.append(match.group(1))
        if not skipping:
            kept.append(line)
    return "\n".join(kept), removed


def smart_truncate(content: str, max_length: int) -> str:
    """Keep the head and tail of ``content``, cutting from the middle."""
    if len(content) <= max_length:
        return content
    start_chars = int(max_length * 0.6)
    end_chars = int(max_length * 0.4) - 50
    return (
        f"{content[:start_chars]}\n\n... [truncated {len(content) - max_length} characters] ...\n\n"
        f"{content[-end_chars:]}"
    )


def build_audience_hint(audience: Audience, group_by_assignee: bool, single_assignee: bool) -> str:
    if audience == Audience.TECHNICAL:
        if group_by_assignee and single_assignee:
            return TECHNICAL_HINT_SINGLE
        if group_by_assignee:
            return TECHNICAL_HINT_GROUPED
        return TECHNICAL_HINT

    hint = LEADERSHIP_HINT if audience == Audience.LEADERSHIP else PRODUCT_HINT
    if group_by_assignee and single_assignee:
        hint += (
            "All bugs belong to a single assignee; mention their name once near the start, "
            "then cover each bug without repeating it.\n"
        )
    elif group_by_assignee:
        hint += (
            "Group the summary by assignee with Markdown `## Name` headings and bullets so ownership "
            "is obvious without repeating the name.\n"
        )
    return hint


def _bug_payload(bug: Bug) -> dict[str, Any]:
    detail = bug.assigned_to_detail
    primary = None
    if detail is not None:
        primary = next(
            (value.strip() for value in (detail.real_name, detail.name, detail.nick) if value and value.strip()),
            None,
        )
    if bug.assigned_to and "@" in bug.assigned_to:
        fallback = bug.assigned_to.split("@")[0]
    else:
        fallback = bug.assigned_to or "Someone"

    return {
        "id": bug.id,
        "summary": bug.summary,
        "product": bug.product,
        "component": bug.component,
        "assignee": {
            "name": clean_bugzilla_username(primary or fallback) or fallback,
            "email": bug.assigned_to or UNKNOWN_EMAIL,
        },
    }


def _jira_payload(issue: JiraIssue) -> dict[str, Any]:
    return {
        "key": issue.key,
        "summary": issue.summary,
        "project": issue.project,
        "component": issue.component or "",
        "assignee": {
            "name": issue.assignee_display_name or "Unassigned",
            "email": issue.assignee_email or "",
        },
    }


def _patch_section(bugs: Sequence[Bug], patch_context: dict[int, list[CommitPatch]]) -> str:
    per_bug: list[str] = []
    for bug in bugs:
        patches = patch_context.get(bug.id) or []
        snippets: list[str] = []
        removed_files: list[str] = []

        for entry in patches:
            parts = [f"Commit: {entry.commit_url}"]
            if entry.error:
                parts += [f"Note: {entry.error}", f"Message: {entry.message}"]
            else:
                kept, removed = filter_patch_content(entry.patch)
                removed_files.extend(removed)
                parts.append(f"Message: {entry.message}")
                if kept.strip():
                    parts.append(f"Patch:\n{kept}")
                elif removed:
                    parts.append("Patch: [Only generated/lock files changed]")
            snippets.append("\n".join(parts))

        if not snippets:
            continue

        combined = "\n\n".join(snippets)
        context = f"Bug {bug.id}:\n{smart_truncate(combined, PATCH_CONTEXT_CHAR_LIMIT)}"
        if removed_files:
            unique = list(dict.fromkeys(removed_files))
            more = f", +{len(unique) - 3} more" if len(unique) > 3 else ""
            context += f"\n[Filtered out: {', '.join(unique[:3])}{more}]"
        per_bug.append(context)

    return "\n\n".join(per_bug)


def _github_section(contributors: dict[str, GitHubContributor]) -> str:
    blocks: list[str] = []
    for username, contributor in contributors.items():
        parts = [f"GitHub User: @{username}"]
        if contributor.bugzilla_email:
            parts.append(f"Bugzilla Email: {contributor.bugzilla_email}")
        if contributor.commits:
            parts.append(f"Commits ({len(contributor.commits)}):")
            for commit in contributor.commits[:GITHUB_COMMIT_LIMIT]:
                first_line = commit.message.split("\n")[0]
                parts.append(f"  - {first_line} ({commit.url})")
            if len(contributor.commits) > GITHUB_COMMIT_LIMIT:
                parts.append(f"  - ...and {len(contributor.commits) - GITHUB_COMMIT_LIMIT} more commits")
        if contributor.pull_requests:
            parts.append(f"Pull Requests ({len(contributor.pull_requests)}):")
            for pr in contributor.pull_requests:
                parts.append(f"  - #{pr.number}: {pr.title} ({pr.state}, {pr.url})")
        blocks.append("\n".join(parts))
    return "\n\n".join(blocks)


# =============================================================================
# Messages
# =============================================================================


@dataclass
class SummaryRequest:
    """Everything the model sees for one summary."""

    bugs: list[Bug]
    days: int
    voice: Voice = Voice.NORMAL
    audience: Audience = Audience.TECHNICAL
    jira_issues: list[JiraIssue] = field(default_factory=list)
    patch_context: dict[int, list[CommitPatch]] = field(default_factory=dict)
    github_contributors: dict[str, GitHubContributor] = field(default_factory=dict)
    group_by_assignee: bool = False
    single_assignee: bool = False
    jira_url: str = ""


def build_system_prompt(request: SummaryRequest) -> str:
    return (
        "You are an expert release PM creating a short, spoken weekly update.\n"
        "Focus ONLY on user impact. Skip items with no obvious user impact.\n"
        "Separate each bug update with a blank line so Markdown renders them as distinct paragraphs.\n"
        f"Keep the overall summary {LENGTH_HINTS[request.audience]} Output valid JSON only.\n"
        f"{VOICE_HINTS[request.voice]}\n"
        f"{build_audience_hint(request.audience, request.group_by_assignee, request.single_assignee)}"
    )


def build_user_prompt(request: SummaryRequest) -> str:
    if request.group_by_assignee and request.single_assignee:
        credit = (
            "In assessments, credit each bug's assignee by name. In the summary, mention the assignee "
            "once near the start and describe each bug without repeating their name."
        )
    elif request.group_by_assignee:
        credit = (
            "In assessments, credit each bug's assignee by name. In the summary, group bugs under Markdown "
            "headings for each assignee (use `## Name`) and list their bugs as bullets without repeating "
            "the assignee's name inside each bullet."
        )
    else:
        credit = (
            "In both the assessments and the summary, credit the bug's assignee by name (use assignee.name; "
            "if missing, fall back to the assignee email handle)."
        )

    bugs_json = json.dumps([_bug_payload(bug) for bug in request.bugs])
    jira_json = json.dumps([_jira_payload(issue) for issue in request.jira_issues])
    jira_link = f"{request.jira_url.rstrip('/')}/browse/KEY" if request.jira_url else "JIRA_URL/browse/KEY"

    user = f"Data window: last {request.days} days.\n"
    if request.bugs and request.jira_issues:
        user += (
            f"\nBugzilla Bugs (done/fixed):\n{bugs_json}\n\n"
            f"Jira Issues (done/resolved):\n{jira_json}\n\n"
            f"{IMPACT_RUBRIC}\n\n"
            "Tasks:\n"
            "1) For each Bugzilla bug, assess user-facing impact using the rubric above and provide an impact "
            "score 1-10 with a one-line reason in the assessments array.\n"
            "2) For Jira issues, assess user-facing impact using the rubric and provide an impact score 1-10. "
            'Add them to assessments with the issue key as the bug_id field (e.g., "PROJ-123" as bug_id).\n'
            "3) For bugs/issues with score >= 9, suggest a one-sentence demo idea.\n"
            "4) Write a Markdown summary with TWO sections:\n"
            '   - First section titled "## Bugzilla Issues" summarizing the Bugzilla bugs\n'
            '   - Second section titled "## Jira Issues" summarizing the Jira issues\n'
            f"   - Use inline Markdown links: [description](https://bugzil.la/ID) for Bugzilla and "
            f"[description]({jira_link}) for Jira\n"
            f"5) {credit}"
        )
    elif request.bugs:
        user += (
            f"Bugs (done/fixed):\n{bugs_json}\n\n"
            f"{IMPACT_RUBRIC}\n\n"
            "Tasks:\n"
            "1) For each bug, assess user-facing impact using the rubric above and provide an impact score "
            "1-10 with a one-line reason.\n"
            "2) For bugs with score >= 9, suggest a one-sentence demo idea.\n"
            "3) Write a concise Markdown summary emphasizing user impact only.\n"
            f"4) {credit}"
        )
    elif request.jira_issues:
        user += (
            f"Jira Issues (done/resolved):\n{jira_json}\n\n"
            f"{IMPACT_RUBRIC}\n\n"
            "Tasks:\n"
            "1) For each Jira issue, assess user-facing impact using the rubric above and provide an impact "
            "score 1-10 with a one-line reason. Use the issue key as the bug_id field "
            '(e.g., "PROJ-123" as bug_id).\n'
            "2) For issues with score >= 9, suggest a one-sentence demo idea.\n"
            "3) Write a concise Markdown summary emphasizing user impact only.\n"
            '4) Credit the assignee by name (use assignee.name; if missing or "Unassigned", skip attribution).'
        )
    else:
        user += "No bugs or issues to summarize."

    user += f"\n\n{RESPONSE_SHAPE}"

    if request.patch_context:
        section = _patch_section(request.bugs, request.patch_context)
        if section:
            user += f"\n\nPatch Context:\n{section}"

    if request.github_contributors:
        section = _github_section(request.github_contributors)
        if section:
            user += f"\n\nGitHub Activity:\n{section}\n\n{GITHUB_INSTRUCTION}"

    return user


def build_messages(request: SummaryRequest) -> list[dict[str, str]]:
    """Chat messages for one summary request."""
    return [
        {"role": "system", "content": build_system_prompt(request)},
        {"role": "user", "content": build_user_prompt(request)},
    ]
