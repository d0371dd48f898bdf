"""
Output formatting: Bugzilla deep links, Markdown/HTML rendering and the
final report text.
"""

import html
import re
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlencode

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from shipreport.core.constants import (
    DEFAULT_BUGZILLA_HOST,
    DEMO_SCORE_THRESHOLD,
    FIXED_RESOLUTION,
    RESOLVED_BUG_STATUSES,
)
from shipreport.domain.bug import ProductComponent
from shipreport.domain.summary import Assessment

DEMO_SECTION_RE = re.compile(r"(^|\n)+#{0,3}\s*Demo suggestions[\s\S]*$", re.IGNORECASE)
SAFE_URL_RE = re.compile(
    r"^(?:https?://|mailto:|/(?!/)|\.\.?/|#|data:image/(png|gif|jpg|jpeg|webp);base64,)",
    re.IGNORECASE,
)
BUGLIST_LABEL = "View bugs in Bugzilla"


# =============================================================================
# Links
# =============================================================================


def build_buglist_url(
    since_iso: str,
    whiteboards: Sequence[str] = (),
    assignees: Sequence[str] = (),
    ids: Sequence[int] = (),
    components: Sequence[ProductComponent] = (),
    host: Optional[str] = None,
) -> str:
    """
    Bugzilla search URL reproducing the report's selection.

    Assignee and whiteboard selectors become OR groups in Bugzilla's
    ``fN``/``oN``/``vN`` custom-search syntax.
    """
    base = (host or DEFAULT_BUGZILLA_HOST).rstrip("/")
    params: list[tuple[str, str]] = [
        ("bug_status", ",".join(RESOLVED_BUG_STATUSES)),
        ("resolution", FIXED_RESOLUTION),
        ("chfieldfrom", since_iso),
        ("chfieldto", "Now"),
    ]
    if ids:
        params.append(("bug_id", ",".join(str(i) for i in ids)))

    product_only: dict[str, None] = {}
    for pair in components:
        if pair.product.strip() and not (pair.component or "").strip():
            product_only.setdefault(pair.product.strip(), None)
    params.extend(("product", product) for product in product_only)
    for pair in components:
        product, component = pair.product.strip(), (pair.component or "").strip()
        if not product or not component or product in product_only:
            continue
        params += [("product", product), ("component", component)]

    index = 1

    def add_group(field_name: str, operator: str, values: Sequence[str]) -> None:
        nonlocal index
        params.extend([(f"f{index}", "OP"), (f"j{index}", "OR")])
        index += 1
        for value in values:
            params.extend([(f"f{index}", field_name), (f"o{index}", operator), (f"v{index}", value)])
            index += 1
        params.append((f"f{index}", "CP"))
        index += 1

    if assignees:
        add_group("assigned_to", "equals", assignees)
    if whiteboards:
        add_group("status_whiteboard", "substring", whiteboards)

    return f"{base}/buglist.cgi?{urlencode(params)}"


# =============================================================================
# Markdown Rendering
# =============================================================================


def escape_html(text: Optional[str]) -> str:
    return html.escape(text or "", quote=True)


def sanitize_href(href: Optional[str]) -> str:
    if not isinstance(href, str):
        return "#"
    trimmed = href.strip()
    return trimmed if SAFE_URL_RE.match(trimmed) else "#"


class _SafeLinkTreeprocessor(Treeprocessor):
    def run(self, root):
        for element in root.iter("a"):
            href = sanitize_href(element.get("href"))
            element.set("href", href)
            if href.startswith(("http://", "https://")):
                element.set("target", "_blank")
                element.set("rel", "noopener noreferrer")
        for element in root.iter("img"):
            element.set("src", sanitize_href(element.get("src")))
            element.set("alt", element.get("alt") or "")


class SafeHtmlExtension(Extension):
    """Render raw HTML as text and neutralize unsafe link targets."""

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")
        md.treeprocessors.register(_SafeLinkTreeprocessor(md), "safe_links", 1)


def markdown_to_html(text: Optional[str]) -> str:
    return markdown.markdown(
        text or "",
        extensions=["tables", "fenced_code", SafeHtmlExtension()],
    )


# =============================================================================
# Report Text
# =============================================================================


@dataclass
class FormattedOutput:
    markdown: str
    html: str


def extract_demo_suggestions(assessments: Sequence[Assessment]) -> list[str]:
    """Demo bullet lines for high-impact assessments that carry a suggestion."""
    lines = []
    for assessment in assessments:
        score = assessment.impact_score
        if score != score or score < DEMO_SCORE_THRESHOLD or not assessment.demo_suggestion:
            continue
        lines.append(
            f"- [Bug {assessment.bug_id}](https://bugzilla.mozilla.org/show_bug.cgi?id={assessment.bug_id}): "
            f"{assessment.demo_suggestion}"
        )
    return lines


def format_summary_output(
    summary_md: str,
    demo: Sequence[str],
    trimmed_count: int,
    link: str,
) -> FormattedOutput:
    """
    Final report in both formats.

    Any demo section the model wrote itself is replaced by the one built from
    the assessments, and a note records how many bugs were left out of the
    summary.
    """
    summary = DEMO_SECTION_RE.sub("", (summary_md or "").strip()).strip()

    if demo:
        summary += "\n\n### Demo suggestions\n" + "\n".join(demo)

    if trimmed_count > 0:
        noun, verb = ("bug", "was") if trimmed_count == 1 else ("bugs", "were")
        summary += (
            f"\n\n_Note: {trimmed_count} additional {noun} {verb} omitted from the AI summary due to size limits._"
        )

    return FormattedOutput(
        markdown=f"{summary}\n\n[{BUGLIST_LABEL}]({link})",
        html=f'{markdown_to_html(summary)}\n<p><a href="{escape_html(link)}">{BUGLIST_LABEL}</a></p>',
    )


def build_empty_summary(days: int, link: str) -> FormattedOutput:
    return FormattedOutput(
        markdown=f"_No user-impacting changes in the last {days} days._\n\n[{BUGLIST_LABEL}]({link})",
        html=(
            f"<p><em>No user-impacting changes in the last {days} days.</em></p>"
            f'<p><a href="{escape_html(link)}">{BUGLIST_LABEL}</a></p>'
        ),
    )
