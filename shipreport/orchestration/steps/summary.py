"""
Summary steps: empty short-circuit, size limit, summarization and output.
"""

from typing import Optional

from shipreport.core.constants import MAX_BUGS_FOR_SUMMARY, OutputFormat, StepName, SubPhase
from shipreport.core.exceptions import PipelineError
from shipreport.orchestration.context import StatusContext
from shipreport.orchestration.state_machine import Step, StepResult
from shipreport.services.output import (
    FormattedOutput,
    build_empty_summary,
    extract_demo_suggestions,
    format_summary_output,
)
from shipreport.services.summarizer import SummaryRequest


def _apply_output(ctx: StatusContext, formatted: FormattedOutput) -> None:
    ctx.html = formatted.html
    ctx.output = formatted.html if ctx.format == OutputFormat.HTML else formatted.markdown


def handle_empty(ctx: StatusContext) -> Optional[StepResult]:
    """Stop with the "no changes" report when nothing qualified from any source."""
    if ctx.final_bugs or ctx.final_jira_issues:
        return None

    link = ctx.buglist_link_for([])
    ctx.buglist_link = link
    ctx.ids = []
    _apply_output(ctx, build_empty_summary(ctx.days, link))
    ctx.hooks.debug(f"buglist link for manual inspection: {link}")
    return StepResult.halt("nothing qualified")


def limit_openai(ctx: StatusContext) -> Optional[StepResult]:
    ctx.trimmed_count = 0
    ctx.ai_candidates = list(ctx.final_bugs)

    if len(ctx.final_bugs) > MAX_BUGS_FOR_SUMMARY:
        ctx.trimmed_count = len(ctx.final_bugs) - MAX_BUGS_FOR_SUMMARY
        ctx.hooks.warn(
            f"Trimming {ctx.trimmed_count} bug(s) before OpenAI call to stay within token limits"
        )
        ctx.ai_candidates = ctx.final_bugs[:MAX_BUGS_FOR_SUMMARY]

    if ctx.ai_candidates:
        ctx.hooks.debug(f"OpenAI candidate IDs: {', '.join(str(bug.id) for bug in ctx.ai_candidates)}")
    return None


async def summarize_openai(ctx: StatusContext) -> Optional[StepResult]:
    ctx.hooks.phase(SubPhase.OPENAI.value)
    request = SummaryRequest(
        bugs=ctx.ai_candidates,
        days=ctx.days,
        voice=ctx.voice,
        audience=ctx.audience,
        jira_issues=ctx.final_jira_issues,
        patch_context=ctx.patch_context,
        github_contributors=ctx.github_contributors,
        group_by_assignee=len(ctx.assignees) > 0,
        single_assignee=len(ctx.assignees) == 1,
        jira_url=ctx.settings.jira.url,
    )
    ctx.summary = await ctx.connectors.openai.summarize(ctx.model, request)
    return None


def format_output(ctx: StatusContext) -> Optional[StepResult]:
    if ctx.summary is None:
        raise PipelineError("No summary to format", step=StepName.FORMAT_OUTPUT.value)

    demo = extract_demo_suggestions(ctx.summary.assessments)
    link = ctx.buglist_link_for(ctx.ids)
    ctx.buglist_link = link
    _apply_output(ctx, format_summary_output(ctx.summary.summary_md, demo, ctx.trimmed_count, link))
    return None


handle_empty_step = Step(name=StepName.HANDLE_EMPTY, run=handle_empty)
limit_openai_step = Step(name=StepName.LIMIT_OPENAI, run=limit_openai)
summarize_openai_step = Step(name=StepName.SUMMARIZE_OPENAI, run=summarize_openai)
format_output_step = Step(name=StepName.FORMAT_OUTPUT, run=format_output)
