"""
Status generation service.

Exposes the full run (``generate_status`` / ``oneshot`` / ``finalize``) and
the paged protocol used by clients that drive qualification themselves:
``discover`` once, ``qualify_page`` until the cursor runs out, then
``finalize`` with the collected ids.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from shipreport.core.config import Settings
from shipreport.core.constants import DEFAULT_PAGE_SIZE, STEP_PHASE_NAMES
from shipreport.core.exceptions import InvalidRequestError, MissingCredentialsError, PipelineError
from shipreport.core.logging import get_logger
from shipreport.domain.bug import Bug
from shipreport.orchestration.context import Connectors, StatusContext, StatusParams
from shipreport.orchestration.recipe import build_status_recipe
from shipreport.orchestration.state_machine import Step, StepSnapshot, run_recipe
from shipreport.orchestration.steps import collect_candidates_step, log_window_step
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.progress import ProgressHooks
from shipreport.services.qualification import qualifies_by_history

logger = get_logger(__name__)


@dataclass
class StatusReport:
    """Rendered report of a completed run."""

    output: str
    html: str
    ids: list[int] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)


@dataclass
class DiscoverResult:
    since_iso: str
    candidates: list[Bug] = field(default_factory=list)


@dataclass
class PageResult:
    qualified_ids: list[int]
    next_cursor: Optional[int]
    total: int


def page_bounds(total: int, cursor: float, page_size: float) -> tuple[int, int]:
    """
    Slice ``[start, end)`` for a cursor.

    Fractional inputs are truncated; a non-finite cursor reads as 0 and a
    non-finite page size as 1.
    """
    size = max(1, int(page_size) if math.isfinite(page_size) else 1)
    start = max(0, int(cursor) if math.isfinite(cursor) else 0)
    return start, min(total, start + size)


def _log_transition(snapshot: StepSnapshot, _context: Any) -> None:
    logger.debug("Step transition", step=str(snapshot.name), status=snapshot.status.value)


class StatusService:
    """
    Runs status recipes against the configured upstreams.

    Upstream clients are created per run and closed when it ends; the
    response cache is shared across runs.
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[InMemoryResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            settings: Application settings
            cache: Shared response cache
            transport: httpx transport override, used by tests
        """
        self.settings = settings
        self.cache = cache
        self.transport = transport

    def _check_credentials(self, need_openai: bool = True) -> None:
        missing = self.settings.missing_credentials(need_openai=need_openai)
        if missing:
            raise MissingCredentialsError(missing)

    def _context(self, params: StatusParams, hooks: ProgressHooks) -> StatusContext:
        connectors = Connectors.from_settings(self.settings, cache=self.cache, transport=self.transport)
        if params.has_jira_inputs and connectors.jira is None:
            hooks.warn("Jira credentials not configured; skipping Jira sources")
        return StatusContext.create(params, self.settings, hooks, connectors)

    async def _run(self, steps: Sequence[Step[StatusContext]], ctx: StatusContext) -> None:
        logger.info("Running recipe", steps=[str(step.name.value) for step in steps])
        try:
            await run_recipe(
                list(steps),
                ctx,
                on_transition=_log_transition,
                phase_names=STEP_PHASE_NAMES,
                on_phase=lambda label, meta: ctx.hooks.phase(label, **(meta or {})),
            )
        finally:
            await ctx.connectors.close()

    # =========================================================================
    # Full runs
    # =========================================================================

    async def generate_status(
        self,
        params: StatusParams,
        hooks: Optional[ProgressHooks] = None,
    ) -> StatusReport:
        """
        Run the recipe matching ``params`` and return the rendered report.

        Pre-qualified ids skip discovery; otherwise the discovery recipe
        runs over every requested source.

        Raises:
            MissingCredentialsError: Before any upstream call when keys are unset
            PipelineError: If the recipe finished without output
        """
        self._check_credentials()
        hooks = hooks or ProgressHooks(debug_enabled=params.debug)
        ctx = self._context(params, hooks)
        await self._run(build_status_recipe(ctx), ctx)

        if ctx.output is None:
            raise PipelineError("Status run produced no output")

        stats = {
            "trimmed_count": ctx.trimmed_count,
            "candidates": len(ctx.candidates),
            "restricted": len(ctx.collection.restricted) if ctx.collection else 0,
            "qualified": len(ctx.final_bugs),
            "jira_qualified": len(ctx.final_jira_issues),
            "github_contributors": len(ctx.github_contributors),
            "days": ctx.days,
            "since_iso": ctx.since_iso,
        }
        logger.info("Status run complete", **stats)
        return StatusReport(output=ctx.output, html=ctx.html or "", ids=list(ctx.ids), stats=stats)

    async def oneshot(
        self,
        params: StatusParams,
        hooks: Optional[ProgressHooks] = None,
    ) -> StatusReport:
        """Full run from the given filters in a single call."""
        if not (params.ids or params.has_bugzilla_filters or params.has_jira_inputs):
            raise InvalidRequestError(
                "Provide at least one of components, whiteboards, metabugs, assignees, ids, jiraJql or jiraProjects"
            )
        return await self.generate_status(params, hooks)

    async def finalize(
        self,
        params: StatusParams,
        hooks: Optional[ProgressHooks] = None,
    ) -> StatusReport:
        """Summarize ids qualified through ``qualify_page``."""
        if not params.ids:
            raise InvalidRequestError("finalize requires at least one id", field="ids")
        return await self.generate_status(params, hooks)

    # =========================================================================
    # Paged protocol
    # =========================================================================

    async def discover(
        self,
        params: StatusParams,
        hooks: Optional[ProgressHooks] = None,
    ) -> DiscoverResult:
        """Collect eligible candidates without checking their histories."""
        self._check_credentials(need_openai=False)
        hooks = hooks or ProgressHooks(debug_enabled=params.debug)
        ctx = self._context(params, hooks)
        await self._run([log_window_step, collect_candidates_step], ctx)

        hooks.info(f"Bugzilla Candidates: {len(ctx.candidates)}")
        if ctx.collection is not None:
            logger.debug("Discover counts", **ctx.collection.count_by_source())
        return DiscoverResult(since_iso=ctx.since_iso, candidates=ctx.candidates)

    async def qualify_page(
        self,
        since_iso: str,
        candidates: Sequence[int],
        cursor: float = 0,
        page_size: float = DEFAULT_PAGE_SIZE,
        hooks: Optional[ProgressHooks] = None,
    ) -> PageResult:
        """
        Qualify one slice of the candidate id list.

        Histories are fetched for the slice only. ``next_cursor`` is None
        once the slice reaches the end of ``candidates``.
        """
        self._check_credentials(need_openai=False)
        hooks = hooks or ProgressHooks()
        total = len(candidates)
        start, end = page_bounds(total, cursor, page_size)
        page = list(candidates[start:end])

        connectors = Connectors.from_settings(self.settings, cache=self.cache, transport=self.transport)
        try:
            histories = await connectors.bugzilla.fetch_histories(page, hooks)
        finally:
            await connectors.close()

        by_id = {history.id: history for history in histories}
        qualified = [bug_id for bug_id in page if qualifies_by_history(by_id.get(bug_id), since_iso)]
        hooks.debug(f"page qualified={len(qualified)} (cursor {start}→{end}/{total})")

        return PageResult(
            qualified_ids=qualified,
            next_cursor=end if end < total else None,
            total=total,
        )
