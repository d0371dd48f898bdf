"""
Bugzilla steps: window logging, candidate collection, history fetch and
history qualification.
"""

import json
from collections import Counter
from typing import Optional

from shipreport.core.constants import StepName
from shipreport.orchestration.context import StatusContext
from shipreport.orchestration.state_machine import Step, StepResult
from shipreport.services.collector import collect_candidates
from shipreport.services.qualification import NO_HISTORY, qualifies_by_history_why

MAX_REASON_EXAMPLES = 6


def _id_list(ids: list[int], limit: int) -> str:
    text = ", ".join(str(i) for i in ids[:limit])
    return f"{text} …" if len(ids) > limit else text


async def fetch_prequalified(ctx: StatusContext) -> Optional[StepResult]:
    ids = list(ctx.params.ids)
    ctx.ids = ids
    ctx.hooks.info(f"Summarizing {len(ids)} pre-qualified bugs…")
    bugs = await ctx.connectors.bugzilla.fetch_bugs_by_ids(ids)
    ctx.final_bugs = bugs
    return None


def log_window(ctx: StatusContext) -> Optional[StepResult]:
    ctx.hooks.info(f"Window: last {ctx.days} days (since {ctx.since_iso})")
    if ctx.whiteboards:
        ctx.hooks.info(f"Whiteboard filters: {', '.join(ctx.whiteboards)}")
    if ctx.components:
        ctx.hooks.info(f"Components: {', '.join(pair.label() for pair in ctx.components)}")
    if ctx.metabugs:
        ctx.hooks.info(f"Metabugs: {', '.join(str(i) for i in ctx.metabugs)}")
    if ctx.assignees:
        ctx.hooks.info(f"Assignees: {', '.join(ctx.assignees)}")
    return None


async def collect(ctx: StatusContext) -> Optional[StepResult]:
    collection = await collect_candidates(
        ctx.connectors.bugzilla,
        ctx.hooks,
        ctx.since_iso,
        components=ctx.components,
        whiteboards=ctx.whiteboards,
        metabugs=ctx.metabugs,
        assignees=ctx.assignees,
    )
    ctx.collection = collection
    ctx.candidates = collection.candidates
    return None


async def fetch_histories(ctx: StatusContext) -> Optional[StepResult]:
    histories = await ctx.connectors.bugzilla.fetch_histories(
        [bug.id for bug in ctx.candidates],
        ctx.hooks,
    )
    ctx.histories = histories
    ctx.by_id_history = {history.id: history for history in histories}

    if ctx.is_debug:
        shown = 0
        for bug in ctx.candidates:
            if shown >= 3:
                break
            history = ctx.by_id_history.get(bug.id)
            if history is None or not history.history:
                ctx.hooks.debug(f"sample history #{bug.id} has no history entries within fetched payload")
                continue
            changes = history.history[0].changes
            if changes:
                sample = json.dumps([change.model_dump() for change in changes[:2]])
                ctx.hooks.debug(f"sample history #{bug.id} first changes: {sample}")
                shown += 1

    if len(histories) == len(ctx.candidates):
        ctx.hooks.debug(f"history coverage: {len(histories)}/{len(ctx.candidates)} (complete)")
    else:
        missing = [bug.id for bug in ctx.candidates if bug.id not in ctx.by_id_history][:12]
        suffix = f" (no history for: {', '.join(str(i) for i in missing)})" if missing else ""
        ctx.hooks.debug(f"history coverage: {len(histories)}/{len(ctx.candidates)}{suffix}")
    return None


def filter_by_history(ctx: StatusContext) -> Optional[StepResult]:
    """Keep candidates whose history shows a done transition in the window."""
    reasons: Counter[str] = Counter()
    examples: dict[str, list[int]] = {}
    final = []

    for bug in ctx.candidates:
        # a candidate whose history lookup failed is absent from the map
        result = qualifies_by_history_why(ctx.by_id_history.get(bug.id), ctx.since_iso)
        if result.ok:
            final.append(bug)
            continue
        why = result.why or NO_HISTORY
        reasons[why] += 1
        sample = examples.setdefault(why, [])
        if len(sample) < MAX_REASON_EXAMPLES:
            sample.append(bug.id)

    if reasons:
        ctx.hooks.debug("non-qualified reasons (top):")
        for why, count in reasons.most_common():
            ids = examples.get(why) or []
            eg = f" (eg: {', '.join(str(i) for i in ids)})" if ids else ""
            ctx.hooks.debug(f"  • {why}: {count}{eg}")

    ctx.final_bugs = final
    ctx.ids = [bug.id for bug in final]
    ctx.hooks.info(f"Qualified bugs: {len(final)}")

    if final:
        ctx.hooks.debug(f"qualified IDs: {_id_list(ctx.ids, 20)}")
    else:
        ctx.hooks.debug(
            "no qualified bugs → check reasons above; also verify statuses/resolution and history window."
        )
    return None


fetch_prequalified_step = Step(name=StepName.FETCH_PREQUALIFIED, run=fetch_prequalified)
log_window_step = Step(name=StepName.LOG_WINDOW, run=log_window)
collect_candidates_step = Step(name=StepName.COLLECT_CANDIDATES, run=collect)
fetch_histories_step = Step(name=StepName.FETCH_HISTORIES, run=fetch_histories)
filter_by_history_step = Step(name=StepName.FILTER_BY_HISTORY, run=filter_by_history)
