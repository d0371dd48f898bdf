"""
Multi-source candidate collection.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from shipreport.connectors.bugzilla_client import BugzillaClient
from shipreport.core.logging import get_logger
from shipreport.domain.bug import Bug, ProductComponent
from shipreport.services.progress import ProgressHooks
from shipreport.services.qualification import partition_restricted

logger = get_logger(__name__)


@dataclass
class CandidateCollection:
    """Raw per-source results plus the deduplicated, partitioned union."""

    union: list[Bug] = field(default_factory=list)
    candidates: list[Bug] = field(default_factory=list)
    restricted: list[Bug] = field(default_factory=list)
    by_components: list[Bug] = field(default_factory=list)
    by_whiteboards: list[Bug] = field(default_factory=list)
    by_assignees: list[Bug] = field(default_factory=list)
    by_ids: list[Bug] = field(default_factory=list)
    metabug_children: list[int] = field(default_factory=list)

    def count_by_source(self) -> dict[str, int]:
        return {
            "components": len(self.by_components),
            "whiteboards": len(self.by_whiteboards),
            "assignees": len(self.by_assignees),
            "metabug_children": len(self.metabug_children),
            "ids": len(self.by_ids),
            "union": len(self.union),
            "restricted": len(self.restricted),
            "candidates": len(self.candidates),
        }


def dedupe_bugs(*sources: Sequence[Bug]) -> list[Bug]:
    """Concatenate sources in the given order, keeping the first bug per id."""
    seen: set[int] = set()
    union: list[Bug] = []
    for source in sources:
        for bug in source:
            if bug.id in seen:
                continue
            seen.add(bug.id)
            union.append(bug)
    return union


def _sample(bugs: Sequence[Bug], n: int = 8) -> str:
    return ", ".join(str(bug.id) for bug in bugs[:n])


async def collect_candidates(
    client: BugzillaClient,
    hooks: ProgressHooks,
    since_iso: str,
    components: Sequence[ProductComponent] = (),
    whiteboards: Sequence[str] = (),
    metabugs: Sequence[int] = (),
    assignees: Sequence[str] = (),
) -> CandidateCollection:
    """
    Query every configured Bugzilla source and merge the results.

    The selector queries run concurrently, but results are merged in the
    fixed order components, whiteboards, assignees, metabug children, so the
    copy kept for a duplicated id never depends on response timing.
    Restricted bugs are split off before anything is qualified.
    """
    metabug_children, by_components, by_whiteboards, by_assignees = await asyncio.gather(
        client.fetch_metabug_children(metabugs, hooks),
        client.fetch_bugs_by_components(components, since_iso),
        client.fetch_bugs_by_whiteboards(whiteboards, since_iso, hooks),
        client.fetch_bugs_by_assignees(assignees, since_iso),
    )

    hooks.debug(
        f"source counts → metabug children: {len(metabug_children)}, "
        f"byComponents: {len(by_components)}, byWhiteboards: {len(by_whiteboards)}, "
        f"byAssignees: {len(by_assignees)}"
    )
    for label, bugs in (
        ("byComponents", by_components),
        ("byWhiteboards", by_whiteboards),
        ("byAssignees", by_assignees),
    ):
        if bugs:
            hooks.debug(f"{label} sample IDs: {_sample(bugs)}")

    by_ids = await client.fetch_bugs_by_ids(metabug_children)
    hooks.debug(f"byIds count: {len(by_ids)} (from metabug children)")

    union = dedupe_bugs(by_components, by_whiteboards, by_assignees, by_ids)
    restricted, candidates = partition_restricted(union)

    hooks.debug(f"union candidates: {len(union)}")
    restricted_sample = f" (sample: {_sample(restricted, 6)})" if restricted else ""
    hooks.debug(f"security-restricted removed: {len(restricted)}{restricted_sample}")
    hooks.debug(f"candidates after security filter: {len(candidates)}")
    hooks.info(f"Candidates after initial query: {len(candidates)}")

    return CandidateCollection(
        union=union,
        candidates=candidates,
        restricted=restricted,
        by_components=list(by_components),
        by_whiteboards=list(by_whiteboards),
        by_assignees=list(by_assignees),
        by_ids=by_ids,
        metabug_children=list(metabug_children),
    )
