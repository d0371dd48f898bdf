"""
Bugzilla REST connector.
"""

from typing import Any, Optional, Sequence

import httpx

from shipreport.core.concurrency import run_bounded
from shipreport.core.config import settings
from shipreport.core.constants import (
    BUG_FIELDS,
    BUGZILLA_ID_CHUNK_SIZE,
    DEFAULT_BUGZILLA_HOST,
    FIXED_RESOLUTION,
    HISTORY_CONCURRENCY,
    RESOLVED_BUG_STATUSES,
    SubPhase,
)
from shipreport.core.logging import get_logger
from shipreport.connectors.base_client import BaseHttpClient
from shipreport.domain.bug import Bug, BugHistory, ProductComponent
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.progress import ProgressHooks

logger = get_logger(__name__)


def _chunks(items: Sequence[int], size: int) -> list[list[int]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BugzillaClient(BaseHttpClient):
    """
    Client for the Bugzilla ``/rest`` API.

    The API key is sent in the ``X-BUGZILLA-API-KEY`` header so request URLs
    (and therefore cache keys and logs) never contain it.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        cache: Optional[InMemoryResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.bugzilla.api_key
        self.host = (host or settings.bugzilla.host or DEFAULT_BUGZILLA_HOST).rstrip("/")
        super().__init__(f"{self.host}/rest", cache=cache, transport=transport, **kwargs)

    @property
    def service_name(self) -> str:
        return "Bugzilla"

    def _default_headers(self) -> dict[str, str]:
        return {"X-BUGZILLA-API-KEY": self.api_key, "Accept": "application/json"}

    @staticmethod
    def _resolved_filters(since_iso: str) -> dict[str, Any]:
        return {
            "status": list(RESOLVED_BUG_STATUSES),
            "resolution": FIXED_RESOLUTION,
            "chfield": "resolution",
            "chfieldfrom": since_iso,
            "include_fields": ",".join(BUG_FIELDS),
        }

    async def _get_bugs(self, params: dict[str, Any]) -> list[Bug]:
        payload = await self._get_json("/bug", params)
        return [Bug.model_validate(raw) for raw in payload.get("bugs") or []]

    async def fetch_metabug_children(
        self,
        metabug_ids: Sequence[int],
        hooks: Optional[ProgressHooks] = None,
    ) -> list[int]:
        """Union of ``depends_on`` and ``blocks`` for the given tracking bugs."""
        if not metabug_ids:
            return []
        if hooks:
            hooks.info(f"Fetching metabugs: {', '.join(str(i) for i in metabug_ids)}")

        payload = await self._get_json(
            "/bug",
            {"id": ",".join(str(i) for i in metabug_ids), "include_fields": "id,depends_on,blocks"},
        )
        children: dict[int, None] = {}
        for raw in payload.get("bugs") or []:
            for child in (raw.get("depends_on") or []) + (raw.get("blocks") or []):
                children.setdefault(int(child), None)
        return list(children)

    async def fetch_bugs_by_components(
        self,
        pairs: Sequence[ProductComponent],
        since_iso: str,
    ) -> list[Bug]:
        """
        Resolved bugs for product/component selectors.

        A product listed without a component already covers every component
        of that product, so its component-specific selectors are skipped.
        """
        if not pairs:
            return []

        product_only = {
            pair.product.strip()
            for pair in pairs
            if pair.product.strip() and not (pair.component or "").strip()
        }

        results: list[Bug] = []
        seen: set[str] = set()
        for pair in pairs:
            product = pair.product.strip()
            component = (pair.component or "").strip()
            if not product:
                continue
            if component and product in product_only:
                continue
            key = f"{product}:::{component or '*'}"
            if key in seen:
                continue
            seen.add(key)

            params = {"product": product, "component": component or None}
            params.update(self._resolved_filters(since_iso))
            results.extend(await self._get_bugs(params))
        return results

    async def fetch_bugs_by_whiteboards(
        self,
        tags: Sequence[str],
        since_iso: str,
        hooks: Optional[ProgressHooks] = None,
    ) -> list[Bug]:
        """Resolved bugs whose whiteboard contains any of ``tags``."""
        if not tags:
            return []

        if hooks:
            hooks.phase(SubPhase.COLLECT_WHITEBOARDS.value, total=len(tags))

        results: list[Bug] = []
        for index, tag in enumerate(tags, start=1):
            if hooks:
                hooks.progress(SubPhase.COLLECT_WHITEBOARDS.value, index, len(tags))
            params = {"whiteboard": tag, "whiteboard_type": "substring"}
            params.update(self._resolved_filters(since_iso))
            results.extend(await self._get_bugs(params))
        return results

    async def fetch_bugs_by_assignees(
        self,
        assignees: Sequence[str],
        since_iso: str,
    ) -> list[Bug]:
        emails = [email.strip() for email in assignees if email and email.strip()]
        if not emails:
            return []
        params: dict[str, Any] = {"assigned_to": emails}
        params.update(self._resolved_filters(since_iso))
        return await self._get_bugs(params)

    async def fetch_bugs_by_ids(self, ids: Sequence[int]) -> list[Bug]:
        """Fetch bugs in chunks of 300 ids, chunks requested concurrently."""
        if not ids:
            return []

        async def fetch_chunk(chunk: list[int]) -> list[Bug]:
            return await self._get_bugs(
                {"id": ",".join(str(i) for i in chunk), "include_fields": ",".join(BUG_FIELDS)}
            )

        batches = await run_bounded(
            _chunks(ids, BUGZILLA_ID_CHUNK_SIZE),
            fetch_chunk,
            concurrency=HISTORY_CONCURRENCY,
        )
        return [bug for batch in batches for bug in batch]

    async def fetch_history(self, bug_id: int) -> Optional[BugHistory]:
        payload = await self._get_json(f"/bug/{bug_id}/history")
        bugs = (payload or {}).get("bugs") or []
        if not bugs:
            return None
        return BugHistory.model_validate(bugs[0])

    async def fetch_histories(
        self,
        ids: Sequence[int],
        hooks: Optional[ProgressHooks] = None,
    ) -> list[BugHistory]:
        """
        Fetch histories with a bounded pool of workers.

        A failing id is reported and skipped; it never aborts the batch.
        """
        if not ids:
            return []

        hooks = hooks or ProgressHooks()
        total = len(ids)
        hooks.phase(SubPhase.HISTORIES.value, total=total)
        hooks.info(f"History mode: per-ID /rest/bug/<id>/history (concurrency={HISTORY_CONCURRENCY})")

        def skip(bug_id: int, error: Exception) -> None:
            logger.warning("History fetch failed", bug_id=bug_id, error=str(error))
            hooks.warn(f"Skipping history for #{bug_id} ({error})")

        results = await run_bounded(
            list(ids),
            self.fetch_history,
            concurrency=HISTORY_CONCURRENCY,
            on_error=skip,
            on_progress=lambda handled, _: hooks.progress(SubPhase.HISTORIES.value, handled, total),
        )
        return [history for history in results if history is not None]
