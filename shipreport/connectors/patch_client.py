"""
Commit patch loader.

Finds the landing comment a bot posts on a fixed bug, extracts the GitHub
commit links from it and downloads each commit as a ``.patch`` file.
"""

import re
import xml.etree.ElementTree as ET
from typing import Any, Optional

import httpx

from shipreport.core.config import settings
from shipreport.core.constants import DEFAULT_BUGZILLA_HOST
from shipreport.core.exceptions import ExternalServiceError
from shipreport.core.logging import get_logger
from shipreport.connectors.base_client import BaseHttpClient
from shipreport.domain.github import CommitPatch
from shipreport.repositories.cache_repo import InMemoryResponseCache

logger = get_logger(__name__)

LANDING_BOT = "pulsebot"
COMMIT_URL_RE = re.compile(
    r"https?://github\.com/[\w.-]+/[\w.-]+/commit/[0-9a-f]{7,40}",
    re.IGNORECASE,
)
SUBJECT_RE = re.compile(r"^Subject:\s*(?:\[PATCH\]\s*)?(.*)$", re.IGNORECASE | re.MULTILINE)
PATCH_ACCEPT = "text/x-patch,text/plain;q=0.9"


def last_landing_comment(xml_text: str) -> Optional[str]:
    """Text of the last comment written by the landing bot, if any."""
    root = ET.fromstring(xml_text)
    texts = [
        desc.findtext("thetext") or ""
        for desc in root.iter("long_desc")
        if (desc.findtext("who") or "").strip().lower() == LANDING_BOT
    ]
    return texts[-1] if texts else None


def extract_commit_urls(text: str) -> list[str]:
    urls: dict[str, None] = {}
    for match in COMMIT_URL_RE.findall(text or ""):
        urls.setdefault(match.strip(), None)
    return list(urls)


def parse_patch_message(patch: str) -> str:
    """Commit subject from a ``git format-patch`` body, else its first line."""
    match = SUBJECT_RE.search(patch)
    if match and match.group(1):
        return match.group(1).strip()
    return patch.splitlines()[0].strip() if patch else ""


class PatchClient(BaseHttpClient):
    """Loads landed-commit patches referenced from a bug."""

    def __init__(
        self,
        host: Optional[str] = None,
        cache: Optional[InMemoryResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        self.host = (host or settings.bugzilla.host or DEFAULT_BUGZILLA_HOST).rstrip("/")
        super().__init__(self.host, cache=cache, transport=transport, **kwargs)

    @property
    def service_name(self) -> str:
        return "Bugzilla"

    def cache_key(self, bug_id: int) -> str:
        return f"{self.host}/{bug_id}.patch"

    async def _download(self, commit_url: str) -> CommitPatch:
        message = f"Commit {commit_url.rsplit('/', 1)[-1]}"
        try:
            response = await self._request(
                "GET",
                httpx.URL(f"{commit_url}.patch"),
                headers={"Accept": PATCH_ACCEPT},
            )
        except ExternalServiceError as e:
            if e.upstream_status is not None:
                error = f"Patch download failed (HTTP {e.upstream_status})"
            else:
                error = f"Patch download error: {e.message}"
            logger.warning("Patch download failed", commit_url=commit_url, error=error)
            return CommitPatch(commit_url=commit_url, message=message, error=error)

        body = response.text
        if not body:
            return CommitPatch(commit_url=commit_url, message=message, error="Patch body empty")
        return CommitPatch(commit_url=commit_url, message=parse_patch_message(body), patch=body)

    async def load_patch_context(self, bug_id: int) -> list[CommitPatch]:
        """
        Patches for the commits that landed a bug.

        Results, including the empty result, are cached per bug. Failures of
        individual patch downloads are recorded on the returned items.

        Raises:
            ExternalServiceError: If the bug XML cannot be fetched
        """
        key = self.cache_key(bug_id)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return [CommitPatch.model_validate(item) for item in cached]

        response = await self._request(
            "GET",
            self.build_url("/show_bug.cgi", {"ctype": "xml", "id": bug_id}),
        )
        comment = last_landing_comment(response.text)
        urls = extract_commit_urls(comment) if comment else []

        patches = [await self._download(url) for url in urls]

        if self.cache is not None:
            await self.cache.set(key, [patch.model_dump() for patch in patches])
        return patches
