"""
OpenAI chat completions connector used for impact summaries.
"""

import json
from typing import Any, Optional

import httpx

from shipreport.core.config import settings
from shipreport.core.exceptions import ExternalServiceError, SummarizerError
from shipreport.core.logging import get_logger
from shipreport.connectors.base_client import BaseHttpClient
from shipreport.domain.summary import SummarizerResult
from shipreport.services.summarizer import SummaryRequest, build_messages

logger = get_logger(__name__)


class OpenAIClient(BaseHttpClient):
    """Posts summary prompts to ``/v1/chat/completions`` in JSON mode."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.openai.api_key
        kwargs.setdefault("timeout", float(settings.openai.timeout))
        super().__init__(base_url or settings.openai.base_url, transport=transport, **kwargs)

    @property
    def service_name(self) -> str:
        return "OpenAI"

    def _default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def summarize(self, model: str, request: SummaryRequest) -> SummarizerResult:
        """
        Request assessments and a Markdown summary.

        A reply that is not valid JSON is kept verbatim as the summary with
        no assessments.

        Raises:
            SummarizerError: If the completion request fails
        """
        body = {
            "model": model,
            "response_format": {"type": "json_object"},
            "messages": build_messages(request),
        }

        logger.info(
            "Requesting summary",
            model=model,
            bugs=len(request.bugs),
            jira_issues=len(request.jira_issues),
        )
        try:
            response = await self._request("POST", self.build_url("/v1/chat/completions"), json=body)
        except SummarizerError:
            raise
        except ExternalServiceError as e:
            raise SummarizerError(e.reason, details=e.details) from e

        payload = response.json()
        choices = payload.get("choices") or [{}]
        content = ((choices[0] or {}).get("message") or {}).get("content") or "{}"

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Summarizer returned non-JSON content", length=len(content))
            return SummarizerResult(assessments=[], summary_md=content)

        if not isinstance(parsed, dict):
            return SummarizerResult(assessments=[], summary_md=content)
        return SummarizerResult.model_validate(parsed)
