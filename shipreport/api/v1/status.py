"""
Status report endpoint.

One POST route serves the four modes of the status contract. Full runs
(``oneshot`` and ``finalize``) can stream progress as NDJSON instead of
returning a single JSON body.
"""

import asyncio
import uuid
from typing import Any, AsyncIterator, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shipreport.api.deps import get_status_service
from shipreport.core.constants import (
    DEFAULT_PAGE_SIZE,
    NDJSON_MEDIA_TYPE,
    STREAM_HEADER,
    EventKind,
    StatusMode,
)
from shipreport.core.exceptions import ShipReportError
from shipreport.core.logging import LogContext, get_logger
from shipreport.orchestration.context import StatusParams, since_iso_for
from shipreport.services.progress import ProgressEvent, ProgressHooks, RecordingHooks
from shipreport.services.status_service import StatusReport, StatusService

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================


class StatusRequest(StatusParams):
    """Body of ``POST /status``; run parameters plus the paging fields."""

    mode: StatusMode = Field(default=StatusMode.ONESHOT, description="Entry point of the status contract")
    since_iso: Optional[str] = Field(default=None, alias="sinceISO", description="Window start from discover")
    cursor: float = Field(default=0, description="Index of the first candidate of the page")
    page_size: float = Field(default=DEFAULT_PAGE_SIZE, alias="pageSize", description="Candidates per page")
    candidates: Optional[list[int]] = Field(default=None, description="Candidate ids from discover")

    @field_validator("candidates", mode="before")
    @classmethod
    def _candidate_ids(cls, v: Any) -> Any:
        if v is None:
            return None
        return [item.get("id") if isinstance(item, dict) else item for item in v]

    def to_params(self) -> StatusParams:
        return StatusParams.model_validate(self.model_dump(include=set(StatusParams.model_fields)))


class CandidateSummary(BaseModel):
    id: int
    last_change_time: str = ""
    product: str = ""
    component: str = ""


class DiscoverResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    since_iso: str = Field(..., alias="sinceISO")
    total: int
    candidates: list[CandidateSummary]
    logs: list[dict[str, Any]] = Field(default_factory=list)


class PageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qualified_ids: list[int] = Field(..., alias="qualifiedIds")
    next_cursor: Optional[int] = Field(default=None, alias="nextCursor")
    total: int
    logs: list[dict[str, Any]] = Field(default_factory=list)


class StatusResponse(BaseModel):
    output: str
    html: str
    ids: list[int]
    stats: dict[str, Any] = Field(default_factory=dict)
    logs: list[dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================


def wants_stream(request: Request) -> bool:
    """NDJSON is requested through the Accept header or the stream header."""
    accept = request.headers.get("accept", "")
    return NDJSON_MEDIA_TYPE in accept or request.headers.get(STREAM_HEADER) == "1"


async def _full_run(
    service: StatusService,
    mode: StatusMode,
    params: StatusParams,
    hooks: ProgressHooks,
) -> StatusReport:
    if mode == StatusMode.FINALIZE:
        return await service.finalize(params, hooks)
    return await service.oneshot(params, hooks)


def stream_status(service: StatusService, mode: StatusMode, params: StatusParams) -> StreamingResponse:
    """
    Run a full status recipe in a background task and stream its events.

    Events are queued by the task and written one JSON object per line. The
    stream ends with ``done`` or ``error``; a client disconnect cancels the
    run.
    """
    queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue()
    hooks = ProgressHooks(debug_enabled=params.debug, sink=queue.put_nowait)
    tracking_id = uuid.uuid4().hex

    async def run() -> None:
        with LogContext(tracking_id=tracking_id, mode=mode.value):
            try:
                report = await _full_run(service, mode, params, hooks)
                hooks.emit(EventKind.DONE, output=report.output, html=report.html, ids=report.ids)
            except ShipReportError as e:
                logger.error("Status stream failed", error_code=e.code, error_message=e.message)
                hooks.emit(EventKind.ERROR, msg=e.client_message, trackingId=tracking_id)
            except Exception as e:
                logger.exception("Unexpected error in status stream", error=str(e))
                hooks.emit(EventKind.ERROR, msg="An unexpected error occurred", trackingId=tracking_id)
            finally:
                queue.put_nowait(None)

    async def generate() -> AsyncIterator[str]:
        task = asyncio.create_task(run())
        try:
            yield ProgressEvent(kind=EventKind.START, data={"mode": mode.value}).to_json() + "\n"
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event.to_json() + "\n"
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(
        generate(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# =============================================================================
# Endpoint
# =============================================================================


@router.post("/status", response_model=None)
async def create_status(
    body: StatusRequest,
    request: Request,
    service: StatusService = Depends(get_status_service),
) -> Union[dict[str, Any], StreamingResponse]:
    """
    Generate a status report or drive the paged qualification protocol.

    Modes:
        discover: eligible candidates and the window start
        page: qualify one slice of the candidates
        finalize: summarize pre-qualified ids
        oneshot: full discovery run (default)
    """
    params = body.to_params()
    logger.info("Status request", mode=body.mode.value, stream=wants_stream(request))

    if body.mode in (StatusMode.ONESHOT, StatusMode.FINALIZE) and wants_stream(request):
        return stream_status(service, body.mode, params)

    hooks = RecordingHooks(debug_enabled=params.debug)

    if body.mode == StatusMode.DISCOVER:
        discovered = await service.discover(params, hooks)
        return DiscoverResponse(
            since_iso=discovered.since_iso,
            total=len(discovered.candidates),
            candidates=[CandidateSummary(**bug.to_candidate()) for bug in discovered.candidates],
            logs=hooks.logs(),
        ).model_dump(by_alias=True)

    if body.mode == StatusMode.PAGE:
        since_iso = body.since_iso
        candidate_ids = body.candidates
        if candidate_ids is None:
            discovered = await service.discover(params, hooks)
            since_iso = since_iso or discovered.since_iso
            candidate_ids = [bug.id for bug in discovered.candidates]
        elif since_iso is None:
            since_iso = since_iso_for(params.resolved_days())
        page = await service.qualify_page(
            since_iso,
            candidate_ids,
            cursor=body.cursor,
            page_size=body.page_size,
            hooks=hooks,
        )
        return PageResponse(
            qualified_ids=page.qualified_ids,
            next_cursor=page.next_cursor,
            total=page.total,
            logs=hooks.logs(),
        ).model_dump(by_alias=True)

    report = await _full_run(service, body.mode, params, hooks)
    return StatusResponse(
        output=report.output,
        html=report.html,
        ids=report.ids,
        stats=report.stats,
        logs=hooks.logs(),
    ).model_dump()
