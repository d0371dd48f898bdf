"""
Progress reporting for pipeline runs.

Steps and connectors report through a ``ProgressHooks`` instance. Every
message is also written to the structured log; whether debug diagnostics
reach the caller is decided in one place, ``ProgressHooks.debug``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from shipreport.core.constants import EventKind
from shipreport.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ProgressEvent:
    """A single progress event, serialized as one NDJSON line."""

    kind: EventKind
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"kind": self.kind.value, **self.data}

    def to_json(self) -> str:
        """Convert to a JSON line (without the trailing newline)."""
        return json.dumps(self.to_dict(), default=str)


EventSink = Callable[[ProgressEvent], None]


class ProgressHooks:
    """
    Progress sink for one run.

    Args:
        debug_enabled: Forward debug diagnostics to the caller as ``[debug]`` info events
        sink: Receives every event; None discards them after logging
    """

    def __init__(self, debug_enabled: bool = False, sink: Optional[EventSink] = None) -> None:
        self.debug_enabled = debug_enabled
        self._sink = sink

    def emit(self, kind: EventKind, **data: Any) -> None:
        if self._sink is not None:
            self._sink(ProgressEvent(kind=kind, data=data))

    def info(self, msg: str) -> None:
        logger.info(msg)
        self.emit(EventKind.INFO, msg=msg)

    def warn(self, msg: str) -> None:
        logger.warning(msg)
        self.emit(EventKind.WARN, msg=msg)

    def debug(self, msg: str) -> None:
        logger.debug(msg)
        if self.debug_enabled:
            self.emit(EventKind.INFO, msg=f"[debug] {msg}")

    def phase(self, name: str, **meta: Any) -> None:
        self.emit(EventKind.PHASE, name=name, **meta)

    def progress(self, name: str, current: int, total: Optional[int] = None) -> None:
        self.emit(EventKind.PROGRESS, phase=name, current=current, total=total)


class RecordingHooks(ProgressHooks):
    """Hooks that keep every event, used by the paged JSON endpoints."""

    def __init__(self, debug_enabled: bool = False) -> None:
        super().__init__(debug_enabled=debug_enabled, sink=self._record)
        self.events: list[ProgressEvent] = []

    def _record(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def logs(self) -> list[dict[str, Any]]:
        """Info and warning messages in emission order."""
        return [
            event.to_dict()
            for event in self.events
            if event.kind in (EventKind.INFO, EventKind.WARN)
        ]
