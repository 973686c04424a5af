"""Simulation emitters — where structured engine events go."""

import logging
from typing import List, Optional, Protocol

from worldgen_kernel.models.events import LogEvent, SimulationEvent

logger = logging.getLogger(__name__)


class SimulationEmitter(Protocol):
    def emit(self, event: SimulationEvent) -> None:
        ...


class NullEmitter:
    """Discards every event."""

    def emit(self, event: SimulationEvent) -> None:
        pass


class RecordingEmitter:
    """Keeps events in memory, in order; used by the API and by tests."""

    def __init__(self, limit: Optional[int] = None):
        self.events: List[SimulationEvent] = []
        self.limit = limit

    def emit(self, event: SimulationEvent) -> None:
        self.events.append(event)
        if self.limit is not None and len(self.events) > self.limit:
            del self.events[0]

    def of_type(self, event_type: str) -> List[SimulationEvent]:
        return [e for e in self.events if e.type == event_type]

    def since(self, index: int) -> List[dict]:
        return [e.model_dump(mode="json") for e in self.events[index:]]


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingEmitter:
    """
    Renders events to the standard logging tree.
    LogEvents are skipped unless include_log_events is set; the engine already
    writes them through its own logger.
    """

    def __init__(self, log: Optional[logging.Logger] = None, include_log_events: bool = False):
        self.log = log or logger
        self.include_log_events = include_log_events

    def emit(self, event: SimulationEvent) -> None:
        if isinstance(event, LogEvent):
            if self.include_log_events:
                self.log.log(_LEVELS[event.level], event.message)
            return
        level = logging.ERROR if event.type == "error" else logging.INFO
        self.log.log(level, "%s %s", event.type, event.model_dump_json(exclude={"type"}))
