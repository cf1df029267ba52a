"""Domain events for the thumbnail batch pipeline.

Events are the tagged records a batch emits while it runs. They flow either
through an event sink to a streaming client (see
`infrastructure/event_sink.py`) or through the EventBus to in-process
subscribers such as the terminal dashboard.

Every stream event carries a ``type`` tag so the JSON form is self-describing:

    log       one narrated line for one job
    progress  full counter snapshot after a job settles
    failed    identifier of one failed job
    complete  final snapshot plus all failed identifiers (exactly one per batch)
"""

from typing import List, Literal
from pydantic import BaseModel, Field
from .models import BatchProgress

LogLevel = Literal["info", "error", "success"]


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class LogEvent(Event):
    """Human-readable narration of one job's progress."""

    type: Literal["log"] = "log"
    message: str
    level: LogLevel = "info"


class ProgressEvent(Event):
    """Aggregate counters after a job settles (a snapshot, never a delta)."""

    type: Literal["progress"] = "progress"
    progress: BatchProgress


class FailedEvent(Event):
    """Emitted once per job that terminated in failure."""

    type: Literal["failed"] = "failed"
    identifier: str


class CompleteEvent(Event):
    """Batch terminal event."""

    type: Literal["complete"] = "complete"
    progress: BatchProgress
    failed_identifiers: List[str] = Field(default_factory=list)
