"""Domain events for the transcoding pipeline.

Events flow through the EventBus from workers to the console reporter, so the
pipeline never writes to the terminal itself.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from pydantic import BaseModel
from .models import TranscodeJob, RunSummary


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a specific transcode job."""

    job: TranscodeJob


class JobStarted(JobEvent):
    """Emitted when a worker begins encoding a job."""

    pass


class JobCompleted(JobEvent):
    """Emitted when a job's output has been fully written."""

    duration_seconds: float = 0.0


class JobFailed(JobEvent):
    """Emitted when a job is aborted; `path` names the offending file."""

    error_message: str
    path: Path


class SpawnFailed(JobEvent):
    """Emitted when no worker could be started for a job."""

    error_message: str


class DiscoveryFinished(Event):
    """Emitted after the directory snapshot has been turned into jobs."""

    directory: Path
    jobs_found: int


class ProcessingFinished(Event):
    """Emitted once every worker has drained."""

    summary: RunSummary
