"""Domain events for the conversion controller.

Events represent state changes that flow through the EventBus, decoupling the
controller from the UI layer. Only the job that is current when an event is
published may publish it; superseded jobs stay silent.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pydantic import BaseModel, ConfigDict
from .models import Job, OutputArtifact


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)


class JobEvent(Event):
    """Base class for events related to a specific conversion job."""

    job: Job


class JobStarted(JobEvent):
    """Emitted when a new job supersedes whatever ran before it."""

    pass


class AnalysisStarted(JobEvent):
    """Emitted before the source is handed to the media analyzer."""

    pass


class EncodeAttemptStarted(JobEvent):
    """Emitted before each transcode engine call."""

    attempt: int
    max_attempts: int
    video_bitrate_bps: int


class EncodeProgressUpdated(JobEvent):
    """Emitted periodically as the engine reports progress."""

    attempt: int
    progress_percent: float


class JobCompleted(JobEvent):
    """Emitted when an attempt fits the budget; carries the live artifact."""

    artifact: OutputArtifact
    size_bytes: int


class JobFailed(JobEvent):
    """Emitted once when a job ends with an error."""

    error_message: str


class ConversionReset(Event):
    """Emitted when the active job is cancelled without a replacement."""

    pass
