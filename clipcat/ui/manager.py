import logging
from clipcat.config.rate_control import format_bps_human, format_size_human
from clipcat.infrastructure.event_bus import EventBus
from clipcat.ui.state import UIState
from clipcat.domain.events import (
    AnalysisStarted, ConversionReset, EncodeAttemptStarted,
    EncodeProgressUpdated, JobCompleted, JobFailed, JobStarted,
)

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self.logger = logging.getLogger(__name__)
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(AnalysisStarted, self.on_analysis_started)
        self.bus.subscribe(EncodeAttemptStarted, self.on_encode_attempt)
        self.bus.subscribe(EncodeProgressUpdated, self.on_encode_progress)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(ConversionReset, self.on_reset)

    def on_job_started(self, event: JobStarted):
        self.state.begin_job(event.job.id, event.job.source.name)
        self.state.add_message(f"Job {event.job.id}: {event.job.source.name}")

    def on_analysis_started(self, event: AnalysisStarted):
        self.state.set_analyzing()

    def on_encode_attempt(self, event: EncodeAttemptStarted):
        self.state.set_encoding(event.attempt, event.max_attempts, event.video_bitrate_bps)
        self.state.add_message(
            f"Attempt {event.attempt}/{event.max_attempts} at {format_bps_human(event.video_bitrate_bps)}"
        )

    def on_encode_progress(self, event: EncodeProgressUpdated):
        self.state.set_progress(event.progress_percent)

    def on_job_completed(self, event: JobCompleted):
        self.state.set_done(event.artifact, event.size_bytes)
        self.state.add_message(f"Done: {format_size_human(event.size_bytes)}")

    def on_job_failed(self, event: JobFailed):
        self.logger.debug(f"UI: job {event.job.id} failed: {event.error_message}")
        self.state.set_error(event.error_message)
        self.state.add_message(f"Error: {event.error_message}")

    def on_reset(self, event: ConversionReset):
        self.state.reset()
        self.state.add_message("Cancelled")
