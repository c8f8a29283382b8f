"""Adaptive target-size conversion controller.

Runs one job per user request: validate the trim input, analyze the source
once, derive an initial encode plan, then encode and correct the video
bitrate until the output fits the byte budget or the attempt ceiling is hit.

Every suspension point (analyzer and engine calls) is a checkpoint. After it
resumes, the job compares its id with the registry; a mismatch means a newer
job has started, so the outcome is discarded, any produced buffer released,
and nothing is published.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol, TypeVar
from clipcat.config.models import AppConfig
from clipcat.config.rate_control import format_bps_human
from clipcat.domain.errors import ClipCatError, ConvergenceError
from clipcat.domain.events import (
    AnalysisStarted,
    ConversionReset,
    EncodeAttemptStarted,
    EncodeProgressUpdated,
    JobCompleted,
    JobFailed,
    JobStarted,
)
from clipcat.domain.models import AnalysisResult, EncodePlan, EncodeResult, Job, JobState, OutputArtifact, TrimWindow
from clipcat.infrastructure.event_bus import EventBus
from clipcat.pipeline.artifacts import ArtifactSlot
from clipcat.pipeline.jobs import Checkpoint, CheckpointResult, JobRegistry
from clipcat.pipeline.planner import compute_budget, derive_plan, next_video_bitrate
from clipcat.pipeline.trim import parse_trim_window

T = TypeVar("T")


class MediaAnalyzer(Protocol):
    async def analyze(self, source: Path) -> AnalysisResult: ...


class TranscodeEngine(Protocol):
    async def encode(
        self,
        source: Path,
        trim_window: TrimWindow,
        plan: EncodePlan,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> EncodeResult: ...


class ConversionController:
    """Trim + compress controller with cooperative supersession.

    Args:
        config: AppConfig with budget, audio, convergence and scaling settings.
        event_bus: EventBus for publishing job lifecycle events to the UI.
        analyzer: MediaAnalyzer reporting dimensions, fps and audio presence.
        engine: TranscodeEngine producing encoded buffers.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        analyzer: MediaAnalyzer,
        engine: TranscodeEngine,
    ):
        self.config = config
        self.event_bus = event_bus
        self.analyzer = analyzer
        self.engine = engine
        self.registry = JobRegistry()
        self.artifacts = ArtifactSlot()
        self.logger = logging.getLogger(__name__)
        self._active_job: Optional[Job] = None

    @property
    def artifact(self) -> Optional[OutputArtifact]:
        return self.artifacts.current

    def start_conversion(self, source: Path, start_text: Optional[str], end_text: Optional[str]) -> "asyncio.Task[Job]":
        """Supersedes the current job and schedules a new one on the running loop."""
        loop = asyncio.get_running_loop()
        job = self._begin_job(source)
        return loop.create_task(self._run_job(job, start_text, end_text))

    async def convert(self, source: Path, start_text: Optional[str], end_text: Optional[str]) -> Job:
        """Same as start_conversion, awaited inline."""
        job = self._begin_job(source)
        return await self._run_job(job, start_text, end_text)

    def cancel_current(self) -> None:
        """Supersedes the active job without starting a replacement."""
        self._supersede_active()
        self.registry.begin_job()
        self.artifacts.release()
        self.event_bus.publish(ConversionReset())

    async def aclose(self) -> None:
        self._supersede_active()
        self.registry.begin_job()
        self.artifacts.close()

    def _supersede_active(self) -> None:
        previous = self._active_job
        if previous is not None and not previous.is_terminal:
            previous.superseded = True
            self.logger.info(f"JOB_SUPERSEDED: id={previous.id} state={previous.state.value}")
        self._active_job = None

    def _begin_job(self, source: Path) -> Job:
        self._supersede_active()
        job = Job(id=self.registry.begin_job(), source=Path(source))
        self._active_job = job
        # Prior output is discarded as soon as a new request starts
        self.artifacts.release()
        self.logger.info(f"JOB_START: id={job.id} source={job.source.name}")
        self.event_bus.publish(JobStarted(job=job))
        return job

    def _is_current(self, job: Job) -> bool:
        if self.registry.is_current(job.id):
            return True
        job.superseded = True
        return False

    async def _checkpoint(self, job: Job, operation: Awaitable[T]) -> CheckpointResult[T]:
        """Awaits one suspension point and classifies the outcome."""
        try:
            value = await operation
        except ClipCatError as e:
            if not self._is_current(job):
                self.logger.debug(f"JOB_STALE: id={job.id} swallowed error: {e}")
                return CheckpointResult(Checkpoint.STALE)
            return CheckpointResult(Checkpoint.ERROR, error=e)
        except Exception as e:
            if not self._is_current(job):
                self.logger.debug(f"JOB_STALE: id={job.id} swallowed error: {e!r}")
                return CheckpointResult(Checkpoint.STALE)
            self.logger.exception(f"Unexpected error in job {job.id}")
            return CheckpointResult(Checkpoint.ERROR, error=e)

        if not self._is_current(job):
            if isinstance(value, EncodeResult):
                value.release()
            self.logger.info(f"JOB_STALE: id={job.id} result discarded")
            return CheckpointResult(Checkpoint.STALE)
        return CheckpointResult(Checkpoint.PROCEED, value=value)

    def _fail(self, job: Job, error: BaseException) -> Job:
        if not self._is_current(job):
            return job
        message = str(error) or error.__class__.__name__
        job.state = JobState.FAILED
        job.error_message = message
        self.artifacts.release()
        self.logger.error(f"JOB_FAILED: id={job.id} {error.__class__.__name__}: {message}")
        self.event_bus.publish(JobFailed(job=job, error_message=message))
        return job

    def _complete(self, job: Job, result: EncodeResult) -> Job:
        if not self._is_current(job):
            result.release()
            return job
        artifact = self.artifacts.swap(result)
        job.state = JobState.DONE
        job.output_size_bytes = artifact.size_bytes
        self.logger.info(
            f"JOB_DONE: id={job.id} size={artifact.size_bytes} attempts={job.attempt} "
            f"bitrate={format_bps_human(job.bitrate_history[-1])}"
        )
        self.event_bus.publish(JobCompleted(job=job, artifact=artifact, size_bytes=artifact.size_bytes))
        return job

    def _progress_callback(self, job: Job, attempt: int) -> Callable[[float], None]:
        def _on_progress(percent: float) -> None:
            if self.registry.is_current(job.id):
                self.event_bus.publish(
                    EncodeProgressUpdated(job=job, attempt=attempt, progress_percent=percent)
                )
        return _on_progress

    async def _run_job(self, job: Job, start_text: Optional[str], end_text: Optional[str]) -> Job:
        # A task scheduled by start_conversion may first run after a newer job began
        if not self._is_current(job):
            return job
        try:
            job.trim_window = parse_trim_window(start_text, end_text)
        except ClipCatError as e:
            return self._fail(job, e)
        trim_window = job.trim_window

        job.state = JobState.ANALYZING
        self.event_bus.publish(AnalysisStarted(job=job))
        checkpoint = await self._checkpoint(job, self.analyzer.analyze(job.source))
        if checkpoint.outcome is Checkpoint.STALE:
            return job
        if checkpoint.outcome is Checkpoint.ERROR:
            return self._fail(job, checkpoint.error)
        analysis = checkpoint.value

        if analysis.duration_seconds and trim_window.end_seconds > analysis.duration_seconds:
            self.logger.warning(
                f"Trim end {trim_window.end_seconds:.2f}s exceeds source duration "
                f"{analysis.duration_seconds:.2f}s for {job.source.name}"
            )

        try:
            budget = compute_budget(analysis, trim_window, self.config)
            plan = derive_plan(analysis, trim_window, self.config)
        except ClipCatError as e:
            return self._fail(job, e)
        except Exception as e:
            self.logger.exception(f"Unexpected error planning job {job.id}")
            return self._fail(job, e)
        self.logger.info(
            f"PLAN: id={job.id} duration={budget.duration_seconds:.2f}s video_budget={budget.video_bytes} "
            f"audio_budget={budget.audio_bytes} overhead={budget.overhead_bytes} "
            f"bitrate={plan.video_bitrate_bps} target_w={plan.target_width} target_h={plan.target_height}"
        )

        target_bytes = self.config.budget.target_bytes
        max_attempts = self.config.convergence.max_attempts
        last_size = 0
        for attempt in range(1, max_attempts + 1):
            if not self._is_current(job):
                self.logger.info(f"JOB_STALE: id={job.id} before attempt {attempt}")
                return job

            job.state = JobState.ENCODING
            job.attempt = attempt
            job.bitrate_history.append(plan.video_bitrate_bps)
            self.logger.info(
                f"ATTEMPT: id={job.id} {attempt}/{max_attempts} bitrate={format_bps_human(plan.video_bitrate_bps)}"
            )
            self.event_bus.publish(EncodeAttemptStarted(
                job=job,
                attempt=attempt,
                max_attempts=max_attempts,
                video_bitrate_bps=plan.video_bitrate_bps,
            ))

            checkpoint = await self._checkpoint(job, self.engine.encode(
                job.source,
                trim_window,
                plan,
                on_progress=self._progress_callback(job, attempt),
            ))
            if checkpoint.outcome is Checkpoint.STALE:
                return job
            if checkpoint.outcome is Checkpoint.ERROR:
                return self._fail(job, checkpoint.error)
            result = checkpoint.value

            if result.size_bytes <= target_bytes:
                return self._complete(job, result)

            last_size = result.size_bytes
            result.release()
            corrected = next_video_bitrate(
                plan.video_bitrate_bps,
                result.size_bytes,
                target_bytes,
                self.config.convergence,
            )
            self.logger.info(
                f"OVER_BUDGET: id={job.id} attempt={attempt} size={result.size_bytes} target={target_bytes} "
                f"next_bitrate={corrected}"
            )
            plan = plan.model_copy(update={"video_bitrate_bps": corrected})

        return self._fail(job, ConvergenceError(max_attempts, last_size, target_bytes))
