from pathlib import Path

import pytest

from clipcat.infrastructure.event_bus import EventBus
from clipcat.ui.state import ConversionStatus, UIState
from clipcat.ui.manager import UIManager
from clipcat.domain.events import (
    AnalysisStarted,
    ConversionReset,
    EncodeAttemptStarted,
    EncodeProgressUpdated,
    JobCompleted,
    JobFailed,
    JobStarted,
)
from clipcat.domain.models import Job, OutputArtifact
from clipcat.pipeline.controller import ConversionController


def _job(job_id=1):
    return Job(id=job_id, source=Path("/videos/holiday.mp4"))


def test_ui_manager_updates_state_on_events():
    bus = EventBus()
    state = UIState()
    UIManager(bus, state)
    job = _job()

    bus.publish(JobStarted(job=job))
    assert state.job_id == 1
    assert state.source_name == "holiday.mp4"

    bus.publish(AnalysisStarted(job=job))
    assert state.status == ConversionStatus.ANALYZING

    bus.publish(EncodeAttemptStarted(job=job, attempt=1, max_attempts=5, video_bitrate_bps=3_764_000))
    assert state.status == ConversionStatus.ENCODING
    assert state.video_bitrate_bps == 3_764_000

    bus.publish(EncodeProgressUpdated(job=job, attempt=1, progress_percent=42.0))
    assert state.progress_percent == 42.0

    artifact = OutputArtifact(1, b"mp4", size_bytes=9_000_000)
    bus.publish(JobCompleted(job=job, artifact=artifact, size_bytes=9_000_000))
    assert state.status == ConversionStatus.DONE
    assert state.artifact is artifact
    assert state.completed_count == 1

    messages = list(state.recent_messages)
    assert messages[0] == "Done: 9 MB"
    assert "Attempt 1/5 at 3.764 Mbps" in messages
    assert "Job 1: holiday.mp4" in messages


def test_ui_manager_job_failed():
    bus = EventBus()
    state = UIState()
    UIManager(bus, state)

    bus.publish(JobFailed(job=_job(), error_message="No video track found"))

    assert state.status == ConversionStatus.ERROR
    assert state.error_message == "No video track found"
    assert state.recent_messages[0] == "Error: No video track found"


def test_ui_manager_reset():
    bus = EventBus()
    state = UIState()
    UIManager(bus, state)

    bus.publish(EncodeAttemptStarted(job=_job(), attempt=2, max_attempts=5, video_bitrate_bps=1_000_000))
    bus.publish(ConversionReset())

    assert state.status == ConversionStatus.IDLE
    assert state.attempt == 0
    assert state.recent_messages[0] == "Cancelled"


@pytest.mark.asyncio
async def test_ui_state_follows_controller(sample_config, make_analyzer, make_engine, source_video):
    bus = EventBus()
    state = UIState()
    UIManager(bus, state)
    controller = ConversionController(sample_config, bus, make_analyzer(), make_engine(size_fn=lambda plan: 8_000_000))

    job = await controller.convert(source_video, "0:00", "0:20")

    assert state.status == ConversionStatus.DONE
    assert state.job_id == job.id
    assert state.artifact is controller.artifact
    assert state.size_bytes == 8_000_000

    failed = await controller.convert(source_video, "0:20", "0:10")

    assert state.status == ConversionStatus.ERROR
    assert state.job_id == failed.id
    assert state.artifact is None
