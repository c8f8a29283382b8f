import asyncio
import pytest
import yaml
from pathlib import Path
from clipcat.config.models import AppConfig
from clipcat.domain.errors import EncodeError
from clipcat.domain.models import AnalysisResult, EncodeResult
from clipcat.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns the default AppConfig (9.8MB budget, 5 attempts)."""
    return AppConfig()

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "clipcat.yaml"

    content = {
        'general': {
            'debug': True,
            'log_path': str(tmp_path / "logs" / "clipcat.log"),
        },
        'budget': {
            'target_bytes': '24MB',
        },
        'audio': {
            'bitrate': '128k',
        },
        'convergence': {
            'max_attempts': 3,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def recorded_events(event_bus):
    """Subscribes to every published event type used by the controller."""
    from clipcat.domain import events as ev

    received = []
    for event_type in (
        ev.JobStarted, ev.AnalysisStarted, ev.EncodeAttemptStarted,
        ev.EncodeProgressUpdated, ev.JobCompleted, ev.JobFailed, ev.ConversionReset,
    ):
        event_bus.subscribe(event_type, received.append)
    return received

# ============================================================================
# Collaborator stubs
# ============================================================================

class StubAnalyzer:
    """Media analyzer returning a fixed result (or raising).

    `gate` (optional asyncio.Event) holds every call until set.
    """

    def __init__(self, result=None, error=None, gate=None):
        self.result = result or AnalysisResult(
            display_width=1920, display_height=1080, estimated_fps=30.0, has_audio=True, duration_seconds=60.0,
        )
        self.error = error
        self.gate = gate
        self.calls = []

    async def analyze(self, source):
        self.calls.append(source)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.result


class StubEngine:
    """Transcode engine whose output size is a function of the plan.

    `gate` (optional asyncio.Event) holds every call until set, which lets
    tests start a second job while the first is mid-encode.
    """

    def __init__(self, size_fn=None, error=None, gate=None, progress=None):
        self.size_fn = size_fn or (lambda plan: 1_000_000)
        self.error = error
        self.gate = gate
        self.progress = progress
        self.plans = []
        self.results = []

    async def encode(self, source, trim_window, plan, on_progress=None):
        self.plans.append(plan)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if on_progress and self.progress is not None:
            for percent in self.progress:
                on_progress(percent)
        result = EncodeResult(b"\x00\x00\x00\x18ftypmp42", size_bytes=self.size_fn(plan))
        self.results.append(result)
        return result


@pytest.fixture
def stub_analyzer():
    return StubAnalyzer()


@pytest.fixture
def stub_engine():
    return StubEngine()


@pytest.fixture
def make_analyzer():
    return StubAnalyzer


@pytest.fixture
def make_engine():
    return StubEngine


@pytest.fixture
def failing_engine():
    return StubEngine(error=EncodeError("ffmpeg exited with code 1"))

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def source_video(tmp_path):
    """Creates a dummy source file (content irrelevant to stubs)."""
    f = tmp_path / "holiday.mp4"
    f.write_bytes(b"dummy video content " * 100)
    return f


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
