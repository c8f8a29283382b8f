from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

class JobState(str, Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    ENCODING = "ENCODING"
    DONE = "DONE"
    FAILED = "FAILED"

TERMINAL_STATES = frozenset({JobState.DONE, JobState.FAILED})

class TrimWindow(BaseModel):
    start_seconds: float = Field(ge=0)
    end_seconds: float

    @model_validator(mode="after")
    def validate_order(self):
        if self.end_seconds <= self.start_seconds:
            raise ValueError("end_seconds must be greater than start_seconds")
        return self

    @property
    def duration(self) -> float:
        return self.end_seconds - self.start_seconds

class AnalysisResult(BaseModel):
    display_width: int = Field(gt=0)
    display_height: int = Field(gt=0)
    estimated_fps: float
    has_audio: bool
    duration_seconds: float = 0.0  # informational only

    @property
    def is_landscape(self) -> bool:
        return self.display_width >= self.display_height

class AudioSpec(BaseModel):
    channel_count: int = 1
    bitrate_bps: int = Field(gt=0)

class EncodePlan(BaseModel):
    video_bitrate_bps: int = Field(gt=0)
    target_width: Optional[int] = Field(default=None, gt=0)
    target_height: Optional[int] = Field(default=None, gt=0)
    audio: Optional[AudioSpec] = None

    @model_validator(mode="after")
    def validate_single_dimension(self):
        # The engine infers the other side from the source aspect ratio
        if self.target_width is not None and self.target_height is not None:
            raise ValueError("Only one of target_width/target_height may be set")
        return self

class EncodeResult:
    """Encoded buffer handed over by the transcode engine.

    The caller owns the buffer; `release()` drops it.
    """

    def __init__(self, data: bytes, size_bytes: Optional[int] = None):
        self._data: Optional[bytes] = data
        self.size_bytes = len(data) if size_bytes is None else size_bytes

    @property
    def data(self) -> Optional[bytes]:
        return self._data

    @property
    def released(self) -> bool:
        return self._data is None

    def release(self) -> None:
        self._data = None

    def take(self) -> bytes:
        """Moves the buffer out of this result."""
        if self._data is None:
            raise RuntimeError("Encode result already released")
        data, self._data = self._data, None
        return data

class OutputArtifact:
    """Playable encoded clip exposed to the UI. Owned by `ArtifactSlot`."""

    def __init__(self, artifact_id: int, data: bytes, size_bytes: Optional[int] = None):
        self.artifact_id = artifact_id
        self.size_bytes = len(data) if size_bytes is None else size_bytes
        self._data: Optional[bytes] = data

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"OutputArtifact(id={self.artifact_id}, size={self.size_bytes}, {state})"

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise RuntimeError(f"Artifact {self.artifact_id} has been released")
        return self._data

    @property
    def released(self) -> bool:
        return self._data is None

    def release(self) -> None:
        self._data = None

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path

class Job(BaseModel):
    id: int
    source: Path
    trim_window: Optional[TrimWindow] = None
    state: JobState = JobState.IDLE
    attempt: int = 0
    superseded: bool = False
    bitrate_history: List[int] = Field(default_factory=list)
    output_size_bytes: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
