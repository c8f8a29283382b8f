import threading
from datetime import datetime
from collections import deque
from enum import Enum
from typing import Optional
from clipcat.domain.models import OutputArtifact

class ConversionStatus(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    ENCODING = "encoding"
    DONE = "done"
    ERROR = "error"

class UIState:
    """Thread-safe status object the UI renders from."""

    def __init__(self, activity_feed_max_items: int = 5):
        self._lock = threading.RLock()

        self.status = ConversionStatus.IDLE
        self.job_id: Optional[int] = None
        self.source_name = ""

        # Encoding progress
        self.attempt = 0
        self.max_attempts = 0
        self.video_bitrate_bps = 0
        self.progress_percent = 0.0

        # Outcome
        self.artifact: Optional[OutputArtifact] = None
        self.size_bytes: Optional[int] = None
        self.error_message: Optional[str] = None

        self.completed_count = 0
        self.failed_count = 0
        self.recent_messages = deque(maxlen=activity_feed_max_items)
        self.job_start_time: Optional[datetime] = None

    @property
    def elapsed_seconds(self) -> Optional[float]:
        with self._lock:
            if self.job_start_time is None:
                return None
            return (datetime.now() - self.job_start_time).total_seconds()

    def reset(self):
        with self._lock:
            self.status = ConversionStatus.IDLE
            self.attempt = 0
            self.max_attempts = 0
            self.video_bitrate_bps = 0
            self.progress_percent = 0.0
            self.artifact = None
            self.size_bytes = None
            self.error_message = None
            self.job_start_time = None

    def begin_job(self, job_id: int, source_name: str):
        with self._lock:
            self.reset()
            self.job_id = job_id
            self.source_name = source_name
            self.job_start_time = datetime.now()

    def set_analyzing(self):
        with self._lock:
            self.status = ConversionStatus.ANALYZING

    def set_encoding(self, attempt: int, max_attempts: int, video_bitrate_bps: int):
        with self._lock:
            self.status = ConversionStatus.ENCODING
            self.attempt = attempt
            self.max_attempts = max_attempts
            self.video_bitrate_bps = video_bitrate_bps
            self.progress_percent = 0.0

    def set_progress(self, progress_percent: float):
        with self._lock:
            self.progress_percent = max(0.0, min(100.0, progress_percent))

    def set_done(self, artifact: OutputArtifact, size_bytes: int):
        with self._lock:
            self.status = ConversionStatus.DONE
            self.artifact = artifact
            self.size_bytes = size_bytes
            self.progress_percent = 100.0
            self.completed_count += 1

    def set_error(self, message: str):
        with self._lock:
            self.status = ConversionStatus.ERROR
            self.artifact = None
            self.error_message = message
            self.failed_count += 1

    def add_message(self, message: str):
        with self._lock:
            self.recent_messages.appendleft(message)
