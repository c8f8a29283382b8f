from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

class Checkpoint(str, Enum):
    PROCEED = "PROCEED"
    STALE = "STALE"  # job superseded; abort silently, never an error path
    ERROR = "ERROR"

@dataclass
class CheckpointResult(Generic[T]):
    outcome: Checkpoint
    value: Optional[T] = None
    error: Optional[BaseException] = None

class JobRegistry:
    """Hands out job ids; only the most recently begun id is current."""

    def __init__(self):
        self._current_id = 0

    def begin_job(self) -> int:
        self._current_id += 1
        return self._current_id

    def is_current(self, job_id: int) -> bool:
        return job_id == self._current_id
