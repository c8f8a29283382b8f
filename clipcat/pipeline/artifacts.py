import logging
from typing import Optional
from clipcat.domain.models import EncodeResult, OutputArtifact

class ArtifactSlot:
    """Owns the single live output artifact of a controller.

    Acquiring a new artifact releases the previous one in the same call, so
    there is never a moment with two live artifacts.
    """

    def __init__(self):
        self._current: Optional[OutputArtifact] = None
        self._next_id = 0
        self.created_count = 0
        self.released_count = 0
        self.logger = logging.getLogger(__name__)

    @property
    def current(self) -> Optional[OutputArtifact]:
        return self._current

    @property
    def live_count(self) -> int:
        return self.created_count - self.released_count

    def swap(self, result: EncodeResult) -> OutputArtifact:
        """Wraps the encoded buffer in a new artifact and releases the old one."""
        self._next_id += 1
        size_bytes = result.size_bytes
        artifact = OutputArtifact(self._next_id, result.take(), size_bytes=size_bytes)
        previous, self._current = self._current, artifact
        self.created_count += 1
        if previous is not None:
            self._dispose(previous)
        return artifact

    def release(self) -> None:
        previous, self._current = self._current, None
        if previous is not None:
            self._dispose(previous)

    def close(self) -> None:
        self.release()

    def _dispose(self, artifact: OutputArtifact) -> None:
        artifact.release()
        self.released_count += 1
        self.logger.debug(f"ARTIFACT_RELEASED: id={artifact.artifact_id} size={artifact.size_bytes}")
