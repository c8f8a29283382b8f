import os
from pathlib import Path

class HousekeepingService:
    """Service for cleaning up leftover encode work files."""

    def __init__(self, prefix: str = "clipcat-"):
        self.prefix = prefix

    def cleanup_temp_files(self, directory: Path) -> int:
        """Recursively removes stale `<prefix>*.tmp` encode files. Returns count removed."""
        removed = 0
        if not Path(directory).exists():
            return removed
        for root, dirs, files in os.walk(directory):
            for file in files:
                if file.startswith(self.prefix) and file.endswith(".tmp"):
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError:
                        pass
        return removed
