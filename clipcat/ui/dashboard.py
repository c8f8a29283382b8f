import threading
import time
from typing import Optional
from rich.live import Live
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.progress_bar import ProgressBar
from rich.text import Text
from rich.box import ROUNDED
from clipcat.config.rate_control import format_bps_human, format_size_human
from clipcat.ui.state import ConversionStatus, UIState

_STATUS_STYLES = {
    ConversionStatus.IDLE: "dim",
    ConversionStatus.ANALYZING: "cyan",
    ConversionStatus.ENCODING: "yellow",
    ConversionStatus.DONE: "green",
    ConversionStatus.ERROR: "red",
}

SPINNER = "|/-\\"

class Dashboard:
    """Live terminal view of a single conversion."""

    def __init__(self, state: UIState, target_bytes: int, console: Optional[Console] = None):
        self.state = state
        self.target_bytes = target_bytes
        self.console = console or Console()
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._spinner_frame = 0

    def format_time(self, seconds: Optional[float]) -> str:
        """Format time: 59s, 01m 01s."""
        if seconds is None:
            return "--:--"
        if seconds < 60:
            return f"{int(seconds)}s"
        return f"{int(seconds // 60):02d}m {int(seconds % 60):02d}s"

    def _status_line(self) -> Text:
        status = self.state.status
        label = status.value.upper()
        if status in (ConversionStatus.ANALYZING, ConversionStatus.ENCODING):
            label = f"{SPINNER[self._spinner_frame % len(SPINNER)]} {label}"
        if status == ConversionStatus.ENCODING:
            label += f" (attempt {self.state.attempt}/{self.state.max_attempts})"
        text = Text(label, style=_STATUS_STYLES[status])
        if self.state.source_name:
            text.append(f"  {self.state.source_name}", style="bold")
        return text

    def create_display(self) -> RenderableType:
        with self.state._lock:
            table = Table.grid(padding=(0, 2))
            table.add_column(style="dim")
            table.add_column()
            table.add_row("Budget", format_size_human(self.target_bytes))
            if self.state.video_bitrate_bps:
                table.add_row("Video bitrate", format_bps_human(self.state.video_bitrate_bps))
            if self.state.size_bytes is not None:
                table.add_row("Output", format_size_human(self.state.size_bytes))
            table.add_row("Elapsed", self.format_time(self.state.elapsed_seconds))

            parts = [self._status_line(), table]
            if self.state.status == ConversionStatus.ENCODING:
                parts.append(ProgressBar(total=100.0, completed=self.state.progress_percent))
            if self.state.status == ConversionStatus.ERROR and self.state.error_message:
                parts.append(Text(self.state.error_message, style="red"))
            for message in list(self.state.recent_messages):
                parts.append(Text(f"· {message}", style="dim"))

        return Panel(Group(*parts), title="ClipCat", box=ROUNDED, border_style=_STATUS_STYLES[self.state.status])

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            if self._live:
                self._spinner_frame = (self._spinner_frame + 1) % len(SPINNER)
                self._live.update(self.create_display())
            time.sleep(0.25)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final update to show DONE/ERROR state
            self._live.update(self.create_display())
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
