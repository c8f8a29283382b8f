import asyncio
import logging
import re
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional
from clipcat.config.models import EncoderConfig
from clipcat.domain.errors import EncodeError
from clipcat.domain.models import EncodePlan, EncodeResult, TrimWindow

ProgressCallback = Callable[[float], None]

# ffmpeg -progress reports microseconds under both keys
_PROGRESS_REGEX = re.compile(r"^out_time_(?:us|ms)=(\d+)$")
TERMINATE_TIMEOUT_SECONDS = 3.0

class FFmpegEngine:
    """Transcode engine backed by ffmpeg.

    Each call encodes the trim window into a temporary MP4 work file, reads it
    back into memory and removes it. Ownership of the returned buffer moves to
    the caller.
    """

    def __init__(self, config: Optional[EncoderConfig] = None, work_dir: Optional[Path] = None, debug: bool = False):
        self.config = config or EncoderConfig()
        self.work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir())
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _scale_filter(self, plan: EncodePlan) -> Optional[str]:
        # -2 keeps the inferred side even, which libx264 requires
        if plan.target_height is not None:
            return f"scale=-2:{plan.target_height}"
        if plan.target_width is not None:
            return f"scale={plan.target_width}:-2"
        return None

    def _build_command(self, source: Path, trim_window: TrimWindow, plan: EncodePlan, output_path: Path) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        bitrate = plan.video_bitrate_bps
        cmd = [
            self.config.ffmpeg_path,
            "-hide_banner",
            "-y",  # Overwrite output files
            "-nostats",
            "-progress", "pipe:1",
            "-ss", f"{trim_window.start_seconds:.3f}",
            "-i", str(source),
            "-t", f"{trim_window.duration:.3f}",
            "-map", "0:v:0",
        ]
        if plan.audio is not None:
            cmd.extend(["-map", "0:a:0?"])

        # Video encoding settings
        cmd.extend([
            "-c:v", self.config.video_codec,
            "-preset", self.config.preset,
            "-b:v", str(bitrate),
            "-maxrate", str(bitrate),
            "-bufsize", str(bitrate * 2),
            "-pix_fmt", "yuv420p",
        ])
        scale = self._scale_filter(plan)
        if scale:
            cmd.extend(["-vf", scale])

        # Audio settings
        if plan.audio is not None:
            cmd.extend([
                "-c:a", self.config.audio_codec,
                "-ac", str(plan.audio.channel_count),
                "-b:a", str(plan.audio.bitrate_bps),
            ])
        else:
            cmd.append("-an")

        # Force mp4 format since .tmp extension doesn't indicate format
        cmd.extend([
            "-map_metadata", "-1",
            "-movflags", "+faststart",
            "-f", "mp4",
            str(output_path),
        ])
        return cmd

    def _work_path(self) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(prefix="clipcat-", suffix=".tmp", dir=self.work_dir, delete=False)
        handle.close()
        return Path(handle.name)

    async def _stop_process(self, process) -> None:
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()

    async def encode(
        self,
        source: Path,
        trim_window: TrimWindow,
        plan: EncodePlan,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EncodeResult:
        """Executes one encode attempt and returns the encoded buffer."""
        filename = Path(source).name
        start_time = time.monotonic()
        tmp_path = self._work_path()
        cmd = self._build_command(Path(source), trim_window, plan, tmp_path)

        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise EncodeError(f"Could not start ffmpeg: {e}") from e

            stderr_task = asyncio.ensure_future(process.stderr.read())
            total_us = trim_window.duration * 1_000_000
            try:
                async for raw_line in process.stdout:
                    match = _PROGRESS_REGEX.match(raw_line.decode(errors="replace").strip())
                    if match and on_progress and total_us > 0:
                        on_progress(min(100.0, int(match.group(1)) / total_us * 100.0))
                stderr = await stderr_task
                returncode = await process.wait()
            except BaseException:
                # Cancelled (Ctrl+C) or a progress callback raised: don't leave ffmpeg running
                stderr_task.cancel()
                if process.returncode is None:
                    self.logger.info(f"FFMPEG_INTERRUPTED: {filename}")
                    await self._stop_process(process)
                raise

            if returncode != 0:
                tail = stderr.decode(errors="replace").strip().splitlines()[-5:]
                self.logger.error(f"FFMPEG_FAILED: {filename} code={returncode} {' | '.join(tail)}")
                raise EncodeError(f"ffmpeg exited with code {returncode}")

            try:
                data = tmp_path.read_bytes()
            except OSError as e:
                raise EncodeError(f"Encoded output could not be read: {e}") from e
            if not data:
                raise EncodeError("ffmpeg produced an empty output")

            elapsed = time.monotonic() - start_time
            self.logger.info(
                f"FFMPEG_END: {filename} size={len(data)} bitrate={plan.video_bitrate_bps} elapsed={elapsed:.2f}s"
            )
            return EncodeResult(data)
        finally:
            # Cleanup work file on success and error alike
            if tmp_path.exists():
                tmp_path.unlink()
