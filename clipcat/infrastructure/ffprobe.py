import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from clipcat.config.models import AnalysisConfig
from clipcat.domain.errors import AnalysisError
from clipcat.domain.models import AnalysisResult

class FFprobeAnalyzer:
    """Media analyzer backed by ffprobe.

    Reports display dimensions (rotation applied), audio presence and a
    frame rate estimated from sampled packet timestamps.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None, ffprobe_path: str = "ffprobe"):
        self.config = config or AnalysisConfig()
        self.ffprobe_path = ffprobe_path
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _parse_rate(cls, value: Any) -> float:
        """Parses ffprobe rates like '30000/1001' or '25'."""
        if value is None:
            return 0.0
        text = str(value)
        if "/" in text:
            num_text, den_text = text.split("/", 1)
            den = cls._to_float(den_text)
            if den == 0:
                return 0.0
            return cls._to_float(num_text) / den
        return cls._to_float(text)

    @classmethod
    def _rotation(cls, stream: Dict[str, Any]) -> int:
        for side_data in stream.get("side_data_list", []) or []:
            if "rotation" in side_data:
                return int(cls._to_float(side_data.get("rotation"))) % 360
        tags = stream.get("tags", {}) or {}
        if "rotate" in tags:
            return int(cls._to_float(tags.get("rotate"))) % 360
        return 0

    async def _run_ffprobe(self, args: List[str]) -> Dict[str, Any]:
        cmd = [self.ffprobe_path, "-v", "quiet", "-print_format", "json", *args]
        self.logger.debug(f"FFPROBE_CMD: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AnalysisError(f"Could not start ffprobe: {e}") from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise AnalysisError(f"ffprobe failed (code {process.returncode}): {detail}")
        try:
            return json.loads(stdout.decode(errors="replace") or "{}")
        except json.JSONDecodeError as e:
            raise AnalysisError(f"ffprobe returned invalid JSON: {e}") from e

    async def sample_fps(self, source: Path) -> Optional[float]:
        """Estimates fps from the first N video packet timestamps."""
        data = await self._run_ffprobe([
            "-select_streams", "v:0",
            "-read_intervals", f"%+#{self.config.fps_sample_packets}",
            "-show_entries", "packet=pts_time",
            str(source),
        ])
        times = sorted(
            self._to_float(p["pts_time"])
            for p in data.get("packets", []) or []
            if p.get("pts_time") not in (None, "", "N/A")
        )
        if len(times) < 2:
            return None
        span = times[-1] - times[0]
        if span <= 0:
            return None
        return (len(times) - 1) / span

    def _clamp_fps(self, fps: float) -> float:
        return max(self.config.fps_min, min(self.config.fps_max, fps))

    async def analyze(self, source: Path) -> AnalysisResult:
        data = await self._run_ffprobe(["-show_streams", "-show_format", str(source)])
        streams = data.get("streams", []) or []

        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise AnalysisError(f"No video track found in {Path(source).name}")

        width = int(video_stream.get("width", 0) or 0)
        height = int(video_stream.get("height", 0) or 0)
        if width <= 0 or height <= 0:
            raise AnalysisError(f"Video track in {Path(source).name} has no dimensions")
        if self._rotation(video_stream) in (90, 270):
            width, height = height, width

        has_audio = any(s.get("codec_type") == "audio" for s in streams)

        fps: Optional[float] = None
        try:
            fps = await self.sample_fps(source)
        except AnalysisError as e:
            self.logger.warning(f"FPS sampling failed for {Path(source).name}: {e}")
        if not fps:
            fps = (
                self._parse_rate(video_stream.get("avg_frame_rate"))
                or self._parse_rate(video_stream.get("r_frame_rate"))
                or self.config.fps_default
            )

        fmt = data.get("format", {}) or {}
        duration = self._to_float(fmt.get("duration")) or self._to_float(video_stream.get("duration"))

        result = AnalysisResult(
            display_width=width,
            display_height=height,
            estimated_fps=self._clamp_fps(fps),
            has_audio=has_audio,
            duration_seconds=max(0.0, duration),
        )
        self.logger.info(
            f"ANALYSIS: {Path(source).name} {result.display_width}x{result.display_height} "
            f"fps={result.estimated_fps:.2f} audio={result.has_audio} duration={result.duration_seconds:.2f}s"
        )
        return result
