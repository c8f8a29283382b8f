"""Encode parameter derivation and bitrate correction.

The initial plan is a single upfront estimate: split the byte budget into
container overhead, audio and video, and turn the video share into a bitrate
over the trim duration. Downscaling only triggers when the source is both
above the resolution cap and starved of bits per pixel.
"""

import math
from dataclasses import dataclass
from clipcat.config.models import AppConfig, ConvergenceConfig
from clipcat.domain.errors import BudgetExhaustedError
from clipcat.domain.models import AnalysisResult, AudioSpec, EncodePlan, TrimWindow


@dataclass(frozen=True)
class BudgetBreakdown:
    target_bytes: int
    overhead_bytes: int
    audio_bytes: int
    video_bytes: int
    duration_seconds: float


def compute_budget(analysis: AnalysisResult, trim_window: TrimWindow, config: AppConfig) -> BudgetBreakdown:
    """Splits the byte budget; raises BudgetExhaustedError when video gets nothing."""
    duration = trim_window.duration
    target = config.budget.target_bytes
    overhead = max(config.budget.overhead_min_bytes, round(target * config.budget.overhead_ratio))
    audio = math.ceil(config.audio.bitrate_bps * duration / 8) if analysis.has_audio else 0
    video = target - overhead - audio
    if video <= 0:
        raise BudgetExhaustedError(
            f"A {duration:.1f}s clip leaves no room for video in {target} bytes "
            f"(overhead {overhead} B, audio {audio} B). Trim the clip further."
        )
    return BudgetBreakdown(
        target_bytes=target,
        overhead_bytes=overhead,
        audio_bytes=audio,
        video_bytes=video,
        duration_seconds=duration,
    )


def bits_per_pixel(video_bitrate_bps: int, analysis: AnalysisResult) -> float:
    pixel_rate = analysis.display_width * analysis.display_height * analysis.estimated_fps
    if pixel_rate <= 0:
        return math.inf
    return video_bitrate_bps / pixel_rate


def derive_plan(analysis: AnalysisResult, trim_window: TrimWindow, config: AppConfig) -> EncodePlan:
    budget = compute_budget(analysis, trim_window, config)
    floor_bps = config.convergence.min_video_bitrate_bps
    video_bitrate = max(floor_bps, math.floor(budget.video_bytes * 8 / budget.duration_seconds))

    # Cap applies to the short side: height for landscape, width for portrait
    short_side = analysis.display_height if analysis.is_landscape else analysis.display_width
    target_width = None
    target_height = None
    if (
        short_side > config.scaling.max_short_side
        and bits_per_pixel(video_bitrate, analysis) < config.scaling.min_bits_per_pixel
    ):
        if analysis.is_landscape:
            target_height = config.scaling.max_short_side
        else:
            target_width = config.scaling.max_short_side

    audio = None
    if analysis.has_audio:
        audio = AudioSpec(channel_count=config.audio.channels, bitrate_bps=config.audio.bitrate_bps)

    return EncodePlan(
        video_bitrate_bps=video_bitrate,
        target_width=target_width,
        target_height=target_height,
        audio=audio,
    )


def next_video_bitrate(
    current_bps: int,
    output_size_bytes: int,
    target_bytes: int,
    config: ConvergenceConfig,
) -> int:
    """Corrected bitrate after an over-budget attempt.

    Scales by the size ratio with a safety margin; if that fails to lower the
    bitrate (encoder variance) falls back to a fixed step down. Never below
    the configured floor.
    """
    ratio = target_bytes / output_size_bytes
    candidate = math.floor(current_bps * ratio * config.safety_margin)
    if candidate >= current_bps:
        candidate = math.floor(current_bps * config.fallback_factor)
    return max(config.min_video_bitrate_bps, candidate)
