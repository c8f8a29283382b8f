from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from .rate_control import parse_rate_bps, parse_size_bytes

class GeneralConfig(BaseModel):
    debug: bool = False
    log_path: str = "/tmp/clipcat/clipcat.log"
    work_dir: Optional[str] = None  # None = system temp dir

class BudgetConfig(BaseModel):
    """Byte budget for the final artifact (headroom under a 10MB upload limit)."""
    target_bytes: int = Field(default=9_800_000, gt=0)
    overhead_min_bytes: int = Field(default=150_000, ge=0)
    overhead_ratio: float = Field(default=0.015, ge=0.0, lt=1.0)

    @field_validator("target_bytes", mode="before")
    @classmethod
    def parse_target(cls, v):
        return parse_size_bytes(v)

class AudioConfig(BaseModel):
    bitrate_bps: int = Field(default=96_000, gt=0, alias="bitrate")
    channels: int = Field(default=1, ge=1, le=2)

    model_config = {"populate_by_name": True}

    @field_validator("bitrate_bps", mode="before")
    @classmethod
    def parse_bitrate(cls, v):
        return parse_rate_bps(v)

class ConvergenceConfig(BaseModel):
    max_attempts: int = Field(default=5, ge=1, le=20)
    safety_margin: float = Field(default=0.92, gt=0.0, le=1.0)
    fallback_factor: float = Field(default=0.85, gt=0.0, lt=1.0)
    min_video_bitrate_bps: int = Field(default=150_000, gt=0)

    @field_validator("min_video_bitrate_bps", mode="before")
    @classmethod
    def parse_floor(cls, v):
        return parse_rate_bps(v)

class ScalingConfig(BaseModel):
    max_short_side: int = Field(default=1080, gt=0)
    min_bits_per_pixel: float = Field(default=0.02, ge=0.0)

class AnalysisConfig(BaseModel):
    fps_min: float = Field(default=15.0, gt=0)
    fps_max: float = Field(default=120.0, gt=0)
    fps_default: float = Field(default=30.0, gt=0)
    fps_sample_packets: int = Field(default=120, ge=2)

    @model_validator(mode="after")
    def validate_fps_bounds(self):
        if self.fps_min > self.fps_max:
            raise ValueError("fps_min must be <= fps_max")
        return self

class EncoderConfig(BaseModel):
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    video_codec: str = "libx264"
    preset: str = "veryfast"
    audio_codec: str = "aac"

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    convergence: ConvergenceConfig = Field(default_factory=ConvergenceConfig)
    scaling: ScalingConfig = Field(default_factory=ScalingConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
