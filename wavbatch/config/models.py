from typing import Optional
from pydantic import BaseModel, Field, field_validator

ENCODER_MODES = ("stereo", "joint_stereo", "mono")


def normalize_extension(ext: str) -> str:
    """Returns the extension with a single leading dot."""
    ext = ext.strip()
    if not ext or ext == ".":
        raise ValueError("Extension must not be empty")
    return ext if ext.startswith(".") else f".{ext}"


class EncoderConfig(BaseModel):
    """Codec parameters negotiated once per session.

    The defaults are the only configuration the pipeline targets: 16-bit stereo
    PCM at 44.1 kHz in, 128 kbps joint-stereo MP3 at best quality out.
    """
    channels: int = Field(default=2, ge=1, le=2)
    sample_rate: int = Field(default=44100, gt=0)
    bitrate_kbps: int = Field(default=128, gt=0)
    mode: str = Field(default="joint_stereo")
    quality: int = Field(default=0, ge=0, le=9)  # 0=best 9=worst

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in ENCODER_MODES:
            raise ValueError(f"Unsupported encoder mode: {v}. Use one of {list(ENCODER_MODES)}")
        return v


class GeneralConfig(BaseModel):
    source_extension: str = ".wav"
    target_extension: str = ".mp3"
    chunk_frames: int = Field(default=8192, gt=0)
    max_workers: Optional[int] = Field(default=None, gt=0)  # None = one thread per job
    poll_interval_s: float = Field(default=1.0, gt=0)
    ffmpeg_binary: str = "ffmpeg"
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("source_extension", "target_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        return normalize_extension(v)


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
