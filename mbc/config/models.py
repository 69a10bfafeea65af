import os
import re
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

DEFAULT_QUARANTINE_PREFIX = "to-be-deleted"
SAFE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


def _default_jobs() -> int:
    return os.cpu_count() or 4


def _normalize_extensions(v: List[str]) -> List[str]:
    normalized = []
    for ext in v:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        if ext not in normalized:
            normalized.append(ext)
    return normalized


class GeneralConfig(BaseModel):
    jobs: int = Field(default_factory=_default_jobs, gt=0)
    dry_run: bool = False
    recursive: bool = False
    force: bool = False
    interleaved: bool = False
    delete_originals: bool = False
    probe: bool = True
    quiet_ffmpeg: bool = True
    debug: bool = False
    log_path: Optional[str] = Field(default="/tmp/mbc/compression.log")


class QuarantineConfig(BaseModel):
    """Where originals go after a successful compression."""
    prefix: str = DEFAULT_QUARANTINE_PREFIX

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v or not SAFE_NAME_PATTERN.match(v) or ".." in v:
            raise ValueError(
                f"Invalid quarantine prefix {v!r}. Use only letters, digits, '.', '_' and '-'."
            )
        return v


class EtaConfig(BaseModel):
    alpha: float = Field(default=0.2, gt=0.0, le=1.0)
    suppress_seconds: float = Field(default=1.0, ge=0.0)
    job_threshold_seconds: float = Field(default=3.0, ge=0.0)
    always: bool = False


class ImageEncoderConfig(BaseModel):
    quality: int = Field(default=85, ge=1, le=100)
    blur: str = "0.05"
    extensions: List[str] = Field(default_factory=lambda: [
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif",
        ".heic", ".heif", ".webp", ".svg", ".ico", ".psd",
        ".raw", ".cr2", ".nef", ".arw", ".dng", ".exr",
        ".jp2", ".j2k", ".jxr", ".avif",
    ])

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        return _normalize_extensions(v)


class VideoEncoderConfig(BaseModel):
    codec: str = "libx265"
    crf: int = Field(default=28, ge=0, le=51)
    preset: str = "medium"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    extensions: List[str] = Field(default_factory=lambda: [
        ".mp4", ".mkv", ".mov", ".avi", ".flv", ".wmv", ".webm", ".mpg", ".mpeg",
    ])

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        return _normalize_extensions(v)


class UiConfig(BaseModel):
    """Console display configuration."""
    color: Optional[bool] = None  # None = auto (TTY detection)
    show_skip_messages: bool = True
    terse: bool = False


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    quarantine: QuarantineConfig = Field(default_factory=QuarantineConfig)
    eta: EtaConfig = Field(default_factory=EtaConfig)
    image: ImageEncoderConfig = Field(default_factory=ImageEncoderConfig)
    video: VideoEncoderConfig = Field(default_factory=VideoEncoderConfig)
    ui: UiConfig = Field(default_factory=UiConfig)
