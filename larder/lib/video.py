"""Video container normalization to MP4 via ffmpeg.

Conversion is attempted as a lossless remux first, then as a full transcode.
If both fail the original file is kept; that outcome is reported, not raised.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from larder.lib import observability

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 500

_VIDEO_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
}


class ConversionMethod(str, Enum):
    NONE = "none"
    REMUX = "remux"
    TRANSCODE = "transcode"
    ORIGINAL = "original"


@dataclass(frozen=True)
class ConversionResult:
    """How a video reached MP4 form, or why it did not."""

    file_path: Path
    converted: bool
    method: ConversionMethod

    @property
    def degraded(self) -> bool:
        """True when the original container was kept instead of an MP4."""
        return self.method is ConversionMethod.ORIGINAL


@dataclass(frozen=True)
class TranscodeSettings:
    preset: str = "fast"
    crf: int = 23
    audio_bitrate: str = "128k"

    @classmethod
    def from_config(cls, config) -> TranscodeSettings:
        return cls(preset=config.preset, crf=config.crf, audio_bitrate=config.audio_bitrate)


class FfmpegError(Exception):
    """ffmpeg exited with a non-zero status."""

    def __init__(self, returncode: int, stderr_tail: str) -> None:
        super().__init__(f"ffmpeg exited with code {returncode}: {stderr_tail}")
        self.returncode = returncode
        self.stderr_tail = stderr_tail


def remux_args(input_path: Path, output_path: Path) -> list[str]:
    return [
        "-i", str(input_path),
        "-c", "copy",
        "-movflags", "+faststart",
        str(output_path),
    ]


def transcode_args(
    input_path: Path,
    output_path: Path,
    settings: TranscodeSettings,
) -> list[str]:
    return [
        "-i", str(input_path),
        "-c:v", "libx264",
        "-preset", settings.preset,
        "-crf", str(settings.crf),
        "-c:a", "aac",
        "-b:a", settings.audio_bitrate,
        "-movflags", "+faststart",
        str(output_path),
    ]


def resolve_ffmpeg_path(configured: str | None = None) -> str | None:
    """Return a usable ffmpeg executable, or ``None`` when none is installed."""
    if configured:
        if Path(configured).is_file():
            return configured
        return shutil.which(configured)
    return shutil.which("ffmpeg")


def video_mime_type(path: str | Path) -> str:
    return _VIDEO_MIME_TYPES.get(Path(path).suffix.lower(), "video/mp4")


async def run_ffmpeg(ffmpeg_path: str, args: list[str]) -> None:
    """Run ``ffmpeg -y <args>`` to completion.

    Raises:
        FfmpegError: The process exited non-zero.
        OSError: The executable could not be spawned.
    """
    proc = await asyncio.create_subprocess_exec(
        ffmpeg_path,
        "-y",
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        tail = stderr.decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:]
        raise FfmpegError(proc.returncode, tail)


def _output_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return 0


async def _attempt(ffmpeg_path: str, args: list[str], output_path: Path) -> int:
    """Run one conversion attempt; returns the output size (0 on failure)."""
    try:
        await run_ffmpeg(ffmpeg_path, args)
    except (FfmpegError, OSError) as exc:
        logger.debug("ffmpeg attempt failed: %s", exc)
        await asyncio.to_thread(output_path.unlink, True)
        return 0

    size = await asyncio.to_thread(_output_size, output_path)
    if size == 0:
        await asyncio.to_thread(output_path.unlink, True)
    return size


async def convert_to_mp4(
    input_path: str | Path,
    ffmpeg_path: str | None,
    settings: TranscodeSettings | None = None,
) -> ConversionResult:
    """Convert *input_path* to MP4 if needed, preferring remux over transcode."""
    input_path = Path(input_path)
    settings = settings or TranscodeSettings()

    if input_path.suffix.lower() == ".mp4":
        logger.debug("Video is already MP4, no conversion needed: %s", input_path)
        return ConversionResult(input_path, converted=False, method=ConversionMethod.NONE)

    if not ffmpeg_path:
        logger.warning("ffmpeg not available, keeping original format: %s", input_path)
        return ConversionResult(input_path, converted=False, method=ConversionMethod.ORIGINAL)

    output_path = input_path.with_suffix(".mp4")
    attempts = (
        (ConversionMethod.REMUX, remux_args(input_path, output_path)),
        (ConversionMethod.TRANSCODE, transcode_args(input_path, output_path, settings)),
    )

    with observability.span("media.convert_video", input_path=str(input_path)):
        for method, args in attempts:
            logger.debug("Attempting video %s to MP4: %s", method.value, input_path)
            size = await _attempt(ffmpeg_path, args, output_path)
            if size > 0:
                await asyncio.to_thread(input_path.unlink, True)
                logger.info(
                    "Video converted to MP4",
                    extra={"method": method.value, "output_path": str(output_path), "size": size},
                )
                return ConversionResult(output_path, converted=True, method=method)

    logger.warning("All conversion attempts failed, keeping original format: %s", input_path)
    return ConversionResult(input_path, converted=False, method=ConversionMethod.ORIGINAL)
