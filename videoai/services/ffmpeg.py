"""FFmpeg helpers for probing videos and grabbing single frames.

Handles:
- Metadata probing (duration, resolution) with ffprobe
- Single-frame extraction at a seek offset with ffmpeg

Both run as asyncio subprocesses against a local path or a signed read URL.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Optional

from videoai.core.exceptions import DecodeUnsupportedError, SeekTimeoutError
from videoai.core.logger import get_logger

logger = get_logger(__name__)

FFMPEG_BIN = "ffmpeg"
FFPROBE_BIN = "ffprobe"


@dataclass
class VideoProbe:
    """Metadata read from the container."""
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None


async def _run(cmd: list[str], timeout: float) -> tuple[int, bytes, bytes]:
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode, stdout, stderr


async def probe_video(source: str, timeout: float = 15.0) -> Optional[VideoProbe]:
    """
    Read duration and resolution using ffprobe.

    Returns None when ffprobe is missing, times out or cannot parse the file.
    """
    cmd = [
        FFPROBE_BIN, "-v", "quiet",
        "-print_format", "json",
        "-show_format", "-show_streams",
        source,
    ]

    try:
        returncode, stdout, stderr = await _run(cmd, timeout)
    except FileNotFoundError:
        logger.warning("ffprobe not found, skipping metadata probe")
        return None
    except asyncio.TimeoutError:
        logger.warning(f"ffprobe timed out after {timeout}s for {source}")
        return None

    if returncode != 0:
        logger.warning(f"ffprobe failed: {stderr.decode(errors='replace')[:500]}")
        return None

    try:
        info = json.loads(stdout)
    except json.JSONDecodeError:
        logger.warning("ffprobe returned invalid JSON")
        return None

    probe = VideoProbe()
    try:
        duration = info.get("format", {}).get("duration")
        probe.duration = float(duration) if duration is not None else None
    except (ValueError, TypeError):
        probe.duration = None

    for stream in info.get("streams", []):
        if stream.get("codec_type") == "video":
            probe.width = stream.get("width")
            probe.height = stream.get("height")
            break

    return probe


async def capture_frame(source: str, offset: float, timeout: float) -> bytes:
    """
    Decode one frame at ``offset`` seconds and return it as PNG bytes.

    Raises:
        DecodeUnsupportedError: ffmpeg is missing or cannot decode the source
        SeekTimeoutError: the seek and decode did not finish within ``timeout``
    """
    cmd = [
        FFMPEG_BIN, "-v", "error",
        # Input seeking: fast and accurate enough for a single still
        "-ss", f"{offset:.3f}",
        "-i", source,
        "-frames:v", "1",
        "-f", "image2pipe",
        "-vcodec", "png",
        "pipe:1",
    ]

    try:
        returncode, stdout, stderr = await _run(cmd, timeout)
    except FileNotFoundError as e:
        raise DecodeUnsupportedError(
            message="Frame extraction is not available",
            debug_message=str(e),
        ) from e
    except asyncio.TimeoutError as e:
        raise SeekTimeoutError(
            metadata={"offset": offset, "timeout": timeout},
        ) from e

    if returncode != 0 or not stdout:
        raise DecodeUnsupportedError(
            metadata={"offset": offset},
            debug_message=stderr.decode(errors="replace")[:500],
        )

    return stdout
