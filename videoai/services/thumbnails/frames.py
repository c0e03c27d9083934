"""Frame extraction and raster encoding with ffmpeg and Pillow."""

import hashlib
import io
from typing import Awaitable, Callable, Optional

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from videoai.core.exceptions import EncodeError
from videoai.core.logger import get_logger
from videoai.services.ffmpeg import capture_frame

logger = get_logger(__name__)

FrameCapture = Callable[[str, float, float], Awaitable[bytes]]


class FrameExtractor:
    """Grabs a frame at an offset and turns it into a normalized JPEG."""

    def __init__(
        self,
        width: int = 400,
        height: int = 225,
        quality: int = 80,
        timeout_seconds: float = 15.0,
        capture: FrameCapture = capture_frame,
    ):
        self.width = width
        self.height = height
        self.quality = quality
        self.timeout_seconds = timeout_seconds
        self._capture = capture

    async def extract(self, location: str, offset: float) -> bytes:
        """
        JPEG bytes of the frame at ``offset`` seconds.

        Raises:
            DecodeUnsupportedError, SeekTimeoutError: from the capture step
            EncodeError: the frame could not be encoded
        """
        raw = await self._capture(location, offset, self.timeout_seconds)
        return self.encode_jpeg(raw)

    def _to_jpeg(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.quality)
        return buffer.getvalue()

    def encode_jpeg(self, raw: bytes) -> bytes:
        """Letterbox any decoded frame into the thumbnail box and encode it."""
        try:
            with Image.open(io.BytesIO(raw)) as frame:
                boxed = ImageOps.pad(
                    frame.convert("RGB"),
                    (self.width, self.height),
                    color=(0, 0, 0),
                )
                data = self._to_jpeg(boxed)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise EncodeError(debug_message=str(e)) from e

        if not data:
            raise EncodeError(debug_message="encoder produced no bytes")
        return data

    def render_placeholder(self, seed: str, title: Optional[str] = None) -> bytes:
        """
        Deterministic placeholder graphic.

        The background colour is derived from ``seed`` and the first letter
        of ``title`` is drawn in the middle.
        """
        digest = hashlib.md5(seed.encode("utf-8")).digest()
        # Keep the colour dark enough for white text
        background = tuple(40 + b % 120 for b in digest[:3])

        image = Image.new("RGB", (self.width, self.height), background)
        draw = ImageDraw.Draw(image)

        initial = (title or "").strip()[:1].upper() or "V"
        font = ImageFont.load_default(size=self.height // 2)
        left, top, right, bottom = draw.textbbox((0, 0), initial, font=font)
        position = (
            (self.width - (right - left)) / 2 - left,
            (self.height - (bottom - top)) / 2 - top,
        )
        draw.text(position, initial, fill=(255, 255, 255), font=font)

        try:
            return self._to_jpeg(image)
        except (OSError, ValueError) as e:
            raise EncodeError(debug_message=str(e)) from e
