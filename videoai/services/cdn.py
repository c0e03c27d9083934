"""CDN video processor integration (Bunny Stream).

The processor ingests the raw video, transcodes it and renders its own
thumbnail. Everything here talks to the Bunny Stream HTTP API with httpx.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from videoai.core.exceptions import CdnProcessingError
from videoai.core.logger import get_logger

logger = get_logger(__name__)

# Bunny Stream numeric video states
BUNNY_STATUS_FINISHED = 4
BUNNY_STATUS_FAILED = {5, 6}


class CdnVideoState(str, Enum):
    PENDING = "pending"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class CdnVideoStatus:
    guid: str
    state: CdnVideoState
    raw_status: Optional[int] = None
    encode_progress: Optional[int] = None


def cdn_thumbnail_time_ms(duration: Optional[float]) -> int:
    """Offset, in milliseconds, at which the processor should grab its thumbnail."""
    if duration is None:
        return 3000
    if duration < 3:
        return int(duration * 1000 / 2)
    if duration < 10:
        return 2000
    return 3000


class CdnVideoProcessor(ABC):
    """External service that ingests a video and produces a thumbnail."""

    @abstractmethod
    async def start_processing(
        self, title: str, source_url: str, duration: Optional[float] = None
    ) -> str:
        """
        Register the video and stream its bytes in.

        Returns:
            The processor's id for the video

        Raises:
            CdnProcessingError: the processor rejected the request
        """

    @abstractmethod
    async def get_video_status(self, guid: str) -> CdnVideoStatus: ...

    @abstractmethod
    def thumbnail_url(self, guid: str) -> str: ...

    @abstractmethod
    def playlist_url(self, guid: str) -> str: ...

    @abstractmethod
    async def thumbnail_available(self, guid: str) -> bool:
        """Whether the processor's thumbnail is actually reachable."""

    @abstractmethod
    async def delete_video(self, guid: str) -> bool:
        """Delete the processor's copy. Returns False on failure."""


class BunnyStreamClient(CdnVideoProcessor):
    """Bunny Stream video library client."""

    def __init__(
        self,
        library_id: str,
        api_key: str,
        cdn_hostname: str,
        api_url: str = "https://video.bunnycdn.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.library_id = library_id
        self.api_key = api_key
        self.cdn_hostname = cdn_hostname
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "AccessKey": self.api_key}

    def _videos_url(self, guid: Optional[str] = None) -> str:
        url = f"{self.api_url}/library/{self.library_id}/videos"
        return f"{url}/{guid}" if guid else url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.TimeoutException as e:
            raise CdnProcessingError(
                message="Video processor request timed out",
                metadata={"method": method, "url": url},
            ) from e
        except httpx.HTTPError as e:
            raise CdnProcessingError(
                metadata={"method": method, "url": url},
                debug_message=str(e),
            ) from e

        if response.is_error:
            raise CdnProcessingError(
                metadata={"method": method, "url": url, "status_code": response.status_code},
                debug_message=response.text[:500],
            )
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise CdnProcessingError(
                message="Video processor returned an unreadable response",
                metadata={"url": str(response.request.url), "status_code": response.status_code},
                debug_message=response.text[:500],
            ) from e
        if not isinstance(data, dict):
            raise CdnProcessingError(
                message="Video processor returned an unreadable response",
                metadata={"url": str(response.request.url), "status_code": response.status_code},
                debug_message=response.text[:500],
            )
        return data

    async def create_video(self, title: str, thumbnail_time_ms: int = 3000) -> str:
        """Create a video entry and return its guid."""
        response = await self._request(
            "POST",
            self._videos_url(),
            json={"title": title, "thumbnailTime": thumbnail_time_ms},
        )
        guid = self._json(response).get("guid")
        if not guid:
            raise CdnProcessingError(
                message="Video processor did not return an id",
                debug_message=response.text[:500],
            )
        logger.info(f"Created Bunny video {guid} for '{title}'")
        return guid

    async def upload_from_url(self, guid: str, source_url: str) -> None:
        """Stream the bytes behind ``source_url`` into the Bunny video."""
        try:
            async with self._client.stream("GET", source_url) as source:
                if source.is_error:
                    raise CdnProcessingError(
                        message="Source video could not be read",
                        metadata={"guid": guid, "status_code": source.status_code},
                    )
                await self._request(
                    "PUT",
                    self._videos_url(guid),
                    content=source.aiter_bytes(),
                )
        except httpx.HTTPError as e:
            raise CdnProcessingError(
                message="Source video could not be read",
                metadata={"guid": guid},
                debug_message=str(e),
            ) from e
        logger.info(f"Uploaded source bytes to Bunny video {guid}")

    async def start_processing(
        self, title: str, source_url: str, duration: Optional[float] = None
    ) -> str:
        guid = await self.create_video(title, cdn_thumbnail_time_ms(duration))
        await self.upload_from_url(guid, source_url)
        return guid

    async def get_video_status(self, guid: str) -> CdnVideoStatus:
        data = self._json(await self._request("GET", self._videos_url(guid)))
        raw_status = data.get("status")
        if raw_status == BUNNY_STATUS_FINISHED:
            state = CdnVideoState.FINISHED
        elif raw_status in BUNNY_STATUS_FAILED:
            state = CdnVideoState.FAILED
        else:
            state = CdnVideoState.PENDING
        return CdnVideoStatus(
            guid=guid,
            state=state,
            raw_status=raw_status,
            encode_progress=data.get("encodeProgress"),
        )

    def thumbnail_url(self, guid: str) -> str:
        return f"https://{self.cdn_hostname}/{guid}/thumbnail.jpg"

    def playlist_url(self, guid: str) -> str:
        return f"https://{self.cdn_hostname}/{guid}/playlist.m3u8"

    async def thumbnail_available(
        self, guid: str, attempts: int = 1, delay: float = 1.0
    ) -> bool:
        """HEAD the thumbnail; reachable means 2xx with an image content type."""
        url = self.thumbnail_url(guid)
        for attempt in range(attempts):
            try:
                response = await self._client.head(url)
                content_type = response.headers.get("content-type", "")
                if response.is_success and content_type.startswith("image/"):
                    return True
                logger.debug(
                    f"Thumbnail not ready for {guid}: "
                    f"{response.status_code} {content_type or 'no content-type'}"
                )
            except httpx.HTTPError as e:
                logger.debug(f"Thumbnail check failed for {guid}: {e}")
            if attempt < attempts - 1:
                await asyncio.sleep(delay * (2 ** attempt))
        return False

    async def delete_video(self, guid: str) -> bool:
        try:
            await self._request("DELETE", self._videos_url(guid))
        except CdnProcessingError as e:
            logger.warning(f"Failed to delete Bunny video {guid}: {e.debug_message or e.message}")
            return False
        logger.info(f"Deleted Bunny video {guid}")
        return True
