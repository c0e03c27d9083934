"""AI enrichment: transcription with Whisper, summary and tags with Gemini.

Runs after an upload completes, fire-and-forget. Failures are logged and
never touch the video or thumbnail status.
"""

import asyncio
from typing import Optional

import httpx
from langchain_core.prompts import (
    ChatPromptTemplate,
    HumanMessagePromptTemplate,
    SystemMessagePromptTemplate,
)
from langchain_google_genai import ChatGoogleGenerativeAI
from trustcall import create_extractor

from videoai.core.exceptions import AIProcessingError, NotFoundException
from videoai.core.logger import get_logger, log_exception
from videoai.llm.prompts import VIDEO_INSIGHTS_HUMAN_PROMPT, VIDEO_INSIGHTS_SYSTEM_PROMPT
from videoai.llm.schemas import VideoInsights
from videoai.models import (
    SummarizationResult,
    SummaryBase,
    TranscriptBase,
    TranscriptionResult,
)
from videoai.services.repository import VideoRepository
from videoai.services.storage import ObjectStorage

logger = get_logger(__name__)


class WhisperTranscriber:
    """OpenAI audio transcription client."""

    def __init__(
        self,
        api_key: str,
        url: str = "https://api.openai.com/v1/audio/transcriptions",
        model: str = "whisper-1",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self._client = client

    async def transcribe(
        self, data: bytes, filename: str, content_type: str = "video/mp4"
    ) -> TranscriptionResult:
        """
        Transcribe the audio track of a video.

        Raises:
            AIProcessingError: the API call failed or returned no text
        """
        headers = {"Authorization": f"Bearer {self.api_key}"}
        files = {"file": (filename, data, content_type)}
        form = {"model": self.model, "response_format": "verbose_json"}

        try:
            if self._client is not None:
                response = await self._client.post(self.url, headers=headers, files=files, data=form)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, headers=headers, files=files, data=form)
        except httpx.HTTPError as e:
            raise AIProcessingError(
                message="Transcription request failed", debug_message=str(e)
            ) from e

        if response.is_error:
            raise AIProcessingError(
                message="Transcription request failed",
                metadata={"status_code": response.status_code},
                debug_message=response.text[:500],
            )

        result = response.json()
        return TranscriptionResult(
            text=result.get("text", ""),
            language=result.get("language"),
            duration=result.get("duration"),
        )


class GeminiSummarizer:
    """Summary, tags and key points from a transcript via LangChain and trustcall."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gemini-1.5-flash", llm=None):
        if llm is None and not api_key:
            raise ValueError("GEMINI_API_KEY is required for summarization")

        self.model_name = model
        self.llm = llm or ChatGoogleGenerativeAI(
            model=model,
            google_api_key=api_key,
            temperature=0,
            max_retries=2,
        )

        self.prompt = ChatPromptTemplate.from_messages([
            SystemMessagePromptTemplate.from_template(VIDEO_INSIGHTS_SYSTEM_PROMPT),
            HumanMessagePromptTemplate.from_template(VIDEO_INSIGHTS_HUMAN_PROMPT),
        ])

        self.chain = self.prompt | create_extractor(
            self.llm,
            tools=[VideoInsights],
            tool_choice="VideoInsights",
        )

    async def summarize(self, transcript: str, title: Optional[str] = None) -> SummarizationResult:
        """
        Raises:
            AIProcessingError: the model call failed or returned nothing usable
        """
        try:
            result = await self.chain.ainvoke({
                "title": title or "Untitled",
                "transcript": transcript,
            })
        except Exception as e:
            raise AIProcessingError(
                message="Summarization request failed", debug_message=str(e)
            ) from e

        if not result.get("responses"):
            raise AIProcessingError(message="Summarization returned no result")

        insights: VideoInsights = result["responses"][0]
        return SummarizationResult(
            summary=insights.summary,
            tags=insights.tags,
            key_points=insights.key_points,
            model_used=self.model_name,
        )


class AIProcessor:
    """Schedules transcription and summarization for uploaded videos."""

    def __init__(
        self,
        repository: VideoRepository,
        storage: ObjectStorage,
        videos_bucket: str,
        transcriber: Optional[WhisperTranscriber] = None,
        summarizer: Optional[GeminiSummarizer] = None,
        max_bytes: int = 25 * 1024 * 1024,
        read_url_expires_seconds: int = 3600,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.videos_bucket = videos_bucket
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.max_bytes = max_bytes
        self.read_url_expires_seconds = read_url_expires_seconds
        self._client = client
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.transcriber is not None

    def schedule(self, video_id: str) -> Optional[asyncio.Task]:
        """Start processing in the background. Returns None when AI is not configured."""
        if not self.enabled:
            logger.debug(f"AI processing disabled, skipping {video_id}")
            return None

        task = asyncio.create_task(self.process(video_id))
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(video_id, t))
        return task

    def _on_done(self, video_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_exception(logger, exc, extra_context={"video_id": video_id, "stage": "ai"})

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _download(self, url: str) -> bytes:
        async def read(client: httpx.AsyncClient) -> bytes:
            chunks: list[bytes] = []
            size = 0
            async with client.stream("GET", url) as response:
                if response.is_error:
                    raise AIProcessingError(
                        message="Video could not be downloaded for transcription",
                        metadata={"status_code": response.status_code},
                    )
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise AIProcessingError(
                            error_code="AI_INPUT_TOO_LARGE",
                            message="Video is too large for transcription",
                            metadata={"max_bytes": self.max_bytes},
                        )
                    chunks.append(chunk)
            return b"".join(chunks)

        try:
            if self._client is not None:
                return await read(self._client)
            async with httpx.AsyncClient(timeout=60.0) as client:
                return await read(client)
        except httpx.HTTPError as e:
            raise AIProcessingError(
                message="Video could not be downloaded for transcription",
                debug_message=str(e),
            ) from e

    async def process(self, video_id: str) -> None:
        """Transcribe, summarize and store AI tags for one video."""
        record = await self.repository.get(video_id)
        if record is None:
            raise NotFoundException(resource_type="video", resource_id=video_id)

        if record.file_size and record.file_size > self.max_bytes:
            logger.info(f"Skipping AI processing for {video_id}: {record.file_size} bytes")
            return

        url = await self.storage.presigned_get_url(
            self.videos_bucket, record.storage_path, self.read_url_expires_seconds
        )
        data = await self._download(url)

        transcription = await self.transcriber.transcribe(
            data,
            record.original_filename or "video.mp4",
            record.content_type or "video/mp4",
        )
        await self.repository.save_transcript(
            TranscriptBase(
                video_id=video_id,
                content=transcription.text,
                language=transcription.language,
            )
        )
        logger.info(f"Stored transcript for {video_id} ({len(transcription.text)} chars)")

        if self.summarizer is None or not transcription.text.strip():
            return

        summary = await self.summarizer.summarize(transcription.text, record.title)
        await self.repository.save_summary(
            SummaryBase(
                video_id=video_id,
                content=summary.summary,
                model_used=summary.model_used,
                key_points=summary.key_points,
            )
        )
        await self.repository.update_tags(video_id, ai_tags=summary.tags)
        logger.info(f"Stored summary and {len(summary.tags)} AI tags for {video_id}")
