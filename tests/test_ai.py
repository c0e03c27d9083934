import asyncio

import httpx
import pytest
from langchain_core.runnables import RunnableLambda

from videoai.core.exceptions import AIProcessingError
from videoai.llm.schemas import VideoInsights
from videoai.models import SummarizationResult, TranscriptionResult
from videoai.services import ai
from videoai.services.ai import AIProcessor, GeminiSummarizer, WhisperTranscriber

from tests.conftest import VIDEOS_BUCKET

WHISPER_URL = "https://api.openai.test/v1/audio/transcriptions"


def stub_extractor(monkeypatch, fn) -> None:
    monkeypatch.setattr(ai, "create_extractor", lambda llm, **kwargs: RunnableLambda(fn))


class StubTranscriber:
    def __init__(self, text: str = "we ran along the beach at sunset"):
        self.text = text
        self.calls = []

    async def transcribe(self, data, filename, content_type="video/mp4"):
        self.calls.append((data, filename, content_type))
        return TranscriptionResult(text=self.text, language="en", duration=12.0)


class StubSummarizer:
    async def summarize(self, transcript, title=None):
        return SummarizationResult(
            summary=f"{title}: a run on the beach.",
            tags=["beach", "running"],
            key_points=["sunset"],
            model_used="gemini-1.5-flash",
        )


@pytest.fixture
def video_server():
    served = {}

    def handler(request: httpx.Request) -> httpx.Response:
        served["url"] = str(request.url)
        return httpx.Response(200, content=b"\x00" * 2048)

    return served, httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_whisper_posts_multipart_and_parses_verbose_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "hello", "language": "english", "duration": 3.5})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        transcriber = WhisperTranscriber(api_key="sk-test", url=WHISPER_URL, client=client)
        result = await transcriber.transcribe(b"video", "clip.mp4")

    assert result.text == "hello"
    assert result.language == "english"
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b"whisper-1" in request.content
    assert b'filename="clip.mp4"' in request.content


async def test_whisper_error_is_typed():
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(lambda r: httpx.Response(429, text="rate limited"))
    ) as client:
        transcriber = WhisperTranscriber(api_key="sk-test", url=WHISPER_URL, client=client)
        with pytest.raises(AIProcessingError) as exc:
            await transcriber.transcribe(b"video", "clip.mp4")

    assert exc.value.metadata["status_code"] == 429


def test_summarizer_requires_a_key():
    with pytest.raises(ValueError):
        GeminiSummarizer(api_key=None)


async def test_summarizer_maps_extracted_insights(monkeypatch):
    insights = VideoInsights(summary="A beach run.", tags=["beach"], key_points=["sunset"])
    stub_extractor(monkeypatch, lambda prompt: {"responses": [insights]})

    summarizer = GeminiSummarizer(llm=object(), model="gemini-test")
    result = await summarizer.summarize("transcript text", title="Beach day")

    assert result.summary == "A beach run."
    assert result.tags == ["beach"]
    assert result.model_used == "gemini-test"


async def test_summarizer_empty_result(monkeypatch):
    stub_extractor(monkeypatch, lambda prompt: {"responses": []})

    summarizer = GeminiSummarizer(llm=object())
    with pytest.raises(AIProcessingError):
        await summarizer.summarize("transcript text")


async def test_summarizer_model_failure(monkeypatch):
    def explode(prompt):
        raise RuntimeError("quota exceeded")

    stub_extractor(monkeypatch, explode)

    summarizer = GeminiSummarizer(llm=object())
    with pytest.raises(AIProcessingError) as exc:
        await summarizer.summarize("transcript text")

    assert "quota exceeded" in exc.value.debug_message


async def test_process_stores_transcript_summary_and_tags(repository, storage, stored_video, video_server):
    served, client = video_server
    record = await stored_video(original_filename="beach.mp4", file_size=2048, user_tags=["friends"])
    transcriber = StubTranscriber()
    processor = AIProcessor(
        repository=repository,
        storage=storage,
        videos_bucket=VIDEOS_BUCKET,
        transcriber=transcriber,
        summarizer=StubSummarizer(),
        client=client,
    )

    await processor.process(record.id)
    await client.aclose()

    assert served["url"].startswith(f"https://storage.test/{VIDEOS_BUCKET}/{record.storage_path}")
    assert transcriber.calls[0][1] == "beach.mp4"
    assert repository.transcripts[0].content == "we ran along the beach at sunset"
    assert repository.summaries[0].content == "Sunset run: a run on the beach."
    saved = await repository.get(record.id)
    assert saved.ai_tags == ["beach", "running"]
    assert saved.tags == ["friends", "beach", "running"]


async def test_process_skips_summary_for_silent_video(repository, storage, stored_video, video_server):
    _, client = video_server
    record = await stored_video()
    processor = AIProcessor(
        repository=repository,
        storage=storage,
        videos_bucket=VIDEOS_BUCKET,
        transcriber=StubTranscriber(text="  "),
        summarizer=StubSummarizer(),
        client=client,
    )

    await processor.process(record.id)
    await client.aclose()

    assert len(repository.transcripts) == 1
    assert repository.summaries == []


async def test_process_skips_oversized_video(repository, storage, stored_video):
    record = await stored_video(file_size=30 * 1024 * 1024)
    transcriber = StubTranscriber()
    processor = AIProcessor(
        repository=repository, storage=storage, videos_bucket=VIDEOS_BUCKET, transcriber=transcriber
    )

    await processor.process(record.id)

    assert transcriber.calls == []
    assert storage.calls == []


async def test_download_limit_is_enforced(repository, storage, stored_video, video_server):
    _, client = video_server
    record = await stored_video()
    processor = AIProcessor(
        repository=repository,
        storage=storage,
        videos_bucket=VIDEOS_BUCKET,
        transcriber=StubTranscriber(),
        max_bytes=1024,
        client=client,
    )

    with pytest.raises(AIProcessingError) as exc:
        await processor.process(record.id)
    await client.aclose()

    assert exc.value.error_code == "AI_INPUT_TOO_LARGE"


async def test_failures_never_touch_video_status(repository, storage, stored_video, videoai_logs):
    record = await stored_video()
    storage.signing_fails = True
    processor = AIProcessor(
        repository=repository, storage=storage, videos_bucket=VIDEOS_BUCKET, transcriber=StubTranscriber()
    )

    task = processor.schedule(record.id)
    await asyncio.wait([task])
    await asyncio.sleep(0)

    assert isinstance(task.exception(), RuntimeError)
    assert "Unexpected error: signature service unavailable" in videoai_logs.text

    saved = await repository.get(record.id)
    assert saved.status == record.status
    assert saved.thumb_status == record.thumb_status


def test_schedule_disabled_without_transcriber(repository, storage):
    processor = AIProcessor(repository=repository, storage=storage, videos_bucket=VIDEOS_BUCKET)

    assert not processor.enabled
    assert processor.schedule("any") is None
