import secrets
import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


def parse_csv(v: Any) -> list[str] | Any:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    return v


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "VideoAI"
    SECRET_KEY: str = secrets.token_urlsafe(32)
    FRONTEND_HOST: str = "http://localhost:8081"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    SENTRY_DSN: HttpUrl | None = None

    # MongoDB Configuration
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "videoai"

    # Redis Configuration (change feed)
    REDIS_URL: str = "redis://localhost:6379"

    # S3-compatible object storage
    S3_ACCESS_KEY: str | None = None
    S3_SECRET_KEY: str | None = None
    S3_REGION: str = "us-east-1"
    S3_USE_SSL: bool = True
    S3_ENDPOINT: str = "http://localhost:9000"
    S3_VIDEOS_BUCKET: str = "videos"
    S3_THUMBNAILS_BUCKET: str = "thumbnails"
    # One-time write URLs and time-limited read URLs
    UPLOAD_URL_EXPIRES_SECONDS: int = 60 * 60
    SIGNED_URL_EXPIRES_SECONDS: int = 60 * 60

    # Bunny Stream (CDN video processor)
    BUNNY_STREAM_LIBRARY_ID: str | None = None
    BUNNY_STREAM_API_KEY: str | None = None
    BUNNY_STREAM_CDN_HOSTNAME: str | None = None
    BUNNY_STREAM_API_URL: str = "https://video.bunnycdn.com"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cdn_enabled(self) -> bool:
        return bool(
            self.BUNNY_STREAM_LIBRARY_ID
            and self.BUNNY_STREAM_API_KEY
            and self.BUNNY_STREAM_CDN_HOSTNAME
        )

    # AI collaborators
    OPENAI_API_KEY: str | None = None
    OPENAI_TRANSCRIPTION_URL: str = "https://api.openai.com/v1/audio/transcriptions"
    OPENAI_TRANSCRIPTION_MODEL: str = "whisper-1"
    # Transcription API rejects larger payloads
    TRANSCRIPTION_MAX_BYTES: int = 25 * 1024 * 1024
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"

    # Media acquisition limits
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024
    MAX_DURATION_SECONDS: int = 30 * 60
    ALLOWED_VIDEO_TYPES: Annotated[list[str] | str, BeforeValidator(parse_csv)] = [
        "video/mp4",
        "video/quicktime",
        "video/mov",
        "video/x-msvideo",
        "video/avi",
        "video/webm",
    ]

    # Transport
    TRANSFER_TIMEOUT_SECONDS: float = 60.0
    TRANSFER_CHUNK_BYTES: int = 256 * 1024

    # Thumbnails
    FRAME_EXTRACTION_TIMEOUT_SECONDS: float = 15.0
    THUMBNAIL_WIDTH: int = 400
    THUMBNAIL_HEIGHT: int = 225
    THUMBNAIL_QUALITY: int = 80
    THUMBNAIL_MULTI_POSITION: bool = False
    UPLOAD_VERIFY_DELAY_SECONDS: float = 1.0
    PLACEHOLDER_THUMBNAIL_URL: str = "https://placehold.co/400x225/1f2937/ffffff.jpg?text=VideoAI"

    # Reconciliation
    POLL_INTERVAL_SECONDS: float = 10.0
    PLAYBACK_CACHE_SIZE: int = 20

    # Logging Configuration
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FORMAT: str = "json"  # "json" for production, "pretty" for development

    @model_validator(mode="after")
    def _check_thumbnail_box(self) -> Self:
        # Thumbnails are normalized to a 16:9 box
        if self.THUMBNAIL_WIDTH * 9 != self.THUMBNAIL_HEIGHT * 16:
            raise ValueError(
                f"THUMBNAIL_WIDTH x THUMBNAIL_HEIGHT must be 16:9, got "
                f"{self.THUMBNAIL_WIDTH}x{self.THUMBNAIL_HEIGHT}"
            )
        return self

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("S3_SECRET_KEY", self.S3_SECRET_KEY)

        return self


settings = Settings()  # type: ignore
