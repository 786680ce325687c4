from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "worker"

    DATABASE_URL: str = "sqlite:///./meeting_pipeline.db"

    # ------------------------------------------------------------------
    # Redis / RQ
    # ------------------------------------------------------------------
    REDIS_URL: str = "redis://redis:6379/0"
    JOB_MAX_ATTEMPTS: PositiveInt = 3
    JOB_BACKOFF_BASE_SEC: float = 2.0
    JOB_TIMEOUT_SEC: PositiveInt = 1800
    TELEMETRY_LOG_INTERVAL_SEC: PositiveInt = 60
    METRICS_PORT: Optional[PositiveInt] = None

    # ------------------------------------------------------------------
    # Object storage
    # ------------------------------------------------------------------
    STORAGE_BACKEND: Literal["s3", "fs"] = "s3"
    FS_STORAGE_DIR: str = "storage"

    S3_ENDPOINT: Optional[str] = None
    S3_REGION: str = "us-east-1"
    S3_BUCKET: Optional[str] = None
    S3_ACCESS_KEY_ID: Optional[str] = None
    S3_SECRET_ACCESS_KEY: Optional[str] = None
    S3_FORCE_PATH_STYLE: bool = True
    S3_SIGNED_DOWNLOAD_EXPIRES_SEC: PositiveInt = 900
    S3_SIGNED_UPLOAD_EXPIRES_SEC: PositiveInt = 900

    # ------------------------------------------------------------------
    # Audio retention
    # ------------------------------------------------------------------
    AUDIO_RETENTION_ENABLED: bool = False
    AUDIO_RETENTION_DAYS: PositiveInt = 30
    AUDIO_RETENTION_SWEEP_MINUTES: PositiveInt = 60
    AUDIO_RETENTION_BATCH_SIZE: PositiveInt = 100

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------
    TRANSCRIPTION_PROVIDER: Literal["mock", "managed", "local"] = "mock"

    DEEPGRAM_API_KEY: Optional[str] = None
    DEEPGRAM_MODEL: str = "nova-2"
    DEEPGRAM_LANGUAGE: Optional[str] = None
    DEEPGRAM_ENDPOINT: str = "https://api.deepgram.com/v1/listen"
    DEEPGRAM_TIMEOUT_SEC: PositiveInt = 300

    LOCAL_ASR_ENDPOINT: Optional[str] = None
    LOCAL_ASR_API_KEY: Optional[str] = None
    LOCAL_ASR_TIMEOUT_MS: PositiveInt = 120000

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------
    LOCAL_NOTES_PROVIDER: Literal["heuristic", "ollama", "openai"] = "heuristic"

    OLLAMA_ENDPOINT: str = "http://localhost:11434/api/generate"
    OLLAMA_MODEL: str = "llama3.1"
    OLLAMA_TIMEOUT_MS: PositiveInt = 120000

    OPENAI_API_KEY: Optional[str] = None
    LLM_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_MS: PositiveInt = 120000

    def missing_provider_settings(self) -> list[str]:
        """Names of settings the selected backends need but do not have."""
        missing: list[str] = []
        if self.TRANSCRIPTION_PROVIDER == "managed" and not self.DEEPGRAM_API_KEY:
            missing.append("DEEPGRAM_API_KEY")
        if self.TRANSCRIPTION_PROVIDER == "local" and not self.LOCAL_ASR_ENDPOINT:
            missing.append("LOCAL_ASR_ENDPOINT")
        if self.LOCAL_NOTES_PROVIDER == "openai" and not self.OPENAI_API_KEY:
            missing.append("OPENAI_API_KEY")
        if self.TRANSCRIPTION_PROVIDER != "mock" and self.STORAGE_BACKEND == "s3":
            for name in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
                if not getattr(self, name):
                    missing.append(name)
        return missing


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, parsed once on first use."""
    return Settings()
