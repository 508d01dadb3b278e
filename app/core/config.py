"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI (transcription, speech synthesis, call summaries)
    openai_api_key: str
    openai_summary_model: str = "gpt-4o-mini"
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "alloy"

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str

    # Database
    database_url: str

    # Public URL Twilio uses to reach this service (falls back to the request URL)
    base_url: Optional[str] = None

    # Response-generation backend
    agent_backend_url: str = "http://localhost:3001"
    generation_timeout_seconds: float = 90.0

    # Call flow
    hold_music_url: str = "http://com.twilio.music.classical.s3.amazonaws.com/BusyStrings.mp3"
    max_turns: int = 40
    max_consecutive_failures: int = 3
    record_max_length: int = 30
    record_timeout: int = 3

    # In-memory state lifetimes
    audio_cache_ttl_seconds: float = 300.0
    idempotency_ttl_seconds: float = 300.0
    session_ttl_seconds: float = 7200.0
    housekeeping_interval_seconds: float = 60.0

    # Cross-call memory
    caller_history_limit: int = 5
    caller_history_turns: int = 4

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
