from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    database_url: str = "sqlite:///./portfolio_ai.db"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None
    debug: bool = False

    # AI provider configuration
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    analysis_model: str = "gpt-4o-mini"
    synthesis_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    provider_timeout_seconds: float = 120.0

    # Rate limiter capacities per content class
    image_concurrency: int = 10
    video_concurrency: int = 2
    text_concurrency: int = 5
    slot_timeout_seconds: Optional[float] = 300.0

    # Project level polling
    media_poll_interval_seconds: float = 10.0
    media_poll_attempts: int = 30
    media_retry_limit: int = 1

    # Portfolio level polling
    portfolio_poll_interval_seconds: float = 10.0
    portfolio_poll_attempts: int = 20
    completion_threshold: float = 0.7
    partial_after_attempts: Optional[int] = None
    settle_delay_seconds: float = 5.0

    reanalysis_cooldown_hours: float = 24.0
    drain_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"


class PipelineConfig(BaseModel):
    """Timing and capacity knobs for one analysis pipeline."""
    image_concurrency: int = Field(default=10, ge=1)
    video_concurrency: int = Field(default=2, ge=1)
    text_concurrency: int = Field(default=5, ge=1)
    slot_timeout: Optional[float] = 300.0

    media_poll_interval: float = Field(default=10.0, ge=0.0)
    media_poll_attempts: int = Field(default=30, ge=1)
    media_retry_limit: int = Field(default=1, ge=0)

    portfolio_poll_interval: float = Field(default=10.0, ge=0.0)
    portfolio_poll_attempts: int = Field(default=20, ge=1)
    completion_threshold: float = Field(default=0.7, gt=0.0, le=1.0)
    partial_after_attempts: Optional[int] = Field(default=None, ge=1)
    settle_delay: float = Field(default=5.0, ge=0.0)

    reanalysis_cooldown_hours: float = Field(default=24.0, ge=0.0)
    embedding_dimensions: int = Field(default=1536, ge=1)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PipelineConfig":
        return cls(
            image_concurrency=settings.image_concurrency,
            video_concurrency=settings.video_concurrency,
            text_concurrency=settings.text_concurrency,
            slot_timeout=settings.slot_timeout_seconds,
            media_poll_interval=settings.media_poll_interval_seconds,
            media_poll_attempts=settings.media_poll_attempts,
            media_retry_limit=settings.media_retry_limit,
            portfolio_poll_interval=settings.portfolio_poll_interval_seconds,
            portfolio_poll_attempts=settings.portfolio_poll_attempts,
            completion_threshold=settings.completion_threshold,
            partial_after_attempts=settings.partial_after_attempts,
            settle_delay=settings.settle_delay_seconds,
            reanalysis_cooldown_hours=settings.reanalysis_cooldown_hours,
            embedding_dimensions=settings.embedding_dimensions,
        )


settings = Settings()
