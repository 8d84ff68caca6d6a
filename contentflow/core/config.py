"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from typing import List, Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # Application Configuration
    # ================================
    APP_NAME: str = "contentflow"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = True

    # ================================
    # Redis Configuration
    # ================================
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5

    # ================================
    # Stream / Consumer Configuration
    # ================================
    CONTENT_STREAM_KEY: str = "content:stream"
    FEEDBACK_STREAM_KEY: str = "feedback:stream"
    CONSUMER_GROUP: str = "content-processors"
    CONSUMER_NAME_PREFIX: str = "processor"
    CONSUMER_BATCH_SIZE: int = Field(default=10, ge=1)
    CONSUMER_BLOCK_MS: int = Field(default=1000, ge=0)
    CONSUMER_IDLE_SLEEP_SECONDS: float = 1.0
    CONSUMER_ERROR_SLEEP_SECONDS: float = 5.0
    # Pending entries idle longer than this are reclaimed from dead consumers
    CONSUMER_CLAIM_IDLE_MS: int = 60_000
    CONSUMER_CLAIM_INTERVAL_SECONDS: float = 30.0

    # ================================
    # Retry Configuration
    # ================================
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    RETRY_BASE_DELAY_SECONDS: float = 0.2
    RETRY_MAX_DELAY_SECONDS: float = 5.0

    # ================================
    # Content Store Configuration
    # ================================
    CONTENT_KEY_PREFIX: str = "content:"
    FEEDBACK_KEY_PREFIX: str = "feedback:"
    PROCESSED_KEY_PREFIX: str = "processed:"
    PROCESSED_ID_TTL_SECONDS: int = 86_400  # 24 hours
    UNIQUE_VISITORS_KEY: str = "visitors:unique"

    # ================================
    # Embedding Configuration
    # ================================
    EMBEDDING_DIMENSION: int = 384
    EMBEDDING_FALLBACK_MODE: Literal["hashed", "random"] = "hashed"

    # ================================
    # Vector Index Configuration
    # ================================
    VECTOR_INDEX_NAME: str = "idx:content_vectors"
    VECTOR_KEY_PREFIX: str = "vector:"
    VECTOR_DISTANCE_METRIC: Literal["COSINE", "L2", "IP"] = "COSINE"
    VECTOR_TEXT_PREVIEW_CHARS: int = 500
    SIMILARITY_THRESHOLD: float = Field(default=0.7, ge=0.0, le=1.0)
    SEARCH_DEFAULT_LIMIT: int = 10

    # ================================
    # Metrics Configuration
    # ================================
    METRICS_RETENTION_MS: int = 86_400_000  # 24 hours
    METRICS_LABELS: str = "type=content_moderation"

    @field_validator("METRICS_LABELS")
    @classmethod
    def validate_labels(cls, v: str) -> str:
        """Labels must be comma-separated key=value pairs."""
        for pair in filter(None, (p.strip() for p in v.split(","))):
            if "=" not in pair:
                raise ValueError(f"Invalid metric label '{pair}', expected key=value")
        return v

    @property
    def metrics_labels_dict(self) -> dict[str, str]:
        """Parse METRICS_LABELS into a dict."""
        labels = {}
        for pair in filter(None, (p.strip() for p in self.METRICS_LABELS.split(","))):
            key, value = pair.split("=", 1)
            labels[key.strip()] = value.strip()
        return labels

    # ================================
    # Duplicate Detection
    # ================================
    DUPLICATE_FILTER_KEY: str = "content_hashes"
    DUPLICATE_USE_BLOOM: bool = True
    BLOOM_ERROR_RATE: float = 0.001
    BLOOM_CAPACITY: int = 100_000

    # ================================
    # Event Publishing
    # ================================
    EVENTS_CHANNEL: str = "content:processed"
    LOCAL_EVENT_QUEUE_SIZE: int = 1000
    EVENT_TEXT_PREVIEW_CHARS: int = 100

    # ================================
    # Submission Validation
    # ================================
    SUBMISSION_MAX_CHARS: int = 5000
    BULK_SUBMIT_MAX: int = Field(default=50, ge=1)
    ALLOWED_CATEGORIES: str = "review,comment,feedback,support,general"

    @property
    def allowed_categories_list(self) -> List[str]:
        """Parse ALLOWED_CATEGORIES into a list."""
        return [item.strip() for item in self.ALLOWED_CATEGORIES.split(",") if item.strip()]

    # ================================
    # Logging Configuration
    # ================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


# Global settings instance
settings = Settings()
