"""
Configuration management for Article Insight using environment variables
"""
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


class LLMConfig(BaseModel):
    api_url: str = Field(default_factory=lambda: os.getenv("LLM_API_URL", "https://api.openai.com/v1"))
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"))
    temperature: float = Field(default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.3")))
    max_tokens: int = Field(default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "4000")))
    timeout: int = Field(default_factory=lambda: int(os.getenv("LLM_TIMEOUT", "120")))


class AnalyzerConfig(BaseModel):
    """Strategy thresholds for SmartAnalyzer (all lengths in characters)"""
    short_threshold: int = Field(default_factory=lambda: int(os.getenv("SHORT_ARTICLE_THRESHOLD", "6000")))
    segment_threshold: int = Field(default_factory=lambda: int(os.getenv("SEGMENT_ARTICLE_THRESHOLD", "12000")))
    segment_max_length: int = Field(default_factory=lambda: int(os.getenv("SEGMENT_MAX_LENGTH", "3000")))
    similarity_threshold: float = Field(default_factory=lambda: float(os.getenv("POINT_SIMILARITY_THRESHOLD", "0.8")))

    @field_validator("segment_threshold")
    @classmethod
    def validate_segment_threshold(cls, v, info):
        short = info.data.get("short_threshold")
        if short is not None and v < short:
            raise ValueError(
                f"SEGMENT_ARTICLE_THRESHOLD ({v}) must not be below SHORT_ARTICLE_THRESHOLD ({short})"
            )
        return v

    @field_validator("segment_max_length")
    @classmethod
    def validate_segment_max_length(cls, v):
        if v <= 0:
            raise ValueError("SEGMENT_MAX_LENGTH must be positive")
        return v


class QueueConfig(BaseModel):
    preliminary_concurrency: int = Field(default_factory=lambda: int(os.getenv("PRELIMINARY_WORKER_CONCURRENCY", "3")))
    deep_analysis_concurrency: int = Field(default_factory=lambda: int(os.getenv("DEEP_ANALYSIS_WORKER_CONCURRENCY", "3")))
    retry_base_delay_seconds: int = Field(default_factory=lambda: int(os.getenv("QUEUE_RETRY_BASE_DELAY_SECONDS", "5")))
    poll_interval_seconds: int = Field(default_factory=lambda: int(os.getenv("QUEUE_POLL_INTERVAL_SECONDS", "10")))
    cleanup_days: int = Field(default_factory=lambda: int(os.getenv("QUEUE_CLEANUP_DAYS", "7")))
    preliminary_min_value: int = Field(default_factory=lambda: int(os.getenv("PRELIMINARY_MIN_VALUE", "3")))


class EmbeddingConfig(BaseModel):
    enabled: bool = Field(default_factory=lambda: os.getenv("ENABLE_EMBEDDINGS", "false").lower() == "true")
    model: str = Field(default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"))
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv("EMBEDDING_API_KEY") or os.getenv("OPENAI_API_KEY"))
    base_url: Optional[str] = Field(default_factory=lambda: os.getenv("EMBEDDING_BASE_URL"))


class LoggingConfig(BaseModel):
    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    file: str = Field(default_factory=lambda: os.getenv("LOG_FILE", "logs/article-insight.log"))
    rotation: str = Field(default_factory=lambda: os.getenv("LOG_ROTATION", "10 MB"))
    retention: str = Field(default_factory=lambda: os.getenv("LOG_RETENTION", "30 days"))


class Config(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, **data):
        # Initialize with environment variables (Pydantic handles this via Field defaults)
        super().__init__(**data)

        Path(self.logging.file).parent.mkdir(parents=True, exist_ok=True)
