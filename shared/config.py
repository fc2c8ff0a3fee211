"""
Process settings for DRIFT retrieval.
Manages environment variables for providers, logging and engine defaults.
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration - entry-point vectors must match the index."""
    model_name: str = "all-MiniLM-L6-v2"
    normalize: bool = True
    dimension: int = 384  # Matches all-MiniLM-L6-v2
    max_seq_length: int = 512


@dataclass
class LLMConfig:
    """LLM configuration for inference and response synthesis."""
    model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4.1-mini"))
    temperature: float = 0.0
    max_tokens: int = 1024
    timeout: int = 30


@dataclass
class Settings:
    """Main settings loaded from environment."""

    # OpenAI settings
    OPENAI_API_KEY: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))

    # Application settings
    DEBUG: bool = field(default_factory=lambda: _env_bool("DEBUG", "false"))
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Engine defaults, kept as raw strings; DriftConfig.from_settings parses and
    # validates them so a bad value names its variable
    DRIFT_ENTRY_POINT_COUNT: str = field(
        default_factory=lambda: os.getenv("DRIFT_ENTRY_POINT_COUNT", "3")
    )
    DRIFT_MAX_TRAVERSAL_DEPTH: str = field(
        default_factory=lambda: os.getenv("DRIFT_MAX_TRAVERSAL_DEPTH", "3")
    )
    DRIFT_TRAVERSAL_DIRECTION: str = field(
        default_factory=lambda: os.getenv("DRIFT_TRAVERSAL_DIRECTION", "bidirectional")
    )
    DRIFT_TOP_K_PATHS: str = field(
        default_factory=lambda: os.getenv("DRIFT_TOP_K_PATHS", "5")
    )
    DRIFT_MIN_PATH_SCORE: str = field(
        default_factory=lambda: os.getenv("DRIFT_MIN_PATH_SCORE", "0.3")
    )
    DRIFT_USE_INFERENCE: bool = field(
        default_factory=lambda: _env_bool("DRIFT_USE_INFERENCE", "true")
    )
    DRIFT_INFERENCE_STRATEGY: str = field(
        default_factory=lambda: os.getenv("DRIFT_INFERENCE_STRATEGY", "semantic")
    )
    INFERENCE_CACHE_SIZE: str = field(
        default_factory=lambda: os.getenv("INFERENCE_CACHE_SIZE", "1000")
    )

    # Nested configs
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and host processes."""
    level = level or get_settings().LOG_LEVEL
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
