"""
Configuration module for the ranking service.
Manages environment variables and per-component defaults.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class RankingConfig:
    """Fusion defaults - used only where a request leaves a field unset."""
    default_top_k: int = field(default_factory=lambda: int(os.getenv("RANK_TOP_K", "6")))
    vector_weight: float = field(default_factory=lambda: float(os.getenv("RANK_VECTOR_WEIGHT", "0.6")))
    lexical_weight: float = field(default_factory=lambda: float(os.getenv("RANK_LEXICAL_WEIGHT", "0.3")))
    semantic_weight: float = field(default_factory=lambda: float(os.getenv("RANK_SEMANTIC_WEIGHT", "0.1")))
    scoring_workers: int = field(default_factory=lambda: int(os.getenv("RANK_SCORING_WORKERS", "4")))


@dataclass
class RerankConfig:
    """Semantic re-ranking limits."""
    max_concurrency: int = field(default_factory=lambda: int(os.getenv("RERANK_MAX_CONCURRENCY", "5")))
    timeout_seconds: float = field(default_factory=lambda: float(os.getenv("RERANK_TIMEOUT_SECONDS", "10")))
    excerpt_chars: int = 400
    depth_multiplier: int = 2
    budget_seconds: Optional[float] = field(default_factory=lambda: _optional_float("RERANK_BUDGET_SECONDS"))
    cancellation_policy: str = field(
        default_factory=lambda: os.getenv("RERANK_CANCELLATION_POLICY", "partial")
    )


@dataclass
class JudgeConfig:
    """LLM judge configuration."""
    model: str = field(default_factory=lambda: os.getenv("JUDGE_MODEL", "gpt-4.1-mini"))
    temperature: float = 0.0
    max_tokens: int = 200


@dataclass
class BreakerConfig:
    """Circuit breaker thresholds for judge calls."""
    failure_threshold: int = 3
    reset_timeout: float = 30.0
    half_open_max_calls: int = 2


@dataclass
class Settings:
    """Main application settings loaded from environment."""

    # OpenAI settings
    OPENAI_API_KEY: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))

    # Corpus snapshot (JSON array of documents)
    CORPUS_PATH: Optional[str] = field(default_factory=lambda: os.getenv("CORPUS_PATH"))

    # Application settings
    DEBUG: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Nested configs
    ranking: RankingConfig = field(default_factory=RankingConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    judge: JudgeConfig = field(default_factory=JudgeConfig)
    breaker: BreakerConfig = field(default_factory=BreakerConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
