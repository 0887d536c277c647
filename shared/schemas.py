"""
Pydantic schemas for API request/response models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WeightsModel(BaseModel):
    """Signal weights; rescaled server-side to sum to 1."""

    vector: float = Field(..., ge=0, description="Weight for dense vector similarity")
    lexical: float = Field(..., ge=0, description="Weight for lexical overlap")
    semantic: Optional[float] = Field(
        default=None, ge=0, description="Weight for the semantic judge score"
    )


class RankRequest(BaseModel):
    """Request model for the ranking endpoint."""

    query_text: str = Field(default="", description="Query document text")
    query_embedding: Optional[List[float]] = Field(
        default=None, description="Precomputed query embedding"
    )
    weights: Optional[WeightsModel] = Field(
        default=None, description="Signal weights (server defaults if omitted)"
    )
    top_k: Optional[int] = Field(
        default=None, ge=1, le=100, description="Number of results to return"
    )
    rerank: bool = Field(default=True, description="Whether to apply semantic re-ranking")
    rerank_depth: Optional[int] = Field(
        default=None, ge=1, description="How many provisional results to judge"
    )


class ErrorInfo(BaseModel):
    """Stable error code and message."""

    code: str
    message: str


class RankedDocument(BaseModel):
    """Public view of a ranked candidate."""

    id: str
    text: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    norm_vector_score: float
    norm_lexical_score: float
    semantic_score: Optional[float] = None
    semantic_rationale: Optional[str] = None
    evidence: Optional[str] = None
    fused_score_final: float
    degraded: bool = False
    degraded_reason: Optional[str] = None


class RankResponse(BaseModel):
    """Response model for the ranking endpoint."""

    results: List[RankedDocument] = Field(default_factory=list)
    timings: Dict[str, float] = Field(default_factory=dict)
    reranked: bool = False
    degraded_count: int = 0
    errors: List[ErrorInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    corpus_available: bool
    document_count: int
    judge_configured: bool
    judge_circuit: Optional[str] = None
