"""
Ranking Pipeline Module.

Sequences scoring, merge, normalization, fusion, optional semantic
re-ranking and top-K truncation for one query.

Usage:
    from pipeline import RankingPipeline, RankingRequest

    pipeline = RankingPipeline(corpus)
    result = pipeline.run_sync(RankingRequest("as a user I want login", [1.0, 0.0]))
"""

from .ranking_pipeline import PipelinePhase, RankingPipeline, RankingRequest, RankingResult

__all__ = [
    "PipelinePhase",
    "RankingPipeline",
    "RankingRequest",
    "RankingResult",
]
