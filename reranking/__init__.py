"""
Semantic Re-ranking Module.

Reranking is cost-effective accuracy.

Key points:
- External judge scores (query, excerpt) pairs in [0, 1]
- Only a bounded prefix of the provisional ranking is judged
- Judge failures degrade a candidate, never the whole query

Usage:
    from reranking import OpenAIJudge, SemanticReranker

    reranker = SemanticReranker(OpenAIJudge())
    outcome = await reranker.rerank(query, candidates, weights, depth=10)
"""

from .semantic_judge import (
    OpenAIJudge,
    Parsed,
    SemanticJudge,
    Unparsed,
    parse_judgement,
)
from .semantic_reranker import (
    CancellationPolicy,
    JudgeFailure,
    JudgeSuccess,
    RerankOutcome,
    SemanticReranker,
)

__all__ = [
    "SemanticJudge",
    "OpenAIJudge",
    "Parsed",
    "Unparsed",
    "parse_judgement",
    "SemanticReranker",
    "RerankOutcome",
    "CancellationPolicy",
    "JudgeSuccess",
    "JudgeFailure",
]
