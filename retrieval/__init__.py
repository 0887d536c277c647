"""
Hybrid Retrieval Module.

This module implements:
- Vector similarity (cosine over precomputed embeddings)
- Lexical similarity (token-set Jaccard)
- Per-batch min-max normalization
- Candidate merge and weighted score fusion

Score fusion: score = w_vec * s_vec + w_lex * s_lex

Usage:
    from retrieval import CorpusSnapshot, HybridRetriever, fuse_and_rank

    snapshot = CorpusSnapshot.from_documents(documents)
    retriever = HybridRetriever()
    vec = retriever.score_vectors(query_embedding, snapshot)
"""

from .hybrid_retriever import CorpusSnapshot, HybridRetriever
from .lexical_scorer import lexical_similarity, tokenize
from .score_fusion import (
    Candidate,
    FusionWeights,
    NormalizedWeights,
    fuse_and_rank,
    merge_candidates,
    normalize_candidates,
    normalize_scores,
    rank_key,
)
from .vector_scorer import cosine_similarity

__all__ = [
    "CorpusSnapshot",
    "HybridRetriever",
    "lexical_similarity",
    "tokenize",
    "cosine_similarity",
    "Candidate",
    "FusionWeights",
    "NormalizedWeights",
    "normalize_scores",
    "merge_candidates",
    "normalize_candidates",
    "fuse_and_rank",
    "rank_key",
]
