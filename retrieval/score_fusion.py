"""
Score fusion utilities for hybrid ranking.

Combines per-signal scores into one ranking:
- Vector similarity (dense)
- Lexical overlap (token sets)
- Semantic judgment (applied later by the re-ranker)

Formula: fused = w_vec * norm_vec + w_lex * norm_lex [+ w_sem * semantic]
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np

from corpus import Document

logger = logging.getLogger(__name__)


@dataclass
class NormalizedWeights:
    """Weights rescaled to sum to 1 over the active signals."""

    vector: float
    lexical: float
    semantic: float = 0.0


@dataclass
class FusionWeights:
    """Caller-supplied, non-negative signal weights."""

    vector: float
    lexical: float
    semantic: Optional[float] = None

    def validate(self) -> None:
        for name in ("vector", "lexical", "semantic"):
            value = getattr(self, name)
            if value is not None and (value < 0 or not np.isfinite(value)):
                raise ValueError(f"{name} weight must be a non-negative number, got {value}")

    def normalized(self, include_semantic: bool) -> NormalizedWeights:
        """
        Rescale weights so the active ones sum to exactly 1.

        If the supplied weights sum to 0, every active signal gets an
        equal share.

        Args:
            include_semantic: Whether the semantic signal participates

        Returns:
            NormalizedWeights (semantic is 0.0 when not included)
        """
        self.validate()
        semantic = (self.semantic or 0.0) if include_semantic else 0.0
        total = self.vector + self.lexical + semantic

        if total == 0:
            share = 1.0 / (3 if include_semantic else 2)
            return NormalizedWeights(
                vector=share,
                lexical=share,
                semantic=share if include_semantic else 0.0,
            )

        return NormalizedWeights(
            vector=self.vector / total,
            lexical=self.lexical / total,
            semantic=semantic / total,
        )


@dataclass
class Candidate:
    """Per-query working record for one document."""

    document_id: str
    text: str
    attributes: Dict[str, Any]
    scan_index: int
    raw_vector_score: Optional[float] = None
    raw_lexical_score: Optional[float] = None
    norm_vector_score: float = 0.0
    norm_lexical_score: float = 0.0
    semantic_score: Optional[float] = None
    semantic_rationale: Optional[str] = None
    evidence: Optional[str] = None
    fused_score: float = 0.0
    final_score: float = 0.0
    degraded: bool = False
    degraded_reason: Optional[str] = None


def rank_key(candidate: Candidate):
    """Descending final score, ties broken by original scan order."""
    return (-candidate.final_score, candidate.scan_index)


def normalize_scores(scores: Iterable[float]) -> List[float]:
    """
    Min-max normalize one signal's scores to [0, 1] for the current batch.

    If every score is identical (including a single score), each one
    normalizes to 1.0.

    Args:
        scores: Raw scores in candidate order

    Returns:
        Normalized scores, same length and order
    """
    scores = np.asarray(list(scores), dtype=np.float64)
    if scores.size == 0:
        return []

    min_s = scores.min()
    max_s = scores.max()
    if max_s - min_s == 0:
        return [1.0] * len(scores)

    return [float(s) for s in (scores - min_s) / (max_s - min_s)]


def merge_candidates(
    documents: Mapping[str, Document],
    vector_scores: Mapping[str, float],
    lexical_scores: Mapping[str, float],
    scan_order: Mapping[str, int],
) -> List[Candidate]:
    """
    Join the two raw-score streams into one Candidate per document id.

    A document missing from one stream keeps None for that raw score
    (it normalizes as 0). Nothing that produced any score is dropped.

    Args:
        documents: {doc_id: Document}
        vector_scores: {doc_id: cosine} (documents with embeddings only)
        lexical_scores: {doc_id: jaccard}
        scan_order: {doc_id: position of first occurrence in the corpus}

    Returns:
        Candidates in scan order
    """
    merged: Dict[str, Candidate] = {}
    fallback_index = len(scan_order)

    for stream, field_name in (
        (vector_scores, "raw_vector_score"),
        (lexical_scores, "raw_lexical_score"),
    ):
        for doc_id, score in stream.items():
            candidate = merged.get(doc_id)
            if candidate is None:
                doc = documents.get(doc_id)
                candidate = Candidate(
                    document_id=doc_id,
                    text=doc.text if doc else "",
                    attributes=dict(doc.attributes) if doc else {},
                    scan_index=scan_order.get(doc_id, fallback_index),
                )
                merged[doc_id] = candidate
            setattr(candidate, field_name, score)

    return sorted(merged.values(), key=lambda c: (c.scan_index, c.document_id))


def normalize_candidates(candidates: List[Candidate]) -> List[Candidate]:
    """Fill normalized vector and lexical scores across the batch."""
    if not candidates:
        return candidates

    vec_norm = normalize_scores(c.raw_vector_score or 0.0 for c in candidates)
    lex_norm = normalize_scores(c.raw_lexical_score or 0.0 for c in candidates)

    for candidate, vec, lex in zip(candidates, vec_norm, lex_norm):
        candidate.norm_vector_score = vec
        candidate.norm_lexical_score = lex

    return candidates


def fuse_and_rank(
    candidates: List[Candidate],
    weights: NormalizedWeights,
) -> List[Candidate]:
    """
    Two-signal weighted fusion with a stable sort and id dedupe.

    Formula: fused = w_vec * norm_vec + w_lex * norm_lex

    Args:
        candidates: Normalized candidates
        weights: Normalized weights

    Returns:
        Provisional ranking, one entry per document id
    """
    for candidate in candidates:
        candidate.fused_score = (
            weights.vector * candidate.norm_vector_score
            + weights.lexical * candidate.norm_lexical_score
        )
        candidate.final_score = candidate.fused_score

    ranked = sorted(candidates, key=rank_key)

    seen = set()
    deduplicated = []
    for candidate in ranked:
        if candidate.document_id in seen:
            logger.debug(f"Dropping duplicate candidate: {candidate.document_id}")
            continue
        seen.add(candidate.document_id)
        deduplicated.append(candidate)

    return deduplicated
