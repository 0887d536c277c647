"""
Ranking pipeline orchestrator.

Runs one query end to end against a full corpus snapshot:

    LOAD_CORPUS -> SCORE_VECTOR -> SCORE_LEXICAL -> MERGE_NORMALIZE
        -> FUSE_RANK -> (SEMANTIC_RERANK) -> TRUNCATE

Each phase completes before the next begins. Wall time per phase is
reported as metadata and never affects the ranking.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from corpus import CorpusSource
from deployment.circuit_breaker import CircuitBreaker
from monitoring import LatencyCollector, PhaseTimings
from reranking import CancellationPolicy, SemanticJudge, SemanticReranker
from retrieval import (
    Candidate,
    CorpusSnapshot,
    FusionWeights,
    HybridRetriever,
    fuse_and_rank,
    merge_candidates,
    normalize_candidates,
)
from shared.config import RankingConfig, RerankConfig
from shared.errors import CorpusUnavailableError, InvalidQueryError, RankingError

logger = logging.getLogger(__name__)


class PipelinePhase(Enum):
    """Pipeline phases, in execution order."""

    LOAD_CORPUS = "load_corpus"
    SCORE_VECTOR = "score_vector"
    SCORE_LEXICAL = "score_lexical"
    MERGE_NORMALIZE = "merge_normalize"
    FUSE_RANK = "fuse_rank"
    SEMANTIC_RERANK = "semantic_rerank"
    TRUNCATE = "truncate"


@dataclass
class RankingRequest:
    """One ranking query. Unset fields fall back to RankingConfig."""

    query_text: str
    query_embedding: Optional[Sequence[float]] = None
    weights: Optional[FusionWeights] = None
    top_k: Optional[int] = None
    rerank: bool = True
    rerank_depth: Optional[int] = None


@dataclass
class RankingResult:
    """Ranked top-K plus per-query metadata."""

    candidates: List[Candidate]
    timings: PhaseTimings
    phases: List[PipelinePhase] = field(default_factory=list)
    reranked: bool = False
    degraded_count: int = 0
    cancelled: bool = False


@contextmanager
def _timed(timings: PhaseTimings, phases: List[PipelinePhase], phase: PipelinePhase):
    start = time.perf_counter()
    try:
        yield
    finally:
        timings.phases[phase.value] = (time.perf_counter() - start) * 1000
        phases.append(phase)


class RankingPipeline:
    """
    Hybrid ranking over a corpus snapshot.

    Usage:
        pipeline = RankingPipeline(InMemoryCorpus(docs), judge=OpenAIJudge())
        result = await pipeline.run(RankingRequest("as a user I want login", [1.0, 0.0]))

        for candidate in result.candidates:
            print(candidate.document_id, candidate.final_score)
    """

    def __init__(
        self,
        corpus: CorpusSource,
        judge: Optional[SemanticJudge] = None,
        config: Optional[RankingConfig] = None,
        rerank_config: Optional[RerankConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        collector: Optional[LatencyCollector] = None,
    ):
        """
        Args:
            corpus: Source of the document snapshot
            judge: Semantic judge; re-ranking is disabled without one
            config: Weight and top-K defaults
            rerank_config: Re-ranker limits and cancellation policy
            breaker: Optional circuit breaker for judge calls
            collector: Optional latency collector
        """
        self.corpus = corpus
        self.config = config or RankingConfig()
        self.rerank_config = rerank_config or RerankConfig()
        self.collector = collector
        self.retriever = HybridRetriever(max_workers=self.config.scoring_workers)
        self.reranker = (
            SemanticReranker(
                judge,
                max_concurrency=self.rerank_config.max_concurrency,
                timeout_seconds=self.rerank_config.timeout_seconds,
                excerpt_chars=self.rerank_config.excerpt_chars,
                budget_seconds=self.rerank_config.budget_seconds,
                cancellation_policy=CancellationPolicy(self.rerank_config.cancellation_policy),
                breaker=breaker,
            )
            if judge is not None
            else None
        )

    async def run(
        self,
        request: RankingRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RankingResult:
        """
        Rank the corpus for one query.

        Args:
            request: Query, weights and top-K
            cancel_event: Set to cancel outstanding judge calls

        Returns:
            RankingResult with at most top_k candidates

        Raises:
            InvalidQueryError: Blank query, negative weights or top_k < 1
            CorpusUnavailableError: Corpus listing failed
            QueryCancelledError: Cancelled under the fail policy
        """
        try:
            result = await self._run(request, cancel_event)
        except RankingError as e:
            if self.collector is not None:
                self.collector.record_failure(e.code)
            raise

        if self.collector is not None:
            self.collector.record(result.timings)
        return result

    def run_sync(self, request: RankingRequest) -> RankingResult:
        """Run the pipeline from synchronous code."""
        return asyncio.run(self.run(request))

    async def _run(
        self,
        request: RankingRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> RankingResult:
        weights, top_k = self._validate(request)
        query_text = request.query_text

        timings = PhaseTimings()
        phases: List[PipelinePhase] = []
        started = time.perf_counter()

        with _timed(timings, phases, PipelinePhase.LOAD_CORPUS):
            snapshot = await self._load_snapshot()

        if len(snapshot) == 0:
            logger.info("Corpus snapshot is empty; returning no results")
            timings.total_ms = (time.perf_counter() - started) * 1000
            return RankingResult(candidates=[], timings=timings, phases=phases)

        with _timed(timings, phases, PipelinePhase.SCORE_VECTOR):
            vector_scores = await asyncio.to_thread(
                self.retriever.score_vectors, request.query_embedding, snapshot
            )

        with _timed(timings, phases, PipelinePhase.SCORE_LEXICAL):
            lexical_scores = await asyncio.to_thread(
                self.retriever.score_lexical, query_text, snapshot
            )

        with _timed(timings, phases, PipelinePhase.MERGE_NORMALIZE):
            candidates = merge_candidates(
                snapshot.documents, vector_scores, lexical_scores, snapshot.scan_order
            )
            normalize_candidates(candidates)

        rerank = request.rerank and self.reranker is not None and bool(candidates)
        if request.rerank and self.reranker is None:
            logger.debug("Semantic rerank requested but no judge configured")
        normalized = weights.normalized(include_semantic=rerank)

        with _timed(timings, phases, PipelinePhase.FUSE_RANK):
            candidates = fuse_and_rank(candidates, normalized)

        degraded = 0
        cancelled = False
        if rerank:
            depth = request.rerank_depth or top_k * self.rerank_config.depth_multiplier
            with _timed(timings, phases, PipelinePhase.SEMANTIC_RERANK):
                outcome = await self.reranker.rerank(
                    query_text, candidates, normalized, depth=depth, cancel_event=cancel_event
                )
            candidates = outcome.candidates
            degraded = outcome.degraded
            cancelled = outcome.cancelled
            if self.collector is not None:
                self.collector.record_rerank(
                    outcome.judged, outcome.degraded, outcome.failure_reasons
                )

        with _timed(timings, phases, PipelinePhase.TRUNCATE):
            candidates = candidates[:top_k]

        timings.total_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"Phase timings: {timings.as_dict()}")
        logger.info(
            f"Ranked {len(snapshot)} documents -> {len(candidates)} results "
            f"(rerank={rerank}, degraded={degraded}) in {timings.total_ms:.1f}ms"
        )

        return RankingResult(
            candidates=candidates,
            timings=timings,
            phases=phases,
            reranked=rerank,
            degraded_count=sum(1 for c in candidates if c.degraded),
            cancelled=cancelled,
        )

    def _validate(self, request: RankingRequest):
        if not request.query_text or not request.query_text.strip():
            raise InvalidQueryError("Query text is required")

        top_k = request.top_k if request.top_k is not None else self.config.default_top_k
        if top_k < 1:
            raise InvalidQueryError(f"top_k must be at least 1, got {top_k}", code="INVALID_TOP_K")

        weights = request.weights or FusionWeights(
            vector=self.config.vector_weight,
            lexical=self.config.lexical_weight,
            semantic=self.config.semantic_weight,
        )
        if weights.semantic is None:
            weights = FusionWeights(
                vector=weights.vector,
                lexical=weights.lexical,
                semantic=self.config.semantic_weight,
            )
        try:
            weights.validate()
        except ValueError as e:
            raise InvalidQueryError(str(e), code="INVALID_WEIGHTS") from e

        return weights, top_k

    async def _load_snapshot(self) -> CorpusSnapshot:
        try:
            documents = await asyncio.to_thread(self.corpus.list_documents)
        except CorpusUnavailableError:
            logger.exception("Corpus unavailable")
            raise
        except Exception as e:
            logger.exception("Corpus listing failed")
            raise CorpusUnavailableError(f"Corpus listing failed: {e}") from e

        return CorpusSnapshot.from_documents(documents)
