"""
Semantic re-ranking with an external judge.

Reranking is cost-effective accuracy, but the judge is the slowest and
least reliable signal:
- Only a bounded prefix of the provisional ranking is judged
- Calls run concurrently behind a semaphore, each with a timeout
- A failed, timed-out or unparseable judgment degrades that candidate
  to its two-signal score; it is never dropped and never fails the batch
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from deployment.circuit_breaker import CircuitBreaker, CircuitOpenError
from retrieval import Candidate, NormalizedWeights, rank_key
from shared.errors import QueryCancelledError

from .semantic_judge import JudgeResponse, SemanticJudge, Unparsed, parse_judgement

logger = logging.getLogger(__name__)


class CancellationPolicy(str, Enum):
    """What a cancelled query returns."""

    PARTIAL = "partial"  # Keep completed judgments, degrade the rest
    FAIL = "fail"  # Raise QueryCancelledError


@dataclass
class JudgeSuccess:
    score: float
    rationale: str


@dataclass
class JudgeFailure:
    reason: str  # timeout, error, circuit_open, unparsed, cancelled
    detail: str = ""


JudgeOutcome = Union[JudgeSuccess, JudgeFailure]


@dataclass
class RerankOutcome:
    """Re-sorted candidates plus batch-level bookkeeping."""

    candidates: List[Candidate]
    judged: int = 0
    degraded: int = 0
    cancelled: bool = False
    failure_reasons: Dict[str, int] = field(default_factory=dict)


class SemanticReranker:
    """
    Folds a semantic judgment into the fused score.

    Formula: final = w_vec * norm_vec + w_lex * norm_lex + w_sem * semantic

    Usage:
        reranker = SemanticReranker(OpenAIJudge(), max_concurrency=5)
        outcome = await reranker.rerank(query, provisional, weights, depth=10)
    """

    def __init__(
        self,
        judge: SemanticJudge,
        max_concurrency: int = 5,
        timeout_seconds: float = 10.0,
        excerpt_chars: int = 400,
        budget_seconds: Optional[float] = None,
        cancellation_policy: CancellationPolicy = CancellationPolicy.PARTIAL,
        breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Args:
            judge: External semantic judge
            max_concurrency: Maximum in-flight judge calls
            timeout_seconds: Per-call timeout
            excerpt_chars: Candidate text is truncated to this many characters
            budget_seconds: Optional total time budget for the batch
            cancellation_policy: Partial results or failure on cancellation
            breaker: Optional circuit breaker shared across queries
        """
        self.judge = judge
        self.max_concurrency = max(1, max_concurrency)
        self.timeout_seconds = timeout_seconds
        self.excerpt_chars = excerpt_chars
        self.budget_seconds = budget_seconds
        self.cancellation_policy = CancellationPolicy(cancellation_policy)
        self.breaker = breaker

    async def rerank(
        self,
        query: str,
        candidates: List[Candidate],
        weights: NormalizedWeights,
        depth: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RerankOutcome:
        """
        Judge the top `depth` candidates and re-sort by final score.

        Args:
            query: Query text
            candidates: Provisional ranking
            weights: Three-way normalized weights
            depth: Number of leading candidates to judge (all if None)
            cancel_event: Set to cancel outstanding judge calls

        Returns:
            RerankOutcome with the re-sorted candidates

        Raises:
            QueryCancelledError: Cancelled under CancellationPolicy.FAIL
        """
        if not candidates:
            return RerankOutcome(candidates=[])

        head = candidates[: len(candidates) if depth is None else max(0, depth)]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = {
            asyncio.create_task(self._judge_one(query, c, semaphore)): i
            for i, c in enumerate(head)
        }
        outcomes: Dict[int, JudgeOutcome] = {}

        try:
            cancelled = await self._collect(tasks, outcomes, cancel_event)
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if cancelled and self.cancellation_policy == CancellationPolicy.FAIL:
            raise QueryCancelledError(
                f"Query cancelled with {len(head) - len(outcomes)} judge calls outstanding"
            )

        reasons: Counter = Counter()
        for i, candidate in enumerate(head):
            outcome = outcomes.get(i, JudgeFailure(reason="cancelled"))
            candidate.evidence = candidate.text[: self.excerpt_chars]

            if isinstance(outcome, JudgeSuccess):
                candidate.semantic_score = outcome.score
                candidate.semantic_rationale = outcome.rationale
                candidate.final_score = (
                    weights.vector * candidate.norm_vector_score
                    + weights.lexical * candidate.norm_lexical_score
                    + weights.semantic * outcome.score
                )
            else:
                candidate.semantic_score = 0.0
                candidate.final_score = candidate.fused_score
                candidate.degraded = True
                candidate.degraded_reason = outcome.reason
                reasons[outcome.reason] += 1

        degraded = sum(reasons.values())
        if degraded:
            logger.info(f"Semantic rerank degraded {degraded}/{len(head)} candidates: {dict(reasons)}")

        return RerankOutcome(
            candidates=sorted(candidates, key=rank_key),
            judged=len(head) - degraded,
            degraded=degraded,
            cancelled=cancelled,
            failure_reasons=dict(reasons),
        )

    async def _collect(
        self,
        tasks: Dict[asyncio.Task, int],
        outcomes: Dict[int, JudgeOutcome],
        cancel_event: Optional[asyncio.Event],
    ) -> bool:
        """Gather outcomes until done, cancelled, or over budget. Returns True if cut short."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.budget_seconds if self.budget_seconds else None
        cancel_waiter = (
            asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        )
        pending = set(tasks)

        try:
            while pending:
                wait_set = set(pending)
                if cancel_waiter is not None:
                    wait_set.add(cancel_waiter)
                timeout = None if deadline is None else max(0.0, deadline - loop.time())

                done, _ = await asyncio.wait(
                    wait_set, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )

                for task in done & pending:
                    pending.discard(task)
                    outcomes[tasks[task]] = task.result()

                if not pending:
                    return False
                if cancel_waiter is not None and cancel_waiter in done:
                    logger.info(f"Rerank cancelled with {len(pending)} judge calls outstanding")
                    return True
                if not done:
                    logger.warning(f"Rerank budget of {self.budget_seconds}s exhausted")
                    return True
            return False
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

    async def _judge_one(
        self,
        query: str,
        candidate: Candidate,
        semaphore: asyncio.Semaphore,
    ) -> JudgeOutcome:
        """One judge call; every failure becomes a JudgeFailure."""
        excerpt = candidate.text[: self.excerpt_chars]

        async with semaphore:
            try:
                if self.breaker is not None:
                    raw = await self.breaker.call_async(self._call_judge, query, excerpt)
                else:
                    raw = await self._call_judge(query, excerpt)
            except CircuitOpenError:
                return JudgeFailure(reason="circuit_open")
            except asyncio.TimeoutError:
                logger.warning(
                    f"Judge timed out after {self.timeout_seconds}s for {candidate.document_id}"
                )
                return JudgeFailure(reason="timeout")
            except Exception as e:
                logger.warning(f"Judge failed for {candidate.document_id}: {e}")
                return JudgeFailure(reason="error", detail=str(e))

        judgement = parse_judgement(raw)
        if isinstance(judgement, Unparsed):
            logger.warning(f"Unparseable judge response for {candidate.document_id}")
            return JudgeFailure(reason="unparsed", detail=judgement.raw)

        return JudgeSuccess(score=judgement.score, rationale=judgement.rationale)

    async def _call_judge(self, query: str, excerpt: str) -> JudgeResponse:
        return await asyncio.wait_for(
            self.judge.judge(query, excerpt), timeout=self.timeout_seconds
        )
