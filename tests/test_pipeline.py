import asyncio

import pytest

from corpus import CorpusSource, Document, InMemoryCorpus
from deployment.circuit_breaker import CircuitBreaker, CircuitState
from monitoring import LatencyCollector
from pipeline import PipelinePhase, RankingPipeline, RankingRequest
from reranking import SemanticJudge
from retrieval import FusionWeights
from shared.config import RankingConfig, RerankConfig
from shared.errors import CorpusUnavailableError, InvalidQueryError, QueryCancelledError


STORIES = [
    Document(id="a", text="as a user I want login", embedding=[1.0, 0.0]),
    Document(id="b", text="as a user I want logout", embedding=[0.0, 1.0]),
]


class ConstantJudge(SemanticJudge):
    def __init__(self, score=0.5):
        self.score = score
        self.calls = 0

    async def judge(self, query, excerpt):
        self.calls += 1
        return {"score": self.score, "rationale": "constant"}


class HangingJudge(SemanticJudge):
    async def judge(self, query, excerpt):
        await asyncio.sleep(5)
        return {"score": 1.0}


class BrokenCorpus(CorpusSource):
    def list_documents(self):
        raise ConnectionError("store offline")


def make_pipeline(docs=STORIES, **kwargs):
    return RankingPipeline(InMemoryCorpus(docs), config=RankingConfig(), **kwargs)


def test_login_story_ranks_first():
    request = RankingRequest(
        query_text="as a user I want login",
        query_embedding=[1.0, 0.0],
        weights=FusionWeights(vector=0.5, lexical=0.5),
        top_k=2,
        rerank=False,
    )

    result = make_pipeline().run_sync(request)

    first, second = result.candidates
    assert first.document_id == "a"
    assert first.norm_vector_score == 1.0
    assert first.norm_lexical_score == 1.0
    assert first.fused_score == pytest.approx(1.0)
    assert second.document_id == "b"
    assert second.final_score < first.final_score
    assert not result.reranked


def test_empty_corpus_returns_no_results():
    result = make_pipeline(docs=[]).run_sync(RankingRequest(query_text="anything"))

    assert result.candidates == []
    assert result.phases == [PipelinePhase.LOAD_CORPUS]


def test_results_are_truncated_to_top_k():
    docs = [Document(id=f"d{i}", text=f"story {i}") for i in range(10)]
    result = make_pipeline(docs=docs).run_sync(
        RankingRequest(query_text="story", top_k=3, rerank=False)
    )
    assert len(result.candidates) == 3


def test_ranking_is_idempotent():
    pipeline = make_pipeline()
    request = RankingRequest(query_text="as a user I want logout", query_embedding=[0.6, 0.8])

    first = pipeline.run_sync(request)
    second = pipeline.run_sync(request)

    assert [(c.document_id, c.final_score) for c in first.candidates] == [
        (c.document_id, c.final_score) for c in second.candidates
    ]


def test_rerank_uses_three_way_weights():
    judge = ConstantJudge(score=0.5)
    pipeline = make_pipeline(judge=judge)
    request = RankingRequest(
        query_text="as a user I want login",
        query_embedding=[1.0, 0.0],
        weights=FusionWeights(vector=2, lexical=1, semantic=1),
    )

    result = asyncio.run(pipeline.run(request))

    assert result.reranked
    assert judge.calls == 2
    top = result.candidates[0]
    assert top.document_id == "a"
    # vector 0.5, lexical 0.25, semantic 0.25
    assert top.fused_score == pytest.approx(0.75)
    assert top.final_score == pytest.approx(0.75 + 0.25 * 0.5)
    assert top.evidence == "as a user I want login"


def test_rerank_depth_defaults_to_multiple_of_top_k():
    docs = [Document(id=f"d{i}", text=f"story {i}") for i in range(10)]
    judge = ConstantJudge()
    make_pipeline(docs=docs, judge=judge).run_sync(
        RankingRequest(query_text="story", top_k=2)
    )
    assert judge.calls == 4


def test_rerank_requested_without_judge_is_skipped():
    result = make_pipeline().run_sync(RankingRequest(query_text="login", rerank=True))

    assert not result.reranked
    assert PipelinePhase.SEMANTIC_RERANK not in result.phases
    assert all(c.semantic_score is None for c in result.candidates)


def test_phase_timings_are_reported():
    result = make_pipeline(judge=ConstantJudge()).run_sync(RankingRequest(query_text="login"))
    timings = result.timings.as_dict()

    for phase in PipelinePhase:
        assert f"{phase.value}_ms" in timings
    assert timings["overall_ms"] >= 0


def test_blank_query_is_rejected():
    with pytest.raises(InvalidQueryError) as exc:
        make_pipeline().run_sync(RankingRequest(query_text="   "))
    assert exc.value.code == "MISSING_QUERY"


def test_invalid_top_k_and_weights_are_rejected():
    pipeline = make_pipeline()

    with pytest.raises(InvalidQueryError) as exc:
        pipeline.run_sync(RankingRequest(query_text="login", top_k=0))
    assert exc.value.code == "INVALID_TOP_K"

    with pytest.raises(InvalidQueryError) as exc:
        pipeline.run_sync(
            RankingRequest(query_text="login", weights=FusionWeights(vector=-1, lexical=1))
        )
    assert exc.value.code == "INVALID_WEIGHTS"


def test_corpus_failure_fails_query_and_is_counted():
    collector = LatencyCollector()
    pipeline = RankingPipeline(BrokenCorpus(), collector=collector)

    with pytest.raises(CorpusUnavailableError):
        pipeline.run_sync(RankingRequest(query_text="login"))

    counters = collector.get_summary()["counters"]
    assert counters["failed_queries"] == 1
    assert counters["failed.CORPUS_UNAVAILABLE"] == 1


async def _run_cancelled(pipeline):
    cancel_event = asyncio.Event()
    cancel_event.set()
    return await pipeline.run(RankingRequest(query_text="login"), cancel_event=cancel_event)


def test_cancelled_query_returns_degraded_results_by_default():
    pipeline = make_pipeline(judge=HangingJudge())

    result = asyncio.run(_run_cancelled(pipeline))

    assert result.cancelled
    assert result.degraded_count == 2
    assert all(c.degraded_reason == "cancelled" for c in result.candidates)


def test_cancelled_query_fails_under_fail_policy():
    pipeline = make_pipeline(
        judge=HangingJudge(), rerank_config=RerankConfig(cancellation_policy="fail")
    )

    with pytest.raises(QueryCancelledError):
        asyncio.run(_run_cancelled(pipeline))


def test_successful_queries_are_recorded():
    collector = LatencyCollector()
    pipeline = make_pipeline(judge=ConstantJudge(), collector=collector)

    pipeline.run_sync(RankingRequest(query_text="login"))

    summary = collector.get_summary()
    assert summary["counters"]["queries"] == 1
    assert summary["counters"]["judged_candidates"] == 2
    assert "semantic_rerank" in summary["phases"]


def test_open_circuit_degrades_results_and_is_counted():
    collector = LatencyCollector()
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=60, clock=lambda: 0.0)
    breaker.state = CircuitState.OPEN
    breaker.last_failure_time = 0.0
    judge = ConstantJudge()
    pipeline = make_pipeline(judge=judge, breaker=breaker, collector=collector)

    result = pipeline.run_sync(RankingRequest(query_text="login"))

    assert judge.calls == 0
    assert len(result.candidates) == 2
    assert all(c.degraded_reason == "circuit_open" for c in result.candidates)
    assert all(c.final_score == c.fused_score for c in result.candidates)
    counters = collector.get_summary()["counters"]
    assert counters["degraded.circuit_open"] == 2
    assert counters["queries"] == 1
