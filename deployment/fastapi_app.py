"""
Main FastAPI application for the hybrid ranking service.

Production-ready API with:
- Async ranking endpoint
- Circuit breaker protection for judge calls
- Cancellation on client disconnect
- Health checks and latency metrics
- Request tracing
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from corpus import CorpusSource, InMemoryCorpus, JsonFileCorpus
from monitoring import get_latency_collector
from pipeline import RankingPipeline, RankingRequest
from reranking import OpenAIJudge
from retrieval import Candidate, FusionWeights
from shared.config import get_settings
from shared.errors import RankingError
from shared.schemas import (
    ErrorInfo,
    HealthResponse,
    RankedDocument,
    RankRequest,
    RankResponse,
)

from .circuit_breaker import get_judge_breaker

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

__version__ = "1.0.0"

DISCONNECT_POLL_SECONDS = 0.5

_pipeline: Optional[RankingPipeline] = None


def build_corpus() -> CorpusSource:
    """Corpus from CORPUS_PATH, or an empty in-memory corpus."""
    if settings.CORPUS_PATH:
        return JsonFileCorpus(settings.CORPUS_PATH)
    logger.warning("CORPUS_PATH not set; serving an empty corpus")
    return InMemoryCorpus()


def get_pipeline() -> RankingPipeline:
    """Get global ranking pipeline instance."""
    global _pipeline
    if _pipeline is None:
        judge = OpenAIJudge() if settings.OPENAI_API_KEY else None
        if judge is None:
            logger.warning("OPENAI_API_KEY not set; semantic re-ranking disabled")
        _pipeline = RankingPipeline(
            corpus=build_corpus(),
            judge=judge,
            config=settings.ranking,
            rerank_config=settings.rerank,
            breaker=get_judge_breaker(),
            collector=get_latency_collector(),
        )
    return _pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting hybrid ranking service v{__version__}")
    yield
    logger.info("Shutting down hybrid ranking service")


app = FastAPI(
    title="Hybrid Ranking Service",
    description="Vector + lexical + semantic judge fusion over a corpus snapshot",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID for tracing."""
    request_id = str(uuid.uuid4())[:8]
    request.state.request_id = request_id

    start_time = time.time()
    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"[{request_id}] {request.method} {request.url.path} "
        f"- {response.status_code} - {duration_ms:.1f}ms"
    )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RankingError)
async def ranking_error_handler(request: Request, exc: RankingError):
    """Structured error envelope with a stable code."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(f"[{request_id}] Query failed: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=RankResponse(errors=[ErrorInfo(**exc.to_dict())]).model_dump(),
    )


def to_ranked_document(candidate: Candidate) -> RankedDocument:
    return RankedDocument(
        id=candidate.document_id,
        text=candidate.text,
        attributes=candidate.attributes,
        norm_vector_score=candidate.norm_vector_score,
        norm_lexical_score=candidate.norm_lexical_score,
        semantic_score=candidate.semantic_score,
        semantic_rationale=candidate.semantic_rationale,
        evidence=candidate.evidence,
        fused_score_final=candidate.final_score,
        degraded=candidate.degraded,
        degraded_reason=candidate.degraded_reason,
    )


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event):
    """Set cancel_event once the client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling outstanding judge calls")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@app.get("/health", response_model=HealthResponse)
async def health_check(pipeline: RankingPipeline = Depends(get_pipeline)):
    """Health check endpoint."""
    try:
        doc_count = len(await asyncio.to_thread(pipeline.corpus.list_documents))
        available = True
    except Exception as e:
        logger.warning(f"Corpus health check failed: {e}")
        doc_count = 0
        available = False

    judge_configured = pipeline.reranker is not None
    return HealthResponse(
        status="healthy" if available else "degraded",
        version=__version__,
        corpus_available=available,
        document_count=doc_count,
        judge_configured=judge_configured,
        judge_circuit=get_judge_breaker().state.value if judge_configured else None,
    )


@app.post("/rank", response_model=RankResponse)
async def rank_endpoint(
    body: RankRequest,
    request: Request,
    pipeline: RankingPipeline = Depends(get_pipeline),
):
    """
    Hybrid ranking endpoint.

    Flow:
    1. Score every document (vector + lexical)
    2. Merge, normalize, fuse
    3. Semantic re-rank (optional)
    4. Truncate to top-K
    """
    request_id = getattr(request.state, "request_id", "unknown")
    ranking_request = RankingRequest(
        query_text=body.query_text,
        query_embedding=body.query_embedding or None,
        weights=(
            FusionWeights(
                vector=body.weights.vector,
                lexical=body.weights.lexical,
                semantic=body.weights.semantic,
            )
            if body.weights
            else None
        ),
        top_k=body.top_k,
        rerank=body.rerank,
        rerank_depth=body.rerank_depth,
    )

    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        result = await pipeline.run(ranking_request, cancel_event=cancel_event)
    except RankingError:
        raise
    except Exception as e:
        logger.exception(f"[{request_id}] Ranking failed: {e}")
        return JSONResponse(
            status_code=500,
            content=RankResponse(
                errors=[ErrorInfo(code="INTERNAL_ERROR", message=str(e))]
            ).model_dump(),
        )
    finally:
        watcher.cancel()

    return RankResponse(
        results=[to_ranked_document(c) for c in result.candidates],
        timings=result.timings.as_dict(),
        reranked=result.reranked,
        degraded_count=result.degraded_count,
    )


@app.get("/metrics")
async def metrics_endpoint():
    """Get operational metrics."""
    summary = get_latency_collector().get_summary()
    summary["judge_circuit"] = get_judge_breaker().get_stats()
    return summary


@app.post("/metrics/reset")
async def reset_metrics():
    """Reset operational metrics."""
    get_latency_collector().reset()
    return {"status": "reset"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
