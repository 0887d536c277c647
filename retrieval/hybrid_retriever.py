"""
Hybrid scoring over a full corpus snapshot.

Runs the vector and lexical scorers across every document and collects
the raw scores into id-keyed streams for the merger.

Scoring is embarrassingly parallel, so documents are split into slices
and scored across a thread pool. Results are keyed by document id and the
scan order is recorded explicitly, so completion order never leaks into
the ranking.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from corpus import Document

from .lexical_scorer import lexical_similarity
from .vector_scorer import cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class CorpusSnapshot:
    """Documents for one query, deduplicated by id (first occurrence wins)."""

    documents: Dict[str, Document] = field(default_factory=dict)
    scan_order: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_documents(cls, documents: Sequence[Document]) -> "CorpusSnapshot":
        snapshot = cls()
        for position, doc in enumerate(documents):
            if doc.id in snapshot.documents:
                logger.warning(f"Duplicate document id in corpus: {doc.id}")
                continue
            snapshot.documents[doc.id] = doc
            snapshot.scan_order[doc.id] = position
        return snapshot

    def __len__(self) -> int:
        return len(self.documents)


class HybridRetriever:
    """
    Linear-scan scorer producing the raw vector and lexical streams.

    Usage:
        retriever = HybridRetriever(max_workers=4)
        snapshot = CorpusSnapshot.from_documents(docs)
        vec = retriever.score_vectors(query_embedding, snapshot)
        lex = retriever.score_lexical("as a user I want login", snapshot)
    """

    def __init__(self, max_workers: int = 4):
        """
        Args:
            max_workers: Thread pool size for scoring
        """
        self.max_workers = max(1, max_workers)

    def score_vectors(
        self,
        query_embedding: Optional[Sequence[float]],
        snapshot: CorpusSnapshot,
    ) -> Dict[str, float]:
        """
        Cosine similarity for every document that carries an embedding.

        Documents without an embedding are absent from the stream. Without
        a query embedding the whole stream is empty.
        """
        if not query_embedding:
            logger.debug("No query embedding; vector signal absent")
            return {}

        docs = [d for d in snapshot.documents.values() if d.embedding is not None]
        return self._score_concurrently(
            docs, lambda doc: cosine_similarity(query_embedding, doc.embedding)
        )

    def score_lexical(
        self,
        query_text: str,
        snapshot: CorpusSnapshot,
    ) -> Dict[str, float]:
        """Token-set overlap for every document."""
        docs = list(snapshot.documents.values())
        return self._score_concurrently(
            docs, lambda doc: lexical_similarity(query_text, doc.text)
        )

    def _score_concurrently(
        self,
        docs: List[Document],
        score_fn: Callable[[Document], float],
    ) -> Dict[str, float]:
        """Score document slices across the pool into an id-keyed dict."""
        if not docs:
            return {}

        slice_size = math.ceil(len(docs) / self.max_workers)
        slices = [docs[i : i + slice_size] for i in range(0, len(docs), slice_size)]

        def score_slice(batch: List[Document]) -> List[Tuple[str, float]]:
            return [(doc.id, score_fn(doc)) for doc in batch]

        scores: Dict[str, float] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(slices))) as pool:
            futures = [pool.submit(score_slice, batch) for batch in slices]
            for future in as_completed(futures):
                scores.update(future.result())

        return scores
