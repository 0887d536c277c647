"""
Vector similarity between a query embedding and a document embedding.

The corpus is scanned linearly; an ANN index could sit behind the same
function signature without changing the fusion contract.
"""

import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def cosine_similarity(
    a: Optional[Sequence[float]],
    b: Optional[Sequence[float]],
) -> float:
    """
    Cosine similarity in [-1, 1].

    Returns 0.0 when either vector is absent or empty, lengths differ,
    or either vector has zero magnitude.
    """
    if a is None or b is None or len(a) == 0 or len(b) == 0:
        return 0.0
    if len(a) != len(b):
        logger.debug(f"Embedding length mismatch: {len(a)} != {len(b)}")
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    sim = float(np.dot(va, vb) / (norm_a * norm_b))
    if not np.isfinite(sim):
        return 0.0

    # Float error can push identical vectors slightly past 1
    return max(-1.0, min(1.0, sim))
