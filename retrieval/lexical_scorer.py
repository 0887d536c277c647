"""
Lexical similarity using token-set overlap.

Pure vector retrieval misses exact term matches (IDs, product names,
role names). This is a cheap lexical baseline: Jaccard over lower-cased
whitespace tokens. No stemming, no stopwords, no IDF weighting - it is
not BM25.
"""

from typing import Set


def tokenize(text: str) -> Set[str]:
    """Lower-case and split on whitespace into a token set."""
    if not text:
        return set()
    return set(text.lower().split())


def lexical_similarity(query: str, text: str) -> float:
    """
    Jaccard index between query and document token sets.

    Args:
        query: Query string
        text: Document text

    Returns:
        |intersection| / |union|, or 0.0 if either token set is empty
    """
    q_terms = tokenize(query)
    t_terms = tokenize(text)

    if not q_terms or not t_terms:
        return 0.0

    return len(q_terms & t_terms) / len(q_terms | t_terms)
