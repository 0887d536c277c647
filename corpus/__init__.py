"""
Corpus Access Module.

Supplies the read-only document snapshot that every query scans.

Usage:
    from corpus import Document, InMemoryCorpus

    corpus = InMemoryCorpus([Document(id="a", text="...", embedding=[1.0, 0.0])])
"""

from .documents import CorpusSource, Document, InMemoryCorpus, JsonFileCorpus

__all__ = [
    "Document",
    "CorpusSource",
    "InMemoryCorpus",
    "JsonFileCorpus",
]
