"""
Corpus access.

The ranking core reads one full snapshot per query. No filtering or
pagination is pushed down; sources return a fully materialized sequence.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from shared.errors import CorpusUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """Immutable unit of the corpus snapshot."""

    id: str
    text: str
    embedding: Optional[Sequence[float]] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Document":
        """
        Build a Document from a stored record.

        Accepts both the engine's field names (id, text, attributes) and
        the story store's (_id, content, metadata).
        """
        doc_id = record.get("id", record.get("_id"))
        if doc_id is None:
            raise ValueError("Document record has no id")

        embedding = record.get("embedding")
        if embedding is not None and not isinstance(embedding, (list, tuple)):
            embedding = None

        return cls(
            id=str(doc_id),
            text=record.get("text", record.get("content")) or "",
            embedding=embedding,
            attributes=dict(record.get("attributes", record.get("metadata")) or {}),
        )


class CorpusSource(ABC):
    """Read-only access to the full document snapshot."""

    @abstractmethod
    def list_documents(self) -> Sequence[Document]:
        """Return every document in the snapshot, in scan order."""


class InMemoryCorpus(CorpusSource):
    """
    Corpus backed by a list supplied by the caller.

    Usage:
        corpus = InMemoryCorpus([Document(id="a", text="as a user ...")])
        docs = corpus.list_documents()
    """

    def __init__(self, documents: Iterable[Document] = ()):
        self._documents: List[Document] = list(documents)

    def list_documents(self) -> Sequence[Document]:
        return list(self._documents)

    def __len__(self) -> int:
        return len(self._documents)


class JsonFileCorpus(CorpusSource):
    """
    Corpus snapshot read from a JSON array on every call.

    Each element is a document record (see Document.from_record).
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def list_documents(self) -> Sequence[Document]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                records = json.load(f)
        except FileNotFoundError as e:
            raise CorpusUnavailableError(f"Corpus file not found: {self.path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise CorpusUnavailableError(f"Failed to read corpus {self.path}: {e}") from e

        if not isinstance(records, list):
            raise CorpusUnavailableError(f"Corpus {self.path} must contain a JSON array")

        try:
            documents = [Document.from_record(r) for r in records]
        except (AttributeError, ValueError) as e:
            raise CorpusUnavailableError(f"Malformed document in {self.path}: {e}") from e

        logger.debug(f"Loaded {len(documents)} documents from {self.path}")
        return documents
