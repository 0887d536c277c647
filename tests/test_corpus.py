import json

import pytest

from corpus import Document, InMemoryCorpus, JsonFileCorpus
from shared.errors import CorpusUnavailableError


def test_document_from_story_record():
    doc = Document.from_record(
        {
            "_id": 42,
            "content": "As a user I want login",
            "metadata": {"epic": "auth"},
            "embedding": [0.1, 0.2],
        }
    )
    assert doc.id == "42"
    assert doc.text == "As a user I want login"
    assert doc.attributes == {"epic": "auth"}
    assert doc.embedding == [0.1, 0.2]


def test_document_from_record_ignores_bad_embedding():
    doc = Document.from_record({"id": "a", "text": "x", "embedding": "not-a-vector"})
    assert doc.embedding is None


def test_document_from_record_requires_id():
    with pytest.raises(ValueError):
        Document.from_record({"text": "orphan"})


def test_in_memory_corpus_returns_copy():
    corpus = InMemoryCorpus([Document(id="a", text="x")])
    docs = corpus.list_documents()
    docs.clear()
    assert len(corpus.list_documents()) == 1


def test_json_file_corpus_loads_records(tmp_path):
    path = tmp_path / "corpus.json"
    path.write_text(
        json.dumps(
            [
                {"id": "a", "text": "alpha", "embedding": [1, 0]},
                {"_id": "b", "content": "beta"},
            ]
        )
    )

    docs = JsonFileCorpus(str(path)).list_documents()
    assert [d.id for d in docs] == ["a", "b"]
    assert docs[1].embedding is None


def test_json_file_corpus_missing_file(tmp_path):
    with pytest.raises(CorpusUnavailableError):
        JsonFileCorpus(str(tmp_path / "missing.json")).list_documents()


def test_json_file_corpus_rejects_non_array(tmp_path):
    path = tmp_path / "corpus.json"
    path.write_text(json.dumps({"id": "a"}))
    with pytest.raises(CorpusUnavailableError):
        JsonFileCorpus(str(path)).list_documents()


def test_json_file_corpus_rejects_malformed_record(tmp_path):
    path = tmp_path / "corpus.json"
    path.write_text(json.dumps([{"text": "no id"}]))
    with pytest.raises(CorpusUnavailableError) as exc:
        JsonFileCorpus(str(path)).list_documents()
    assert exc.value.code == "CORPUS_UNAVAILABLE"
