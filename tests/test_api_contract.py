from fastapi.testclient import TestClient

from corpus import Document, InMemoryCorpus, JsonFileCorpus
from deployment.fastapi_app import app, get_pipeline
from pipeline import RankingPipeline
from shared.config import RankingConfig


client = TestClient(app)


def use_pipeline(corpus):
    pipeline = RankingPipeline(corpus, config=RankingConfig())
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return pipeline


def story_corpus():
    return InMemoryCorpus(
        [
            Document(id="a", text="as a user I want login", embedding=[1.0, 0.0]),
            Document(id="b", text="as a user I want logout", embedding=[0.0, 1.0]),
        ]
    )


def teardown_function():
    app.dependency_overrides.clear()


def test_rank_returns_ranked_documents():
    use_pipeline(story_corpus())

    resp = client.post(
        "/rank",
        json={
            "query_text": "as a user I want login",
            "query_embedding": [1.0, 0.0],
            "weights": {"vector": 0.5, "lexical": 0.5},
            "top_k": 2,
        },
    )

    assert resp.status_code == 200
    data = resp.json()
    assert [r["id"] for r in data["results"]] == ["a", "b"]
    assert data["results"][0]["fused_score_final"] == 1.0
    assert data["results"][0]["degraded"] is False
    assert data["errors"] == []
    assert "overall_ms" in data["timings"]
    assert "X-Request-ID" in resp.headers


def test_rank_requires_query_text():
    use_pipeline(story_corpus())

    resp = client.post("/rank", json={"query_text": "  "})

    assert resp.status_code == 400
    data = resp.json()
    assert data["results"] == []
    assert data["errors"][0]["code"] == "MISSING_QUERY"


def test_rank_rejects_negative_weights():
    use_pipeline(story_corpus())

    resp = client.post(
        "/rank", json={"query_text": "login", "weights": {"vector": -1, "lexical": 1}}
    )
    assert resp.status_code == 422


def test_rank_reports_unavailable_corpus(tmp_path):
    use_pipeline(JsonFileCorpus(str(tmp_path / "missing.json")))

    resp = client.post("/rank", json={"query_text": "login"})

    assert resp.status_code == 503
    assert resp.json()["errors"][0]["code"] == "CORPUS_UNAVAILABLE"


def test_rank_on_empty_corpus():
    use_pipeline(InMemoryCorpus())

    resp = client.post("/rank", json={"query_text": "login"})

    assert resp.status_code == 200
    assert resp.json()["results"] == []


def test_health_endpoint():
    use_pipeline(story_corpus())

    resp = client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["document_count"] == 2
    assert data["judge_configured"] is False
    assert data["judge_circuit"] is None


def test_health_reports_degraded_corpus(tmp_path):
    use_pipeline(JsonFileCorpus(str(tmp_path / "missing.json")))

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["corpus_available"] is False


def test_metrics_endpoint():
    resp = client.get("/metrics")

    assert resp.status_code == 200
    data = resp.json()
    assert "counters" in data
    assert data["judge_circuit"]["state"] == "closed"
