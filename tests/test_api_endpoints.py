"""Integration tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import Mock, patch
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))


DOCUMENT = """# Billing

Invoices are sent monthly. You can download invoices from the billing page.

# Security

Passwords must be reset every 90 days. Enable MFA for every account.
"""


class KeywordEmbedder:
    """Embeds text as keyword presence flags plus a constant component."""

    VOCABULARY = ("invoice", "billing", "download", "password", "reset", "security", "mfa")

    def embed(self, texts):
        return [[1.0 if word in text.lower() else 0.0 for word in self.VOCABULARY] + [0.1] for text in texts]


@pytest.fixture
def client():
    """Create a test client with real scoring services and an in-memory embedder."""
    # Import after path is set
    from main import app
    import main
    from services.analysis_pipeline import AnalysisPipeline
    from services.assignment_engine import AssignmentEngine
    from services.chunking_engine import ChunkingEngine, estimate_tokens
    from services.context_position import ContextPositionEstimator
    from services.variant_categorizer import VariantCategorizer

    # Mock the startup event to avoid reading API keys
    with patch('main.startup_event'):
        client = TestClient(app)

        main.chunking_engine = ChunkingEngine(token_counter=estimate_tokens)
        main.assignment_engine = AssignmentEngine(min_score_threshold=0)
        main.variant_categorizer = VariantCategorizer()
        main.position_estimator = ContextPositionEstimator()
        main.analysis_pipeline = AnalysisPipeline(
            KeywordEmbedder(),
            chunker=main.chunking_engine,
            assignment_engine=main.assignment_engine,
            categorizer=main.variant_categorizer,
            position_estimator=main.position_estimator,
        )

        yield client


def test_health(client):
    """Test health endpoints."""
    assert client.get("/").json()["status"] == "ok"
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["embedding_configured"] is True


def test_chunk_endpoint(client):
    """Test chunking returns chunks and document stats."""
    response = client.post("/chunk", json={"document": DOCUMENT})

    assert response.status_code == 200
    data = response.json()
    assert [c["id"] for c in data["chunks"]] == ["chunk-0", "chunk-1"]
    assert data["chunks"][0]["heading_path"] == ["Billing"]
    assert data["stats"]["h1_count"] == 2


def test_chunk_endpoint_invalid_strategy(client):
    """Test an unknown strategy is a 400."""
    response = client.post("/chunk", json={"document": DOCUMENT, "options": {"strategy": "sliding"}})
    assert response.status_code == 400
    assert "Unknown chunking strategy" in response.json()["detail"]


def test_chunk_endpoint_missing_document(client):
    """Test pydantic validation rejects a missing document."""
    assert client.post("/chunk", json={}).status_code == 422


def test_analyze_endpoint(client):
    """Test a full analysis over HTTP."""
    response = client.post(
        "/analyze",
        json={
            "document": DOCUMENT,
            "queries": ["download invoices", "reset passwords"],
            "min_score_threshold": 0,
            "variants": [{"query": "billing page download"}],
        }
    )

    assert response.status_code == 200
    data = response.json()
    assignments = {a["query"]: a["assigned_chunk_index"] for a in data["assignment_map"]["assignments"]}
    assert assignments == {"download invoices": 0, "reset passwords": 1}
    assert len(data["positions"]) == 2
    assert data["categorization"]["summary"]["total"] == 1
    assert 0 <= data["categorization"]["health_score"] <= 100
    categorization = data["categorization"]
    assert categorization["actionable_count"] + categorization["review_count"] + categorization["ignorable_count"] == 1
    distribution = data["position_distribution"]
    assert sum(distribution[band] for band in ("lead", "supporting", "middle", "trailing")) == 2


def test_analyze_without_embedding_service(client):
    """Test analysis is unavailable without an embedding service."""
    import main
    main.analysis_pipeline = None

    response = client.post("/analyze", json={"document": DOCUMENT, "queries": ["q"]})
    assert response.status_code == 503


def test_analyze_embedding_failure(client):
    """Test embedding failures surface as a structured 502."""
    import main
    from services.analysis_pipeline import AnalysisPipeline
    from services.embedding_model import EmbeddingError

    embedder = Mock()
    embedder.embed.side_effect = EmbeddingError("QUOTA", "Embedding quota exhausted", {"status_code": 402})
    main.analysis_pipeline = AnalysisPipeline(embedder, chunker=main.chunking_engine)

    response = client.post("/analyze", json={"document": DOCUMENT, "queries": ["download invoices"]})

    assert response.status_code == 502
    error = response.json()["detail"]["error"]
    assert error["code"] == "QUOTA"
    assert error["details"] == {"status_code": 402}


def test_reassign_endpoint(client):
    """Test reassignment evicts the previous occupant."""
    payload = {
        "chunk_scores": [
            {"chunk_index": 0, "text": "Invoices", "scores": {"q1": 90, "q2": 80}},
            {"chunk_index": 1, "text": "Passwords", "scores": {"q1": 50, "q2": 30}},
        ],
        "queries": ["q1", "q2"],
        "query": "q2",
        "new_chunk_index": 0,
    }
    response = client.post("/assignments/reassign", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["evicted_query"] == "q1"
    assert data["updated_map"]["unassigned_queries"] == ["q1"]


def test_reassign_endpoint_with_current_assignments(client):
    """Test reassignment starts from the pairs the client holds."""
    payload = {
        "chunk_scores": [
            {"chunk_index": 0, "text": "Invoices", "scores": {"q1": 90, "q2": 80}},
            {"chunk_index": 1, "text": "Passwords", "scores": {"q1": 50, "q2": 30}},
        ],
        "queries": ["q1", "q2"],
        "current_assignments": {"q2": 1},
        "query": "q1",
        "new_chunk_index": 0,
    }
    data = client.post("/assignments/reassign", json=payload).json()

    assert data["evicted_query"] is None
    slots = data["updated_map"]["chunk_assignments"]
    assert slots[0]["assignment"]["query"] == "q1"
    assert slots[1]["assignment"]["query"] == "q2"


def test_reassign_endpoint_out_of_range(client):
    """Test an out-of-range chunk is a 400."""
    payload = {
        "chunk_scores": [{"chunk_index": 0, "text": "Invoices", "scores": {"q1": 90}}],
        "queries": ["q1"],
        "query": "q1",
        "new_chunk_index": 3,
    }
    assert client.post("/assignments/reassign", json=payload).status_code == 400


def test_categorize_endpoint(client):
    """Test categorization of pre-scored variants."""
    payload = {
        "variants": [
            {"query": "download invoices", "content_similarity": 0.7, "passage_score": 65, "best_chunk_index": 0},
            {"query": "refund policy", "content_similarity": 0.6, "passage_score": 20},
            {"query": "hire a plumber", "content_similarity": 0.1, "passage_score": 5},
            {"query": "compare vendors", "content_similarity": 0.5, "passage_score": 70,
             "best_chunk_index": 1, "intent": {"drift_score": 80}},
        ],
        "chunk_headings": ["Billing", "Security"],
    }
    response = client.post("/categorize", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert [c["category"] for c in data["categorized"]] == [
        "OPTIMIZATION_OPPORTUNITY", "CONTENT_GAP", "OUT_OF_SCOPE", "INTENT_DRIFT",
    ]
    assert data["categorized"][0]["actionable"]["assigned_chunk"]["heading"] == "Billing"
    assert data["categorized"][3]["variant"]["intent_analysis"]["drift_level"] == "high"
    assert data["health_score"] == pytest.approx(25 + 12.5 - 7.5)
    assert (data["actionable_count"], data["review_count"], data["ignorable_count"]) == (2, 1, 1)


def test_position_endpoint(client):
    """Test position estimate with flag explanation."""
    response = client.post("/position", json={"hybrid_score": 90, "rerank_score": 70, "query": "q"})

    assert response.status_code == 200
    data = response.json()
    assert data["position_category"] == "middle"
    assert data["flagged_reason"] == "high_retrieval_low_rerank"
    assert data["flag_explanation"].startswith("Chunk retrieves well")


def test_optimize_with_supplied_rewrite(client):
    """Test re-scoring a caller-supplied rewrite."""
    response = client.post(
        "/optimize",
        json={
            "document": DOCUMENT,
            "chunk_index": 0,
            "query": "download invoices",
            "new_text": "Download invoices from the billing page.",
        }
    )

    assert response.status_code == 200
    data = response.json()
    assert data["new_text"] == "Download invoices from the billing page."
    assert "improvement" in data


def test_optimize_without_rewrite_client(client):
    """Test optimization without new_text needs a rewrite client."""
    response = client.post("/optimize", json={"document": DOCUMENT, "chunk_index": 0, "query": "q"})
    assert response.status_code == 503


def test_optimize_rewrite_failure(client):
    """Test rewrite client errors surface as a structured 503."""
    import main
    from services.rewrite_client import RewriteClientError, RewriteError

    rewriter = Mock()
    rewriter.rewrite.side_effect = RewriteClientError(
        RewriteError(code="RATE_LIMIT_ERROR", message="Rate limit exceeded", details={"retry_after": 60})
    )
    main.analysis_pipeline.rewriter = rewriter

    response = client.post("/optimize", json={"document": DOCUMENT, "chunk_index": 0, "query": "q"})

    assert response.status_code == 503
    assert response.json()["detail"]["error"]["code"] == "RATE_LIMIT_ERROR"


def test_optimize_chunk_out_of_range(client):
    """Test a missing chunk is a 400."""
    response = client.post(
        "/optimize", json={"document": DOCUMENT, "chunk_index": 9, "query": "q", "new_text": "text"}
    )
    assert response.status_code == 400


def test_optimize_empty_rewrite(client):
    """Test an empty rewrite is a 400."""
    response = client.post(
        "/optimize", json={"document": DOCUMENT, "chunk_index": 0, "query": "q", "new_text": "  "}
    )
    assert response.status_code == 400


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
