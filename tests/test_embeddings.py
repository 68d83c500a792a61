"""Tests for the embedding providers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

import httpx
import numpy as np
import pytest

from design_search.cancellation import CancellationToken
from design_search.embeddings import (
    GeminiEmbeddingProvider,
    MockEmbeddingProvider,
    OllamaEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from design_search.errors import OperationCancelledError, ProviderError


# ---------------------------------------------------------------------------
# Mock helpers
# ---------------------------------------------------------------------------


@dataclass
class _FakeEmbedding:
    values: list[float]


@dataclass
class _FakeEmbedResult:
    embeddings: list[_FakeEmbedding]


class _FakeModels:
    """Records calls and returns deterministic embeddings."""

    def __init__(self, *, fail_on: str | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail_on = fail_on

    def embed_content(
        self, *, model: str, contents: list[str], config: dict
    ) -> _FakeEmbedResult:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.fail_on is not None and any(self.fail_on in text for text in contents):
            raise RuntimeError("quota exceeded")
        dim = config.get("output_dimensionality", 768)
        return _FakeEmbedResult(
            embeddings=[
                _FakeEmbedding(values=[float(i + 1)] * dim) for i in range(len(contents))
            ]
        )


class _FakeClient:
    def __init__(self, *, fail_on: str | None = None) -> None:
        self.models = _FakeModels(fail_on=fail_on)


def _cosine(a: list[float], b: list[float]) -> float:
    va, vb = np.asarray(a), np.asarray(b)
    return float(va @ vb / (np.linalg.norm(va) * np.linalg.norm(vb)))


# ---------------------------------------------------------------------------
# Gemini (fake client, no API key needed)
# ---------------------------------------------------------------------------


def test_gemini_embed_batch_returns_correct_count() -> None:
    client = _FakeClient()
    provider = GeminiEmbeddingProvider(client=client, dim=4, batch_size=50)

    results = provider.embed_batch(["hello", "world"])

    assert len(results) == 2
    assert all(result.ok for result in results)
    assert len(results[0].vector) == 4


def test_gemini_batch_uses_document_task_type() -> None:
    client = _FakeClient()
    provider = GeminiEmbeddingProvider(client=client, dim=4)

    provider.embed_batch(["test"])

    call = client.models.calls[0]
    assert call["config"]["task_type"] == "RETRIEVAL_DOCUMENT"
    assert call["config"]["output_dimensionality"] == 4


def test_gemini_embed_uses_query_task_type() -> None:
    client = _FakeClient()
    provider = GeminiEmbeddingProvider(client=client, dim=4)

    result = provider.embed("search query")

    assert len(result) == 4
    call = client.models.calls[0]
    assert call["config"]["task_type"] == "RETRIEVAL_QUERY"


def test_gemini_batching() -> None:
    client = _FakeClient()
    provider = GeminiEmbeddingProvider(client=client, dim=4, batch_size=3)

    texts = [f"text_{i}" for i in range(7)]
    results = provider.embed_batch(texts)

    assert len(results) == 7
    # 7 texts with batch_size=3 -> 3 API calls (3+3+1)
    assert [len(call["contents"]) for call in client.models.calls] == [3, 3, 1]


def test_gemini_failed_batch_is_retried_per_item() -> None:
    client = _FakeClient(fail_on="broken")
    provider = GeminiEmbeddingProvider(client=client, dim=4, batch_size=10)

    results = provider.embed_batch(["first", "broken part", "third"])

    assert [result.ok for result in results] == [True, False, True]
    assert isinstance(results[1].error, ProviderError)
    assert isinstance(results[1].error.__cause__, RuntimeError)
    # one failed batch call, then one call per item
    assert len(client.models.calls) == 4


def test_gemini_blank_text_skips_the_api() -> None:
    client = _FakeClient()
    provider = GeminiEmbeddingProvider(client=client, dim=4)

    results = provider.embed_batch(["", "   "])

    assert [result.vector for result in results] == [[0.0] * 4, [0.0] * 4]
    assert provider.embed("") == [0.0] * 4
    assert client.models.calls == []


def test_gemini_missing_api_key_raises(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    with pytest.raises(ProviderError, match="GOOGLE_API_KEY"):
        GeminiEmbeddingProvider(api_key=None, client=None)


def test_gemini_query_failure_raises_provider_error() -> None:
    provider = GeminiEmbeddingProvider(client=_FakeClient(fail_on="q"), dim=4)

    with pytest.raises(ProviderError):
        provider.embed("query")


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------


def test_mock_is_deterministic() -> None:
    provider = MockEmbeddingProvider(384)

    first = provider.embed("hydraulic cylinder 100mm")
    second = MockEmbeddingProvider(384).embed("hydraulic cylinder 100mm")

    assert first == second
    assert len(first) == 384
    assert np.linalg.norm(first) == pytest.approx(1.0, abs=1e-5)


def test_mock_normalizes_case() -> None:
    provider = MockEmbeddingProvider(64)

    assert provider.embed("Ball Bearing") == provider.embed("ball bearing")


def test_mock_distinct_texts_differ() -> None:
    provider = MockEmbeddingProvider(384)

    vectors = [provider.embed(text) for text in ("a1", "b2", "c3", "d4")]

    assert len({tuple(v) for v in vectors}) == 4


def test_mock_shared_keywords_are_closer() -> None:
    provider = MockEmbeddingProvider(384)

    base = provider.embed("hydraulic cylinder stroke bore mount")
    related = provider.embed("hydraulic cylinder stroke bore flange")
    unrelated = provider.embed("ball bearing 6205 deep groove")

    assert _cosine(base, related) > _cosine(base, unrelated)


def test_mock_batch_matches_single_embed() -> None:
    provider = MockEmbeddingProvider(32, batch_size=2)

    texts = ["alpha", "", "gamma"]
    results = provider.embed_batch(texts)

    assert [result.vector for result in results] == [provider.embed(t) for t in texts]


# ---------------------------------------------------------------------------
# Ollama and OpenAI (httpx.MockTransport)
# ---------------------------------------------------------------------------


def test_ollama_posts_one_request_per_text() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"embedding": [0.5, 0.5, 0.5]})

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://ollama/")
    provider = OllamaEmbeddingProvider(dim=3, model="nomic-embed-text", client=client)

    results = provider.embed_batch(["one", "two"])

    assert all(result.ok for result in results)
    assert [request.url.path for request in requests] == ["/api/embeddings"] * 2
    assert json.loads(requests[0].content) == {"model": "nomic-embed-text", "prompt": "one"}


def test_ollama_http_error_becomes_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["prompt"] == "bad":
            return httpx.Response(500, json={"error": "model not loaded"})
        return httpx.Response(200, json={"embedding": [1.0, 0.0]})

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://ollama/")
    provider = OllamaEmbeddingProvider(dim=2, client=client)

    with pytest.raises(ProviderError):
        provider.embed("bad")
    results = provider.embed_batch(["good", "bad"])
    assert [result.ok for result in results] == [True, False]


def _ollama_returning(embedding: Any) -> OllamaEmbeddingProvider:
    client = httpx.Client(
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"embedding": embedding})
        ),
        base_url="http://ollama/",
    )
    return OllamaEmbeddingProvider(dim=3, client=client)


@pytest.mark.parametrize("embedding", [[None, None, None], ["x", "y", "z"], "0.1,0.2,0.3"])
def test_ollama_malformed_embedding_becomes_provider_error(embedding: Any) -> None:
    provider = _ollama_returning(embedding)

    with pytest.raises(ProviderError, match="malformed"):
        provider.embed("query")
    results = provider.embed_batch(["a", "b"])
    assert [result.ok for result in results] == [False, False]
    assert all(isinstance(result.error, ProviderError) for result in results)


def test_ollama_batch_stops_at_the_next_request_after_cancel() -> None:
    token = CancellationToken()
    prompts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        prompts.append(json.loads(request.content)["prompt"])
        token.cancel()
        return httpx.Response(200, json={"embedding": [1.0, 0.0]})

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://ollama/")
    provider = OllamaEmbeddingProvider(dim=2, client=client)

    with pytest.raises(OperationCancelledError):
        provider.embed_batch([f"text {i}" for i in range(20)], cancel=token)

    assert prompts == ["text 0"]

def test_openai_sorts_by_index_and_flags_bad_items() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        data = [
            {"index": 1, "embedding": [0.0, 1.0]},
            {"index": 0, "embedding": [1.0, 0.0]},
            {"index": 2, "embedding": [1.0, 1.0, 1.0]},
        ]
        return httpx.Response(200, json={"data": data})

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://openai/")
    provider = OpenAIEmbeddingProvider(dim=2, client=client)

    results = provider.embed_batch(["x", "y", "z"])

    assert len(bodies) == 1
    assert bodies[0]["input"] == ["x", "y", "z"]
    assert bodies[0]["dimensions"] == 2
    assert results[0].vector == [1.0, 0.0]
    assert results[1].vector == [0.0, 1.0]
    assert not results[2].ok


def test_openai_auth_failure_is_provider_error() -> None:
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(401)),
        base_url="http://openai/",
    )
    provider = OpenAIEmbeddingProvider(dim=2, client=client)

    with pytest.raises(ProviderError):
        provider.embed("query")


def test_openai_missing_api_key_raises(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ProviderError, match="OPENAI_API_KEY"):
        OpenAIEmbeddingProvider()


# ---------------------------------------------------------------------------
# Real API integration test (skipped unless GOOGLE_API_KEY is set)
# ---------------------------------------------------------------------------


@pytest.mark.skipif(
    not os.getenv("GOOGLE_API_KEY"),
    reason="GOOGLE_API_KEY not set - skipping real embedding test",
)
def test_real_gemini_embedding_api() -> None:
    provider = GeminiEmbeddingProvider(dim=128)

    results = provider.embed_batch(["Hydraulic cylinder 100mm.", "Ball bearing 6205."])

    assert len(results) == 2
    assert all(result.ok for result in results)
    assert len(provider.embed("cylinder")) == 128
