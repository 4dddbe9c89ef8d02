"""Tests for the OpenAI wrapper and the Qdrant knowledge index against stubbed SDK clients."""
from types import SimpleNamespace

import httpx
import openai
import pytest

from tenantarmor.chat.knowledge import KnowledgeIndex, stable_point_id
from tenantarmor.core.errors import EmbeddingError, KnowledgeSearchError, LanguageModelError
from tenantarmor.core.openai_client import OpenAILanguageModel

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class StubOpenAI:
    """Stands in for openai.OpenAI: each create() returns (or raises) the next scripted item."""

    def __init__(self, completions=(), embeddings=()):
        self._completions = list(completions)
        self._embeddings = list(embeddings)
        self.completion_calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create_completion))
        self.embeddings = SimpleNamespace(create=self._create_embedding)

    def _next(self, items):
        item = items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def _create_completion(self, **kwargs):
        self.completion_calls.append(kwargs)
        return self._next(self._completions)

    def _create_embedding(self, **kwargs):
        return self._next(self._embeddings)


def _model(client):
    return OpenAILanguageModel(
        client,
        analysis_model="gpt-test",
        chat_model="gpt-chat",
        embedding_model="embed-test",
        timeout_seconds=5,
        embed_retries=0,
    )


# -------------------------
# JSON completions
# -------------------------

def test_complete_json_returns_object():
    client = StubOpenAI(completions=[_completion('{"summary": "ok", "overallSeverity": "Low"}')])
    assert _model(client).complete_json("sys", "user", temperature=0.2) == {"summary": "ok", "overallSeverity": "Low"}
    call = client.completion_calls[0]
    assert call["model"] == "gpt-test"
    assert call["response_format"] == {"type": "json_object"}
    assert call["temperature"] == 0.2


@pytest.mark.parametrize("content", ["{not json", "", "   ", "[1, 2, 3]", '"just a string"'])
def test_unusable_content_is_malformed(content):
    client = StubOpenAI(completions=[_completion(content)])
    with pytest.raises(LanguageModelError) as exc:
        _model(client).complete_json("sys", "user")
    assert exc.value.kind == "malformed"


def test_no_choices_is_malformed():
    client = StubOpenAI(completions=[SimpleNamespace(choices=[])])
    with pytest.raises(LanguageModelError) as exc:
        _model(client).complete_json("sys", "user")
    assert exc.value.kind == "malformed"


def test_timeout_maps_to_timeout_kind():
    client = StubOpenAI(completions=[openai.APITimeoutError(request=REQUEST)])
    with pytest.raises(LanguageModelError) as exc:
        _model(client).complete_json("sys", "user")
    assert exc.value.kind == "timeout"
    assert len(client.completion_calls) == 1


def test_connection_error_maps_to_provider_kind_without_retry():
    client = StubOpenAI(completions=[openai.APIConnectionError(request=REQUEST), _completion("{}")])
    with pytest.raises(LanguageModelError) as exc:
        _model(client).complete_json("sys", "user")
    assert exc.value.kind == "provider"
    assert len(client.completion_calls) == 1


# -------------------------
# Streaming and embeddings
# -------------------------

def test_stream_chat_yields_non_empty_deltas():
    client = StubOpenAI(completions=[iter([_chunk("You "), _chunk(None), _chunk("may.")])])
    deltas = list(_model(client).stream_chat("sys", [{"role": "user", "content": "q"}]))
    assert deltas == ["You ", "may."]
    assert client.completion_calls[0]["model"] == "gpt-chat"
    assert client.completion_calls[0]["messages"][0] == {"role": "system", "content": "sys"}


def test_stream_chat_timeout_raises_model_error():
    client = StubOpenAI(completions=[openai.APITimeoutError(request=REQUEST)])
    with pytest.raises(LanguageModelError) as exc:
        list(_model(client).stream_chat("sys", [{"role": "user", "content": "q"}]))
    assert exc.value.kind == "timeout"


def test_embed_returns_vector():
    client = StubOpenAI(embeddings=[SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2])])])
    assert _model(client).embed("late fee") == [0.1, 0.2]


def test_embed_failure_is_embedding_error():
    client = StubOpenAI(embeddings=[openai.APIConnectionError(request=REQUEST)])
    with pytest.raises(EmbeddingError):
        _model(client).embed("late fee")


def test_empty_embedding_is_embedding_error():
    client = StubOpenAI(embeddings=[SimpleNamespace(data=[])])
    with pytest.raises(EmbeddingError):
        _model(client).embed("late fee")


# -------------------------
# Knowledge index
# -------------------------

class StubQdrant:
    def __init__(self, points=None, error=None):
        self.points = points or []
        self.error = error
        self.queries = []

    def query_points(self, **kwargs):
        self.queries.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(points=self.points)


def test_search_filters_by_jurisdiction_and_maps_payload():
    point = SimpleNamespace(
        id="p1",
        score=0.87,
        payload={"entry_id": "ca-late-fees", "jurisdiction": "CA", "title": "Late fees", "text": "Must be reasonable."},
    )
    client = StubQdrant(points=[point])

    hits = KnowledgeIndex(client, "legal_knowledge").search([0.1, 0.2], "CA", 3)

    assert hits == [
        {"entry_id": "ca-late-fees", "title": "Late fees", "jurisdiction": "CA", "text": "Must be reasonable.", "score": 0.87}
    ]
    query = client.queries[0]
    assert query["collection_name"] == "legal_knowledge"
    assert query["limit"] == 3
    condition = query["query_filter"].must[0]
    assert condition.key == "jurisdiction"
    assert condition.match.value == "CA"


@pytest.mark.parametrize("error", [ConnectionError("refused"), TimeoutError("timed out"), ValueError("bad collection")])
def test_any_backend_failure_is_knowledge_search_error(error):
    with pytest.raises(KnowledgeSearchError):
        KnowledgeIndex(StubQdrant(error=error), "legal_knowledge").search([0.1], "CA", 3)


def test_stable_point_id_is_deterministic():
    assert stable_point_id("ca-late-fees") == stable_point_id("ca-late-fees")
    assert stable_point_id("ca-late-fees") != stable_point_id("ny-late-fees")
