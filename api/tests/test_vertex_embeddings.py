import threading
from types import SimpleNamespace

import pytest

pytest.importorskip("vertexai")

from google.api_core import exceptions as g_exceptions  # noqa: E402

from services.errors import (  # noqa: E402
    EmbeddingAbandoned,
    ProviderRejected,
    ProviderUnavailable,
)
from services.vertex_embeddings import VertexEmbeddingProvider  # noqa: E402


class FakeModel:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def get_embeddings(self, inputs, **kwargs):
        self.calls.append(([i.text for i in inputs], [i.task_type for i in inputs], kwargs))
        if self.error is not None:
            raise self.error
        return [SimpleNamespace(values=[float(len(i.text)), 1.0]) for i in inputs]


def _provider(model, **kwargs):
    kwargs.setdefault("max_retries", 0)
    return VertexEmbeddingProvider(model, model_name="gemini-embedding-001", **kwargs)


def test_vertex_chunks_and_preserves_order():
    model = FakeModel()
    provider = _provider(model, batch_size=2, dim=2, task="SEMANTIC_SIMILARITY")
    vectors = provider.embed(["a", "bb", "ccc"])

    assert [v.tolist() for v in vectors] == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
    assert [c[0] for c in model.calls] == [["a", "bb"], ["ccc"]]
    assert model.calls[0][1] == ["SEMANTIC_SIMILARITY", "SEMANTIC_SIMILARITY"]
    assert model.calls[0][2] == {"output_dimensionality": 2}


def test_vertex_client_error_is_rejected():
    provider = _provider(FakeModel(error=g_exceptions.InvalidArgument("text too long")))
    with pytest.raises(ProviderRejected) as err:
        provider.embed(["x"])
    assert err.value.status == 400


def test_vertex_server_error_is_unavailable():
    provider = _provider(FakeModel(error=g_exceptions.ServiceUnavailable("try later")))
    with pytest.raises(ProviderUnavailable) as err:
        provider.embed(["x"])
    assert err.value.status == 503


def test_vertex_empty_input():
    model = FakeModel()
    assert _provider(model).embed([]) == []
    assert model.calls == []


def test_vertex_abandoned_call_is_never_sent():
    model = FakeModel()
    abort = threading.Event()
    abort.set()
    with pytest.raises(EmbeddingAbandoned):
        _provider(model).embed(["x"], abort)
    assert model.calls == []
