from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

import llama_reply.serve.fastapi_app as app_mod
from llama_reply.common.config import Settings
from llama_reply.common.errors import (
    EmptyResponseError,
    GenerationError,
    GenerationTimeoutError,
    ProcessFailedError,
    ProcessNotFoundError,
)
from llama_reply.common.params import merge_params
from llama_reply.common.schema import GenerationMetadata, GenerationResult


class _FakeService:
    def __init__(self, error: GenerationError | None = None) -> None:
        self.settings = Settings(llama_cpp_path="/opt/llama-cli", model_path="/models/phi3.gguf")
        self.error = error
        self.calls: list[tuple[str, str, Any]] = []

    @property
    def default_params(self):
        return self.settings.default_params

    async def generate(self, message: str, preprompt: str = "", params: Any = None) -> GenerationResult:
        self.calls.append((message, preprompt, params))
        if self.error is not None:
            raise self.error
        return GenerationResult(
            text="Hello test",
            params=merge_params(params),
            metadata=GenerationMetadata(chunk_count=3, original_length=20, processing_time_ms=15),
        )

    async def test_connection(self) -> bool:
        return True


@pytest.fixture
def fake_service(monkeypatch) -> _FakeService:
    service = _FakeService()
    monkeypatch.setattr(app_mod, "SERVICE", service)
    return service


def test_health_ok(fake_service) -> None:
    client = TestClient(app_mod.app)
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data.get("status") == "ok"
    assert data.get("model") == "phi3.gguf"


def test_status_reports_default_params(fake_service) -> None:
    r = TestClient(app_mod.app).get("/status")
    assert r.status_code == 200
    assert r.json()["modelParams"]["maxTokens"] == 512


def test_test_connection(fake_service) -> None:
    r = TestClient(app_mod.app).get("/test-connection")
    assert r.json() == {"connected": True, "executable": "/opt/llama-cli"}


def test_generate_with_fake_service(fake_service) -> None:
    client = TestClient(app_mod.app)
    r = client.post(
        "/generate",
        json={"message": "test", "preprompt": "Be kind", "modelParams": {"temperature": "0.4"}},
    )
    assert r.status_code == 200
    data = r.json()
    assert data == {
        "response": "Hello test",
        "modelParams": {
            "temperature": 0.4,
            "maxTokens": 512,
            "topP": 0.95,
            "contextSize": 2048,
            "repeatPenalty": 1.1,
            "seed": -1,
        },
        "metadata": {"chunkCount": 3, "originalLength": 20, "processingTimeMs": 15},
    }
    assert fake_service.calls == [("test", "Be kind", {"temperature": "0.4"})]


def test_generate_rejects_unusable_params(fake_service) -> None:
    r = TestClient(app_mod.app).post("/generate", json={"message": "test", "modelParams": {"foo": 1}})
    assert r.status_code == 422
    assert fake_service.calls == []


def test_generate_rejects_empty_message(fake_service) -> None:
    r = TestClient(app_mod.app).post("/generate", json={"message": ""})
    assert r.status_code == 422


@pytest.mark.parametrize(
    "error, status, code",
    [
        (GenerationTimeoutError("Response timeout", {"chunkCount": 4}), 408, "GENERATION_TIMEOUT"),
        (EmptyResponseError("Empty response after processing"), 502, "EMPTY_RESPONSE"),
        (ProcessNotFoundError("missing"), 503, "LLAMA_NOT_FOUND"),
        (ProcessFailedError("boom"), 500, "GENERATION_ERROR"),
    ],
)
def test_generate_maps_error_kinds(monkeypatch, error, status, code) -> None:
    monkeypatch.setattr(app_mod, "SERVICE", _FakeService(error))
    r = TestClient(app_mod.app).post("/generate", json={"message": "test"})
    assert r.status_code == status
    data = r.json()
    assert data["code"] == code
    assert data["kind"] == error.kind.value
    assert data["details"] == error.details


def test_generate_accepts_snake_case_request_fields(fake_service) -> None:
    r = TestClient(app_mod.app).post("/generate", json={"message": "test", "model_params": {"seed": 5}})
    assert r.status_code == 200
    assert r.json()["modelParams"]["seed"] == 5
    assert fake_service.calls == [("test", "", {"seed": 5})]


def test_status_and_generate_share_param_keys(fake_service) -> None:
    client = TestClient(app_mod.app)
    status_keys = set(client.get("/status").json()["modelParams"])
    generate_keys = set(client.post("/generate", json={"message": "test"}).json()["modelParams"])
    assert status_keys == generate_keys
