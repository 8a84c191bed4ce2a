"""
Tests des routes HTTP (FastAPI TestClient, backend simulé).
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from deepseek_proxy.config.settings import AuthConfig, BackendConfig, Settings
from deepseek_proxy.main import create_app

CHAT_RESPONSE = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 1700000000,
    "model": "deepseek-chat",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Salut"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 2, "completion_tokens": 1, "total_tokens": 3}
}


@pytest.fixture
def client(settings, backend_recorder):
    app = create_app(settings=settings, transport=backend_recorder.transport)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(api_key):
    return {"Authorization": f"Bearer {api_key}"}


class TestAuth:

    def test_missing_key(self, client):
        response = client.post("/v1/chat/completions", json={"model": "gpt-4", "messages": []})
        assert response.status_code == 401
        error = response.json()["error"]
        assert error["type"] == "authentication_error"
        assert error["code"] == "invalid_api_key"

    def test_wrong_key(self, client):
        response = client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "messages": []},
            headers={"Authorization": "Bearer sk-mauvaise"}
        )
        assert response.status_code == 401

    def test_auth_disabled(self, backend_recorder):
        backend_recorder.respond = lambda request: httpx.Response(200, json=CHAT_RESPONSE)
        settings = Settings(
            backend=BackendConfig(endpoint="https://backend.test", api_key="sk-back"),
            auth=AuthConfig(enabled=False)
        )
        app = create_app(settings=settings, transport=backend_recorder.transport)
        with TestClient(app) as client:
            response = client.post(
                "/v1/chat/completions",
                json={"model": "gpt-4", "messages": [{"role": "user", "content": "x"}]}
            )
        assert response.status_code == 200
        # La clé backend est toujours celle de la configuration
        assert backend_recorder.requests[0].headers["authorization"] == "Bearer sk-back"


class TestChatCompletions:

    def test_sync_model_rewritten(self, client, backend_recorder, auth_headers):
        backend_recorder.respond = lambda request: httpx.Response(200, json=CHAT_RESPONSE)

        response = client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "messages": [{"role": "user", "content": "Bonjour"}]},
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["model"] == "gpt-4"
        assert response.json()["choices"][0]["message"]["content"] == "Salut"
        sent = backend_recorder.last_json
        assert sent["model"] == "deepseek-chat"
        assert sent["temperature"] == 0.7

    def test_alias_path(self, client, backend_recorder, auth_headers):
        backend_recorder.respond = lambda request: httpx.Response(200, json=CHAT_RESPONSE)
        response = client.post(
            "/chat/completions",
            json={"model": "gpt-4", "messages": [{"role": "user", "content": "Bonjour"}]},
            headers=auth_headers
        )
        assert response.status_code == 200

    def test_invalid_json(self, client, auth_headers):
        response = client.post(
            "/v1/chat/completions",
            content=b"{pas du json",
            headers={**auth_headers, "Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"

    def test_backend_rejection_forwarded(self, client, backend_recorder, auth_headers):
        backend_recorder.respond = lambda request: httpx.Response(429, text="quota dépassé")

        response = client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "messages": [{"role": "user", "content": "x"}]},
            headers=auth_headers
        )

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "backend_rejected"
        assert "quota dépassé" in error["message"]
        assert error["details"]["status"] == 429

    def test_backend_structure_error_is_502(self, client, backend_recorder, auth_headers):
        backend_recorder.respond = lambda request: httpx.Response(200, json={"id": "x", "choices": [{"message": "oops"}]})

        response = client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "messages": [{"role": "user", "content": "x"}]},
            headers=auth_headers
        )

        assert response.status_code == 502
        assert response.json()["error"]["type"] == "malformed_backend_payload"

    def test_string_stream_flag_rejected(self, client, auth_headers):
        response = client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "stream": "false", "messages": [{"role": "user", "content": "x"}]},
            headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "stream"

    def test_backend_unreachable(self, client, backend_recorder, auth_headers):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        backend_recorder.respond = refuse
        response = client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "messages": [{"role": "user", "content": "x"}]},
            headers=auth_headers
        )
        assert response.status_code == 502
        assert response.json()["error"]["type"] == "backend_unreachable"

    def test_streaming(self, client, backend_recorder, auth_headers):
        def respond(request):
            body = (
                'data: {"id":"c","model":"deepseek-reasoner","choices":[{"index":0,"delta":{"content":"A"}}]}\n\n'
                'data: {"id":"c","model":"deepseek-reasoner","choices":[{"index":0,"delta":{"content":"B"}}]}\n\n'
                'data: [DONE]\n\n'
            )
            return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=body.encode())

        backend_recorder.respond = respond

        response = client.post(
            "/v1/chat/completions",
            json={"model": "o3", "stream": True, "temperature": 0.5,
                  "messages": [{"role": "user", "content": "x"}]},
            headers=auth_headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        payloads = [line[len("data: "):] for line in response.text.split("\n") if line.startswith("data: ")]
        assert payloads[-1] == "[DONE]"
        chunks = [json.loads(p) for p in payloads[:-1]]
        assert [c["choices"][0]["delta"]["content"] for c in chunks] == ["A", "B"]
        assert {c["model"] for c in chunks} == {"o3"}
        sent = backend_recorder.last_json
        assert sent["stream"] is True
        assert "temperature" not in sent

    def test_streaming_backend_error_before_first_byte(self, client, backend_recorder, auth_headers):
        backend_recorder.respond = lambda request: httpx.Response(503, text="indisponible")
        response = client.post(
            "/v1/chat/completions",
            json={"model": "o3", "stream": True, "messages": [{"role": "user", "content": "x"}]},
            headers=auth_headers
        )
        assert response.status_code == 502
        assert response.json()["error"]["details"]["status"] == 503


class TestInfoRoutes:

    def test_models(self, client):
        response = client.get("/v1/models")
        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        ids = [m["id"] for m in data["data"]]
        assert "gpt-4o" in ids and "deepseek-reasoner" in ids
        assert all(m["owned_by"] == "deepseek-proxy" for m in data["data"])
        alias = client.get("/models").json()
        assert [m["id"] for m in alias["data"]] == ids

    def test_model_detail(self, client):
        assert client.get("/v1/models/gpt-4").json()["backend_model"] == "deepseek-chat"
        assert client.get("/v1/models/inconnu").status_code == 400

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["service"] == "deepseek-proxy"

    def test_usage(self, client):
        data = client.get("/v1/usage").json()
        assert data["status"] == "active"
        assert data["endpoint"] == "https://backend.test"
        assert "gpt-4" in data["supported_models"]

    def test_root(self, client):
        data = client.get("/").json()
        assert data["endpoints"]["chat_completions"] == "POST /v1/chat/completions"
