"""
Configuration des tests pytest.
"""
import json
import os
import sys

import httpx
import pytest

# Ajoute src au path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from deepseek_proxy.config.loader import _clear_config_cache
from deepseek_proxy.config.settings import AuthConfig, BackendConfig, Settings
from deepseek_proxy.proxy.router import ModelPolicyTable

TEST_API_KEY = "sk-test-0123456789"
TEST_ENDPOINT = "https://backend.test"


@pytest.fixture(autouse=True)
def clear_config_cache():
    """Isole le cache de configuration entre les tests."""
    _clear_config_cache()
    yield
    _clear_config_cache()


@pytest.fixture
def api_key():
    return TEST_API_KEY


@pytest.fixture
def settings():
    """Settings minimales valides (auth activée, clé partagée)."""
    return Settings(
        backend=BackendConfig(endpoint=TEST_ENDPOINT, api_key=TEST_API_KEY),
        auth=AuthConfig(enabled=True, api_key=TEST_API_KEY)
    )


@pytest.fixture
def table():
    """Table des modèles par défaut."""
    return ModelPolicyTable()


@pytest.fixture
def backend_recorder():
    """
    Backend simulé: enregistre les requêtes reçues et répond via un handler
    remplaçable (``recorder.respond``).
    """

    class Recorder:
        def __init__(self):
            self.requests = []
            self.respond = lambda request: httpx.Response(500, text="no handler")

        def handler(self, request: httpx.Request):
            self.requests.append(request)
            return self.respond(request)

        @property
        def last_json(self):
            return json.loads(self.requests[-1].content)

        @property
        def transport(self):
            return httpx.MockTransport(self.handler)

    return Recorder()


@pytest.fixture
def sample_messages():
    """Fixture pour des messages de test."""
    return [
        {"role": "system", "content": "Tu es un assistant utile."},
        {"role": "user", "content": "Bonjour, comment ça va?"},
    ]
