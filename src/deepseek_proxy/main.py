"""
DeepSeek Proxy - Application FastAPI Factory.
Traduction OpenAI -> DeepSeek, réponses synchrones et streaming SSE.
"""
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.errors import register_exception_handlers
from .api.router import api_router
from .config.loader import load_config, mask_api_key
from .config.settings import Settings
from .core.constants import SERVICE_NAME, VERSION
from .proxy.client import create_backend_client
from .proxy.gateway import ChatGateway
from .proxy.router import ModelPolicyTable


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> FastAPI:
    """
    Factory pour créer l'application FastAPI.

    Args:
        settings: Configuration déjà construite (sinon config.toml + environnement)
        transport: Transport HTTPX alternatif vers le backend (tests)

    Returns:
        Instance configurée de FastAPI

    Raises:
        ConfigurationError: configuration invalide (clé API absente, port...)
    """
    if settings is None:
        settings = Settings.from_config(load_config())
    settings.validate()

    table = ModelPolicyTable.from_settings(settings)
    client = create_backend_client(settings, transport=transport)
    gateway = ChatGateway(table, client, reasoning_mode=settings.reasoning.mode)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Gestion du cycle de vie de l'application."""
        # Startup
        _startup(app)
        yield
        # Shutdown
        await _shutdown(app)

    app = FastAPI(
        title="DeepSeek Proxy",
        description="API compatible OpenAI adossée à DeepSeek",
        version=VERSION,
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.table = table
    app.state.gateway = gateway
    app.state.started_at = time.monotonic()

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


def _startup(app: FastAPI):
    """Initialisation au démarrage."""
    settings = app.state.settings
    print(f"🚀 Démarrage de {SERVICE_NAME} v{VERSION}...")

    app.state.gateway.client.open()

    print(f"✅ Backend: {settings.backend.endpoint} (clé {mask_api_key(settings.backend.api_key)})")
    print(f"✅ {len(app.state.table.mapping)} modèle(s) exposé(s), défaut: {app.state.table.default_model}")
    print(f"✅ Raisonnement: {settings.reasoning.mode}")
    if not settings.auth.enabled:
        print("⚠️  Authentification client désactivée")
    print(f"🌐 API disponible sur http://localhost:{settings.server.port}/v1")


async def _shutdown(app: FastAPI):
    """Arrêt de l'application."""
    print("\n👋 Arrêt du serveur...")

    await app.state.gateway.client.aclose()

    print("✅ Serveur arrêté proprement")
