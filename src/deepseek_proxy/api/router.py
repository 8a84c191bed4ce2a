"""
Router principal de l'API.
"""
from fastapi import APIRouter

from .routes import health, models, proxy

# Router principal
api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(models.router, tags=["models"])
api_router.include_router(proxy.router, tags=["proxy"])
