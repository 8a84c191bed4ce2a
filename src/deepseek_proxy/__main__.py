"""
Point d'entrée pour `python -m deepseek_proxy`.
"""
import logging
import os
import sys

import uvicorn

from .config.loader import CONFIG_ENV_VAR, get_server_config, load_config
from .core.constants import SERVICE_NAME, VERSION
from .core.exceptions import ConfigurationError
from .main import create_app


def main():
    """Fonction principale."""
    import argparse

    parser = argparse.ArgumentParser(description="DeepSeek Proxy (API compatible OpenAI)")
    parser.add_argument("--host", default=None, help="Host (défaut: [server].host ou 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port (défaut: $PORT, [server].port ou 9000)")
    parser.add_argument("--config", default=None, help="Chemin du config.toml")
    parser.add_argument("--debug", action="store_true", help="Logs détaillés")
    parser.add_argument("--reload", action="store_true", help="Activer le reload auto")
    parser.add_argument("--version", action="version", version=f"{SERVICE_NAME} {VERSION}")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Le worker uvicorn relit la configuration via l'environnement
    if args.config:
        os.environ[CONFIG_ENV_VAR] = args.config

    try:
        server = get_server_config(load_config())
        # Validation anticipée: échoue avant d'ouvrir le port
        create_app()
    except ConfigurationError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    host = args.host or server["host"]
    port = args.port or server["port"]

    print(f"🚀 Démarrage de {SERVICE_NAME} sur {host}:{port}")

    uvicorn.run(
        "deepseek_proxy.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=args.reload,
        log_level="debug" if args.debug else "info"
    )


if __name__ == "__main__":
    main()
