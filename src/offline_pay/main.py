"""Application entry point for the offline-pay node."""

from __future__ import annotations

import os

import uvicorn

from offline_pay.config.settings import AppConfig
from offline_pay.logging_setup import configure_logging


def main() -> None:
    """Start the offline-pay node server."""
    # OFFLINEPAY_CONFIG_PATH points at an optional YAML file
    config = AppConfig()
    configure_logging(config.logging)
    reload = os.getenv("OFFLINEPAY_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "offline_pay.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
