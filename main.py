"""
JustHigher blog backend entry point.
Serves the HTTP API with uvicorn; the app lifespan owns the database and the
maintenance scheduler.
"""

import uvicorn
from loguru import logger

from justhigher.app import AppContainer, create_app
from justhigher.logging import setup_logging
from justhigher.settings import global_settings


def main() -> None:
    setup_logging(global_settings)
    logger.info(f"Starting {global_settings.site_name}...")

    app = create_app(AppContainer(global_settings))

    try:
        uvicorn.run(
            app,
            host=global_settings.host,
            port=global_settings.port,
            log_level=global_settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        logger.info(f"{global_settings.site_name} stopped")


if __name__ == "__main__":
    main()
