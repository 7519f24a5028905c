from __future__ import annotations

import logging

import uvicorn

from .config import Settings

logger = logging.getLogger(__name__)


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting server on http://%s:%d", settings.host, settings.port)
    uvicorn.run("pokemon_api.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
