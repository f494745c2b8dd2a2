# -*- coding: utf-8 -*-
"""Serve the upload API: ``python -m hashdepot``."""

import logging

import uvicorn

from hashdepot.api import create_app
from hashdepot.settings import configure_logging, get_settings

logger = logging.getLogger("hashdepot")


def main():
    settings = get_settings()
    configure_logging(settings.log_level)

    app = create_app(settings=settings)
    logger.info("Serving %s on %s:%d", settings.storage_url, settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
