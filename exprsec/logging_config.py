from __future__ import annotations

import logging

PACKAGE_LOGGER = "exprsec"


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set verbosity for the `exprsec.*` loggers.

    uvicorn installs the handlers when serving. When nothing has configured
    logging yet (scripts, a bare `python -m`), a stderr handler is attached so
    denials and evaluation faults are still visible.

    `EXPRSEC_LOG_LEVEL=DEBUG` shows rule matching and every protocol phase.
    """

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.upper())

    if not logging.getLogger().handlers and not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)
