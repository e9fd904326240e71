"""Console logging setup for the command-line entry point.

Library modules only create their own ``logging.getLogger(__name__)``;
handlers are installed here, by the application, never on import.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a console handler to the ``doc_vectorizer`` logger.

    Calling it again replaces the previous handler instead of stacking
    another one.
    """
    logger = logging.getLogger("doc_vectorizer")
    if logger.hasHandlers():
        logger.handlers.clear()

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
