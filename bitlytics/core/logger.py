"""Logger accessor shared by every bitlytics module.

Library code never configures handlers on import; applications call
`bitlytics.core.logging_config.configure_logging` once at startup.
"""

from __future__ import annotations

import logging


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
