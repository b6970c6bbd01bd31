"""Application logging setup."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_NAME = "timetrack:console"


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a stdout handler to the ``timetrack`` logger once.

    Calling it again only adjusts the level, so app factories and tests can
    call it freely.
    """
    logger = logging.getLogger("timetrack")
    logger.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        handler.set_name(_HANDLER_NAME)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def mask_email(email: str) -> str:
    """Mask an e-mail address for logs, e.g. ``tes***@example.com``."""
    if not email or "@" not in email:
        return "***"

    local_part, domain = email.split("@", 1)
    if len(local_part) <= 3:
        masked_local = "*" * len(local_part)
    else:
        masked_local = local_part[:3] + "***"
    return f"{masked_local}@{domain}"
