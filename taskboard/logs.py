from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler


LOGGER_NAME = "taskboard"


def setup_logging(log_path: str, log_level: str = "ERROR") -> logging.Logger:
    """Attach a rotating file handler to the ``taskboard`` logger.

    Existing handlers are removed first so a repeated setup (or a CLI
    ``--log-level``) fully controls what reaches the file.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    # logger stays at DEBUG; the handler does the filtering
    logger.setLevel(logging.DEBUG)
    directory = os.path.dirname(os.path.abspath(log_path))
    os.makedirs(directory, exist_ok=True)
    fh = RotatingFileHandler(log_path, maxBytes=2000000, backupCount=2, encoding="utf-8")
    lvl = getattr(logging, str(log_level or "").upper(), None)
    fh.setLevel(lvl if isinstance(lvl, int) else logging.ERROR)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(fh)
    logger.propagate = False
    return logger
