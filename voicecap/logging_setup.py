"""Root logger setup from LOG_LEVEL / LOG_FILE. Called once at app startup."""
from __future__ import annotations

import logging
import os

from voicecap.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings | None = None) -> None:
    """Console handler always; file handler only when LOG_FILE is set."""
    settings = settings or get_settings()
    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    log_file = (settings.LOG_FILE or "").strip()
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        target = os.path.abspath(log_file)
        if not any(isinstance(h, logging.FileHandler) and h.baseFilename == target for h in root.handlers):
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
