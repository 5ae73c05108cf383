"""
Logging setup for the API process and its background workers.

Components log through named loggers (``logging.getLogger("OverlayStore")``,
``"FirebasePoller"`` and so on); this module only wires the root handlers.
"""

import logging
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Kept at WARNING unless the service itself runs at DEBUG.
NOISY_LOGGERS = ("urllib3", "paho", "uvicorn.access")


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    Parameters
    ----------
    level: int | str
        Numeric level or a name such as ``"DEBUG"``; unknown names mean INFO.
    log_file: Optional[str]
        Also append records to this file when given.
    """
    numeric = resolve_level(level)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=numeric, format=LOG_FORMAT, handlers=handlers)
    if numeric > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
