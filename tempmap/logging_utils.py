import sys
from typing import Optional

from loguru import logger

from .settings import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} [{level}] {name} - {message}"

# loguru's stderr handler installed at import time
_DEFAULT_HANDLER_ID = 0
_handler_id: Optional[int] = None


def configure_logging(level: Optional[str] = None, sink=sys.stderr) -> int:
    """Turn on `tempmap` log output.

    The package is silent by default (`logger.disable("tempmap")` on import).
    This enables it and adds a single sink for it.

    Parameters
    ----------
    level : Optional[str]
        Minimum level; defaults to `settings.log_level`.
    sink : Any
        Anything accepted by `loguru.logger.add`. Defaults to stderr.

    Returns
    -------
    int
        The loguru handler id, usable with `logger.remove`.

    Notes
    -----
    - Only loguru's default handler and the handler added by a previous call
      are removed. Handlers installed by the application are left alone.
    """

    global _handler_id
    for handler_id in (_DEFAULT_HANDLER_ID, _handler_id):
        if handler_id is None:
            continue
        try:
            logger.remove(handler_id)
        except ValueError:
            # already removed
            continue
    logger.enable("tempmap")
    _handler_id = logger.add(sink, level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    return _handler_id


__all__ = ["configure_logging", "LOG_FORMAT"]
