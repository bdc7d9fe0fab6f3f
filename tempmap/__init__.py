from loguru import logger

from .cache import Entry, TempMap, default_sort, same_value
from .exceptions import EventLoopRequiredError, TempMapError
from .logging_utils import configure_logging
from .schemas import EntryInfo, TimerInfo
from .settings import Settings, settings
from .timers import (
    REFRESH,
    ExpiryTimer,
    Keep,
    LoopScheduler,
    Refresh,
    Scheduler,
    SetDuration,
    timeout_instruction,
)

logger.disable("tempmap")

__version__ = "1.0.0"

__all__ = [
    "TempMap",
    "Entry",
    "default_sort",
    "same_value",
    "TempMapError",
    "EventLoopRequiredError",
    "configure_logging",
    "EntryInfo",
    "TimerInfo",
    "Settings",
    "settings",
    "REFRESH",
    "ExpiryTimer",
    "Keep",
    "LoopScheduler",
    "Refresh",
    "Scheduler",
    "SetDuration",
    "timeout_instruction",
]
