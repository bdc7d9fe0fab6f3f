class TempMapError(Exception):
    """Base class for errors raised by `tempmap`.

    Notes
    -----
    - Missing keys and failed preconditions are never reported through
      exceptions; those operations return `None` instead.
    """


class EventLoopRequiredError(TempMapError, RuntimeError):
    """An expiring entry was requested but no event loop is available.

    Timers are scheduled on an asyncio event loop. Set expiring entries from
    inside a coroutine, or pass a `LoopScheduler` bound to an explicit loop.
    """

    def __init__(self, message: str = "Cannot schedule an expiration: no running event loop "
                                      "and no loop bound to the scheduler"):
        super().__init__(message)
