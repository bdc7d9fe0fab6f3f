from typing import Any, Optional

from pydantic import BaseModel


class TimerInfo(BaseModel):
    """Snapshot of an entry's expiration timer.

    Notes
    -----
    - `remaining` is `None` when the timer is due but has not fired yet.
    """

    timeout: float
    remaining: Optional[float] = None


class EntryInfo(BaseModel):
    key: Any
    value: Any
    timer: Optional[TimerInfo] = None

    def __str__(self) -> str:
        parts = [f"value: {self.value!r}"]
        if self.timer is not None:
            parts.append(f"timeout: {self.timer.timeout:g}")
            parts.append(f"remaining: {self.timer.remaining!r}")
        return "{" + ", ".join(parts) + "}"
