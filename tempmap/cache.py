import itertools
import math
import sys
import types
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from loguru import logger

from .schemas import EntryInfo, TimerInfo
from .settings import Settings, settings as default_settings
from .timers import (
    REFRESH,
    ExpiryTimer,
    LoopScheduler,
    Refresh,
    Scheduler,
    SetDuration,
    TimeoutInstruction,
    timeout_instruction,
    transplant_timeout,
)

_SCALARS = (type(None), bool, int, float, complex, str, bytes)


def same_value(first: Any, second: Any) -> bool:
    """Identity for objects, equality for immutable scalars of the same type.

    Two float NaNs are considered the same value.
    """

    if first is second:
        return True
    if type(first) is not type(second) or not isinstance(first, _SCALARS):
        return False
    if isinstance(first, float) and math.isnan(first) and math.isnan(second):
        return True
    return first == second


def default_sort(first_value: Any, second_value: Any, *_keys: Any) -> int:
    """Order values by their string conversion."""

    a, b = str(first_value), str(second_value)
    return (a > b) - (a < b)


def _resolve(default, key, container):
    return default(key, container) if callable(default) else default


@dataclass
class Entry:
    value: Any
    timer: Optional[ExpiryTimer] = None


class TempMap:
    """Insertion-ordered key-value map whose entries can expire on their own.

    Parameters
    ----------
    items : Optional[Any]
        Initial content: another `TempMap` (copied with its remaining
        lifetimes), a mapping, or an iterable of `(key, value)` pairs.
    scheduler : Optional[Scheduler]
        Where expirations are scheduled. Defaults to a `LoopScheduler` bound
        to the running asyncio loop the first time a timer is armed.
    settings : Optional[Settings]
        Configuration; defaults to the module-level `settings`.

    Notes
    -----
    - Timeouts are in milliseconds. Each `timeout` argument is tri-state:
      omitted refreshes the current timer, `None` keeps it untouched and a
      number replaces it (zero or negative makes the entry permanent).
    - Missing keys are reported by returning `None`, never by raising
      (except for the `map[key]` / `del map[key]` protocol).
    - Entries that are due but whose callback has not run yet are treated as
      absent by key lookups and evicted on contact.
    - Not thread-safe; meant for a single asyncio event loop.
    """

    def __init__(self, items: Optional[Any] = None, *, scheduler: Optional[Scheduler] = None,
                 settings: Optional[Settings] = None):
        self._entries: Dict[Any, Entry] = {}
        self._scheduler = scheduler if scheduler is not None else LoopScheduler()
        self.settings = settings or default_settings
        if isinstance(items, TempMap):
            self.concat(items, refresh_timeout=False)
        elif items is not None:
            pairs = items.items() if hasattr(items, "items") else items
            for key, value in pairs:
                self.set(key, value)

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    # -- entry store -----------------------------------------------------

    def _spawn(self) -> "TempMap":
        return type(self)(scheduler=self._scheduler, settings=self.settings)

    def _lookup(self, key) -> Optional[Entry]:
        entry = self._entries.get(key)
        if entry is not None and entry.timer is not None and entry.timer.due:
            logger.debug("Evicting due entry {!r}", key)
            self._delete_item(key, entry)
            return None
        return entry

    def _get_item(self, key, refresh_timeout: bool) -> Optional[Entry]:
        entry = self._lookup(key)
        if refresh_timeout and entry is not None and entry.timer is not None:
            entry.timer.refresh()
        return entry

    def _arm(self, key, entry: Entry, duration: float) -> Entry:
        timer = None
        if duration > 0:
            # scheduling may fail; the previous timer stays in place until it succeeds
            timer = ExpiryTimer(self._scheduler, duration, lambda: self._expire(key, entry, timer))
        if entry.timer is not None:
            entry.timer.cancel()
        entry.timer = timer
        if timer is not None:
            logger.debug("Armed timer for {!r} ({}ms)", key, duration)
        return entry

    def _expire(self, key, entry: Entry, timer: ExpiryTimer) -> None:
        # only the timer currently owned by the stored entry may remove it
        if self._entries.get(key) is entry and entry.timer is timer:
            del self._entries[key]
            logger.debug("Entry {!r} expired", key)

    def _set_item(self, key, entry: Optional[Entry], value, instruction: TimeoutInstruction):
        if entry is not None:
            if isinstance(instruction, SetDuration):
                self._arm(key, entry, instruction.duration)
            elif isinstance(instruction, Refresh) and entry.timer is not None:
                entry.timer.refresh()
            entry.value = value
            return value

        if isinstance(instruction, SetDuration):
            duration = instruction.duration
        elif isinstance(instruction, Refresh):
            duration = self.settings.default_timeout
        else:
            duration = 0
        self._entries[key] = self._arm(key, Entry(value), duration)
        return value

    def _delete_item(self, key, entry: Optional[Entry]) -> Optional[Entry]:
        if entry is None or self._entries.get(key) is not entry:
            return None
        del self._entries[key]
        if entry.timer is not None:
            entry.timer.cancel()
        return entry

    def _copy_item(self, key, entry: Entry, ensure: bool, refresh_timeout: bool):
        """Insert `entry` here, carrying over its full or remaining lifetime.

        Entries that are already due are skipped and `None` is returned.
        """

        timeout = transplant_timeout(entry.timer, refresh_timeout)
        if timeout is None:
            return None
        if ensure:
            return self.ensure(key, lambda *_: entry.value, SetDuration(timeout), refresh_timeout=False)
        return self.set(key, entry.value, SetDuration(timeout))

    # -- mutation --------------------------------------------------------

    def set(self, key, value, timeout=REFRESH):
        """Add or update an entry.

        Parameters
        ----------
        key : Any
            Hashable key.
        value : Any
            Value to store.
        timeout : REFRESH | None | float
            Milliseconds before the entry is deleted. For an existing entry,
            omit it to refresh the current timer, pass `None` to keep the
            current timer as is, or pass zero/a negative number to remove the
            timer. For a new entry, omitted uses `settings.default_timeout`
            and `None`/zero/negative adds it without a timer.

        Returns
        -------
        Any
            The given `value`.
        """

        instruction = timeout_instruction(timeout)
        return self._set_item(key, self._lookup(key), value, instruction)

    def add(self, key, value, timeout=REFRESH):
        """Add a new entry; returns `value`, or `None` if `key` already exists."""

        instruction = timeout_instruction(timeout)
        if self._lookup(key) is not None:
            return None
        return self._set_item(key, None, value, instruction)

    def update(self, key, value, timeout=REFRESH):
        """Update an existing entry; returns `value`, or `None` if `key` is missing."""

        instruction = timeout_instruction(timeout)
        entry = self._lookup(key)
        if entry is None:
            return None
        return self._set_item(key, entry, value, instruction)

    def ensure(self, key, default, timeout=REFRESH, refresh_timeout: bool = True):
        """Return the value for `key`, inserting a default when it is missing.

        Parameters
        ----------
        key : Any
            Key to look up.
        default : Any
            The value to insert, or a `callable(key, map)` producing it. Only
            evaluated when `key` is missing.
        timeout : REFRESH | None | float
            Timeout for the inserted entry; see `set`.
        refresh_timeout : bool
            Whether to refresh the timer of an existing entry.

        Returns
        -------
        Any
            The existing value or the newly inserted one.
        """

        instruction = timeout_instruction(timeout)
        entry = self._get_item(key, refresh_timeout)
        if entry is not None:
            return entry.value
        value = _resolve(default, key, self)
        # the factory may have inserted the key itself
        return self._set_item(key, self._lookup(key), value, instruction)

    def delete(self, key):
        """Delete an entry; returns its value, or `None` if it does not exist."""

        entry = self._delete_item(key, self._lookup(key))
        return entry.value if entry is not None else None

    def sweep(self, predicate: Callable[[Any, Any, "TempMap"], Any]) -> int:
        """Delete every entry for which `predicate(value, key, map)` is true.

        Returns
        -------
        int
            Number of deleted entries.
        """

        removed = 0
        for key, entry in list(self._entries.items()):
            if self._entries.get(key) is not entry:
                continue
            if predicate(entry.value, key, self) and self._delete_item(key, entry) is not None:
                removed += 1
        return removed

    def clear(self) -> int:
        """Delete all entries and return how many there were."""

        removed = self.sweep(lambda *_: True)
        if removed:
            logger.debug("Cleared {} entries", removed)
        return removed

    # -- reads -----------------------------------------------------------

    def get(self, key, refresh_timeout: bool = True):
        """Return the value for `key`, or `None`.

        With `refresh_timeout` the entry's timer restarts from its full
        duration (sliding expiration).
        """

        entry = self._get_item(key, refresh_timeout)
        return entry.value if entry is not None else None

    def at(self, index: int, refresh_timeout: bool = True) -> Optional[Tuple[Any, Any]]:
        """Return the `(key, value)` pair at an insertion-order position.

        Negative indexes count from the end. Out of range returns `None`.
        """

        size = len(self._entries)
        if index < 0:
            index += size
        if not 0 <= index < size:
            return None
        key = next(itertools.islice(self._entries, index, None))
        entry = self._get_item(key, refresh_timeout)
        if entry is None:
            return None
        return key, entry.value

    def has(self, key) -> bool:
        return self._lookup(key) is not None

    def has_all(self, *keys) -> bool:
        return all(self.has(key) for key in keys)

    def has_any(self, *keys) -> bool:
        return any(self.has(key) for key in keys)

    def timeout(self, key, remaining: bool = True) -> Optional[float]:
        """Configured (or remaining) timeout of `key`; `None` if it has no timer."""

        entry = self._lookup(key)
        if entry is None or entry.timer is None:
            return None
        return entry.timer.remaining(remaining)

    # -- iteration -------------------------------------------------------

    def keys(self) -> Iterator[Any]:
        yield from self._entries

    def values(self) -> Iterator[Any]:
        for entry in self._entries.values():
            yield entry.value

    def items(self) -> Iterator[Tuple[Any, Any]]:
        for key, entry in self._entries.items():
            yield key, entry.value

    entries = items

    def for_each(self, fn: Callable, this_arg: Any = None) -> "TempMap":
        """Call `fn(value, key, map)` for every entry.

        If `this_arg` is given, `fn` is bound to it as its first argument.
        """

        if this_arg is not None:
            fn = types.MethodType(fn, this_arg)
        for key, value in list(self.items()):
            fn(value, key, self)
        return self

    def first(self, count: int = 1) -> List[Tuple[Any, Any]]:
        return list(itertools.islice(self.items(), max(count, 0)))

    def last(self, count: int = 1) -> List[Tuple[Any, Any]]:
        if count <= 0:
            return []
        # a count larger than the map returns every entry
        return list(itertools.islice(self.items(), max(len(self._entries) - count, 0), None))

    def find(self, predicate: Callable) -> Optional[Tuple[Any, Any]]:
        for key, value in list(self.items()):
            if predicate(value, key, self):
                return key, value
        return None

    def every(self, predicate: Callable) -> bool:
        return all(predicate(value, key, self) for key, value in list(self.items()))

    # -- derived collections ---------------------------------------------

    def clone(self, refresh_timeout: bool = True) -> "TempMap":
        """Shallow copy; `refresh_timeout=False` keeps each entry's countdown."""

        result = self._spawn()
        for key, entry in list(self._entries.items()):
            result._copy_item(key, entry, False, refresh_timeout)
        return result

    def filter(self, predicate: Callable, refresh_timeout: bool = True) -> "TempMap":
        """New map with the entries for which `predicate(value, key, map)` holds."""

        result = self._spawn()
        for key, entry in list(self._entries.items()):
            if predicate(entry.value, key, self):
                result._copy_item(key, entry, False, refresh_timeout)
        return result

    def map(self, fn: Callable) -> List[Any]:
        """List of `fn(value, key, map)` for every entry present at call time."""

        return [fn(value, key, self) for key, value in list(self.items())]

    def partition(self, predicate: Callable, refresh_timeout: bool = True) -> Tuple["TempMap", "TempMap"]:
        """Split into `(passed, failed)` maps according to `predicate(value, key, map)`."""

        passed, failed = self._spawn(), self._spawn()
        for key, entry in list(self._entries.items()):
            target = passed if predicate(entry.value, key, self) else failed
            target._copy_item(key, entry, False, refresh_timeout)
        return passed, failed

    def concat(self, other: "TempMap", refresh_timeout: bool = True) -> "TempMap":
        """Copy the entries of `other` into this map, in place.

        Keys that already exist here are left untouched.
        """

        if other is self:
            return self
        for key, entry in list(other._entries.items()):
            self._copy_item(key, entry, True, refresh_timeout)
        return self

    def difference(self, other: "TempMap", refresh_timeout: bool = True) -> "TempMap":
        """New map with the entries whose key exists in only one of the two maps."""

        ours = self.filter(lambda _, key, __: not other.has(key), refresh_timeout)
        theirs = other.filter(lambda _, key, __: not self.has(key), refresh_timeout)
        return ours.concat(theirs, refresh_timeout)

    def intersect(self, other: "TempMap", refresh_timeout: bool = True) -> "TempMap":
        """New map with the entries of this map present in `other` with the same value."""

        def shared(value, key, _):
            entry = other._get_item(key, False)
            return entry is not None and same_value(value, entry.value)

        return self.filter(shared, refresh_timeout)

    def sort(self, comparator: Optional[Callable] = None, refresh_timeout: bool = True) -> "TempMap":
        """Stable in-place sort by `comparator(value_a, value_b, key_a, key_b)`.

        The map is cleared and refilled in order, so every timer is re-armed
        with its full (`refresh_timeout`) or remaining duration.
        """

        comparator = comparator or default_sort
        ordered = sorted(
            self._entries.items(),
            key=cmp_to_key(lambda a, b: comparator(a[1].value, b[1].value, a[0], b[0])),
        )
        self.clear()
        for key, entry in ordered:
            self._copy_item(key, entry, False, refresh_timeout)
        return self

    def equals(self, other: Any) -> bool:
        """Same size, same keys and same values; timers are ignored."""

        if self is other:
            return True
        if not isinstance(other, TempMap) or len(other._entries) != len(self._entries):
            return False
        for key, entry in self._entries.items():
            theirs = other._entries.get(key)
            if theirs is None or not same_value(entry.value, theirs.value):
                return False
        return True

    # -- rendering -------------------------------------------------------

    def to_string(self, sep: Optional[str] = None, predicate: Optional[Callable] = None,
                  transform: Optional[Callable] = None) -> str:
        """Join the string form of the values.

        Parameters
        ----------
        sep : Optional[str]
            Separator, defaults to `settings.string_separator`.
        predicate : Optional[Callable]
            `predicate(value, key, map)` selecting which entries to render.
        transform : Optional[Callable]
            `transform(value, key, map)` producing what is rendered instead of the value.
        """

        if sep is None:
            sep = self.settings.string_separator
        parts = []
        for key, value in list(self.items()):
            if predicate is None or predicate(value, key, self):
                parts.append(str(transform(value, key, self) if transform else value))
        return sep.join(parts)

    def describe(self) -> List[EntryInfo]:
        infos = []
        for key, entry in self._entries.items():
            timer = None
            if entry.timer is not None:
                timer = TimerInfo(timeout=entry.timer.timeout, remaining=entry.timer.remaining(True))
            infos.append(EntryInfo(key=key, value=entry.value, timer=timer))
        return infos

    def debug(self, file=None) -> None:
        """Print every entry with its timer state, for debugging."""

        file = file or sys.stdout
        print(f"{type(self).__name__}[{len(self)}]:", file=file)
        for info in self.describe():
            print(">", repr(info.key), info, file=file)

    # -- python protocols --------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return self.has(key)

    def __iter__(self) -> Iterator[Any]:
        return self.keys()

    async def __aiter__(self):
        for item in list(self.items()):
            yield item

    def __getitem__(self, key):
        entry = self._get_item(key, True)
        if entry is None:
            raise KeyError(key)
        return entry.value

    def __setitem__(self, key, value) -> None:
        self.set(key, value)

    def __delitem__(self, key) -> None:
        if self._delete_item(key, self._lookup(key)) is None:
            raise KeyError(key)

    def __eq__(self, other):
        if not isinstance(other, TempMap):
            return NotImplemented
        return self.equals(other)

    __hash__ = None

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"{type(self).__name__}[{len(self)}]"


__all__ = ["TempMap", "Entry", "default_sort", "same_value"]
