"""Dataref and command models."""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

_LOGGER = logging.getLogger(__name__)

ValueListener = Callable[["DataRefElement", float], None]
StringListener = Callable[["StringDataRefElement", str], None]

_MAX_CODE_POINT = 0x10FFFF


@dataclass(slots=True)
class XPlaneCommand:
    """A simulator console command such as ``sim/operation/pause_toggle``."""

    command: str
    description: str = ""

    def __str__(self) -> str:
        return self.command


@dataclass(eq=False)
class DataRefElement:
    """A numeric dataref and its last known value.

    ``id`` is assigned by the connector on subscribe and cleared again when
    the element is unsubscribed. ``last_update`` is a ``time.monotonic``
    timestamp.
    """

    dataref: str
    frequency: Optional[int] = None
    description: str = ""
    units: str = ""
    id: Optional[int] = field(default=None, init=False)
    value: Optional[float] = field(default=None, init=False)
    last_update: Optional[float] = field(default=None, init=False)
    _listeners: List[ValueListener] = field(default_factory=list, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self.value is not None

    @property
    def age(self) -> float:
        return self.age_at(time.monotonic())

    def age_at(self, now: float) -> float:
        """Seconds since the last update, ``math.inf`` if never updated."""

        with self._lock:
            if self.last_update is None:
                return math.inf
            return now - self.last_update

    def add_change_listener(self, callback: ValueListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def assign_id(self, dataref_id: int) -> None:
        with self._lock:
            self.id = dataref_id
            self.last_update = None

    def reset(self) -> None:
        with self._lock:
            self.id = None
            self.last_update = None

    def update(self, dataref_id: int, value: float, *, now: Optional[float] = None) -> bool:
        """Apply a streamed value; return ``True`` when it changed."""

        with self._lock:
            if self.id is None or dataref_id != self.id:
                return False
            self.last_update = time.monotonic() if now is None else now
            if self.value is not None and self.value == value:
                return False
            self.value = value
            listeners = list(self._listeners)
        self._notify(listeners, value)
        return True

    def _notify(self, listeners: List[ValueListener], value: float) -> None:
        for listener in listeners:
            try:
                listener(self, value)
            except Exception:
                _LOGGER.exception("Change listener for %s failed", self.dataref)


@dataclass(eq=False)
class CharacterDataRefElement(DataRefElement):
    """One slot of a character-array dataref, owned by its string element."""

    owner: Optional["StringDataRefElement"] = field(default=None, repr=False)
    index: int = 0

    def _notify(self, listeners: List[ValueListener], value: float) -> None:
        super()._notify(listeners, value)
        if self.owner is not None:
            self.owner.update_character(self.index, _to_character(value))


def _to_character(value: float) -> str:
    if math.isnan(value) or math.isinf(value):
        return "\x00"
    code = int(round(value))
    return chr(min(max(code, 0), _MAX_CODE_POINT))


@dataclass(eq=False)
class StringDataRefElement:
    """A string dataref carried by the simulator as an array of character codes.

    The element is never requested directly. It owns one
    :class:`CharacterDataRefElement` per character at ``path[0]`` to
    ``path[length - 1]``; the connector subscribes those children and every
    character update is written back into this element's buffer.
    """

    dataref: str
    length: int
    frequency: Optional[int] = None
    description: str = ""
    _characters: List[Optional[str]] = field(init=False, repr=False)
    _elements: List[CharacterDataRefElement] = field(init=False, repr=False)
    _listeners: List[StringListener] = field(default_factory=list, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.length < 1:
            raise ValueError(f"String dataref '{self.dataref}' needs a positive length.")
        self._characters = [None] * self.length
        self._elements = [
            CharacterDataRefElement(
                dataref=f"{self.dataref}[{index}]",
                frequency=self.frequency,
                description=self.description,
                owner=self,
                index=index,
            )
            for index in range(self.length)
        ]

    @property
    def elements(self) -> List[CharacterDataRefElement]:
        return list(self._elements)

    @property
    def value(self) -> str:
        """Characters received so far, up to the first missing slot or NUL."""

        prefix: List[str] = []
        with self._lock:
            for char in self._characters:
                if char is None or char == "\x00":
                    break
                prefix.append(char)
        return "".join(prefix)

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return all(char is not None for char in self._characters)

    def add_change_listener(self, callback: StringListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def update_character(self, index: int, character: str) -> None:
        with self._lock:
            self._characters[index] = character
            listeners = list(self._listeners)
        text = self.value
        for listener in listeners:
            try:
                listener(self, text)
            except Exception:
                _LOGGER.exception("Change listener for %s failed", self.dataref)


__all__ = [
    "CharacterDataRefElement",
    "DataRefElement",
    "StringDataRefElement",
    "XPlaneCommand",
]
