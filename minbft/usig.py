"""Unique identifiers assigned to messages by a USIG."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass

_COUNTER = struct.Struct(">Q")
_COUNTER_LIMIT = 1 << 64


@dataclass(frozen=True)
class UI:
    """A unique, monotonic, sequential counter and the certificate for it."""

    counter: int
    cert: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.counter < _COUNTER_LIMIT:
            raise ValueError(f"UI counter out of range: {self.counter}")
        object.__setattr__(self, "cert", bytes(self.cert))

    def to_bytes(self) -> bytes:
        """Serialize as a big-endian 64-bit counter followed by the certificate."""
        return _COUNTER.pack(self.counter) + self.cert

    @classmethod
    def from_bytes(cls, data: bytes) -> UI:
        """Parse the form produced by :meth:`to_bytes`."""
        data = bytes(data)
        if len(data) < _COUNTER.size:
            raise ValueError("UI data too short to hold a counter")
        (counter,) = _COUNTER.unpack_from(data)
        return cls(counter, data[_COUNTER.size:])


class USIG(ABC):
    """Unique Sequential Identifier Generator.

    A tamper-proof component assigning unique, monotonic and sequential
    counter values to messages and certifying them.
    """

    @abstractmethod
    def create_ui(self, message: bytes) -> UI:
        """Return a new UI for the message; the first counter value is one."""

    @abstractmethod
    def verify_ui(self, message: bytes, ui: UI, usig_id: bytes) -> None:
        """Raise if the UI is not valid for the message and USIG identity."""

    @abstractmethod
    def id(self) -> bytes:
        """Return the identity of this USIG instance."""