"""Injective serialization of authenticated metadata into a hash context."""

from __future__ import annotations

import hashlib
from typing import Iterable, Protocol

from .errors import MetadataFieldTooLongError
from .protocol import Tag


class _HashContext(Protocol):
    def update(self, data: bytes, /) -> None: ...

    def digest(self) -> bytes: ...


class Metadata:
    """Accumulates (tag, value) pairs, in increasing tag order, into a hash."""

    def __init__(self, context: _HashContext | None = None) -> None:
        self.context: _HashContext = context if context is not None else hashlib.sha256()
        self._fields: set[int] = set()
        self._last = 0

    def add(self, tag: int, value: bytes | None) -> None:
        """Add a value; ``None`` values are skipped but still checked for order."""
        tag = int(tag)
        if tag < self._last:
            raise ValueError("metadata items need to be added in increasing tag order")
        if value is None:
            return
        if len(value) > 255:
            raise MetadataFieldTooLongError()
        self._last = tag
        self.context.update(bytes((tag, len(value))))
        self.context.update(bytes(value))
        self._fields.add(tag)

    def add_uint32(self, tag: int, value: int) -> None:
        self.add(tag, (value & 0xFFFFFFFF).to_bytes(4, "big"))

    def contains(self, tags: Iterable[int]) -> bool:
        """Whether every tag listed has been added."""
        return all(int(tag) in self._fields for tag in tags)

    def checksum(self, message: bytes | None = None) -> bytes:
        """Terminate the metadata, append ``message`` and return the digest."""
        self.context.update(bytes((Tag.END,)))
        self.context.update(bytes(message or b""))
        return self.context.digest()