"""Sliding-window anti-replay counter tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

WINDOW_SIZE = 32  # must not exceed the 64 bits of history kept

_U64 = (1 << 64) - 1


class WindowUpdate(NamedTuple):
    counter: int
    window: int
    accepted: bool


def update_sliding_window(counter: int, window: int, new_counter: int) -> WindowUpdate:
    """Check ``new_counter`` against the highest counter seen and the history bitmap.

    Returns the updated state and whether ``new_counter`` is known to be fresh.
    When it is not, the state is returned unchanged.
    """
    unchanged = WindowUpdate(counter, window, False)
    if new_counter == counter:
        return unchanged

    if new_counter < counter:
        age = counter - new_counter
        if age > WINDOW_SIZE:
            return unchanged
        bit = 1 << (age - 1)
        if window & bit:
            return unchanged
        return WindowUpdate(counter, window | bit, True)

    shift = new_counter - counter
    shifted = (window << shift) & _U64 if shift < 64 else 0
    if shift <= 64:
        shifted |= 1 << (shift - 1)
    return WindowUpdate(new_counter, shifted, True)


@dataclass
class SlidingWindow:
    """Stateful replay detector; the first counter seen is always accepted."""

    history: int = 0
    counter: int = 0
    used: bool = False

    def update(self, counter: int) -> bool:
        if not self.used:
            self.used = True
            self.counter = counter
            return True
        self.counter, self.history, accepted = update_sliding_window(self.counter, self.history, counter)
        return accepted