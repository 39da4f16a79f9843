"""Sliding window replay protection for message counters (RFC 6479)."""

from __future__ import annotations

_WORD_BITS = 64
_REDUNDANT_BIT_SHIFTS = 6
_BITMAP_BITLEN = 2048
_BITMAP_LEN = _BITMAP_BITLEN // _WORD_BITS
_BITMAP_INDEX_MASK = _BITMAP_LEN - 1
_BITMAP_LOC_MASK = _WORD_BITS - 1
_MAX_SEQ = 2**64 - 1

WINDOW_SIZE = _BITMAP_BITLEN - _WORD_BITS


class AntiReplay:
    """Tracks seen counters; unlike RFC 6479 a counter of zero is accepted."""

    def __init__(self) -> None:
        self._bitmap = [0] * _BITMAP_LEN
        self._last = 0

    def check(self, seq: int) -> bool:
        """Whether ``seq`` is neither seen before nor behind the window."""
        if not 0 <= seq <= _MAX_SEQ:
            raise ValueError(f"sequence number out of range: {seq}")
        if seq > self._last:
            return True
        if self._last - seq > WINDOW_SIZE:
            return False
        index = (seq >> _REDUNDANT_BIT_SHIFTS) & _BITMAP_INDEX_MASK
        return not self._bitmap[index] & (1 << (seq & _BITMAP_LOC_MASK))

    def _store(self, seq: int) -> None:
        index = seq >> _REDUNDANT_BIT_SHIFTS
        if seq > self._last:
            index_cur = self._last >> _REDUNDANT_BIT_SHIFTS
            diff = index - index_cur
            if diff >= _BITMAP_LEN:
                self._bitmap = [0] * _BITMAP_LEN
            else:
                for step in range(1, diff + 1):
                    self._bitmap[(index_cur + step) & _BITMAP_INDEX_MASK] = 0
            self._last = seq
        self._bitmap[index & _BITMAP_INDEX_MASK] |= 1 << (seq & _BITMAP_LOC_MASK)

    def update(self, seq: int) -> bool:
        """Check ``seq`` and mark it as seen; False means replayed or too old."""
        if self.check(seq):
            self._store(seq)
            return True
        return False