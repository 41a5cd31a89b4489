"""
Hint Ledger: authoritative hint counter for one attempt.

The count is owned here and passed into evaluation requests; it is never
read back from a model response.
"""

from __future__ import annotations

DEFAULT_HINT_CEILING = 3


class HintLedger:
    """Saturating, non-decreasing hint counter."""

    def __init__(self, ceiling: int = DEFAULT_HINT_CEILING):
        if ceiling < 1:
            raise ValueError(f"Hint ceiling must be positive, got {ceiling}")
        self.ceiling = ceiling
        self._count = 0

    def record_hint(self) -> int:
        """Consume one hint slot. At the ceiling this is a no-op."""
        if self._count < self.ceiling:
            self._count += 1
        return self._count

    def current_count(self) -> int:
        return self._count

    def remaining(self) -> int:
        return max(0, self.ceiling - self._count)

    @property
    def is_exhausted(self) -> bool:
        return self._count >= self.ceiling

    def __repr__(self) -> str:
        return f"<HintLedger {self._count}/{self.ceiling}>"
