"""Optimal factor matrix used by the SM5 algorithm."""

from typing import Dict, Optional

from drill.models import round_float

DEFAULT_INITIAL_INTERVAL = 4.0


def ease_key(ef: float) -> float:
    """Matrix column key for an easiness factor (3 decimal places)."""
    return round_float(ef, 3)


class OptimalFactorMatrix:
    """
    Sparse table mapping (repetition count, easiness) -> optimal factor.

    Instances are treated as values: set() returns a new matrix and leaves
    the receiver untouched, so a caller holding the old matrix never sees a
    half-applied review. Absent entries resolve to the initial optimal
    factor: `initial_interval` days for n == 1, otherwise the easiness
    itself.
    """

    def __init__(
        self,
        entries: Optional[Dict[int, Dict[float, float]]] = None,
        initial_interval: float = DEFAULT_INITIAL_INTERVAL,
    ):
        self.initial_interval = initial_interval
        self._entries: Dict[int, Dict[float, float]] = {
            int(n): {ease_key(float(ef)): float(of) for ef, of in row.items()}
            for n, row in (entries or {}).items()
        }

    def initial_factor(self, n: int, ef: float) -> float:
        return self.initial_interval if n == 1 else ef

    def get(self, n: int, ef: float) -> float:
        row = self._entries.get(n)
        if row is not None:
            of = row.get(ease_key(ef))
            if of is not None:
                return of
        return self.initial_factor(n, ef)

    def contains(self, n: int, ef: float) -> bool:
        return ease_key(ef) in self._entries.get(n, {})

    def set(self, n: int, ef: float, of: float) -> 'OptimalFactorMatrix':
        """Return a copy of this matrix with OF(n, ef) = of."""
        entries = {k: dict(row) for k, row in self._entries.items()}
        entries.setdefault(n, {})[ease_key(ef)] = of
        return OptimalFactorMatrix(entries, initial_interval=self.initial_interval)

    def with_initial_interval(self, initial_interval: float) -> 'OptimalFactorMatrix':
        if initial_interval == self.initial_interval:
            return self
        return OptimalFactorMatrix(self._entries, initial_interval=initial_interval)

    def __len__(self) -> int:
        return sum(len(row) for row in self._entries.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, OptimalFactorMatrix):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"OptimalFactorMatrix({self._entries!r})"

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        """JSON-safe form: string keys, rows and columns in ascending order."""
        return {
            str(n): {repr(ef): of for ef, of in sorted(row.items())}
            for n, row in sorted(self._entries.items())
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict], initial_interval: float = DEFAULT_INITIAL_INTERVAL) -> 'OptimalFactorMatrix':
        return cls(data or {}, initial_interval=initial_interval)
