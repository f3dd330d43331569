"""Data models for the drill engine: item scheduling state and item records."""

import hashlib
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional

from drill.errors import UnknownAlgorithm

DEFAULT_EASE = 2.5
MIN_EASE = 1.3

# last_interval sentinel: never scheduled, or failed and due again immediately
UNSCHEDULED = -1.0


class Algorithm(str, Enum):
    """Interval algorithms an item can be scheduled with."""
    SM2 = "sm2"
    SM5 = "sm5"
    SIMPLE8 = "simple8"


def parse_algorithm(value) -> Algorithm:
    """Algorithm enum from an enum member or a case-insensitive name."""
    try:
        return Algorithm(str(getattr(value, 'value', value)).lower())
    except ValueError:
        raise UnknownAlgorithm(f"Unknown algorithm: {value!r}")


class DueStatus(str, Enum):
    """Due-status of an item on a given day."""
    NEW = "new"
    DUE = "due"
    OVERDUE = "overdue"
    FUTURE = "future"


class Bucket(str, Enum):
    """Session pool categories an item is presented from."""
    NEW = "new"
    FAILED = "failed"
    OVERDUE = "overdue"
    YOUNG = "young-mature"
    OLD = "old-mature"
    AGAIN = "again"


class LeechMethod(str, Enum):
    NONE = "none"
    WARN = "warn"
    SKIP = "skip"


def round_float(value: float, places: int) -> float:
    """Round half away from zero at the given decimal place.

    round_float(3.56755765, 3) == 3.568, round_float(-2.5, 0) == -3.0
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def _parse_date(value) -> Optional[date]:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(value)


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class ItemState:
    """
    Scheduling state of one learning item.

    Values are immutable; every review produces a new ItemState. The first
    six fields are what the interval algorithms read and write. `scheduled`,
    `last_reviewed` and `last_quality` are stamped by reschedule() and read
    by the classifier.
    """
    last_interval: float = UNSCHEDULED
    repetitions: int = 0
    easiness_factor: Optional[float] = None
    failure_count: int = 0
    mean_quality: Optional[float] = None
    total_repeats: int = 0

    scheduled: Optional[date] = None
    last_reviewed: Optional[datetime] = None
    last_quality: Optional[int] = None

    @property
    def ease(self) -> float:
        return DEFAULT_EASE if self.easiness_factor is None else self.easiness_factor

    @property
    def is_new(self) -> bool:
        return self.total_repeats == 0

    def evolve(self, **changes) -> 'ItemState':
        return replace(self, **changes)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['scheduled'] = self.scheduled.isoformat() if self.scheduled else None
        d['last_reviewed'] = (
            self.last_reviewed.isoformat(timespec='seconds') if self.last_reviewed else None
        )
        return d

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'ItemState':
        """Build a state from a stored dict. Missing or None data is a new item."""
        if not data:
            return cls()
        known = cls.__dataclass_fields__
        data = {k: v for k, v in data.items() if k in known}
        data['scheduled'] = _parse_date(data.get('scheduled'))
        data['last_reviewed'] = _parse_datetime(data.get('last_reviewed'))
        return cls(**data)


@dataclass
class DrillItem:
    """A drill item: host-owned content plus its scheduling state."""
    item_id: str
    prompt: str = ''
    answer: str = ''
    tags: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec='seconds'))
    state: ItemState = field(default_factory=ItemState)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['state'] = self.state.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Dict) -> 'DrillItem':
        data = dict(data)  # shallow copy
        data['state'] = ItemState.from_dict(data.get('state'))
        known = cls.__dataclass_fields__
        data = {k: v for k, v in data.items() if k in known}
        return cls(**data)


def make_item_id(prompt: str, answer: str = '') -> str:
    """
    Deterministic item ID from prompt + answer text.
    SHA-256 truncated to 16 hex chars for readability.
    """
    key = prompt.strip().lower() + '|' + answer.strip().lower()
    return hashlib.sha256(key.encode('utf-8')).hexdigest()[:16]
