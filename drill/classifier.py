"""Due-status classification of drill items."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from drill.config import DrillConfig
from drill.models import Bucket, DueStatus, ItemState, LeechMethod
from drill.scheduler import days_overdue


@dataclass(frozen=True)
class Classification:
    """
    Where an item stands today.

    status:       new / due / overdue / future
    bucket:       session pool the item is drawn from, None when not due
    days_overdue: signed days past the scheduled date
    leech:        failed more often than the leech threshold
    """
    status: DueStatus
    bucket: Optional[Bucket]
    days_overdue: int = 0
    leech: bool = False

    @property
    def is_due(self) -> bool:
        return self.status is not DueStatus.FUTURE


def hours_since_last_review(state: ItemState, now: Optional[datetime] = None) -> Optional[float]:
    if state.last_reviewed is None:
        return None
    return ((now or datetime.now()) - state.last_reviewed).total_seconds() / 3600.0


def is_leech(state: ItemState, config: DrillConfig) -> bool:
    if config.leech_threshold is None:
        return False
    return state.failure_count > config.leech_threshold


def is_overdue(state: ItemState, overdue_days: int, config: DrillConfig) -> bool:
    """Overdue once past the grace period of (overdue_interval_factor - 1) * interval."""
    grace = round(max(state.last_interval, 0) * (config.overdue_interval_factor - 1), 9)
    return overdue_days > grace


def maturity(state: ItemState, config: DrillConfig) -> Bucket:
    return Bucket.YOUNG if state.last_interval <= config.days_before_old else Bucket.OLD


def classify(
    state: Optional[ItemState],
    today: Optional[date] = None,
    cram_mode: bool = False,
    config: Optional[DrillConfig] = None,
    now: Optional[datetime] = None,
) -> Classification:
    """
    Classify an item for a session held on `today`.

    In cram mode due dates are ignored: an item is due once `cram_hours`
    have passed since its last review.
    """
    config = config or DrillConfig()
    state = state or ItemState()
    today = today or date.today()
    leech = is_leech(state, config)
    overdue_days = days_overdue(state, today)

    if state.is_new:
        return Classification(DueStatus.NEW, Bucket.NEW, overdue_days, leech)

    if cram_mode:
        if now is None:
            now = datetime.combine(today, datetime.now().time())
        hours = hours_since_last_review(state, now)
        if hours is not None and hours < config.cram_hours:
            return Classification(DueStatus.FUTURE, None, overdue_days, leech)
        status = DueStatus.DUE
    elif is_overdue(state, overdue_days, config):
        status = DueStatus.OVERDUE
    elif overdue_days >= 0:
        status = DueStatus.DUE
    else:
        return Classification(DueStatus.FUTURE, None, overdue_days, leech)

    if state.last_quality is not None and config.is_failure(state.last_quality):
        # Failed last time: drilled first, however young or overdue
        bucket = Bucket.FAILED
    elif status is DueStatus.OVERDUE:
        bucket = Bucket.OVERDUE
    else:
        bucket = maturity(state, config)
    return Classification(status, bucket, overdue_days, leech)


def include_in_pool(classification: Classification, config: DrillConfig) -> bool:
    """Whether a classified item enters a session pool (due, and not a skipped leech)."""
    if not classification.is_due:
        return False
    return not (classification.leech and config.leech_method is LeechMethod.SKIP)
