"""Drill session: pool selection, ordering, limits and running statistics."""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from drill.classifier import classify, include_in_pool
from drill.config import DrillConfig
from drill.matrix import OptimalFactorMatrix
from drill.models import Bucket, DrillItem, LeechMethod
from drill.scheduler import reschedule
from drill.session_log import log_session

logger = logging.getLogger("drill.session")

POOL_BUCKETS = (Bucket.FAILED, Bucket.OVERDUE, Bucket.YOUNG, Bucket.NEW, Bucket.OLD)

END_ITEM_LIMIT = 'item-limit'
END_TIME_LIMIT = 'time-limit'
END_EXHAUSTED = 'exhausted'
END_QUIT = 'quit'


@dataclass
class Presentation:
    """The item a session is waiting on a quality rating for."""
    item: DrillItem
    bucket: Bucket
    number: int
    leech_warning: bool = False


@dataclass
class SessionSummary:
    reviewed: int
    failed: int
    percent_forgotten: float
    quality_histogram: Dict[str, int]
    pending: Dict[str, int]
    leeches_skipped: int
    duration_seconds: float
    ended_by: Optional[str]
    warning: Optional[str] = None
    item_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'reviewed': self.reviewed,
            'failed': self.failed,
            'percent_forgotten': self.percent_forgotten,
            'quality_histogram': dict(self.quality_histogram),
            'pending': dict(self.pending),
            'leeches_skipped': self.leeches_skipped,
            'duration_seconds': self.duration_seconds,
            'ended_by': self.ended_by,
            'warning': self.warning,
            'item_ids': list(self.item_ids),
        }


def order_overdue(
    overdue: List[tuple],
    rng: np.random.Generator,
    lapse_days: Optional[int] = None,
) -> List[DrillItem]:
    """
    Order (item, days_overdue) pairs: most overdue first, ties in random order.

    With `lapse_days` set, items overdue by more than that go last; they
    are treated as lapsed rather than urgent.
    """
    shuffled = [overdue[i] for i in rng.permutation(len(overdue))]
    shuffled.sort(key=lambda pair: pair[1], reverse=True)
    if lapse_days is None:
        return [item for item, _ in shuffled]
    recent = [item for item, days in shuffled if days <= lapse_days]
    lapsed = [item for item, days in shuffled if days > lapse_days]
    return recent + lapsed


class DrillSession:
    """
    One review session over a pool of items.

    The session never reads input itself. The host calls next_item() to get
    the item to present, obtains a quality rating, and hands it to rate();
    rate() is the only place an item's state changes, and it either fully
    applies or raises. quit() drops the in-flight item.

    Selection priority: items failed last session, overdue items (most
    overdue first), young items, then new and old items drawn together in
    proportion to their counts, and finally items failed in this session.
    """

    def __init__(
        self,
        items: Iterable[DrillItem],
        config: Optional[DrillConfig] = None,
        matrix: Optional[OptimalFactorMatrix] = None,
        today: Optional[date] = None,
        cram_mode: bool = False,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = time.monotonic,
        now_fn: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or DrillConfig()
        self.algorithm = self.config.algorithm
        self.matrix = matrix if matrix is not None else OptimalFactorMatrix(
            initial_interval=self.config.sm5_initial_interval)
        self.today = today or date.today()
        self.cram_mode = cram_mode
        self.rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock
        self._now = now_fn

        self.pending: Dict[Bucket, List[DrillItem]] = {b: [] for b in POOL_BUCKETS}
        self.again: List[DrillItem] = []
        self.done: List[DrillItem] = []
        self.qualities: List[int] = []
        self.committed: Dict[str, DrillItem] = {}
        self.leeches: set = set()
        self.leeches_skipped = 0
        self.counted = 0
        self.failed = 0
        self.ended_by: Optional[str] = None
        self._current: Optional[Presentation] = None
        self._presented = 0

        self._build_pool(items)
        self.started_at = self._clock()

    def _build_pool(self, items: Iterable[DrillItem]) -> None:
        now = self._now()
        overdue = []
        for item in items:
            c = classify(item.state, self.today, self.cram_mode, self.config, now=now)
            if c.is_due and c.leech:
                if self.config.leech_method is LeechMethod.SKIP:
                    self.leeches_skipped += 1
                    logger.info("Skipping leech %s (%d failures)", item.item_id, item.state.failure_count)
                    continue
                self.leeches.add(item.item_id)
            if not include_in_pool(c, self.config):
                continue
            if c.bucket is Bucket.OVERDUE:
                overdue.append((item, c.days_overdue))
            else:
                self.pending[c.bucket].append(item)
        self.pending[Bucket.OVERDUE] = order_overdue(
            overdue, self.rng, self.config.lapse_overdue_days)

    # ---- Limits ----

    def elapsed_seconds(self) -> float:
        return self._clock() - self.started_at

    def item_limit_reached(self) -> bool:
        limit = self.config.max_items_per_session
        return limit is not None and not self.cram_mode and self.counted >= limit

    def time_limit_reached(self) -> bool:
        limit = self.config.max_duration_minutes
        return limit is not None and not self.cram_mode and self.elapsed_seconds() >= limit * 60

    @property
    def finished(self) -> bool:
        return self.ended_by is not None

    # ---- Selection ----

    def _pop_random(self, bucket_items: List[DrillItem]) -> DrillItem:
        return bucket_items.pop(int(self.rng.integers(len(bucket_items))))

    def _pop_next(self) -> Optional[tuple]:
        for bucket in (Bucket.FAILED, Bucket.OVERDUE, Bucket.YOUNG):
            if self.pending[bucket]:
                if bucket is Bucket.OVERDUE:
                    return self.pending[bucket].pop(0), bucket
                return self._pop_random(self.pending[bucket]), bucket
        new, old = self.pending[Bucket.NEW], self.pending[Bucket.OLD]
        if new or old:
            if int(self.rng.integers(len(new) + len(old))) < len(new):
                return self._pop_random(new), Bucket.NEW
            return self._pop_random(old), Bucket.OLD
        if self.again:
            return self.again.pop(0), Bucket.AGAIN
        return None

    def next_item(self) -> Optional[Presentation]:
        """
        The item to present next, or None once the session has ended.

        Calling again before rate() returns the same in-flight item.
        """
        if self._current is not None:
            return self._current
        if self.finished:
            return None
        if self.item_limit_reached():
            self.ended_by = END_ITEM_LIMIT
            return None
        if self.time_limit_reached():
            self.ended_by = END_TIME_LIMIT
            return None
        picked = self._pop_next()
        if picked is None:
            self.ended_by = END_EXHAUSTED
            return None
        item, bucket = picked
        self._presented += 1
        self._current = Presentation(
            item=item,
            bucket=bucket,
            number=self._presented,
            leech_warning=(self.config.leech_method is LeechMethod.WARN
                           and item.item_id in self.leeches),
        )
        return self._current

    def rate(self, quality: int) -> DrillItem:
        """
        Apply a quality rating to the in-flight item and return the updated item.

        Raises:
            RuntimeError if no item is in flight
            InvalidQuality / InvalidState from the scheduler (nothing changes)
        """
        if self._current is None:
            raise RuntimeError("No item is awaiting a rating")
        item = self._current.item
        result = reschedule(
            item.state, quality, self.config, self.matrix,
            today=self.today, now=self._now(), rng=self.rng,
            algorithm=self.algorithm,
        )
        updated = replace(item, state=result.state)
        if result.matrix is not None:
            self.matrix = result.matrix
        self._current = None

        self.committed[updated.item_id] = updated
        self.qualities.append(quality)
        if self.config.is_failure(quality):
            self.failed += 1
            self.again.append(updated)
            if self.config.count_failed_items_in_limit:
                self.counted += 1
        else:
            self.done.append(updated)
            self.counted += 1
        return updated

    def quit(self) -> None:
        """End the session; the in-flight item, if any, is left untouched."""
        self._current = None
        if not self.finished:
            self.ended_by = END_QUIT

    # ---- Statistics ----

    def percent_forgotten(self) -> float:
        if not self.qualities:
            return 0.0
        return 100.0 * self.failed / len(self.qualities)

    def pending_counts(self) -> Dict[str, int]:
        counts = {bucket.value: len(items) for bucket, items in self.pending.items()}
        counts[Bucket.AGAIN.value] = len(self.again)
        return counts

    def summary(self) -> SessionSummary:
        histogram = {str(q): 0 for q in range(6)}
        for q in self.qualities:
            histogram[str(q)] += 1
        forgotten = self.percent_forgotten()
        warning = None
        if self.qualities and forgotten > self.config.forgetting_index:
            warning = (
                f"You failed {forgotten:.0f}% of the items reviewed this session, above the "
                f"forgetting index of {self.config.forgetting_index:g}%. If you review items "
                f"when they are due, consider lowering learn_fraction so that items come "
                f"back sooner."
            )
        return SessionSummary(
            reviewed=len(self.qualities),
            failed=self.failed,
            percent_forgotten=round(forgotten, 2),
            quality_histogram=histogram,
            pending=self.pending_counts(),
            leeches_skipped=self.leeches_skipped,
            duration_seconds=round(self.elapsed_seconds(), 1),
            ended_by=self.ended_by,
            warning=warning,
            item_ids=list(self.committed),
        )


# ---- Interactive runner ----

def _ask_quality(input_fn: Callable[[str], str], output_fn: Callable[[str], None]) -> Optional[int]:
    """Prompt until a rating 0-5 is given. None means the learner quit."""
    while True:
        reply = input_fn("Recall quality 0-5 (q to quit): ").strip().lower()
        if reply == 'q':
            return None
        if reply.isdigit() and 0 <= int(reply) <= 5:
            return int(reply)
        output_fn("  Please enter a number from 0 (blackout) to 5 (perfect).")


def run_review_session(
    store,
    config: Optional[DrillConfig] = None,
    matrix_store=None,
    items: Optional[List[DrillItem]] = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
    log_path: Optional[Path] = None,
    today: Optional[date] = None,
    cram_mode: bool = False,
    rng: Optional[np.random.Generator] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Dict:
    """
    Run an interactive drill session over the store's items.

    IO is injectable for testability. Each rating is written to the store
    as soon as it is given; the OF matrix is saved once the session ends.

    Flow per item:
        1. Show prompt (and a leech warning if applicable)
        2. Wait for the learner to reveal the answer
        3. Show answer, collect a 0-5 rating
        4. Reschedule and persist the item

    Returns:
        Summary dict (see SessionSummary.to_dict)
    """
    config = config or DrillConfig()
    matrix = matrix_store.load_matrix() if matrix_store is not None else None
    session = DrillSession(
        items if items is not None else store.all_items(),
        config=config, matrix=matrix, today=today,
        cram_mode=cram_mode, rng=rng, clock=clock,
    )

    output_fn(f"\n{'='*60}")
    output_fn(f"DRILL SESSION -- {config.algorithm.value.upper()}"
              f"{' (cram)' if cram_mode else ''}")
    pending = session.pending_counts()
    output_fn("  " + "  ".join(f"{k}: {v}" for k, v in pending.items() if k != Bucket.AGAIN.value))
    output_fn(f"{'='*60}")
    output_fn("Type 'q' at any prompt to end the session.\n")

    while True:
        presented = session.next_item()
        if presented is None:
            break
        item = presented.item
        output_fn(f"\n--- Item {presented.number} [{presented.bucket.value}] ---")
        if presented.leech_warning:
            output_fn(f"  [leech] Failed {item.state.failure_count} times. "
                      "Consider rewording or splitting this item.")
        output_fn(f"  {item.prompt}")

        try:
            reveal = input_fn("\nPress Enter to show the answer: ")
            if reveal.strip().lower() == 'q':
                session.quit()
                break
            output_fn(f"  Answer: {item.answer}")
            quality = _ask_quality(input_fn, output_fn)
        except (EOFError, KeyboardInterrupt):
            output_fn("\nSession ended.")
            session.quit()
            break
        if quality is None:
            output_fn("Ending session early.")
            session.quit()
            break

        updated = session.rate(quality)
        store.upsert_item(updated)
        output_fn(f"  Next review: {updated.state.scheduled.isoformat()} "
                  f"(interval: {max(updated.state.last_interval, 0):.1f}d)")

    summary = session.summary()
    if matrix_store is not None:
        matrix_store.save_matrix(session.matrix)

    output_fn(f"\n{'='*60}")
    output_fn("SESSION COMPLETE")
    output_fn(f"  Reviewed: {summary.reviewed}  Failed: {summary.failed}  "
              f"Forgotten: {summary.percent_forgotten:.1f}%")
    output_fn("  Ratings: " + "  ".join(f"{q}:{n}" for q, n in summary.quality_histogram.items()))
    remaining = {k: v for k, v in summary.pending.items() if v}
    if remaining:
        output_fn("  Still pending: " + ", ".join(f"{k} {v}" for k, v in remaining.items()))
    if summary.leeches_skipped:
        output_fn(f"  Leeches skipped: {summary.leeches_skipped}")
    if summary.warning:
        output_fn(f"  WARNING: {summary.warning}")
    output_fn(f"{'='*60}")

    logger.info("Session ended (%s): %d reviewed, %.1f%% forgotten",
                summary.ended_by, summary.reviewed, summary.percent_forgotten)
    if summary.warning:
        logger.warning(summary.warning)

    result = summary.to_dict()
    if log_path and summary.reviewed:
        details = [
            {'item_id': item.item_id, 'quality': item.state.last_quality, 'tags': list(item.tags)}
            for item in session.committed.values()
        ]
        log_session(log_path, result, details)
    return result
