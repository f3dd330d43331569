"""
Spaced-repetition interval algorithms: SM2, SM5 and Simple8.

Each algorithm is a pure function of an item's prior scheduling values and
a quality rating (0=blackout .. 5=perfect). Ratings at or below the
configured failure threshold reset the item: interval -1 (due again now),
one repetition, one more failure. SM5 additionally reads and returns the
optimal factor matrix; it never mutates the matrix it was given.
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional

import numpy as np

from drill.config import DrillConfig
from drill.errors import InvalidQuality, InvalidState
from drill.matrix import OptimalFactorMatrix
from drill.models import (
    Algorithm,
    DEFAULT_EASE,
    ItemState,
    MIN_EASE,
    UNSCHEDULED,
    parse_algorithm,
    round_float,
)

logger = logging.getLogger("drill.scheduler")

SIMPLE8_FIRST_INTERVAL = 2.4849
SIMPLE8_FAILURE_DECAY = -0.057
SIMPLE8_MIN_FACTOR = 1.2


class ScheduleResult(NamedTuple):
    state: ItemState
    matrix: Optional[OptimalFactorMatrix] = None


# ---- Shared helpers ----

def _check_quality(quality) -> int:
    """Validate a rating and return it as a plain int (numpy integers accepted)."""
    if isinstance(quality, bool) or not isinstance(quality, (int, np.integer)) or not (0 <= quality <= 5):
        raise InvalidQuality(f"Quality must be an integer 0-5, got {quality!r}")
    return int(quality)


def _check_counters(failures: int, total_repeats: int, mean_quality: Optional[float]) -> None:
    if failures < 0:
        raise InvalidState(f"failure_count must be >= 0, got {failures}")
    if total_repeats < 0:
        raise InvalidState(f"total_repeats must be >= 0, got {total_repeats}")
    if mean_quality is not None and not (0.0 <= mean_quality <= 5.0):
        raise InvalidState(f"mean_quality must be within 0-5, got {mean_quality}")


def update_mean_quality(mean_quality: Optional[float], total_repeats: int, quality: int) -> float:
    """Running mean of every rating given, including this one."""
    if mean_quality is None:
        return float(quality)
    return (quality + mean_quality * total_repeats) / (total_repeats + 1)


def modify_e_factor(ef: float, quality: int) -> float:
    """SM-2 easiness update: EF' = EF + (0.1 - (5-q) * (0.08 + (5-q) * 0.02)), floor 1.3."""
    next_ef = ef + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    return max(MIN_EASE, next_ef)


def modify_of(of: float, quality: int, fraction: float) -> float:
    """Move an optimal factor `fraction` of the way towards the one implied by `quality`."""
    ideal = of * (0.72 + quality * 0.07)
    return (1 - fraction) * of + fraction * ideal


def early_interval_factor(optimal_factor: float, optimal_interval: float, days_ahead: float) -> float:
    """
    Interval factor for an item reviewed ahead of schedule.

    Args:
        optimal_factor:   factor that applies had the item been reviewed on time
        optimal_interval: next interval (days) had it been reviewed on time
        days_ahead:       how many days early the review happened (>= 0)

    The earlier the review, the closer the returned factor gets to 1, so
    the next interval stays near the original schedule instead of growing
    as if the item had survived the whole interval.
    """
    if optimal_interval <= 1.0:
        return optimal_factor
    delta_ofmax = (optimal_factor - 1) * (
        (optimal_interval + 0.6 * optimal_interval - 1) / (optimal_interval - 1)
    )
    return optimal_factor - delta_ofmax * (days_ahead / (days_ahead + 0.6 * optimal_interval))


def random_dispersal_factor(rng: Optional[np.random.Generator] = None) -> float:
    """
    Random multiplier between roughly 0.58 and 1.42, concentrated around 1.

    Applied to an interval, the absolute spread grows with the interval, so
    items added together drift apart over time.
    """
    if rng is None:
        rng = np.random.default_rng()
    a, b = 0.047, 0.092
    p = float(rng.random()) - 0.5
    spread = (-1 / b) * math.log(1 - (b / a) * abs(p))
    return (100 + math.copysign(spread, p)) / 100.0


def _failed(prior: ItemState, ef: Optional[float], mean_quality: float,
            failures: int, total_repeats: int) -> ItemState:
    return prior.evolve(
        last_interval=UNSCHEDULED,
        repetitions=1,
        easiness_factor=ef,
        failure_count=failures + 1,
        mean_quality=mean_quality,
        total_repeats=total_repeats + 1,
    )


# ---- SM2 ----

def sm2(
    last_interval: float,
    n: int,
    ef: Optional[float],
    quality: int,
    failures: int,
    mean_quality: Optional[float],
    total_repeats: int,
    config: Optional[DrillConfig] = None,
    rng: Optional[np.random.Generator] = None,
    prior: Optional[ItemState] = None,
) -> ItemState:
    """
    SM-2 interval calculation.

    First interval 1 day, second 6 days, then last_interval * EF. A failure
    leaves EF untouched.

    The second step is max(6, last_interval * EF'): a fresh item gets 6
    days, while an item that already carries a longer interval keeps
    growing by EF' (6 days at EF 2.5, rated 4, gives 15). With random
    noise on, the second step comes from a per-quality table instead.
    """
    config = config or DrillConfig()
    quality = _check_quality(quality)
    _check_counters(failures, total_repeats, mean_quality)
    if n < 0:
        raise InvalidState(f"repetitions must be >= 0, got {n}")
    if n == 0:
        n = 1
    if ef is None:
        ef = DEFAULT_EASE
    prior = prior or ItemState(last_interval, n, ef, failures, mean_quality, total_repeats)

    meanq = update_mean_quality(mean_quality, total_repeats, quality)

    if config.is_failure(quality):
        return _failed(prior, ef, meanq, failures, total_repeats)

    next_ef = modify_e_factor(ef, quality)
    if n <= 1:
        interval = 1.0
    elif n == 2:
        if config.add_random_noise:
            interval = {5: 6.0, 4: 4.0, 3: 3.0, 2: 1.0}.get(quality, -1.0)
        else:
            interval = max(6.0, last_interval * next_ef)
    else:
        interval = last_interval * next_ef

    if config.add_random_noise:
        base = max(last_interval, 0.0)
        interval = base + (interval - base) * random_dispersal_factor(rng)

    return prior.evolve(
        last_interval=interval,
        repetitions=n + 1,
        easiness_factor=next_ef,
        failure_count=failures,
        mean_quality=meanq,
        total_repeats=total_repeats + 1,
    )


# ---- SM5 ----

def sm5_interval(last_interval: float, n: int, of: float) -> float:
    return of if n == 1 else of * last_interval


def sm5(
    last_interval: float,
    n: int,
    ef: Optional[float],
    quality: int,
    failures: int,
    mean_quality: Optional[float],
    total_repeats: int,
    of_matrix: Optional[OptimalFactorMatrix] = None,
    delta_days: Optional[int] = None,
    config: Optional[DrillConfig] = None,
    rng: Optional[np.random.Generator] = None,
    prior: Optional[ItemState] = None,
) -> ScheduleResult:
    """
    SM-5 interval calculation with an adaptive optimal factor matrix.

    The OF for (n, EF) is nudged towards the value implied by `quality` and
    written back at (n, EF') rounded to 3 places. The write happens on
    failure too, while the returned EF is rolled back to its prior value.
    The next interval is read from the matrix as it stood before the write,
    except for a review ahead of schedule (delta_days < 0 with early/late
    adjustment on): then the damped factor that was written is also the one
    the interval is computed from.

    Returns:
        ScheduleResult(state, matrix) where matrix is a new value.
    """
    config = config or DrillConfig()
    quality = _check_quality(quality)
    _check_counters(failures, total_repeats, mean_quality)
    if n < 0:
        raise InvalidState(f"repetitions must be >= 0, got {n}")
    if n == 0:
        n = 1
    if ef is None:
        ef = DEFAULT_EASE
    prior = prior or ItemState(last_interval, n, ef, failures, mean_quality, total_repeats)
    matrix = (of_matrix or OptimalFactorMatrix()).with_initial_interval(config.sm5_initial_interval)

    meanq = update_mean_quality(mean_quality, total_repeats, quality)

    of = matrix.get(n, ef)
    next_ef = modify_e_factor(ef, quality)
    new_of = modify_of(of, quality, config.learn_fraction)

    reviewed_early = config.adjust_for_early_late and delta_days is not None and delta_days < 0
    if reviewed_early:
        new_of = early_interval_factor(of, sm5_interval(last_interval, n, of), abs(delta_days))

    interval_of = round_float(new_of, 3) if reviewed_early else matrix.get(n, next_ef)
    new_matrix = matrix.set(n, next_ef, round_float(new_of, 3))
    logger.debug("OF(%d, %.3f) <- %.3f", n, next_ef, new_of)

    if config.is_failure(quality):
        state = _failed(prior, ef, meanq, failures, total_repeats)
        return ScheduleResult(state, new_matrix)

    interval = sm5_interval(last_interval, n, interval_of)
    if config.add_random_noise:
        interval *= random_dispersal_factor(rng)

    state = prior.evolve(
        last_interval=interval,
        repetitions=n + 1,
        easiness_factor=next_ef,
        failure_count=failures,
        mean_quality=meanq,
        total_repeats=total_repeats + 1,
    )
    return ScheduleResult(state, new_matrix)


# ---- Simple8 ----

def simple8_first_interval(failures: int) -> float:
    """First interval after a success; shrinks with every historical failure."""
    return SIMPLE8_FIRST_INTERVAL * math.exp(SIMPLE8_FAILURE_DECAY * failures)


def simple8_quality_to_ease(mean_quality: float) -> float:
    """Map mean quality (0-5) to an ease value comparable to SM8's A-factor."""
    q = mean_quality
    return (0.0542 * q ** 4
            - 0.4848 * q ** 3
            + 1.4916 * q ** 2
            - 1.2403 * q
            + 1.4515)


def simple8_interval_factor(ease: float, repetition: float, learn_fraction: float) -> float:
    """Interval factor approaching `ease` as repetitions accumulate."""
    return SIMPLE8_MIN_FACTOR + (ease - SIMPLE8_MIN_FACTOR) * learn_fraction ** math.log2(repetition)


def simple8(
    last_interval: float,
    repeats: int,
    quality: int,
    failures: int,
    mean_quality: Optional[float],
    total_repeats: int,
    delta_days: Optional[int] = None,
    config: Optional[DrillConfig] = None,
    rng: Optional[np.random.Generator] = None,
    prior: Optional[ItemState] = None,
) -> ItemState:
    """
    Simple8 interval calculation.

    Ease is derived from the item's mean quality rather than stored, so
    the returned easiness_factor is informational only.
    """
    config = config or DrillConfig()
    quality = _check_quality(quality)
    _check_counters(failures, total_repeats, mean_quality)
    if repeats < 0:
        raise InvalidState(f"repetitions must be >= 0, got {repeats}")
    prior = prior or ItemState(last_interval, repeats, None, failures, mean_quality, total_repeats)

    meanq = update_mean_quality(mean_quality, total_repeats, quality)
    ease = simple8_quality_to_ease(meanq)

    if config.is_failure(quality):
        return _failed(prior, ease, meanq, failures, total_repeats)

    if repeats == 0 or last_interval <= 0:
        interval = simple8_first_interval(failures)
    else:
        use_n = repeats
        if config.adjust_for_early_late and delta_days is not None and delta_days > 0:
            use_n = repeats + min(1.0, delta_days / last_interval)
        factor = simple8_interval_factor(ease, use_n, config.learn_fraction)
        interval = last_interval * factor
        if config.adjust_for_early_late and delta_days is not None and delta_days < 0:
            factor = early_interval_factor(factor, interval, abs(delta_days))
            interval = last_interval * factor

    if config.add_random_noise and interval > 0:
        interval *= random_dispersal_factor(rng)

    return prior.evolve(
        last_interval=interval,
        repetitions=repeats + 1,
        easiness_factor=ease,
        failure_count=failures,
        mean_quality=meanq,
        total_repeats=total_repeats + 1,
    )


# ---- Dispatch ----

def schedule_next(
    algorithm,
    state: Optional[ItemState],
    quality: int,
    delta_days: Optional[int] = None,
    *,
    config: Optional[DrillConfig] = None,
    matrix: Optional[OptimalFactorMatrix] = None,
    rng: Optional[np.random.Generator] = None,
) -> ScheduleResult:
    """
    Compute an item's next scheduling state with the given algorithm.

    A missing state is a new item. The returned matrix is the updated one
    for SM5 and the matrix passed in, unchanged, otherwise.

    Raises:
        InvalidQuality, InvalidState, UnknownAlgorithm
    """
    algorithm = parse_algorithm(algorithm)
    config = config or DrillConfig()
    state = state or ItemState()

    if algorithm is Algorithm.SM2:
        new_state = sm2(
            state.last_interval, state.repetitions, state.easiness_factor, quality,
            state.failure_count, state.mean_quality, state.total_repeats,
            config=config, rng=rng, prior=state,
        )
        return ScheduleResult(new_state, matrix)
    if algorithm is Algorithm.SM5:
        return sm5(
            state.last_interval, state.repetitions, state.easiness_factor, quality,
            state.failure_count, state.mean_quality, state.total_repeats,
            of_matrix=matrix, delta_days=delta_days,
            config=config, rng=rng, prior=state,
        )
    new_state = simple8(
        state.last_interval, state.repetitions, quality,
        state.failure_count, state.mean_quality, state.total_repeats,
        delta_days=delta_days, config=config, rng=rng, prior=state,
    )
    return ScheduleResult(new_state, matrix)


# ---- Host-facing helpers ----

def days_overdue(state: ItemState, today: Optional[date] = None) -> int:
    """Days since the item's scheduled date; negative when scheduled ahead, 0 if unscheduled."""
    if state.scheduled is None:
        return 0
    return ((today or date.today()) - state.scheduled).days


def reschedule(
    state: Optional[ItemState],
    quality: int,
    config: Optional[DrillConfig] = None,
    matrix: Optional[OptimalFactorMatrix] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    rng: Optional[np.random.Generator] = None,
    algorithm=None,
) -> ScheduleResult:
    """
    Review an item today and stamp its next due date.

    The computed interval is stored to 4 decimal places and the item is
    scheduled `round(interval)` days ahead; failed items are due today.
    """
    config = config or DrillConfig()
    state = state or ItemState()
    today = today or date.today()
    now = now or datetime.now()

    delta = None
    if config.adjust_for_early_late and not state.is_new and state.scheduled is not None:
        delta = days_overdue(state, today)

    result = schedule_next(
        algorithm or config.algorithm, state, quality, delta,
        config=config, matrix=matrix, rng=rng,
    )
    interval = result.state.last_interval
    if interval > 0:
        interval = round_float(interval, 4)
        due = today + timedelta(days=int(round_float(interval, 0)))
    else:
        due = today

    new_state = result.state.evolve(
        last_interval=interval,
        scheduled=due,
        last_reviewed=now,
        last_quality=int(quality),
    )
    return ScheduleResult(new_state, result.matrix)


def reset_state(state: Optional[ItemState] = None) -> ItemState:
    """Strip all scheduling data: the item becomes new again."""
    return ItemState()
