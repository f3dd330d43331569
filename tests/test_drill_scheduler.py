"""Tests for drill/scheduler.py -- SM2, SM5 and Simple8 interval algorithms."""

import sys
from pathlib import Path
from datetime import date, datetime, timedelta

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import numpy as np
import pytest
from drill.config import DrillConfig
from drill.errors import InvalidQuality, InvalidState, UnknownAlgorithm
from drill.matrix import OptimalFactorMatrix
from drill.models import Algorithm, ItemState, round_float
from drill.scheduler import (
    early_interval_factor,
    modify_e_factor,
    random_dispersal_factor,
    reschedule,
    reset_state,
    schedule_next,
    simple8,
    simple8_first_interval,
    simple8_interval_factor,
    simple8_quality_to_ease,
    sm2,
    sm5,
    update_mean_quality,
)


def _config(**kwargs) -> DrillConfig:
    kwargs.setdefault('algorithm', 'sm5')
    kwargs.setdefault('add_random_noise', False)
    kwargs.setdefault('adjust_for_early_late', False)
    kwargs.setdefault('failure_quality_threshold', 2)
    return DrillConfig(**kwargs)


# ============================================================================
# Shared helpers
# ============================================================================

def test_round_float_half_away_from_zero():
    assert round_float(3.56755765, 3) == 3.568
    assert round_float(2.5, 0) == 3.0
    assert round_float(-2.5, 0) == -3.0


def test_modify_e_factor():
    assert modify_e_factor(2.5, 5) == pytest.approx(2.6)
    assert modify_e_factor(2.5, 4) == pytest.approx(2.5)
    assert modify_e_factor(2.5, 3) == pytest.approx(2.36)


def test_modify_e_factor_floor():
    """EF never drops below 1.3."""
    assert modify_e_factor(1.3, 3) == 1.3
    assert modify_e_factor(1.35, 0) == 1.3


def test_update_mean_quality():
    assert update_mean_quality(None, 0, 4) == 4.0
    assert update_mean_quality(4.0, 1, 3) == pytest.approx(3.5)
    assert update_mean_quality(3.0, 3, 5) == pytest.approx(3.5)


def test_random_dispersal_factor_range():
    rng = np.random.default_rng(7)
    values = [random_dispersal_factor(rng) for _ in range(500)]
    assert all(0.58 <= v <= 1.42 for v in values)
    assert 0.95 < sum(values) / len(values) < 1.05


def test_random_dispersal_factor_seeded():
    a = random_dispersal_factor(np.random.default_rng(42))
    b = random_dispersal_factor(np.random.default_rng(42))
    assert a == b


def test_early_interval_factor():
    assert early_interval_factor(2.5, 1.0, 3) == 2.5
    assert early_interval_factor(2.5, 10.0, 0) == pytest.approx(2.5)
    f = early_interval_factor(2.5, 10.0, 5)
    assert 1.0 < f < 2.5
    assert f == pytest.approx(2.5 - 2.5 * (5 / 11))


# ============================================================================
# SM2
# ============================================================================

def test_sm2_first_review():
    """New item: interval 1 day."""
    s = sm2(-1, 0, None, 4, 0, None, 0, config=_config())
    assert s.last_interval == 1.0
    assert s.repetitions == 2
    assert s.easiness_factor == pytest.approx(2.5)
    assert s.total_repeats == 1
    assert s.mean_quality == 4.0


def test_sm2_second_review_six_days():
    s = sm2(1, 2, 2.5, 5, 0, 5.0, 1, config=_config())
    assert s.last_interval == 6.0
    assert s.repetitions == 3
    assert s.easiness_factor == pytest.approx(2.6)


def test_sm2_end_to_end_example():
    """(6 days, n=2, EF 2.5, q=4) -> 15 days, EF 2.5, n=3."""
    s = sm2(6, 2, 2.5, 4, 0, 4.0, 2, config=_config())
    assert s.last_interval == pytest.approx(15.0)
    assert s.easiness_factor == pytest.approx(2.5)
    assert s.repetitions == 3


def test_sm2_later_review_multiplies_by_ef():
    s = sm2(15, 3, 2.5, 5, 0, 4.0, 3, config=_config())
    assert s.easiness_factor == pytest.approx(2.6)
    assert s.last_interval == pytest.approx(39.0)


@pytest.mark.parametrize('quality', [0, 1, 2])
def test_sm2_failure_resets(quality):
    s = sm2(15, 4, 2.2, quality, 1, 4.0, 6, config=_config())
    assert s.last_interval == -1
    assert s.repetitions == 1
    assert s.failure_count == 2
    assert s.easiness_factor == 2.2  # untouched on failure
    assert s.total_repeats == 7


def test_sm2_threshold_one_passes_quality_2():
    s = sm2(1, 2, 2.5, 2, 0, 4.0, 1, config=_config(failure_quality_threshold=1))
    assert s.last_interval > 0
    assert s.failure_count == 0


def test_sm2_noise_is_seeded():
    config = _config(add_random_noise=True)
    a = sm2(10, 3, 2.5, 4, 0, 4.0, 3, config=config, rng=np.random.default_rng(3))
    b = sm2(10, 3, 2.5, 4, 0, 4.0, 3, config=config, rng=np.random.default_rng(3))
    assert a.last_interval == b.last_interval
    assert 10 < a.last_interval < 40


def test_sm2_rejects_bad_quality():
    for bad in (6, -1, 2.5, True, '4'):
        with pytest.raises(InvalidQuality):
            sm2(1, 1, 2.5, bad, 0, None, 0, config=_config())


def test_sm2_rejects_bad_counters():
    with pytest.raises(InvalidState):
        sm2(1, 1, 2.5, 4, -1, None, 0, config=_config())
    with pytest.raises(InvalidState):
        sm2(1, -2, 2.5, 4, 0, None, 0, config=_config())
    with pytest.raises(InvalidState):
        sm2(1, 1, 2.5, 4, 0, 7.0, 1, config=_config())


# ============================================================================
# SM5
# ============================================================================

def test_sm5_first_success_is_initial_interval():
    matrix = OptimalFactorMatrix()
    for q in (3, 4, 5):
        result = sm5(-1, 0, None, q, 0, None, 0, of_matrix=matrix, config=_config())
        assert result.state.last_interval == 4.0
        assert result.state.repetitions == 2


def test_sm5_updates_matrix_without_mutating_input():
    matrix = OptimalFactorMatrix()
    result = sm5(-1, 0, None, 5, 0, None, 0, of_matrix=matrix, config=_config())
    assert len(matrix) == 0
    assert result.matrix.get(1, 2.6) == pytest.approx(4.14)
    assert result.state.easiness_factor == pytest.approx(2.6)


def test_sm5_second_review():
    result = sm5(4.0, 2, 2.6, 5, 0, 5.0, 1, of_matrix=OptimalFactorMatrix(), config=_config())
    assert result.state.last_interval == pytest.approx(2.7 * 4.0)
    assert result.matrix.get(2, 2.7) == pytest.approx(2.691)


def test_sm5_uses_learned_factor():
    matrix = OptimalFactorMatrix({2: {2.5: 3.0}})
    result = sm5(4.0, 2, 2.5, 4, 0, 4.0, 1, of_matrix=matrix, config=_config())
    assert result.state.last_interval == pytest.approx(12.0)


def test_sm5_initial_interval_from_config():
    result = sm5(-1, 0, None, 4, 0, None, 0, config=_config(sm5_initial_interval=2.0))
    assert result.state.last_interval == 2.0


def test_sm5_failure_rolls_back_ef_but_writes_matrix():
    result = sm5(10.0, 3, 2.5, 1, 0, 4.0, 3, of_matrix=OptimalFactorMatrix(), config=_config())
    s = result.state
    assert s.last_interval == -1
    assert s.repetitions == 1
    assert s.failure_count == 1
    assert s.easiness_factor == 2.5
    assert s.total_repeats == 4
    assert result.matrix.contains(3, 1.96)
    assert result.matrix.get(3, 1.96) == pytest.approx(2.238, abs=0.001)


def test_sm5_stored_factor_rounded():
    result = sm5(4.0, 2, 2.5, 3, 0, 4.0, 1, of_matrix=OptimalFactorMatrix(), config=_config())
    of = result.matrix.get(2, modify_e_factor(2.5, 3))
    assert of == round_float(of, 3)


# ============================================================================
# Simple8
# ============================================================================

def test_simple8_first_interval_curve():
    assert simple8_first_interval(0) == pytest.approx(2.4849)
    intervals = [simple8_first_interval(f) for f in range(6)]
    assert intervals == sorted(intervals, reverse=True)


def test_simple8_quality_to_ease():
    assert simple8_quality_to_ease(5) == pytest.approx(5.815)
    assert simple8_quality_to_ease(4) == pytest.approx(3.2039)


def test_simple8_first_success():
    s = simple8(-1, 0, 4, 0, None, 0, config=_config())
    assert s.last_interval == pytest.approx(2.4849)
    assert s.repetitions == 1
    assert s.easiness_factor == pytest.approx(3.2039)


def test_simple8_second_success():
    s = simple8(2.4849, 1, 4, 0, 4.0, 1, config=_config())
    assert s.last_interval == pytest.approx(2.4849 * 3.2039, rel=1e-4)
    assert s.repetitions == 2


def test_simple8_failure():
    s = simple8(8.0, 2, 1, 0, 4.0, 2, config=_config())
    assert s.last_interval == -1
    assert s.repetitions == 1
    assert s.failure_count == 1
    assert s.total_repeats == 3


def test_simple8_after_failure_uses_first_interval():
    s = simple8(-1, 1, 4, 3, 3.0, 4, config=_config())
    assert s.last_interval == pytest.approx(simple8_first_interval(3))


# ============================================================================
# Dispatch / reschedule
# ============================================================================

def test_schedule_next_dispatch():
    state = ItemState(last_interval=6, repetitions=2, easiness_factor=2.5, total_repeats=2)
    result = schedule_next('SM2', state, 4, config=_config())
    assert result.state.last_interval == pytest.approx(15.0)

    result = schedule_next(Algorithm.SIMPLE8, None, 5, config=_config())
    assert result.state.last_interval == pytest.approx(2.4849)


def test_schedule_next_unknown_algorithm():
    with pytest.raises(UnknownAlgorithm):
        schedule_next('sm17', None, 4)


def test_reschedule_stamps_due_date():
    today = date(2026, 1, 10)
    now = datetime(2026, 1, 10, 9, 30)
    result = reschedule(None, 4, _config(algorithm='sm2'), today=today, now=now)
    s = result.state
    assert s.scheduled == today + timedelta(days=1)
    assert s.last_reviewed == now
    assert s.last_quality == 4
    assert s.total_repeats == 1


def test_reschedule_failure_due_today():
    today = date(2026, 1, 10)
    state = ItemState(last_interval=12.0, repetitions=4, easiness_factor=2.5, total_repeats=4)
    result = reschedule(state, 0, _config(), today=today)
    assert result.state.last_interval == -1
    assert result.state.scheduled == today


def test_reschedule_rounds_interval():
    state = ItemState(last_interval=2.4849, repetitions=1, mean_quality=4.0, total_repeats=1)
    today = date(2026, 1, 10)
    result = reschedule(state, 4, _config(algorithm='simple8'), today=today)
    interval = result.state.last_interval
    assert interval == round_float(interval, 4)
    assert result.state.scheduled == today + timedelta(days=8)


def test_reset_state():
    state = ItemState(last_interval=12.0, repetitions=4, failure_count=2, total_repeats=9)
    fresh = reset_state(state)
    assert fresh.is_new
    assert fresh.failure_count == 0
    assert fresh.scheduled is None


# ============================================================================
# Early / late reviews
# ============================================================================

def test_sm5_early_review_shortens_interval():
    """Reviewed 8 days ahead of a 25-day schedule: the damped factor drives the interval."""
    config = _config(adjust_for_early_late=True)
    on_time = sm5(10.0, 3, 2.5, 4, 0, 4.0, 3, of_matrix=OptimalFactorMatrix(), config=config)
    early = sm5(10.0, 3, 2.5, 4, 0, 4.0, 3, of_matrix=OptimalFactorMatrix(),
                delta_days=-8, config=config)

    assert on_time.state.last_interval == pytest.approx(25.0)
    damped = round_float(early_interval_factor(2.5, 25.0, 8), 3)
    assert damped == 1.652
    assert early.state.last_interval == pytest.approx(10 * damped)
    assert early.state.last_interval < on_time.state.last_interval
    assert early.matrix.get(3, 2.5) == damped


def test_sm5_late_review_not_damped():
    config = _config(adjust_for_early_late=True)
    late = sm5(10.0, 3, 2.5, 4, 0, 4.0, 3, of_matrix=OptimalFactorMatrix(),
               delta_days=6, config=config)
    assert late.state.last_interval == pytest.approx(25.0)


def test_sm5_early_review_ignored_when_adjustment_off():
    result = sm5(10.0, 3, 2.5, 4, 0, 4.0, 3, of_matrix=OptimalFactorMatrix(),
                 delta_days=-8, config=_config(adjust_for_early_late=False))
    assert result.state.last_interval == pytest.approx(25.0)


def test_simple8_late_review_counts_partial_repetition():
    config = _config(adjust_for_early_late=True)
    ease = simple8_quality_to_ease(4.0)
    late = simple8(10.0, 2, 4, 0, 4.0, 2, delta_days=5, config=config)
    on_time = simple8(10.0, 2, 4, 0, 4.0, 2, config=config)

    assert on_time.last_interval == pytest.approx(10 * simple8_interval_factor(ease, 2, 0.5))
    assert late.last_interval == pytest.approx(10 * simple8_interval_factor(ease, 2.5, 0.5))
    assert late.last_interval != pytest.approx(on_time.last_interval)

    # Lateness counts for at most one extra repetition
    very_late = simple8(10.0, 2, 4, 0, 4.0, 2, delta_days=50, config=config)
    assert very_late.last_interval == pytest.approx(10 * simple8_interval_factor(ease, 3, 0.5))


def test_simple8_early_review_recomputes_factor():
    config = _config(adjust_for_early_late=True)
    ease = simple8_quality_to_ease(4.0)
    factor = simple8_interval_factor(ease, 2, 0.5)
    expected = 10 * early_interval_factor(factor, 10 * factor, 3)

    early = simple8(10.0, 2, 4, 0, 4.0, 2, delta_days=-3, config=config)
    assert early.last_interval == pytest.approx(expected)
    assert early.last_interval < 10 * factor


def test_reschedule_passes_days_early():
    today = date(2026, 1, 10)
    state = ItemState(last_interval=10.0, repetitions=3, easiness_factor=2.5, mean_quality=4.0,
                      total_repeats=3, scheduled=today + timedelta(days=8), last_quality=4)
    result = reschedule(state, 4, _config(adjust_for_early_late=True),
                        OptimalFactorMatrix(), today=today)
    assert result.state.last_interval == pytest.approx(16.52)
    assert result.state.scheduled == today + timedelta(days=17)


def test_reschedule_passes_days_late():
    today = date(2026, 1, 10)
    state = ItemState(last_interval=10.0, repetitions=2, mean_quality=4.0, total_repeats=2,
                      scheduled=today - timedelta(days=5), last_quality=4)
    ease = simple8_quality_to_ease(4.0)

    late = reschedule(state, 4, _config(algorithm='simple8', adjust_for_early_late=True), today=today)
    assert late.state.last_interval == round_float(10 * simple8_interval_factor(ease, 2.5, 0.5), 4)

    plain = reschedule(state, 4, _config(algorithm='simple8', adjust_for_early_late=False), today=today)
    assert plain.state.last_interval == round_float(10 * simple8_interval_factor(ease, 2, 0.5), 4)


# ============================================================================
# Random noise
# ============================================================================

@pytest.mark.parametrize('quality,table_interval', [(5, 6.0), (4, 4.0), (3, 3.0)])
def test_sm2_noise_second_step_table(quality, table_interval):
    config = _config(add_random_noise=True)
    f = random_dispersal_factor(np.random.default_rng(11))
    s = sm2(1.0, 2, 2.5, quality, 0, 4.0, 1, config=config, rng=np.random.default_rng(11))
    assert s.last_interval == pytest.approx(1.0 + (table_interval - 1.0) * f)


def test_sm2_noise_second_step_quality_2():
    """With failures at 1 and below, a 2 keeps the interval at 1 day."""
    config = _config(add_random_noise=True, failure_quality_threshold=1)
    s = sm2(1.0, 2, 2.5, 2, 0, 4.0, 1, config=config, rng=np.random.default_rng(11))
    assert s.last_interval == pytest.approx(1.0)


def test_sm5_noise():
    config = _config(add_random_noise=True)
    f = random_dispersal_factor(np.random.default_rng(5))
    result = sm5(-1, 0, None, 4, 0, None, 0, config=config, rng=np.random.default_rng(5))
    assert result.state.last_interval == pytest.approx(4.0 * f)


def test_simple8_noise():
    config = _config(add_random_noise=True)
    f = random_dispersal_factor(np.random.default_rng(5))
    s = simple8(-1, 0, 4, 0, None, 0, config=config, rng=np.random.default_rng(5))
    assert s.last_interval == pytest.approx(2.4849 * f)


@pytest.mark.parametrize('algorithm', ['sm2', 'sm5', 'simple8'])
def test_noise_never_touches_failure_sentinel(algorithm):
    config = _config(add_random_noise=True)
    state = ItemState(last_interval=12.0, repetitions=4, easiness_factor=2.5,
                      mean_quality=4.0, total_repeats=4)
    for seed in range(5):
        result = schedule_next(algorithm, state, 1, config=config, rng=np.random.default_rng(seed))
        assert result.state.last_interval == -1


# ============================================================================
# Rating sequences / numpy ratings
# ============================================================================

@pytest.mark.parametrize('algorithm', ['sm2', 'sm5', 'simple8'])
def test_mean_quality_is_arithmetic_mean(algorithm):
    ratings = [5, 3, 4, 1, 5, 2, 4, 0, 3]
    state, matrix = None, None
    for k, q in enumerate(ratings, 1):
        result = schedule_next(algorithm, state, q, config=_config(), matrix=matrix)
        state, matrix = result.state, result.matrix
        assert state.total_repeats == k
        assert state.mean_quality == pytest.approx(sum(ratings[:k]) / k)


def test_numpy_integer_quality():
    state = ItemState(4.0, 2, 2.5, total_repeats=1, mean_quality=4.0)
    result = schedule_next('sm5', state, np.int64(4), config=_config())
    assert result.state.last_interval == pytest.approx(10.0)
    assert isinstance(result.state.mean_quality, float)

    stamped = reschedule(state, np.int64(5), _config(algorithm='sm2'), today=date(2026, 1, 10))
    assert type(stamped.state.last_quality) is int


def test_round_float_accepts_numpy_floats():
    assert round_float(np.float64(2.5), 0) == 3.0
    assert round_float(np.float64(3.56755765), 3) == 3.568
