"""Configuration for the drill scheduling engine."""

import os
from dataclasses import dataclass
from typing import Optional, Union

from drill.models import Algorithm, LeechMethod, parse_algorithm


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(value: str) -> Optional[int]:
    if value.strip().lower() in ("", "none", "off"):
        return None
    return int(value)


def _env_leech_method(value: str) -> LeechMethod:
    return LeechMethod(value.strip().lower())


# field name -> (environment variable, parser)
_ENV_OVERRIDES = {
    'algorithm': ("DRILL_ALGORITHM", parse_algorithm),
    'failure_quality_threshold': ("DRILL_FAILURE_QUALITY", int),
    'leech_threshold': ("DRILL_LEECH_THRESHOLD", _env_optional_int),
    'leech_method': ("DRILL_LEECH_METHOD", _env_leech_method),
    'overdue_interval_factor': ("DRILL_OVERDUE_INTERVAL_FACTOR", float),
    'days_before_old': ("DRILL_DAYS_BEFORE_OLD", int),
    'learn_fraction': ("DRILL_LEARN_FRACTION", float),
    'sm5_initial_interval': ("DRILL_SM5_INITIAL_INTERVAL", float),
    'add_random_noise': ("DRILL_ADD_RANDOM_NOISE", _env_bool),
    'adjust_for_early_late': ("DRILL_ADJUST_FOR_EARLY_LATE", _env_bool),
    'cram_hours': ("DRILL_CRAM_HOURS", int),
    'max_items_per_session': ("DRILL_MAX_ITEMS", _env_optional_int),
    'max_duration_minutes': ("DRILL_MAX_MINUTES", _env_optional_int),
    'count_failed_items_in_limit': ("DRILL_COUNT_FAILED_ITEMS", _env_bool),
    'forgetting_index': ("DRILL_FORGETTING_INDEX", float),
    'lapse_overdue_days': ("DRILL_LAPSE_OVERDUE_DAYS", _env_optional_int),
}


@dataclass
class DrillConfig:
    """
    Every tunable of the scheduler, classifier and session.

    Each field can be overridden from the environment (DRILL_* variables,
    see _ENV_OVERRIDES) unless it was passed explicitly to the constructor.
    Unparseable environment values are ignored; out-of-range values raise
    ValueError.
    """
    algorithm: Union[Algorithm, str, None] = None
    failure_quality_threshold: Optional[int] = None
    leech_threshold: Optional[int] = 15
    leech_method: Union[LeechMethod, str, None] = None
    overdue_interval_factor: Optional[float] = None
    days_before_old: Optional[int] = None
    learn_fraction: Optional[float] = None
    sm5_initial_interval: Optional[float] = None
    add_random_noise: Optional[bool] = None
    adjust_for_early_late: Optional[bool] = None
    cram_hours: Optional[int] = None
    max_items_per_session: Optional[int] = 30
    max_duration_minutes: Optional[int] = 20
    count_failed_items_in_limit: Optional[bool] = None
    forgetting_index: Optional[float] = None

    # Items overdue by more than this many days are presented after all
    # other overdue items. None keeps them in days-overdue order.
    lapse_overdue_days: Optional[int] = None

    def __post_init__(self):
        for name, (var, parse) in _ENV_OVERRIDES.items():
            raw = os.environ.get(var)
            if raw is None or not self._is_default(name):
                continue
            try:
                setattr(self, name, parse(raw))
            except ValueError:
                pass

        if self.algorithm is None:
            self.algorithm = Algorithm.SM5
        if self.failure_quality_threshold is None:
            self.failure_quality_threshold = 2
        if self.leech_method is None:
            self.leech_method = LeechMethod.SKIP
        if self.overdue_interval_factor is None:
            self.overdue_interval_factor = 1.2
        if self.days_before_old is None:
            self.days_before_old = 10
        if self.learn_fraction is None:
            self.learn_fraction = 0.5
        if self.sm5_initial_interval is None:
            self.sm5_initial_interval = 4.0
        if self.add_random_noise is None:
            self.add_random_noise = False
        if self.adjust_for_early_late is None:
            self.adjust_for_early_late = False
        if self.cram_hours is None:
            self.cram_hours = 12
        if self.count_failed_items_in_limit is None:
            self.count_failed_items_in_limit = False
        if self.forgetting_index is None:
            self.forgetting_index = 10.0

        self.algorithm = parse_algorithm(self.algorithm)
        try:
            self.leech_method = LeechMethod(str(getattr(self.leech_method, 'value', self.leech_method)).lower())
        except ValueError:
            raise ValueError(f"leech_method must be none, warn or skip, got {self.leech_method!r}")

        if self.failure_quality_threshold not in (1, 2):
            raise ValueError(
                f"failure_quality_threshold must be 1 or 2, got {self.failure_quality_threshold}"
            )
        if not (0.0 < self.learn_fraction < 1.0):
            raise ValueError(f"learn_fraction must be in (0, 1), got {self.learn_fraction}")
        if self.overdue_interval_factor < 1.0:
            raise ValueError(
                f"overdue_interval_factor must be >= 1.0, got {self.overdue_interval_factor}"
            )
        if self.sm5_initial_interval <= 0:
            raise ValueError(f"sm5_initial_interval must be positive, got {self.sm5_initial_interval}")

    def _is_default(self, name: str) -> bool:
        return getattr(self, name) == self.__dataclass_fields__[name].default

    def is_failure(self, quality: int) -> bool:
        return quality <= self.failure_quality_threshold
