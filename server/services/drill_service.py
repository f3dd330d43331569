"""Drill engine service wrappers -- all return JSON-serializable dicts."""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from drill.analytics import collection_stats
from drill.classifier import classify, include_in_pool
from drill.config import DrillConfig
from drill.matrix import OptimalFactorMatrix
from drill.models import Algorithm, ItemState, parse_algorithm
from drill.scheduler import reschedule, schedule_next
from drill.session_log import read_session_log
from drill.storage import ItemStore, MatrixStore

logger = logging.getLogger("server.drill")


def schedule(
    config: DrillConfig,
    algorithm: str,
    state_data: Optional[Dict],
    quality: int,
    delta_days: Optional[int] = None,
    matrix_data: Optional[Dict] = None,
    rng: Optional[np.random.Generator] = None,
) -> Dict:
    """
    Pure scheduling call: nothing is read from or written to storage.

    Raises:
        InvalidQuality, InvalidState, UnknownAlgorithm
    """
    matrix = OptimalFactorMatrix.from_dict(matrix_data, initial_interval=config.sm5_initial_interval)
    result = schedule_next(
        algorithm, ItemState.from_dict(state_data), quality, delta_days,
        config=config, matrix=matrix, rng=rng,
    )
    return {
        'algorithm': parse_algorithm(algorithm).value,
        'state': result.state.to_dict(),
        'matrix': result.matrix.to_dict() if result.matrix is not None else None,
    }


def classify_state(
    config: DrillConfig,
    state_data: Optional[Dict],
    today: Optional[date] = None,
    cram_mode: bool = False,
    now: Optional[datetime] = None,
) -> Dict:
    c = classify(ItemState.from_dict(state_data), today, cram_mode, config, now=now)
    return {
        'status': c.status.value,
        'bucket': c.bucket.value if c.bucket else None,
        'days_overdue': c.days_overdue,
        'leech': c.leech,
    }


def get_due_items(store: ItemStore, config: DrillConfig, today: Optional[date] = None) -> Dict:
    """Return the classified session pool, most overdue first."""
    today = today or date.today()
    items = []
    for item in store.all_items():
        c = classify(item.state, today, False, config)
        if not include_in_pool(c, config):
            continue
        items.append({
            'item_id': item.item_id,
            'prompt': item.prompt,
            'bucket': c.bucket.value,
            'days_overdue': c.days_overdue,
            'leech': c.leech,
            'tags': list(item.tags),
        })
    items.sort(key=lambda d: d['days_overdue'], reverse=True)
    return {'due_count': len(items), 'items': items}


def review_item(
    store: ItemStore,
    matrix_store: MatrixStore,
    config: DrillConfig,
    item_id: str,
    quality: int,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    rng: Optional[np.random.Generator] = None,
) -> Dict:
    """
    Rate a stored item and persist its new state (and the OF matrix).

    Raises:
        KeyError if item_id not found.
        InvalidQuality / InvalidState, before anything is written.
    """
    item = store.get_item(item_id)
    if item is None:
        raise KeyError(f"Item not found: {item_id}")

    matrix = matrix_store.load_matrix()
    result = reschedule(item.state, quality, config, matrix, today=today, now=now, rng=rng)

    store.update_state(item_id, result.state)
    if result.matrix is not None and config.algorithm is Algorithm.SM5:
        matrix_store.save_matrix(result.matrix)
    logger.info("Reviewed %s q=%d -> interval %.2f", item_id, quality, result.state.last_interval)

    return {
        'item_id': item_id,
        'quality': quality,
        'failed': config.is_failure(quality),
        'state': result.state.to_dict(),
    }


def get_stats(store: ItemStore, config: DrillConfig, today: Optional[date] = None) -> Dict:
    return collection_stats(store.all_items(), today=today, config=config)


def get_matrix(matrix_store: MatrixStore) -> Dict:
    matrix = matrix_store.load_matrix()
    return {'size': len(matrix), 'entries': matrix.to_dict()}


def get_session_history(log_path: Path, limit: int = 20) -> Dict:
    """
    Most recent drill sessions from the session log, newest first.

    The log is appended to by `drill review`; a missing log is an empty history.
    """
    records = read_session_log(log_path)
    recent = list(reversed(records))[:limit]
    return {
        'total_sessions': len(records),
        'total_reviewed': sum(r.get('reviewed', 0) for r in records),
        'sessions': recent,
    }
