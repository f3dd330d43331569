"""Collection statistics for the drill engine."""

from datetime import date
from typing import Dict, List, Optional

from drill.classifier import classify
from drill.config import DrillConfig
from drill.models import DrillItem


def collection_stats(
    items: List[DrillItem],
    today: Optional[date] = None,
    config: Optional[DrillConfig] = None,
) -> Dict:
    """
    Summarise a collection as of `today`.

    Returns:
        {
            total, due, by_bucket: {bucket: count}, future, leeches,
            average_ease, mean_quality, retention,
        }

    retention is the share of items whose most recent rating was a pass.
    average_ease and mean_quality cover reviewed items only.
    """
    config = config or DrillConfig()
    today = today or date.today()

    by_bucket: Dict[str, int] = {}
    future = 0
    leeches = 0
    eases: List[float] = []
    means: List[float] = []
    passed = 0
    rated = 0

    for item in items:
        state = item.state
        c = classify(state, today, False, config)
        if c.leech:
            leeches += 1
        if c.bucket is None:
            future += 1
        else:
            by_bucket[c.bucket.value] = by_bucket.get(c.bucket.value, 0) + 1
        if state.is_new:
            continue
        eases.append(state.ease)
        if state.mean_quality is not None:
            means.append(state.mean_quality)
        if state.last_quality is not None:
            rated += 1
            if not config.is_failure(state.last_quality):
                passed += 1

    return {
        'total': len(items),
        'due': sum(by_bucket.values()),
        'by_bucket': by_bucket,
        'future': future,
        'leeches': leeches,
        'average_ease': round(sum(eases) / len(eases), 4) if eases else None,
        'mean_quality': round(sum(means) / len(means), 4) if means else None,
        'retention': round(passed / rated, 4) if rated else None,
    }
