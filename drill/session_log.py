"""Session logging -- writes a JSONL line after each drill session."""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List


def log_session(
    log_path: Path,
    summary: Dict,
    items_reviewed: List[Dict],
) -> Dict:
    """
    Append a session record to the JSONL log file.

    Args:
        log_path:       Path to the session log file
        summary:        Summary dict from run_review_session
        items_reviewed: Per-item dicts with item_id, quality, tags

    Returns:
        The session record dict that was written.
    """
    # Weakest tags: lowest average final rating
    tag_qualities: Dict[str, List[int]] = {}
    for entry in items_reviewed:
        q = entry.get('quality') or 0
        for tag in entry.get('tags', []):
            tag_qualities.setdefault(tag, []).append(q)
    weakest_tags = sorted(
        [(t, sum(qs) / len(qs)) for t, qs in tag_qualities.items()],
        key=lambda x: x[1],
    )[:5]

    histogram = summary.get('quality_histogram', {})
    rated = sum(histogram.values())
    avg_quality = 0.0
    if rated:
        avg_quality = round(sum(int(q) * n for q, n in histogram.items()) / rated, 2)

    record = {
        'timestamp': datetime.now().isoformat(),
        'reviewed': summary.get('reviewed', 0),
        'failed': summary.get('failed', 0),
        'percent_forgotten': summary.get('percent_forgotten', 0.0),
        'ended_by': summary.get('ended_by'),
        'duration_seconds': summary.get('duration_seconds', 0.0),
        'leeches_skipped': summary.get('leeches_skipped', 0),
        'avg_quality': avg_quality,
        'quality_histogram': histogram,
        'pending': summary.get('pending', {}),
        'weakest_tags': weakest_tags,
        'item_details': items_reviewed,
    }

    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with open(log_path, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record, ensure_ascii=False) + '\n')

    return record


def read_session_log(log_path: Path) -> List[Dict]:
    """Read all session records from the log file."""
    records = []
    log_path = Path(log_path)
    if not log_path.exists():
        return records
    with open(log_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records
