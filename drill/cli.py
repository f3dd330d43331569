"""
Drill CLI.

Usage:
    python -m drill.cli --db drill_items.jsonl add --prompt "Capital of Peru?" --answer "Lima"
    python -m drill.cli --db drill_items.jsonl due [--cram]
    python -m drill.cli --db drill_items.jsonl review [--cram] [--algorithm sm5] [--max-items 30] [--minutes 20] [--seed N]
    python -m drill.cli --db drill_items.jsonl stats
    python -m drill.cli --db drill_items.jsonl show <item_id>
    python -m drill.cli --db drill_items.jsonl reset <item_id>
    python -m drill.cli --db drill_items.jsonl matrix
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from drill.analytics import collection_stats
from drill.classifier import classify
from drill.config import DrillConfig
from drill.models import DrillItem, make_item_id
from drill.scheduler import reset_state
from drill.session import run_review_session
from drill.storage import ItemStore, MatrixStore


def _matrix_path(args) -> Path:
    if args.matrix:
        return Path(args.matrix)
    return Path(args.db).parent / 'of_matrix.json'


def _config(args) -> DrillConfig:
    overrides = {}
    if getattr(args, 'algorithm', None):
        overrides['algorithm'] = args.algorithm
    if getattr(args, 'max_items', None) is not None:
        overrides['max_items_per_session'] = args.max_items
    if getattr(args, 'minutes', None) is not None:
        overrides['max_duration_minutes'] = args.minutes
    return DrillConfig(**overrides)


def cmd_add(args):
    """Add an item."""
    store = ItemStore(args.db)
    item_id = make_item_id(args.prompt, args.answer)
    if store.get_item(item_id) is not None:
        print(f"Item already exists: {item_id}")
        return
    tags = [t.strip() for t in (args.tags or '').split(',') if t.strip()]
    store.upsert_item(DrillItem(item_id=item_id, prompt=args.prompt, answer=args.answer, tags=tags))
    print(f"Added item {item_id}")


def cmd_due(args):
    """Show due items with their buckets."""
    store = ItemStore(args.db)
    config = _config(args)
    due = store.get_due_items(config, cram_mode=args.cram)
    if not due:
        print("No items due today.")
        return
    print(f"\n{len(due)} item(s) due for review:\n")
    for i, item in enumerate(due, 1):
        c = classify(item.state, cram_mode=args.cram, config=config)
        leech = '  LEECH' if c.leech else ''
        print(f"  {i}. [{c.bucket.value}] {item.prompt[:80]}{leech}")
        print(f"     overdue={c.days_overdue}d  interval={item.state.last_interval:g}  "
              f"ease={item.state.ease:.2f}  reps={item.state.repetitions}  "
              f"failures={item.state.failure_count}")


def cmd_review(args):
    """Run an interactive drill session."""
    store = ItemStore(args.db)
    if store.count() == 0:
        print("No items yet. Add some with the 'add' command.")
        return
    config = _config(args)
    matrix_store = MatrixStore(_matrix_path(args), initial_interval=config.sm5_initial_interval)
    log_path = Path(args.db).parent / 'drill_session_log.jsonl'
    rng = np.random.default_rng(args.seed)
    run_review_session(
        store, config=config, matrix_store=matrix_store,
        log_path=log_path, cram_mode=args.cram, rng=rng,
    )


def cmd_stats(args):
    """Show collection statistics."""
    store = ItemStore(args.db)
    stats = collection_stats(store.all_items(), config=_config(args))
    print(f"\nItems: {stats['total']}  due: {stats['due']}  "
          f"scheduled ahead: {stats['future']}  leeches: {stats['leeches']}")
    for bucket, n in sorted(stats['by_bucket'].items()):
        print(f"  {bucket:<14} {n}")
    if stats['average_ease'] is not None:
        print(f"Average ease: {stats['average_ease']:.2f}")
    if stats['mean_quality'] is not None:
        print(f"Mean quality: {stats['mean_quality']:.2f}")
    if stats['retention'] is not None:
        print(f"Retention (last rating passed): {stats['retention']:.0%}")


def cmd_show(args):
    """Show item details."""
    store = ItemStore(args.db)
    item = store.get_item(args.item_id)
    if item is None:
        print(f"Item not found: {args.item_id}")
        sys.exit(1)
    print(json.dumps(item.to_dict(), indent=2, ensure_ascii=False))


def cmd_reset(args):
    """Strip an item's scheduling data so it becomes new again."""
    store = ItemStore(args.db)
    try:
        store.update_state(args.item_id, reset_state())
    except KeyError:
        print(f"Item not found: {args.item_id}")
        sys.exit(1)
    print(f"Reset item {args.item_id}")


def cmd_matrix(args):
    """Dump the optimal factor matrix."""
    matrix = MatrixStore(_matrix_path(args)).load_matrix()
    print(json.dumps(matrix.to_dict(), indent=2))


def main():
    parser = argparse.ArgumentParser(
        description="Spaced-repetition drill scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        '--db', default='drill_items.jsonl',
        help="Path to item storage JSONL file (default: drill_items.jsonl)",
    )
    parser.add_argument(
        '--matrix', default=None,
        help="Path to the OF matrix JSON file (default: <db_dir>/of_matrix.json)",
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    add_parser = subparsers.add_parser('add', help='Add a drill item')
    add_parser.add_argument('--prompt', required=True, help='Question side')
    add_parser.add_argument('--answer', required=True, help='Answer side')
    add_parser.add_argument('--tags', default='', help='Comma-separated tags')

    due_parser = subparsers.add_parser('due', help='Show items due for review')
    due_parser.add_argument('--cram', action='store_true', help='Use cram-mode due rules')

    review_parser = subparsers.add_parser('review', help='Run interactive drill session')
    review_parser.add_argument('--cram', action='store_true',
                               help='Cram mode: ignore due dates, no session limits')
    review_parser.add_argument('--algorithm', choices=['sm2', 'sm5', 'simple8'], default=None,
                               help='Interval algorithm (default: DRILL_ALGORITHM or sm5)')
    review_parser.add_argument('--max-items', type=int, default=None,
                               help='Maximum items per session')
    review_parser.add_argument('--minutes', type=int, default=None,
                               help='Maximum session duration in minutes')
    review_parser.add_argument('--seed', type=int, default=None,
                               help='Random seed for ordering and interval noise')

    subparsers.add_parser('stats', help='Show collection statistics')

    show_parser = subparsers.add_parser('show', help='Show item details')
    show_parser.add_argument('item_id', help='Item ID to display')

    reset_parser = subparsers.add_parser('reset', help='Reset an item to new')
    reset_parser.add_argument('item_id', help='Item ID to reset')

    subparsers.add_parser('matrix', help='Dump the optimal factor matrix')

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    if args.command == 'add':
        cmd_add(args)
    elif args.command == 'due':
        cmd_due(args)
    elif args.command == 'review':
        cmd_review(args)
    elif args.command == 'stats':
        cmd_stats(args)
    elif args.command == 'show':
        cmd_show(args)
    elif args.command == 'reset':
        cmd_reset(args)
    elif args.command == 'matrix':
        cmd_matrix(args)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
