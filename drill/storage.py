"""JSONL item storage and JSON optimal-factor-matrix persistence."""

import json
import logging
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from drill.classifier import classify, include_in_pool
from drill.config import DrillConfig
from drill.matrix import DEFAULT_INITIAL_INTERVAL, OptimalFactorMatrix
from drill.models import DrillItem, ItemState

logger = logging.getLogger("drill.storage")


class ItemStore:
    """
    JSONL-backed drill item storage.

    Loads entire file into memory on init.
    Writes are atomic: rewrites the entire file on mutation.
    """

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self._items: Dict[str, DrillItem] = {}
        self._load()

    def _load(self) -> None:
        if not self.db_path.exists():
            return
        with open(self.db_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                item = DrillItem.from_dict(json.loads(line))
                self._items[item.item_id] = item

    def _save(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.db_path.with_suffix(self.db_path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            for item in self._items.values():
                f.write(json.dumps(item.to_dict(), ensure_ascii=False) + '\n')
        tmp_path.replace(self.db_path)

    def upsert_item(self, item: DrillItem) -> None:
        """Insert or update an item by item_id."""
        self._items[item.item_id] = item
        self._save()

    def upsert_items(self, items: List[DrillItem]) -> None:
        """Batch upsert -- single save at the end."""
        for item in items:
            self._items[item.item_id] = item
        self._save()

    def get_item(self, item_id: str) -> Optional[DrillItem]:
        return self._items.get(item_id)

    def update_state(self, item_id: str, state: ItemState) -> DrillItem:
        """
        Store a new scheduling state for an item and return the new record.

        Records are replaced, not mutated: an item handed out earlier keeps
        the state it had.
        """
        item = self._items.get(item_id)
        if item is None:
            raise KeyError(f"Item not found: {item_id}")
        updated = replace(item, state=state)
        self._items[item_id] = updated
        self._save()
        return updated

    def get_due_items(
        self,
        config: Optional[DrillConfig] = None,
        as_of: Optional[date] = None,
        cram_mode: bool = False,
    ) -> List[DrillItem]:
        """Items that would enter a session pool on `as_of`, most overdue first."""
        config = config or DrillConfig()
        as_of = as_of or date.today()
        due = []
        for item in self._items.values():
            c = classify(item.state, as_of, cram_mode, config)
            if include_in_pool(c, config):
                due.append((c.days_overdue, item))
        due.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in due]

    def get_items_by_tag(self, tag: str) -> List[DrillItem]:
        return [i for i in self._items.values() if tag in i.tags]

    def all_items(self) -> List[DrillItem]:
        return list(self._items.values())

    def count(self) -> int:
        return len(self._items)


class MatrixStore:
    """
    JSON file persistence for the optimal factor matrix.

    Provides the load_matrix()/save_matrix() hooks a session is run with.
    A missing file loads as an empty matrix.
    """

    def __init__(self, path, initial_interval: float = DEFAULT_INITIAL_INTERVAL):
        self.path = Path(path)
        self.initial_interval = initial_interval

    def load_matrix(self) -> OptimalFactorMatrix:
        if not self.path.exists():
            logger.debug("No matrix at %s, starting empty", self.path)
            return OptimalFactorMatrix(initial_interval=self.initial_interval)
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        matrix = OptimalFactorMatrix.from_dict(data, initial_interval=self.initial_interval)
        logger.debug("Loaded %d OF entries from %s", len(matrix), self.path)
        return matrix

    def save_matrix(self, matrix: OptimalFactorMatrix) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(matrix.to_dict(), f, indent=2, sort_keys=True)
        tmp_path.replace(self.path)
        logger.debug("Saved %d OF entries to %s", len(matrix), self.path)
