"""Configuration for the drill API server."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from drill.config import DrillConfig


@dataclass
class Settings:
    """
    All filesystem paths the server needs, plus the scheduler configuration.

    Defaults resolve relative to the project root.
    Every field is overridable at construction for testing.
    """
    data_root: Optional[Path] = None
    items_path: Optional[Path] = None
    matrix_path: Optional[Path] = None
    session_log_path: Optional[Path] = None
    drill: DrillConfig = field(default_factory=DrillConfig)

    def __post_init__(self):
        project_root = Path(__file__).resolve().parent.parent

        if self.data_root is None:
            env_root = os.environ.get("DRILL_DATA_ROOT")
            self.data_root = Path(env_root) if env_root else project_root / "drill_data"
        self.data_root = Path(self.data_root)

        if self.items_path is None:
            self.items_path = self.data_root / 'drill_items.jsonl'
        self.items_path = Path(self.items_path)

        if self.matrix_path is None:
            self.matrix_path = self.data_root / 'of_matrix.json'
        self.matrix_path = Path(self.matrix_path)

        if self.session_log_path is None:
            self.session_log_path = self.data_root / 'drill_session_log.jsonl'
        self.session_log_path = Path(self.session_log_path)
