"""FastAPI dependency factories."""

from functools import lru_cache

from fastapi import Depends

from drill.storage import ItemStore, MatrixStore
from server.config import Settings


@lru_cache()
def get_settings() -> Settings:
    """Singleton Settings -- override via app.dependency_overrides in tests."""
    return Settings()


def get_item_store(settings: Settings = Depends(get_settings)) -> ItemStore:
    return ItemStore(settings.items_path)


def get_matrix_store(settings: Settings = Depends(get_settings)) -> MatrixStore:
    return MatrixStore(settings.matrix_path, initial_interval=settings.drill.sm5_initial_interval)
