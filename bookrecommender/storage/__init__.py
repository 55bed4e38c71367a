"""Book Recommender - Storage Package

Persistence backends behind the ``Storage`` port:
- Legacy semicolon-delimited files (flatfile.py)
- Relational tables on sqlite (sqlite.py)
"""

import os
from typing import Optional

from ..config import Settings, settings as default_settings
from .base import Storage, read_with_retry
from .flatfile import FlatFileStorage
from .sqlite import SqliteStorage

__all__ = ["Storage", "read_with_retry", "FlatFileStorage", "SqliteStorage", "open_storage"]


def open_storage(config: Optional[Settings] = None) -> Storage:
    """Build the backend selected by ``BR_BACKEND``."""
    config = config or default_settings
    backend = config.backend.lower().strip()
    if backend == "sqlite":
        return SqliteStorage(os.path.join(config.data_dir, config.db_file))
    if backend == "file":
        return FlatFileStorage(config.data_dir, os.path.join(config.data_dir, config.books_file))
    raise ValueError(f"Unknown storage backend: {config.backend!r}. Use 'file' or 'sqlite'.")
