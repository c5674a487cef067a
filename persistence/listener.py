from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from computation.listeners import ComputationListener
from computation.results import DiscreteStrengthResult
from persistence.table_store import TableStore

logger = logging.getLogger(__name__)


class StoringListener(ComputationListener):
    """Writes every finished discrete result to a TableStore."""

    def __init__(self, store: TableStore):
        self.store = store
        self.saved_path: Optional[Path] = None

    def on_complete(self, result) -> None:
        if not isinstance(result, DiscreteStrengthResult):
            logger.warning(f"Not storing {type(result).__name__}: only discrete tables are persisted")
            return
        self.saved_path = self.store.save(result)
