"""
In-memory collaborators: a TabularStore holding grids per dataset and a
TriggerService that hands out local trigger ids.

Used by the CLI (workbooks snapshotted to YAML) and by tests.
"""
from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from datagatherer.common.errors import ConfigurationError
from datagatherer.plugins.api import TabularStore, TriggerService


@dataclass(frozen=True)
class WriteCall:
    dataset_id: str
    start_row: int
    start_col: int
    rows: int


class MemoryStore(TabularStore):
    """
    Grids keyed by dataset id. Writes grow the grid as needed and are
    serialized with reads through one lock.
    """

    def __init__(self, datasets: Optional[Mapping[str, Sequence[Sequence[Any]]]] = None, store_id: str = "memory"):
        self.store_id = store_id
        self.datasets: Dict[str, List[List[Any]]] = {
            k: [list(r) for r in v] for k, v in (datasets or {}).items()
        }
        self.writes: List[WriteCall] = []
        self._lock = threading.Lock()

    def read_range(self, dataset_id: str) -> List[List[Any]]:
        with self._lock:
            if dataset_id not in self.datasets:
                raise KeyError(dataset_id)
            return copy.deepcopy(self.datasets[dataset_id])

    def write_range(self, dataset_id: str, start_row: int, start_col: int, values: Sequence[Sequence[Any]]) -> None:
        if start_row < 1 or start_col < 1:
            raise ValueError(f"Cell coordinates are 1-based, got R{start_row}C{start_col}")
        with self._lock:
            if dataset_id not in self.datasets:
                raise KeyError(dataset_id)
            grid = self.datasets[dataset_id]
            for i, row_values in enumerate(values):
                r = start_row - 1 + i
                while len(grid) <= r:
                    grid.append([])
                row = grid[r]
                for j, value in enumerate(row_values):
                    c = start_col - 1 + j
                    while len(row) <= c:
                        row.append("")
                    row[c] = value
            self.writes.append(WriteCall(dataset_id, start_row, start_col, len(values)))

    def get_dataset_id(self) -> str:
        return self.store_id

    def writes_to(self, dataset_id: str) -> List[WriteCall]:
        return [w for w in self.writes if w.dataset_id == dataset_id]

    # ---------------- YAML snapshots ----------------

    @classmethod
    def from_yaml(cls, path: Path) -> Tuple["MemoryStore", Dict[str, Dict[str, str]]]:
        """Load `datasets` (and persisted `triggers`) from a workbook snapshot."""
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        datasets = raw.get("datasets")
        if not isinstance(datasets, Mapping):
            raise ConfigurationError(f"Workbook snapshot has no 'datasets' mapping: {path}")
        store = cls(datasets, store_id=str(raw.get("id") or Path(path).stem))
        return store, dict(raw.get("triggers") or {})

    def to_yaml(self, path: Path, triggers: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        payload: Dict[str, Any] = {"id": self.store_id, "datasets": self.datasets}
        if triggers:
            payload["triggers"] = {k: dict(v) for k, v in triggers.items()}
        with self._lock:
            Path(path).write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")


class LocalTriggerService(TriggerService):
    """Keeps trigger registrations in a dict: id -> {name, handler}."""

    def __init__(self, triggers: Optional[Mapping[str, Mapping[str, str]]] = None):
        self.triggers: Dict[str, Dict[str, str]] = {k: dict(v) for k, v in (triggers or {}).items()}

    def create_trigger(self, name: str, handler_name: str) -> str:
        trigger_id = f"trigger-{uuid.uuid4().hex[:12]}"
        self.triggers[trigger_id] = {"name": name, "handler": handler_name}
        return trigger_id

    def delete_trigger(self, trigger_id: str) -> None:
        self.triggers.pop(trigger_id, None)

    def has_trigger(self, trigger_id: str) -> bool:
        return trigger_id in self.triggers
