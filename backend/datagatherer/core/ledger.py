"""
Trigger/Timestamp Ledger

Key/value state kept in the first record of the reserved system dataset:
trigger ids per handler name and the last-initialization timestamp.
Only the connector's init() drives it; runs never touch it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from datagatherer.common.config_models import TabConfig
from datagatherer.common.errors import ConfigurationError
from datagatherer.common.logger import get_logger
from datagatherer.common.utils import is_blank
from datagatherer.core.schema_mapper import Grid, RangePatch, SchemaMapper
from datagatherer.plugins.api import TabularStore, TriggerService

log = get_logger()

LAST_INIT_KEY = "lastInitTimestamp"


@dataclass(frozen=True)
class TriggerDefinition:
    handler: str      # function the scheduler invokes
    ledger_key: str   # property holding the trigger id


KNOWN_TRIGGERS: Tuple[TriggerDefinition, ...] = (
    TriggerDefinition("submitRecurringSources", "RETRIEVE_TRIGGER_ID"),
    TriggerDefinition("onEditFunc", "ONEDIT_TRIGGER_ID"),
)


class TriggerLedger:
    def __init__(
        self,
        store: TabularStore,
        mapper: SchemaMapper,
        system_tab_id: str,
        config: TabConfig,
        trigger_service: Optional[TriggerService] = None,
        triggers: Tuple[TriggerDefinition, ...] = KNOWN_TRIGGERS,
    ):
        self.store = store
        self.mapper = mapper
        self.system_tab_id = system_tab_id
        self.config = config
        self.trigger_service = trigger_service
        self.triggers = {t.handler: t for t in triggers}

    def _snapshot(self) -> Tuple[Grid, List[Optional[str]]]:
        grid = self.store.read_range(self.system_tab_id)
        return grid, self.mapper.read_header(grid, self.config, self.system_tab_id)

    def _write(self, patch: RangePatch) -> None:
        self.store.write_range(self.system_tab_id, patch.start_row, patch.start_col, patch.values)

    def get(self, key: str) -> Optional[Any]:
        grid, header = self._snapshot()
        if key not in header:
            return None
        row, col = self.mapper.locate(self.config, header, 0, key)
        if row > len(grid) or col > len(grid[row - 1]):
            return None
        value = grid[row - 1][col - 1]
        return None if is_blank(value) else value

    def set(self, key: str, value: Any) -> None:
        """Write a value; an unknown key becomes a new system property."""
        _, header = self._snapshot()
        if key not in header:
            self._write(self.mapper.add_property(self.config, header, key))
            header = list(header) + [key]
            log.dev(f"  System property added: {key}")
        row, col = self.mapper.locate(self.config, header, 0, key)
        self._write(RangePatch(start_row=row, start_col=col, values=[[value]]))

    # ---------------- Triggers ----------------

    def get_trigger(self, name: str) -> Optional[str]:
        """Stored trigger id for a handler name, if any."""
        definition = self.triggers.get(name)
        if definition is None:
            raise ConfigurationError(f"Unknown trigger '{name}'. Known: {', '.join(self.triggers)}")
        value = self.get(definition.ledger_key)
        return None if value is None else str(value)

    def ensure_triggers(self) -> Dict[str, str]:
        """Create missing triggers, reuse live ones. Returns handler -> id."""
        if self.trigger_service is None:
            raise ConfigurationError("No trigger service configured; cannot ensure triggers")
        ids: Dict[str, str] = {}
        for handler, definition in self.triggers.items():
            existing = self.get_trigger(handler)
            if existing and self.trigger_service.has_trigger(existing):
                log.trigger_reused(handler, existing)
                ids[handler] = existing
                continue
            trigger_id = self.trigger_service.create_trigger(definition.ledger_key, handler)
            self.set(definition.ledger_key, trigger_id)
            log.trigger_created(handler, trigger_id)
            ids[handler] = trigger_id
        return ids

    # ---------------- Init timestamp ----------------

    def last_init(self) -> Optional[int]:
        value = self.get(LAST_INIT_KEY)
        try:
            return None if value is None else int(float(value))
        except (TypeError, ValueError):
            return None

    def record_init(self, timestamp: int) -> int:
        """Store a strictly increasing, positive init timestamp."""
        previous = self.last_init()
        value = max(int(timestamp), 1)
        if previous is not None and value <= previous:
            value = previous + 1
        self.set(LAST_INIT_KEY, value)
        log.init_recorded(value)
        return value
