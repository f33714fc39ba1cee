from __future__ import annotations
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from datagatherer.common.config_models import HelperConfig, TabConfig
from datagatherer.common.errors import ConfigurationError, WriteError
from datagatherer.common.logger import get_logger
from datagatherer.common.utils import epoch_ms
from datagatherer.core.ledger import TriggerLedger
from datagatherer.core.schema_mapper import DestinationCursor, RangePatch, SchemaMapper
from datagatherer.plugins.api import ApiHandler, Connector, RecordRef, TabularStore, TriggerService
from datagatherer.plugins.registry import register_connector

log = get_logger()


@register_connector
class SheetsConnector(Connector):
    """
    Connector for spreadsheet-like hosts reached through a TabularStore.

    Features:
      - Per-tab layouts from the `tabs` section (row or column records)
      - Env vars read from `envVarsTabId` (first column record)
      - Trigger ids and init timestamp kept in `systemTabId`
      - One write call per appended batch
    """
    name = "sheets"

    def __init__(
        self,
        settings: HelperConfig,
        store: TabularStore,
        trigger_service: Optional[TriggerService],
        api_handler: ApiHandler,
        clock: Callable[[], float],
    ):
        super().__init__(settings, store, trigger_service, api_handler, clock)
        self.mapper = SchemaMapper()
        self.ledger: Optional[TriggerLedger] = None
        if settings.system_tab_id:
            self.ledger = TriggerLedger(
                store,
                self.mapper,
                settings.system_tab_id,
                self.tab_config(settings.system_tab_id),
                trigger_service,
            )

    def tab_config(self, dataset_id: str) -> TabConfig:
        cfg = self.settings.tabs.get(dataset_id)
        if cfg is None:
            raise ConfigurationError(
                f"No tab configuration for '{dataset_id}'. "
                f"Available tabs: {', '.join(sorted(self.settings.tabs))}"
            )
        return cfg

    def _read(self, dataset_id: str) -> List[List[Any]]:
        try:
            return self.store.read_range(dataset_id)
        except KeyError as e:
            raise ConfigurationError(f"Dataset '{dataset_id}' not found in store") from e

    # ---------------- Host setup ----------------

    def init(self) -> Dict[str, Any]:
        if self.ledger is None:
            raise ConfigurationError(f"Helper '{self.name}' needs systemTabId to init")
        log.info(f"Initializing {self.store.get_dataset_id()}")
        triggers = self.ledger.ensure_triggers()
        last_init = self.ledger.record_init(epoch_ms(self.clock()))
        return {"triggers": triggers, "lastInitTimestamp": last_init}

    # ---------------- Dataset plumbing ----------------

    def read_records(self, dataset_id: str) -> List[RecordRef]:
        config = self.tab_config(dataset_id)
        grid = self._read(dataset_id)
        records = self.mapper.to_records(grid, config, dataset_id)
        log.dev(f"  Loaded {len(records)} record(s) from {dataset_id}")
        return [RecordRef(index=i, values=r) for i, r in enumerate(records)]

    def open_destination(self, dataset_id: str) -> DestinationCursor:
        config = self.tab_config(dataset_id)
        cursor = self.mapper.open_cursor(self._read(dataset_id), config, dataset_id)
        log.debug(f"  Destination {dataset_id}: {len(cursor.properties)} properties, next line {cursor.next_line + 1}")
        return cursor

    def append_records(self, cursor: DestinationCursor, records: Sequence[Mapping[str, Any]]) -> RangePatch:
        patch = self.mapper.to_rows(records, cursor)
        if not records:
            return patch
        try:
            self.store.write_range(cursor.dataset_id, patch.start_row, patch.start_col, patch.values)
        except Exception as e:
            raise WriteError(f"Write to '{cursor.dataset_id}' rejected: {e}", cursor.dataset_id) from e
        cursor.next_line += len(records)
        return patch

    def update_record(self, dataset_id: str, index: int, values: Mapping[str, Any]) -> None:
        self.update_records(dataset_id, {index: values})

    def update_records(self, dataset_id: str, updates: Mapping[int, Mapping[str, Any]]) -> int:
        if not updates:
            return 0
        config = self.tab_config(dataset_id)
        grid = self._read(dataset_id)
        header = self.mapper.read_header(grid, config, dataset_id)

        # consecutive record numbers share one write call
        runs: List[List[int]] = []
        for index in sorted(updates):
            if runs and index == runs[-1][-1] + 1:
                runs[-1].append(index)
            else:
                runs.append([index])

        for run in runs:
            patch = self.mapper.lines_patch(grid, config, header, run[0], [updates[i] for i in run])
            try:
                self.store.write_range(dataset_id, patch.start_row, patch.start_col, patch.values)
            except Exception as e:
                raise WriteError(f"Update of '{dataset_id}' #{run[0]}..#{run[-1]} rejected: {e}", dataset_id) from e
        return len(runs)

    def get_env_vars(self) -> Dict[str, Any]:
        tab_id = self.settings.env_vars_tab_id
        if not tab_id:
            return {}
        records = self.mapper.to_records(self._read(tab_id), self.tab_config(tab_id), tab_id)
        return dict(records[0]) if records else {}
