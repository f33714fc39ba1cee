"""
Engine facade: configuration -> resolved capabilities -> runs

    engine = DataGatherer(config, store=store, trigger_service=triggers)
    engine.init()
    await engine.run("Sources-1", "Results-1", filters=["selected"])

Host services (store, scheduler, fetch, clock) are passed in explicitly;
nothing is looked up globally. The resolved connector and extensions live
as long as the engine instance.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from datagatherer.common.config_models import EngineConfig, load_engine_config
from datagatherer.common.errors import ConfigurationError
from datagatherer.common.logger import get_logger, set_log_level
from datagatherer.common.utils import epoch_ms
from datagatherer.connectors.api_handler import RequestsApiHandler
from datagatherer.core.pipeline import CancelToken, RunPipeline, RunReport
from datagatherer.plugins.api import ApiHandler, RunContext, TabularStore, TriggerService
from datagatherer.plugins.registry import resolve

__all__ = ["DataGatherer"]

log = get_logger()


class DataGatherer:
    """Orchestration engine bound to one configuration and one set of collaborators."""

    def __init__(
        self,
        config: Union[EngineConfig, Mapping[str, Any]],
        store: TabularStore,
        trigger_service: Optional[TriggerService] = None,
        api_handler: Optional[ApiHandler] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = load_engine_config(config)
        set_log_level(self.config.log_level)

        self.registration = resolve(self.config.helper, self.config.extensions)
        self.clock = clock
        self.connector = self.registration.connector(
            self.config.helper_settings(),
            store,
            trigger_service,
            api_handler or RequestsApiHandler(),
            clock,
        )
        self.extensions = [ext() for ext in self.registration.extensions]
        self.pipeline = RunPipeline(self.connector, self.extensions, self.config, clock)
        self._running = False
        log.engine_start(self.config.helper, self.config.extensions)

    def init(self) -> Dict[str, Any]:
        """Idempotent host setup: triggers + last init timestamp."""
        return self.connector.init()

    async def run(
        self,
        src_dataset_id: str,
        dest_dataset_id: str,
        filters: Sequence[str] = (),
        cancel: Optional[CancelToken] = None,
    ) -> RunReport:
        """
        Run the source records through the fetch capability into the destination.

        Raises:
            ConfigurationError: unknown dataset, filter or bad header names
            SchemaMismatchError: destination header missing or incompatible
            WriteError: the store rejected a batch (earlier batches stay written)
            RuntimeError: another run is in progress on this engine
        """
        if self._running:
            raise RuntimeError("A run is already in progress on this engine; use another instance")
        self._running = True
        try:
            return await self.pipeline.run(src_dataset_id, dest_dataset_id, filters, cancel)
        finally:
            self._running = False

    async def submit_recurring_sources(
        self,
        src_dataset_id: str,
        dest_dataset_id: str,
        cancel: Optional[CancelToken] = None,
    ) -> RunReport:
        """Handler of the recurring trigger: run every due recurring record."""
        return await self.run(src_dataset_id, dest_dataset_id, ["recurring"], cancel)

    def on_edit(self, dataset_id: str, index: int) -> Dict[str, Any]:
        """Handler of the on-edit trigger for record number `index`."""
        items = self.connector.read_records(dataset_id)
        if not 0 <= index < len(items):
            raise ConfigurationError(f"'{dataset_id}' has no record #{index}")
        ctx = RunContext(
            run_id=f"edit-{index}",
            src=dataset_id,
            dest=dataset_id,
            filters=[],
            connector=self.connector,
            config=self.config,
            env_vars={},
            now_ms=epoch_ms(self.clock()),
            state="edit",
        )
        updates: Dict[str, Any] = {}
        for ext in self.extensions:
            out = ext.on_edit(ctx, items[index])
            if out:
                updates.update(out)
        if updates:
            self.connector.update_record(dataset_id, index, updates)
            log.dev(f"  {dataset_id} #{index} updated: {', '.join(updates)}")
        return updates
