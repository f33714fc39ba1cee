"""
Run Pipeline: load -> filter -> fetch -> batch -> flush

One invocation reads the source dataset, keeps the records that pass every
filter, fetches each of them through the connector's api handler and appends
the results to the destination in batches of `batchUpdateBuffer`.

Records are processed chunk by chunk. A chunk is fetched with at most
`fetchConcurrency` requests in flight, its results keep source order, and the
chunk is flushed in one write call before the next chunk is fetched.
"""
from __future__ import annotations

import asyncio
import inspect
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Sequence

from datagatherer.common.config_models import EngineConfig, RunStatus
from datagatherer.common.errors import FetchError, WriteError
from datagatherer.common.logger import get_logger
from datagatherer.common.utils import epoch_ms, is_blank, resolve_placeholders
from datagatherer.core.schema_mapper import DestinationCursor, Record
from datagatherer.plugins.api import (
    Connector,
    Extension,
    FetchRequest,
    FetchResponse,
    RecordRef,
    RunContext,
)
from datagatherer.proc.filters import apply_filters, build_filters

__all__ = ["RunState", "CancelToken", "RunReport", "RunPipeline"]

log = get_logger()


class RunState(str, Enum):
    LOADING = "loading"
    FILTERING = "filtering"
    FETCHING = "fetching"
    BATCHING = "batching"
    FLUSHING = "flushing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancelToken:
    """Set by the caller to stop a run; safe to set from another thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunReport:
    run_id: str
    src: str
    dest: str
    filters: List[str]
    state: RunState = RunState.LOADING
    states: List[RunState] = field(default_factory=list)
    loaded: int = 0
    selected: int = 0
    retrieved: int = 0
    errors: int = 0
    flushed: int = 0
    batches: List[int] = field(default_factory=list)
    discarded: int = 0
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def write_calls(self) -> int:
        return len(self.batches)

    @property
    def cancelled(self) -> bool:
        return self.state == RunState.CANCELLED


class RunPipeline:
    def __init__(
        self,
        connector: Connector,
        extensions: Sequence[Extension],
        config: EngineConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.connector = connector
        self.extensions = list(extensions)
        self.config = config
        self.clock = clock

    # ---------------- State & hooks ----------------

    def _enter(self, report: RunReport, ctx: RunContext, state: RunState) -> None:
        report.state = state
        report.states.append(state)
        ctx.state = state.value
        log.run_state(report.run_id, state.value)

    def _chain(self, hook: str, ctx: RunContext, items: List[RecordRef]) -> List[RecordRef]:
        for ext in self.extensions:
            out = getattr(ext, hook)(ctx, items)
            if out is not None:
                items = list(out)
        return items

    def _notify(self, hook: str, ctx: RunContext, *args: Any) -> None:
        for ext in self.extensions:
            getattr(ext, hook)(ctx, *args)

    # ---------------- Entry point ----------------

    async def run(
        self,
        src: str,
        dest: str,
        filters: Sequence[str] = (),
        cancel: Optional[CancelToken] = None,
    ) -> RunReport:
        t0 = time.perf_counter()
        report = RunReport(run_id=uuid.uuid4().hex[:8], src=src, dest=dest, filters=list(filters))
        ctx = RunContext(
            run_id=report.run_id,
            src=src,
            dest=dest,
            filters=list(filters),
            connector=self.connector,
            config=self.config,
            env_vars={},
            now_ms=epoch_ms(self.clock()),
        )
        log.run_start(report.run_id, src, dest, filters)

        try:
            self._enter(report, ctx, RunState.LOADING)
            predicates = build_filters(list(filters))
            ctx.env_vars = MappingProxyType(await asyncio.to_thread(self.connector.get_env_vars))
            self._notify("before_run", ctx)

            items = await asyncio.to_thread(self.connector.read_records, src)
            report.loaded = len(items)
            items = self._chain("after_read", ctx, items)

            self._enter(report, ctx, RunState.FILTERING)
            items = [it for it in items if apply_filters(predicates, it.values, ctx)]
            items = self._chain("after_filter", ctx, items)
            report.selected = len(items)
            log.dev(f"  {report.selected}/{report.loaded} record(s) selected")

            if items:
                cursor = await asyncio.to_thread(self.connector.open_destination, dest)
                await self._process(ctx, report, items, cursor, cancel)

            if report.state != RunState.CANCELLED:
                self._enter(report, ctx, RunState.DONE)
            await asyncio.to_thread(self._notify, "after_run", ctx, report)
        except Exception as e:
            report.error = str(e)
            self._enter(report, ctx, RunState.FAILED)
            log.run_failed(report.run_id, str(e))
            raise
        finally:
            report.elapsed = time.perf_counter() - t0

        if report.cancelled:
            log.run_cancelled(report.run_id, report.discarded)
        else:
            log.run_success(report.run_id, dest, report.retrieved, report.errors, report.elapsed)
        return report

    async def _process(
        self,
        ctx: RunContext,
        report: RunReport,
        items: List[RecordRef],
        cursor: DestinationCursor,
        cancel: Optional[CancelToken],
    ) -> None:
        size = self.config.batch_update_buffer
        semaphore = asyncio.Semaphore(self.config.fetch_concurrency)

        for start in range(0, len(items), size):
            if cancel is not None and cancel.cancelled:
                self._enter(report, ctx, RunState.CANCELLED)
                return
            chunk = items[start:start + size]

            self._enter(report, ctx, RunState.FETCHING)
            fetched = await asyncio.gather(*(self._fetch_one(ctx, it, semaphore, cancel) for it in chunk))

            self._enter(report, ctx, RunState.BATCHING)
            done = [(it, r) for it, r in zip(chunk, fetched) if r is not None]
            batch = [r for _, r in done]
            if cancel is not None and cancel.cancelled and len(batch) < size:
                report.discarded = len(batch)
                self._enter(report, ctx, RunState.CANCELLED)
                return
            for r in batch:
                if r.get("status") == RunStatus.RETRIEVED.value:
                    report.retrieved += 1
                else:
                    report.errors += 1

            self._enter(report, ctx, RunState.FLUSHING)
            await self._flush(ctx, report, cursor, [it for it, _ in done], batch)

    async def _flush(
        self,
        ctx: RunContext,
        report: RunReport,
        cursor: DestinationCursor,
        items: List[RecordRef],
        batch: List[Record],
    ) -> None:
        self._notify("before_write", ctx, tuple(MappingProxyType(dict(r)) for r in batch))
        try:
            patch = await asyncio.to_thread(self.connector.append_records, cursor, batch)
        except WriteError as e:
            e.flushed_count = report.flushed
            raise
        report.flushed += len(batch)
        report.batches.append(len(batch))
        log.batch_flush(cursor.dataset_id, len(batch), patch.start_row, patch.start_col)
        # after_write hooks may write back to the source dataset
        try:
            await asyncio.to_thread(self._notify, "after_write", ctx, patch, items)
        except WriteError as e:
            e.flushed_count = report.flushed
            raise

    # ---------------- Fetching ----------------

    async def _fetch_one(
        self,
        ctx: RunContext,
        item: RecordRef,
        semaphore: asyncio.Semaphore,
        cancel: Optional[CancelToken],
    ) -> Optional[Record]:
        async with semaphore:
            if cancel is not None and cancel.cancelled:
                return None
            try:
                request = self._build_request(ctx, item)
                for ext in self.extensions:
                    request = ext.before_fetch(ctx, item, request) or request
                response = await self._dispatch(request)
                result = _retrieved_result(item, response)
                log.fetch_result(item.index, RunStatus.RETRIEVED.value)
            except FetchError as e:
                log.fetch_failed(item.index, str(e))
                result = dict(item.values)
                result["status"] = RunStatus.ERROR.value
                result["errors"] = str(e)

        for ext in self.extensions:
            result = ext.after_fetch(ctx, item, result) or result
        return result

    def _build_request(self, ctx: RunContext, item: RecordRef) -> FetchRequest:
        url = item.values.get("url")
        if is_blank(url):
            raise FetchError("Record has no url")
        url = resolve_placeholders(str(url).strip(), ctx.env_vars)
        method = item.values.get("method")
        return FetchRequest(
            url=url,
            method=str(method).strip().upper() if not is_blank(method) else "GET",
            record=MappingProxyType(dict(item.values)),
        )

    async def _dispatch(self, request: FetchRequest) -> FetchResponse:
        attempts = self.config.fetch_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._call_fetch(request)
            except FetchError as e:
                if attempt == attempts:
                    raise
                log.debug(f"    Attempt {attempt}/{attempts} failed: {e}")
                if self.config.fetch_retry_delay:
                    await asyncio.sleep(self.config.fetch_retry_delay)
        raise FetchError("No fetch attempt made")

    async def _call_fetch(self, request: FetchRequest) -> FetchResponse:
        fetch = self.connector.api_handler.fetch
        try:
            if inspect.iscoroutinefunction(fetch):
                raw = await fetch(request)
            else:
                raw = await asyncio.to_thread(fetch, request)
                if inspect.isawaitable(raw):
                    raw = await raw
            response = FetchResponse.coerce(raw)
        except FetchError:
            raise
        except Exception as e:
            # Transport errors, timeouts and malformed responses are per-record failures
            raise FetchError(f"{type(e).__name__}: {e}") from e
        if not response.ok:
            raise FetchError(f"HTTP {response.status_code}", response.status_code)
        return response


def _flatten(payload: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in payload.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            out.update(_flatten(value, f"{name}."))
        else:
            out[name] = value
    return out


def _retrieved_result(item: RecordRef, response: FetchResponse) -> Record:
    """Source values + status + fields of the response `data` object."""
    try:
        payload = response.json()
    except ValueError as e:
        raise FetchError(f"Response body is not JSON: {e}") from e
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]

    result = dict(item.values)
    if isinstance(payload, dict):
        result.update(_flatten(payload))
    result["status"] = RunStatus.RETRIEVED.value
    return result
