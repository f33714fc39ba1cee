from __future__ import annotations
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TYPE_CHECKING
import polars as pl

from datagatherer.core.schema_mapper import DestinationCursor, RangePatch, Record

if TYPE_CHECKING:
    from datagatherer.common.config_models import EngineConfig, HelperConfig, TabConfig


# ---------------- External collaborators ----------------
class TabularStore(ABC):
    """Host store exposing 2-D cell ranges per named dataset."""

    @abstractmethod
    def read_range(self, dataset_id: str) -> List[List[Any]]:
        """Full snapshot of a dataset, row-major. Raises KeyError if unknown."""
        ...

    @abstractmethod
    def write_range(self, dataset_id: str, start_row: int, start_col: int, values: Sequence[Sequence[Any]]) -> None:
        """Write a block anchored at a 1-based cell. Atomic w.r.t. reads."""
        ...

    @abstractmethod
    def get_dataset_id(self) -> str:
        """Id of the workbook/store itself."""
        ...


class TriggerService(ABC):
    """Scheduler that owns recurring and event-bound triggers."""

    @abstractmethod
    def create_trigger(self, name: str, handler_name: str) -> str:
        ...

    @abstractmethod
    def delete_trigger(self, trigger_id: str) -> None:
        ...

    def has_trigger(self, trigger_id: str) -> bool:
        """Whether a stored id is still live. Services that cannot tell say yes."""
        return True


@dataclass
class FetchRequest:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    body: Optional[str] = None
    timeout: Optional[float] = None
    record: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class FetchResponse:
    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None

    @classmethod
    def coerce(cls, obj: Any) -> "FetchResponse":
        """Accept FetchResponse or a {statusCode|status_code, body} mapping."""
        if isinstance(obj, FetchResponse):
            return obj
        if isinstance(obj, Mapping):
            code = obj.get("statusCode", obj.get("status_code"))
            if code is None:
                raise TypeError(f"Fetch response has no status code: {obj!r}")
            body = obj.get("body", "")
            if not isinstance(body, str):
                body = json.dumps(body)
            return cls(status_code=int(code), body=body)
        raise TypeError(f"Unsupported fetch response: {type(obj).__name__}")


class ApiHandler(ABC):
    """Fetch capability. Timeouts are the handler's responsibility."""

    @abstractmethod
    def fetch(self, request: FetchRequest) -> FetchResponse | Mapping[str, Any]:
        ...


# ---------------- Engine-side plugin contracts ----------------
@dataclass(frozen=True)
class RecordRef:
    """A record plus its 0-based position in its dataset."""
    index: int
    values: Record


@dataclass
class RunContext:
    """What hooks and filters may see about the current run."""
    run_id: str
    src: str
    dest: str
    filters: List[str]
    connector: "Connector"
    config: "EngineConfig"
    env_vars: Mapping[str, Any]
    now_ms: int
    state: str = "loading"


class Connector(ABC):
    """Primary capability: dataset plumbing, host init, fetch."""
    name: str

    def __init__(
        self,
        settings: "HelperConfig",
        store: TabularStore,
        trigger_service: Optional[TriggerService],
        api_handler: ApiHandler,
        clock: Callable[[], float],
    ):
        self.settings = settings
        self.store = store
        self.trigger_service = trigger_service
        self.api_handler = api_handler
        self.clock = clock

    @abstractmethod
    def init(self) -> Dict[str, Any]:
        """Idempotent environment setup (triggers, init timestamp)."""
        ...

    @abstractmethod
    def tab_config(self, dataset_id: str) -> "TabConfig":
        ...

    @abstractmethod
    def read_records(self, dataset_id: str) -> List[RecordRef]:
        ...

    @abstractmethod
    def open_destination(self, dataset_id: str) -> DestinationCursor:
        ...

    @abstractmethod
    def append_records(self, cursor: DestinationCursor, records: Sequence[Mapping[str, Any]]) -> RangePatch:
        """Append in exactly one write call and advance the cursor."""
        ...

    @abstractmethod
    def update_record(self, dataset_id: str, index: int, values: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def update_records(self, dataset_id: str, updates: Mapping[int, Mapping[str, Any]]) -> int:
        """Rewrite several records in place from one snapshot. Returns the number of write calls."""
        ...

    @abstractmethod
    def get_env_vars(self) -> Dict[str, Any]:
        ...


class Extension(ABC):
    """
    Optional hooks around the run stages, called in configuration order.
    Hooks returning None leave the value untouched.
    """
    name: str

    def before_run(self, ctx: RunContext) -> None:
        return None

    def after_read(self, ctx: RunContext, items: List[RecordRef]) -> Optional[List[RecordRef]]:
        return None

    def after_filter(self, ctx: RunContext, items: List[RecordRef]) -> Optional[List[RecordRef]]:
        return None

    def before_fetch(self, ctx: RunContext, item: RecordRef, request: FetchRequest) -> Optional[FetchRequest]:
        return None

    def after_fetch(self, ctx: RunContext, item: RecordRef, result: Record) -> Optional[Record]:
        return None

    def before_write(self, ctx: RunContext, batch: Sequence[MappingProxyType]) -> None:
        return None

    def after_write(self, ctx: RunContext, patch: RangePatch, items: Sequence[RecordRef]) -> None:
        """Called once per committed batch with the source records it holds."""
        return None

    def after_run(self, ctx: RunContext, report: Any) -> None:
        return None

    def on_edit(self, ctx: RunContext, item: RecordRef) -> Optional[Record]:
        return None


class Filter(ABC):
    """Named, pure, synchronous predicate over a record."""
    name: str

    @abstractmethod
    def matches(self, record: Mapping[str, Any], ctx: RunContext) -> bool:
        ...


# ---------------- Export ----------------
@dataclass
class Table:
    """A dataset's records as a polars frame."""
    name: str
    df: pl.DataFrame
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_records(cls, name: str, records: Sequence[Mapping[str, Any]], properties: Sequence[str]) -> "Table":
        columns = {
            p: [None if r.get(p) in (None, "") else str(r.get(p)) for r in records]
            for p in properties
        }
        df = pl.DataFrame(columns, schema={p: pl.Utf8 for p in properties})
        return cls(name=name, df=df, meta={"records": len(records)})


class Writer(ABC):
    """Writes a single Table to a destination file."""
    name: str

    @abstractmethod
    def can_handle(self, target: Mapping[str, Any]) -> bool:
        ...

    @abstractmethod
    def write(self, table: Table, target: Mapping[str, Any], out_dir: Path) -> Path:
        ...
