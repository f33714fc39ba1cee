from __future__ import annotations
from dataclasses import dataclass
from importlib import import_module
from importlib.metadata import entry_points
from typing import Any, Dict, List, Mapping, Tuple, Type

from datagatherer.common.errors import ConfigurationError
from datagatherer.common.logger import get_logger
from .api import Connector, Extension, Filter, Writer

log = get_logger()

# Registries
CONNECTORS: Dict[str, Type[Connector]] = {}
EXTENSIONS: Dict[str, Type[Extension]] = {}
FILTERS: Dict[str, Type[Filter]] = {}
WRITERS: Dict[str, Type[Writer]] = {}


# ---------------- Registration decorators ----------------
def register_connector(cls: Type[Connector]):
    """Decorator used by built-in and external connectors (the `helper` id)."""
    CONNECTORS[cls.name] = cls
    return cls


def register_extension(cls: Type[Extension]):
    """Decorator for extensions listed under `extensions`."""
    EXTENSIONS[cls.name] = cls
    return cls


def register_filter(cls: Type[Filter]):
    """Decorator for named run filters."""
    FILTERS[cls.name] = cls
    return cls


def register_writer(cls: Type[Writer]):
    """Decorator for export writers (CSV/JSON/Parquet, etc.)."""
    WRITERS[cls.name] = cls
    return cls


# ---------------- Entry point discovery ----------------
def _discover_entrypoints(group: str):
    """Allow third-party packages to register plugins via entry points."""
    for ep in entry_points().select(group=group):
        try:
            ep.load()  # importing triggers @register_* in the module
        except Exception as e:
            log.warning(f"Plugin '{ep.name}' ({group}) failed to load: {e}")


# ---------------- Bootstrap built-ins + third-party ----------------
_BOOTSTRAPPED = False


def bootstrap_discovery() -> None:
    """Import built-ins and discover external plugins (once per process)."""
    global _BOOTSTRAPPED
    if _BOOTSTRAPPED:
        return
    builtin_modules = [
        # Connectors
        "datagatherer.connectors.sheets_connector",
        # Extensions
        "datagatherer.extensions.recurring",
        "datagatherer.extensions.timestamp",
        # Filters
        "datagatherer.proc.filters",
        # Export writers
        "datagatherer.io.writers.csv_writer",
        "datagatherer.io.writers.json_writer",
        "datagatherer.io.writers.parquet_writer",
    ]
    for mod in builtin_modules:
        import_module(mod)

    _discover_entrypoints("datagatherer.connectors")
    _discover_entrypoints("datagatherer.extensions")
    _discover_entrypoints("datagatherer.filters")
    _discover_entrypoints("datagatherer.writers")
    _BOOTSTRAPPED = True


# ---------------- Resolution ----------------
@dataclass(frozen=True)
class Registration:
    """Capabilities resolved for one engine instance."""
    connector: Type[Connector]
    extensions: Tuple[Type[Extension], ...]


def resolve(helper: str, extension_ids: List[str]) -> Registration:
    """Resolve the helper and every extension id, failing on the first unknown one."""
    bootstrap_discovery()
    connector = CONNECTORS.get(helper)
    if connector is None:
        raise ConfigurationError(
            f"Unknown helper '{helper}'. Available: {', '.join(sorted(CONNECTORS)) or '(none)'}"
        )
    resolved = []
    for ext_id in extension_ids:
        ext = EXTENSIONS.get(ext_id)
        if ext is None:
            raise ConfigurationError(
                f"Unknown extension '{ext_id}'. Available: {', '.join(sorted(EXTENSIONS)) or '(none)'}"
            )
        resolved.append(ext)
    return Registration(connector=connector, extensions=tuple(resolved))


def get_filter(name: str) -> Filter:
    bootstrap_discovery()
    if name not in FILTERS:
        raise ConfigurationError(f"Unknown filter '{name}'. Available: {', '.join(sorted(FILTERS))}")
    return FILTERS[name]()


def get_writer(target: Mapping[str, Any]) -> Writer:
    """Pick an export writer by 'writer'/'format' name or first can_handle()."""
    bootstrap_discovery()
    name = (str(target.get("writer") or target.get("format") or "")).strip().lower()
    if name in WRITERS:
        return WRITERS[name]()  # type: ignore[call-arg]
    for cls in WRITERS.values():
        inst = cls()
        if inst.can_handle(target):
            return inst
    raise ConfigurationError(f"No writer plugin found for target: {target!r}")
