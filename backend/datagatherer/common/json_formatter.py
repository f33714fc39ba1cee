"""
JSON-Lines formatter for structured logging output

Provides JSON-based logging for external applications (dashboards, schedulers)
that need to parse engine output.

Output format: One JSON object per line (JSON-Lines / NDJSON)
{
    "timestamp": "2025-10-25T10:30:00.123Z",
    "level": "info",
    "category": "run",
    "message": "Run Sources-1 -> Results-1",
    "data": {...}  // Optional metadata
}
"""
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class JSONLogLevel(str, Enum):
    """JSON log levels matching standard severity"""
    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class JSONLogCategory(str, Enum):
    """Log categories for semantic grouping"""
    ENGINE = "engine"
    RUN = "run"
    FETCH = "fetch"
    WRITE = "write"
    TRIGGER = "trigger"
    SYSTEM = "system"


class JSONLogger:
    """
    Structured JSON logger that outputs one JSON object per line.

    Each log entry includes:
    - timestamp: ISO 8601 format with timezone
    - level: debug, info, success, warning, error
    - category: Semantic category (engine, run, fetch, write, trigger)
    - message: Human-readable message
    - data: Optional structured metadata
    """

    def __init__(self, output_stream=None):
        self.output_stream = output_stream or sys.stdout

    def _emit(
        self,
        level: JSONLogLevel,
        category: JSONLogCategory,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "category": category.value,
            "message": message,
        }
        if data:
            entry["data"] = data

        try:
            json_line = json.dumps(entry, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            # Fall back to stderr if the payload cannot be serialized
            sys.stderr.write(f"JSON logging error: {e}\n")
            sys.stderr.write(f"Message: {message}\n")
            return
        self.output_stream.write(json_line + "\n")
        self.output_stream.flush()

    # ========== STANDARD LOG LEVELS ==========

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.DEBUG, category, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.INFO, category, message, data)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.SUCCESS, category, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.WARNING, category, message, data)

    def error(self, message: str, data: Optional[Dict[str, Any]] = None, category: JSONLogCategory = JSONLogCategory.SYSTEM) -> None:
        self._emit(JSONLogLevel.ERROR, category, message, data)

    # ========== ENGINE-SPECIFIC METHODS ==========

    def engine_start(self, helper: str, extensions: List[str]) -> None:
        self._emit(
            JSONLogLevel.DEBUG,
            JSONLogCategory.ENGINE,
            f"Engine ready: helper={helper}",
            {"helper": helper, "extensions": extensions},
        )

    def run_start(self, run_id: str, src: str, dest: str, filters: List[str]) -> None:
        self._emit(
            JSONLogLevel.INFO,
            JSONLogCategory.RUN,
            f"Run {src} -> {dest}",
            {"run_id": run_id, "src": src, "dest": dest, "filters": filters},
        )

    def run_complete(self, run_id: str, dest: str, retrieved: int, errors: int, elapsed: float) -> None:
        self._emit(
            JSONLogLevel.SUCCESS,
            JSONLogCategory.RUN,
            f"Run {run_id} completed",
            {
                "run_id": run_id,
                "dest": dest,
                "retrieved": retrieved,
                "errors": errors,
                "elapsed_seconds": round(elapsed, 2),
            },
        )

    def run_failed(self, run_id: str, error: str) -> None:
        self._emit(
            JSONLogLevel.ERROR,
            JSONLogCategory.RUN,
            f"Run {run_id} FAILED: {error}",
            {"run_id": run_id, "error": error},
        )

    def fetch_result(self, index: int, status: str, detail: str = "") -> None:
        data: Dict[str, Any] = {"index": index, "status": status}
        if detail:
            data["detail"] = detail
        self._emit(JSONLogLevel.DEBUG, JSONLogCategory.FETCH, f"Record #{index}: {status}", data)

    def batch_flush(self, dest: str, count: int, start_row: int, start_col: int) -> None:
        self._emit(
            JSONLogLevel.DEBUG,
            JSONLogCategory.WRITE,
            f"Flushed {count} result(s) -> {dest}",
            {"dest": dest, "count": count, "start_row": start_row, "start_col": start_col},
        )

    def trigger(self, name: str, trigger_id: str, created: bool) -> None:
        self._emit(
            JSONLogLevel.INFO,
            JSONLogCategory.TRIGGER,
            f"Trigger {'created' if created else 'exists'}: {name}",
            {"name": name, "trigger_id": trigger_id, "created": created},
        )
