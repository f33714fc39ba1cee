"""
Logging module for the engine with quiet/user/dev/debug modes

Quiet mode: Only warnings and errors
User mode: Clean, simple logging showing only important steps
Dev mode: Detailed logging for debugging (record counts, batch positions, hook dispatch)
Debug mode: Very verbose (per-record fetch details, cell ranges)
JSON mode: Structured JSON-Lines output for external integrations
"""
from __future__ import annotations

import sys
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional


class LogLevel(Enum):
    """Logging levels"""
    QUIET = "quiet"    # Warnings and errors only
    USER = "user"      # Simple, clean logging for end users
    DEV = "dev"        # Detailed logging for developers
    DEBUG = "debug"    # Very verbose logging


class LogFormat(Enum):
    """Log output formats"""
    TEXT = "text"      # Human-readable text with colors
    JSON = "json"      # Structured JSON-Lines format


class Logger:
    """Engine logger with configurable verbosity and output format"""

    def __init__(self, level: LogLevel = LogLevel.USER, format: LogFormat = LogFormat.TEXT):
        self.level = level
        self.format = format
        self._colors_enabled = sys.stdout.isatty() and format == LogFormat.TEXT
        self._json_logger = None

        if format == LogFormat.JSON:
            from datagatherer.common.json_formatter import JSONLogger
            self._json_logger = JSONLogger()

    def _timestamp(self) -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def _format_message(self, msg: str, prefix: str = "", color: str = "") -> str:
        ts = self._timestamp()
        if self._colors_enabled and color:
            return f"{color}[{ts}]{prefix} {msg}\033[0m"
        return f"[{ts}]{prefix} {msg}"

    @property
    def _quiet(self) -> bool:
        return self.level == LogLevel.QUIET

    # ========== USER-LEVEL LOGGING (hidden in quiet mode) ==========

    def info(self, msg: str) -> None:
        """Info message"""
        if self._quiet:
            return
        if self.format == LogFormat.JSON:
            self._json_logger.info(msg)
        else:
            print(self._format_message(msg, color="\033[36m"))  # Cyan

    def success(self, msg: str) -> None:
        """Success message"""
        if self._quiet:
            return
        if self.format == LogFormat.JSON:
            self._json_logger.success(msg)
        else:
            print(self._format_message(msg, prefix=" [OK]", color="\033[32m"))  # Green

    # ========== ALWAYS SHOWN ==========

    def warning(self, msg: str) -> None:
        """Warning message (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.warning(msg)
        else:
            print(self._format_message(msg, prefix=" [WARN]", color="\033[33m"))  # Yellow

    def error(self, msg: str) -> None:
        """Error message (shown in all modes)"""
        if self.format == LogFormat.JSON:
            self._json_logger.error(msg)
        else:
            print(self._format_message(msg, prefix=" [ERROR]", color="\033[31m"))  # Red

    # ========== DEV-LEVEL LOGGING (Shown in dev/debug modes) ==========

    def dev(self, msg: str) -> None:
        """Development message (shown only in dev/debug mode)"""
        if self.level in (LogLevel.DEV, LogLevel.DEBUG):
            if self.format == LogFormat.JSON:
                self._json_logger.debug(msg)
            else:
                print(self._format_message(msg, prefix=" [DEV]", color="\033[90m"))  # Gray

    def dev_detail(self, label: str, value: Any) -> None:
        """Development detail (shown only in dev/debug mode)"""
        if self.level in (LogLevel.DEV, LogLevel.DEBUG):
            if self.format == LogFormat.JSON:
                self._json_logger.debug(f"{label}: {value}", data={"label": label, "value": str(value)})
            else:
                print(self._format_message(f"{label}: {value}", prefix=" [DEV]", color="\033[90m"))

    # ========== DEBUG-LEVEL LOGGING (Shown only in debug mode) ==========

    def debug(self, msg: str) -> None:
        """Debug message (shown only in debug mode)"""
        if self.level == LogLevel.DEBUG:
            if self.format == LogFormat.JSON:
                self._json_logger.debug(msg)
            else:
                print(self._format_message(msg, prefix=" [DEBUG]", color="\033[90m"))

    # ========== ENGINE LOGGING ==========

    def engine_start(self, helper: str, extensions: Iterable[str]) -> None:
        """Log engine construction"""
        exts = list(extensions)
        if self.format == LogFormat.JSON:
            self._json_logger.engine_start(helper, exts)
            return
        self.dev(f"Engine ready: helper={helper}")
        self.dev_detail("  Extensions", ", ".join(exts) or "(none)")

    # ========== RUN LOGGING ==========

    def run_start(self, run_id: str, src: str, dest: str, filters: Iterable[str]) -> None:
        """Log run start"""
        flt = list(filters)
        if self.format == LogFormat.JSON:
            if not self._quiet:
                self._json_logger.run_start(run_id, src, dest, flt)
        elif self.level == LogLevel.USER:
            self.info(f"Run {src} -> {dest}")
        else:
            self.info(f"Run {run_id}: {src} -> {dest}")
            self.dev_detail("  Filters", ", ".join(flt) or "(none)")

    def run_state(self, run_id: str, state: str) -> None:
        """Log a run state transition"""
        self.debug(f"  [{run_id}] state -> {state}")

    def fetch_result(self, index: int, status: str, detail: str = "") -> None:
        """Log the outcome of one fetch"""
        msg = f"    Record #{index}: {status}"
        if detail:
            msg += f" ({detail})"
        if self.format == LogFormat.JSON:
            if self.level == LogLevel.DEBUG:
                self._json_logger.fetch_result(index, status, detail)
        else:
            self.debug(msg)

    def fetch_failed(self, index: int, error: str) -> None:
        """Log a recorded (non-fatal) fetch failure"""
        if self.level == LogLevel.USER or self._quiet:
            self.dev(f"    Record #{index} failed: {error}")
        else:
            self.warning(f"Record #{index} failed: {error}")

    def batch_flush(self, dest: str, count: int, start_row: int, start_col: int) -> None:
        """Log a batch write"""
        if self.format == LogFormat.JSON:
            if self.level in (LogLevel.DEV, LogLevel.DEBUG):
                self._json_logger.batch_flush(dest, count, start_row, start_col)
            return
        self.dev(f"  Flushed {count} result(s) -> {dest} at R{start_row}C{start_col}")

    def run_success(self, run_id: str, dest: str, retrieved: int, errors: int, elapsed: float) -> None:
        """Log run success"""
        if self.format == LogFormat.JSON:
            if not self._quiet:
                self._json_logger.run_complete(run_id, dest, retrieved, errors, elapsed)
        elif self.level == LogLevel.USER:
            self.success(f"{retrieved + errors} result(s) -> {dest}")
        else:
            self.success(f"Run {run_id}: {retrieved} retrieved, {errors} error(s) -> {dest} in {elapsed:.2f}s")

    def run_failed(self, run_id: str, error: str) -> None:
        """Log run failure"""
        if self.format == LogFormat.JSON:
            self._json_logger.run_failed(run_id, error)
        else:
            self.error(f"Run {run_id} FAILED: {error}")

    def run_cancelled(self, run_id: str, discarded: int) -> None:
        """Log run cancellation"""
        msg = f"Run {run_id} cancelled"
        if discarded:
            msg += f" ({discarded} pending result(s) discarded)"
        self.warning(msg)

    # ========== TRIGGER LOGGING ==========

    def trigger_created(self, name: str, trigger_id: str) -> None:
        """Log trigger creation"""
        if self.format == LogFormat.JSON:
            if not self._quiet:
                self._json_logger.trigger(name, trigger_id, created=True)
        else:
            self.info(f"Trigger created: {name} ({trigger_id})")

    def trigger_reused(self, name: str, trigger_id: str) -> None:
        """Log trigger reuse"""
        self.dev(f"  Trigger exists: {name} ({trigger_id})")

    def init_recorded(self, timestamp: int) -> None:
        """Log init timestamp"""
        self.dev_detail("  Last init timestamp", timestamp)


# Global logger instance
_logger: Optional[Logger] = None


def get_logger() -> Logger:
    """Get the global logger instance"""
    global _logger
    if _logger is None:
        _logger = Logger(LogLevel.USER)
    return _logger


def set_log_level(level: LogLevel | str) -> None:
    """Set the global log level"""
    global _logger
    if isinstance(level, str):
        level = LogLevel(level.lower())
    # Mutate the existing instance so module-level `log` references see it
    if _logger is None:
        _logger = Logger(level)
    else:
        _logger.level = level


def init_logger(level: LogLevel | str = LogLevel.USER, format: LogFormat | str = LogFormat.TEXT) -> Logger:
    """Initialize and return the global logger"""
    global _logger
    if isinstance(level, str):
        level = LogLevel(level.lower())
    if isinstance(format, str):
        format = LogFormat(format.lower())

    if _logger is None:
        _logger = Logger(level, format)
    else:
        _logger.__init__(level, format)
    return _logger
