from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

__all__ = [
    "epoch_ms",
    "is_blank",
    "is_truthy",
    "load_yaml",
    "safe_mkdir",
    "resolve_placeholders",
]

_TRUTHY = {"true", "yes", "y", "x", "1", "on"}


def epoch_ms(seconds: float) -> int:
    return int(round(seconds * 1000))

def is_blank(value: Any) -> bool:
    """A cell is blank when it is None or a whitespace-only string."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False

def is_truthy(value: Any) -> bool:
    """Spreadsheet-style truthiness: TRUE checkboxes, 'yes', 'x', 1."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False

def safe_mkdir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)

def load_yaml(fp: Path) -> Dict[str, Any]:
    return yaml.safe_load(fp.read_text(encoding="utf-8"))

def resolve_placeholders(s: Optional[str], variables: Mapping[str, Any]) -> str:
    """Support {VAR}, ${VAR}, and $VAR placeholders."""
    if s is None:
        return ""
    def repl(m):
        return str(variables.get(m.group(1), m.group(0)))
    s = re.sub(r"\$\{([A-Za-z0-9_]+)\}", repl, s)
    s = re.sub(r"\{([A-Za-z0-9_]+)\}", repl, s)
    s = re.sub(r"\$([A-Za-z0-9_]+)", repl, s)
    return s
