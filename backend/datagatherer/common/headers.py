from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence

from datagatherer.common.errors import ConfigurationError
from datagatherer.common.utils import is_blank

__all__ = [
    "norm_header",
    "trim_trailing_blanks",
    "header_properties",
    "find_duplicate_headers",
]

def norm_header(s: Any) -> str:
    s = str(s if s is not None else "").strip()
    s = re.sub(r"\s+", " ", s)
    return s.lower()

def trim_trailing_blanks(values: Sequence[Any]) -> List[Any]:
    out = list(values)
    while out and is_blank(out[-1]):
        out.pop()
    return out

def find_duplicate_headers(headers: Sequence[Optional[str]]) -> List[str]:
    seen: Dict[str, int] = {}
    dups: List[str] = []
    for h in headers:
        if h is None:
            continue
        k = norm_header(h)
        seen[k] = seen.get(k, 0) + 1
        if seen[k] == 2:
            dups.append(str(h))
    return dups

def header_properties(line: Sequence[Any], skip_cells: int, dataset_id: str = "") -> List[Optional[str]]:
    """
    Property names of a header line, one slot per data cell.
    Blank slots are None (the cell is not mapped to any property).
    """
    cells = trim_trailing_blanks(line[skip_cells:])
    props: List[Optional[str]] = [None if is_blank(c) else str(c).strip() for c in cells]
    dups = find_duplicate_headers(props)
    if dups:
        where = f" in '{dataset_id}'" if dataset_id else ""
        raise ConfigurationError(f"Duplicate property names{where}: {', '.join(dups)}")
    return props
