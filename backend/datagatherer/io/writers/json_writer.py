from __future__ import annotations
import json
import os
from pathlib import Path
from typing import Mapping

from datagatherer.common.utils import resolve_placeholders, safe_mkdir
from datagatherer.plugins.api import Table, Writer
from datagatherer.plugins.registry import register_writer


@register_writer
class JSONWriter(Writer):
    """
    JSON writer. Expands ${ENV}/{ENV} in 'dir' and 'name'.

    Target options:
      - orient: "records" (default), "columns" or "lines" (one object per line)
      - indent (int): default 2, ignored for "lines"
      - ensure_ascii (bool): default False
    """
    name = "json"

    def can_handle(self, target: Mapping[str, object]) -> bool:
        fmt = str(target.get("format") or "").lower()
        return fmt in ("json", "jsonl") or target.get("writer") == "json"

    def write(self, table: Table, target: Mapping[str, object], out_dir: Path) -> Path:
        env = {**os.environ, **(target.get("env") or {})}
        subdir = resolve_placeholders(str(target.get("dir") or ""), env)
        base = resolve_placeholders(str(target.get("name") or table.name or "dataset"), env)

        root = out_dir / subdir if subdir else out_dir
        safe_mkdir(root)

        fmt = str(target.get("format") or "").lower()
        orient = str(target.get("orient") or ("lines" if fmt == "jsonl" else "records"))
        ensure_ascii = bool(target.get("ensure_ascii", False))

        if orient == "lines":
            path = root / f"{base}.jsonl"
            with open(path, "w", encoding="utf-8") as f:
                for rec in table.df.iter_rows(named=True):
                    f.write(json.dumps(rec, ensure_ascii=ensure_ascii))
                    f.write("\n")
            return path

        path = root / f"{base}.json"
        if orient == "columns":
            payload = {c: table.df[c].to_list() for c in table.df.columns}
        else:
            payload = list(table.df.iter_rows(named=True))
        indent = target.get("indent", 2)
        path.write_text(json.dumps(payload, ensure_ascii=ensure_ascii, indent=indent), encoding="utf-8")
        return path
