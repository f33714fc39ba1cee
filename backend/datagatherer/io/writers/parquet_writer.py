from __future__ import annotations
import os
from pathlib import Path
from typing import Mapping

from datagatherer.common.utils import resolve_placeholders, safe_mkdir
from datagatherer.plugins.api import Table, Writer
from datagatherer.plugins.registry import register_writer


@register_writer
class ParquetWriter(Writer):
    """Parquet writer. Expands ${ENV}/{ENV} in 'dir' and 'name'."""
    name = "parquet"

    def can_handle(self, target: Mapping[str, object]) -> bool:
        fmt = str(target.get("format") or "").lower()
        return fmt == "parquet" or target.get("writer") == "parquet"

    def write(self, table: Table, target: Mapping[str, object], out_dir: Path) -> Path:
        env = {**os.environ, **(target.get("env") or {})}
        subdir = resolve_placeholders(str(target.get("dir") or ""), env)
        base = resolve_placeholders(str(target.get("name") or table.name or "dataset"), env)

        root = out_dir / subdir if subdir else out_dir
        safe_mkdir(root)
        path = root / f"{base}.parquet"

        compression = str(target.get("compression") or "zstd")
        table.df.write_parquet(path, compression=compression)
        return path
