from __future__ import annotations
from pathlib import Path
from typing import Any, Mapping

from datagatherer.common.logger import get_logger
from datagatherer.plugins.api import Connector, Table
from datagatherer.plugins.registry import get_writer

log = get_logger()


def export_dataset(connector: Connector, dataset_id: str, target: Mapping[str, Any], out_dir: Path) -> Path:
    """Write every record of a dataset through the matching export writer."""
    properties = connector.open_destination(dataset_id).properties
    records = [item.values for item in connector.read_records(dataset_id)]
    table = Table.from_records(dataset_id, records, properties)
    writer = get_writer(target)
    path = writer.write(table, target, out_dir)
    log.success(f"Exported {len(records)} record(s) from {dataset_id} -> {path}")
    return path
