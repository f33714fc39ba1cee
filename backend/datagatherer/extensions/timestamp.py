from __future__ import annotations
from typing import Optional

from datagatherer.core.schema_mapper import Record
from datagatherer.plugins.api import Extension, RecordRef, RunContext
from datagatherer.plugins.registry import register_extension


@register_extension
class TimestampExtension(Extension):
    """Stamps each run result with the run's start time (epoch ms) in `timestamp`."""
    name = "timestamp"

    def after_fetch(self, ctx: RunContext, item: RecordRef, result: Record) -> Optional[Record]:
        stamped = dict(result)
        stamped["timestamp"] = ctx.now_ms
        return stamped
