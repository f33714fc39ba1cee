from __future__ import annotations
from typing import Any, Dict, Optional, Sequence

from datagatherer.common.config_models import FREQUENCY_IN_MINUTES
from datagatherer.common.logger import get_logger
from datagatherer.core.schema_mapper import RangePatch, Record
from datagatherer.plugins.api import Extension, RecordRef, RunContext
from datagatherer.plugins.registry import register_extension
from datagatherer.proc.filters import FREQUENCY_PROP, NEXT_TRIGGER_PROP, parse_frequency

log = get_logger()


def next_trigger_timestamp(frequency: Any, now_ms: int) -> Optional[int]:
    freq = parse_frequency(frequency)
    if freq is None:
        return None
    return now_ms + FREQUENCY_IN_MINUTES[freq] * 60 * 1000


@register_extension
class RecurringExtension(Extension):
    """
    Keeps `recurring.nextTriggerTimestamp` of source records up to date.

    - after each committed batch, every record in it with a frequency is
      pushed one interval past the run start; records whose results were
      never written keep their due time
    - on edit, the timestamp is recomputed from the new frequency, or
      cleared when the frequency was removed
    """
    name = "recurring"

    def after_write(self, ctx: RunContext, patch: RangePatch, items: Sequence[RecordRef]) -> None:
        updates: Dict[int, Record] = {}
        for item in items:
            next_ts = next_trigger_timestamp(item.values.get(FREQUENCY_PROP), ctx.now_ms)
            if next_ts is not None:
                updates[item.index] = {NEXT_TRIGGER_PROP: next_ts}
        if updates:
            ctx.connector.update_records(ctx.src, updates)
            log.dev(f"  Rescheduled {len(updates)} recurring record(s) in {ctx.src}")

    def on_edit(self, ctx: RunContext, item: RecordRef) -> Optional[Record]:
        next_ts = next_trigger_timestamp(item.values.get(FREQUENCY_PROP), ctx.now_ms)
        return {NEXT_TRIGGER_PROP: "" if next_ts is None else next_ts}
