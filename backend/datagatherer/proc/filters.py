from __future__ import annotations
import re
from typing import Any, List, Mapping, Optional, Sequence

from datagatherer.common.config_models import Frequency
from datagatherer.common.errors import ConfigurationError
from datagatherer.common.utils import is_blank, is_truthy
from datagatherer.plugins.api import Filter, RunContext
from datagatherer.plugins.registry import get_filter, register_filter

FREQUENCY_PROP = "recurring.frequency"
NEXT_TRIGGER_PROP = "recurring.nextTriggerTimestamp"

# prop=value | prop!=value | !prop
_EXPR = re.compile(r"^\s*(?P<prop>[^=!]+?)\s*(?P<op>!=|=)\s*(?P<value>.*?)\s*$")
_NEGATED = re.compile(r"^\s*!\s*(?P<prop>\S.*?)\s*$")


def parse_frequency(value: Any) -> Optional[Frequency]:
    if is_blank(value):
        return None
    text = str(value).strip().lower()
    for freq in Frequency:
        if freq.value.lower() == text:
            return freq
    return None


def parse_timestamp(value: Any) -> Optional[int]:
    if is_blank(value) or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


@register_filter
class SelectedFilter(Filter):
    """Keeps records whose `selected` cell is checked."""
    name = "selected"

    def matches(self, record: Mapping[str, Any], ctx: RunContext) -> bool:
        return is_truthy(record.get("selected"))


@register_filter
class RecurringDueFilter(Filter):
    """
    Keeps recurring records that are due: a known `recurring.frequency` and
    a `recurring.nextTriggerTimestamp` that is empty or not in the future.
    """
    name = "recurring"

    def matches(self, record: Mapping[str, Any], ctx: RunContext) -> bool:
        if parse_frequency(record.get(FREQUENCY_PROP)) is None:
            return False
        next_ts = parse_timestamp(record.get(NEXT_TRIGGER_PROP))
        return next_ts is None or next_ts <= ctx.now_ms


class PropertyFilter(Filter):
    """Inline expression filter built from `prop=value`, `prop!=value` or `!prop`."""
    name = "property"

    def __init__(self, prop: str, op: str, value: Any = None):
        self.prop = prop
        self.op = op
        self.value = value

    def matches(self, record: Mapping[str, Any], ctx: RunContext) -> bool:
        cell = record.get(self.prop)
        if self.op == "not":
            return not is_truthy(cell)
        equal = _text(cell) == _text(self.value)
        return equal if self.op == "=" else not equal

    def __repr__(self) -> str:
        return f"PropertyFilter({self.prop!r} {self.op} {self.value!r})"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower()


def build_filter(spec: str) -> Filter:
    """Named filter, or an inline expression."""
    neg = _NEGATED.match(spec)
    if neg and "=" not in spec:
        return PropertyFilter(neg.group("prop"), "not")
    expr = _EXPR.match(spec)
    if expr:
        return PropertyFilter(expr.group("prop"), expr.group("op"), expr.group("value"))
    if not spec.strip():
        raise ConfigurationError("Empty filter name")
    return get_filter(spec.strip())


def build_filters(specs: Sequence[str]) -> List[Filter]:
    return [build_filter(s) for s in specs]


def apply_filters(filters: Sequence[Filter], record: Mapping[str, Any], ctx: RunContext) -> bool:
    """Logical AND across all filters."""
    return all(f.matches(record, ctx) for f in filters)
