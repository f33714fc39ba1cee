"""
Tests for run filters, recurring scheduling and on-edit handling.
"""
import pytest

from conftest import NOW, make_config, run
from datagatherer.common.errors import ConfigurationError
from datagatherer.core.engine import DataGatherer
from datagatherer.extensions.recurring import next_trigger_timestamp
from datagatherer.plugins.api import RunContext
from datagatherer.proc.filters import (
    PropertyFilter,
    RecurringDueFilter,
    SelectedFilter,
    apply_filters,
    build_filter,
    build_filters,
)

NOW_MS = int(NOW * 1000)
DAY_MS = 24 * 60 * 60 * 1000
FREQ_COL, NEXT_COL = 3, 4


@pytest.fixture
def ctx():
    return RunContext(
        run_id="t", src="Sources-1", dest="Results-1", filters=[],
        connector=None, config=None, env_vars={}, now_ms=NOW_MS,
    )


@pytest.fixture
def recurring_engine(store, triggers, handler):
    return DataGatherer(
        make_config(extensions=["recurring", "timestamp"]),
        store=store,
        trigger_service=triggers,
        api_handler=handler,
        clock=lambda: NOW,
    )


class TestFilters:
    @pytest.mark.parametrize("value,expected", [
        (True, True), ("TRUE", True), ("x", True), (1, True),
        (False, False), ("", False), ("no", False), (None, False),
    ])
    def test_selected(self, ctx, value, expected):
        assert SelectedFilter().matches({"selected": value}, ctx) is expected

    def test_recurring_due_when_never_run(self, ctx):
        assert RecurringDueFilter().matches({"recurring.frequency": "Daily"}, ctx)

    def test_recurring_not_due_in_future(self, ctx):
        record = {"recurring.frequency": "daily", "recurring.nextTriggerTimestamp": NOW_MS + 1}
        assert not RecurringDueFilter().matches(record, ctx)

    def test_recurring_needs_known_frequency(self, ctx):
        assert not RecurringDueFilter().matches({"recurring.frequency": "Hourly"}, ctx)

    def test_expressions(self, ctx):
        assert isinstance(build_filter("label=Google"), PropertyFilter)
        assert build_filter("label=google").matches({"label": "Google"}, ctx)
        assert build_filter("status!=Error").matches({"status": "Retrieved"}, ctx)
        assert build_filter("!selected").matches({"selected": False}, ctx)
        assert build_filter("id=1").matches({"id": 1.0}, ctx)

    def test_filters_are_anded(self, ctx):
        filters = build_filters(["selected", "label=Google"])
        assert apply_filters(filters, {"selected": True, "label": "Google"}, ctx)
        assert not apply_filters(filters, {"selected": True, "label": "Other"}, ctx)

    def test_empty_filter_name(self):
        with pytest.raises(ConfigurationError):
            build_filter("  ")


class TestRecurringRuns:
    def test_next_trigger_timestamp(self):
        assert next_trigger_timestamp("Weekly", 0) == 7 * DAY_MS
        assert next_trigger_timestamp("Test", 0) == 60 * 1000
        assert next_trigger_timestamp("", 0) is None

    def test_only_due_records_run_and_get_rescheduled(self, recurring_engine, store):
        sources = store.datasets["Sources-1"]
        sources[3][FREQ_COL] = "Daily"
        sources[4][FREQ_COL] = "Weekly"
        sources[4][NEXT_COL] = NOW_MS + DAY_MS

        report = run(recurring_engine.submit_recurring_sources("Sources-1", "Results-1"))

        assert report.selected == 1
        assert sources[3][NEXT_COL] == NOW_MS + DAY_MS
        assert sources[4][NEXT_COL] == NOW_MS + DAY_MS
        results = store.datasets["Results-1"]
        assert results[3][4] == "google.com"
        assert results[3][2] == NOW_MS

    def test_rescheduled_records_are_not_due_again(self, recurring_engine, store):
        store.datasets["Sources-1"][3][FREQ_COL] = "Daily"
        run(recurring_engine.submit_recurring_sources("Sources-1", "Results-1"))
        report = run(recurring_engine.submit_recurring_sources("Sources-1", "Results-1"))
        assert report.selected == 0
        assert len(store.datasets["Results-1"]) == 4

    def test_non_recurring_run_reschedules_recurring_records(self, recurring_engine, store):
        store.datasets["Sources-1"][5][FREQ_COL] = "Test"
        run(recurring_engine.run("Sources-1", "Results-1", ["selected"]))
        assert store.datasets["Sources-1"][5][NEXT_COL] == NOW_MS + 60 * 1000
        assert store.datasets["Sources-1"][3][NEXT_COL] == ""


class TestOnEdit:
    def test_frequency_set(self, recurring_engine, store):
        store.datasets["Sources-1"][4][FREQ_COL] = "Biweekly"
        updates = recurring_engine.on_edit("Sources-1", 1)
        assert updates == {"recurring.nextTriggerTimestamp": NOW_MS + 14 * DAY_MS}
        assert store.datasets["Sources-1"][4][NEXT_COL] == NOW_MS + 14 * DAY_MS

    def test_frequency_cleared(self, recurring_engine, store):
        store.datasets["Sources-1"][4][NEXT_COL] = 123
        recurring_engine.on_edit("Sources-1", 1)
        assert store.datasets["Sources-1"][4][NEXT_COL] == ""

    def test_other_cells_untouched(self, recurring_engine, store):
        store.datasets["Sources-1"][3][FREQ_COL] = "Monthly"
        before = list(store.datasets["Sources-1"][3])
        recurring_engine.on_edit("Sources-1", 0)
        after = store.datasets["Sources-1"][3]
        assert after[:NEXT_COL] == before[:NEXT_COL]
        assert after[NEXT_COL + 1:] == before[NEXT_COL + 1:]

    def test_unknown_index(self, recurring_engine):
        with pytest.raises(ConfigurationError):
            recurring_engine.on_edit("Sources-1", 10)

    def test_without_extensions_nothing_changes(self, engine, store):
        assert engine.on_edit("Sources-1", 0) == {}
        assert store.writes == []
