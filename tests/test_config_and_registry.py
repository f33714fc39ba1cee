"""
Tests for configuration validation and capability resolution.
"""
import pytest

from conftest import make_config
from datagatherer.common.config_models import (
    DataAxis,
    TabConfig,
    config_to_dict,
    load_and_validate_config,
    load_engine_config,
)
from datagatherer.common.errors import ConfigurationError
from datagatherer.core.engine import DataGatherer
from datagatherer.plugins.api import Extension
from datagatherer.plugins.registry import EXTENSIONS, get_filter, register_extension, resolve


class TestEngineConfig:
    def test_camel_case_fields(self):
        cfg = load_engine_config(make_config(batchUpdateBuffer=25, fetchConcurrency=3))
        assert cfg.batch_update_buffer == 25
        assert cfg.fetch_concurrency == 3
        settings = cfg.helper_settings()
        assert settings.system_tab_id == "System"
        assert settings.tabs["Settings"].data_axis == DataAxis.COLUMN

    def test_batch_buffer_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            load_engine_config(make_config(batchUpdateBuffer=0))

    def test_missing_helper_section(self):
        raw = make_config()
        del raw["sheets"]
        with pytest.raises(ConfigurationError, match="sheets"):
            load_engine_config(raw)

    def test_reserved_tab_needs_layout(self):
        raw = make_config()
        del raw["sheets"]["tabs"]["System"]
        with pytest.raises(ConfigurationError, match="systemTabId"):
            load_engine_config(raw)

    def test_lookup_row_inside_header(self):
        with pytest.raises(ValueError):
            TabConfig(dataAxis="row", propertyLookupRow=4, skipRows=3)

    def test_log_level_from_flags(self):
        assert load_engine_config(make_config(quiet=True)).log_level == "quiet"
        assert load_engine_config(make_config(quiet=False, verbose=True)).log_level == "dev"
        assert load_engine_config(make_config(debug=True)).log_level == "debug"

    def test_dict_round_trip_keeps_aliases(self):
        out = config_to_dict(load_engine_config(make_config()))
        assert out["batchUpdateBuffer"] == 10
        assert out["sheets"]["systemTabId"] == "System"

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "helper: sheets\n"
            "sheets:\n"
            "  tabs:\n"
            "    Sources-1: {dataAxis: row, propertyLookupRow: 2, skipRows: 3}\n",
            encoding="utf-8",
        )
        cfg = load_and_validate_config(path)
        assert cfg.helper == "sheets"
        assert cfg.batch_update_buffer == 10

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_and_validate_config(tmp_path / "missing.yaml")


class TestRegistry:
    def test_resolves_builtins(self):
        reg = resolve("sheets", ["recurring", "timestamp"])
        assert reg.connector.name == "sheets"
        assert [e.name for e in reg.extensions] == ["recurring", "timestamp"]

    def test_unknown_helper(self):
        with pytest.raises(ConfigurationError, match="nope"):
            resolve("nope", [])

    def test_unknown_extension(self):
        with pytest.raises(ConfigurationError, match="missing-ext"):
            resolve("sheets", ["timestamp", "missing-ext"])

    def test_engine_fails_before_any_run(self, store):
        with pytest.raises(ConfigurationError):
            DataGatherer(make_config(extensions=["missing-ext"]), store=store)

    def test_unknown_filter(self):
        with pytest.raises(ConfigurationError, match="bogus"):
            get_filter("bogus")

    def test_custom_extension_registration(self):
        @register_extension
        class Marker(Extension):
            name = "test-marker"

        try:
            assert resolve("sheets", ["test-marker"]).extensions == (Marker,)
        finally:
            EXTENSIONS.pop("test-marker", None)
