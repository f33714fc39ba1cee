"""
Tests for dataset export through the polars-backed writers.
"""
import json

import polars as pl
import pytest

from datagatherer.common.errors import ConfigurationError
from datagatherer.io.export import export_dataset
from datagatherer.plugins.api import Table
from datagatherer.plugins.registry import get_writer

URLS = ["google.com", "example.com", "web.dev"]


class TestTable:
    def test_from_records_is_all_text(self):
        table = Table.from_records("t", [{"a": 1, "b": ""}, {"a": None, "b": True}], ["a", "b"])
        assert table.df.schema == {"a": pl.Utf8, "b": pl.Utf8}
        assert table.df["a"].to_list() == ["1", None]
        assert table.df["b"].to_list() == [None, "True"]
        assert table.meta["records"] == 2


class TestWriters:
    def test_writer_lookup(self):
        assert get_writer({"format": "csv"}).name == "csv"
        assert get_writer({"format": "jsonl"}).name == "json"
        assert get_writer({"writer": "parquet"}).name == "parquet"

    def test_unknown_format(self):
        with pytest.raises(ConfigurationError):
            get_writer({"format": "xlsx"})

    def test_csv(self, engine, tmp_path):
        path = export_dataset(engine.connector, "Sources-1", {"format": "csv"}, tmp_path)
        assert path == tmp_path / "Sources-1.csv"
        df = pl.read_csv(path)
        assert df.columns[:3] == ["selected", "id", "label"]
        assert df["url"].to_list() == URLS

    def test_json_records(self, engine, tmp_path):
        path = export_dataset(engine.connector, "Sources-1", {"format": "json", "name": "sources"}, tmp_path)
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert path.name == "sources.json"
        assert [r["url"] for r in payload] == URLS

    def test_jsonl(self, engine, tmp_path):
        path = export_dataset(engine.connector, "Sources-1", {"format": "jsonl"}, tmp_path)
        lines = path.read_text(encoding="utf-8").splitlines()
        assert path.suffix == ".jsonl"
        assert [json.loads(line)["label"] for line in lines] == ["Google", "Example", "Web Dev"]

    def test_parquet_with_env_dir(self, engine, tmp_path, monkeypatch):
        monkeypatch.setenv("EXPORT_BATCH", "b1")
        path = export_dataset(engine.connector, "Sources-1", {"format": "parquet", "dir": "${EXPORT_BATCH}"}, tmp_path)
        assert path.parent == tmp_path / "b1"
        assert pl.read_parquet(path)["url"].to_list() == URLS

    def test_empty_dataset_keeps_header(self, engine, tmp_path):
        path = export_dataset(engine.connector, "Results-1", {"format": "csv"}, tmp_path)
        assert path.read_text(encoding="utf-8").splitlines() == ["selected,id,timestamp,status,url,errors"]
