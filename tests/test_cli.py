"""
Tests for the command line interface over YAML workbook snapshots.
"""
import json

import pytest
import yaml

from conftest import make_config, many_sources
from datagatherer.cli import _set_dotted, main
from datagatherer.connectors.api_handler import RequestsApiHandler
from datagatherer.stores.memory_store import MemoryStore


@pytest.fixture
def files(tmp_path, datasets):
    config = tmp_path / "datagatherer.yaml"
    config.write_text(yaml.safe_dump(make_config(extensions=["recurring"])), encoding="utf-8")
    workbook = tmp_path / "workbook.yaml"
    workbook.write_text(yaml.safe_dump({"id": "wb", "datasets": datasets}), encoding="utf-8")
    return config, workbook


@pytest.fixture
def offline(monkeypatch):
    def fake_fetch(self, request):
        return {"statusCode": 200, "body": json.dumps({"data": {"echo": request.url}})}

    monkeypatch.setattr(RequestsApiHandler, "fetch", fake_fetch)


def load(workbook):
    return yaml.safe_load(workbook.read_text(encoding="utf-8"))


class TestCommands:
    def test_validate(self, files):
        config, _ = files
        assert main(["validate", "--config", str(config)]) == 0

    def test_validate_bad_override(self, files):
        config, _ = files
        assert main(["validate", "--config", str(config), "--set", "batchUpdateBuffer=0"]) == 1

    def test_missing_config(self, tmp_path):
        assert main(["validate", "--config", str(tmp_path / "none.yaml")]) == 1

    def test_init_persists_triggers(self, files):
        config, workbook = files
        assert main(["init", "--config", str(config), "--workbook", str(workbook)]) == 0

        saved = load(workbook)
        system = saved["datasets"]["System"]
        assert system[4][2] > 0
        assert system[1][2] in saved["triggers"]
        assert saved["triggers"][system[1][2]]["handler"] == "submitRecurringSources"

    def test_init_twice_reuses_triggers(self, files):
        config, workbook = files
        main(["init", "--config", str(config), "--workbook", str(workbook)])
        first = load(workbook)["triggers"]
        main(["init", "--config", str(config), "--workbook", str(workbook)])
        assert load(workbook)["triggers"] == first

    def test_run_writes_results(self, files, offline):
        config, workbook = files
        code = main([
            "run", "--config", str(config), "--workbook", str(workbook),
            "--src", "Sources-1", "--dest", "Results-1", "--filter", "selected",
        ])
        assert code == 0
        results = load(workbook)["datasets"]["Results-1"]
        assert [r[4] for r in results[3:]] == ["google.com", "web.dev"]

    def test_run_unknown_dataset(self, files, offline):
        config, workbook = files
        code = main([
            "run", "--config", str(config), "--workbook", str(workbook),
            "--src", "Nope", "--dest", "Results-1",
        ])
        assert code == 1

    def test_recurring(self, files, offline):
        config, workbook = files
        assert main([
            "recurring", "--config", str(config), "--workbook", str(workbook),
            "--src", "Sources-1", "--dest", "Results-1",
        ]) == 0
        assert len(load(workbook)["datasets"]["Results-1"]) == 3

    def test_failed_run_keeps_committed_batches(self, tmp_path, datasets, offline, monkeypatch):
        datasets["Sources-1"] = many_sources(25)
        config = tmp_path / "datagatherer.yaml"
        config.write_text(yaml.safe_dump(make_config()), encoding="utf-8")
        workbook = tmp_path / "workbook.yaml"
        workbook.write_text(yaml.safe_dump({"id": "wb", "datasets": datasets}), encoding="utf-8")

        write_range = MemoryStore.write_range

        def reject_second_write(self, dataset_id, start_row, start_col, values):
            if self.writes_to(dataset_id):
                raise IOError("quota exceeded")
            write_range(self, dataset_id, start_row, start_col, values)

        monkeypatch.setattr(MemoryStore, "write_range", reject_second_write)
        code = main([
            "run", "--config", str(config), "--workbook", str(workbook),
            "--src", "Sources-1", "--dest", "Results-1",
        ])

        assert code == 1
        results = load(workbook)["datasets"]["Results-1"]
        assert [r[1] for r in results[3:]] == [str(i) for i in range(10)]

    def test_export(self, files, tmp_path):
        config, workbook = files
        out = tmp_path / "out"
        assert main([
            "export", "--config", str(config), "--workbook", str(workbook),
            "--dataset", "Sources-1", "--format", "json", "--out", str(out),
        ]) == 0
        assert (out / "Sources-1.json").exists()


class TestSetDotted:
    def test_nested_and_typed(self):
        config = {"sheets": {"tabs": {}}}
        _set_dotted(config, "sheets.tabs.Extra.skipRows", "3")
        _set_dotted(config, "quiet", "true")
        assert config["sheets"]["tabs"]["Extra"] == {"skipRows": 3}
        assert config["quiet"] is True
