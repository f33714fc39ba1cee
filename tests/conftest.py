"""
Shared fixtures: a fake workbook (Settings, System, Sources, Results) held in
a MemoryStore, the engine configuration describing it, and fake fetchers.
"""
from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Dict, List

import pytest

from datagatherer.common.logger import init_logger
from datagatherer.plugins.api import ApiHandler, FetchRequest, FetchResponse
from datagatherer.stores.memory_store import LocalTriggerService, MemoryStore

NOW = 1_700_000_000.0  # seconds


SETTINGS = [
    ["Name", "key", "value"],
    ["API Key", "apiKey", "TEST_APIKEY"],
    ["Host", "host", "example.test"],
]

SYSTEM = [
    ["Name", "key", "value"],
    ["Retrieve Trigger ID", "RETRIEVE_TRIGGER_ID", ""],
    ["On Edit Trigger ID", "ONEDIT_TRIGGER_ID", ""],
    ["Workbook", "datasetId", ""],
    ["Last Init Timestamp", "lastInitTimestamp", ""],
]

SOURCES = [
    ["Sources", "", "", "", "", ""],
    ["selected", "id", "label", "recurring.frequency", "recurring.nextTriggerTimestamp", "url"],
    ["", "", "", "", "", ""],
    [True, "1", "Google", "", "", "google.com"],
    [False, "2", "Example", "", "", "example.com"],
    [True, "3", "Web Dev", "", "", "web.dev"],
]

RESULTS = [
    ["Results", "", "", "", "", ""],
    ["selected", "id", "timestamp", "status", "url", "errors"],
    ["", "", "", "", "", ""],
]


def tab(axis: str = "row", lookup: int = 2, skip_rows: int = 3, skip_columns: int = 0) -> Dict[str, Any]:
    return {
        "dataAxis": axis,
        "propertyLookupRow": lookup,
        "skipRows": skip_rows,
        "skipColumns": skip_columns,
    }


def make_config(**overrides: Any) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "helper": "sheets",
        "extensions": [],
        "sheets": {
            "envVarsTabId": "Settings",
            "systemTabId": "System",
            "tabs": {
                "Sources-1": tab(),
                "Sources-2": tab(),
                "Results-1": tab(),
                "Results-2": tab(),
                "Settings": tab("column", 2, 1, 2),
                "System": tab("column", 2, 1, 2),
            },
        },
        "batchUpdateBuffer": 10,
        "verbose": False,
        "debug": False,
        "quiet": True,
    }
    config.update(overrides)
    return config


def many_sources(n: int) -> List[List[Any]]:
    grid = copy.deepcopy(SOURCES[:3])
    for i in range(n):
        grid.append([True, str(i), f"Source {i}", "", "", f"site-{i}.test"])
    return grid


class EchoHandler(ApiHandler):
    """Returns 200 with the url echoed back in `data`; records every request."""

    def __init__(self, fail_urls=()):
        self.requests: List[FetchRequest] = []
        self.fail_urls = set(fail_urls)

    def fetch(self, request: FetchRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if request.url in self.fail_urls:
            return {"statusCode": 500, "body": json.dumps({"error": "boom"})}
        return {"statusCode": 200, "body": json.dumps({"data": {"echo": request.url}})}


class FixedResponseHandler(ApiHandler):
    def __init__(self, response: FetchResponse):
        self.response = response

    def fetch(self, request: FetchRequest) -> FetchResponse:
        return self.response


@pytest.fixture(autouse=True)
def quiet_logger():
    init_logger("quiet")
    yield


@pytest.fixture
def datasets() -> Dict[str, List[List[Any]]]:
    return {
        "Settings": copy.deepcopy(SETTINGS),
        "System": copy.deepcopy(SYSTEM),
        "Sources-1": copy.deepcopy(SOURCES),
        "Sources-2": copy.deepcopy(SOURCES),
        "Results-1": copy.deepcopy(RESULTS),
        "Results-2": copy.deepcopy(RESULTS),
    }


@pytest.fixture
def store(datasets) -> MemoryStore:
    return MemoryStore(datasets, store_id="sheet-1234")


@pytest.fixture
def triggers() -> LocalTriggerService:
    return LocalTriggerService()


@pytest.fixture
def handler() -> EchoHandler:
    return EchoHandler()


@pytest.fixture
def config() -> Dict[str, Any]:
    return make_config()


@pytest.fixture
def engine(config, store, triggers, handler):
    from datagatherer.core.engine import DataGatherer

    return DataGatherer(config, store=store, trigger_service=triggers, api_handler=handler, clock=lambda: NOW)


def run(coro):
    return asyncio.run(coro)
