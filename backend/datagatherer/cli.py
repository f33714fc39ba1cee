#!/usr/bin/env python
"""
CLI for the data-gathering engine over a YAML workbook snapshot
Usage: python -m datagatherer.cli run --config config/datagatherer.yaml --workbook workbook.yaml \
           --src Sources-1 --dest Results-1 --filter selected
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from datagatherer.common.config_models import EngineConfig, load_engine_config
from datagatherer.common.errors import ConfigurationError, DataGathererError
from datagatherer.common.logger import get_logger, init_logger, set_log_level, LogFormat
from datagatherer.common.utils import load_yaml
from datagatherer.core.engine import DataGatherer
from datagatherer.io.export import export_dataset
from datagatherer.stores.memory_store import LocalTriggerService, MemoryStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run data-gathering jobs against a workbook snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m datagatherer.cli validate --config config/datagatherer.yaml
  python -m datagatherer.cli init --config config/datagatherer.yaml --workbook workbook.yaml
  python -m datagatherer.cli run --workbook workbook.yaml --src Sources-1 --dest Results-1 --filter selected
  python -m datagatherer.cli recurring --workbook workbook.yaml --src Sources-1 --dest Results-1
  python -m datagatherer.cli export --workbook workbook.yaml --dataset Results-1 --format csv --out out/
        """
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default="config/datagatherer.yaml",
        help="Path to engine configuration file (default: config/datagatherer.yaml)"
    )
    common.add_argument("--dotenv", help="Path to .env file to load (optional)")
    common.add_argument(
        "--set",
        action="append",
        help="Override config with dotted.key=value (repeatable)"
    )
    common.add_argument(
        "--log-level",
        choices=["quiet", "user", "dev", "debug"],
        help="Logging verbosity (default: derived from verbose/debug/quiet in config)"
    )
    common.add_argument(
        "--json",
        action="store_true",
        help="Output logs in JSON-Lines format"
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("validate", parents=[common], help="Validate configuration and exit")

    workbook = argparse.ArgumentParser(add_help=False)
    workbook.add_argument("--workbook", required=True, help="YAML workbook snapshot (read and written back)")

    sub.add_parser("init", parents=[common, workbook], help="Ensure triggers and record init timestamp")

    run = sub.add_parser("run", parents=[common, workbook], help="Run source records into a destination")
    run.add_argument("--src", required=True, help="Source dataset id")
    run.add_argument("--dest", required=True, help="Destination dataset id")
    run.add_argument("--filter", action="append", default=[], help="Filter name or prop=value (repeatable)")

    rec = sub.add_parser("recurring", parents=[common, workbook], help="Run due recurring records")
    rec.add_argument("--src", required=True, help="Source dataset id")
    rec.add_argument("--dest", required=True, help="Destination dataset id")

    export = sub.add_parser("export", parents=[common, workbook], help="Export a dataset to a file")
    export.add_argument("--dataset", required=True, help="Dataset id to export")
    export.add_argument("--format", default="csv", choices=["csv", "json", "jsonl", "parquet"])
    export.add_argument("--out", default="./out/exports", help="Output directory")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    t0 = time.perf_counter()
    args = _build_parser().parse_args(argv)

    init_logger(args.log_level or "user", LogFormat.JSON if args.json else LogFormat.TEXT)
    log = get_logger()

    if args.dotenv:
        load_dotenv(args.dotenv)
    else:
        load_dotenv()

    store: Optional[MemoryStore] = None
    trigger_service: Optional[LocalTriggerService] = None
    try:
        config = _load_config(Path(args.config), args.set or [])
        if args.command == "validate":
            _validate(config)
            return 0

        workbook = Path(args.workbook)
        store, triggers = MemoryStore.from_yaml(workbook)
        trigger_service = LocalTriggerService(triggers)
        engine = DataGatherer(config, store=store, trigger_service=trigger_service)
        if args.log_level:
            set_log_level(args.log_level)

        if args.command == "init":
            result = engine.init()
            for handler, trigger_id in result["triggers"].items():
                log.info(f"{handler}: {trigger_id}")
        elif args.command == "run":
            report = asyncio.run(engine.run(args.src, args.dest, args.filter))
            log.info(f"{report.flushed} result(s) in {report.write_calls} write(s)")
        elif args.command == "recurring":
            report = asyncio.run(engine.submit_recurring_sources(args.src, args.dest))
            log.info(f"{report.flushed} recurring result(s) in {report.write_calls} write(s)")
        elif args.command == "export":
            export_dataset(engine.connector, args.dataset, {"format": args.format}, Path(args.out))
            return 0
    except (DataGathererError, FileNotFoundError) as e:
        log.error(str(e))
        return 1
    finally:
        # batches flushed before a failure stay in the snapshot
        if store is not None and trigger_service is not None and args.command != "export":
            store.to_yaml(Path(args.workbook), trigger_service.triggers)

    log.dev(f"Completed in {time.perf_counter() - t0:.2f}s")
    return 0


def _load_config(path: Path, overrides: List[str]) -> EngineConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    raw = load_yaml(path)
    if not isinstance(raw, dict):
        raise FileNotFoundError(f"Empty or invalid config: {path}")
    for override in overrides:
        if "=" not in override:
            raise ConfigurationError(f"--set expects dotted.key=value, got: {override}")
        key, value = override.split("=", 1)
        _set_dotted(raw, key.strip(), value)
    return load_engine_config(raw)


def _set_dotted(config: Dict[str, Any], dotted_key: str, value: str) -> None:
    """Set a value in nested dict using dotted notation"""
    # Parse value as YAML for proper types
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError:
        parsed_value = value

    parts = dotted_key.split(".")
    current = config

    for part in parts[:-1]:
        if part not in current or not isinstance(current[part], dict):
            current[part] = {}
        current = current[part]

    current[parts[-1]] = parsed_value


def _validate(config: EngineConfig) -> None:
    """Resolve capabilities and report the configured tabs"""
    from datagatherer.plugins.registry import resolve

    log = get_logger()
    resolve(config.helper, config.extensions)
    settings = config.helper_settings()
    log.success(f"Helper: {config.helper}")
    log.success(f"Extensions: {', '.join(config.extensions) or '(none)'}")
    log.success(f"Tabs: {len(settings.tabs)}")
    log.success(f"Batch size: {config.batch_update_buffer}")


if __name__ == "__main__":
    sys.exit(main())
