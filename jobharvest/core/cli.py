from __future__ import annotations

import argparse

from jobharvest.core.orchestrator import HarvestOrchestrator
from jobharvest.export.excel_sync import ExcelSync
from jobharvest.storage.repository import RecordRepository
from jobharvest.utils.config import HarvestConfig, load_config
from jobharvest.utils.logging_utils import setup_logging


def build_config(args: argparse.Namespace) -> HarvestConfig:
    raw = load_config(args.config)
    overrides = {
        "keyword": args.keyword,
        "location": args.location,
        "results_wanted": args.results_wanted,
        "max_pages": args.max_pages,
    }
    raw.update({key: value for key, value in overrides.items() if value is not None})
    if args.start_url:
        raw["start_urls"] = args.start_url
    if args.no_details:
        raw["collect_details"] = False
    if args.no_dedupe:
        raw["dedupe"] = False
    if args.excel:
        raw["excel_path"] = args.excel
    return HarvestConfig.from_mapping(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Harvest job listings into a record store")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--keyword")
    parser.add_argument("--location")
    parser.add_argument("--results-wanted", type=int)
    parser.add_argument("--max-pages", type=int)
    parser.add_argument("--start-url", action="append")
    parser.add_argument("--no-details", action="store_true")
    parser.add_argument("--no-dedupe", action="store_true")
    parser.add_argument("--excel")
    parser.add_argument("--log-dir", default="data/logs")
    args = parser.parse_args()
    setup_logging(args.log_dir)
    config = build_config(args)
    repository = RecordRepository(config.db_path)
    counts = HarvestOrchestrator(config, repository).run()
    if config.excel_path:
        counts["exported"] = ExcelSync(config.excel_path).sync(repository.list_records())
    print("Run complete:", counts)


if __name__ == "__main__":
    main()
