from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from car_scraper import settings
from car_scraper.config import RunConfig
from car_scraper.exceptions import ConfigurationError
from car_scraper.logger import get_logger
from car_scraper.orchestrator import PipelineOrchestrator
from car_scraper.storage import JsonlCheckpointStore, write_json

logger = get_logger("main")

DEFAULT_OUTPUT_NAME = "output.json"
DEFAULT_CHECKPOINT_NAME = "progress.jsonl"


def _load_input(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(["input must be a JSON object"])
    return data


def _apply_overrides(data: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    merged = dict(data)
    if args.max_results is not None:
        merged["maxResults"] = args.max_results
    if args.manufacturer:
        merged["manufacturers"] = list(args.manufacturer)
    if args.include_competitors:
        merged["includeCompetitors"] = True
    if args.no_encrypt:
        merged["encryptSensitiveData"] = False
    if args.no_anonymize:
        merged["anonymizeData"] = False
    return merged


def run(input_path: str, output_path: Path, checkpoint_path: Optional[Path], overrides: argparse.Namespace) -> int:
    try:
        config = RunConfig.from_input(_apply_overrides(_load_input(input_path), overrides))
    except ConfigurationError as exc:
        logger.error("%s", exc.message)
        return 2

    store = JsonlCheckpointStore(checkpoint_path) if checkpoint_path else None
    try:
        output = PipelineOrchestrator(checkpoint_store=store).run(config)
    finally:
        if store is not None:
            store.close()

    write_json(output_path, output)
    metadata = output["metadata"]
    print(
        f"DONE: records={metadata['total_records']} success_rate={metadata['success_rate']}% "
        f"security_score={metadata['security_audit']['score']} time={metadata['processing_time']}s"
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Scrape car specifications with a security audit trail")
    parser.add_argument("--input", required=True, help="Path to the run input JSON")
    parser.add_argument("--output", default=None, help="Output JSON path (default: OUTPUT_DIR/output.json)")
    parser.add_argument("--checkpoints", default=None, help="Append progress checkpoints to this JSONL file")

    parser.add_argument("--max-results", type=int, default=None, help="Override maxResults")
    parser.add_argument("--manufacturer", action="append", help="Manufacturer to scrape (repeatable)")
    parser.add_argument("--include-competitors", action="store_true", help="Add competitor analysis")
    parser.add_argument("--no-encrypt", action="store_true", help="Keep prices in plaintext")
    parser.add_argument("--no-anonymize", action="store_true", help="Keep dealer and contact fields")

    args = parser.parse_args()

    output_path = Path(args.output) if args.output else settings.OUTPUT_DIR / DEFAULT_OUTPUT_NAME
    checkpoint_path = Path(args.checkpoints) if args.checkpoints else None
    sys.exit(run(args.input, output_path, checkpoint_path, args))


if __name__ == "__main__":
    main()
