#!/usr/bin/env python3
"""Run one detection operation and print the findings as JSON.

Usage locally (from backend/):
    python -m scripts.run_detection submission-anomalies --id 42
    python -m scripts.run_detection dealer-anomalies --id 7
    python -m scripts.run_detection group-anomalies --id 2
    python -m scripts.run_detection global-anomalies --months 6
    python -m scripts.run_detection submission-patterns --id 42
    python -m scripts.run_detection dealer-patterns --id 7
    python -m scripts.run_detection group-patterns --id 2
    python -m scripts.run_detection time-series --scope-kind dealer --id 7
    python -m scripts.run_detection clusters --scope-kind global
    python -m scripts.run_detection forecast --id 42 --output forecast.json

Detection only reads dealer and submission rows. A missing SQLite file is
created with empty tables, so every operation then returns [].
"""

import argparse
import json
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from anomaly_engine.config import Settings
from anomaly_engine.facade import DetectionFacade
from anomaly_engine.logging_config import get_logger, setup_logging

logger = get_logger("run_detection")

NEEDS_ID = {
    "submission-anomalies",
    "dealer-anomalies",
    "group-anomalies",
    "submission-patterns",
    "dealer-patterns",
    "group-patterns",
    "forecast",
}
OPERATIONS = sorted(NEEDS_ID | {"global-anomalies", "time-series", "clusters"})
SCOPE_KINDS = ("submission", "dealer", "group", "global")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run dealer finance anomaly and pattern detection.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("operation", choices=OPERATIONS)
    parser.add_argument("--id", type=int, default=None, help="Submission, dealer or group id")
    parser.add_argument(
        "--months", type=int, default=None,
        help="Look-back window for global-anomalies (default: GLOBAL_LOOKBACK_MONTHS)",
    )
    parser.add_argument(
        "--scope-kind", choices=SCOPE_KINDS, default="global",
        help="Scope for time-series and clusters (default: global)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    parser.add_argument("--output", type=Path, default=None, help="Write findings to a file")
    return parser.parse_args(argv)


def run(facade: DetectionFacade, args: argparse.Namespace) -> list:
    op = args.operation
    if op == "submission-anomalies":
        return facade.detect_anomalies_in_submission(args.id)
    if op == "dealer-anomalies":
        return facade.detect_anomalies_by_dealer(args.id)
    if op == "group-anomalies":
        return facade.detect_anomalies_by_group(args.id)
    if op == "global-anomalies":
        return facade.detect_global_anomalies(args.months)
    if op == "submission-patterns":
        return facade.detect_patterns_in_submission(args.id)
    if op == "dealer-patterns":
        return facade.detect_patterns_by_dealer(args.id)
    if op == "group-patterns":
        return facade.detect_patterns_by_group(args.id)
    if op == "time-series":
        return facade.detect_time_series_anomalies(**{f"{args.scope_kind}_id": args.id})
    if op == "clusters":
        return facade.detect_clusters(args.scope_kind, args.id)
    return facade.forecast(args.id)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = Settings()
    setup_logging(json_logs=args.json_logs or settings.json_logs, log_level=settings.log_level)

    if args.operation in NEEDS_ID and args.id is None:
        logger.error("missing_id", operation=args.operation)
        return 2
    if args.operation == "time-series" and (args.scope_kind == "global" or args.id is None):
        logger.error("time_series_needs_scope", scope_kind=args.scope_kind, id=args.id)
        return 2

    with DetectionFacade(settings=settings) as facade:
        findings = run(facade, args)

    payload = json.dumps(findings, indent=2)
    if args.output:
        args.output.write_text(payload + "\n")
        logger.info("findings_written", path=str(args.output), count=len(findings))
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
