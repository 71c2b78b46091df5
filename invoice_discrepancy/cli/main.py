"""Command-line interface: validate a JSON file of invoice records."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List

from ..config.profile_loader import list_available_profiles
from ..config.settings import get_app_name, get_log_level, get_profile_name
from ..errors import DiscrepancyEngineError
from ..models.alert import Alert
from ..models.record_error import RecordError
from ..models.validation_summary import ValidationSummary
from ..run_report import RunReport
from ..service import ValidationService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DISCREPANCIES = 1
EXIT_FATAL = 2


def load_records(input_path: Path) -> List[Any]:
    """Load records from a JSON file.

    Args:
        input_path: File with a JSON list of records, or {"records": [...]}

    Returns:
        List of raw record mappings

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON or has no record list
    """
    with open(input_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("records")
    if not isinstance(data, list):
        raise ValueError(
            f"{input_path}: expected a JSON list of records or an object with a 'records' list"
        )
    return data


def print_summary(summary: ValidationSummary, errors: List[RecordError]) -> None:
    print(f"\nValidation complete ({summary.batch_id}):")
    print(f"  Records: {summary.total_records} (valid={summary.valid_records}, invalid={summary.invalid_records})")
    print(
        f"  Discrepancies: {summary.total_discrepancies} "
        f"(critical={summary.critical_count}, high={summary.high_severity_count}, "
        f"medium={summary.medium_severity_count}, low={summary.low_severity_count})"
    )
    print(
        f"  Amounts: total={summary.total_discrepancy_amount:.2f}, "
        f"average={summary.average_discrepancy_amount:.2f}, max={summary.max_discrepancy_amount:.2f}"
    )
    print(f"  Time: {summary.processing_time_ms:.0f} ms")

    if errors:
        print(f"\nRecord errors: {len(errors)}")
        for error in errors:
            label = error.record_id or f"index {error.index}"
            print(f"  [{error.error_type}] {label}: {error.message}")


def print_alerts(alerts: List[Alert], limit: int) -> None:
    if not alerts or limit <= 0:
        return
    print(f"\nTop alerts ({min(limit, len(alerts))} of {len(alerts)}):")
    for alert in alerts[:limit]:
        print(f"  [{alert.severity.upper()}] {alert.record_id}: {alert.message}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description=f"{get_app_name()} - check declared invoice amounts against recomputed values"
    )

    parser.add_argument(
        "--input",
        required=False,
        help="JSON file with a list of invoice records (or an object with a 'records' list)"
    )

    parser.add_argument(
        "--profile",
        default=None,
        help="Validation profile name (default: DISCREPANCY_PROFILE or 'default')"
    )

    parser.add_argument(
        "--strict-mode",
        action="store_true",
        help="Zero tolerance: any difference is a discrepancy"
    )

    parser.add_argument(
        "--output",
        required=False,
        help="Write a JSON run report to this path"
    )

    parser.add_argument(
        "--show-alerts",
        type=int,
        default=0,
        metavar="N",
        help="Print the N most severe alerts"
    )

    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List available validation profiles and exit"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose debug output"
    )

    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else getattr(logging, get_log_level())
    logging.basicConfig(level=level, format="%(message)s")

    if args.list_profiles:
        for name in list_available_profiles():
            print(name)
        sys.exit(EXIT_OK)

    if not args.input:
        parser.error("--input is required (unless using --list-profiles)")

    profile_name = args.profile or get_profile_name()
    report = RunReport.create(args.input, profile_name)

    try:
        records = load_records(Path(args.input))
        config = {"rules": {"strict_mode": True}} if args.strict_mode else None
        service = ValidationService(config=config, profile=profile_name)

        if args.verbose:
            service.on_progress(
                lambda p: print(f"  {p.status}: {p.processed_records}/{p.total_records} ({p.progress_percentage}%)")
            )

        print(f"Validating {len(records)} record(s) with profile '{profile_name}'...")
        outcome = service.validate_batch(records)
    except (OSError, ValueError, DiscrepancyEngineError) as e:
        logger.debug("Run failed", exc_info=True)
        print(f"Error: {str(e)}", file=sys.stderr)
        if args.output:
            report.errors.append({"message": str(e), "error_type": type(e).__name__})
            report.complete("FAILED")
            report.save(Path(args.output))
        sys.exit(EXIT_FATAL)

    summary = outcome.summary
    alerts = service.get_alerts_for_display()
    print_summary(summary, list(outcome.errors))
    print_alerts(alerts, args.show_alerts)

    if args.output:
        report.summary = summary.to_dict()
        report.errors = [error.to_dict() for error in outcome.errors]
        report.alerts = [alert.to_dict() for alert in alerts]
        report.discrepancies = [r.to_dict() for r in outcome.results if r.is_flagged]
        report.complete("COMPLETED")
        report.save(Path(args.output))
        print(f"Report: {args.output}")

    exit_code = EXIT_OK
    if summary.total_discrepancies > 0 or outcome.errors:
        exit_code = EXIT_DISCREPANCIES
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
