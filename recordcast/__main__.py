"""CLI entry point for validating records against schema documents.

Usage:
    python -m recordcast validate person.yaml people.json
    python -m recordcast validate person.yaml people.yaml --schema Address
    python -m recordcast validate person.yaml people.json --bind min_age=18 --json
    python -m recordcast check person.yaml

Exit codes:
    0  every record is valid (or the schema document is valid)
    1  at least one record is invalid
    2  the schema document, the input file or the arguments are unusable
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

import yaml

from recordcast.batch import BatchReport, validate_many
from recordcast.env import load_env_file
from recordcast.errors import RecordcastError
from recordcast.loader import load_schema_file, read_document, validate_schema_file
from recordcast.logging import setup_logging
from recordcast.settings import get_settings, reset_settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_USAGE = 2


def parse_binding(text: str) -> Tuple[str, Any]:
    """Parse ``key=value``; the value is read as a YAML scalar (18 -> int)."""
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"Binding must look like key=value, got '{text}'")
    key, raw = text.split("=", 1)
    key = key.strip()
    if not key.isidentifier():
        raise argparse.ArgumentTypeError(f"Binding name '{key}' is not a valid identifier")
    try:
        value = yaml.safe_load(raw) if raw else ""
    except yaml.YAMLError:
        value = raw
    return key, value


def _flatten(errors: Dict[str, Any], prefix: str = "") -> List[str]:
    lines: List[str] = []
    for name, value in errors.items():
        path = f"{prefix}{name}"
        if isinstance(value, dict):
            if "__errors__" in value:
                lines.extend(f"{path}: {message}" for message in value["__errors__"])
                value = value["__nested__"]
            if isinstance(value, dict):
                lines.extend(_flatten(value, f"{path}."))
            else:
                for index, item in enumerate(value):
                    lines.extend(_flatten(item, f"{path}[{index}]."))
        elif isinstance(value, list) and value and isinstance(value[0], dict):
            for index, item in enumerate(value):
                lines.extend(_flatten(item, f"{path}[{index}]."))
        else:
            lines.extend(f"{path}: {message}" for message in value)
    return lines


def print_report(report: BatchReport) -> None:
    """Print a batch report in a readable format."""
    print()
    print("=" * 60)
    print(f"Schema: {report.schema}")
    print("=" * 60)

    for index, errors in report.errors_by_row().items():
        print(f"Record {index}:")
        for line in _flatten(errors):
            print(f"  {line}")

    print(f"Valid: {report.valid_count} / {report.total}")
    print(f"Elapsed: {report.elapsed_seconds:.2f}s")
    print("=" * 60)


def validate_command(args: argparse.Namespace) -> int:
    """Validate every record in an input file."""
    try:
        schema = load_schema_file(args.schema_file, args.schema)
        document = read_document(args.input_file)
    except (RecordcastError, FileNotFoundError) as e:
        logger.debug("Could not load inputs: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    records = document if isinstance(document, list) else [document]
    report = validate_many(schema, records, dict(args.bind or []), max_workers=args.workers)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        print_report(report)

    return EXIT_OK if report.all_valid else EXIT_INVALID


def check_command(args: argparse.Namespace) -> int:
    """Check a schema document without validating any data."""
    problems = validate_schema_file(args.schema_file)
    if problems:
        for problem in problems:
            print(f"Error: {problem}", file=sys.stderr)
        return EXIT_USAGE
    print(f"OK: {args.schema_file}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recordcast",
        description="Cast and validate records against schema documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Validate a JSON list of records
    python -m recordcast validate person.yaml people.json

    # Make external values visible to rule expressions
    python -m recordcast validate person.yaml people.json --bind min_age=18

    # Check a schema document only
    python -m recordcast check person.yaml
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    common.add_argument("--json-log", action="store_true", help="Output logs in JSON format")
    common.add_argument("--log-file", help="Write logs to this file")
    common.add_argument("--env-file", help="Load environment variables from this .env file")

    subparsers = parser.add_subparsers(dest="command")

    validate_parser = subparsers.add_parser(
        "validate", parents=[common], help="Validate records in a file"
    )
    validate_parser.add_argument("schema_file", help="Schema document (YAML or JSON)")
    validate_parser.add_argument("input_file", help="Record or list of records (YAML or JSON)")
    validate_parser.add_argument("--schema", help="Named schema to use instead of the root")
    validate_parser.add_argument(
        "--bind",
        action="append",
        type=parse_binding,
        metavar="KEY=VALUE",
        help="External binding visible to rule expressions (repeatable)",
    )
    validate_parser.add_argument("--json", action="store_true", help="Print a JSON report")
    validate_parser.add_argument("--workers", type=int, help="Number of validation threads")

    check_parser = subparsers.add_parser(
        "check", parents=[common], help="Check a schema document"
    )
    check_parser.add_argument("schema_file", help="Schema document (YAML or JSON)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    if args.env_file:
        load_env_file(args.env_file, override=True)
        reset_settings()

    settings = get_settings()
    setup_logging(
        verbose=args.verbose,
        json_format=args.json_log or settings.log_format == "json",
        log_file=args.log_file or settings.log_file,
        level=settings.log_level,
    )

    try:
        if args.command == "check":
            return check_command(args)
        return validate_command(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
