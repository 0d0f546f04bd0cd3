"""Medication Safety Engine - command line interface.

Usage:
    medsafety check --file request.json       # Comprehensive prescription check
    medsafety check < request.json            # Same, request on stdin
    medsafety contraindications ibuprofen --file profile.json
    medsafety dosage amoxicillin 250mg --weight 12
    medsafety dosage metformin 1000mg --renal moderate
    medsafety stats

Requests and profiles are JSON with camelCase or snake_case keys. Results are
printed as camelCase JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from medsafety import __version__
from medsafety.core.logging_config import configure_logging
from medsafety.schemas.base import RenalFunction
from medsafety.schemas.results import DosageValidation, RenalDosageAdjustment
from medsafety.services.medication_validation import (
    check_medication_contraindications,
    comprehensive_medication_check,
    get_medication_validation_service,
    validate_dosage,
    validate_pediatric_dosage,
    validate_renal_dosage,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NOT_APPROVED = 1
EXIT_INVALID_INPUT = 2


def _read_json(path: Path | None) -> Any:
    if path is None:
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _dump(payload: BaseModel | list[BaseModel] | dict[str, Any]) -> str:
    if isinstance(payload, BaseModel):
        data: Any = payload.model_dump(mode="json", by_alias=True)
    elif isinstance(payload, list):
        data = [item.model_dump(mode="json", by_alias=True) for item in payload]
    else:
        data = payload
    return json.dumps(data, indent=2)


def cmd_check(args: argparse.Namespace) -> int:
    """Run a comprehensive check on a prescription request."""
    result = comprehensive_medication_check(_read_json(args.file))
    print(_dump(result))
    return EXIT_OK if result.is_approved else EXIT_NOT_APPROVED


def cmd_contraindications(args: argparse.Namespace) -> int:
    """List contraindications of one medication for a patient profile."""
    profile = _read_json(args.file) if args.file is not None else {}
    findings = check_medication_contraindications(args.medication, profile)
    print(_dump(findings))
    blocked = any(f.is_contraindicated for f in findings)
    return EXIT_NOT_APPROVED if blocked else EXIT_OK


def cmd_dosage(args: argparse.Namespace) -> int:
    """Validate a dose (adult, pediatric, or renal-adjusted)."""
    if args.weight is not None:
        result: DosageValidation | RenalDosageAdjustment = validate_pediatric_dosage(args.medication, args.dose, args.weight)
    elif args.renal is not None:
        result = validate_renal_dosage(args.medication, args.dose, args.renal)
    else:
        result = validate_dosage(args.medication, args.dose)
    print(_dump(result))
    return EXIT_OK if result.is_valid else EXIT_NOT_APPROVED


def cmd_stats(args: argparse.Namespace) -> int:
    """Print knowledge base statistics."""
    print(_dump(get_medication_validation_service().get_stats()))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="medsafety",
        description="Medication safety checks: contraindications, interactions and dosage.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Logging level (default from MEDSAFETY_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Comprehensive prescription check")
    check.add_argument("--file", "-f", type=Path, default=None, help="Request JSON file (default: stdin)")
    check.set_defaults(func=cmd_check)

    contra = subparsers.add_parser("contraindications", help="Contraindications for one medication")
    contra.add_argument("medication", help="Medication name")
    contra.add_argument("--file", "-f", type=Path, default=None, help="Patient safety profile JSON file")
    contra.set_defaults(func=cmd_contraindications)

    dose = subparsers.add_parser("dosage", help="Validate a dose")
    dose.add_argument("medication", help="Medication name")
    dose.add_argument("dose", help="Dose, e.g. 500mg")
    group = dose.add_mutually_exclusive_group()
    group.add_argument("--weight", type=float, default=None, help="Body weight in kg (pediatric check)")
    group.add_argument(
        "--renal",
        choices=[r.value for r in RenalFunction],
        default=None,
        help="Renal function category (renal-adjusted check)",
    )
    dose.set_defaults(func=cmd_dosage)

    stats = subparsers.add_parser("stats", help="Knowledge base statistics")
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the medsafety command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    logger.debug(f"Running {args.command} command")

    try:
        return args.func(args)
    except ValidationError as e:
        print(f"Invalid input:\n{e}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except (ValueError, OSError) as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT


if __name__ == "__main__":
    sys.exit(main())
