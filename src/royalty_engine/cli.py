"""Royalty engine command line interface.

Offline tools for rights holders and operators. Nothing is stored and
nobody is paid; split files are JSON in, results are JSON out.

Usage:
    python -m royalty_engine.cli validate-split split.json
    python -m royalty_engine.cli preview split.json --amount 9.99 --currency USD

A split file is either an object with ``shares`` (and optional ``work_id``
and ``title``) or a bare list of shares:

    {"work_id": "track-42", "shares": [
        {"recipient_name": "Ana", "role": "artist", "percentage": "70"},
        {"recipient_name": "Bo", "role": "producer", "percentage": "30"}
    ]}
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal
from typing import Any, Callable, TextIO

from royalty_engine.calculators import DistributionCalculator, SplitValidator
from royalty_engine.calculators.types import (
    SplitLedger,
    SplitShare,
    parse_decimal,
    serialize_value,
)
from royalty_engine.errors import CalculationError

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_REJECTED = 2


def load_ledger(source: TextIO) -> SplitLedger:
    """Parse a split file into a ledger.

    Raises:
        ValueError: if the JSON is malformed or a share is incomplete.
    """
    data = json.load(source, parse_float=Decimal)
    if isinstance(data, list):
        data = {"shares": data}
    if not isinstance(data, dict) or not isinstance(data.get("shares"), list):
        raise ValueError("Split file must be a list of shares or an object with 'shares'")
    try:
        shares = tuple(SplitShare.from_dict(item) for item in data["shares"])
    except (KeyError, TypeError) as e:
        raise ValueError(f"Incomplete share in split file: {e}") from e
    return SplitLedger(
        work_id=str(data.get("work_id") or "local"),
        title=data.get("title"),
        shares=shares,
    )


class RoyaltyCli:
    """Royalty engine command line interface."""

    def __init__(self, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.parser = self._build_parser()
        self.validator = SplitValidator()
        self.calculator = DistributionCalculator()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m royalty_engine.cli",
            description="Royalty split tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # validate-split command
        validate = subparsers.add_parser(
            "validate-split",
            help="Validate and score a split file",
        )
        validate.add_argument(
            "file",
            type=argparse.FileType("r"),
            help="Split file (JSON), or - for stdin",
        )

        # preview command
        preview = subparsers.add_parser(
            "preview",
            help="Show how a payment would be distributed",
        )
        preview.add_argument(
            "file",
            type=argparse.FileType("r"),
            help="Split file (JSON), or - for stdin",
        )
        preview.add_argument(
            "--amount",
            type=parse_decimal,
            required=True,
            help="Purchase total, e.g. 9.99",
        )
        preview.add_argument(
            "--currency",
            type=str.upper,
            default="USD",
            help="ISO currency code (default: USD)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help(self.stderr)
            return EXIT_USAGE

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "validate-split": self._cmd_validate_split,
            "preview": self._cmd_preview,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=self.stderr)
        return EXIT_USAGE

    def _read_ledger(self, args: argparse.Namespace) -> SplitLedger | None:
        try:
            with args.file as source:
                return load_ledger(source)
        except ValueError as e:
            print(f"ERROR: {e}", file=self.stderr)
            return None

    def _emit(self, payload: dict[str, Any]) -> None:
        json.dump(serialize_value(payload), self.stdout, indent=2)
        self.stdout.write("\n")

    def _cmd_validate_split(self, args: argparse.Namespace) -> int:
        """Validate a split file."""
        ledger = self._read_ledger(args)
        if ledger is None:
            return EXIT_USAGE

        result = self.validator.validate(ledger)
        self._emit({"work_id": ledger.work_id, **result.to_dict()})
        return EXIT_OK if result.valid else EXIT_REJECTED

    def _cmd_preview(self, args: argparse.Namespace) -> int:
        """Preview the distribution of a payment."""
        ledger = self._read_ledger(args)
        if ledger is None:
            return EXIT_USAGE

        result = self.validator.validate(ledger)
        if not result.valid:
            self._emit({"work_id": ledger.work_id, **result.to_dict()})
            return EXIT_REJECTED

        try:
            lines = self.calculator.calculate(args.amount, ledger, args.currency)
        except CalculationError as e:
            print(f"ERROR: {e}", file=self.stderr)
            return EXIT_REJECTED

        self._emit(
            {
                "work_id": ledger.work_id,
                "total_amount": args.amount,
                "currency": args.currency,
                "score": result.score,
                "recommendations": list(result.recommendations),
                "lines": [
                    {
                        "recipient_name": line.recipient_name,
                        "recipient_id": line.recipient_id,
                        "role": line.role,
                        "percentage": line.percentage,
                        "amount": line.amount,
                    }
                    for line in lines
                ],
            }
        )
        return EXIT_OK


def main() -> int:
    """CLI entry point."""
    cli = RoyaltyCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
