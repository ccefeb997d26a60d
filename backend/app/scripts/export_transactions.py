"""CLI utility to write a practitioner's paid sessions to an xlsx ledger."""

from __future__ import annotations

import argparse
import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Optional

from ..database import session_scope
from ..services.exports import export_filename, render_transactions_xlsx
from ..services.finances import FinanceService, FinanceServiceError

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_user_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid user id: {raw}") from exc


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw}") from exc


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export paid sessions for a date range to an Excel workbook."
    )
    parser.add_argument("--user-id", required=True, type=_parse_user_id, help="Practitioner id")
    parser.add_argument("--start", required=True, type=_parse_date, help="First day (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, type=_parse_date, help="Last day (YYYY-MM-DD)")
    parser.add_argument(
        "--output",
        type=Path,
        help="Destination file or directory; defaults to the standard file name",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)
    if args.start > args.end:
        parser.error("--start cannot be after --end")
    return args


def _resolve_destination(output: Optional[Path], start: date, end: date) -> Path:
    filename = export_filename(start, end)
    if output is None:
        return Path(filename)
    if output.is_dir():
        return output / filename
    return output


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    try:
        with session_scope() as db:
            rows = FinanceService.transactions_for_export(db, args.user_id, args.start, args.end)
    except FinanceServiceError as exc:
        LOGGER.error("Export failed: %s", exc)
        return 1

    destination = _resolve_destination(args.output, args.start, args.end)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(render_transactions_xlsx(rows))
    LOGGER.info("Wrote %d transactions to %s", len(rows), destination)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
