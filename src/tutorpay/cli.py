"""tutorpay Command Line Interface.

Operational tools over JSON exports:
- Period payroll totals
- Leave balance summaries and projections
- Time-entry row validation
- Holiday lookup

Usage:
    python -m tutorpay period-totals --sessions s.json --employees e.json --start 2024-02-01 --end 2024-02-29
    python -m tutorpay leave-summary --employee-id X --employees e.json --ledger l.json --policy p.json
    python -m tutorpay validate --rows r.json --employees e.json --rates rates.json --employee-id X
    python -m tutorpay holiday --policy p.json --date 2024-05-11
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from tutorpay.calculators.leave_balance import (
    compute_employee_leave_summary,
    find_holiday_for_date,
    project_balance_after_change,
)
from tutorpay.calculators.payroll import compute_period_totals
from tutorpay.calculators.rate_resolver import RateResolver
from tutorpay.calculators.types import Employee
from tutorpay.calculators.validator import validate_rows
from tutorpay.config import get_settings
from tutorpay.schemas import EmployeeIn, RateHistoryIn, ServiceIn, WorkSessionIn

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when CLI inputs cannot be loaded."""


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    try:
        return date.fromisoformat(s)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date: {s}") from exc


def parse_decimal(s: str) -> Decimal:
    """Parse decimal string."""
    try:
        return Decimal(s)
    except ArithmeticError as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {s}") from exc


def load_json_file(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc


def load_rows(path: str, model: Any) -> list[Any]:
    """Load a JSON list of rows and convert them through ``model``."""
    data = load_json_file(path)
    if not isinstance(data, list):
        raise ConfigurationError(f"Expected a JSON list in {path}")
    try:
        return [model.model_validate(item).to_domain() for item in data]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid row in {path}: {exc}") from exc


def to_jsonable(value: Any) -> Any:
    """Convert calculator results to JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [to_jsonable(item) for item in value]
        return sorted(items) if isinstance(value, (set, frozenset)) else items
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class TutorPayCli:
    """tutorpay Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m tutorpay",
            description="Payroll and leave accounting tools",
        )
        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {get_settings().engine_version}",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # period-totals command
        totals = subparsers.add_parser(
            "period-totals",
            help="Compute payroll totals for a period",
        )
        totals.add_argument("--sessions", required=True, help="Work sessions JSON file")
        totals.add_argument("--employees", required=True, help="Employees JSON file")
        totals.add_argument("--start", type=parse_date, required=True, help="Period start (YYYY-MM-DD)")
        totals.add_argument("--end", type=parse_date, required=True, help="Period end (YYYY-MM-DD)")
        totals.add_argument("--employee", help="Only this employee ID")
        totals.add_argument(
            "--employee-type",
            choices=["all", "hourly", "instructor", "global"],
            default="all",
            help="Only this employee type",
        )
        totals.add_argument("--service", default="all", help="Only this service ID")

        # leave-summary command
        summary = subparsers.add_parser(
            "leave-summary",
            help="Show an employee's leave balance",
        )
        summary.add_argument("--employee-id", required=True, help="Employee ID")
        summary.add_argument("--employees", required=True, help="Employees JSON file")
        summary.add_argument("--ledger", required=True, help="Leave ledger JSON file")
        summary.add_argument("--policy", help="Leave policy JSON file")
        summary.add_argument("--date", type=parse_date, help="Query date (default: today)")
        summary.add_argument(
            "--delta",
            type=parse_decimal,
            help="Project the balance after this change in days",
        )

        # validate command
        validate = subparsers.add_parser(
            "validate",
            help="Validate time-entry rows and compute payments",
        )
        validate.add_argument("--rows", required=True, help="Rows JSON file")
        validate.add_argument("--employees", required=True, help="Employees JSON file")
        validate.add_argument("--rates", required=True, help="Rate history JSON file")
        validate.add_argument("--services", help="Services JSON file")
        validate.add_argument("--employee-id", required=True, help="Employee the rows belong to")
        validate.add_argument(
            "--include-duplicates",
            action="store_true",
            help="Flag repeated rows without rejecting them",
        )

        # holiday command
        holiday = subparsers.add_parser(
            "holiday",
            help="Find the holiday rule covering a date",
        )
        holiday.add_argument("--policy", required=True, help="Leave policy JSON file")
        holiday.add_argument("--date", type=parse_date, required=True, help="Date (YYYY-MM-DD)")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., int]] = {
            "period-totals": self._cmd_period_totals,
            "leave-summary": self._cmd_leave_summary,
            "validate": self._cmd_validate,
            "holiday": self._cmd_holiday,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1
        try:
            return handler(parsed)
        except ConfigurationError as exc:
            logger.error("%s", exc)
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    def _emit(self, payload: Any) -> None:
        print(json.dumps(to_jsonable(payload), indent=2, ensure_ascii=False))

    def _find_employee(self, path: str, employee_id: str) -> tuple[Employee, list[Employee]]:
        employees = load_rows(path, EmployeeIn)
        for employee in employees:
            if employee.id == employee_id:
                return employee, employees
        raise ConfigurationError(f"Unknown employee: {employee_id}")

    def _cmd_period_totals(self, args: argparse.Namespace) -> int:
        """Compute period totals."""
        sessions = load_rows(args.sessions, WorkSessionIn)
        employees = load_rows(args.employees, EmployeeIn)
        totals = compute_period_totals(
            work_sessions=sessions,
            employees=employees,
            start_date=args.start,
            end_date=args.end,
            service_filter=args.service,
            employee_filter=args.employee,
            employee_type_filter=args.employee_type,
        )
        self._emit({
            "total_pay": totals.total_pay,
            "total_hours": totals.total_hours,
            "total_sessions": totals.total_sessions,
            "totals_by_employee": totals.totals_by_employee,
            "diagnostics": totals.diagnostics,
        })
        return 0

    def _cmd_leave_summary(self, args: argparse.Namespace) -> int:
        """Show leave balance."""
        employee, _ = self._find_employee(args.employees, args.employee_id)
        ledger = load_json_file(args.ledger)
        if not isinstance(ledger, list):
            raise ConfigurationError(f"Expected a JSON list in {args.ledger}")
        policy = load_json_file(args.policy) if args.policy else None
        try:
            if args.delta is not None:
                result = project_balance_after_change(employee, ledger, policy, args.date, args.delta)
            else:
                result = compute_employee_leave_summary(employee, ledger, policy, args.date)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid leave data: {exc}") from exc
        self._emit(result)
        return 0

    def _cmd_validate(self, args: argparse.Namespace) -> int:
        """Validate rows."""
        employee, employees = self._find_employee(args.employees, args.employee_id)
        rows = load_rows(args.rows, WorkSessionIn)
        rates = load_rows(args.rates, RateHistoryIn)
        services = load_rows(args.services, ServiceIn) if args.services else []
        resolver = RateResolver(employees, rates)
        results = validate_rows(
            rows,
            employee,
            services,
            resolver.get_rate_for_date,
            include_duplicates=args.include_duplicates,
        )
        self._emit([
            {
                "date": result.row.date,
                "entry_type": result.row.entry_type,
                "valid": result.is_valid,
                "duplicate": result.duplicate,
                "rate_used": result.rate_used,
                "total_payment": result.total_payment,
                "errors": result.errors,
            }
            for result in results
        ])
        return 0

    def _cmd_holiday(self, args: argparse.Namespace) -> int:
        """Look up a holiday."""
        policy = load_json_file(args.policy)
        try:
            match = find_holiday_for_date(policy, args.date)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid leave policy: {exc}") from exc
        if match is None:
            self._emit(None)
        else:
            self._emit({"label": match.label, "rule": match.rule})
        return 0


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = TutorPayCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
