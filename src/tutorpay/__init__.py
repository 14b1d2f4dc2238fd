"""Payroll and leave accounting engine for tutoring organizations."""

from tutorpay.calculators.day_aggregator import collect_global_day_aggregates
from tutorpay.calculators.leave import infer_leave_kind, infer_leave_type
from tutorpay.calculators.leave_balance import (
    compute_employee_leave_summary,
    find_holiday_for_date,
    project_balance_after_change,
)
from tutorpay.calculators.leave_entries import LeaveConflictError, build_leave_entries
from tutorpay.calculators.leave_pay import select_leave_day_value
from tutorpay.calculators.metadata import MetadataCapability
from tutorpay.calculators.payroll import (
    NoWorkingDaysError,
    calculate_global_daily_rate,
    compute_period_totals,
    effective_working_days,
)
from tutorpay.calculators.rate_resolver import RateNotFoundError, RateResolver
from tutorpay.calculators.validator import validate_row, validate_rows
from tutorpay.config import Settings, get_settings

__all__ = [
    "collect_global_day_aggregates",
    "infer_leave_kind",
    "infer_leave_type",
    "compute_employee_leave_summary",
    "find_holiday_for_date",
    "project_balance_after_change",
    "LeaveConflictError",
    "build_leave_entries",
    "select_leave_day_value",
    "MetadataCapability",
    "NoWorkingDaysError",
    "calculate_global_daily_rate",
    "compute_period_totals",
    "effective_working_days",
    "RateNotFoundError",
    "RateResolver",
    "validate_row",
    "validate_rows",
    "Settings",
    "get_settings",
]
