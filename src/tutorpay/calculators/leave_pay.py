"""Leave day valuation for hourly and instructor employees.

A paid leave day is worth what the employee earned on an average worked
day in the lookback window (``legal``), their average hourly pay times
their average day length (``avg_hourly_x_avg_day_hours``), or a fixed
rate.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Sequence

from tutorpay.calculators.coerce import to_date, to_decimal
from tutorpay.calculators.leave_balance import resolve_leave_pay_method_context
from tutorpay.calculators.types import (
    ZERO,
    LeaveDayValue,
    LeavePayMethod,
    LeaveValueContext,
    Service,
    WorkSession,
)

logger = logging.getLogger(__name__)

WORK_ENTRY_TYPES = frozenset({"hours", "session"})
TWELVE_MONTHS = 12


@dataclass
class EarningsHistory:
    """Paid work in a lookback window."""

    total_earnings: Decimal = ZERO
    total_hours: Decimal = ZERO
    worked_days: set[date] = field(default_factory=set)


def subtract_months(day: date, months: int) -> date:
    """Same day ``months`` earlier, clamped to the end of a shorter month."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    _, last = calendar.monthrange(year, month)
    return date(year, month, min(day.day, last))


def _row_hours(row: WorkSession, services_by_id: dict[str, Service]) -> Decimal:
    hours = to_decimal(row.hours)
    if hours is not None and hours > 0:
        return hours
    if row.entry_type != "session":
        return ZERO
    service = services_by_id.get(row.service_id)
    sessions = row.sessions_count or 0
    if service is None or not service.duration_minutes or sessions <= 0:
        return ZERO
    return Decimal(service.duration_minutes) / 60 * sessions


def aggregate_employee_history(
    employee_id: str,
    work_sessions: Sequence[WorkSession],
    services: Sequence[Service],
    start: date,
    end: date,
) -> EarningsHistory:
    """Sum paid ``hours``/``session`` rows of one employee between two dates (inclusive)."""
    services_by_id = {service.id: service for service in services if service and service.id}
    history = EarningsHistory()
    for row in work_sessions:
        if row is None or row.deleted or row.employee_id != employee_id:
            continue
        if row.date < start or row.date > end:
            continue
        if row.payable is False or row.entry_type not in WORK_ENTRY_TYPES:
            continue
        amount = to_decimal(row.total_payment)
        if amount is not None:
            history.total_earnings += amount
        hours = _row_hours(row, services_by_id)
        if hours > 0:
            history.total_hours += hours
        if hours > 0 or amount:
            history.worked_days.add(row.date)
    return history


def _daily_value(method: LeavePayMethod, history: EarningsHistory) -> Decimal:
    days = len(history.worked_days)
    if not days or history.total_earnings <= 0:
        return ZERO
    if method == LeavePayMethod.AVG_HOURLY_X_AVG_DAY_HOURS:
        if history.total_hours <= 0:
            return ZERO
        avg_hourly = history.total_earnings / history.total_hours
        avg_day_hours = history.total_hours / days
        return avg_hourly * avg_day_hours
    return history.total_earnings / days


def _result(
    value: Decimal,
    method: LeavePayMethod,
    history: EarningsHistory | None,
    collect_diagnostics: bool,
    insufficient: bool = False,
    pre_start: bool = False,
) -> Decimal | LeaveDayValue:
    if not collect_diagnostics:
        return value
    history = history or EarningsHistory()
    return LeaveDayValue(
        value=value,
        method=method,
        insufficient_data=insufficient,
        pre_start_date=pre_start,
        total_earnings=history.total_earnings,
        total_hours=history.total_hours,
        worked_days_count=len(history.worked_days),
    )


def _log_insufficient(method: LeavePayMethod, employee_id: str, history: EarningsHistory | None) -> None:
    history = history or EarningsHistory()
    logger.debug(
        "Insufficient data for leave day value: method=%s employee=%s "
        "earnings=%s hours=%s worked_days=%d",
        method.value,
        employee_id,
        history.total_earnings,
        history.total_hours,
        len(history.worked_days),
    )


def select_leave_day_value(
    employee_id: str,
    day: date | str,
    context: LeaveValueContext,
    collect_diagnostics: bool = False,
) -> Decimal | LeaveDayValue:
    """Value one day of paid leave for an employee.

    Usable directly as the ``leave_day_value_selector`` of
    ``compute_period_totals``. Returns zero when there is not enough
    history (or no fixed rate) and for dates before the employee's start.
    With ``collect_diagnostics`` a LeaveDayValue is returned instead.
    """
    target = to_date(day) or date.today()
    employee = context.employee(employee_id)
    method_context = resolve_leave_pay_method_context(employee, context.leave_pay_policy)
    method = method_context.method

    if employee is not None and employee.start_date and target < employee.start_date:
        return _result(ZERO, method, None, collect_diagnostics, pre_start=True)

    if method == LeavePayMethod.FIXED_RATE:
        for candidate in (
            employee.leave_fixed_day_rate if employee is not None else None,
            context.leave_pay_policy.fixed_rate_default if context.leave_pay_policy else None,
        ):
            rate = to_decimal(candidate)
            if rate is not None and rate >= 0:
                return _result(rate, method, None, collect_diagnostics)
        _log_insufficient(method, employee_id, None)
        return _result(ZERO, method, None, collect_diagnostics, insufficient=True)

    sessions = [row for row in context.work_sessions if row is not None and not row.deleted]

    def window(months: int) -> tuple[Decimal, EarningsHistory]:
        history = aggregate_employee_history(
            employee_id, sessions, context.services, subtract_months(target, max(1, months)), target
        )
        return _daily_value(method, history), history

    best, history = window(method_context.lookback_months)
    if method == LeavePayMethod.LEGAL and method_context.legal_allow_12m_if_better:
        yearly, yearly_history = window(TWELVE_MONTHS)
        if yearly > best:
            best, history = yearly, yearly_history

    if best <= 0:
        _log_insufficient(method, employee_id, history)
        return _result(ZERO, method, history, collect_diagnostics, insufficient=True)
    return _result(best, method, history, collect_diagnostics)
