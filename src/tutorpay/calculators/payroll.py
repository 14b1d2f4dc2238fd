"""Payroll rate derivation and period aggregation."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence

from tutorpay.calculators.coerce import to_date, to_decimal
from tutorpay.calculators.day_aggregator import collect_global_day_aggregates, is_global_day_row
from tutorpay.calculators.leave import get_leave_value_multiplier, is_leave_entry_type
from tutorpay.calculators.types import (
    DAY_NAMES,
    ZERO,
    Employee,
    EmployeePeriodTotals,
    EmployeeType,
    LeaveSessionValue,
    LeaveValueContext,
    LeavePayPolicy,
    PeriodTotals,
    Service,
    WorkSession,
)
from tutorpay.config import get_settings

# Selector signature: (employee_id, date, context) -> day value
LeaveDayValueSelector = Callable[[str, date, LeaveValueContext], Any]
LeaveDayValueResolver = Callable[[str, date], Decimal]

EMPLOYMENT_SCOPES: dict[str, str] = {
    "full_time": "משרה מלאה",
    "half_time": "חצי משרה",
    "three_quarters_time": "75% משרה",
    "quarter_time": "25% משרה",
}
_SCOPE_BY_LABEL = {label: value for value, label in EMPLOYMENT_SCOPES.items()}


class NoWorkingDaysError(ValueError):
    """Raised when an employee has no working days in the target month."""

    def __init__(self, employee_id: str | None, month: date):
        self.employee_id = employee_id
        self.month = month
        super().__init__("Employee has no defined working days in this month")


def day_name(day: date) -> str:
    """Sunday-first weekday name (SUN..SAT)."""
    return DAY_NAMES[(day.weekday() + 1) % 7]


def _require_date(value: date | str) -> date:
    parsed = to_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed


def effective_working_days(employee: Employee | None, day: date | str) -> int:
    """Count the days of ``day``'s month that fall on the employee's working days."""
    target = _require_date(day)
    working_days = employee.working_days if employee is not None else None
    if working_days is None:
        working_days = get_settings().default_working_days
    _, days_in_month = calendar.monthrange(target.year, target.month)
    first = target.replace(day=1)
    return sum(
        1
        for offset in range(days_in_month)
        if day_name(first + timedelta(days=offset)) in working_days
    )


def calculate_global_daily_rate(
    employee: Employee | None, day: date | str, monthly_rate: Decimal | int | str
) -> Decimal:
    """Monthly salary divided over the working days of that month.

    Raises:
        NoWorkingDaysError: If the employee works no day of that month.
    """
    target = _require_date(day)
    days = effective_working_days(employee, target)
    if not days:
        raise NoWorkingDaysError(employee.id if employee else None, target.replace(day=1))
    rate = to_decimal(monthly_rate) or ZERO
    return rate / days


def clamp_date_string(value: str) -> str:
    """Clamp an out-of-range ``YYYY-MM-DD`` to the last day of its month."""
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        parsed = None
    if parsed is not None and parsed.isoformat() == value:
        return value
    year, month = (int(part) for part in value.split("-")[:2])
    _, last = calendar.monthrange(year, month)
    return f"{year:04d}-{month:02d}-{last:02d}"


def _is_before_start(employee: Employee | None, day: date) -> bool:
    return bool(employee and employee.start_date and day < employee.start_date)


def create_leave_day_value_resolver(
    employees: Sequence[Employee] = (),
    work_sessions: Sequence[WorkSession] = (),
    services: Sequence[Service] = (),
    leave_pay_policy: LeavePayPolicy | None = None,
    leave_day_value_selector: LeaveDayValueSelector | None = None,
) -> LeaveDayValueResolver:
    """Wrap a selector into a memoizing ``(employee_id, date) -> value`` function.

    Dates before the employee's start are worth zero; unusable selector
    results collapse to zero.
    """
    employees_by_id = {emp.id: emp for emp in employees if emp and emp.id}
    context = LeaveValueContext(
        employees=list(employees),
        work_sessions=[row for row in work_sessions if row and not row.deleted],
        services=list(services),
        leave_pay_policy=leave_pay_policy,
    )
    cache: dict[tuple[str, date], Decimal] = {}

    def resolve(employee_id: str, day: date) -> Decimal:
        if not employee_id or day is None or leave_day_value_selector is None:
            return ZERO
        key = (employee_id, day)
        if key in cache:
            return cache[key]
        if _is_before_start(employees_by_id.get(employee_id), day):
            cache[key] = ZERO
            return ZERO
        value = to_decimal(leave_day_value_selector(employee_id, day, context))
        safe = value if value is not None and value > 0 else ZERO
        cache[key] = safe
        return safe

    return resolve


def resolve_leave_session_value(
    session: WorkSession | None,
    resolver: LeaveDayValueResolver | None,
    employee: Employee | None = None,
) -> LeaveSessionValue:
    """Value a leave row at the resolver's day value times its multiplier.

    Unpaid and non-leave rows are worth nothing and never reach the
    resolver. Leave dated before the employee's start is zeroed and
    flagged. When the resolver has no usable value the stored
    ``total_payment`` is used.
    """
    if session is None or session.payable is False or not is_leave_entry_type(session.entry_type):
        return LeaveSessionValue(amount=ZERO, multiplier=ZERO)
    multiplier = get_leave_value_multiplier(session)
    if _is_before_start(employee, session.date):
        return LeaveSessionValue(amount=ZERO, multiplier=multiplier, pre_start_date=True)
    if resolver is not None:
        base = to_decimal(resolver(session.employee_id, session.date))
        if base is not None and base > 0:
            return LeaveSessionValue(amount=base * multiplier, multiplier=multiplier)
    fallback = to_decimal(session.total_payment)
    return LeaveSessionValue(amount=fallback if fallback is not None else ZERO, multiplier=multiplier)


def normalize_employment_scope(value: Any) -> str:
    """Map a scope value or its Hebrew label to the system value ('' if unknown)."""
    raw = value if isinstance(value, str) else getattr(value, "employment_scope", None)
    if not isinstance(raw, str) or not raw.strip():
        return ""
    trimmed = raw.strip()
    if trimmed.lower() in EMPLOYMENT_SCOPES:
        return trimmed.lower()
    return _SCOPE_BY_LABEL.get(trimmed, "")


def sanitize_employment_scope_filter(values: Iterable[Any] | None) -> list[str]:
    result: list[str] = []
    for value in values or ():
        normalized = normalize_employment_scope(value)
        if normalized and normalized not in result:
            result.append(normalized)
    return result


def _row_amount(row: WorkSession) -> Decimal:
    amount = to_decimal(row.total_payment)
    return amount if amount is not None else ZERO


def compute_period_totals(
    work_sessions: Sequence[WorkSession] = (),
    employees: Sequence[Employee] = (),
    start_date: date | str | None = None,
    end_date: date | str | None = None,
    service_filter: str = "all",
    employee_filter: str | None = None,
    employee_type_filter: str = "all",
    employment_scope_filter: Iterable[str] | None = None,
    leave_day_value_selector: LeaveDayValueSelector | None = None,
    services: Sequence[Service] = (),
    leave_pay_policy: LeavePayPolicy | None = None,
) -> PeriodTotals:
    """Fold a period's rows into per-employee and organization totals.

    ``pay`` sums the payable amount of every row type (work, leave and
    adjustments); rows with ``payable=False`` count as zero. A global
    employee's hours and leave rows are folded per day through
    ``collect_global_day_aggregates`` so a day is paid once. The
    organization total is the sum of the per-employee buckets, so the
    report header always equals the sum of its table.
    """
    employees_by_id = {emp.id: emp for emp in employees}
    start = to_date(start_date)
    end = to_date(end_date)
    scopes = sanitize_employment_scope_filter(employment_scope_filter)

    def include(row: WorkSession) -> bool:
        if row is None or row.deleted:
            return False
        if start is not None and row.date < start:
            return False
        if end is not None and row.date > end:
            return False
        emp = employees_by_id.get(row.employee_id)
        if emp is None:
            return False
        if employee_filter and row.employee_id != employee_filter:
            return False
        if employee_type_filter != "all" and emp.employee_type != employee_type_filter:
            return False
        if service_filter != "all" and row.service_id != service_filter:
            return False
        if scopes and normalize_employment_scope(emp) not in scopes:
            return False
        return not _is_before_start(emp, row.date)

    filtered = [row for row in work_sessions if include(row)]

    resolver = None
    if leave_day_value_selector is not None:
        resolver = create_leave_day_value_resolver(
            employees=employees,
            work_sessions=work_sessions,
            services=services,
            leave_pay_policy=leave_pay_policy,
            leave_day_value_selector=leave_day_value_selector,
        )

    result = PeriodTotals(filtered_sessions=filtered)
    buckets: dict[str, EmployeePeriodTotals] = {}
    unique_paid_days: set[str] = set()
    global_day_rows: list[WorkSession] = []

    for row in filtered:
        emp = employees_by_id[row.employee_id]
        bucket = buckets.setdefault(row.employee_id, EmployeePeriodTotals(employee_id=row.employee_id))
        is_leave = is_leave_entry_type(row.entry_type)
        is_paid_leave = is_leave and row.payable is not False
        multiplier = ZERO

        if row.payable is False:
            pay_amount = ZERO
        elif is_paid_leave and resolver is not None and emp.employee_type != EmployeeType.GLOBAL:
            value = resolve_leave_session_value(row, resolver, employee=emp)
            pay_amount = value.amount
            multiplier = value.multiplier
        else:
            pay_amount = _row_amount(row)

        if row.payable is not False and is_global_day_row(row, emp):
            global_day_rows.append(row)
        else:
            bucket.pay += pay_amount

        if row.entry_type == "adjustment" and pay_amount:
            bucket.adjustments += pay_amount
            result.diagnostics.adjustments_sum += pay_amount

        if row.entry_type == "hours":
            bucket.hours += to_decimal(row.hours) or ZERO

        if row.entry_type == "session":
            bucket.sessions += int(row.sessions_count or 0)

        if is_paid_leave:
            bucket.leave_pay += pay_amount
            multiplier = multiplier or get_leave_value_multiplier(row)
            bucket.days_paid += multiplier
            result.diagnostics.paid_leave_days += multiplier
            unique_paid_days.add(row.day_key)
            continue

        if row.payable is not False and pay_amount:
            unique_paid_days.add(row.day_key)

    for aggregate in collect_global_day_aggregates(global_day_rows, employees_by_id).values():
        buckets[aggregate.employee_id].pay += aggregate.daily_amount

    result.totals_by_employee = list(buckets.values())
    result.total_pay = sum((b.pay for b in result.totals_by_employee), ZERO)
    result.total_hours = sum((b.hours for b in result.totals_by_employee), ZERO)
    result.total_sessions = sum(b.sessions for b in result.totals_by_employee)
    result.diagnostics.unique_paid_days = len(unique_paid_days)
    return result


# ---------------------------------------------------------------------------
# Dashboard reducers
# ---------------------------------------------------------------------------


@dataclass
class ReportFilters:
    """Filters shared by the dashboard reducers."""

    date_from: date | None = None
    date_to: date | None = None
    selected_employee: str | None = None
    employee_type: str = "all"
    service_id: str = "all"
    employment_scopes: Sequence[str] = ()


def _matches_filters(row: WorkSession, emp: Employee, filters: ReportFilters) -> bool:
    if row is None or row.deleted:
        return False
    if filters.date_from and row.date < filters.date_from:
        return False
    if filters.date_to and row.date > filters.date_to:
        return False
    if filters.selected_employee and row.employee_id != filters.selected_employee:
        return False
    if filters.employee_type != "all" and emp.employee_type != filters.employee_type:
        return False
    if filters.service_id != "all" and row.service_id != filters.service_id:
        return False
    scopes = sanitize_employment_scope_filter(filters.employment_scopes)
    if scopes and normalize_employment_scope(emp) not in scopes:
        return False
    return True


def sum_hourly_hours(
    entries: Sequence[WorkSession],
    employees: Sequence[Employee],
    filters: ReportFilters | None = None,
) -> Decimal:
    """Hours logged by hourly employees."""
    filters = filters or ReportFilters()
    by_id = {emp.id: emp for emp in employees}
    total = ZERO
    for row in entries:
        emp = by_id.get(row.employee_id) if row else None
        if emp is None or emp.employee_type != EmployeeType.HOURLY:
            continue
        if row.entry_type != "hours" or not _matches_filters(row, emp, filters):
            continue
        total += to_decimal(row.hours) or ZERO
    return total


def count_global_effective_days(
    entries: Sequence[WorkSession],
    employees: Sequence[Employee],
    filters: ReportFilters | None = None,
    exclude_paid_leave: bool = True,
) -> int:
    """Distinct employee-days worked by global employees."""
    filters = filters or ReportFilters()
    by_id = {emp.id: emp for emp in employees}
    days: set[str] = set()
    for row in entries:
        emp = by_id.get(row.employee_id) if row else None
        if emp is None or emp.employee_type != EmployeeType.GLOBAL:
            continue
        if not _matches_filters(row, emp, filters):
            continue
        is_leave = is_leave_entry_type(row.entry_type)
        if row.entry_type != "hours" and not is_leave:
            continue
        if exclude_paid_leave and is_leave:
            continue
        days.add(row.day_key)
    return len(days)


def sum_instructor_sessions(
    entries: Sequence[WorkSession],
    services: Sequence[Service],
    employees: Sequence[Employee],
    filters: ReportFilters | None = None,
) -> int:
    """Lessons given by instructors for known services."""
    filters = filters or ReportFilters()
    service_ids = {service.id for service in services}
    by_id = {emp.id: emp for emp in employees}
    total = 0
    for row in entries:
        emp = by_id.get(row.employee_id) if row else None
        if emp is None or emp.employee_type != EmployeeType.INSTRUCTOR:
            continue
        if row.service_id not in service_ids or row.entry_type != "session":
            continue
        if not _matches_filters(row, emp, filters):
            continue
        total += int(row.sessions_count or 0)
    return total


@dataclass
class GlobalDayAmount:
    first_row_id: str | None
    daily_amount: Decimal
    payable: bool
    day_type: str


@dataclass
class GlobalDayTotals:
    by_key: dict[str, GlobalDayAmount] = field(default_factory=dict)
    total: Decimal = ZERO


def aggregate_global_day_for_date(
    rows: Sequence[WorkSession], employees_by_id: dict[str, Employee]
) -> GlobalDayTotals:
    """First-row-wins daily amounts for global employees.

    Rows without a stored payment are valued from ``rate_used`` as a
    monthly salary.
    """
    result = GlobalDayTotals()
    for row in rows:
        emp = employees_by_id.get(row.employee_id) if row else None
        if not is_global_day_row(row, emp) or row.day_key in result.by_key:
            continue
        amount = to_decimal(row.total_payment)
        if amount is None:
            rate = to_decimal(row.rate_used)
            amount = calculate_global_daily_rate(emp, row.date, rate) if rate is not None else ZERO
        result.by_key[row.day_key] = GlobalDayAmount(
            first_row_id=row.id,
            daily_amount=amount,
            payable=row.payable is not False,
            day_type=row.entry_type,
        )
        result.total += amount
    return result
