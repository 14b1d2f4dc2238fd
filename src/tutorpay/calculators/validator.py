"""Row validation and payment calculation for time entries.

Each entry type accepts a fixed set of fields. A valid row becomes one
of the typed entry variants (SessionEntry, HoursEntry, LeaveEntry,
AdjustmentEntry) together with its ``rate_used`` and ``total_payment``.
Violations are collected as Hebrew messages on the result; validation
never raises and never drops a row.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable, Sequence

from tutorpay.calculators.coerce import field_value, to_decimal
from tutorpay.calculators.leave import get_leave_kind_from_entry_type, is_leave_entry_type
from tutorpay.calculators.payroll import NoWorkingDaysError, calculate_global_daily_rate
from tutorpay.calculators.types import (
    GENERIC_RATE_SERVICE_ID,
    ZERO,
    AdjustmentEntry,
    Employee,
    EmployeeType,
    HoursEntry,
    LeaveEntry,
    Service,
    SessionEntry,
    TimeEntry,
    WorkSession,
)

ERR_MISSING_SERVICE = "חסר שירות"
ERR_RATE_NOT_FOUND = "לא נמצא תעריף"
ERR_SERVICE_FOR_GLOBAL = "אין להזין שירות לעובד גלובלי"
ERR_SESSIONS_COUNT = "מספר שיעורים חסר או קטן מ-1"
ERR_STUDENTS_COUNT = "מספר תלמידים חסר או קטן מ-1"
ERR_HOURS_NOT_ALLOWED = "אין להזין שעות"
ERR_ADJUSTMENT_NOT_ALLOWED = "אין להזין סכום התאמה"
ERR_SERVICE_NOT_ALLOWED = "אין להזין שירות"
ERR_COUNTS_NOT_ALLOWED = "אין להזין שיעורים/תלמידים"
ERR_MISSING_HOURS = "חסרות שעות"
ERR_LEAVE_GLOBAL_ONLY = "חופשה בתשלום רק לעובד גלובלי"
ERR_IRRELEVANT_FIELDS = "שדות לא רלוונטיים"
ERR_MISSING_ADJUSTMENT = "חסר סכום התאמה"
ERR_DUPLICATE_ROW = "שורה כפולה"
ERR_UNKNOWN_ENTRY_TYPE = "סוג רישום לא נתמך"

# (employee_id, date, service_id) -> RateLookup-like object with rate/reason
RateLookupFn = Callable[..., Any]


@dataclass
class RowValidation:
    """Outcome of validating one row."""

    row: WorkSession
    rate_used: Decimal | None = None
    total_payment: Decimal | None = None
    errors: list[str] = field(default_factory=list)
    duplicate: bool = False
    entry: TimeEntry | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_session(self) -> WorkSession:
        """The input row carrying the computed rate and payment."""
        return replace(self.row, rate_used=self.rate_used, total_payment=self.total_payment)


@dataclass
class _Pricing:
    total_payment: Decimal | None
    rate_used: Decimal | None
    entry: TimeEntry | None


def _daily_rate(employee: Employee, row: WorkSession, rate: Decimal, errors: list[str]) -> Decimal | None:
    try:
        return calculate_global_daily_rate(employee, row.date, rate)
    except NoWorkingDaysError as exc:
        errors.append(str(exc))
        return None


def _validate_session(row: WorkSession, employee: Employee, rate: Decimal, errors: list[str]) -> _Pricing:
    if employee.employee_type == EmployeeType.GLOBAL:
        errors.append(ERR_SERVICE_FOR_GLOBAL)
    if not row.sessions_count or row.sessions_count < 1:
        errors.append(ERR_SESSIONS_COUNT)
    if not row.students_count or row.students_count < 1:
        errors.append(ERR_STUDENTS_COUNT)
    if row.hours:
        errors.append(ERR_HOURS_NOT_ALLOWED)
    if row.adjustment_amount:
        errors.append(ERR_ADJUSTMENT_NOT_ALLOWED)
    if errors:
        return _Pricing(None, rate, None)
    entry = SessionEntry(
        employee_id=employee.id,
        date=row.date,
        service_id=row.service_id,
        sessions_count=row.sessions_count,
        students_count=row.students_count,
    )
    return _Pricing(row.sessions_count * row.students_count * rate, rate, entry)


def _validate_hours(row: WorkSession, employee: Employee, rate: Decimal, errors: list[str]) -> _Pricing:
    if row.service_id:
        errors.append(ERR_SERVICE_NOT_ALLOWED)
    if row.sessions_count or row.students_count:
        errors.append(ERR_COUNTS_NOT_ALLOWED)
    if row.adjustment_amount:
        errors.append(ERR_ADJUSTMENT_NOT_ALLOWED)

    total = None
    if employee.employee_type == EmployeeType.HOURLY:
        if not row.hours:
            errors.append(ERR_MISSING_HOURS)
        if not errors:
            total = row.hours * rate
    elif employee.employee_type == EmployeeType.GLOBAL:
        # Flat daily rate; logged hours are informational.
        total = _daily_rate(employee, row, rate, errors)

    entry = HoursEntry(employee.id, row.date, row.hours) if not errors and total is not None else None
    return _Pricing(total, rate, entry)


def _validate_leave(row: WorkSession, employee: Employee, rate: Decimal, errors: list[str]) -> _Pricing:
    if employee.employee_type != EmployeeType.GLOBAL:
        errors.append(ERR_LEAVE_GLOBAL_ONLY)
    if row.service_id or row.hours or row.sessions_count or row.students_count or row.adjustment_amount:
        errors.append(ERR_IRRELEVANT_FIELDS)
    # Full daily rate; half-day fractions apply downstream.
    total = _daily_rate(employee, row, rate, errors)
    entry = None
    if not errors and total is not None:
        entry = LeaveEntry(
            employee_id=employee.id,
            date=row.date,
            entry_type=row.entry_type,
            kind=get_leave_kind_from_entry_type(row.entry_type),
        )
    return _Pricing(total, rate, entry)


def _validate_adjustment(row: WorkSession, employee: Employee, errors: list[str]) -> _Pricing:
    if row.service_id or row.hours or row.sessions_count or row.students_count:
        errors.append(ERR_IRRELEVANT_FIELDS)
    if row.adjustment_amount is None:
        errors.append(ERR_MISSING_ADJUSTMENT)
    if errors:
        return _Pricing(None, None, None)
    amount = row.adjustment_amount
    return _Pricing(amount, None, AdjustmentEntry(employee.id, row.date, amount))


def _known_service(service_id: str | None, services: Sequence[Service]) -> bool:
    """A service id is required; when a catalog is given it must be listed."""
    if not service_id:
        return False
    return not services or any(service.id == service_id for service in services)


_RATED_VALIDATORS = {
    "session": _validate_session,
    "hours": _validate_hours,
}


def _lookup_rate(
    row: WorkSession, employee: Employee, get_rate_for_date: RateLookupFn, errors: list[str]
) -> Decimal:
    service_id = row.service_id if row.entry_type == "session" else GENERIC_RATE_SERVICE_ID
    lookup = get_rate_for_date(employee.id, row.date, service_id)
    rate = to_decimal(field_value(lookup, "rate")) or ZERO
    if not rate:
        errors.append(field_value(lookup, "reason") or ERR_RATE_NOT_FOUND)
    return rate


def validate_row(
    row: WorkSession,
    employee: Employee,
    services: Sequence[Service],
    get_rate_for_date: RateLookupFn,
    errors: Sequence[str] = (),
) -> RowValidation:
    """Validate one row and compute its payment.

    Adjustments are rate-independent: no rate is looked up, ``rate_used``
    is None and ``total_payment`` is the adjustment amount verbatim.
    ``errors`` seeds the result with messages found earlier (e.g. by a
    parser).
    """
    collected = list(errors)

    if row.entry_type == "adjustment":
        pricing = _validate_adjustment(row, employee, collected)
        return RowValidation(row, pricing.rate_used, pricing.total_payment, collected, entry=pricing.entry)

    if row.entry_type == "session" and not _known_service(row.service_id, services):
        collected.append(ERR_MISSING_SERVICE)
    rate = _lookup_rate(row, employee, get_rate_for_date, collected)

    handler = _RATED_VALIDATORS.get(row.entry_type)
    if handler is None and is_leave_entry_type(row.entry_type):
        handler = _validate_leave
    if handler is None:
        collected.append(ERR_UNKNOWN_ENTRY_TYPE)
        return RowValidation(row, rate, None, collected)

    pricing = handler(row, employee, rate, collected)
    return RowValidation(row, pricing.rate_used, pricing.total_payment, collected, entry=pricing.entry)


def validate_rows(
    rows: Sequence[WorkSession],
    employee: Employee,
    services: Sequence[Service],
    get_rate_for_date: RateLookupFn,
    include_duplicates: bool = False,
) -> list[RowValidation]:
    """Validate a batch for one employee and flag repeated rows.

    A row repeating an earlier ``employee|date|entry_type|service_id`` key
    is marked ``duplicate``; unless ``include_duplicates`` it also gets a
    duplicate-row error.
    """
    seen: set[str] = set()
    results = []
    for row in rows:
        result = validate_row(row, employee, services, get_rate_for_date)
        key = f"{employee.id}|{row.date.isoformat()}|{row.entry_type}|{row.service_id or ''}"
        if key in seen:
            result.duplicate = True
            if not include_duplicates:
                result.errors.append(ERR_DUPLICATE_ROW)
        else:
            seen.add(key)
        results.append(result)
    return results
