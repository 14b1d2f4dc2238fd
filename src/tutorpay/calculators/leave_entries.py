"""Batch construction of leave time entries.

Turns leave requests (one employee and date each) into persistable
WorkSession rows. In ``mixed`` mode every request chooses its own
subtype (holiday or vacation), paid flag and half-day flag; otherwise all
requests share one explicit leave kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence

from tutorpay.calculators.coerce import coerce_boolean, field_value, to_date, to_decimal
from tutorpay.calculators.leave import (
    DEFAULT_MIXED_SUBTYPE,
    get_entry_type_for_leave_kind,
    get_leave_base_kind,
    get_leave_subtype_from_value,
    is_payable_leave_kind,
    normalize_mixed_subtype,
)
from tutorpay.calculators.leave_balance import resolve_leave_pay_method_context
from tutorpay.calculators.metadata import MetadataCapability, build_leave_metadata
from tutorpay.calculators.payroll import NoWorkingDaysError, calculate_global_daily_rate
from tutorpay.calculators.rate_resolver import RateNotFoundError
from tutorpay.calculators.types import (
    GENERIC_RATE_SERVICE_ID,
    HALF,
    ONE,
    ZERO,
    Employee,
    EmployeeType,
    LeaveKind,
    LeavePayPolicy,
    WorkSession,
)

MIXED_LEAVE_TYPE = "mixed"
REGULAR_ENTRY_TYPES = frozenset({"hours", "session"})
LEAVE_SOURCE = "multi_date_leave"


class UnsupportedLeaveTypeError(ValueError):
    """Raised when a requested leave type has no entry type."""

    def __init__(self, leave_type: Any):
        self.leave_type = leave_type
        super().__init__(f"Unsupported leave type: {leave_type!r}")


@dataclass(frozen=True)
class LeaveDateIssue:
    """A requested date that could not be booked."""

    employee_id: str
    employee_name: str
    date: date
    start_date: date | None = None


class LeaveConflictError(Exception):
    """Raised when no leave row could be produced because of conflicts."""

    code = "TIME_ENTRY_LEAVE_CONFLICT"

    def __init__(self, conflicts: list[LeaveDateIssue], invalid_start_dates: list[LeaveDateIssue]):
        self.conflicts = conflicts
        self.invalid_start_dates = invalid_start_dates
        super().__init__(
            f"Leave conflicts: {len(conflicts)} occupied day(s), "
            f"{len(invalid_start_dates)} date(s) before start"
        )


@dataclass
class LeaveBatch:
    inserted: list[WorkSession] = field(default_factory=list)
    conflicts: list[LeaveDateIssue] = field(default_factory=list)
    invalid_start_dates: list[LeaveDateIssue] = field(default_factory=list)


@dataclass(frozen=True)
class _ResolvedLeave:
    kind: LeaveKind
    paid: bool
    half_day: bool
    mixed_subtype: str | None


def _resolve_mixed(request: Any) -> _ResolvedLeave:
    subtype = normalize_mixed_subtype(field_value(request, "subtype")) or DEFAULT_MIXED_SUBTYPE
    paid = coerce_boolean(field_value(request, "paid")) is not False
    half_day = paid and coerce_boolean(field_value(request, "half_day")) is True
    if half_day:
        kind = LeaveKind.HALF_DAY
    elif not paid:
        kind = LeaveKind.HOLIDAY_UNPAID if subtype == "holiday" else LeaveKind.VACATION_UNPAID
    else:
        kind = LeaveKind.SYSTEM_PAID if subtype == "holiday" else LeaveKind.EMPLOYEE_PAID
    return _ResolvedLeave(kind, paid, half_day, subtype)


def _resolve_explicit(leave_type: Any) -> _ResolvedLeave:
    base = get_leave_base_kind(leave_type)
    paid = is_payable_leave_kind(base)
    subtype = get_leave_subtype_from_value(leave_type)
    kind = subtype or base
    return _ResolvedLeave(kind, paid, base == LeaveKind.HALF_DAY, None)


def _occupied_days(existing_sessions: Iterable[WorkSession]) -> set[str]:
    return {
        row.day_key
        for row in existing_sessions
        if row is not None and not row.deleted and row.entry_type in REGULAR_ENTRY_TYPES
    }


def _full_day_value(
    employee: Employee,
    day: date,
    get_rate_for_date: Callable[..., Any],
    leave_day_value: Callable[[str, date], Any] | None,
) -> Decimal:
    lookup = get_rate_for_date(employee.id, day, GENERIC_RATE_SERVICE_ID)
    rate = to_decimal(field_value(lookup, "rate")) or ZERO
    if rate <= 0:
        rate = to_decimal(employee.current_rate) or ZERO
    if rate <= 0 and employee.employee_type == EmployeeType.GLOBAL:
        raise RateNotFoundError(employee.id, day, GENERIC_RATE_SERVICE_ID, field_value(lookup, "reason"))

    value = to_decimal(leave_day_value(employee.id, day)) if leave_day_value else None
    if value is not None and value > 0:
        return value
    if employee.employee_type == EmployeeType.GLOBAL:
        try:
            return calculate_global_daily_rate(employee, day, rate)
        except NoWorkingDaysError:
            return ZERO
    return rate if rate > 0 else ZERO


def build_leave_entries(
    entries: Sequence[Any],
    employees: Sequence[Employee],
    get_rate_for_date: Callable[..., Any],
    leave_type: str = MIXED_LEAVE_TYPE,
    existing_sessions: Sequence[WorkSession] = (),
    leave_day_value: Callable[[str, date], Any] | None = None,
    leave_pay_policy: LeavePayPolicy | None = None,
    metadata_capability: MetadataCapability | None = None,
) -> LeaveBatch:
    """Build leave rows for a batch of requests.

    Requests dated before the employee's start, or on a day that already
    has hours/session rows (or an earlier request of this batch), are
    reported instead of booked. Paid leave is valued at the leave day
    value, else the global daily rate, else the employee's flat rate, and
    multiplied by the fraction (0.5 for a half day). Unpaid leave rows are
    not payable and pay nothing.

    Raises:
        UnsupportedLeaveTypeError: ``leave_type`` is not a leave kind.
        RateNotFoundError: A global employee has no rate for a paid day.
        LeaveConflictError: Every request was rejected.
    """
    mixed = leave_type == MIXED_LEAVE_TYPE
    explicit = None
    if not mixed:
        if get_entry_type_for_leave_kind(leave_type) is None:
            raise UnsupportedLeaveTypeError(leave_type)
        explicit = _resolve_explicit(leave_type)

    employees_by_id = {employee.id: employee for employee in employees}
    occupied = _occupied_days(existing_sessions)
    write_metadata = metadata_capability is not None and metadata_capability.supported
    batch = LeaveBatch()

    for request in entries:
        employee = employees_by_id.get(field_value(request, "employee_id"))
        day = to_date(field_value(request, "date"))
        if employee is None or day is None:
            continue
        if employee.start_date and day < employee.start_date:
            batch.invalid_start_dates.append(
                LeaveDateIssue(employee.id, employee.name, day, employee.start_date)
            )
            continue
        key = f"{employee.id}|{day.isoformat()}"
        if key in occupied:
            batch.conflicts.append(LeaveDateIssue(employee.id, employee.name, day))
            continue

        resolved = _resolve_mixed(request) if mixed else explicit
        entry_type = get_entry_type_for_leave_kind(resolved.kind)
        if entry_type is None:
            raise UnsupportedLeaveTypeError(resolved.kind)

        fraction = HALF if resolved.half_day else ONE
        full_day = (
            _full_day_value(employee, day, get_rate_for_date, leave_day_value) if resolved.paid else ZERO
        )
        session = WorkSession(
            employee_id=employee.id,
            date=day,
            entry_type=entry_type,
            hours=ZERO,
            notes=field_value(request, "notes") or None,
            rate_used=full_day if resolved.paid and full_day > 0 else None,
            total_payment=full_day * fraction if resolved.paid else ZERO,
            payable=resolved.paid,
        )
        if write_metadata:
            pay_context = resolve_leave_pay_method_context(employee, leave_pay_policy)
            unpaid_subtype = get_leave_subtype_from_value(resolved.kind)
            session.metadata = build_leave_metadata(
                source=LEAVE_SOURCE,
                subtype=resolved.mixed_subtype or (unpaid_subtype.value if unpaid_subtype else None),
                mixed_paid=resolved.paid if mixed else None,
                method=pay_context.method.value,
                lookback_months=pay_context.lookback_months,
                legal_allow_12m_if_better=pay_context.legal_allow_12m_if_better,
                override_applied=pay_context.override_applied,
                extra={"source_context": "multi_date_mixed"} if mixed else None,
            )
        batch.inserted.append(session)
        occupied.add(key)

    if not batch.inserted:
        if batch.conflicts or batch.invalid_start_dates:
            raise LeaveConflictError(batch.conflicts, batch.invalid_start_dates)
        raise ValueError("No valid leave rows to build")
    return batch
