"""Type definitions for the payroll and leave calculators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Union

# Weekday names in Sunday-first order (index == day of week, Sunday=0).
DAY_NAMES = ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT")

# Rate-history service id used for hourly and global employees.
GENERIC_RATE_SERVICE_ID = "00000000-0000-0000-0000-000000000000"

ZERO = Decimal("0")
ONE = Decimal("1")
HALF = Decimal("0.5")

DEFAULT_LEGAL_INFO_URL = (
    "https://www.kolzchut.org.il/he/"
    "%D7%97%D7%99%D7%A9%D7%95%D7%91_%D7%9E%D7%A1%D7%A4%D7%A8_%D7%99%D7%9E%D7%99_"
    "%D7%94%D7%97%D7%95%D7%A4%D7%A9%D7%94_%D7%94%D7%A9%D7%A0%D7%AA%D7%99%D7%AA"
)


class EmployeeType(str, Enum):
    """How an employee is paid."""

    HOURLY = "hourly"
    GLOBAL = "global"
    INSTRUCTOR = "instructor"


class LeaveKind(str, Enum):
    """Canonical leave kinds.

    UNPAID is the base kind both unpaid subtypes collapse to; MIXED marks a
    batch request whose rows are resolved per date.
    """

    SYSTEM_PAID = "system_paid"
    EMPLOYEE_PAID = "employee_paid"
    VACATION_UNPAID = "vacation_unpaid"
    HOLIDAY_UNPAID = "holiday_unpaid"
    HALF_DAY = "half_day"
    UNPAID = "unpaid"
    MIXED = "mixed"


class LeavePayMethod(str, Enum):
    """How a day of leave is valued for hourly and instructor employees."""

    LEGAL = "legal"
    AVG_HOURLY_X_AVG_DAY_HOURS = "avg_hourly_x_avg_day_hours"
    FIXED_RATE = "fixed_rate"


@dataclass
class Employee:
    """Employee record as seen by the payroll engine (read-only)."""

    id: str
    employee_type: EmployeeType
    working_days: frozenset[str] | None = None
    start_date: date | None = None
    annual_leave_days: Decimal = ZERO
    leave_pay_method: str | None = None
    leave_fixed_day_rate: Decimal | None = None
    employment_scope: str | None = None
    current_rate: Decimal | None = None
    name: str = ""

    @property
    def is_global(self) -> bool:
        return self.employee_type == EmployeeType.GLOBAL


@dataclass
class Service:
    """A billable instruction service."""

    id: str
    name: str = ""
    duration_minutes: int | None = None


@dataclass
class WorkSession:
    """One persisted time-entry row (work, leave or adjustment on one day).

    ``total_payment`` is the authoritative payable amount; a row with
    ``payable=False`` contributes nothing to totals.
    """

    employee_id: str
    date: date
    entry_type: str
    id: str | None = None
    service_id: str | None = None
    hours: Decimal | None = None
    sessions_count: int | None = None
    students_count: int | None = None
    adjustment_amount: Decimal | None = None
    rate_used: Decimal | None = None
    total_payment: Decimal | None = None
    payable: bool = True
    metadata: dict[str, Any] | None = None
    deleted: bool = False
    leave_type: str | None = None
    leave_kind: str | None = None
    notes: str | None = None

    @property
    def day_key(self) -> str:
        """Key identifying the employee's calendar day."""
        return f"{self.employee_id}|{self.date.isoformat()}"


# ---------------------------------------------------------------------------
# Validated entry variants. Each carries only the fields legal for its type.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionEntry:
    """Instructor lesson(s) for one service."""

    employee_id: str
    date: date
    service_id: str
    sessions_count: int
    students_count: int


@dataclass(frozen=True)
class HoursEntry:
    """Hours worked; ``hours`` is informational for global employees."""

    employee_id: str
    date: date
    hours: Decimal | None


@dataclass(frozen=True)
class LeaveEntry:
    """A day (or part of a day) of leave."""

    employee_id: str
    date: date
    entry_type: str
    kind: LeaveKind


@dataclass(frozen=True)
class AdjustmentEntry:
    """A manual, rate-independent payment adjustment."""

    employee_id: str
    date: date
    amount: Decimal


TimeEntry = Union[SessionEntry, HoursEntry, LeaveEntry, AdjustmentEntry]


@dataclass(frozen=True)
class LedgerEntry:
    """One signed adjustment to an employee's leave bank, in days."""

    employee_id: str
    date: date
    delta_days: Decimal
    leave_type: str | None = None
    notes: str | None = None
    work_session_id: str | None = None


@dataclass(frozen=True)
class HolidayRule:
    """Organization holiday; yearly rules compare month/day only."""

    id: str
    name: str
    type: str
    start_date: date | None
    end_date: date | None
    recurrence: str | None = None
    half_day: bool = False
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class LeavePolicy:
    """Organization leave policy."""

    allow_half_day: bool = False
    allow_negative_balance: bool = False
    negative_floor_days: Decimal = ZERO
    carryover_enabled: bool = False
    carryover_max_days: Decimal = ZERO
    holiday_rules: tuple[HolidayRule, ...] = ()


@dataclass(frozen=True)
class LeavePayPolicy:
    """Organization policy for valuing a day of leave."""

    default_method: LeavePayMethod = LeavePayMethod.LEGAL
    lookback_months: int = 3
    legal_allow_12m_if_better: bool = False
    fixed_rate_default: Decimal | None = None
    legal_info_url: str = DEFAULT_LEGAL_INFO_URL


@dataclass(frozen=True)
class RateHistory:
    """A rate effective from ``effective_date`` for an employee/service."""

    employee_id: str
    service_id: str
    effective_date: date
    rate: Decimal


@dataclass(frozen=True)
class RateLookup:
    """Result of a rate lookup; ``rate`` is zero with a reason on a miss."""

    rate: Decimal
    reason: str | None = None
    effective_date: date | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class LeaveSummary:
    """Leave balance snapshot for one employee and year."""

    remaining: Decimal
    used: Decimal
    quota: Decimal
    carry_in: Decimal
    allocations: Decimal
    adjustments: Decimal
    year: int

    @classmethod
    def empty(cls, year: int) -> LeaveSummary:
        return cls(ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, year)


@dataclass
class LeaveProjection(LeaveSummary):
    """Summary plus the balance after a hypothetical change."""

    projected_remaining: Decimal = ZERO


@dataclass(frozen=True)
class LeaveSessionValue:
    """Monetary value of a leave row."""

    amount: Decimal
    multiplier: Decimal
    pre_start_date: bool = False


@dataclass
class LeaveValueContext:
    """Inputs a leave day value selector may consult."""

    employees: list[Employee] = field(default_factory=list)
    work_sessions: list[WorkSession] = field(default_factory=list)
    services: list[Service] = field(default_factory=list)
    leave_pay_policy: LeavePayPolicy | None = None

    def employee(self, employee_id: str) -> Employee | None:
        for employee in self.employees:
            if employee.id == employee_id:
                return employee
        return None


@dataclass(frozen=True)
class LeaveDayValue:
    """Leave day valuation with the history it was derived from."""

    value: Decimal
    method: LeavePayMethod
    insufficient_data: bool = False
    pre_start_date: bool = False
    total_earnings: Decimal = ZERO
    total_hours: Decimal = ZERO
    worked_days_count: int = 0


@dataclass
class EmployeePeriodTotals:
    """Per-employee totals for a reporting period."""

    employee_id: str
    pay: Decimal = ZERO
    hours: Decimal = ZERO
    sessions: int = 0
    days_paid: Decimal = ZERO
    adjustments: Decimal = ZERO
    leave_pay: Decimal = ZERO


@dataclass
class PeriodDiagnostics:
    """Cross-check figures for a reporting period."""

    unique_paid_days: int = 0
    paid_leave_days: Decimal = ZERO
    adjustments_sum: Decimal = ZERO


@dataclass
class PeriodTotals:
    """Organization-wide totals for a reporting period."""

    total_pay: Decimal = ZERO
    total_hours: Decimal = ZERO
    total_sessions: int = 0
    totals_by_employee: list[EmployeePeriodTotals] = field(default_factory=list)
    diagnostics: PeriodDiagnostics = field(default_factory=PeriodDiagnostics)
    filtered_sessions: list[WorkSession] = field(default_factory=list)

    def for_employee(self, employee_id: str) -> EmployeePeriodTotals | None:
        for bucket in self.totals_by_employee:
            if bucket.employee_id == employee_id:
                return bucket
        return None


@dataclass
class DayAggregate:
    """One calendar day of a global employee, folded from its rows.

    ``segments_total`` is the plain sum of the rows; ``daily_amount`` is
    what the day pays, never more than one full day.
    """

    employee_id: str
    day: date
    day_type: str
    indices: list[int]
    daily_amount: Decimal
    segments_total: Decimal
    payable: bool
    multiplier: Decimal
    conflict: bool = False
