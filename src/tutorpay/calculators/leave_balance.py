"""Leave policy normalization, ledger helpers and balance summaries."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence

from tutorpay.calculators.coerce import field_value, to_date, to_decimal
from tutorpay.calculators.leave import (
    TIME_ENTRY_LEAVE_PREFIX,
    get_leave_base_kind,
    get_leave_ledger_delta,
    infer_leave_type,
    is_leave_entry_type,
    normalize_leave_token,
)
from tutorpay.calculators.types import (
    ZERO,
    Employee,
    HolidayRule,
    LeavePayMethod,
    LeavePayPolicy,
    LeavePolicy,
    LeaveProjection,
    LeaveSummary,
    LedgerEntry,
    WorkSession,
)
from tutorpay.config import get_settings
from tutorpay.schemas import (
    HolidayRuleIn,
    LeaveBalanceIn,
    LeavePayPolicyIn,
    LeavePolicyIn,
    load_json_object,
)

PAID_LEAVE_LABEL = "חופשה בתשלום"
UNPAID_LEAVE_LABEL = "חופשה ללא תשלום"
HALF_DAY_LEAVE_LABEL = "חצי יום חופשה"
SYSTEM_PAID_LABEL = f"{PAID_LEAVE_LABEL} (על חשבון המערכת)"

LEAVE_TYPE_LABELS: dict[str, str] = {
    "employee_paid": PAID_LEAVE_LABEL,
    "system_paid": SYSTEM_PAID_LABEL,
    "holiday_unpaid": UNPAID_LEAVE_LABEL,
    "vacation_unpaid": UNPAID_LEAVE_LABEL,
    "mixed": "מעורב",
    "half_day": HALF_DAY_LEAVE_LABEL,
}

LEAVE_HISTORY_TYPE_LABELS: dict[str, str] = {
    "allocation": "הקצאה",
    "policy_allocation": "הקצאה",
    "manual_allocation": "הקצאה",
    "carryover": "יתרת פתיחה",
    "carry_in": "יתרת פתיחה",
    "carryforward": "יתרת פתיחה",
    "carry_forward": "יתרת פתיחה",
    "rollover": "יתרת פתיחה",
    "reinstatement": "החזרת יתרה",
    "accrual": "צבירה",
    "accrual_manual": "צבירה",
    "grant": "הטבה",
    "adjustment": "התאמה ידנית",
    "manual_adjustment": "התאמה ידנית",
    "adjustment_positive": "התאמה ידנית",
    "adjustment_negative": "התאמה ידנית",
    "correction": "תיקון",
    "correction_positive": "תיקון",
    "correction_negative": "תיקון",
    "deduction": "ניכוי חופשה",
    "usage": "ניצול חופשה",
    "usage_manual": "ניצול חופשה",
    "leave": "ניצול חופשה",
    "payout": "פדיון חופשה",
    "redemption": "פדיון חופשה",
    "cashout": "פדיון חופשה",
    "employee_paid": PAID_LEAVE_LABEL,
    "system_paid": SYSTEM_PAID_LABEL,
    "holiday": "חג",
    "holiday_unpaid": UNPAID_LEAVE_LABEL,
    "vacation_unpaid": UNPAID_LEAVE_LABEL,
    "unpaid": UNPAID_LEAVE_LABEL,
    "mixed": "חופשה מעורבת",
    "half_day": HALF_DAY_LEAVE_LABEL,
}
LEAVE_HISTORY_FALLBACK_LABEL = "רישום לא מסווג"

# Substring -> label key, checked in order when no exact label exists.
# Leave-kind hints win over ledger-operation hints; "carry*" sits between.
_LEAVE_LABEL_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("half_day",), "half_day"),
    (("system_paid",), "system_paid"),
    (("employee_paid",), "employee_paid"),
    (("holiday_unpaid",), "holiday_unpaid"),
    (("holiday",), "holiday"),
    (("vacation_unpaid",), "vacation_unpaid"),
    (("vacation", "unpaid"), "vacation_unpaid"),
)
_LEDGER_LABEL_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("allocation",), "allocation"),
    (("adjustment", "correction"), "adjustment"),
    (("payout", "redemption", "cashout"), "payout"),
    (("usage", "deduction"), "usage"),
    (("mixed",), "mixed"),
)


# ============================================================================
# Policy normalization
# ============================================================================


def normalize_holiday_rule(rule: Any) -> HolidayRule | None:
    """Normalize a raw holiday rule; ``date`` fills missing start/end dates."""
    if not rule:
        return None
    if isinstance(rule, HolidayRule):
        return rule
    return HolidayRuleIn.model_validate(rule).to_domain()


def normalize_leave_policy(value: Any) -> LeavePolicy:
    """Normalize a leave policy from a dataclass, dict or JSON string."""
    if isinstance(value, LeavePolicy):
        return value
    return LeavePolicyIn.model_validate(load_json_object(value, "leave policy")).to_domain()


def normalize_leave_pay_policy(value: Any) -> LeavePayPolicy:
    """Normalize a leave pay policy; invalid fields fall back to defaults."""
    if isinstance(value, LeavePayPolicy):
        return value
    return LeavePayPolicyIn.model_validate(
        load_json_object(value, "leave pay policy")
    ).to_domain()


@dataclass(frozen=True)
class LeavePayMethodContext:
    method: LeavePayMethod
    lookback_months: int
    legal_allow_12m_if_better: bool
    override_applied: bool


def resolve_leave_pay_method_context(
    employee: Employee | None, policy: Any = None
) -> LeavePayMethodContext:
    """Pick the valuation method: a valid employee override beats the policy default."""
    normalized = normalize_leave_pay_policy(policy)
    default_method = normalized.default_method
    candidate = employee.leave_pay_method if employee is not None else None
    override = None
    if isinstance(candidate, str):
        try:
            override = LeavePayMethod(candidate)
        except ValueError:
            override = None
    method = override or default_method
    return LeavePayMethodContext(
        method=method,
        lookback_months=normalized.lookback_months,
        legal_allow_12m_if_better=normalized.legal_allow_12m_if_better,
        override_applied=override is not None and override != default_method,
    )


def get_negative_balance_floor(policy: Any) -> Decimal:
    """The lowest balance a policy allows, always <= 0."""
    raw = to_decimal(field_value(policy, "negative_floor_days")) if policy else None
    if raw is None:
        return ZERO
    return raw if raw <= 0 else -abs(raw)


# ============================================================================
# Holidays
# ============================================================================


@dataclass(frozen=True)
class HolidayMatch:
    rule: HolidayRule
    label: str


def _rule_matches(rule: HolidayRule, target: date) -> bool:
    if rule.start_date is None or rule.end_date is None:
        return False
    if rule.recurrence == "yearly":
        start = _same_day_in_year(rule.start_date, target.year)
        end = _same_day_in_year(rule.end_date, target.year)
        return start <= target <= end
    return rule.start_date <= target <= rule.end_date


def _same_day_in_year(day: date, year: int) -> date:
    if day.month == 2 and day.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return day.replace(year=year)


def find_holiday_for_date(policy: Any, day: date | str) -> HolidayMatch | None:
    """Return the first configured holiday rule covering ``day``.

    Yearly rules compare month/day only. Rules may overlap, so the
    configuration order decides.
    """
    target = to_date(day)
    if target is None:
        return None
    for rule in normalize_leave_policy(policy).holiday_rules:
        if _rule_matches(rule, target):
            return HolidayMatch(rule=rule, label=LEAVE_TYPE_LABELS.get(rule.type) or rule.name)
    return None


# ============================================================================
# Ledger
# ============================================================================


def normalize_ledger_entry(raw: Any) -> LedgerEntry | None:
    """Collapse a raw ledger row to a LedgerEntry; rows without a date are dropped."""
    if raw is None:
        return None
    if isinstance(raw, LedgerEntry):
        return raw
    entry = LeaveBalanceIn.model_validate(raw).to_domain()
    return entry if entry.date is not None else None


def normalize_ledger(entries: Iterable[Any]) -> list[LedgerEntry]:
    return [entry for entry in (normalize_ledger_entry(raw) for raw in entries or ()) if entry]


def build_ledger_entry_from_session(session: WorkSession) -> LedgerEntry | None:
    """The ledger debit implied by a leave time entry (None for other rows)."""
    if session is None or session.deleted or not is_leave_entry_type(session.entry_type):
        return None
    kind = get_leave_base_kind(infer_leave_type(session))
    if kind is None:
        return None
    return LedgerEntry(
        employee_id=session.employee_id,
        date=session.date,
        delta_days=get_leave_ledger_delta(kind),
        leave_type=f"{TIME_ENTRY_LEAVE_PREFIX}_{kind.value}",
        notes=session.notes,
        work_session_id=session.id,
    )


def is_leave_ledger_entry(entry: LedgerEntry | None) -> bool:
    """True for ledger rows written on behalf of a leave time entry."""
    return bool(
        entry
        and entry.work_session_id
        and entry.leave_type
        and entry.leave_type.startswith(TIME_ENTRY_LEAVE_PREFIX)
    )


def _hinted_label(token: str, hints: tuple[tuple[tuple[str, ...], str], ...]) -> str | None:
    for needles, key in hints:
        if any(needle in token for needle in needles):
            return LEAVE_HISTORY_TYPE_LABELS[key]
    return None


def format_leave_history_entry_type(entry: Any) -> str:
    """Hebrew label for a ledger row's type in the leave history view."""
    raw = field_value(entry, "leave_type")
    if not isinstance(raw, str) or not raw:
        for name in ("source", "type", "reason"):
            candidate = field_value(entry, name)
            if isinstance(candidate, str) and candidate:
                raw = candidate
                break
        else:
            return LEAVE_HISTORY_FALLBACK_LABEL

    token = (normalize_leave_token(raw) or "").lower()
    if token in LEAVE_HISTORY_TYPE_LABELS:
        return LEAVE_HISTORY_TYPE_LABELS[token]
    if token:
        label = _hinted_label(token, _LEAVE_LABEL_HINTS)
        if label is None and token.startswith("carry"):
            label = LEAVE_HISTORY_TYPE_LABELS["carryover"]
        label = label or _hinted_label(token, _LEDGER_LABEL_HINTS)
        if label:
            return label

    base = get_leave_base_kind(token or raw)
    if base is not None and base.value in LEAVE_HISTORY_TYPE_LABELS:
        return LEAVE_HISTORY_TYPE_LABELS[base.value]
    return raw


# ============================================================================
# Summary
# ============================================================================


def _base_quota_for_year(employee: Employee, year: int) -> Decimal:
    annual = to_decimal(employee.annual_leave_days) or ZERO
    if not annual:
        return ZERO
    start = employee.start_date
    if start is None or start.year < year:
        return annual
    if start.year > year:
        return ZERO
    days_in_year = 366 if calendar.isleap(year) else 365
    remaining_days = (date(year, 12, 31) - start).days + 1
    if remaining_days <= 0:
        return ZERO
    return max(ZERO, annual * remaining_days / days_in_year)


def _entries_for_year(
    employee_id: str, year: int, ledger: Sequence[LedgerEntry], up_to: date | None
) -> list[LedgerEntry]:
    return [
        entry
        for entry in ledger
        if entry.employee_id == employee_id
        and entry.date.year == year
        and (up_to is None or entry.date <= up_to)
    ]


def _round(value: Decimal) -> Decimal:
    return value.quantize(get_settings().summary_precision, rounding=ROUND_HALF_UP)


def compute_employee_leave_summary(
    employee: Employee | None,
    leave_balances: Iterable[Any] = (),
    policy: Any = None,
    day: date | str | None = None,
) -> LeaveSummary:
    """Walk the years since the employee's start and report the target year's balance.

    Each year's base quota (prorated in the start year) plus carry-in and
    the net ledger delta gives the balance. With carryover enabled the
    next year's carry-in is the balance clamped to ``[0, carryover_max_days]``;
    otherwise nothing carries. Ledger rows of the target year count only
    up to ``day``.

    Args:
        employee: The employee; None yields an empty summary.
        leave_balances: Ledger rows in any historical shape.
        policy: LeavePolicy, dict or JSON string.
        day: Query date (defaults to today).
    """
    target = to_date(day) or date.today()
    normalized_policy = normalize_leave_policy(policy)
    if employee is None:
        return LeaveSummary.empty(target.year)
    start = employee.start_date
    if start is not None and target < start:
        return LeaveSummary.empty(target.year)

    ledger = normalize_ledger(leave_balances)
    year = target.year
    carry = ZERO
    summary = LeaveSummary.empty(year)

    for current in range(start.year if start else year, year + 1):
        entries = _entries_for_year(employee.id, current, ledger, target if current == year else None)
        base_quota = _base_quota_for_year(employee, current)
        deltas = [entry.delta_days for entry in entries]
        usage = sum((-delta for delta in deltas if delta < 0), ZERO)
        positive = sum((delta for delta in deltas if delta > 0), ZERO)
        total_delta = sum(deltas, ZERO)
        quota = base_quota + carry
        balance = quota + total_delta

        if current == year:
            summary = LeaveSummary(
                remaining=_round(balance),
                used=_round(usage),
                quota=_round(quota),
                carry_in=_round(carry),
                allocations=_round(base_quota + positive),
                adjustments=_round(total_delta),
                year=year,
            )
        elif normalized_policy.carryover_enabled:
            carry = max(ZERO, min(balance, normalized_policy.carryover_max_days))
        else:
            carry = ZERO

    return summary


def project_balance_after_change(
    employee: Employee | None,
    leave_balances: Iterable[Any] = (),
    policy: Any = None,
    day: date | str | None = None,
    delta: Decimal | int | str = ZERO,
) -> LeaveProjection:
    """The leave summary plus the balance after a hypothetical ``delta``."""
    summary = compute_employee_leave_summary(employee, leave_balances, policy, day)
    projected = summary.remaining + (to_decimal(delta) or ZERO)
    return LeaveProjection(
        remaining=summary.remaining,
        used=summary.used,
        quota=summary.quota,
        carry_in=summary.carry_in,
        allocations=summary.allocations,
        adjustments=summary.adjustments,
        year=summary.year,
        projected_remaining=_round(projected),
    )
