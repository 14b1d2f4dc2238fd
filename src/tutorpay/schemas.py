"""Pydantic schemas for raw payroll input.

Rows reach the engine from forms, legacy imports and JSON files with
inconsistent typing (numbers as strings, metadata as JSON text, timestamps
where dates are expected). These models absorb that and convert to the
calculator dataclasses through ``to_domain()``.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tutorpay.calculators.coerce import coerce_boolean, parse_metadata, to_date, to_decimal
from tutorpay.calculators.types import (
    DEFAULT_LEGAL_INFO_URL,
    GENERIC_RATE_SERVICE_ID,
    ZERO,
    Employee,
    EmployeeType,
    HolidayRule,
    LeavePayMethod,
    LeavePayPolicy,
    LeavePolicy,
    LedgerEntry,
    RateHistory,
    Service,
    WorkSession,
)

logger = logging.getLogger(__name__)

# Ledger rows have carried their delta, date and type under several names.
LEDGER_DELTA_FIELDS = ("balance", "days_delta", "delta_days", "delta", "amount", "days")
LEDGER_DATE_FIELDS = ("date", "entry_date", "effective_date", "change_date", "created_at")
LEDGER_TYPE_FIELDS = ("leave_type", "source", "type", "reason")


def _decimal(value: Any) -> Decimal | None:
    return to_decimal(value)


def load_json_object(value: Any, label: str) -> dict[str, Any]:
    """Decode a JSON object string; malformed input is logged and treated as empty."""
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Failed to parse %s JSON: %.80s", label, value)
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class _RawModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


# ============================================================================
# Organization data
# ============================================================================


class EmployeeIn(_RawModel):
    """Employee record."""

    id: str
    employee_type: EmployeeType
    working_days: list[str] | None = None
    start_date: date | None = None
    annual_leave_days: Decimal = ZERO
    leave_pay_method: str | None = None
    leave_fixed_day_rate: Decimal | None = None
    employment_scope: str | None = None
    current_rate: Decimal | None = None
    name: str = ""

    @field_validator("working_days", mode="before")
    @classmethod
    def _split_days(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                value = json.loads(text)
            else:
                value = [part for part in text.split(",") if part.strip()]
        if isinstance(value, (list, tuple, set, frozenset)):
            return [str(day).strip().upper() for day in value]
        return value

    @field_validator("start_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Any:
        return to_date(value) if isinstance(value, str) else value

    @field_validator("annual_leave_days", mode="before")
    @classmethod
    def _quota(cls, value: Any) -> Decimal:
        return _decimal(value) or ZERO

    @field_validator("leave_fixed_day_rate", "current_rate", mode="before")
    @classmethod
    def _optional_number(cls, value: Any) -> Decimal | None:
        return _decimal(value)

    def to_domain(self) -> Employee:
        return Employee(
            id=self.id,
            employee_type=self.employee_type,
            working_days=frozenset(self.working_days) if self.working_days is not None else None,
            start_date=self.start_date,
            annual_leave_days=self.annual_leave_days,
            leave_pay_method=self.leave_pay_method,
            leave_fixed_day_rate=self.leave_fixed_day_rate,
            employment_scope=self.employment_scope,
            current_rate=self.current_rate,
            name=self.name,
        )


class ServiceIn(_RawModel):
    """Instruction service."""

    id: str
    name: str = ""
    duration_minutes: int | None = None

    def to_domain(self) -> Service:
        return Service(id=self.id, name=self.name, duration_minutes=self.duration_minutes)


class RateHistoryIn(_RawModel):
    """Rate history row; a missing service means the generic rate."""

    employee_id: str
    service_id: str | None = None
    effective_date: date
    rate: Decimal

    @field_validator("effective_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Any:
        return to_date(value) if isinstance(value, str) else value

    def to_domain(self) -> RateHistory:
        return RateHistory(
            employee_id=self.employee_id,
            service_id=self.service_id or GENERIC_RATE_SERVICE_ID,
            effective_date=self.effective_date,
            rate=self.rate,
        )


# ============================================================================
# Time entries and ledger
# ============================================================================


class WorkSessionIn(_RawModel):
    """Persisted time-entry row."""

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

    @field_validator("date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            return to_date(value) or value
        return value

    @field_validator(
        "hours", "adjustment_amount", "rate_used", "total_payment", mode="before"
    )
    @classmethod
    def _optional_number(cls, value: Any) -> Decimal | None:
        return _decimal(value)

    @field_validator("sessions_count", "students_count", mode="before")
    @classmethod
    def _optional_count(cls, value: Any) -> int | None:
        number = _decimal(value)
        return int(number) if number is not None else None

    @field_validator("payable", mode="before")
    @classmethod
    def _payable(cls, value: Any) -> bool:
        coerced = coerce_boolean(value)
        return True if coerced is None else coerced

    @field_validator("deleted", mode="before")
    @classmethod
    def _deleted(cls, value: Any) -> bool:
        return bool(coerce_boolean(value))

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: Any) -> dict[str, Any] | None:
        return parse_metadata(value)

    def to_domain(self) -> WorkSession:
        return WorkSession(**self.model_dump())


class LeaveBalanceIn(_RawModel):
    """Leave ledger row in any of its historical shapes."""

    employee_id: str
    entry_date: date | None = None
    delta_days: Decimal = ZERO
    leave_type: str | None = None
    notes: str | None = None
    work_session_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resolved = dict(data)
        delta = ZERO
        for name in LEDGER_DELTA_FIELDS:
            candidate = _decimal(data.get(name))
            if candidate is not None:
                delta = candidate
                break
        resolved["delta_days"] = delta
        resolved["entry_date"] = next(
            (to_date(data.get(name)) for name in LEDGER_DATE_FIELDS if data.get(name)), None
        )
        resolved["leave_type"] = next(
            (data[name] for name in LEDGER_TYPE_FIELDS if isinstance(data.get(name), str) and data[name]),
            None,
        )
        return resolved

    def to_domain(self) -> LedgerEntry:
        return LedgerEntry(
            employee_id=self.employee_id,
            date=self.entry_date,
            delta_days=self.delta_days,
            leave_type=self.leave_type,
            notes=self.notes,
            work_session_id=self.work_session_id,
        )


# ============================================================================
# Policies
# ============================================================================


class HolidayRuleIn(_RawModel):
    """Organization holiday rule; ``date`` fills a missing start/end."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    type: str = "employee_paid"
    start_date: date | None = None
    end_date: date | None = None
    recurrence: str | None = None
    half_day: bool = False
    metadata: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_dates(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resolved = {key: value for key, value in data.items() if value is not None}
        single = to_date(data.get("date"))
        start = to_date(data.get("start_date")) or single
        end = to_date(data.get("end_date")) or single or start
        resolved["start_date"] = start
        resolved["end_date"] = end
        if not resolved.get("type"):
            resolved["type"] = "employee_paid"
        resolved["metadata"] = parse_metadata(data.get("metadata"))
        return resolved

    def to_domain(self) -> HolidayRule:
        return HolidayRule(
            id=self.id,
            name=self.name,
            type=self.type,
            start_date=self.start_date,
            end_date=self.end_date,
            recurrence=self.recurrence,
            half_day=bool(self.half_day or self.type == "half_day"),
            metadata=self.metadata,
        )


class LeavePolicyIn(_RawModel):
    """Organization leave policy."""

    allow_half_day: bool = False
    allow_negative_balance: bool = False
    negative_floor_days: Decimal = ZERO
    carryover_enabled: bool = False
    carryover_max_days: Decimal = ZERO
    holiday_rules: list[HolidayRuleIn] = Field(default_factory=list)

    @field_validator("allow_half_day", "allow_negative_balance", "carryover_enabled", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(coerce_boolean(value))

    @field_validator("negative_floor_days", "carryover_max_days", mode="before")
    @classmethod
    def _days(cls, value: Any) -> Decimal:
        return _decimal(value) or ZERO

    @field_validator("holiday_rules", mode="before")
    @classmethod
    def _rules(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [rule for rule in value if rule]

    def to_domain(self) -> LeavePolicy:
        return LeavePolicy(
            allow_half_day=self.allow_half_day,
            allow_negative_balance=self.allow_negative_balance,
            negative_floor_days=self.negative_floor_days,
            carryover_enabled=self.carryover_enabled,
            carryover_max_days=self.carryover_max_days,
            holiday_rules=tuple(rule.to_domain() for rule in self.holiday_rules),
        )


class LeavePayPolicyIn(_RawModel):
    """Leave pay policy; invalid values fall back to the defaults."""

    default_method: LeavePayMethod = LeavePayMethod.LEGAL
    lookback_months: int = 3
    legal_allow_12m_if_better: bool = False
    fixed_rate_default: Decimal | None = None
    legal_info_url: str = DEFAULT_LEGAL_INFO_URL

    @field_validator("default_method", mode="before")
    @classmethod
    def _method(cls, value: Any) -> LeavePayMethod:
        try:
            return LeavePayMethod(value)
        except ValueError:
            return LeavePayMethod.LEGAL

    @field_validator("lookback_months", mode="before")
    @classmethod
    def _lookback(cls, value: Any) -> int:
        number = _decimal(value)
        if number is None or number <= 0:
            return 3
        return max(1, int(number.to_integral_value()))

    @field_validator("legal_allow_12m_if_better", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(coerce_boolean(value))

    @field_validator("fixed_rate_default", mode="before")
    @classmethod
    def _fixed_rate(cls, value: Any) -> Decimal | None:
        number = _decimal(value)
        return number if number is not None and number >= 0 else None

    @field_validator("legal_info_url", mode="before")
    @classmethod
    def _url(cls, value: Any) -> str:
        text = value.strip() if isinstance(value, str) else ""
        return text or DEFAULT_LEGAL_INFO_URL

    def to_domain(self) -> LeavePayPolicy:
        return LeavePayPolicy(
            default_method=self.default_method,
            lookback_months=self.lookback_months,
            legal_allow_12m_if_better=self.legal_allow_12m_if_better,
            fixed_rate_default=self.fixed_rate_default,
            legal_info_url=self.legal_info_url,
        )
