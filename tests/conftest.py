"""Pytest fixtures for tutorpay tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from tutorpay.calculators.types import (
    GENERIC_RATE_SERVICE_ID,
    Employee,
    EmployeeType,
    RateHistory,
    Service,
    WorkSession,
)
from tutorpay.config import get_settings

SUN_THU = frozenset({"SUN", "MON", "TUE", "WED", "THU"})


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Run every test against default settings."""
    for name in (
        "TUTORPAY_DEFAULT_WORKING_DAYS",
        "TUTORPAY_SUMMARY_PRECISION",
        "TUTORPAY_METADATA_SUPPORT",
        "TUTORPAY_LOG_LEVEL",
        "TUTORPAY_ENGINE_VERSION",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def global_employee() -> Employee:
    """Salaried employee, Sunday-Thursday, 9,000 a month."""
    return Employee(
        id="emp-global",
        name="Dana",
        employee_type=EmployeeType.GLOBAL,
        working_days=SUN_THU,
        start_date=date(2023, 1, 1),
        annual_leave_days=Decimal("12"),
        current_rate=Decimal("9000"),
    )


@pytest.fixture
def hourly_employee() -> Employee:
    return Employee(
        id="emp-hourly",
        name="Avi",
        employee_type=EmployeeType.HOURLY,
        start_date=date(2023, 1, 1),
        annual_leave_days=Decimal("10"),
        current_rate=Decimal("50"),
    )


@pytest.fixture
def instructor() -> Employee:
    return Employee(
        id="emp-instructor",
        name="Noa",
        employee_type=EmployeeType.INSTRUCTOR,
        start_date=date(2023, 1, 1),
    )


@pytest.fixture
def employees(global_employee, hourly_employee, instructor) -> list[Employee]:
    return [global_employee, hourly_employee, instructor]


@pytest.fixture
def services() -> list[Service]:
    return [
        Service(id="svc-math", name="Math", duration_minutes=45),
        Service(id="svc-english", name="English", duration_minutes=60),
    ]


@pytest.fixture
def rate_histories() -> list[RateHistory]:
    return [
        RateHistory("emp-global", GENERIC_RATE_SERVICE_ID, date(2023, 1, 1), Decimal("9000")),
        RateHistory("emp-hourly", GENERIC_RATE_SERVICE_ID, date(2023, 1, 1), Decimal("50")),
        RateHistory("emp-hourly", GENERIC_RATE_SERVICE_ID, date(2024, 3, 1), Decimal("60")),
        RateHistory("emp-instructor", "svc-math", date(2023, 1, 1), Decimal("40")),
    ]


@pytest.fixture
def make_session():
    """Factory for WorkSession rows with sensible defaults."""

    def factory(employee_id: str, day: date, entry_type: str = "hours", **fields) -> WorkSession:
        return WorkSession(employee_id=employee_id, date=day, entry_type=entry_type, **fields)

    return factory
