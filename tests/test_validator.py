"""Tests for row validation."""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from tutorpay.calculators.rate_resolver import RateResolver
from tutorpay.calculators.types import (
    AdjustmentEntry,
    Employee,
    EmployeeType,
    HoursEntry,
    LeaveEntry,
    LeaveKind,
    SessionEntry,
    WorkSession,
)
from tutorpay.calculators.validator import (
    ERR_ADJUSTMENT_NOT_ALLOWED,
    ERR_DUPLICATE_ROW,
    ERR_HOURS_NOT_ALLOWED,
    ERR_IRRELEVANT_FIELDS,
    ERR_LEAVE_GLOBAL_ONLY,
    ERR_MISSING_ADJUSTMENT,
    ERR_MISSING_HOURS,
    ERR_MISSING_SERVICE,
    ERR_SERVICE_FOR_GLOBAL,
    ERR_SERVICE_NOT_ALLOWED,
    ERR_SESSIONS_COUNT,
    ERR_UNKNOWN_ENTRY_TYPE,
    validate_row,
    validate_rows,
)

DAY = date(2024, 2, 5)


@pytest.fixture
def rates(employees, rate_histories):
    return RateResolver(employees, rate_histories).get_rate_for_date


class TestSessionRows:
    """Test instructor session rows."""

    def test_valid_session(self, instructor, services, rates):
        """Test payment is sessions x students x rate."""
        row = WorkSession("emp-instructor", DAY, "session", service_id="svc-math", sessions_count=2, students_count=3)
        result = validate_row(row, instructor, services, rates)

        assert result.is_valid
        assert result.rate_used == Decimal("40")
        assert result.total_payment == Decimal("240")
        assert result.entry == SessionEntry("emp-instructor", DAY, "svc-math", 2, 3)

    def test_forbidden_fields(self, instructor, services, rates):
        """Test hours and adjustments are rejected on session rows."""
        row = WorkSession(
            "emp-instructor", DAY, "session", service_id="svc-math",
            sessions_count=1, students_count=1, hours=Decimal("2"), adjustment_amount=Decimal("5"),
        )
        result = validate_row(row, instructor, services, rates)
        assert ERR_HOURS_NOT_ALLOWED in result.errors
        assert ERR_ADJUSTMENT_NOT_ALLOWED in result.errors
        assert result.total_payment is None
        assert result.entry is None

    def test_missing_counts_and_service(self, instructor, services, rates):
        """Test service and counts are required."""
        row = WorkSession("emp-instructor", DAY, "session", service_id="svc-unknown", sessions_count=0)
        result = validate_row(row, instructor, services, rates)
        assert ERR_MISSING_SERVICE in result.errors
        assert ERR_SESSIONS_COUNT in result.errors
        assert not result.is_valid

    def test_global_employee_rejected(self, global_employee, services, rates):
        """Test global employees cannot log sessions."""
        row = WorkSession("emp-global", DAY, "session", service_id="svc-math", sessions_count=1, students_count=1)
        assert ERR_SERVICE_FOR_GLOBAL in validate_row(row, global_employee, services, rates).errors


class TestHoursRows:
    """Test hours rows."""

    def test_hourly(self, hourly_employee, services, rates):
        """Test hourly payment is hours x rate."""
        row = WorkSession("emp-hourly", DAY, "hours", hours=Decimal("3.5"))
        result = validate_row(row, hourly_employee, services, rates)
        assert result.total_payment == Decimal("175.0")
        assert result.entry == HoursEntry("emp-hourly", DAY, Decimal("3.5"))

    def test_hourly_requires_hours(self, hourly_employee, services, rates):
        """Test hourly rows need hours."""
        row = WorkSession("emp-hourly", DAY, "hours")
        assert ERR_MISSING_HOURS in validate_row(row, hourly_employee, services, rates).errors

    def test_global_daily_rate(self, global_employee, services, rates):
        """Test global hours rows pay the daily rate whatever the hours."""
        row = WorkSession("emp-global", DAY, "hours", hours=Decimal("2"))
        result = validate_row(row, global_employee, services, rates)
        assert result.total_payment == Decimal("9000") / 21
        assert result.rate_used == Decimal("9000")

    def test_service_not_allowed(self, hourly_employee, services, rates):
        """Test hours rows reject services."""
        row = WorkSession("emp-hourly", DAY, "hours", hours=Decimal("1"), service_id="svc-math")
        assert ERR_SERVICE_NOT_ALLOWED in validate_row(row, hourly_employee, services, rates).errors

    def test_no_working_days_is_reported(self, services, rates):
        """Test a global employee without working days gets an error, not an exception."""
        employee = Employee(
            id="emp-global", employee_type=EmployeeType.GLOBAL, working_days=frozenset(), start_date=date(2023, 1, 1)
        )
        result = validate_row(WorkSession("emp-global", DAY, "hours"), employee, services, rates)
        assert result.errors == ["Employee has no defined working days in this month"]
        assert result.total_payment is None

    def test_missing_rate_reason(self, hourly_employee, services):
        """Test the resolver's reason becomes the row error."""
        result = validate_row(
            WorkSession("emp-hourly", DAY, "hours", hours=Decimal("1")),
            hourly_employee,
            services,
            lambda employee_id, day, service_id: {"rate": 0, "reason": "לא הוגדר תעריף"},
        )
        assert "לא הוגדר תעריף" in result.errors


class TestLeaveRows:
    """Test leave rows."""

    def test_full_daily_rate_for_half_day(self, global_employee, services, rates):
        """Test leave rows are priced at the full daily rate."""
        row = WorkSession("emp-global", DAY, "leave_half_day")
        result = validate_row(row, global_employee, services, rates)
        assert result.total_payment == Decimal("9000") / 21
        assert result.entry == LeaveEntry("emp-global", DAY, "leave_half_day", LeaveKind.HALF_DAY)

    def test_global_only(self, hourly_employee, services, rates):
        """Test leave rows are rejected for non-global employees."""
        row = WorkSession("emp-hourly", DAY, "leave_employee_paid")
        assert ERR_LEAVE_GLOBAL_ONLY in validate_row(row, hourly_employee, services, rates).errors

    def test_irrelevant_fields(self, global_employee, services, rates):
        """Test leave rows reject work fields."""
        row = WorkSession("emp-global", DAY, "leave_system_paid", hours=Decimal("8"))
        assert ERR_IRRELEVANT_FIELDS in validate_row(row, global_employee, services, rates).errors


class TestAdjustmentRows:
    """Test adjustment rows."""

    @given(amount=st.decimals(min_value=-10000, max_value=10000, places=2, allow_nan=False, allow_infinity=False))
    @settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_amount_is_verbatim(self, hourly_employee, amount):
        """Test adjustments keep their amount and never carry a rate."""
        calls = []

        def rates(*args):
            calls.append(args)
            return {"rate": 50}

        row = WorkSession("emp-hourly", DAY, "adjustment", adjustment_amount=amount)
        result = validate_row(row, hourly_employee, [], rates)

        assert result.rate_used is None
        assert result.total_payment == amount
        assert result.entry == AdjustmentEntry("emp-hourly", DAY, amount)
        assert calls == []
        assert row.total_payment is None

    def test_missing_amount(self, hourly_employee, rates):
        """Test adjustments require an amount."""
        result = validate_row(WorkSession("emp-hourly", DAY, "adjustment"), hourly_employee, [], rates)
        assert ERR_MISSING_ADJUSTMENT in result.errors
        assert result.rate_used is None

    def test_to_session(self, hourly_employee, rates):
        """Test the validated row carries its payment."""
        row = WorkSession("emp-hourly", DAY, "adjustment", adjustment_amount=Decimal("12"))
        session = validate_row(row, hourly_employee, [], rates).to_session()
        assert session.total_payment == Decimal("12")
        assert session.rate_used is None


class TestValidateRows:
    """Test batch validation."""

    def test_unknown_entry_type(self, hourly_employee, services, rates):
        """Test unknown entry types are reported."""
        result = validate_row(WorkSession("emp-hourly", DAY, "overtime"), hourly_employee, services, rates)
        assert ERR_UNKNOWN_ENTRY_TYPE in result.errors

    def test_duplicates_flagged(self, hourly_employee, services, rates):
        """Test repeated rows get a duplicate error."""
        rows = [
            WorkSession("emp-hourly", DAY, "hours", hours=Decimal("1")),
            WorkSession("emp-hourly", DAY, "hours", hours=Decimal("2")),
            WorkSession("emp-hourly", date(2024, 2, 6), "hours", hours=Decimal("2")),
        ]
        results = validate_rows(rows, hourly_employee, services, rates)
        assert [result.duplicate for result in results] == [False, True, False]
        assert results[1].errors == [ERR_DUPLICATE_ROW]
        assert len(results) == 3

    def test_duplicates_included(self, hourly_employee, services, rates):
        """Test include_duplicates keeps the flag without the error."""
        rows = [
            WorkSession("emp-hourly", DAY, "hours", hours=Decimal("1")),
            WorkSession("emp-hourly", DAY, "hours", hours=Decimal("2")),
        ]
        results = validate_rows(rows, hourly_employee, services, rates, include_duplicates=True)
        assert results[1].duplicate is True
        assert results[1].is_valid

    def test_seed_errors(self, hourly_employee, services, rates):
        """Test earlier errors are kept on the result."""
        row = WorkSession("emp-hourly", DAY, "hours", hours=Decimal("1"))
        result = validate_row(row, hourly_employee, services, rates, errors=["תאריך לא תקין"])
        assert result.errors == ["תאריך לא תקין"]
