"""Tests for pay rate resolver."""

from datetime import date
from decimal import Decimal

import pytest

from tutorpay.calculators.rate_resolver import (
    REASON_INVALID_DATE,
    REASON_NO_EMPLOYEE,
    REASON_NO_RATE,
    REASON_NOT_STARTED,
    RateNotFoundError,
    RateResolver,
)
from tutorpay.calculators.types import GENERIC_RATE_SERVICE_ID, RateHistory


class TestRateResolver:
    """Test rate resolution from rate history."""

    def test_latest_effective_rate_wins(self, employees, rate_histories):
        """Test rate resolution respects effective dates."""
        resolver = RateResolver(employees, rate_histories)

        assert resolver.get_rate_for_date("emp-hourly", date(2024, 2, 15)).rate == Decimal("50")
        assert resolver.get_rate_for_date("emp-hourly", date(2024, 3, 1)).rate == Decimal("60")
        assert resolver.get_rate_for_date("emp-hourly", "2024-07-01").effective_date == date(2024, 3, 1)

    def test_hourly_ignores_service(self, employees, rate_histories):
        """Test hourly and global employees always use the generic rate."""
        resolver = RateResolver(employees, rate_histories)
        assert resolver.get_rate_for_date("emp-hourly", date(2024, 2, 15), "svc-math").rate == Decimal("50")
        assert resolver.get_rate_for_date("emp-global", date(2024, 2, 15), None).rate == Decimal("9000")

    def test_instructor_rate_per_service(self, employees, rate_histories):
        """Test instructors are paid per service."""
        resolver = RateResolver(employees, rate_histories)
        assert resolver.get_rate_for_date("emp-instructor", date(2024, 2, 15), "svc-math").rate == Decimal("40")

        missing = resolver.get_rate_for_date("emp-instructor", date(2024, 2, 15), "svc-english")
        assert missing.rate == 0
        assert missing.reason == REASON_NO_RATE

    def test_miss_reasons(self, employees, rate_histories):
        """Test misses carry a Hebrew reason."""
        resolver = RateResolver(employees, rate_histories)
        assert resolver.get_rate_for_date("nobody", date(2024, 2, 15)).reason == REASON_NO_EMPLOYEE
        assert resolver.get_rate_for_date("emp-hourly", date(2022, 2, 15)).reason == REASON_NOT_STARTED
        assert resolver.get_rate_for_date("emp-hourly", "garbage").reason == REASON_INVALID_DATE

    def test_non_positive_rate_is_missing(self, employees):
        """Test a zero rate row counts as no rate."""
        histories = [RateHistory("emp-hourly", GENERIC_RATE_SERVICE_ID, date(2023, 1, 1), Decimal("0"))]
        resolver = RateResolver(employees, histories)
        assert resolver.get_rate_for_date("emp-hourly", date(2024, 2, 15)).reason == REASON_NO_RATE

    def test_resolve_raises(self, employees, rate_histories):
        """Test error when no rate found."""
        resolver = RateResolver(employees, rate_histories)

        with pytest.raises(RateNotFoundError) as exc_info:
            resolver.resolve("emp-instructor", date(2024, 2, 15), "svc-english")

        assert exc_info.value.employee_id == "emp-instructor"
        assert exc_info.value.reason == REASON_NO_RATE
        assert resolver.resolve("emp-instructor", date(2024, 2, 15), "svc-math") == Decimal("40")
