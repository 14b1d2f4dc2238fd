"""Tests for same-day aggregation of global employees."""

from datetime import date
from decimal import Decimal

from hypothesis import HealthCheck, given, settings, strategies as st

from tutorpay.calculators.day_aggregator import (
    collect_global_day_aggregates,
    is_global_day_row,
    sum_global_days,
)
from tutorpay.calculators.payroll import compute_period_totals
from tutorpay.calculators.types import WorkSession

DAILY = Decimal("9000") / 21
DAY = date(2024, 2, 5)


class TestCollectGlobalDayAggregates:
    """Test one aggregate per employee and day."""

    def test_two_full_days_count_once(self, global_employee):
        """Test two full-day hours rows on one day pay one day."""
        rows = [
            WorkSession("emp-global", DAY, "hours", total_payment=DAILY),
            WorkSession("emp-global", DAY, "hours", total_payment=DAILY),
        ]
        aggregates = collect_global_day_aggregates(rows, {"emp-global": global_employee})

        aggregate = aggregates["emp-global|2024-02-05"]
        assert aggregate.daily_amount == DAILY
        assert aggregate.segments_total == DAILY * 2
        assert aggregate.indices == [0, 1]
        assert aggregate.conflict is False

    def test_split_segments_sum(self, global_employee):
        """Test partial segments of one day add up."""
        rows = [
            WorkSession("emp-global", DAY, "hours", total_payment=Decimal("100")),
            WorkSession("emp-global", DAY, "hours", total_payment=Decimal("150")),
        ]
        aggregate = collect_global_day_aggregates(rows, {"emp-global": global_employee})["emp-global|2024-02-05"]
        assert aggregate.daily_amount == Decimal("250")

    def test_half_day_leave(self, global_employee):
        """Test a half day of leave is worth half the daily rate."""
        rows = [WorkSession("emp-global", DAY, "leave_half_day", total_payment=DAILY / 2)]
        aggregate = collect_global_day_aggregates(rows, {"emp-global": global_employee})["emp-global|2024-02-05"]
        assert aggregate.daily_amount == DAILY / 2
        assert aggregate.multiplier == Decimal("0.5")

    def test_two_half_days_make_one_day(self, global_employee):
        """Test two half-day rows cap at a single full day."""
        rows = [
            WorkSession("emp-global", DAY, "leave_half_day", total_payment=DAILY / 2),
            WorkSession("emp-global", DAY, "leave_half_day", total_payment=DAILY / 2),
            WorkSession("emp-global", DAY, "leave_half_day", total_payment=DAILY / 2),
        ]
        aggregate = collect_global_day_aggregates(rows, {"emp-global": global_employee})["emp-global|2024-02-05"]
        assert aggregate.multiplier == Decimal("1")
        assert aggregate.daily_amount <= DAILY

    def test_conflicting_types_are_flagged(self, global_employee):
        """Test differing entry types on one day set the conflict flag."""
        rows = [
            WorkSession("emp-global", DAY, "hours", total_payment=DAILY / 2),
            WorkSession("emp-global", DAY, "leave_half_day", total_payment=DAILY / 2),
        ]
        aggregate = collect_global_day_aggregates(rows, {"emp-global": global_employee})["emp-global|2024-02-05"]
        assert aggregate.conflict is True
        assert aggregate.day_type == "hours"
        assert aggregate.daily_amount == DAILY

    def test_skipped_rows(self, employees, global_employee):
        """Test deleted, non-global, unpaid, pre-start and session rows are skipped."""
        by_id = {employee.id: employee for employee in employees}
        rows = [
            WorkSession("emp-global", DAY, "hours", total_payment=DAILY, deleted=True),
            WorkSession("emp-hourly", DAY, "hours", total_payment=Decimal("100")),
            WorkSession("emp-global", DAY, "leave_unpaid", total_payment=Decimal("50"), payable=False),
            WorkSession("emp-global", date(2022, 2, 5), "hours", total_payment=DAILY),
            WorkSession("emp-global", DAY, "adjustment", total_payment=Decimal("10")),
        ]
        assert collect_global_day_aggregates(rows, by_id) == {}
        assert not is_global_day_row(rows[0], global_employee)
        assert not is_global_day_row(rows[2], global_employee)

    def test_non_payable_hours_taint_the_day(self, global_employee):
        """Test payable is false when any segment is non-payable."""
        rows = [
            WorkSession("emp-global", DAY, "hours", total_payment=Decimal("100")),
            WorkSession("emp-global", DAY, "hours", total_payment=Decimal("100"), payable=False),
        ]
        aggregate = collect_global_day_aggregates(rows, {"emp-global": global_employee})["emp-global|2024-02-05"]
        assert aggregate.payable is False
        assert aggregate.segments_total == Decimal("200")

    def test_sum_global_days(self, global_employee):
        """Test day amounts are summed across days."""
        rows = [
            WorkSession("emp-global", DAY, "hours", total_payment=Decimal("400")),
            WorkSession("emp-global", date(2024, 2, 6), "hours", total_payment=Decimal("400")),
        ]
        assert sum_global_days(collect_global_day_aggregates(rows, {"emp-global": global_employee})) == Decimal("800")

    @given(
        entries=st.lists(
            st.tuples(
                st.integers(min_value=1, max_value=10),
                st.sampled_from(["hours", "leave_employee_paid", "leave_half_day", "leave_system_paid"]),
            ),
            min_size=1,
            max_size=20,
        )
    )
    @settings(max_examples=60, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_matches_period_totals(self, global_employee, entries):
        """Test the aggregator and period totals agree and never exceed a day per date."""
        rows = []
        for day, entry_type in entries:
            amount = DAILY / 2 if entry_type == "leave_half_day" else DAILY
            rows.append(WorkSession("emp-global", date(2024, 2, day), entry_type, total_payment=amount))

        aggregates = collect_global_day_aggregates(rows, {"emp-global": global_employee})
        totals = compute_period_totals(rows, [global_employee], date(2024, 2, 1), date(2024, 2, 29))

        assert totals.total_pay == sum_global_days(aggregates)
        for aggregate in aggregates.values():
            assert aggregate.daily_amount <= DAILY
