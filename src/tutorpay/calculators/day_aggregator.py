"""Same-day folding of global employees' rows.

A global employee is paid per calendar day worked, not per row. Several
rows on one day (hours split into segments, a half day of leave next to
hours, two half days) fold into one DayAggregate whose amount never
exceeds one full day. A row's full-day value is its amount divided by
its leave fraction (1 for hours rows).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Sequence

from tutorpay.calculators.coerce import to_decimal
from tutorpay.calculators.leave import get_leave_value_multiplier, is_leave_entry_type
from tutorpay.calculators.types import ONE, ZERO, DayAggregate, Employee, EmployeeType, WorkSession


def is_global_day_row(row: WorkSession | None, employee: Employee | None) -> bool:
    """Rows that make up a global employee's paid day."""
    if row is None or row.deleted or employee is None:
        return False
    if employee.employee_type != EmployeeType.GLOBAL:
        return False
    if employee.start_date and row.date < employee.start_date:
        return False
    is_leave = is_leave_entry_type(row.entry_type)
    if row.entry_type != "hours" and not is_leave:
        return False
    return not (is_leave and row.payable is False)


def collect_global_day_aggregates(
    rows: Sequence[WorkSession], employees_by_id: Mapping[str, Employee]
) -> dict[str, DayAggregate]:
    """Fold rows into one aggregate per ``employee_id|date`` key.

    Deleted rows, non-global employees, rows before the start date,
    entry types other than hours/leave and unpaid leave are skipped.
    ``payable`` is the AND of the day's rows; differing entry types set
    ``conflict`` for the caller to surface. ``indices`` point into ``rows``.
    """
    aggregates: dict[str, DayAggregate] = {}
    full_day: dict[str, Decimal] = {}

    for index, row in enumerate(rows):
        if not is_global_day_row(row, employees_by_id.get(row.employee_id) if row else None):
            continue
        key = row.day_key
        amount = to_decimal(row.total_payment) or ZERO
        if is_leave_entry_type(row.entry_type):
            multiplier = get_leave_value_multiplier(row)
            row_full_day = amount / multiplier
        else:
            multiplier = ZERO
            row_full_day = amount

        existing = aggregates.get(key)
        if existing is None:
            aggregates[key] = DayAggregate(
                employee_id=row.employee_id,
                day=row.date,
                day_type=row.entry_type,
                indices=[index],
                daily_amount=amount,
                segments_total=amount,
                payable=row.payable is not False,
                multiplier=multiplier,
            )
            full_day[key] = row_full_day
            continue

        existing.indices.append(index)
        existing.segments_total += amount
        existing.multiplier = min(ONE, existing.multiplier + multiplier)
        if existing.day_type != row.entry_type:
            existing.conflict = True
        existing.payable = existing.payable and row.payable is not False
        full_day[key] = max(full_day[key], row_full_day)
        existing.daily_amount = min(existing.segments_total, full_day[key])

    return aggregates


def sum_global_days(aggregates: Mapping[str, DayAggregate]) -> Decimal:
    return sum((aggregate.daily_amount for aggregate in aggregates.values()), ZERO)
