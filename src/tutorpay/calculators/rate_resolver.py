"""Pay rate resolution from rate history."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from tutorpay.calculators.coerce import to_date
from tutorpay.calculators.types import (
    GENERIC_RATE_SERVICE_ID,
    ZERO,
    Employee,
    EmployeeType,
    RateHistory,
    RateLookup,
)

REASON_NO_EMPLOYEE = "אין עובד כזה"
REASON_NOT_STARTED = "לא התחילו לעבוד עדיין"
REASON_NO_RATE = "לא הוגדר תעריף"
REASON_INVALID_DATE = "תאריך לא תקין"


class RateNotFoundError(Exception):
    """Raised when no usable rate exists for an employee on a date."""

    def __init__(
        self,
        employee_id: str,
        as_of_date: date | None,
        service_id: str | None,
        reason: str | None = None,
    ):
        self.employee_id = employee_id
        self.as_of_date = as_of_date
        self.service_id = service_id
        self.reason = reason
        super().__init__(
            f"No pay rate found for employee {employee_id} "
            f"on {as_of_date} for service {service_id}"
        )


class RateResolver:
    """Resolves pay rates from an employee's rate history.

    Rate selection:
    1. Hourly and global employees always use the generic service rate
    2. Instructors use the rate of the row's service
    3. The history row with the latest effective_date on or before the
       date wins; a non-positive rate counts as missing
    """

    def __init__(self, employees: Iterable[Employee], rate_histories: Iterable[RateHistory]):
        self.employees = {employee.id: employee for employee in employees}
        self._histories: dict[tuple[str, str], list[RateHistory]] = {}
        for history in rate_histories:
            key = (history.employee_id, history.service_id)
            self._histories.setdefault(key, []).append(history)
        for rows in self._histories.values():
            rows.sort(key=lambda row: row.effective_date, reverse=True)

    @staticmethod
    def effective_service_id(employee: Employee, service_id: str | None) -> str | None:
        if employee.employee_type in (EmployeeType.HOURLY, EmployeeType.GLOBAL):
            return GENERIC_RATE_SERVICE_ID
        return service_id

    def get_rate_for_date(
        self,
        employee_id: str,
        as_of_date: date | str | None,
        service_id: str | None = None,
    ) -> RateLookup:
        """Look up a rate; misses return rate 0 with a Hebrew reason."""
        employee = self.employees.get(employee_id)
        if employee is None:
            return RateLookup(rate=ZERO, reason=REASON_NO_EMPLOYEE)
        target = to_date(as_of_date)
        if target is None:
            return RateLookup(rate=ZERO, reason=REASON_INVALID_DATE)
        if employee.start_date and target < employee.start_date:
            return RateLookup(rate=ZERO, reason=REASON_NOT_STARTED)

        effective_service = self.effective_service_id(employee, service_id)
        for history in self._histories.get((employee_id, effective_service), ()):
            if history.effective_date <= target:
                if history.rate > 0:
                    return RateLookup(rate=history.rate, effective_date=history.effective_date)
                break
        return RateLookup(rate=ZERO, reason=REASON_NO_RATE)

    def resolve(
        self,
        employee_id: str,
        as_of_date: date | str | None,
        service_id: str | None = None,
    ) -> Decimal:
        """Resolve the rate amount.

        Raises:
            RateNotFoundError: If no usable rate is found
        """
        lookup = self.get_rate_for_date(employee_id, as_of_date, service_id)
        if lookup.rate <= 0:
            raise RateNotFoundError(employee_id, to_date(as_of_date), service_id, lookup.reason)
        return lookup.rate
