"""Leave classification.

Time-entry rows carry their leave kind in several historical encodings:
the ``entry_type`` itself, explicit subtype fields, legacy ``leave_kind`` /
``leave_type`` columns, or a nested ``metadata.leave`` section. The
resolvers below are evaluated in a fixed priority order:

    1. entry_type lookup table
    2. explicit unpaid subtype (row fields, then metadata)
    3. legacy field scan (prefix-normalized tokens)

The order decides how historical rows are classified and must not change.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from tutorpay.calculators.coerce import (
    coerce_boolean,
    field_value,
    parse_metadata,
    to_decimal,
)
from tutorpay.calculators.types import HALF, ONE, ZERO, LeaveKind

TIME_ENTRY_LEAVE_PREFIX = "time_entry_leave"

_TOKEN_PREFIXES = ("time_entry_leave_", "usage_", "leave_", "policy_")

UNPAID_SUBTYPES = frozenset({LeaveKind.HOLIDAY_UNPAID, LeaveKind.VACATION_UNPAID})
PAYABLE_KINDS = frozenset({LeaveKind.SYSTEM_PAID, LeaveKind.EMPLOYEE_PAID, LeaveKind.HALF_DAY})

MIXED_SUBTYPES = ("holiday", "vacation")
DEFAULT_MIXED_SUBTYPE = "holiday"

# Base kind -> entry type written for new rows.
LEAVE_ENTRY_TYPES: dict[LeaveKind, str] = {
    LeaveKind.SYSTEM_PAID: "leave_system_paid",
    LeaveKind.EMPLOYEE_PAID: "leave_employee_paid",
    LeaveKind.UNPAID: "leave_unpaid",
    LeaveKind.HALF_DAY: "leave_half_day",
}

# Entry type -> kind, including legacy entry types.
ENTRY_TYPE_TO_KIND: dict[str, LeaveKind] = {
    "paid_leave": LeaveKind.SYSTEM_PAID,
    "leave_system_paid": LeaveKind.SYSTEM_PAID,
    "leave_employee_paid": LeaveKind.EMPLOYEE_PAID,
    "leave_unpaid": LeaveKind.VACATION_UNPAID,
    "leave": LeaveKind.VACATION_UNPAID,
    "leave_half_day": LeaveKind.HALF_DAY,
}

_KNOWN_KINDS = {kind.value: kind for kind in LeaveKind}

# (section, key) paths into metadata; section None means top level.
_SUBTYPE_ROW_FIELDS = ("leave_subtype", "leaveSubtype", "subtype")
_SUBTYPE_METADATA_PATHS = (
    ("leave", "subtype"),
    (None, "leave_subtype"),
    (None, "leaveSubtype"),
    ("leave", "type"),
    (None, "leave_type"),
    (None, "leaveType"),
)
_LEGACY_ROW_FIELDS = ("leave_kind", "leaveKind", "leave_type", "leaveType")
_LEGACY_METADATA_PATHS = (
    ("leave", "kind"),
    (None, "leave_kind"),
    (None, "leaveKind"),
    ("leave", "type"),
    (None, "leave_type"),
)


def _token(value: Any) -> str | None:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_leave_token(value: Any) -> str | None:
    """Strip the first known prefix from a leave token."""
    token = _token(value)
    if token is None:
        return None
    for prefix in _TOKEN_PREFIXES:
        if token.startswith(prefix):
            return token[len(prefix):]
    return token


def get_leave_subtype_from_value(value: Any) -> LeaveKind | None:
    """Return the unpaid subtype named by ``value``, if any."""
    normalized = normalize_leave_token(value)
    if normalized in (LeaveKind.HOLIDAY_UNPAID.value, LeaveKind.VACATION_UNPAID.value):
        return LeaveKind(normalized)
    return None


def get_leave_base_kind(value: Any) -> LeaveKind | None:
    """Return the base kind for a token; unpaid subtypes collapse to UNPAID."""
    normalized = normalize_leave_token(value)
    if normalized is None:
        return None
    kind = _KNOWN_KINDS.get(normalized)
    if kind in UNPAID_SUBTYPES:
        return LeaveKind.UNPAID
    return kind


def get_leave_kind_from_entry_type(entry_type: Any) -> LeaveKind | None:
    token = _token(entry_type)
    return ENTRY_TYPE_TO_KIND.get(token) if token else None


def get_entry_type_for_leave_kind(kind: Any) -> str | None:
    base = get_leave_base_kind(kind)
    return LEAVE_ENTRY_TYPES.get(base) if base else None


def is_leave_entry_type(entry_type: Any) -> bool:
    return get_leave_kind_from_entry_type(entry_type) is not None


def is_payable_leave_kind(kind: Any) -> bool:
    return get_leave_base_kind(kind) in PAYABLE_KINDS


def get_leave_ledger_delta(kind: Any) -> Decimal:
    """Days debited from the leave bank by one row of ``kind``.

    System-paid leave is a holiday and does not touch the bank.
    """
    base = get_leave_base_kind(kind)
    if base == LeaveKind.EMPLOYEE_PAID:
        return -ONE
    if base == LeaveKind.HALF_DAY:
        return -HALF
    return ZERO


def _lookup(metadata: dict[str, Any] | None, path: tuple[str | None, str]) -> Any:
    container, key = path
    if metadata is None:
        return None
    if container is None:
        return metadata.get(key)
    section = metadata.get(container)
    return section.get(key) if isinstance(section, dict) else None


def _metadata(details: Any) -> dict[str, Any] | None:
    return parse_metadata(field_value(details, "metadata"))


def _entry_type(details: Any) -> Any:
    return field_value(details, "entry_type") or field_value(details, "entryType")


def infer_leave_subtype(details: Any) -> LeaveKind | None:
    """Find an explicit unpaid subtype on the row or in its metadata."""
    for name in _SUBTYPE_ROW_FIELDS:
        subtype = get_leave_subtype_from_value(field_value(details, name))
        if subtype:
            return subtype
    metadata = _metadata(details)
    for path in _SUBTYPE_METADATA_PATHS:
        subtype = get_leave_subtype_from_value(_lookup(metadata, path))
        if subtype:
            return subtype
    for name in _LEGACY_ROW_FIELDS:
        subtype = get_leave_subtype_from_value(field_value(details, name))
        if subtype:
            return subtype
    for path in _LEGACY_METADATA_PATHS:
        subtype = get_leave_subtype_from_value(_lookup(metadata, path))
        if subtype:
            return subtype
    return None


def _kind_from_entry_type(details: Any) -> LeaveKind | None:
    return get_leave_kind_from_entry_type(_entry_type(details))


def _kind_from_subtype(details: Any) -> LeaveKind | None:
    return LeaveKind.UNPAID if infer_leave_subtype(details) else None


def _kind_from_legacy_fields(details: Any) -> LeaveKind | None:
    for name in _LEGACY_ROW_FIELDS:
        base = get_leave_base_kind(field_value(details, name))
        if base:
            return base
    metadata = _metadata(details)
    for path in _LEGACY_METADATA_PATHS:
        base = get_leave_base_kind(_lookup(metadata, path))
        if base:
            return base
    return None


_KIND_RESOLVERS: tuple[Callable[[Any], LeaveKind | None], ...] = (
    _kind_from_entry_type,
    _kind_from_subtype,
    _kind_from_legacy_fields,
)


def infer_leave_kind(details: Any) -> LeaveKind | None:
    """Resolve a row (mapping or WorkSession) to its leave kind.

    Returns None when nothing on the row names a known leave kind; callers
    treat that as "not leave".
    """
    for resolver in _KIND_RESOLVERS:
        kind = resolver(details)
        if kind is not None:
            return kind
    return None


def infer_leave_type(details: Any) -> LeaveKind | None:
    """Like infer_leave_kind, but reports the unpaid subtype when known."""
    subtype = infer_leave_subtype(details)
    if subtype:
        return subtype
    base = infer_leave_kind(details)
    if base == LeaveKind.UNPAID:
        return LeaveKind.VACATION_UNPAID
    return base


def normalize_mixed_subtype(value: Any) -> str | None:
    normalized = normalize_leave_token(value)
    if not normalized:
        return None
    for subtype in MIXED_SUBTYPES:
        if normalized.startswith(subtype):
            return subtype
    return None


@dataclass(frozen=True)
class MixedLeaveDetails:
    subtype: str | None
    paid: bool | None
    half_day: bool


def parse_mixed_leave_details(details: Any) -> MixedLeaveDetails:
    """Read the per-date choices of a mixed leave request."""
    metadata = _metadata(details)
    leave_meta = metadata.get("leave") if metadata else None
    if not isinstance(leave_meta, dict):
        leave_meta = {}
    meta = metadata or {}

    subtype = None
    for candidate in (
        field_value(details, "mixed_subtype"),
        field_value(details, "mixedSubtype"),
        field_value(details, "leave_subtype"),
        field_value(details, "leaveSubtype"),
        leave_meta.get("subtype"),
        meta.get("leave_subtype"),
        meta.get("leaveSubtype"),
    ):
        subtype = normalize_mixed_subtype(candidate)
        if subtype:
            break

    paid = None
    for candidate in (
        field_value(details, "mixed_paid"),
        field_value(details, "mixedPaid"),
        field_value(details, "paid"),
        field_value(details, "payable"),
        leave_meta.get("mixed_paid"),
        leave_meta.get("paid"),
        leave_meta.get("payable"),
    ):
        paid = coerce_boolean(candidate)
        if paid is not None:
            break

    half_day = True if _kind_from_entry_type(details) == LeaveKind.HALF_DAY else None
    for candidate in (
        field_value(details, "mixed_half_day"),
        field_value(details, "mixedHalfDay"),
        field_value(details, "half_day"),
        field_value(details, "halfDay"),
        leave_meta.get("half_day"),
        meta.get("leave_half_day"),
        meta.get("leaveHalfDay"),
    ):
        coerced = coerce_boolean(candidate)
        if coerced is not None:
            half_day = coerced
            break

    if paid is False:
        half_day = False
    return MixedLeaveDetails(subtype=subtype, paid=paid, half_day=bool(half_day))


def get_leave_value_multiplier(details: Any) -> Decimal:
    """Fraction of a day a leave row is worth (pay and balance debit).

    An explicit positive ``leave_fraction`` wins; otherwise half-day leave
    is worth 0.5 and everything else a full day.
    """
    metadata = _metadata(details) or {}
    for candidate in (
        field_value(details, "leave_fraction"),
        field_value(details, "leaveFraction"),
        field_value(details, "fraction"),
        metadata.get("leave_fraction"),
        metadata.get("leaveFraction"),
        metadata.get("fraction"),
    ):
        number = to_decimal(candidate)
        if number is not None and number > 0:
            return number
    if infer_leave_kind(details) == LeaveKind.HALF_DAY:
        return HALF
    return ONE
