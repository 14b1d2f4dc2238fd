"""Work-session metadata envelope and storage capability detection."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from tutorpay.calculators.coerce import field_value, to_decimal
from tutorpay.config import get_settings

logger = logging.getLogger(__name__)

MISSING_COLUMN_CODES = frozenset({"42703", "PGRST204"})
MAX_SOURCE_LENGTH = 120
MAX_SUBTYPE_LENGTH = 120
MAX_NOTE_LENGTH = 500

_LEAVE_BUSINESS_FIELDS = ("leave_kind", "leave_type", "leave_fraction")
_LEAVE_SECTION_BUSINESS_FIELDS = ("kind", "type", "payable", "fraction")


def prune(value: Any) -> Any:
    """Drop None values and empty containers, recursively; None if nothing is left."""
    if isinstance(value, list):
        items = [item for item in (prune(item) for item in value) if item is not None]
        return items or None
    if isinstance(value, dict):
        result = {}
        for key, raw in value.items():
            pruned = prune(raw)
            if pruned is None or pruned == {} or pruned == []:
                continue
            result[key] = pruned
        return result or None
    return value


def normalize_version(version: Any) -> int:
    number = to_decimal(version)
    if number is None or number <= 0:
        return 1
    return int(number)


def normalize_source(source: Any) -> str | None:
    if not isinstance(source, str):
        return None
    trimmed = source.strip()
    return trimmed[:MAX_SOURCE_LENGTH] if trimmed else None


def create_metadata_envelope(
    source: str | None = None,
    leave: dict[str, Any] | None = None,
    calc: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    version: Any = 1,
) -> dict[str, Any]:
    """Build a versioned metadata dict with optional leave/calc sections."""
    envelope: dict[str, Any] = {"version": normalize_version(version)}
    normalized_source = normalize_source(source)
    if normalized_source:
        envelope["source"] = normalized_source
    pruned_extra = prune(extra or {})
    if isinstance(pruned_extra, dict):
        envelope.update(pruned_extra)
    for name, section in (("leave", leave), ("calc", calc)):
        if isinstance(section, dict):
            pruned = prune(section)
            if pruned:
                envelope[name] = pruned
    return prune(envelope) or {"version": 1}


def build_leave_metadata(
    source: str | None = None,
    mixed_paid: bool | None = None,
    subtype: str | None = None,
    method: str | None = None,
    lookback_months: Any = None,
    legal_allow_12m_if_better: bool | None = None,
    override_applied: bool | None = None,
    note_internal: str | None = None,
    extra: dict[str, Any] | None = None,
    version: Any = 1,
) -> dict[str, Any]:
    """Metadata for a leave row: the mixed-request choice and how it was valued."""
    resolved_subtype = subtype.strip()[:MAX_SUBTYPE_LENGTH] if isinstance(subtype, str) else None
    lookback = to_decimal(lookback_months)
    leave_section = {
        "mixed_paid": mixed_paid if isinstance(mixed_paid, bool) else None,
        "subtype": resolved_subtype or None,
    }
    calc_section = {
        "method": getattr(method, "value", method) or None,
        "lookback_months": int(lookback.to_integral_value()) if lookback is not None else None,
        "legal_allow_12m_if_better": (
            legal_allow_12m_if_better if isinstance(legal_allow_12m_if_better, bool) else None
        ),
        "override_applied": override_applied if isinstance(override_applied, bool) else None,
    }
    top_level = dict(extra or {})
    if isinstance(note_internal, str) and note_internal.strip():
        top_level["note_internal"] = note_internal.strip()[:MAX_NOTE_LENGTH]
    return create_metadata_envelope(
        source=source, leave=leave_section, calc=calc_section, extra=top_level, version=version
    )


def build_source_metadata(source: str | None, extra: dict[str, Any] | None = None, version: Any = 1) -> dict[str, Any]:
    return create_metadata_envelope(source=source, extra=extra, version=version)


def strip_leave_business_fields(metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    """Remove fields that restate the row's leave kind, fraction or payability."""
    if not isinstance(metadata, dict):
        return None
    clone = copy.deepcopy(metadata)
    for name in _LEAVE_BUSINESS_FIELDS:
        clone.pop(name, None)
    leave = clone.get("leave")
    if isinstance(leave, dict):
        for name in _LEAVE_SECTION_BUSINESS_FIELDS:
            leave.pop(name, None)
        if not leave:
            del clone["leave"]
    calc = clone.get("calc")
    if isinstance(calc, dict):
        calc.pop("daily_value_snapshot", None)
        if not calc:
            del clone["calc"]
    return prune(clone)


def is_missing_column_error(error: Any) -> bool:
    """True when a storage error says the metadata column does not exist."""
    if error is None:
        return False
    code = field_value(error, "code")
    if code is not None and str(code) in MISSING_COLUMN_CODES:
        return True
    message = field_value(error, "message")
    if message is None and isinstance(error, Exception):
        message = str(error)
    text = message.lower() if isinstance(message, str) else ""
    return "column" in text and "metadata" in text


class MetadataCapability:
    """Whether work-session rows can store a metadata column.

    The probe is a callable that queries the metadata column and returns
    an error object (or None on success); it may also raise. The first
    answer is cached on the instance. ``override`` skips probing.
    """

    def __init__(
        self,
        probe: Callable[[], Any] | None = None,
        override: bool | None = None,
    ):
        self.probe = probe
        self.override = override
        self._detected: bool | None = None

    @classmethod
    def from_settings(cls, probe: Callable[[], Any] | None = None, settings: Any = None) -> MetadataCapability:
        if settings is None:
            settings = get_settings()
        return cls(probe=probe, override=settings.metadata_support)

    @property
    def supported(self) -> bool:
        if self.override is not None:
            return self.override
        if self._detected is None:
            self._detected = self._detect()
        return self._detected

    def reset(self) -> None:
        self._detected = None

    def _detect(self) -> bool:
        if self.probe is None:
            return False
        try:
            error = self.probe()
        except Exception as exc:
            error = exc
        if error is None:
            return True
        if not is_missing_column_error(error):
            logger.warning("Unable to verify work session metadata support: %s", error)
        return False
