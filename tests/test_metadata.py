"""Tests for work-session metadata."""

import logging

from tutorpay.calculators.metadata import (
    MetadataCapability,
    build_leave_metadata,
    build_source_metadata,
    create_metadata_envelope,
    is_missing_column_error,
    prune,
    strip_leave_business_fields,
)
from tutorpay.config import Settings, get_settings


class TestEnvelope:
    """Test metadata envelope construction."""

    def test_prune(self):
        """Test None values and empty containers are dropped."""
        assert prune({"a": None, "b": {}, "c": [None], "d": {"e": 1, "f": None}}) == {"d": {"e": 1}}
        assert prune({"a": None}) is None

    def test_envelope_defaults(self):
        """Test an empty envelope still carries a version."""
        assert create_metadata_envelope() == {"version": 1}
        assert create_metadata_envelope(version="bad") == {"version": 1}

    def test_source_is_trimmed(self):
        """Test sources are stripped and capped."""
        envelope = build_source_metadata("  " + "x" * 200 + "  ")
        assert len(envelope["source"]) == 120

    def test_leave_metadata(self):
        """Test leave and calc sections are filled from the arguments."""
        metadata = build_leave_metadata(
            source="multi_date_leave",
            mixed_paid=True,
            subtype="vacation",
            method="legal",
            lookback_months="3",
            legal_allow_12m_if_better=False,
            override_applied=False,
            note_internal="  checked  ",
            extra={"source_context": "multi_date_mixed"},
        )
        assert metadata == {
            "version": 1,
            "source": "multi_date_leave",
            "source_context": "multi_date_mixed",
            "note_internal": "checked",
            "leave": {"mixed_paid": True, "subtype": "vacation"},
            "calc": {
                "method": "legal",
                "lookback_months": 3,
                "legal_allow_12m_if_better": False,
                "override_applied": False,
            },
        }

    def test_strip_business_fields(self):
        """Test fields that restate the row are removed."""
        metadata = {
            "version": 1,
            "leave_kind": "half_day",
            "leave": {"kind": "half_day", "fraction": 0.5, "subtype": "holiday"},
            "calc": {"daily_value_snapshot": 300},
        }
        assert strip_leave_business_fields(metadata) == {"version": 1, "leave": {"subtype": "holiday"}}
        assert metadata["leave_kind"] == "half_day"
        assert strip_leave_business_fields("nope") is None


class TestMissingColumn:
    """Test missing-column error detection."""

    def test_codes(self):
        """Test known error codes."""
        assert is_missing_column_error({"code": "42703"})
        assert is_missing_column_error({"code": "PGRST204"})

    def test_message(self):
        """Test messages naming the metadata column."""
        assert is_missing_column_error(RuntimeError('column "metadata" does not exist'))
        assert not is_missing_column_error({"message": "permission denied"})
        assert not is_missing_column_error(None)


class TestMetadataCapability:
    """Test capability detection."""

    def test_probe_success_is_cached(self):
        """Test the probe runs once."""
        calls = []

        def probe():
            calls.append(1)
            return None

        capability = MetadataCapability(probe=probe)
        assert capability.supported is True
        assert capability.supported is True
        assert calls == [1]

        capability.reset()
        assert capability.supported is True
        assert calls == [1, 1]

    def test_missing_column(self):
        """Test a missing column means unsupported."""
        capability = MetadataCapability(probe=lambda: {"code": "42703"})
        assert capability.supported is False

    def test_probe_exception_is_logged(self, caplog):
        """Test unexpected probe failures are logged and treated as unsupported."""

        def probe():
            raise ConnectionError("timeout")

        with caplog.at_level(logging.WARNING, logger="tutorpay.calculators.metadata"):
            assert MetadataCapability(probe=probe).supported is False
        assert "timeout" in caplog.text

    def test_override_skips_probe(self):
        """Test an explicit override wins without probing."""

        def probe():
            raise AssertionError("probe should not run")

        assert MetadataCapability(probe=probe, override=True).supported is True
        assert MetadataCapability(probe=probe, override=False).supported is False

    def test_no_probe(self):
        """Test capability is off without a probe."""
        assert MetadataCapability().supported is False

    def test_from_settings(self, monkeypatch):
        """Test the override is read from the environment."""
        monkeypatch.setenv("TUTORPAY_METADATA_SUPPORT", "true")
        get_settings.cache_clear()
        assert MetadataCapability.from_settings().supported is True

        settings = Settings.from_env()
        assert MetadataCapability.from_settings(settings=settings).override is True
