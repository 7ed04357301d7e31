import pytest

from app.services.violation_classifier import (
    classify,
    map_severity,
    canonical_violation_type,
    VIOLATION_TYPE_MAP,
)
from app.models.monitoring_log import EVENT_TYPES


class TestClassify:
    """Client violation types map onto canonical types and event types"""

    @pytest.mark.parametrize("client_type,violation_type,event_type", [
        ("FORBIDDEN_PROCESS", "forbidden_process_detected", "suspicious_activity"),
        ("MULTIPLE_DISPLAYS", "multi_monitor_usage", "multi_monitor_detected"),
        ("SCREEN_LOCK", "prolonged_screen_lock", "screen_locked"),
        ("WINDOW_BLUR", "excessive_tab_switching", "window_blur"),
        ("VM_DETECTED", "vm_usage_detected", "vm_detected"),
        ("LOW_DISK_SPACE", "recording_failure", "custom_event"),
        ("MONITORING_FAILURE", "monitoring_app_failure", "custom_event"),
    ])
    def test_known_types(self, client_type, violation_type, event_type):
        result = classify(client_type, "medium")
        assert result.violation_type == violation_type
        assert result.event_type == event_type

    def test_unknown_type_falls_back(self):
        result = classify("SOMETHING_NEW", "high")
        assert result.violation_type == "suspicious_behavior"
        assert result.event_type == "suspicious_activity"
        assert result.severity == "critical"

    @pytest.mark.parametrize("value", [None, "", 42, {"type": "x"}, ["WINDOW_BLUR"]])
    def test_never_raises(self, value):
        result = classify(value, value)
        assert result.violation_type == "suspicious_behavior"
        assert result.severity == "warning"

    def test_every_event_type_is_storable(self):
        """Mapped event types must be accepted by the ingestion gateway"""
        for _, event_type in VIOLATION_TYPE_MAP.values():
            assert event_type in EVENT_TYPES


class TestSeverity:
    @pytest.mark.parametrize("raw,expected", [
        ("low", "info"),
        ("medium", "warning"),
        ("high", "critical"),
        ("HIGH", "critical"),
        ("extreme", "warning"),
        (None, "warning"),
    ])
    def test_map_severity(self, raw, expected):
        assert map_severity(raw) == expected

    @pytest.mark.parametrize("value", ["info", "warning", "critical"])
    def test_canonical_severity_passes_through(self, value):
        assert map_severity(value) == value


class TestCanonicalViolationType:
    def test_canonical_type_passes_through(self):
        assert canonical_violation_type("vm_usage_detected") == "vm_usage_detected"

    def test_client_type_is_translated(self):
        assert canonical_violation_type("SCREEN_LOCK") == "prolonged_screen_lock"
