"""
Maps violation reports from the desktop exam client onto canonical records.

Classification is total: any input, including None, empty strings and
non-string values, yields a defined violation type, event type and severity.
"""
from dataclasses import dataclass
from typing import Any, Dict, Tuple

DEFAULT_VIOLATION_TYPE = "suspicious_behavior"
DEFAULT_EVENT_TYPE = "suspicious_activity"
DEFAULT_SEVERITY = "warning"

# client violationType -> (canonical violation_type, monitoring event_type)
VIOLATION_TYPE_MAP: Dict[str, Tuple[str, str]] = {
    "FORBIDDEN_PROCESS": ("forbidden_process_detected", "suspicious_activity"),
    "MULTIPLE_DISPLAYS": ("multi_monitor_usage", "multi_monitor_detected"),
    "SCREEN_LOCK": ("prolonged_screen_lock", "screen_locked"),
    "WINDOW_BLUR": ("excessive_tab_switching", "window_blur"),
    "VM_DETECTED": ("vm_usage_detected", "vm_detected"),
    "LOW_DISK_SPACE": ("recording_failure", "custom_event"),
    "MONITORING_FAILURE": ("monitoring_app_failure", "custom_event"),
}

SEVERITY_MAP: Dict[str, str] = {
    "low": "info",
    "medium": "warning",
    "high": "critical",
}

CANONICAL_SEVERITIES = ("info", "warning", "critical")

CANONICAL_VIOLATION_TYPES = frozenset(
    [canonical for canonical, _ in VIOLATION_TYPE_MAP.values()] + [DEFAULT_VIOLATION_TYPE]
)


@dataclass(frozen=True)
class ClassifiedViolation:
    client_type: str
    violation_type: str
    event_type: str
    severity: str


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    try:
        return str(value).strip()
    except Exception:
        return ""


def map_severity(severity: Any) -> str:
    """low/medium/high -> info/warning/critical; canonical values pass through"""
    key = _as_text(severity).lower()
    if key in CANONICAL_SEVERITIES:
        return key
    return SEVERITY_MAP.get(key, DEFAULT_SEVERITY)


def canonical_violation_type(violation_type: Any) -> str:
    """Accept either a client violationType or an already-canonical type"""
    text = _as_text(violation_type)
    if text in CANONICAL_VIOLATION_TYPES:
        return text
    mapped = VIOLATION_TYPE_MAP.get(text)
    return mapped[0] if mapped else DEFAULT_VIOLATION_TYPE


def classify(violation_type: Any, severity: Any = "medium") -> ClassifiedViolation:
    client_type = _as_text(violation_type)
    canonical, event_type = VIOLATION_TYPE_MAP.get(
        client_type, (DEFAULT_VIOLATION_TYPE, DEFAULT_EVENT_TYPE)
    )
    return ClassifiedViolation(
        client_type=client_type,
        violation_type=canonical,
        event_type=event_type,
        severity=map_severity(severity),
    )
