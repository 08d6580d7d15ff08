"""Lockwarden core: attempt tracking, lockout escalation, threat detection, and reporting."""

from .clock import Clock, ManualClock, SystemClock
from .types import (
    ALERT_TYPES,
    AttemptResult,
    DashboardSnapshot,
    EventFilter,
    HealthStatus,
    LockoutInfo,
    LockoutRecord,
    SecurityEvent,
    Severity,
    SubjectKind,
    Verdict,
)

__all__ = [
    "ALERT_TYPES",
    "AttemptResult",
    "Clock",
    "DashboardSnapshot",
    "EventFilter",
    "HealthStatus",
    "LockoutInfo",
    "LockoutRecord",
    "ManualClock",
    "SecurityEvent",
    "Severity",
    "SubjectKind",
    "SystemClock",
    "Verdict",
]
