"""Domain types shared by the stores, the engine, and the HTTP layer."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class SubjectKind(str, Enum):
    """The two independent lockout axes."""

    IDENTITY = "user"
    SOURCE = "ip"

    def key(self, subject: str) -> str:
        return f"{self.value}:{subject}"


# Event types emitted by the engine itself
FAILED_LOGIN = "failed_login"
SUCCESSFUL_LOGIN_AFTER_FAILURES = "successful_login_after_failures"
ACCOUNT_LOCKOUT = "account_lockout"
IP_LOCKOUT = "ip_lockout"
LOCKOUT_CLEARED = "lockout_cleared"
LOCKOUT_HISTORY_RESET = "lockout_history_reset"
RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

# Synthetic alert types; never evaluated by, or counted toward, the detector rules
SECURITY_ALERT = "security_alert"
POTENTIAL_ATTACK = "potential_attack"
COORDINATED_ATTACK = "coordinated_attack"
ALERT_TYPES = frozenset({SECURITY_ALERT, POTENTIAL_ATTACK, COORDINATED_ATTACK})


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class SecurityEvent:
    """An immutable, append-only security event."""

    type: str
    severity: Severity
    description: str
    source_address: str
    created_at: datetime
    identity: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_alert(self) -> bool:
        return self.type in ALERT_TYPES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity.value,
            "description": self.description,
            "source_address": self.source_address,
            "identity": self.identity,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class EventFilter:
    """Query filter for the event store. ``since`` and ``until`` are inclusive."""

    type: Optional[str] = None
    severity: Optional[Severity] = None
    source: Optional[str] = None
    identity: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    exclude_types: frozenset[str] = frozenset()
    limit: Optional[int] = None

    def __post_init__(self):
        # Naive bounds are taken as UTC so they compare against stored timestamps
        for name in ("since", "until"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, as_utc(value))

    def matches(self, event: SecurityEvent) -> bool:
        if self.type is not None and event.type != self.type:
            return False
        if self.severity is not None and event.severity != self.severity:
            return False
        if self.source is not None and event.source_address != self.source:
            return False
        if self.identity is not None and event.identity != self.identity:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        if event.type in self.exclude_types:
            return False
        return True


@dataclass(frozen=True)
class LockoutRecord:
    """Lock state for one identity or source.

    ``lockout_count`` is escalation history: it survives unlocks and only
    an explicit history reset clears it.
    """

    key: str
    lockout_count: int = 0
    locked_until: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    attempt_count_at_lock: int = 0
    is_permanent: bool = False
    version: int = 0

    def is_active(self, now: datetime) -> bool:
        if self.is_permanent:
            return True
        return self.locked_until is not None and now <= self.locked_until

    def cleared(self) -> "LockoutRecord":
        return replace(
            self,
            locked_until=None,
            locked_at=None,
            is_permanent=False,
            version=self.version + 1,
        )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "lockout_count": self.lockout_count,
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "attempt_count_at_lock": self.attempt_count_at_lock,
            "is_permanent": self.is_permanent,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LockoutRecord":
        def _dt(value):
            return datetime.fromisoformat(value) if value else None

        return cls(
            key=data["key"],
            lockout_count=int(data.get("lockout_count", 0)),
            locked_until=_dt(data.get("locked_until")),
            locked_at=_dt(data.get("locked_at")),
            attempt_count_at_lock=int(data.get("attempt_count_at_lock", 0)),
            is_permanent=bool(data.get("is_permanent", False)),
            version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class LockoutInfo:
    """What the query side reports about an active lock."""

    locked_until: Optional[datetime]
    is_permanent: bool
    attempt_count: int
    lockout_count: int

    def to_dict(self) -> dict:
        return {
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "is_permanent": self.is_permanent,
            "attempt_count": self.attempt_count,
            "lockout_count": self.lockout_count,
        }


@dataclass
class AttemptResult:
    """Outcome of recording one failed attempt."""

    identity_attempts: int = 0
    source_attempts: int = 0
    identity_lock: Optional[LockoutRecord] = None
    source_lock: Optional[LockoutRecord] = None


_MESSAGES = {
    "ip_lockout": "Too many failed attempts from this IP address. Please try again later.",
    "account_lockout": "Account temporarily locked due to too many failed login attempts. Please try again later.",
    "account_lockout_permanent": "This account has been permanently locked due to repeated security violations.",
    "ip_lockout_permanent": "This IP address has been permanently blocked due to repeated security violations.",
    "service_degraded": "Authentication is temporarily unavailable. Please try again later.",
}


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: Optional[str] = None
    locked_until: Optional[datetime] = None
    is_permanent: bool = False
    message: Optional[str] = None
    degraded: bool = False

    @classmethod
    def allow(cls, degraded: bool = False) -> "Verdict":
        return cls(allowed=True, degraded=degraded)

    @classmethod
    def deny(
        cls,
        reason: str,
        locked_until: Optional[datetime] = None,
        is_permanent: bool = False,
        degraded: bool = False,
    ) -> "Verdict":
        message_key = f"{reason}_permanent" if is_permanent else reason
        return cls(
            allowed=False,
            reason=reason,
            locked_until=None if is_permanent else locked_until,
            is_permanent=is_permanent,
            message=_MESSAGES.get(message_key, _MESSAGES.get(reason)),
            degraded=degraded,
        )

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "is_permanent": self.is_permanent,
            "message": self.message,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class DashboardSnapshot:
    """Read-only rollup of the event store. Always rebuilt in full."""

    recent_events: list[SecurityEvent]
    event_counts: dict[tuple[str, str], int]
    top_sources: list[tuple[str, int]]
    health_status: HealthStatus
    health: dict[str, int]
    timeline: dict[str, dict[str, int]]
    generated_at: datetime

    def to_dict(self) -> dict:
        counts: dict[str, dict[str, int]] = {}
        for (event_type, severity), count in self.event_counts.items():
            counts.setdefault(event_type, {})[severity] = count
        return {
            "recent_events": [e.to_dict() for e in self.recent_events],
            "event_counts": counts,
            "top_sources": [
                {"source_address": source, "count": count} for source, count in self.top_sources
            ],
            "health_status": self.health_status.value,
            "health": dict(self.health),
            "timeline": self.timeline,
            "generated_at": self.generated_at.isoformat(),
        }
