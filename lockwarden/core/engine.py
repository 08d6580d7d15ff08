"""Protection Engine: the one object the request pipeline talks to.

Built once per process with its stores and collaborators passed in. The
engine decides whether a login-shaped request may proceed, counts failures
on the identity and source axes, records security events for every other
subsystem, and serves the reporting rollups.
"""

from datetime import timedelta
from typing import Any, Optional

from ..alerting.dispatcher import AlertDispatcher
from ..config import LockwardenConfig
from ..exceptions import TransientStoreError
from ..stores.counter_store import CounterStore
from ..stores.event_store import EventStore
from ..stores.lockout_store import LockoutStore
from ..utils.input_validators import validate_identity, validate_source
from ..utils.logging import get_logger
from ..utils.timeouts import bounded
from .accounts import AccountDirectory
from .attempt_tracker import AttemptTracker
from .clock import Clock, SystemClock
from .dashboard import DashboardAggregator
from .lockout import LockoutStateMachine
from .recorder import EventRecorder
from .threat_detector import ThreatDetector
from .types import (
    AttemptResult,
    DashboardSnapshot,
    EventFilter,
    LockoutInfo,
    SecurityEvent,
    Severity,
    SubjectKind,
    Verdict,
)

logger = get_logger("core.engine")


def validate_subject(kind: SubjectKind, subject) -> str:
    if kind is SubjectKind.IDENTITY:
        return validate_identity(subject)
    return validate_source(subject)


class ProtectionEngine:
    def __init__(
        self,
        config: LockwardenConfig,
        *,
        counters: CounterStore,
        lockout_store: LockoutStore,
        events: EventStore,
        accounts: AccountDirectory,
        dispatcher: Optional[AlertDispatcher] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        self.counters = counters
        self.lockout_store = lockout_store
        self.events = events
        self.accounts = accounts
        timeout = config.store_timeout_seconds

        self.detector = ThreatDetector(events, counters, self.clock, config, timeout=timeout)
        self.recorder = EventRecorder(
            events,
            self.clock,
            detector=self.detector,
            dispatcher=dispatcher,
            timeout=timeout,
            attempts=config.event_append_retries,
            backoff=config.event_append_backoff_seconds,
        )
        self.lockouts = LockoutStateMachine(
            lockout_store, self.recorder, accounts, self.clock, config, timeout=timeout
        )
        self.tracker = AttemptTracker(counters, self.lockouts, self.recorder, config, timeout=timeout)
        self.aggregator = DashboardAggregator(events, self.clock, config, timeout=timeout)
        self._degraded = False

    # ── Degraded-mode signal ────────────────────────────────────

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _enter_degraded(self, operation: str, error: TransientStoreError) -> None:
        if not self._degraded:
            logger.error("engine_degraded", operation=operation, store=error.store, error=str(error))
        self._degraded = True

    def _leave_degraded(self) -> None:
        if self._degraded:
            logger.info("engine_recovered")
        self._degraded = False

    # ── Authentication path ─────────────────────────────────────

    async def check(self, identity: Optional[str], source: str) -> Verdict:
        """Decide whether a login-shaped request may proceed.

        The source axis is checked first. A store failure denies the request
        when ``fail_closed`` is set and allows it otherwise; either way the
        verdict carries ``degraded=True``.
        """
        source = validate_source(source)
        if identity is not None:
            identity = validate_identity(identity)

        try:
            info = await self.lockouts.get_lockout_info(SubjectKind.SOURCE, source)
            if info is not None:
                self._leave_degraded()
                return Verdict.deny("ip_lockout", info.locked_until, info.is_permanent)
            if identity is not None:
                info = await self.lockouts.get_lockout_info(SubjectKind.IDENTITY, identity)
                if info is not None:
                    self._leave_degraded()
                    return Verdict.deny("account_lockout", info.locked_until, info.is_permanent)
        except TransientStoreError as e:
            self._enter_degraded("check", e)
            if self.config.fail_closed:
                return Verdict.deny("service_degraded", degraded=True)
            return Verdict.allow(degraded=True)

        self._leave_degraded()
        return Verdict.allow()

    async def report_failure(self, identity: Optional[str], source: str) -> AttemptResult:
        """Raises TransientStoreError when the failure could not be counted."""
        source = validate_source(source)
        if identity is not None:
            identity = validate_identity(identity)
        try:
            result = await self.tracker.record_failed_attempt(identity, source)
        except TransientStoreError as e:
            self._enter_degraded("report_failure", e)
            raise
        self._leave_degraded()
        return result

    async def report_success(self, identity: Optional[str], source: str) -> None:
        source = validate_source(source)
        if identity is not None:
            identity = validate_identity(identity)
        try:
            await self.tracker.record_successful_login(identity, source)
        except TransientStoreError as e:
            self._enter_degraded("report_success", e)
            raise
        self._leave_degraded()

    # ── Event hook ──────────────────────────────────────────────

    async def record_event(
        self,
        type: str,
        severity: Severity | str,
        description: str,
        source: str,
        identity: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[SecurityEvent]:
        """Feed an event from any subsystem into the shared detector.

        Raises InvalidInput for malformed fields; never raises a store failure.
        """
        return await self.recorder.record(type, severity, description, source, identity, metadata)

    async def query_events(self, event_filter: EventFilter) -> list[SecurityEvent]:
        return await bounded(
            self.events.query(event_filter),
            self.config.store_timeout_seconds,
            store=self.events.name,
            operation="query",
        )

    async def purge_events(self, older_than: timedelta) -> int:
        deleted = await bounded(
            self.events.purge_older_than(older_than),
            self.config.store_timeout_seconds,
            store=self.events.name,
            operation="purge_older_than",
            shield=True,
        )
        if deleted:
            self.aggregator.invalidate()
        return deleted

    # ── Administration ──────────────────────────────────────────

    async def unlock(self, kind: SubjectKind, subject: str, actor_source: Optional[str] = None) -> bool:
        """Clear a lock and its failure window. ``lockout_count`` is kept."""
        subject = validate_subject(kind, subject)
        cleared = await self.lockouts.unlock(kind, subject, actor_source)
        await self.tracker.reset(kind, subject)
        return cleared

    async def reset_lockout_history(
        self, kind: SubjectKind, subject: str, actor_source: Optional[str] = None
    ) -> bool:
        subject = validate_subject(kind, subject)
        return await self.lockouts.reset_history(kind, subject, actor_source)

    async def lockout_info(self, kind: SubjectKind, subject: str) -> Optional[LockoutInfo]:
        subject = validate_subject(kind, subject)
        return await self.lockouts.get_lockout_info(kind, subject)

    async def lockout_count(self, kind: SubjectKind, subject: str) -> int:
        subject = validate_subject(kind, subject)
        record = await self.lockouts.get_record(kind, subject)
        return record.lockout_count if record else 0

    async def failed_attempt_count(self, kind: SubjectKind, subject: str) -> int:
        subject = validate_subject(kind, subject)
        return await self.tracker.get_failed_attempt_count(kind, subject)

    # ── Reporting ───────────────────────────────────────────────

    async def dashboard(self) -> DashboardSnapshot:
        return await self.aggregator.get_dashboard_data()

    async def statistics(self, period: str = "24h") -> dict:
        return await self.aggregator.get_statistics(period)

    def stats(self) -> dict:
        return {
            "degraded": self._degraded,
            "recorder": self.recorder.get_stats(),
            "detector": self.detector.get_stats(),
        }

    async def close(self) -> None:
        for store in (self.counters, self.lockout_store, self.events):
            await store.close()
