"""Attempt Tracker: failed and successful logins per identity and per source.

The two axes are counted independently, with their own windows and
thresholds. A shared office IP is not locked because one account is under
attack, and one noisy NAT address is not treated like a targeted attack on
a single account.
"""

from typing import Optional

from ..config import LockwardenConfig
from ..stores.counter_store import CounterStore
from ..utils.logging import get_logger
from ..utils.timeouts import bounded
from .lockout import LockoutStateMachine
from .recorder import EventRecorder
from .types import (
    FAILED_LOGIN,
    SUCCESSFUL_LOGIN_AFTER_FAILURES,
    AttemptResult,
    Severity,
    SubjectKind,
)

logger = get_logger("core.attempt_tracker")


class AttemptTracker:
    def __init__(
        self,
        counters: CounterStore,
        lockouts: LockoutStateMachine,
        recorder: EventRecorder,
        config: LockwardenConfig,
        timeout: float = 2.0,
    ):
        self._counters = counters
        self._lockouts = lockouts
        self._recorder = recorder
        self._config = config
        self._timeout = timeout

    def _window(self, kind: SubjectKind) -> int:
        if kind is SubjectKind.IDENTITY:
            return self._config.attempt_window_seconds
        return self._config.source_attempt_window_seconds

    async def _increment(self, kind: SubjectKind, subject: str) -> int:
        return await bounded(
            self._counters.increment(kind.key(subject), self._window(kind)),
            self._timeout,
            store=self._counters.name,
            operation="increment",
            shield=True,
        )

    async def get_failed_attempt_count(self, kind: SubjectKind, subject: str) -> int:
        return await bounded(
            self._counters.get(kind.key(subject)),
            self._timeout,
            store=self._counters.name,
            operation="get",
        )

    async def reset(self, kind: SubjectKind, subject: str) -> None:
        await bounded(
            self._counters.reset(kind.key(subject)),
            self._timeout,
            store=self._counters.name,
            operation="reset",
            shield=True,
        )

    async def record_failed_attempt(self, identity: Optional[str], source: str) -> AttemptResult:
        """Count one failure on both axes and lock whichever axis crossed its threshold.

        Counter failures raise TransientStoreError; the failure must not be
        silently forgotten.
        """
        result = AttemptResult()
        if identity is not None:
            result.identity_attempts = await self._increment(SubjectKind.IDENTITY, identity)
        result.source_attempts = await self._increment(SubjectKind.SOURCE, source)

        identity_crossed = identity is not None and result.identity_attempts >= self._config.max_attempts
        source_crossed = (
            self._config.source_lockout_enabled
            and result.source_attempts >= self._config.source_max_attempts
        )

        logger.warning(
            "failed_login_attempt",
            identity=identity,
            source=source,
            identity_attempts=result.identity_attempts,
            source_attempts=result.source_attempts,
        )
        if identity is not None:
            description = f"Failed login attempt for identifier: {identity}"
        else:
            description = f"Failed login attempt from {source}"
        await self._recorder.record(
            FAILED_LOGIN,
            Severity.HIGH if identity_crossed else Severity.MEDIUM,
            description,
            source,
            identity=identity,
            metadata={
                "identity_attempts": result.identity_attempts,
                "source_attempts": result.source_attempts,
            },
        )

        if identity_crossed:
            result.identity_lock = await self._lockouts.lock_user(identity, result.identity_attempts, source)
        if source_crossed:
            result.source_lock = await self._lockouts.lock_source(source, result.source_attempts)
        return result

    async def record_successful_login(self, identity: Optional[str], source: str) -> int:
        """Clear the failure windows on both axes. Returns the identity's prior failure count."""
        previous = 0
        if identity is not None:
            previous = await self.get_failed_attempt_count(SubjectKind.IDENTITY, identity)
            await self.reset(SubjectKind.IDENTITY, identity)
        await self.reset(SubjectKind.SOURCE, source)

        if previous > 0:
            logger.info("login_after_failures", identity=identity, source=source, previous_failures=previous)
            await self._recorder.record(
                SUCCESSFUL_LOGIN_AFTER_FAILURES,
                Severity.MEDIUM,
                f"Successful login after {previous} failed attempts for identifier: {identity}",
                source,
                identity=identity,
                metadata={"previous_failures": previous},
            )
        return previous
