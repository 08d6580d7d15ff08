"""Lockout State Machine: temporary lock, repeat count, permanent lock.

States are unlocked, temporarily locked, and permanently locked. A lock is
decided at lock time from the durable ``lockout_count``: the lock that
brings the count to ``permanent_lockout_threshold`` is permanent. Unlocks
clear the lock fields but keep ``lockout_count``; only an explicit history
reset clears it.

Every transition is a single compare-and-set on the lock record, so two
requests crossing the threshold together produce one lock and one event.
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from ..config import LockwardenConfig
from ..exceptions import RaceLost
from ..stores.lockout_store import LockoutStore
from ..utils.logging import get_logger
from ..utils.timeouts import bounded
from .accounts import AccountDirectory
from .clock import Clock
from .recorder import EventRecorder
from .types import (
    ACCOUNT_LOCKOUT,
    IP_LOCKOUT,
    LOCKOUT_CLEARED,
    LOCKOUT_HISTORY_RESET,
    LockoutInfo,
    LockoutRecord,
    Severity,
    SubjectKind,
)

logger = get_logger("core.lockout")

# Source address used for events raised by administrative actions with no client
INTERNAL_SOURCE = "0.0.0.0"

# How many times an unlock re-reads and re-decides after losing a race
_MAX_CLEAR_ROUNDS = 3


class LockoutStateMachine:
    def __init__(
        self,
        store: LockoutStore,
        recorder: EventRecorder,
        accounts: AccountDirectory,
        clock: Clock,
        config: LockwardenConfig,
        timeout: float = 2.0,
    ):
        self._store = store
        self._recorder = recorder
        self._accounts = accounts
        self._clock = clock
        self._config = config
        self._timeout = timeout

    # ── Store access ────────────────────────────────────────────

    async def get_record(self, kind: SubjectKind, subject: str) -> Optional[LockoutRecord]:
        return await bounded(
            self._store.get(kind.key(subject)),
            self._timeout,
            store=self._store.name,
            operation="get",
        )

    async def _write(self, key: str, expected_version: Optional[int], record: LockoutRecord) -> None:
        await bounded(
            self._store.compare_and_set(key, expected_version, record),
            self._timeout,
            store=self._store.name,
            operation="compare_and_set",
            shield=True,
        )

    # ── Queries ─────────────────────────────────────────────────

    async def is_locked(self, kind: SubjectKind, subject: str) -> bool:
        """Raises TransientStoreError when the store can not answer."""
        record = await self.get_record(kind, subject)
        return record is not None and record.is_active(self._clock.now())

    async def get_lockout_info(self, kind: SubjectKind, subject: str) -> Optional[LockoutInfo]:
        record = await self.get_record(kind, subject)
        if record is None or not record.is_active(self._clock.now()):
            return None
        return LockoutInfo(
            locked_until=None if record.is_permanent else record.locked_until,
            is_permanent=record.is_permanent,
            attempt_count=record.attempt_count_at_lock,
            lockout_count=record.lockout_count,
        )

    # ── Transitions ─────────────────────────────────────────────

    def lock_duration(self, kind: SubjectKind, lockout_count: int) -> timedelta:
        if kind is SubjectKind.IDENTITY:
            seconds = self._config.lockout_duration_seconds
        else:
            seconds = self._config.source_lockout_duration_seconds
        if self._config.progressive_lockout:
            max_exponent = int(math.log2(self._config.progressive_max_multiplier))
            seconds *= 2 ** min(max(lockout_count - 1, 0), max_exponent)
        return timedelta(seconds=seconds)

    async def lock_user(self, identity: str, attempt_count: int, source: str) -> Optional[LockoutRecord]:
        return await self.lock(SubjectKind.IDENTITY, identity, attempt_count, source)

    async def lock_source(self, source: str, attempt_count: int) -> Optional[LockoutRecord]:
        return await self.lock(SubjectKind.SOURCE, source, attempt_count, source)

    async def lock(
        self,
        kind: SubjectKind,
        subject: str,
        attempt_count: int,
        source: str,
    ) -> Optional[LockoutRecord]:
        """Move ``subject`` into a locked state.

        Returns the new record, or None when the subject is already locked
        or a concurrent caller claimed this transition first.
        """
        key = kind.key(subject)
        current = await self.get_record(kind, subject)
        now = self._clock.now()
        if current is not None and current.is_active(now):
            logger.debug("lockout_already_active", key=key)
            return None

        lockout_count = (current.lockout_count if current else 0) + 1
        is_permanent = lockout_count >= self._config.permanent_lockout_threshold
        record = LockoutRecord(
            key=key,
            lockout_count=lockout_count,
            locked_until=None if is_permanent else now + self.lock_duration(kind, lockout_count),
            locked_at=now,
            attempt_count_at_lock=attempt_count,
            is_permanent=is_permanent,
            version=current.version + 1 if current else 0,
        )

        try:
            await self._write(key, current.version if current else None, record)
        except RaceLost:
            winner = await self.get_record(kind, subject)
            logger.info(
                "lockout_transition_lost",
                key=key,
                winner_version=winner.version if winner else None,
            )
            return None

        if is_permanent and kind is SubjectKind.IDENTITY:
            await self._deactivate(subject)
        await self._record_lock(kind, subject, record, source)
        return record

    async def _record_lock(
        self,
        kind: SubjectKind,
        subject: str,
        record: LockoutRecord,
        source: str,
    ) -> None:
        severity = Severity.CRITICAL if record.is_permanent else Severity.HIGH
        if kind is SubjectKind.IDENTITY:
            event_type = ACCOUNT_LOCKOUT
            state = "permanently" if record.is_permanent else "temporarily"
            description = f"Account {state} locked for {subject} after {record.attempt_count_at_lock} failed attempts"
            identity = subject
        else:
            event_type = IP_LOCKOUT
            state = "permanently blocked" if record.is_permanent else "locked out"
            description = f"IP address {subject} {state} after {record.attempt_count_at_lock} failed attempts"
            identity = None

        log = logger.critical if record.is_permanent else logger.warning
        log(
            "account_locked" if kind is SubjectKind.IDENTITY else "source_locked",
            key=record.key,
            lockout_count=record.lockout_count,
            is_permanent=record.is_permanent,
            locked_until=_iso(record.locked_until),
        )
        await self._recorder.record(
            event_type,
            severity,
            description,
            source,
            identity=identity,
            metadata={
                "attempts": record.attempt_count_at_lock,
                "lockout_count": record.lockout_count,
                "is_permanent": record.is_permanent,
                "locked_until": _iso(record.locked_until),
            },
        )

    async def _deactivate(self, identity: str) -> None:
        try:
            await self._accounts.deactivate(identity, reason="permanent_lockout")
        except Exception as e:
            logger.error("account_deactivation_failed", identity=identity, error=str(e))

    async def unlock(
        self,
        kind: SubjectKind,
        subject: str,
        actor_source: Optional[str] = None,
    ) -> bool:
        """Clear the lock fields, preserving ``lockout_count``.

        Returns False when there was no lock to clear.
        """
        key = kind.key(subject)
        for _ in range(_MAX_CLEAR_ROUNDS):
            current = await self.get_record(kind, subject)
            if current is None or (current.locked_until is None and not current.is_permanent):
                return False
            try:
                await self._write(key, current.version, current.cleared())
                break
            except RaceLost:
                logger.info("unlock_race_lost", key=key)
        else:
            logger.warning("unlock_abandoned", key=key, rounds=_MAX_CLEAR_ROUNDS)
            return False

        logger.info("lockout_cleared", key=key, was_permanent=current.is_permanent)
        await self._recorder.record(
            LOCKOUT_CLEARED,
            Severity.LOW,
            f"Lockout cleared for {key}",
            actor_source or INTERNAL_SOURCE,
            identity=subject if kind is SubjectKind.IDENTITY else None,
            metadata={"key": key, "lockout_count": current.lockout_count, "was_permanent": current.is_permanent},
        )
        if kind is SubjectKind.IDENTITY and current.is_permanent:
            try:
                await self._accounts.reactivate(subject)
            except Exception as e:
                logger.error("account_reactivation_failed", identity=subject, error=str(e))
        return True

    async def reset_history(
        self,
        kind: SubjectKind,
        subject: str,
        actor_source: Optional[str] = None,
    ) -> bool:
        """Set ``lockout_count`` back to zero. An active lock stays in place.

        Returns False when there was no history to reset.
        """
        key = kind.key(subject)
        for _ in range(_MAX_CLEAR_ROUNDS):
            current = await self.get_record(kind, subject)
            if current is None or current.lockout_count == 0:
                return False
            reset = replace(current, lockout_count=0, version=current.version + 1)
            try:
                await self._write(key, current.version, reset)
                break
            except RaceLost:
                logger.info("history_reset_race_lost", key=key)
        else:
            logger.warning("history_reset_abandoned", key=key, rounds=_MAX_CLEAR_ROUNDS)
            return False

        logger.warning("lockout_history_reset", key=key, previous_lockout_count=current.lockout_count)
        await self._recorder.record(
            LOCKOUT_HISTORY_RESET,
            Severity.LOW,
            f"Lockout history reset for {key}",
            actor_source or INTERNAL_SOURCE,
            identity=subject if kind is SubjectKind.IDENTITY else None,
            metadata={"key": key, "previous_lockout_count": current.lockout_count},
        )
        return True


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
