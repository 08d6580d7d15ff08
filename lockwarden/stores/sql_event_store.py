"""SQL-backed event store over the ``security_events`` table (async SQLAlchemy)."""

import json
from datetime import datetime, timedelta

from sqlalchemy import delete, desc, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock
from ..core.types import EventFilter, SecurityEvent, Severity, as_utc
from ..exceptions import TransientStoreError
from ..models.security_event import SecurityEventRecord
from ..utils.logging import get_logger
from .event_store import EventStore

logger = get_logger("stores.sql_event")


def _to_event(row: SecurityEventRecord) -> SecurityEvent:
    return SecurityEvent(
        id=row.event_id,
        type=row.event_type,
        severity=Severity(row.severity),
        description=row.description,
        source_address=row.source_address,
        identity=row.identity,
        metadata=json.loads(row.metadata_json) if row.metadata_json else {},
        created_at=as_utc(row.created_at),
    )


def _apply_filter(query, event_filter: EventFilter):
    if event_filter.type is not None:
        query = query.where(SecurityEventRecord.event_type == event_filter.type)
    if event_filter.severity is not None:
        query = query.where(SecurityEventRecord.severity == event_filter.severity.value)
    if event_filter.source is not None:
        query = query.where(SecurityEventRecord.source_address == event_filter.source)
    if event_filter.identity is not None:
        query = query.where(SecurityEventRecord.identity == event_filter.identity)
    if event_filter.since is not None:
        query = query.where(SecurityEventRecord.created_at >= as_utc(event_filter.since))
    if event_filter.until is not None:
        query = query.where(SecurityEventRecord.created_at <= as_utc(event_filter.until))
    if event_filter.exclude_types:
        query = query.where(SecurityEventRecord.event_type.not_in(sorted(event_filter.exclude_types)))
    return query


class SqlEventStore(EventStore):
    """Durable event store. Every backend failure surfaces as TransientStoreError."""

    name = "sql_event"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock):
        self._session_factory = session_factory
        self._clock = clock

    async def append(self, event: SecurityEvent) -> str:
        try:
            async with self._session_factory() as session:
                session.add(
                    SecurityEventRecord(
                        event_id=event.id,
                        event_type=event.type,
                        severity=event.severity.value,
                        description=event.description,
                        source_address=event.source_address,
                        identity=event.identity,
                        metadata_json=json.dumps(event.metadata) if event.metadata else None,
                        created_at=as_utc(event.created_at),
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, "append", str(e)) from e
        return event.id

    async def query(self, event_filter: EventFilter) -> list[SecurityEvent]:
        query = _apply_filter(select(SecurityEventRecord), event_filter).order_by(
            desc(SecurityEventRecord.created_at), desc(SecurityEventRecord.seq)
        )
        if event_filter.limit is not None:
            query = query.limit(event_filter.limit)
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, "query", str(e)) from e
        return [_to_event(row) for row in rows]

    async def _scalar(self, query, operation: str) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, operation, str(e)) from e

    async def count(self, event_filter: EventFilter) -> int:
        query = _apply_filter(select(func.count(SecurityEventRecord.seq)), event_filter)
        return await self._scalar(query, "count")

    async def count_distinct_sources(self, event_filter: EventFilter) -> int:
        query = _apply_filter(
            select(func.count(distinct(SecurityEventRecord.source_address))), event_filter
        )
        return await self._scalar(query, "count_distinct_sources")

    async def count_by_type_and_severity(self, since: datetime) -> dict[tuple[str, str], int]:
        query = (
            select(
                SecurityEventRecord.event_type,
                SecurityEventRecord.severity,
                func.count(SecurityEventRecord.seq),
            )
            .where(SecurityEventRecord.created_at >= as_utc(since))
            .group_by(SecurityEventRecord.event_type, SecurityEventRecord.severity)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, "count_by_type_and_severity", str(e)) from e
        return {(event_type, severity): count for event_type, severity, count in rows}

    async def top_sources(self, since: datetime, limit: int = 10) -> list[tuple[str, int]]:
        event_count = func.count(SecurityEventRecord.seq).label("event_count")
        query = (
            select(SecurityEventRecord.source_address, event_count)
            .where(SecurityEventRecord.created_at >= as_utc(since))
            .group_by(SecurityEventRecord.source_address)
            .order_by(desc(event_count), SecurityEventRecord.source_address)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, "top_sources", str(e)) from e
        return [(source, count) for source, count in rows]

    async def timeline(self, since: datetime) -> dict[str, dict[str, int]]:
        day = func.date(SecurityEventRecord.created_at).label("day")
        query = (
            select(day, SecurityEventRecord.event_type, func.count(SecurityEventRecord.seq))
            .where(SecurityEventRecord.created_at >= as_utc(since))
            .group_by(day, SecurityEventRecord.event_type)
            .order_by(day)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, "timeline", str(e)) from e
        result: dict[str, dict[str, int]] = {}
        for day_value, event_type, count in rows:
            result.setdefault(str(day_value), {})[event_type] = count
        return result

    async def purge_older_than(self, older_than: timedelta) -> int:
        cutoff = as_utc(self._clock.now() - older_than)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(SecurityEventRecord).where(SecurityEventRecord.created_at < cutoff)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise TransientStoreError(self.name, "purge_older_than", str(e)) from e
        logger.info("events_purged", deleted=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount
