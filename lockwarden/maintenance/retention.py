"""Data retention manager: automated purge of aged security events and expired counters."""

from datetime import timedelta

from ..utils.logging import get_logger

logger = get_logger("maintenance.retention")


class RetentionManager:
    """Deletes security events older than ``retention_events_days``.

    In-process counter stores are swept in the same pass; Redis expires
    its keys on its own.
    """

    def __init__(self, engine, config):
        self._engine = engine
        self._config = config

    async def run_cleanup(self) -> dict:
        """Run one retention pass. Returns counts of removed records per store."""
        summary = {}
        retention_days = self._config.retention_events_days

        deleted = await self._engine.purge_events(timedelta(days=retention_days))
        summary["security_events"] = deleted
        logger.info(
            "retention_cleanup",
            table="security_events",
            deleted=deleted,
            cutoff_days=retention_days,
        )

        sweep = getattr(self._engine.counters, "sweep", None)
        if sweep is not None:
            summary["counters"] = sweep()
            logger.info("retention_cleanup", table="counters", deleted=summary["counters"])

        return summary
