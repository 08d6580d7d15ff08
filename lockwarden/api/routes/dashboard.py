"""Dashboard routes: security overview and period statistics."""

from fastapi import APIRouter, Depends, Query

from ...core.engine import ProtectionEngine
from ...dependencies import get_protection_engine, require_admin

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("")
async def get_dashboard(
    engine: ProtectionEngine = Depends(get_protection_engine),
    _admin: str = Depends(require_admin),
):
    """Cached snapshot: recent events, counts, top sources, health, timeline."""
    snapshot = await engine.dashboard()
    return snapshot.to_dict()


@router.get("/statistics")
async def get_statistics(
    period: str = Query("24h"),
    engine: ProtectionEngine = Depends(get_protection_engine),
    _admin: str = Depends(require_admin),
):
    return await engine.statistics(period)
