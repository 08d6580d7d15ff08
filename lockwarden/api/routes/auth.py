"""Authentication-path routes: check a login before it runs, report how it went."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...core.engine import ProtectionEngine
from ...core.types import LockoutRecord
from ...dependencies import get_protection_engine

router = APIRouter(prefix="/auth", tags=["auth"])

# Denied verdicts: IP lockouts read as rate limiting, account lockouts as Locked
_DENY_STATUS = {
    "ip_lockout": 429,
    "account_lockout": 423,
    "service_degraded": 503,
}


class AttemptRequest(BaseModel):
    identity: Optional[str] = None
    source: str


def _lock_to_dict(record: Optional[LockoutRecord]) -> Optional[dict]:
    if record is None:
        return None
    return {
        "locked_until": record.locked_until.isoformat() if record.locked_until else None,
        "is_permanent": record.is_permanent,
        "lockout_count": record.lockout_count,
        "attempt_count": record.attempt_count_at_lock,
    }


@router.post("/check")
async def check_attempt(
    body: AttemptRequest,
    engine: ProtectionEngine = Depends(get_protection_engine),
):
    """Decide whether a login-shaped request may proceed."""
    verdict = await engine.check(body.identity, body.source)
    if verdict.allowed:
        return verdict.to_dict()

    headers = {}
    if verdict.locked_until is not None:
        seconds = int((verdict.locked_until - engine.clock.now()).total_seconds())
        headers["Retry-After"] = str(max(1, seconds))
    return JSONResponse(
        status_code=_DENY_STATUS.get(verdict.reason, 403),
        content=verdict.to_dict(),
        headers=headers,
    )


@router.post("/failure")
async def report_failure(
    body: AttemptRequest,
    engine: ProtectionEngine = Depends(get_protection_engine),
):
    result = await engine.report_failure(body.identity, body.source)
    return {
        "identity_attempts": result.identity_attempts,
        "source_attempts": result.source_attempts,
        "identity_lock": _lock_to_dict(result.identity_lock),
        "source_lock": _lock_to_dict(result.source_lock),
    }


@router.post("/success")
async def report_success(
    body: AttemptRequest,
    engine: ProtectionEngine = Depends(get_protection_engine),
):
    await engine.report_success(body.identity, body.source)
    return {"status": "ok"}
