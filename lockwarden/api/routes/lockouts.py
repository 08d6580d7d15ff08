"""Lockout administration: inspect, unlock, and reset escalation history."""

from fastapi import APIRouter, Depends

from ...core.engine import ProtectionEngine
from ...core.types import SubjectKind
from ...dependencies import get_protection_engine, require_admin
from ...exceptions import InvalidInput
from ...utils.input_validators import validate_source

router = APIRouter(prefix="/lockouts", tags=["lockouts"])


@router.get("/{kind}/{subject}")
async def get_lockout(
    kind: SubjectKind,
    subject: str,
    engine: ProtectionEngine = Depends(get_protection_engine),
    _admin: str = Depends(require_admin),
):
    info = await engine.lockout_info(kind, subject)
    return {
        "kind": kind.value,
        "subject": subject,
        "locked": info is not None,
        "lockout": info.to_dict() if info else None,
        "lockout_count": await engine.lockout_count(kind, subject),
        "failed_attempts": await engine.failed_attempt_count(kind, subject),
    }


@router.post("/{kind}/{subject}/unlock")
async def unlock(
    kind: SubjectKind,
    subject: str,
    engine: ProtectionEngine = Depends(get_protection_engine),
    admin_ip: str = Depends(require_admin),
):
    cleared = await engine.unlock(kind, subject, actor_source=_actor(admin_ip))
    return {"kind": kind.value, "subject": subject, "unlocked": cleared}


@router.post("/{kind}/{subject}/reset-history")
async def reset_history(
    kind: SubjectKind,
    subject: str,
    engine: ProtectionEngine = Depends(get_protection_engine),
    admin_ip: str = Depends(require_admin),
):
    reset = await engine.reset_lockout_history(kind, subject, actor_source=_actor(admin_ip))
    return {"kind": kind.value, "subject": subject, "history_reset": reset}


def _actor(admin_ip: str):
    """The admin's address, when it is one the event store can record."""
    try:
        return validate_source(admin_ip)
    except InvalidInput:
        return None
