"""Account routes: identities deactivated by permanent lockout."""

from fastapi import APIRouter, Depends, HTTPException, status

from ...core.accounts import InMemoryAccountDirectory
from ...core.engine import ProtectionEngine
from ...dependencies import get_protection_engine, require_admin

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("/deactivated")
async def list_deactivated(
    engine: ProtectionEngine = Depends(get_protection_engine),
    _admin: str = Depends(require_admin),
):
    if not isinstance(engine.accounts, InMemoryAccountDirectory):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Accounts are managed by an external directory",
        )
    accounts = engine.accounts.deactivated()
    return {
        "count": len(accounts),
        "accounts": [
            {"identity": identity, "reason": reason} for identity, reason in sorted(accounts.items())
        ],
    }
