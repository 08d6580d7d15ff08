"""Master API router: includes all sub-routers."""

from fastapi import APIRouter

from .routes.accounts import router as accounts_router
from .routes.auth import router as auth_router
from .routes.dashboard import router as dashboard_router
from .routes.events import router as events_router
from .routes.lockouts import router as lockouts_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router)
api_router.include_router(events_router)
api_router.include_router(lockouts_router)
api_router.include_router(dashboard_router)
api_router.include_router(accounts_router)
