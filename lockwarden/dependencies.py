"""FastAPI dependency injection providers."""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from .config import LockwardenConfig, get_config
from .core.accounts import InMemoryAccountDirectory
from .core.clock import Clock, SystemClock
from .core.engine import ProtectionEngine
from .database import get_session_factory
from .exceptions import ConfigurationError
from .utils.logging import get_logger

_dep_logger = get_logger("dependencies")

_config_instance: LockwardenConfig | None = None
_protection_engine: ProtectionEngine | None = None
_account_directory: InMemoryAccountDirectory | None = None


def get_app_config() -> LockwardenConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


def build_engine(
    config: LockwardenConfig,
    session_factory=None,
    accounts: Optional[InMemoryAccountDirectory] = None,
    clock: Optional[Clock] = None,
) -> ProtectionEngine:
    """Assemble a ProtectionEngine with the stores named by ``config.store_backend``.

    Events go to SQL when a session factory is given and stay in memory otherwise.
    """
    from .alerting.dispatcher import AlertDispatcher
    from .alerting.webhook import WebhookSender
    from .stores.counter_store import InMemoryCounterStore
    from .stores.event_store import InMemoryEventStore
    from .stores.lockout_store import InMemoryLockoutStore
    from .stores.sql_event_store import SqlEventStore

    clock = clock or SystemClock()

    if config.store_backend == "redis":
        if not config.redis_url:
            raise ConfigurationError("REDIS_URL must be set when STORE_BACKEND is redis")

        from redis.asyncio import Redis

        from .stores.redis_store import RedisCounterStore, RedisLockoutStore

        redis = Redis.from_url(config.redis_url)
        counters = RedisCounterStore(redis)
        lockout_store = RedisLockoutStore(redis)
    else:
        counters = InMemoryCounterStore(clock)
        lockout_store = InMemoryLockoutStore()

    if session_factory is not None:
        events = SqlEventStore(session_factory, clock)
    else:
        events = InMemoryEventStore(clock)

    dispatcher = AlertDispatcher(
        webhook_urls=config.alert_webhook_urls,
        sender=WebhookSender(timeout=config.alert_webhook_timeout_seconds, app_name=config.app_name),
    )
    _dep_logger.info(
        "protection_engine_built",
        store_backend=config.store_backend,
        event_store=events.name,
        webhooks=len(config.alert_webhook_urls),
    )
    return ProtectionEngine(
        config,
        counters=counters,
        lockout_store=lockout_store,
        events=events,
        accounts=accounts or InMemoryAccountDirectory(),
        dispatcher=dispatcher,
        clock=clock,
    )


def get_account_directory() -> InMemoryAccountDirectory:
    """Get the account directory singleton."""
    global _account_directory
    if _account_directory is None:
        _account_directory = InMemoryAccountDirectory()
    return _account_directory


def get_protection_engine() -> ProtectionEngine:
    """Get the protection engine singleton."""
    global _protection_engine
    if _protection_engine is None:
        config = get_app_config()
        _protection_engine = build_engine(
            config,
            session_factory=get_session_factory(config),
            accounts=get_account_directory(),
        )
    return _protection_engine


def peek_protection_engine() -> ProtectionEngine | None:
    """The engine if one has been built, without building it."""
    return _protection_engine


async def close_protection_engine() -> None:
    global _protection_engine
    if _protection_engine is not None:
        await _protection_engine.close()
        _protection_engine = None


def get_client_ip(request: Request, config: LockwardenConfig | None = None) -> str:
    """The peer address, or the first X-Forwarded-For hop behind a trusted proxy."""
    config = config or get_app_config()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and config.trust_forwarded_for:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def require_admin(
    request: Request,
    config: LockwardenConfig = Depends(get_app_config),
) -> str:
    """Require a valid X-API-Key header. Returns the caller's address."""
    if not config.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrative API is disabled: no admin API key configured",
        )

    api_key = request.headers.get("X-API-Key")
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    if not secrets.compare_digest(api_key.encode("utf-8"), config.admin_api_key.encode("utf-8")):
        _dep_logger.warning("admin_key_rejected", ip=get_client_ip(request, config), path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return get_client_ip(request, config)
