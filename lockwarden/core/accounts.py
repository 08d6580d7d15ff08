"""Account directory capability.

The engine does not own user records. When an identity escalates to a
permanent lockout it asks the directory to deactivate the account, and
an administrative unlock asks it to reactivate. Whoever builds the engine
supplies the directory.
"""

from ..utils.logging import get_logger

logger = get_logger("core.accounts")


class AccountDirectory:
    async def deactivate(self, identity: str, reason: str) -> None:
        raise NotImplementedError

    async def reactivate(self, identity: str) -> None:
        raise NotImplementedError


class InMemoryAccountDirectory(AccountDirectory):
    """Keeps the set of deactivated identities for an external system to poll."""

    def __init__(self):
        self._deactivated: dict[str, str] = {}

    async def deactivate(self, identity: str, reason: str) -> None:
        self._deactivated[identity] = reason
        logger.warning("account_deactivated", identity=identity, reason=reason)

    async def reactivate(self, identity: str) -> None:
        if self._deactivated.pop(identity, None) is not None:
            logger.info("account_reactivated", identity=identity)

    def is_deactivated(self, identity: str) -> bool:
        return identity in self._deactivated

    def deactivated(self) -> dict[str, str]:
        return dict(self._deactivated)
