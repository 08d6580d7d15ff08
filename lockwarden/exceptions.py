"""Error taxonomy for the account-protection engine.

Callers on the authentication path must be able to tell a store failure
apart from "not locked", so store problems always surface as
TransientStoreError rather than a falsy result.
"""


class LockwardenError(Exception):
    """Base class for all engine errors."""


class TransientStoreError(LockwardenError):
    """A counter, lockout, or event store is temporarily unreachable."""

    def __init__(self, store: str, operation: str, detail: str = ""):
        self.store = store
        self.operation = operation
        self.detail = detail
        message = f"{store} store unavailable during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StoreTimeout(TransientStoreError):
    """A store call exceeded its bounded timeout."""

    def __init__(self, store: str, operation: str, timeout: float):
        self.timeout = timeout
        super().__init__(store, operation, f"timed out after {timeout:.2f}s")


class InvalidInput(LockwardenError, ValueError):
    """Malformed identity, source, or event field. The call is rejected."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class ConfigurationError(LockwardenError):
    """A configuration value could not be used as given."""


class RaceLost(LockwardenError):
    """A concurrent writer claimed the same state transition first.

    Re-read the state and decide again; never retry the mutation blindly.
    """

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Concurrent update won the transition for {key}")
