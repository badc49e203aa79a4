"""
Fatal errors raised by the checkout engine.

Protocol-level problems (missing buyer fields, unknown items, rejected
transitions) are never raised: they travel as `Message` objects inside the
session snapshot.  The exceptions below are reserved for conditions the
caller cannot fix by changing its input, and are not retried by the core.
The exception is `IdempotencyConflictError`: a replayed key carrying a
different payload is refused outright rather than answered with a session.
"""

from __future__ import annotations

from typing import Optional


class UCPCheckoutError(Exception):
    """Base class for fatal checkout errors."""

    code = "internal_error"
    status_code = 500
    error_type = "api_error"
    param: Optional[str] = None


class ConfigError(UCPCheckoutError):
    code = "invalid_configuration"


class StoreError(UCPCheckoutError):
    """A data store collaborator failed (connectivity, constraint, driver)."""

    code = "store_unavailable"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class SessionDataError(UCPCheckoutError):
    """Persisted session data does not match the CheckoutSession shape."""

    code = "corrupt_session_data"

    def __init__(self, session_id: str, detail: str):
        self.session_id = session_id
        super().__init__(f"Stored checkout session {session_id!r} is malformed: {detail}")


class SessionConflictError(UCPCheckoutError):
    """Concurrent writers kept changing a session under a status guard."""

    code = "session_conflict"

    def __init__(self, session_id: str, attempts: int):
        self.session_id = session_id
        self.attempts = attempts
        super().__init__(
            f"Checkout session {session_id!r} changed concurrently {attempts} times; giving up"
        )


class IdempotencyConflictError(UCPCheckoutError):
    """An idempotency key came back with a different request payload."""

    code = "request_not_idempotent"
    status_code = 409
    error_type = "invalid_request"
    param = "$.headers.Idempotency-Key"

    def __init__(self, operation: str, key: str):
        self.operation = operation
        self.key = key
        super().__init__(f"Idempotency key {key!r} reused with a different {operation} payload")
