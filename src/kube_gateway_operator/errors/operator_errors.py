"""
Exceptions raised while reconciling GateServers.

Every error knows whether retrying can help; handlers turn them into the
matching kopf exception with ``as_kopf_error``.
"""

import kopf

from ..constants import CONFLICT_RETRY_DELAY, DEFAULT_RETRY_DELAY

# Client mistakes and missing RBAC do not fix themselves between retries
FINAL_HTTP_STATUSES = frozenset({400, 401, 403, 422})


class OperatorError(Exception):
    """
    Root of the operator's exceptions.

    Args:
        message: What went wrong, suitable for a status condition
        category: Short tag used as a metrics label (validation, keypair, synthesis, store)
        retryable: Whether kopf should try the handler again
        delay: Seconds kopf waits before the retry
        user_action: Hint appended to the message for whoever reads the events
        cause: Exception that triggered this one
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: int = DEFAULT_RETRY_DELAY,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self) -> kopf.TemporaryError | kopf.PermanentError:
        if not self.retryable:
            return kopf.PermanentError(str(self))
        return kopf.TemporaryError(str(self), delay=self.delay)

    def __str__(self) -> str:
        text = super().__str__()
        if not self.user_action:
            return text
        return f"{text}\nAction required: {self.user_action}"


class ValidationError(OperatorError):
    """The GateServer spec cannot be provisioned as written."""

    def __init__(
        self, message: str, field: str | None = None, user_action: str | None = None
    ):
        if field:
            message = f"Validation error in field '{field}': {message}"
        super().__init__(
            message=message,
            category="validation",
            retryable=False,
            user_action=user_action or "Fix the GateServer spec",
        )


class KeyGenerationError(OperatorError):
    """The JWT signing keypair could not be generated or failed its self check."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=f"Key generation failed: {message}",
            category="keypair",
            retryable=True,
            cause=cause,
        )


class SynthesisError(OperatorError):
    """A dependent object definition could not be built."""

    def __init__(self, kind: str, message: str, cause: Exception | None = None):
        self.kind = kind
        super().__init__(
            message=f"Failed to build {kind}: {message}",
            category="synthesis",
            retryable=False,
            cause=cause,
        )


class StoreError(OperatorError):
    """A Kubernetes API call on behalf of a GateServer failed."""

    def __init__(
        self,
        operation: str,
        kind: str,
        name: str,
        namespace: str | None = None,
        status: int | None = None,
        reason: str | None = None,
        cause: Exception | None = None,
    ):
        self.operation = operation
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.status = status
        self.reason = reason

        target = f"{namespace}/{name}" if namespace else name
        parts = [f"Failed to {operation} {kind} {target}"]
        if status is not None:
            parts.append(f": HTTP {status}")
        if reason:
            parts.append(f" ({reason})")

        retryable = status not in FINAL_HTTP_STATUSES
        super().__init__(
            message="".join(parts),
            category="store",
            retryable=retryable,
            delay=CONFLICT_RETRY_DELAY if status == 409 else DEFAULT_RETRY_DELAY,
            user_action=None
            if retryable
            else "Check the operator's RBAC and the generated object",
            cause=cause,
        )


class TemporaryError(OperatorError):
    """Retry later; raised when strict teardown could not finish."""

    def __init__(
        self,
        message: str,
        delay: int = DEFAULT_RETRY_DELAY,
        user_action: str | None = None,
    ):
        super().__init__(
            message=message,
            category="temporary",
            retryable=True,
            delay=delay,
            user_action=user_action,
        )

