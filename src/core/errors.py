# src/core/errors.py — v1
"""Error taxonomy for the conveyor.

Stage errors are raised by stage executors and caught by the orchestrator's
stage loop, which turns them into a failed item. Boundary errors are raised to
the caller of the service facade before anything is created or mutated.
"""

from __future__ import annotations

_DIAGNOSTIC_CHARS = 200


class ConveyorError(Exception):
    """Base class for all conveyor errors."""


# ------------------------------------------------------------------
# Stage errors (caught by the orchestrator)
# ------------------------------------------------------------------


class StageError(ConveyorError):
    """Base class for errors raised while executing a stage."""

    error_kind = "stage_error"


class StageExecutionError(StageError):
    """Generic stage failure. Recorded on the item and retryable."""


class StageRejectedError(StageExecutionError):
    """Content filtered out by a stage (below threshold, avoided topic)."""

    error_kind = "rejected"


class MalformedOutputError(StageError):
    """No parseable structure found in a model response."""

    error_kind = "malformed_output"

    def __init__(self, message: str, raw_text: str = "") -> None:
        self.diagnostic = raw_text[:_DIAGNOSTIC_CHARS]
        super().__init__(f"{message}. Text: {self.diagnostic}" if raw_text else message)


class StageTimeoutError(StageError, TimeoutError):
    """A single model call exceeded its deadline."""

    error_kind = "timeout"

    def __init__(self, operation: str, timeout_s: float) -> None:
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"{operation} timed out after {timeout_s:.1f}s")


class CredentialMissingError(StageError):
    """No model credential for the owner. Fatal for the item."""

    error_kind = "credential_missing"

    def __init__(self, owner_id: str, provider: str) -> None:
        self.owner_id = owner_id
        self.provider = provider
        super().__init__(f"No {provider} credential configured for owner {owner_id}")


# ------------------------------------------------------------------
# Boundary errors (raised to the caller)
# ------------------------------------------------------------------


class NotFoundError(ConveyorError):
    """Requested entity does not exist."""


class CredentialNotFoundError(NotFoundError):
    """Credential store has no secret for (owner, provider)."""


class ForbiddenError(ConveyorError):
    """Caller does not own the entity."""


class NotFailedError(ConveyorError):
    """Retry requested on an item that is not in the failed state."""


class RetryLimitExceededError(ConveyorError):
    """Item already used all of its manual retries."""

    def __init__(self, item_id: str, max_retries: int) -> None:
        self.item_id = item_id
        self.max_retries = max_retries
        super().__init__(f"Item {item_id} reached the retry limit ({max_retries})")


class RevisionLimitExceededError(ConveyorError):
    """Artifact already used all of its revisions."""

    def __init__(self, artifact_id: str, max_revisions: int) -> None:
        self.artifact_id = artifact_id
        self.max_revisions = max_revisions
        super().__init__(
            f"Artifact {artifact_id} reached the revision limit ({max_revisions})"
        )


class ArtifactBusyError(ConveyorError):
    """Another item is already processing against the artifact."""


class InvalidStateError(ConveyorError):
    """Operation not allowed in the entity's current state."""


class DailyLimitExceededError(ConveyorError):
    """Owner reached the daily processing limit."""


class DuplicateSourceError(ConveyorError):
    """An artifact already exists for this source content unit."""


class PayloadImmutableError(ConveyorError):
    """Attempt to overwrite the payload of an already completed stage."""
