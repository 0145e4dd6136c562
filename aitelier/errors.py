"""Typed failures raised by the split and evaluation services.

Each error carries a human-readable ``reason`` and a ``kind`` used as the
machine-readable error code in API responses.  None of them is retried
inside the service layer.
"""

from __future__ import annotations


class AitelierError(Exception):
    """Base class for expected, caller-visible failures.

    Attributes:
        reason: Human-readable description of what went wrong.
        kind: Stable error code (``precondition_failed``, ``not_found`` ...).
    """

    kind: str = "error"
    status_code: int = 400

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class PreconditionFailed(AitelierError):
    """The operation cannot start with the current data (no validation examples, identical models ...)."""

    kind = "precondition_failed"
    status_code = 422


class UpstreamGenerationFailed(AitelierError):
    """A completion call failed and the whole generation batch was discarded."""

    kind = "upstream_generation_failed"
    status_code = 502

    def __init__(self, reason: str, example_id: int | None = None) -> None:
        self.example_id = example_id
        super().__init__(reason)


class NotFound(AitelierError):
    """A referenced example, run, item or model option does not exist."""

    kind = "not_found"
    status_code = 404


class Conflict(AitelierError):
    """The write would break an invariant (e.g. moving a locked validation example)."""

    kind = "conflict"
    status_code = 409

    def __init__(self, reason: str, ids: list[int] | None = None) -> None:
        self.ids = ids or []
        super().__init__(reason)
