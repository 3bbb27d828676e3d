"""
Error taxonomy shared by every layer.

Each error carries the process exit code used by the CLI when it aborts a
run.  Nothing here is retried: an error raised by any step ends the run.
"""

from __future__ import annotations

from typing import Optional, Sequence


class SequencerError(RuntimeError):
    exit_code: int = 1


class MissingSecret(SequencerError):
    exit_code = 2


class ResourceNotFound(SequencerError):
    exit_code = 3


class UnresolvedDependency(ResourceNotFound):
    """A step requires an output that no earlier step produces."""


class TransactionRejected(SequencerError):
    exit_code = 4

    def __init__(self, message: str, logs: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.logs = list(logs or [])


class ConfirmationTimeout(SequencerError):
    exit_code = 5

    def __init__(self, message: str, signature: str = "") -> None:
        super().__init__(message)
        self.signature = signature


class UpstreamUnavailable(SequencerError):
    exit_code = 6


class InvalidPlan(SequencerError):
    exit_code = 7

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []
