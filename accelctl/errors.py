"""Error types shared by the reconcilers."""

from __future__ import annotations


class NoRetryError(Exception):
    """An error after which a work item must not be requeued."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


def is_no_retry(err: BaseException | None) -> bool:
    """Return True if ``err`` or any exception it was raised from is a NoRetryError."""
    seen: set[int] = set()
    current = err
    while current is not None and id(current) not in seen:
        if isinstance(current, NoRetryError):
            return True
        seen.add(id(current))
        current = current.__cause__
    return False