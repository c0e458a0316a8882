"""Typed exceptions for the document store layer.

Store adapters raise these to signal infrastructure failures without
collapsing them into boolean return values.  Domain outcomes such as
"document not found" are still represented by ``None``.
"""

from __future__ import annotations

from hotelconnect.errors import OperationContext


class StoreError(RuntimeError):
    """Base exception for store-layer failures."""


class StoreOperationError(StoreError):
    """Base exception for adapter operation failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: OperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class StoreReadError(StoreOperationError):
    """Read/query failure."""


class StoreWriteError(StoreOperationError):
    """Mutation/batch failure.  A failed batch leaves no partial writes."""


class DocumentExistsError(StoreWriteError):
    """A create-if-absent write found the document already present."""


class PreconditionFailedError(StoreWriteError):
    """A ``require`` op rejected the document state at commit time."""
