"""
NFT Machine Minter - Collection Lifecycle Exceptions

This module defines the error taxonomy shared by the record store, the chain
gateway and the collection lifecycle coordinator.
"""

from typing import Any, List, Optional, Sequence


class MinterError(Exception):
    """Base exception for all collection lifecycle errors."""
    pass


class NotFoundError(MinterError):
    """Raised when a collection cannot be located locally or on chain."""
    pass


class RecordNotFoundError(NotFoundError):
    """Raised when no local collection record exists."""
    pass


class ResourceNotFoundError(NotFoundError):
    """Raised when the chain holds no collection resource at an address."""

    def __init__(self, address: str, message: Optional[str] = None):
        self.address = address
        super().__init__(message or f"No collection resource found at {address}")


class CorruptRecordError(MinterError):
    """Raised when the local collection record does not parse."""
    pass


class AlreadyInitializedError(MinterError):
    """Raised when creating a collection over an existing local record."""
    pass


class InvalidInputError(MinterError):
    """Base exception for locally detectable bad input."""
    pass


class InvalidWindowError(InvalidInputError):
    """Raised for a mint window with bad bounds or price."""
    pass


class InvalidAllowlistError(InvalidInputError):
    """Raised for an empty allowlist, duplicate accounts or bad allowances."""
    pass


class InvalidMetadataError(InvalidInputError):
    """Raised for collection settings or metadata updates that cannot be submitted."""
    pass


class InvalidStateError(MinterError):
    """Raised when an operation is not valid in the coordinator's current state."""
    pass


class GatewayError(MinterError):
    """Base exception for chain gateway failures."""

    def __init__(
        self,
        message: str,
        entry_point: Optional[str] = None,
        args: Optional[Sequence[Any]] = None,
        tx_hash: Optional[str] = None
    ):
        self.entry_point = entry_point
        self.arguments: List[Any] = list(args) if args is not None else []
        self.tx_hash = tx_hash
        super().__init__(message)

    def describe(self) -> str:
        """Describe the attempted call for manual diagnosis."""
        parts = [str(self)]
        if self.entry_point:
            parts.append(f"entry point: {self.entry_point}")
        if self.arguments:
            parts.append(f"arguments: {self.arguments}")
        if self.tx_hash:
            parts.append(f"transaction: {self.tx_hash}")
        return "; ".join(parts)


class SubmissionRejectedError(GatewayError):
    """Raised when the network refuses a transaction before execution."""
    pass


class ExecutionFailedError(GatewayError):
    """Raised when an included transaction aborts in the entry point."""

    def __init__(
        self,
        message: str,
        entry_point: Optional[str] = None,
        args: Optional[Sequence[Any]] = None,
        tx_hash: Optional[str] = None,
        vm_status: Optional[str] = None
    ):
        self.vm_status = vm_status
        super().__init__(message, entry_point=entry_point, args=args, tx_hash=tx_hash)


class PersistAfterSuccessError(MinterError):
    """
    Raised when a transaction succeeded but the local record could not be saved.

    The chain has advanced and the local pointer has not. Recover by saving
    `record` again, never by resubmitting.
    """

    def __init__(self, record: Any, receipt: Any = None, cause: Optional[BaseException] = None):
        self.record = record
        self.receipt = receipt
        self.cause = cause
        super().__init__(
            f"Collection {getattr(record, 'collection_address', '?')} was created on chain "
            f"but the local record could not be saved: {cause}"
        )
