"""
NFT Machine Minter - Collection Lifecycle

This package provides the collection value objects, the lifecycle error
taxonomy and (in `nft.coordinator`) the coordinator that drives a collection
through creation, mint configuration, metadata updates and reads.
"""

from .exceptions import (
    MinterError,
    NotFoundError,
    RecordNotFoundError,
    ResourceNotFoundError,
    CorruptRecordError,
    AlreadyInitializedError,
    InvalidInputError,
    InvalidWindowError,
    InvalidAllowlistError,
    InvalidMetadataError,
    InvalidStateError,
    GatewayError,
    SubmissionRejectedError,
    ExecutionFailedError,
    PersistAfterSuccessError
)

from .collections import (
    Allowlist,
    CollectionQuery,
    CollectionSettings,
    CollectionState,
    CollectionView,
    MetadataUpdate,
    MintPhase,
    MintPhaseView,
    MintWindow
)

__version__ = "1.0.0"

__all__ = [
    # Errors
    "MinterError",
    "NotFoundError",
    "RecordNotFoundError",
    "ResourceNotFoundError",
    "CorruptRecordError",
    "AlreadyInitializedError",
    "InvalidInputError",
    "InvalidWindowError",
    "InvalidAllowlistError",
    "InvalidMetadataError",
    "InvalidStateError",
    "GatewayError",
    "SubmissionRejectedError",
    "ExecutionFailedError",
    "PersistAfterSuccessError",

    # Value objects
    "Allowlist",
    "CollectionQuery",
    "CollectionSettings",
    "CollectionState",
    "CollectionView",
    "MetadataUpdate",
    "MintPhase",
    "MintPhaseView",
    "MintWindow"
]
