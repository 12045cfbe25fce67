"""
NFT Machine Minter - Collection Record Registry

Local persistence of the active collection record.
"""

from .schema import CollectionRecord
from .storage import (
    DEFAULT_RECORD_FILE,
    JSONStorage,
    RecordStore,
    StorageError
)

__all__ = [
    "CollectionRecord",
    "DEFAULT_RECORD_FILE",
    "JSONStorage",
    "RecordStore",
    "StorageError"
]
