"""
NFT Machine Minter - Collection Record Schema

This module defines the Pydantic model for the durable local representation of
one deployed collection.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crypto.exceptions import InvalidAddressError
from crypto.keys import normalize_address


class CollectionRecord(BaseModel):
    """
    Identity of a deployed collection.

    Field aliases match the on-disk names: the creator is stored as `creator`,
    the machine deployment as `nftmachine` and the collection as `address`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    name: str = Field(..., min_length=1, description="Collection name")
    seed: str = Field(..., min_length=1, description="Creation seed")
    creator_address: str = Field(..., alias="creator", description="Signer that created the collection")
    machine_address: str = Field(..., alias="nftmachine", description="Minting machine module address")
    collection_address: str = Field(..., alias="address", description="Collection object address")
    created_at: Optional[datetime] = Field(None, description="When the record was created")
    transaction_hash: Optional[str] = Field(None, description="create_collection transaction hash")

    @field_validator('creator_address', 'machine_address', 'collection_address')
    @classmethod
    def validate_address(cls, v):
        """Validate and normalize account addresses."""
        try:
            return normalize_address(v)
        except InvalidAddressError as e:
            raise ValueError(str(e))

    @field_validator('transaction_hash')
    @classmethod
    def validate_transaction_hash(cls, v):
        """Validate transaction hash format."""
        if v is None:
            return v
        value = v[2:] if v.startswith('0x') else v
        try:
            bytes.fromhex(value)
        except ValueError:
            raise ValueError('Transaction hash must be a hex string')
        return '0x' + value.lower()

    def to_storage(self) -> Dict[str, Any]:
        """Serialize to the on-disk JSON layout."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> 'CollectionRecord':
        """Parse the on-disk JSON layout."""
        return cls.model_validate(data)
