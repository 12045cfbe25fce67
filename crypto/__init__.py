"""
NFT Machine Minter - Cryptographic Operations Module

This module provides the signing account and address derivation used to
submit minting machine transactions:
- Ed25519 key loading and signing
- Account address derivation
- Resource account and named object address derivation

Dependencies:
- cryptography: Ed25519 operations
- hashlib: SHA3-256 address hashing
"""

from .exceptions import (
    CryptoError,
    InvalidKeyError,
    InvalidAddressError,
    SigningError,
)

from .keys import (
    Account,
    normalize_address,
    address_bytes,
    parse_private_key,
    derive_object_address,
    derive_resource_account_address,
    derive_collection_address,
)

__version__ = "1.0.0"

__all__ = [
    # Exceptions
    "CryptoError",
    "InvalidKeyError",
    "InvalidAddressError",
    "SigningError",

    # Keys and addresses
    "Account",
    "normalize_address",
    "address_bytes",
    "parse_private_key",
    "derive_object_address",
    "derive_resource_account_address",
    "derive_collection_address",
]
