"""
Key Management and Address Derivation for the NFT Machine Minter

This module handles Ed25519 signing accounts and the deterministic address
schemes used by the minting machine: authentication keys, resource accounts
and named objects.

References:
- Aptos accounts: https://aptos.dev/en/network/blockchain/accounts
- Object addresses: https://aptos.dev/en/build/smart-contracts/object/creating-objects
"""

import hashlib
import re
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .exceptions import InvalidAddressError, InvalidKeyError, SigningError


# Address derivation scheme bytes
ED25519_SCHEME = 0x00
OBJECT_FROM_SEED_SCHEME = 0xFE
RESOURCE_ACCOUNT_SCHEME = 0xFF

ADDRESS_LENGTH = 32

# AIP-80 private key prefix
PRIVATE_KEY_PREFIX = "ed25519-priv-"

_HEX_RE = re.compile(r'^[0-9a-fA-F]+$')


def normalize_address(address: str) -> str:
    """
    Normalize an account address to its long form.

    Args:
        address: Hex address, with or without 0x prefix, short or long

    Returns:
        Lowercase 0x-prefixed 64 hex digit address
    """
    if not isinstance(address, str):
        raise InvalidAddressError(f"Address must be a string, got {type(address).__name__}")

    value = address.strip()
    if value.startswith(('0x', '0X')):
        value = value[2:]

    if not value or not _HEX_RE.match(value) or len(value) > ADDRESS_LENGTH * 2:
        raise InvalidAddressError(f"Invalid account address: {address!r}")

    return "0x" + value.lower().rjust(ADDRESS_LENGTH * 2, "0")


def address_bytes(address: str) -> bytes:
    """Get the 32 raw bytes of an address."""
    return bytes.fromhex(normalize_address(address)[2:])


def _derive(source: str, seed: bytes, scheme: int) -> str:
    digest = hashlib.sha3_256(address_bytes(source) + seed + bytes([scheme])).digest()
    return "0x" + digest.hex()


def derive_object_address(creator: str, seed: Union[str, bytes]) -> str:
    """Address of a named object created by `creator` from `seed`."""
    if isinstance(seed, str):
        seed = seed.encode('utf-8')
    return _derive(creator, seed, OBJECT_FROM_SEED_SCHEME)


def derive_resource_account_address(creator: str, seed: Union[str, bytes]) -> str:
    """Address of the resource account `creator` creates from `seed`."""
    if isinstance(seed, str):
        seed = seed.encode('utf-8')
    return _derive(creator, seed, RESOURCE_ACCOUNT_SCHEME)


def derive_collection_address(creator: str, name: str, seed: str) -> str:
    """
    Derive the address of a machine-created collection.

    The machine creates one resource account per collection from the
    creation seed and creates the named collection object under it.

    Args:
        creator: Address of the signer that called create_collection
        name: Collection name
        seed: Creation seed passed to create_collection

    Returns:
        Collection object address
    """
    resource_account = derive_resource_account_address(creator, seed)
    return derive_object_address(resource_account, name)


def parse_private_key(key_material: str) -> bytes:
    """
    Parse Ed25519 private key material from its textual form.

    Accepts plain hex, 0x-prefixed hex and AIP-80 `ed25519-priv-0x...` strings.
    """
    if not key_material:
        raise InvalidKeyError("Private key material is empty")

    value = key_material.strip()
    if value.startswith(PRIVATE_KEY_PREFIX):
        value = value[len(PRIVATE_KEY_PREFIX):]
    if value.startswith(('0x', '0X')):
        value = value[2:]

    try:
        key_bytes = bytes.fromhex(value)
    except ValueError:
        raise InvalidKeyError("Private key must be hex encoded")

    if len(key_bytes) != 32:
        raise InvalidKeyError(f"Private key must be 32 bytes, got {len(key_bytes)}")

    return key_bytes


class Account:
    """
    Ed25519 signing account.
    """

    def __init__(self, key_bytes: Optional[bytes] = None):
        """
        Initialize account.

        Args:
            key_bytes: 32-byte private key seed. If None, generates a random key.
        """
        try:
            if key_bytes is None:
                self._key = Ed25519PrivateKey.generate()
            else:
                if not isinstance(key_bytes, bytes) or len(key_bytes) != 32:
                    raise InvalidKeyError("Private key must be 32 bytes")
                self._key = Ed25519PrivateKey.from_private_bytes(key_bytes)
        except Exception as e:
            if isinstance(e, InvalidKeyError):
                raise
            raise InvalidKeyError(f"Failed to create private key: {e}")

        self._public_bytes = self._key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def from_hex(cls, key_material: str) -> 'Account':
        """Create an account from textual private key material."""
        return cls(parse_private_key(key_material))

    @property
    def public_key_bytes(self) -> bytes:
        """Get public key as bytes."""
        return self._public_bytes

    @property
    def public_key_hex(self) -> str:
        """Get public key as 0x-prefixed hex string."""
        return "0x" + self._public_bytes.hex()

    @property
    def address(self) -> str:
        """Account address: SHA3-256 of the public key and the Ed25519 scheme byte."""
        digest = hashlib.sha3_256(self._public_bytes + bytes([ED25519_SCHEME])).digest()
        return "0x" + digest.hex()

    def sign(self, message: bytes) -> bytes:
        """
        Sign a signing message.

        Args:
            message: Raw signing message bytes as encoded by the node

        Returns:
            64-byte Ed25519 signature
        """
        if not isinstance(message, bytes) or not message:
            raise SigningError("Signing message must be non-empty bytes")
        return self._key.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature made by this account."""
        try:
            Ed25519PublicKey.from_public_bytes(self._public_bytes).verify(signature, message)
            return True
        except InvalidSignature:
            return False

    def __repr__(self) -> str:
        return f"Account(address={self.address})"
