"""
Cryptographic Exceptions for the NFT Machine Minter

This module defines custom exceptions for key handling and signing.
"""


class CryptoError(Exception):
    """Base exception for all cryptographic errors."""
    pass


class InvalidKeyError(CryptoError):
    """Raised when a key is invalid or malformed."""
    pass


class InvalidAddressError(CryptoError):
    """Raised when an account address cannot be parsed."""
    pass


class SigningError(CryptoError):
    """Raised when a signing message cannot be signed."""
    pass
