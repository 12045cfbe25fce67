"""
Tests for signing accounts and address derivation.
"""

import hashlib

import pytest

from crypto.exceptions import InvalidAddressError, InvalidKeyError, SigningError
from crypto.keys import (
    Account,
    address_bytes,
    derive_collection_address,
    derive_object_address,
    derive_resource_account_address,
    normalize_address,
    parse_private_key,
)


TEST_KEY_HEX = "0x" + "11" * 32
CREATOR = "0x637b3459fa497e5a52692ec3acb1b9b1863cc284b2d8a52a10d4ffd681d7dfb1"


class TestNormalizeAddress:
    """Test address normalization."""

    def test_short_address_padded(self):
        assert normalize_address("0x1") == "0x" + "0" * 63 + "1"

    def test_missing_prefix_and_uppercase(self):
        assert normalize_address("ABCDEF") == "0x" + "0" * 58 + "abcdef"

    def test_long_address_unchanged(self):
        assert normalize_address(CREATOR) == CREATOR

    @pytest.mark.parametrize("bad", ["", "0x", "0xZZ", "0x" + "1" * 65, "hello"])
    def test_invalid_addresses(self, bad):
        with pytest.raises(InvalidAddressError):
            normalize_address(bad)

    def test_non_string_rejected(self):
        with pytest.raises(InvalidAddressError):
            normalize_address(1234)

    def test_address_bytes(self):
        assert address_bytes("0x1") == b"\x00" * 31 + b"\x01"


class TestPrivateKeyParsing:
    """Test textual private key formats."""

    def test_plain_hex(self):
        assert parse_private_key("11" * 32) == b"\x11" * 32

    def test_prefixed_hex(self):
        assert parse_private_key(TEST_KEY_HEX) == b"\x11" * 32

    def test_aip80_prefix(self):
        assert parse_private_key("ed25519-priv-" + TEST_KEY_HEX) == b"\x11" * 32

    def test_wrong_length(self):
        with pytest.raises(InvalidKeyError, match="32 bytes"):
            parse_private_key("0x1122")

    def test_not_hex(self):
        with pytest.raises(InvalidKeyError):
            parse_private_key("0xnothex")

    def test_empty(self):
        with pytest.raises(InvalidKeyError):
            parse_private_key("")


class TestAccount:
    """Test Ed25519 signing accounts."""

    def test_generate_random_account(self):
        first = Account()
        second = Account()

        assert first.address != second.address
        assert len(first.public_key_bytes) == 32

    def test_deterministic_from_hex(self):
        assert Account.from_hex(TEST_KEY_HEX).address == Account.from_hex(TEST_KEY_HEX).address

    def test_address_scheme(self):
        """Test the address is the SHA3-256 of the public key and scheme byte."""
        account = Account.from_hex(TEST_KEY_HEX)
        expected = hashlib.sha3_256(account.public_key_bytes + b"\x00").hexdigest()

        assert account.address == "0x" + expected
        assert account.public_key_hex == "0x" + account.public_key_bytes.hex()

    def test_sign_and_verify(self):
        account = Account.from_hex(TEST_KEY_HEX)
        message = b"signing message"

        signature = account.sign(message)

        assert len(signature) == 64
        assert account.verify(message, signature)
        assert not account.verify(b"other message", signature)

    def test_sign_empty_message(self):
        with pytest.raises(SigningError):
            Account().sign(b"")

    def test_invalid_key_bytes(self):
        with pytest.raises(InvalidKeyError):
            Account(b"short")

    def test_repr_shows_address_only(self):
        account = Account.from_hex(TEST_KEY_HEX)
        assert account.address in repr(account)
        assert "11" * 32 not in repr(account)


class TestAddressDerivation:
    """Test object and resource account address derivation."""

    def test_object_address_scheme(self):
        expected = hashlib.sha3_256(address_bytes(CREATOR) + b"Highland" + b"\xfe").hexdigest()
        assert derive_object_address(CREATOR, "Highland") == "0x" + expected

    def test_resource_account_scheme(self):
        expected = hashlib.sha3_256(address_bytes(CREATOR) + b"1700000000000" + b"\xff").hexdigest()
        assert derive_resource_account_address(CREATOR, "1700000000000") == "0x" + expected

    def test_bytes_and_str_seed_agree(self):
        assert derive_object_address(CREATOR, b"seed") == derive_object_address(CREATOR, "seed")

    def test_collection_address_composition(self):
        resource_account = derive_resource_account_address(CREATOR, "1700000000000")
        expected = derive_object_address(resource_account, "Highland")

        assert derive_collection_address(CREATOR, "Highland", "1700000000000") == expected

    def test_collection_address_depends_on_seed(self):
        first = derive_collection_address(CREATOR, "Highland", "1700000000000")
        second = derive_collection_address(CREATOR, "Highland", "1700000000001")

        assert first != second

    def test_collection_address_ignores_creator_format(self):
        short = "0x" + CREATOR[2:].upper()
        assert derive_collection_address(short, "Highland", "1") == derive_collection_address(CREATOR, "Highland", "1")
