"""
NFT Machine Minter - Chain Gateway

This module models the two operation shapes the collection lifecycle needs:
submitting a signed entry function call and waiting for its terminal status,
and reading a collection resource from current chain state.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from crypto.exceptions import InvalidAddressError
from crypto.keys import Account, normalize_address
from nft.collections import MACHINE_MODULE, CollectionQuery, CollectionView
from nft.exceptions import (
    ExecutionFailedError,
    GatewayError,
    ResourceNotFoundError,
    SubmissionRejectedError,
)
from .rpc import AptosRestClient, NodeError, NodeNotFoundError


DEFAULT_MAX_GAS_AMOUNT = 200_000
DEFAULT_GAS_UNIT_PRICE = 100
DEFAULT_EXPIRATION_SECONDS = 600

SIGNER_PARAMS = ("signer", "&signer")
SMALL_INTEGER_TYPES = ("u8", "u16", "u32")
LARGE_INTEGER_TYPES = ("u64", "u128", "u256")


@dataclass
class TransactionReceipt:
    """Terminal status of a submitted transaction."""
    hash: str
    success: bool
    vm_status: str = ""
    version: Optional[int] = None
    gas_used: Optional[int] = None
    events: List[Dict[str, Any]] = field(default_factory=list)
    changes: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_transaction(cls, transaction: Dict[str, Any]) -> 'TransactionReceipt':
        return cls(
            hash=transaction.get("hash", ""),
            success=bool(transaction.get("success", False)),
            vm_status=transaction.get("vm_status", ""),
            version=int(transaction["version"]) if transaction.get("version") is not None else None,
            gas_used=int(transaction["gas_used"]) if transaction.get("gas_used") is not None else None,
            events=list(transaction.get("events") or []),
            changes=list(transaction.get("changes") or [])
        )

    def find_resource_address(self, resource_type: str) -> Optional[str]:
        """Address of the first written resource of the given type."""
        for change in self.changes:
            if change.get("type") != "write_resource":
                continue
            data = change.get("data") or {}
            if data.get("type") == resource_type and change.get("address"):
                return change["address"]
        return None

    def find_event_address(self, *names: str) -> Optional[str]:
        """
        First address-shaped value of any of the named event fields.

        Object references published as {"inner": address} are unwrapped;
        values that are not addresses are skipped.
        """
        for event in self.events:
            data = event.get("data") or {}
            for name in names:
                value = data.get(name)
                if isinstance(value, dict):
                    value = value.get("inner")
                if not isinstance(value, str):
                    continue
                try:
                    return normalize_address(value)
                except InvalidAddressError:
                    continue
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "success": self.success,
            "vm_status": self.vm_status,
            "version": self.version,
            "gas_used": self.gas_used
        }


class ChainGateway:
    """
    Build, sign, submit and await minting machine entry function calls.

    The gateway attempts exactly one transaction per `submit` call and never
    retries it; retry policy belongs to the caller.
    """

    def __init__(
        self,
        client: AptosRestClient,
        account: Account,
        machine_address: str,
        max_gas_amount: int = DEFAULT_MAX_GAS_AMOUNT,
        gas_unit_price: int = DEFAULT_GAS_UNIT_PRICE,
        expiration_seconds: int = DEFAULT_EXPIRATION_SECONDS
    ):
        """
        Initialize chain gateway.

        Args:
            client: Fullnode REST client
            account: Signing account
            machine_address: Address the nftmachine module is published at
            max_gas_amount: Fixed gas limit per transaction
            gas_unit_price: Fixed gas unit price in octas
            expiration_seconds: Transaction expiration from submission time
        """
        self.client = client
        self.account = account
        self.machine_address = normalize_address(machine_address)
        self.max_gas_amount = max_gas_amount
        self.gas_unit_price = gas_unit_price
        self.expiration_seconds = expiration_seconds
        self.logger = logging.getLogger(__name__)

        self._abi: Optional[Dict[str, List[str]]] = None

    @property
    def account_address(self) -> str:
        return self.account.address

    def function_id(self, entry_point: str) -> str:
        return f"{self.machine_address}::{MACHINE_MODULE}::{entry_point}"

    def submit(self, entry_point: str, args: Sequence[Any]) -> TransactionReceipt:
        """
        Submit an entry function call and block until it is executed or rejected.

        Args:
            entry_point: Entry function name on the nftmachine module
            args: Positional arguments, without the signer

        Returns:
            Receipt of the successfully executed transaction

        Raises:
            SubmissionRejectedError: The node refused the transaction
            ExecutionFailedError: The transaction was included but aborted
            GatewayError: Transport failure; the transaction's fate is unknown
        """
        args = list(args)
        arguments = self._encode_arguments(entry_point, args)
        sender = self.account.address

        try:
            sequence_number = self.client.get_sequence_number(sender)
        except NodeNotFoundError:
            raise SubmissionRejectedError(
                f"Sender account {sender} does not exist on chain",
                entry_point=entry_point, args=args
            )
        except NodeError as e:
            raise GatewayError(f"Could not read sender account: {e}", entry_point=entry_point, args=args)

        request = {
            "sender": sender,
            "sequence_number": str(sequence_number),
            "max_gas_amount": str(self.max_gas_amount),
            "gas_unit_price": str(self.gas_unit_price),
            "expiration_timestamp_secs": str(int(time.time()) + self.expiration_seconds),
            "payload": {
                "type": "entry_function_payload",
                "function": self.function_id(entry_point),
                "type_arguments": [],
                "arguments": arguments
            }
        }

        try:
            signing_message = self.client.encode_submission(request)
            signature = self.account.sign(signing_message)
            signed_request = dict(request, signature={
                "type": "ed25519_signature",
                "public_key": self.account.public_key_hex,
                "signature": "0x" + signature.hex()
            })
            pending = self.client.submit_transaction(signed_request)
        except NodeError as e:
            self.logger.error(f"Submission of {entry_point} rejected: {e} (arguments: {args})")
            if 400 <= e.status_code < 500:
                raise SubmissionRejectedError(str(e), entry_point=entry_point, args=args)
            raise GatewayError(f"Submission failed: {e}", entry_point=entry_point, args=args)

        tx_hash = pending.get("hash", "")
        self.logger.info(f"Submitted {entry_point}: {tx_hash}")

        try:
            committed = self.client.wait_for_transaction(tx_hash)
        except NodeError as e:
            raise GatewayError(
                f"Could not confirm transaction status: {e}",
                entry_point=entry_point, args=args, tx_hash=tx_hash
            )

        receipt = TransactionReceipt.from_transaction(committed)

        if not receipt.success:
            self.logger.error(f"{entry_point} aborted in {tx_hash}: {receipt.vm_status}")
            raise ExecutionFailedError(
                f"Execution failed: {receipt.vm_status}",
                entry_point=entry_point, args=args, tx_hash=tx_hash, vm_status=receipt.vm_status
            )

        self.logger.info(f"{entry_point} executed in {tx_hash} (version {receipt.version})")
        return receipt

    def read_resource(self, kind: CollectionQuery, owner_address: str) -> CollectionView:
        """
        Read a collection from current chain state.

        Raises:
            ResourceNotFoundError: No account or no collection resource at the address
        """
        if kind != CollectionQuery.COLLECTION:
            raise ValueError(f"Unsupported resource query: {kind}")

        address = normalize_address(owner_address)

        try:
            resources = self.client.get_account_resources(address)
        except NodeNotFoundError:
            raise ResourceNotFoundError(address)
        except NodeError as e:
            raise GatewayError(f"Could not read resources of {address}: {e}")

        view = CollectionView.from_resources(address, resources, self.machine_address)
        if view is None:
            raise ResourceNotFoundError(address)

        return view

    def fund_account(self, amount: int) -> List[TransactionReceipt]:
        """Top up the signing account from the network faucet."""
        address = self.account.address

        try:
            hashes = self.client.fund_account(address, amount)
            receipts = [
                TransactionReceipt.from_transaction(self.client.wait_for_transaction(tx_hash))
                for tx_hash in hashes
            ]
        except NodeError as e:
            raise GatewayError(f"Faucet request failed: {e}")

        self.logger.info(f"Funded {address} with {amount} octas")
        return receipts

    # Argument encoding

    def _load_abi(self) -> Dict[str, List[str]]:
        if self._abi is not None:
            return self._abi

        try:
            module = self.client.get_account_module(self.machine_address, MACHINE_MODULE)
        except NodeError as e:
            self.logger.warning(f"Module ABI unavailable, arguments sent as given: {e}")
            return {}

        functions = (module.get("abi") or {}).get("exposed_functions") or []
        self._abi = {
            function["name"]: [param for param in function.get("params", []) if param not in SIGNER_PARAMS]
            for function in functions
            if function.get("is_entry")
        }
        return self._abi

    def _encode_arguments(self, entry_point: str, args: List[Any]) -> List[Any]:
        abi = self._load_abi()
        if not abi:
            return args

        params = abi.get(entry_point)
        if params is None:
            raise SubmissionRejectedError(
                f"{self.function_id(entry_point)} is not an entry function",
                entry_point=entry_point, args=args
            )

        if len(params) != len(args):
            raise SubmissionRejectedError(
                f"{entry_point} takes {len(params)} arguments, got {len(args)}",
                entry_point=entry_point, args=args
            )

        try:
            return [encode_argument(param, value) for param, value in zip(params, args)]
        except (TypeError, ValueError, InvalidAddressError) as e:
            raise SubmissionRejectedError(
                f"Malformed arguments for {entry_point}: {e}",
                entry_point=entry_point, args=args
            )


def encode_argument(type_tag: str, value: Any) -> Any:
    """
    Encode a Python value as the JSON form the node expects for a Move type.

    Integers of 64 bits and wider travel as decimal strings, addresses and
    objects as long-form hex, vectors and options recursively.
    """
    if type_tag in SMALL_INTEGER_TYPES:
        return int(value)

    if type_tag in LARGE_INTEGER_TYPES:
        return str(int(value))

    if type_tag == "bool":
        if not isinstance(value, bool):
            raise TypeError(f"Expected bool, got {value!r}")
        return value

    if type_tag == "address" or type_tag.startswith("0x1::object::Object<"):
        return normalize_address(value)

    if type_tag == "0x1::string::String":
        if not isinstance(value, str):
            raise TypeError(f"Expected string, got {value!r}")
        return value

    if type_tag.startswith("vector<") and type_tag.endswith(">"):
        inner = type_tag[len("vector<"):-1]
        if inner == "u8" and isinstance(value, (bytes, str)):
            return value if isinstance(value, str) else "0x" + value.hex()
        return [encode_argument(inner, item) for item in value]

    if type_tag.startswith("0x1::option::Option<") and type_tag.endswith(">"):
        inner = type_tag[len("0x1::option::Option<"):-1]
        return {"vec": [] if value is None else [encode_argument(inner, value)]}

    return value
