"""
NFT Machine Minter - Collection Value Objects

This module provides the inputs and outputs of collection lifecycle operations:
creation settings, mint windows and allowlists, metadata updates, and the
read-only view of a collection's on-chain state.
"""

import csv
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from crypto.exceptions import InvalidAddressError
from crypto.keys import normalize_address
from .exceptions import InvalidAllowlistError, InvalidMetadataError, InvalidWindowError


COLLECTION_RESOURCE = "0x4::collection::Collection"
SUPPLY_RESOURCES = (
    "0x4::collection::ConcurrentSupply",
    "0x4::collection::FixedSupply",
    "0x4::collection::UnlimitedSupply",
)

MACHINE_MODULE = "nftmachine"

MAX_ROYALTY_BPS = 10_000

INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


class CollectionState(str, Enum):
    """Local lifecycle state of the tracked collection."""
    UNINITIALIZED = "uninitialized"
    CREATED = "created"
    PUBLIC_MINT_CONFIGURED = "public_mint_configured"
    WHITELIST_MINT_CONFIGURED = "whitelist_mint_configured"


class MintPhase(str, Enum):
    """Mint phases the machine can schedule."""
    PUBLIC = "public"
    WHITELIST = "whitelist"


class CollectionQuery(str, Enum):
    """Resource queries the gateway answers."""
    COLLECTION = COLLECTION_RESOURCE


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class MintWindow:
    """Time-bounded, priced mint phase. Times are inclusive Unix seconds."""

    start_time: int
    end_time: int
    price_subunits: int

    @classmethod
    def starting_now(cls, duration_seconds: int, price_subunits: int,
                     now: Optional[int] = None) -> 'MintWindow':
        """Window opening now and closing `duration_seconds` later."""
        start = int(time.time()) if now is None else now
        return cls(start_time=start, end_time=start + duration_seconds, price_subunits=price_subunits)

    def validate(self) -> None:
        """
        Check window bounds and price.

        Raises:
            InvalidWindowError: Non-integer fields, end_time <= start_time
                or a negative price
        """
        for name in ("start_time", "end_time", "price_subunits"):
            if not _is_int(getattr(self, name)):
                raise InvalidWindowError(f"{name} must be an integer, got {getattr(self, name)!r}")

        if self.start_time < 0:
            raise InvalidWindowError(f"start_time must not be negative, got {self.start_time}")

        if self.end_time <= self.start_time:
            raise InvalidWindowError(
                f"end_time ({self.end_time}) must be after start_time ({self.start_time})"
            )

        if self.price_subunits < 0:
            raise InvalidWindowError(f"price_subunits must not be negative, got {self.price_subunits}")

    def is_open(self, at: Optional[int] = None) -> bool:
        """Check if the window is open at a Unix time (default: now)."""
        current = int(time.time()) if at is None else at
        return self.start_time <= current <= self.end_time

    def to_dict(self) -> Dict[str, int]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "price_subunits": self.price_subunits
        }


@dataclass(frozen=True)
class Allowlist:
    """Ordered account to mint allowance entries for a gated phase."""

    entries: Tuple[Tuple[str, int], ...]

    def __init__(self, entries: Iterable[Tuple[str, int]]):
        object.__setattr__(self, "entries", tuple((account, allowance) for account, allowance in entries))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, int]) -> 'Allowlist':
        return cls(mapping.items())

    @classmethod
    def from_pairs(cls, accounts: Sequence[str], allowances: Sequence[int]) -> 'Allowlist':
        """Build from parallel account and allowance sequences."""
        if len(accounts) != len(allowances):
            raise InvalidAllowlistError(
                f"Got {len(accounts)} accounts but {len(allowances)} allowances"
            )
        return cls(zip(accounts, allowances))

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> 'Allowlist':
        """
        Load `address,allowance` rows. Blank lines are skipped, as is a
        header: a first row whose allowance cell is not an integer.
        """
        entries = []
        first_row = True
        with open(path, newline='') as f:
            for line_number, row in enumerate(csv.reader(f), start=1):
                if not row or not "".join(row).strip():
                    continue
                if len(row) != 2:
                    raise InvalidAllowlistError(f"{path}:{line_number}: expected address,allowance")
                account, allowance = row[0].strip(), row[1].strip()
                if first_row:
                    first_row = False
                    if not INTEGER_PATTERN.match(allowance):
                        continue
                try:
                    entries.append((account, int(allowance)))
                except ValueError:
                    raise InvalidAllowlistError(f"{path}:{line_number}: bad allowance {allowance!r}")
        return cls(entries)

    def validate(self) -> None:
        """
        Check the allowlist can be submitted.

        Raises:
            InvalidAllowlistError: Empty list, malformed or duplicate accounts,
                or an allowance below 1
        """
        if not self.entries:
            raise InvalidAllowlistError("Allowlist must not be empty")

        seen = set()
        for account, allowance in self.entries:
            try:
                normalized = normalize_address(account)
            except InvalidAddressError as e:
                raise InvalidAllowlistError(str(e))

            if normalized in seen:
                raise InvalidAllowlistError(f"Duplicate allowlist account: {account}")
            seen.add(normalized)

            if not _is_int(allowance) or allowance < 1:
                raise InvalidAllowlistError(
                    f"Allowance for {account} must be an integer >= 1, got {allowance!r}"
                )

    def accounts(self) -> List[str]:
        return [normalize_address(account) for account, _ in self.entries]

    def allowances(self) -> List[int]:
        return [allowance for _, allowance in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class CollectionSettings:
    """Inputs of create_collection."""

    display_name: str
    symbol: str
    base_uri: str
    royalty_payee: str
    max_supply: int
    royalty_bps: int
    royalty_config: int = 3
    feature_flags: List[bool] = field(default_factory=lambda: [False, True, False])
    token_base_name: Optional[str] = None
    token_description: Optional[str] = None
    mutability_flags: List[bool] = field(default_factory=lambda: [True, True, True, True, True])

    def validate(self) -> None:
        """Raises InvalidMetadataError for settings the machine would reject."""
        if not self.display_name or not self.display_name.strip():
            raise InvalidMetadataError("Collection name must not be empty")

        if not self.symbol or not self.symbol.strip():
            raise InvalidMetadataError("Collection symbol must not be empty")

        try:
            normalize_address(self.royalty_payee)
        except InvalidAddressError as e:
            raise InvalidMetadataError(f"Royalty payee: {e}")

        if not _is_int(self.max_supply) or self.max_supply < 0:
            raise InvalidMetadataError(f"max_supply must be a non-negative integer, got {self.max_supply!r}")

        if not _is_int(self.royalty_bps) or not 0 <= self.royalty_bps <= MAX_ROYALTY_BPS:
            raise InvalidMetadataError(f"royalty_bps must be between 0 and {MAX_ROYALTY_BPS}")

        if not _is_int(self.royalty_config) or self.royalty_config < 0:
            raise InvalidMetadataError("royalty_config must be a non-negative integer")

        for name in ("feature_flags", "mutability_flags"):
            flags = getattr(self, name)
            if not all(isinstance(flag, bool) for flag in flags):
                raise InvalidMetadataError(f"{name} must contain only booleans")

    def to_arguments(self, seed: str) -> List[Any]:
        """
        Positional arguments of create_collection.

        The token name and description follow the feature flags only when
        one of them is set; without them the machine's shorter form is used.
        """
        args = [
            self.display_name,
            self.symbol,
            self.base_uri,
            self.royalty_config,
            normalize_address(self.royalty_payee),
            self.max_supply,
            self.royalty_bps,
            list(self.feature_flags),
        ]
        if self.token_base_name is not None or self.token_description is not None:
            args.extend([self.token_base_name or "", self.token_description or ""])
        args.extend([list(self.mutability_flags), seed])
        return args


@dataclass
class MetadataUpdate:
    """Inputs of update_collection."""

    name: str
    uri: str
    max_supply: int
    royalty_payee: str
    royalty_numerator: int
    royalty_denominator: int

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidMetadataError("Collection name must not be empty")

        if not _is_int(self.max_supply) or self.max_supply < 0:
            raise InvalidMetadataError(f"max_supply must be a non-negative integer, got {self.max_supply!r}")

        try:
            normalize_address(self.royalty_payee)
        except InvalidAddressError as e:
            raise InvalidMetadataError(f"Royalty payee: {e}")

        if not _is_int(self.royalty_denominator) or self.royalty_denominator <= 0:
            raise InvalidMetadataError("royalty_denominator must be a positive integer")

        if not _is_int(self.royalty_numerator) or not 0 <= self.royalty_numerator <= self.royalty_denominator:
            raise InvalidMetadataError("royalty_numerator must be between 0 and royalty_denominator")

    def to_arguments(self, collection_address: str) -> List[Any]:
        """Positional arguments of update_collection."""
        return [
            collection_address,
            self.name,
            self.uri,
            self.max_supply,
            normalize_address(self.royalty_payee),
            self.royalty_numerator,
            self.royalty_denominator,
        ]


@dataclass(frozen=True)
class MintPhaseView:
    """Mint phase configuration as published on chain."""
    start_time: Optional[int]
    end_time: Optional[int]
    price_subunits: Optional[int]


@dataclass
class CollectionView:
    """Read-only snapshot of a collection's on-chain state."""

    address: str
    name: str
    description: str = ""
    uri: str = ""
    creator: Optional[str] = None
    current_supply: Optional[int] = None
    max_supply: Optional[int] = None
    public_mint: Optional[MintPhaseView] = None
    whitelist_mint: Optional[MintPhaseView] = None
    resources: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_resources(cls, address: str, resources: List[Dict[str, Any]],
                       machine_address: Optional[str] = None) -> Optional['CollectionView']:
        """
        Build a view from an account's resource list.

        Returns:
            The view, or None when no collection resource is present
        """
        by_type = {resource.get("type", ""): resource.get("data", {}) for resource in resources}

        collection = by_type.get(COLLECTION_RESOURCE)
        if collection is None:
            return None

        view = cls(
            address=normalize_address(address),
            name=collection.get("name", ""),
            description=collection.get("description", ""),
            uri=collection.get("uri", ""),
            creator=collection.get("creator"),
            resources=by_type
        )

        for supply_type in SUPPLY_RESOURCES:
            supply = by_type.get(supply_type)
            if supply is not None:
                view.current_supply = _as_int(_unwrap(supply.get("current_supply")))
                view.max_supply = _as_int(
                    supply.get("max_supply", _max_value(supply.get("current_supply")))
                )
                break

        if machine_address:
            for resource_type, data in by_type.items():
                if _is_machine_type(resource_type, machine_address):
                    view._apply_machine_resource(resource_type, data)

        return view

    def _apply_machine_resource(self, resource_type: str, data: Dict[str, Any]) -> None:
        struct_name = resource_type.split("::")[-1].lower()

        if "whitelist" in struct_name:
            self.whitelist_mint = _phase_view(data)
        elif "public" in struct_name:
            self.public_mint = _phase_view(data)
        else:
            for key, value in data.items():
                if not isinstance(value, dict):
                    continue
                if "whitelist" in key.lower():
                    self.whitelist_mint = _phase_view(value)
                elif "public" in key.lower():
                    self.public_mint = _phase_view(value)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "address": self.address,
            "name": self.name,
            "description": self.description,
            "uri": self.uri,
            "creator": self.creator,
            "current_supply": self.current_supply,
            "max_supply": self.max_supply
        }
        for phase_name, phase in (("public_mint", self.public_mint), ("whitelist_mint", self.whitelist_mint)):
            if phase is not None:
                result[phase_name] = {
                    "start_time": phase.start_time,
                    "end_time": phase.end_time,
                    "price_subunits": phase.price_subunits
                }
        return result


def _is_machine_type(resource_type: str, machine_address: str) -> bool:
    parts = resource_type.split("::")
    if len(parts) < 3 or parts[1] != MACHINE_MODULE:
        return False
    try:
        return normalize_address(parts[0]) == normalize_address(machine_address)
    except InvalidAddressError:
        return False


def _unwrap(value: Any) -> Any:
    # Aggregator fields are published as {"value": ..., "max_value": ...}
    if isinstance(value, dict):
        return value.get("value")
    return value


def _max_value(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("max_value")
    return None


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _phase_view(data: Dict[str, Any]) -> MintPhaseView:
    return MintPhaseView(
        start_time=_as_int(_first(data, "start_time", "start", "mint_start_time")),
        end_time=_as_int(_first(data, "end_time", "end", "mint_end_time")),
        price_subunits=_as_int(_first(data, "price", "mint_price", "price_subunits"))
    )
