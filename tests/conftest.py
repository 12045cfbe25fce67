"""
Pytest configuration and fixtures for NFT Machine Minter tests.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest

from crypto.keys import derive_collection_address, normalize_address
from network.gateway import TransactionReceipt
from nft.collections import COLLECTION_RESOURCE, CollectionSettings, CollectionView
from nft.coordinator import CollectionCoordinator, SeedGenerator
from nft.exceptions import ResourceNotFoundError
from registry.schema import CollectionRecord
from registry.storage import RecordStore


MACHINE = "0x04211a725381d5cef7a648583de9b0c197a235822b120964e94f24438eb33a09"
CREATOR = "0x637b3459fa497e5a52692ec3acb1b9b1863cc284b2d8a52a10d4ffd681d7dfb1"

WHITELIST_A = "0xf8cad0049294097a72c6d37f6b259d592ff1b2fb13259b0e1b82994ecc0ef522"
WHITELIST_B = "0x04211a725381d5cef7a648583de9b0c197a235822b120964e94f24438eb33a09"
WHITELIST_C = "0x7e833ed1bc62cfb7857e382bf1fe106a794e325d72c92296c5f0022cda3b09fc"


class FakeGateway:
    """In-memory stand-in for the chain gateway that mimics the machine module."""

    def __init__(self, account_address: str = CREATOR, machine_address: str = MACHINE):
        self.account_address = account_address
        self.machine_address = machine_address
        self.calls: List[Tuple[str, List[Any]]] = []
        self.collections: Dict[str, Dict[str, Any]] = {}
        self.failures: List[Exception] = []
        self.submit_delay: Optional[threading.Event] = None
        self._active = 0
        self.max_concurrent = 0
        self._counter_lock = threading.Lock()
        self._tx_count = 0

    def fail_next(self, error: Exception) -> None:
        self.failures.append(error)

    def _receipt(self, changes=None) -> TransactionReceipt:
        self._tx_count += 1
        return TransactionReceipt(
            hash="0x" + f"{self._tx_count:064x}",
            success=True,
            vm_status="Executed successfully",
            version=1000 + self._tx_count,
            changes=changes or []
        )

    def submit(self, entry_point: str, args):
        with self._counter_lock:
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)

        try:
            if self.submit_delay is not None:
                self.submit_delay.wait(0.05)

            self.calls.append((entry_point, list(args)))

            if self.failures:
                raise self.failures.pop(0)

            return getattr(self, f"_{entry_point}")(list(args))
        finally:
            with self._counter_lock:
                self._active -= 1

    def _create_collection(self, args):
        name, uri, max_supply, seed = args[0], args[2], args[5], args[-1]
        address = derive_collection_address(self.account_address, name, seed)
        self.collections[address] = {
            "name": name,
            "uri": uri,
            "description": "",
            "max_supply": max_supply,
            "public": None,
            "whitelist": None
        }
        return self._receipt(changes=[{
            "type": "write_resource",
            "address": address,
            "data": {"type": COLLECTION_RESOURCE, "data": {"name": name}}
        }])

    def _set_mint_public(self, args):
        address, start, end, price = args
        self.collections[address]["public"] = {"start_time": str(start), "end_time": str(end), "price": str(price)}
        return self._receipt()

    def _set_mint_whitelist(self, args):
        address, price, start, end, accounts, allowances = args
        self.collections[address]["whitelist"] = {
            "start_time": str(start),
            "end_time": str(end),
            "price": str(price),
            "accounts": list(accounts),
            "allowances": list(allowances)
        }
        return self._receipt()

    def _update_collection(self, args):
        address, name, uri, max_supply = args[:4]
        self.collections[address].update({"name": name, "uri": uri, "max_supply": max_supply})
        return self._receipt()

    def read_resource(self, kind, owner_address):
        address = normalize_address(owner_address)
        state = self.collections.get(address)
        if state is None:
            raise ResourceNotFoundError(address)

        resources = [
            {"type": COLLECTION_RESOURCE, "data": {
                "creator": self.account_address,
                "description": state["description"],
                "name": state["name"],
                "uri": state["uri"]
            }},
            {"type": "0x4::collection::FixedSupply", "data": {
                "current_supply": "0",
                "max_supply": str(state["max_supply"]),
                "total_minted": "0"
            }}
        ]
        if state["public"]:
            resources.append({"type": f"{self.machine_address}::nftmachine::PublicMintConfig",
                              "data": state["public"]})
        if state["whitelist"]:
            resources.append({"type": f"{self.machine_address}::nftmachine::WhitelistMintConfig",
                              "data": state["whitelist"]})

        view = CollectionView.from_resources(address, resources, self.machine_address)
        assert view is not None
        return view


@pytest.fixture
def record_file(tmp_path):
    """Path of the workspace record file."""
    return tmp_path / "collection.json"


@pytest.fixture
def record_store(record_file):
    """Create record store for testing."""
    return RecordStore(record_file, backup_count=3)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def coordinator(fake_gateway, record_store):
    """Coordinator over the fake gateway and a temporary record store."""
    return CollectionCoordinator(fake_gateway, record_store, seed_generator=SeedGenerator())


@pytest.fixture
def highland_settings():
    """Settings of the Highland devnet collection."""
    return CollectionSettings(
        display_name="Highland",
        symbol="HL",
        base_uri="https://api.pudgypenguins.io/lil/100",
        royalty_payee=CREATOR,
        max_supply=1000,
        royalty_bps=15,
        royalty_config=3,
        feature_flags=[False, True, False],
        token_base_name="Highland #",
        token_description="Highland collection token",
        mutability_flags=[True, True, True, True, True]
    )


@pytest.fixture
def sample_record():
    """A stored collection record."""
    return CollectionRecord(
        name="Highland 1708708202540",
        seed="1708708202540",
        creator_address=CREATOR,
        machine_address=MACHINE,
        collection_address="0x5ab36b22446d7aacc7aa8507a0a403e781c67654b59bb7d373c41e6a34138323"
    )


# Test markers for different test categories
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as a concurrency test"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "concurrent" in item.name or "thread" in item.name:
            item.add_marker(pytest.mark.concurrency)
