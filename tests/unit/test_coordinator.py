"""
Tests for the collection lifecycle coordinator.
"""

import threading
from unittest.mock import Mock, patch

import pytest

from crypto.keys import derive_collection_address
from network.gateway import TransactionReceipt
from nft.collections import CollectionState, MetadataUpdate, MintPhase, MintWindow
from nft.coordinator import (
    CREATE_COLLECTION,
    SET_MINT_PUBLIC,
    SET_MINT_WHITELIST,
    UPDATE_COLLECTION,
    CollectionCoordinator,
    SeedGenerator,
)
from nft.exceptions import (
    AlreadyInitializedError,
    ExecutionFailedError,
    InvalidAllowlistError,
    InvalidMetadataError,
    InvalidStateError,
    InvalidWindowError,
    PersistAfterSuccessError,
    ResourceNotFoundError,
    SubmissionRejectedError,
)
from registry.storage import StorageError

from conftest import CREATOR, MACHINE, WHITELIST_A, WHITELIST_B, WHITELIST_C


SEED = "1700000000000"
WHITELIST_WINDOW = MintWindow(start_time=1000, end_time=2000, price_subunits=170000000)


@pytest.fixture
def created(coordinator, highland_settings):
    """Coordinator tracking a freshly created Highland collection."""
    coordinator.create(highland_settings, seed=SEED)
    return coordinator


class TestCreate:
    """Test collection creation."""

    def test_create_persists_record(self, coordinator, fake_gateway, record_store, highland_settings):
        record = coordinator.create(highland_settings, seed=SEED)

        assert coordinator.state == CollectionState.CREATED
        assert record.name == "Highland"
        assert record.seed == SEED
        assert record.creator_address == CREATOR
        assert record.machine_address == MACHINE
        assert record.collection_address == derive_collection_address(CREATOR, "Highland", SEED)
        assert record.transaction_hash is not None
        assert record_store.load() == record

        entry_point, args = fake_gateway.calls[0]
        assert entry_point == CREATE_COLLECTION
        assert args == highland_settings.to_arguments(SEED)

    def test_create_generates_seed(self, coordinator, highland_settings):
        record = coordinator.create(highland_settings)

        assert record.seed.isdigit()
        assert len(record.seed) >= 13

    def test_create_twice_rejected(self, created, fake_gateway, record_file, highland_settings):
        """Test a second create leaves the stored record byte-for-byte unchanged."""
        before = record_file.read_bytes()

        with pytest.raises(AlreadyInitializedError):
            created.create(highland_settings)

        assert record_file.read_bytes() == before
        assert len(fake_gateway.calls) == 1

    def test_create_with_replace(self, created, record_store, highland_settings):
        first = created.record

        second = created.create(highland_settings, seed="1700000000001", replace=True)

        assert second.collection_address != first.collection_address
        assert record_store.load() == second
        assert len(record_store.list_backups()) == 1

    def test_replace_resets_phases(self, created, highland_settings):
        created.configure_public_mint(WHITELIST_WINDOW)

        created.create(highland_settings, seed="1700000000001", replace=True)

        assert created.state == CollectionState.CREATED
        assert created.configured_phases == set()

    def test_execution_failure_writes_nothing(self, coordinator, fake_gateway, record_store, highland_settings):
        fake_gateway.fail_next(ExecutionFailedError(
            "Execution failed: ABORTED", entry_point=CREATE_COLLECTION, vm_status="ABORTED"
        ))

        with pytest.raises(ExecutionFailedError):
            coordinator.create(highland_settings, seed=SEED)

        assert not record_store.exists()
        assert coordinator.state == CollectionState.UNINITIALIZED

    def test_failed_replace_keeps_previous_record(self, created, fake_gateway, record_file, highland_settings):
        before = record_file.read_bytes()
        fake_gateway.fail_next(SubmissionRejectedError("rejected", entry_point=CREATE_COLLECTION))

        with pytest.raises(SubmissionRejectedError):
            created.create(highland_settings, seed="1700000000001", replace=True)

        assert record_file.read_bytes() == before
        assert created.record.seed == SEED

    def test_invalid_settings_not_submitted(self, coordinator, fake_gateway, highland_settings):
        highland_settings.royalty_bps = -1

        with pytest.raises(InvalidMetadataError):
            coordinator.create(highland_settings)

        assert fake_gateway.calls == []

    def test_persist_failure_then_retry(self, coordinator, fake_gateway, record_store, highland_settings):
        """Test recovery when the chain accepted the collection but saving failed."""
        with patch.object(record_store, "save", side_effect=StorageError("disk full")):
            with pytest.raises(PersistAfterSuccessError) as exc_info:
                coordinator.create(highland_settings, seed=SEED)

        error = exc_info.value
        assert error.record.collection_address == derive_collection_address(CREATOR, "Highland", SEED)
        assert isinstance(error.cause, StorageError)
        assert not record_store.exists()

        coordinator.retry_persist(error.record)

        assert record_store.load() == error.record
        assert len(fake_gateway.calls) == 1

    def test_unsaved_collection_blocks_second_create(self, coordinator, fake_gateway, record_store,
                                                      highland_settings):
        with patch.object(record_store, "save", side_effect=StorageError("disk full")):
            with pytest.raises(PersistAfterSuccessError):
                coordinator.create(highland_settings, seed=SEED)

        assert not record_store.exists()

        with pytest.raises(AlreadyInitializedError, match="already tracked"):
            coordinator.create(highland_settings, seed="1700000000001")

        assert len(fake_gateway.calls) == 1
        assert coordinator.record.seed == SEED

    def test_receipt_event_with_collection_name(self, coordinator, fake_gateway, record_store,
                                                highland_settings):
        fake_gateway.submit = Mock(return_value=TransactionReceipt(
            hash="0x" + "ab" * 32,
            success=True,
            events=[{"data": {"collection": "Highland"}}]
        ))

        record = coordinator.create(highland_settings, seed=SEED)

        assert record.collection_address == derive_collection_address(CREATOR, "Highland", SEED)
        assert record_store.load() == record

    def test_receipt_event_with_collection_object(self, coordinator, fake_gateway, highland_settings):
        address = "0x5ab36b22446d7aacc7aa8507a0a403e781c67654b59bb7d373c41e6a34138323"
        fake_gateway.submit = Mock(return_value=TransactionReceipt(
            hash="0x" + "ab" * 32,
            success=True,
            events=[{"data": {"collection": {"inner": address}}}]
        ))

        record = coordinator.create(highland_settings, seed=SEED)

        assert record.collection_address == address

    def test_corrupt_record_blocks_create(self, record_file, fake_gateway, record_store, highland_settings):
        record_file.write_text("{broken")
        coordinator = CollectionCoordinator(fake_gateway, record_store)

        assert coordinator.state == CollectionState.UNINITIALIZED

        with pytest.raises(AlreadyInitializedError):
            coordinator.create(highland_settings)

        record = coordinator.create(highland_settings, replace=True)
        assert record_store.load() == record


class TestMintConfiguration:
    """Test public and whitelist mint configuration."""

    def test_whitelist_mint(self, created, fake_gateway):
        created.configure_whitelist_mint(
            WHITELIST_WINDOW, {WHITELIST_A: 1, WHITELIST_B: 5, WHITELIST_C: 5}
        )

        assert created.state == CollectionState.WHITELIST_MINT_CONFIGURED
        assert MintPhase.WHITELIST in created.configured_phases

        entry_point, args = fake_gateway.calls[-1]
        assert entry_point == SET_MINT_WHITELIST
        assert args == [
            created.record.collection_address,
            170000000,
            1000,
            2000,
            [WHITELIST_A, WHITELIST_B, WHITELIST_C],
            [1, 5, 5],
        ]

        view = created.read()
        assert view.whitelist_mint.price_subunits == 170000000
        assert view.whitelist_mint.start_time == 1000
        assert view.whitelist_mint.end_time == 2000

    def test_public_mint(self, created, fake_gateway):
        window = MintWindow(start_time=1700000000, end_time=1700259200, price_subunits=50000000)

        created.configure_public_mint(window)

        assert created.state == CollectionState.PUBLIC_MINT_CONFIGURED
        entry_point, args = fake_gateway.calls[-1]
        assert entry_point == SET_MINT_PUBLIC
        assert args == [created.record.collection_address, 1700000000, 1700259200, 50000000]
        assert created.read().public_mint.price_subunits == 50000000

    def test_phases_are_independent(self, created):
        created.configure_whitelist_mint(WHITELIST_WINDOW, [(WHITELIST_A, 1)])
        created.configure_public_mint(MintWindow(start_time=2000, end_time=3000, price_subunits=1))

        assert created.configured_phases == {MintPhase.PUBLIC, MintPhase.WHITELIST}
        view = created.read()
        assert view.public_mint is not None
        assert view.whitelist_mint is not None

    def test_reconfigure_replaces_window(self, created):
        created.configure_public_mint(MintWindow(start_time=1, end_time=2, price_subunits=10))
        created.configure_public_mint(MintWindow(start_time=1, end_time=2, price_subunits=20))

        assert created.read().public_mint.price_subunits == 20

    def test_invalid_window_not_submitted(self, created, fake_gateway):
        with pytest.raises(InvalidWindowError):
            created.configure_public_mint(MintWindow(start_time=2000, end_time=1000, price_subunits=1))

        assert len(fake_gateway.calls) == 1
        assert created.state == CollectionState.CREATED

    def test_duplicate_allowlist_not_submitted(self, created, fake_gateway):
        with pytest.raises(InvalidAllowlistError):
            created.configure_whitelist_mint(
                WHITELIST_WINDOW, [(WHITELIST_A, 1), (WHITELIST_B, 1), (WHITELIST_A, 1)]
            )

        assert len(fake_gateway.calls) == 1

    def test_empty_allowlist_not_submitted(self, created, fake_gateway):
        with pytest.raises(InvalidAllowlistError):
            created.configure_whitelist_mint(WHITELIST_WINDOW, {})

        assert len(fake_gateway.calls) == 1

    def test_gateway_failure_keeps_state(self, created, fake_gateway):
        fake_gateway.fail_next(ExecutionFailedError("aborted", entry_point=SET_MINT_PUBLIC))

        with pytest.raises(ExecutionFailedError):
            created.configure_public_mint(WHITELIST_WINDOW)

        assert created.state == CollectionState.CREATED
        assert created.configured_phases == set()

    def test_concurrent_submissions_serialized(self, created, fake_gateway):
        """Test that concurrent thread callers never have overlapping submissions."""
        fake_gateway.submit_delay = threading.Event()
        errors = []

        def worker(price):
            try:
                created.configure_public_mint(MintWindow(start_time=1, end_time=2, price_subunits=price))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(price,)) for price in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert fake_gateway.max_concurrent == 1
        assert len(fake_gateway.calls) == 5


class TestUninitialized:
    """Test operations before any collection exists."""

    def test_initial_state(self, coordinator):
        assert coordinator.state == CollectionState.UNINITIALIZED
        assert coordinator.configured_phases == set()

    def test_record_requires_collection(self, coordinator):
        with pytest.raises(InvalidStateError):
            coordinator.record

    def test_configure_requires_collection(self, coordinator, fake_gateway):
        with pytest.raises(InvalidStateError):
            coordinator.configure_public_mint(WHITELIST_WINDOW)

        with pytest.raises(InvalidStateError):
            coordinator.configure_whitelist_mint(WHITELIST_WINDOW, {WHITELIST_A: 1})

        assert fake_gateway.calls == []

    def test_read_requires_collection(self, coordinator):
        with pytest.raises(InvalidStateError):
            coordinator.read()


class TestUpdateAndRead:
    """Test metadata updates and reads."""

    def test_update_metadata(self, created, fake_gateway, record_file):
        before = record_file.read_bytes()
        update = MetadataUpdate(
            name="Highland Renamed",
            uri="https://example.com/highland",
            max_supply=2000,
            royalty_payee=CREATOR,
            royalty_numerator=5,
            royalty_denominator=100
        )

        created.update_metadata(update)

        entry_point, args = fake_gateway.calls[-1]
        assert entry_point == UPDATE_COLLECTION
        assert args[0] == created.record.collection_address

        view = created.read()
        assert view.name == "Highland Renamed"
        assert view.max_supply == 2000
        # Local identity keeps the creation name
        assert record_file.read_bytes() == before
        assert created.record.name == "Highland"

    def test_invalid_update_not_submitted(self, created, fake_gateway):
        update = MetadataUpdate(
            name="",
            uri="https://example.com/highland",
            max_supply=2000,
            royalty_payee=CREATOR,
            royalty_numerator=5,
            royalty_denominator=100
        )

        with pytest.raises(InvalidMetadataError):
            created.update_metadata(update)

        assert len(fake_gateway.calls) == 1

    def test_read_created_collection(self, created):
        view = created.read()

        assert view.address == created.record.collection_address
        assert view.name == "Highland"
        assert view.max_supply == 1000
        assert view.public_mint is None

    def test_existing_record_loaded(self, created, fake_gateway, record_store):
        reopened = CollectionCoordinator(fake_gateway, record_store)

        assert reopened.state == CollectionState.CREATED
        assert reopened.record == created.record
        assert reopened.read().name == "Highland"

    def test_read_missing_on_chain(self, fake_gateway, record_store, sample_record):
        record_store.save(sample_record)
        coordinator = CollectionCoordinator(fake_gateway, record_store)

        with pytest.raises(ResourceNotFoundError):
            coordinator.read()


class TestSeedGenerator:
    """Test creation seed generation."""

    def test_millisecond_timestamp(self):
        generator = SeedGenerator(clock=lambda: 1700000000.5)
        assert generator.next_seed() == "1700000000500"

    def test_strictly_increasing_with_frozen_clock(self):
        generator = SeedGenerator(clock=lambda: 1700000000.0)

        seeds = [generator.next_seed() for _ in range(3)]

        assert seeds == ["1700000000000", "1700000000001", "1700000000002"]
