"""
NFT Machine Minter - Collection Lifecycle Coordinator

This module sequences collection creation, mint configuration, metadata
updates and state reads against the minting machine, and keeps the local
collection record consistent with what the chain has accepted.

Every state-changing operation runs as validate -> submit -> await terminal
status -> persist, holding a lock so that at most one submission per
coordinator is unresolved at any time.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence, Set, Tuple, Union

from crypto.exceptions import InvalidAddressError
from crypto.keys import derive_collection_address, normalize_address
from registry.schema import CollectionRecord
from registry.storage import RecordStore, StorageError
from .collections import (
    COLLECTION_RESOURCE,
    Allowlist,
    CollectionQuery,
    CollectionSettings,
    CollectionState,
    CollectionView,
    MetadataUpdate,
    MintPhase,
    MintWindow,
)
from .exceptions import (
    AlreadyInitializedError,
    CorruptRecordError,
    InvalidStateError,
    PersistAfterSuccessError,
    RecordNotFoundError,
)


CREATE_COLLECTION = "create_collection"
UPDATE_COLLECTION = "update_collection"
SET_MINT_PUBLIC = "set_mint_public"
SET_MINT_WHITELIST = "set_mint_whitelist"

AllowlistInput = Union[Allowlist, Mapping[str, int], Sequence[Tuple[str, int]]]


class SeedGenerator:
    """Millisecond timestamp seeds, strictly increasing within a process."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_seed(self) -> str:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)


_default_seeds = SeedGenerator()


class CollectionCoordinator:
    """
    Tracks one collection's identity across non-atomic on-chain operations.
    """

    def __init__(
        self,
        gateway: Any,
        store: RecordStore,
        seed_generator: Optional[SeedGenerator] = None
    ):
        """
        Initialize coordinator.

        Args:
            gateway: Chain gateway exposing `submit`, `read_resource`,
                `account_address` and `machine_address`
            store: Local collection record store
            seed_generator: Source of creation seeds (process-wide default if None)
        """
        self.gateway = gateway
        self.store = store
        self.seed_generator = seed_generator or _default_seeds
        self.logger = logging.getLogger(__name__)

        self._submit_lock = threading.Lock()
        self._record: Optional[CollectionRecord] = None
        self._configured_phases: Set[MintPhase] = set()
        self._state = CollectionState.UNINITIALIZED

        try:
            self._record = self.store.load()
            self._state = CollectionState.CREATED
            self.logger.debug(f"Tracking collection {self._record.name} at {self._record.collection_address}")
        except RecordNotFoundError:
            self.logger.debug(f"No collection record at {self.store.file_path}")
        except CorruptRecordError as e:
            self.logger.warning(f"Ignoring unreadable collection record: {e}")

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def configured_phases(self) -> Set[MintPhase]:
        return set(self._configured_phases)

    @property
    def record(self) -> CollectionRecord:
        """The tracked collection record."""
        return self._require_record()

    def _require_record(self) -> CollectionRecord:
        if self._state == CollectionState.UNINITIALIZED or self._record is None:
            raise InvalidStateError("No collection has been created in this workspace")
        return self._record

    def _has_existing_record(self) -> bool:
        try:
            self.store.load()
            return True
        except RecordNotFoundError:
            return False
        except CorruptRecordError:
            # An unreadable record still occupies the slot
            return True

    def create(
        self,
        settings: CollectionSettings,
        seed: Optional[str] = None,
        replace: bool = False
    ) -> CollectionRecord:
        """
        Create a collection on chain and make it the tracked collection.

        Args:
            settings: Collection creation settings
            seed: Creation seed (generated if None)
            replace: Allow replacing an existing local record

        Returns:
            The persisted collection record

        Raises:
            AlreadyInitializedError: A record exists and replace is False
            InvalidMetadataError: Settings fail local validation
            SubmissionRejectedError / ExecutionFailedError: The chain refused the call
            PersistAfterSuccessError: Created on chain but the record was not saved
        """
        settings.validate()

        with self._submit_lock:
            if not replace and self._record is not None:
                raise AlreadyInitializedError(
                    f"Collection {self._record.collection_address} is already tracked; "
                    f"pass replace=True to track a new collection"
                )
            if not replace and self._has_existing_record():
                raise AlreadyInitializedError(
                    f"A collection record already exists at {self.store.file_path}; "
                    f"pass replace=True to track a new collection"
                )

            seed = seed or self.seed_generator.next_seed()
            creator = normalize_address(self.gateway.account_address)

            receipt = self.gateway.submit(CREATE_COLLECTION, settings.to_arguments(seed))

            record = CollectionRecord(
                name=settings.display_name,
                seed=seed,
                creator_address=creator,
                machine_address=self.gateway.machine_address,
                collection_address=self._collection_address(receipt, creator, settings.display_name, seed),
                created_at=datetime.now(timezone.utc),
                transaction_hash=getattr(receipt, "hash", None) or None
            )

            self._record = record
            self._configured_phases = set()
            self._state = CollectionState.CREATED

            try:
                self.store.save(record)
            except StorageError as e:
                self.logger.error(f"Collection {record.collection_address} created but not saved: {e}")
                raise PersistAfterSuccessError(record, receipt, e)

            self.logger.info(f"Created collection {record.name} at {record.collection_address}")
            return record

    def _collection_address(self, receipt: Any, creator: str, name: str, seed: str) -> str:
        address = None
        if hasattr(receipt, "find_resource_address"):
            address = receipt.find_resource_address(COLLECTION_RESOURCE)
        if address is None and hasattr(receipt, "find_event_address"):
            address = receipt.find_event_address("collection", "collection_address", "collection_obj")
        if address:
            try:
                return normalize_address(address)
            except InvalidAddressError:
                self.logger.warning(f"Ignoring malformed collection address in receipt: {address!r}")

        derived = derive_collection_address(creator, name, seed)
        self.logger.debug(f"Collection address not in receipt, derived {derived}")
        return derived

    def retry_persist(self, record: CollectionRecord) -> None:
        """
        Save a record whose creation transaction already succeeded.

        Use with the record carried by PersistAfterSuccessError; nothing is
        resubmitted.
        """
        with self._submit_lock:
            self.store.save(record)
            self._record = record
            if self._state == CollectionState.UNINITIALIZED:
                self._state = CollectionState.CREATED
            self.logger.info(f"Saved collection record for {record.collection_address}")

    def configure_public_mint(self, window: MintWindow) -> None:
        """
        Schedule or replace the public mint window.

        Raises:
            InvalidStateError: No collection is tracked
            InvalidWindowError: Window fails local validation
        """
        record = self._require_record()
        window.validate()

        with self._submit_lock:
            self.gateway.submit(SET_MINT_PUBLIC, [
                record.collection_address,
                window.start_time,
                window.end_time,
                window.price_subunits,
            ])
            self._configured_phases.add(MintPhase.PUBLIC)
            self._state = CollectionState.PUBLIC_MINT_CONFIGURED

        self.logger.info(
            f"Public mint for {record.name}: {window.start_time}-{window.end_time} "
            f"at {window.price_subunits} octas"
        )

    def configure_whitelist_mint(self, window: MintWindow, allowlist: AllowlistInput) -> None:
        """
        Schedule or replace the allow-listed mint window.

        Args:
            window: Mint window
            allowlist: Allowlist, or an account to allowance mapping or pair sequence

        Raises:
            InvalidStateError: No collection is tracked
            InvalidWindowError: Window fails local validation
            InvalidAllowlistError: Empty allowlist, duplicate accounts or bad allowances
        """
        record = self._require_record()
        window.validate()

        if not isinstance(allowlist, Allowlist):
            allowlist = Allowlist.from_mapping(allowlist) if isinstance(allowlist, Mapping) else Allowlist(allowlist)
        allowlist.validate()

        with self._submit_lock:
            self.gateway.submit(SET_MINT_WHITELIST, [
                record.collection_address,
                window.price_subunits,
                window.start_time,
                window.end_time,
                allowlist.accounts(),
                allowlist.allowances(),
            ])
            self._configured_phases.add(MintPhase.WHITELIST)
            self._state = CollectionState.WHITELIST_MINT_CONFIGURED

        self.logger.info(
            f"Whitelist mint for {record.name}: {len(allowlist)} accounts, "
            f"{window.start_time}-{window.end_time} at {window.price_subunits} octas"
        )

    def update_metadata(self, update: MetadataUpdate) -> None:
        """
        Change the collection's on-chain display metadata.

        The local record keeps its original name, seed and address.
        """
        record = self._require_record()
        update.validate()

        with self._submit_lock:
            self.gateway.submit(UPDATE_COLLECTION, update.to_arguments(record.collection_address))

        self.logger.info(f"Updated metadata of {record.collection_address}")

    def read(self) -> CollectionView:
        """
        Read the tracked collection from chain.

        Raises:
            InvalidStateError: No collection is tracked
            ResourceNotFoundError: The chain has no such collection
        """
        record = self._require_record()
        return self.gateway.read_resource(CollectionQuery.COLLECTION, record.collection_address)
