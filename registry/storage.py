"""
NFT Machine Minter - Collection Record Storage

This module provides JSON-based persistence of the active collection record
with atomic replacement and timestamped backups of replaced records.
"""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from nft.exceptions import CorruptRecordError, RecordNotFoundError
from .schema import CollectionRecord


DEFAULT_RECORD_FILE = "collection.json"
BACKUP_DIR_NAME = "backups"
BACKUP_TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S_%f'


class StorageError(Exception):
    """Base storage exception."""
    pass


class JSONStorage:
    """JSON document storage with atomic replacement."""

    def __init__(self, file_path: Union[str, Path], backup_count: int = 5):
        self.file_path = Path(file_path)
        self.backup_count = backup_count
        self._lock = RLock()
        self.logger = logging.getLogger(__name__)

    def _read_file(self) -> bytes:
        """Read raw file data."""
        with open(self.file_path, 'rb') as f:
            return f.read()

    def _write_file(self, data: Dict[str, Any]) -> None:
        """Write data to file atomically."""
        json_data = json.dumps(data, indent=2, default=str).encode('utf-8')

        self.file_path.parent.mkdir(parents=True, exist_ok=True)

        # Temporary file in the same directory so the rename stays on one filesystem
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.file_path.name}.",
            suffix='.tmp',
            dir=str(self.file_path.parent)
        )
        temp_file = Path(temp_name)

        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(json_data)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_file, self.file_path)

        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StorageError(f"Failed to write {self.file_path}: {e}")

    def _backup_dir(self) -> Path:
        return self.file_path.parent / BACKUP_DIR_NAME

    def _backup_pattern(self) -> str:
        return f"{self.file_path.stem}_*{self.file_path.suffix}"

    def _create_backup(self) -> None:
        """Create timestamped backup of current file."""
        if not self.file_path.exists():
            return

        timestamp = datetime.now(timezone.utc).strftime(BACKUP_TIMESTAMP_FORMAT)
        backup_name = f"{self.file_path.stem}_{timestamp}{self.file_path.suffix}"
        backup_path = self._backup_dir() / backup_name

        backup_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            shutil.copy2(self.file_path, backup_path)
        except OSError as e:
            raise StorageError(f"Failed to back up {self.file_path}: {e}")

        self.logger.info(f"Backed up {self.file_path} to {backup_path}")
        self._cleanup_old_backups()

    def _cleanup_old_backups(self) -> None:
        """Remove old backup files beyond backup_count."""
        for backup_file in self.list_backups()[self.backup_count:]:
            try:
                backup_file.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to remove old backup {backup_file}: {e}")

    def read(self) -> Dict[str, Any]:
        """Read and deserialize data from storage."""
        with self._lock:
            try:
                data = self._read_file()
            except FileNotFoundError:
                raise RecordNotFoundError(f"No collection record at {self.file_path}")
            except OSError as e:
                raise StorageError(f"Failed to read {self.file_path}: {e}")

            try:
                document = json.loads(data.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise CorruptRecordError(f"Invalid JSON in {self.file_path}: {e}")

            if not isinstance(document, dict):
                raise CorruptRecordError(f"Expected a JSON object in {self.file_path}")

            return document

    def write(self, data: Dict[str, Any], create_backup: bool = True) -> None:
        """Write data to storage atomically."""
        with self._lock:
            if create_backup and self.backup_count > 0:
                self._create_backup()

            self._write_file(data)

    def exists(self) -> bool:
        """Check if storage file exists."""
        return self.file_path.exists()

    def list_backups(self) -> List[Path]:
        """List available backup files, newest first."""
        backup_dir = self._backup_dir()
        if not backup_dir.exists():
            return []

        backup_files = list(backup_dir.glob(self._backup_pattern()))
        backup_files.sort(key=lambda p: p.name, reverse=True)

        return backup_files

    def restore_backup(self, backup_timestamp: str) -> bool:
        """Restore from a specific backup."""
        backup_name = f"{self.file_path.stem}_{backup_timestamp}{self.file_path.suffix}"
        backup_path = self._backup_dir() / backup_name

        if not backup_path.exists():
            return False

        with self._lock:
            try:
                data = json.loads(backup_path.read_text(encoding='utf-8'))
            except (OSError, ValueError) as e:
                raise CorruptRecordError(f"Unreadable backup {backup_path}: {e}")

            self.write(data, create_backup=True)
            return True


class RecordStore:
    """Persists the single active collection record of a workspace."""

    def __init__(self, file_path: Union[str, Path] = DEFAULT_RECORD_FILE, backup_count: int = 5):
        self.json_storage = JSONStorage(file_path, backup_count=backup_count)

    @property
    def file_path(self) -> Path:
        return self.json_storage.file_path

    def load(self) -> CollectionRecord:
        """
        Load the collection record.

        Raises:
            RecordNotFoundError: No record file exists
            CorruptRecordError: The file does not hold a well-formed record
        """
        data = self.json_storage.read()

        try:
            return CollectionRecord.from_storage(data)
        except ValidationError as e:
            raise CorruptRecordError(f"Malformed collection record in {self.file_path}: {e}")

    def save(self, record: CollectionRecord) -> None:
        """Save the collection record, replacing any existing one."""
        self.json_storage.write(record.to_storage())

    def exists(self) -> bool:
        """Check whether a record file is present."""
        return self.json_storage.exists()

    def list_backups(self) -> List[str]:
        """List available backup timestamps, newest first."""
        prefix = f"{self.file_path.stem}_"
        return [backup.stem[len(prefix):] for backup in self.json_storage.list_backups()]

    def restore_backup(self, timestamp: str) -> bool:
        """Restore a replaced collection record from backup."""
        return self.json_storage.restore_backup(timestamp)

    def get_storage_info(self) -> Dict[str, Any]:
        """Get storage information."""
        return {
            'file_path': str(self.file_path),
            'exists': self.exists(),
            'size_bytes': self.file_path.stat().st_size if self.exists() else 0,
            'backup_count': len(self.json_storage.list_backups())
        }
