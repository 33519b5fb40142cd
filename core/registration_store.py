"""
Registration Store Module

This module persists enrolled faces for the face unlock system.

Each registration is stored as:
- .npz file: The SFace feature vector of the reference image plus a JSON
  metadata blob (alias, threshold, linked username)
- SQLite database: One row per registration for listing and lookup

Saving is all-or-nothing: the .npz is written to a temporary file and renamed
into place, and removed again if the database insert fails, so a failed save
never leaves a partial record behind.

Usage:
    from core.registration_store import RegistrationStore, FaceRegistration

    store = RegistrationStore(storage_dir="storage/faces", db_path="storage/registrations.sqlite")
    file_name = store.save_registration(
        FaceRegistration(alias="Office", username="alice", threshold=60, feature=feature)
    )
    registrations = store.list_registrations()
"""

import json
import logging
import os
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from core.errors import StorageError

# Setup logging
logger = logging.getLogger(__name__)

FILE_SUFFIX = ".npz"


@dataclass
class FaceRegistration:
    """
    An enrolled face.

    Attributes:
        alias: Optional display name chosen by the user (may be empty).
        username: Account the face unlocks.
        threshold: Confidence percentage a live face must exceed to match.
        feature: SFace feature vector of the reference image, shape (1, D) float32.
        file_name: Storage file name, assigned on save.
        enrolled_at: ISO timestamp, assigned on save.
    """

    alias: str
    username: str
    threshold: int
    feature: np.ndarray
    file_name: Optional[str] = None
    enrolled_at: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.feature.dtype != np.float32:
            self.feature = self.feature.astype(np.float32)
        if self.feature.ndim == 1:
            self.feature = self.feature.reshape(1, -1)

    @property
    def feature_dim(self) -> int:
        return int(self.feature.shape[1])


def generate_file_name() -> str:
    """Generate a unique registration file name ("<uuid4>.npz")."""
    return f"{uuid.uuid4()}{FILE_SUFFIX}"


class RegistrationStore:
    """
    Manages persistence of face registrations.

    The store is used from worker threads (the local backend runs blocking
    calls through asyncio.to_thread), so the SQLite connection is shared
    across threads and guarded by a lock.

    Attributes:
        storage_dir: Directory where .npz files are stored.
        db_path: Path to the SQLite database file.
    """

    def __init__(self, storage_dir: str, db_path: str):
        self.storage_dir = Path(storage_dir)
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

        # Ensure storage directory exists
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

        logger.info(f"RegistrationStore initialized: storage={self.storage_dir}, db={self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self) -> None:
        """Create the registrations table if it doesn't exist."""
        with self._lock:
            conn = self._get_connection()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS registrations (
                    file_name TEXT PRIMARY KEY,
                    alias TEXT NOT NULL DEFAULT '',
                    username TEXT NOT NULL,
                    threshold INTEGER NOT NULL,
                    feature_dim INTEGER NOT NULL,
                    enrolled_at TIMESTAMP NOT NULL
                )
            """)
            conn.commit()
        logger.debug("Database schema initialized")

    def _get_path(self, file_name: str) -> Path:
        # Only bare file names are accepted, never paths
        if Path(file_name).name != file_name or not file_name.endswith(FILE_SUFFIX):
            raise StorageError(f"Invalid registration file name: {file_name!r}")
        return self.storage_dir / file_name

    def save_registration(self, registration: FaceRegistration) -> str:
        """
        Save a registration to disk and index it in the database.

        Args:
            registration: The registration to save. ``file_name`` and
                          ``enrolled_at`` are assigned here.

        Returns:
            The file name of the saved registration.

        Raises:
            StorageError: If the file or the database row cannot be written.
                          Nothing is left behind in that case.
        """
        file_name = generate_file_name()
        enrolled_at = datetime.now().isoformat()
        path = self._get_path(file_name)
        tmp_path = path.with_name(path.name + ".tmp")

        metadata = dict(registration.metadata)
        metadata.update({
            "alias": registration.alias,
            "username": registration.username,
            "threshold": registration.threshold,
            "enrolled_at": enrolled_at,
        })

        try:
            with open(tmp_path, "wb") as f:
                np.savez_compressed(f, feature=registration.feature, metadata=json.dumps(metadata))
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write registration file: {e}") from e

        try:
            with self._lock:
                conn = self._get_connection()
                conn.execute("""
                    INSERT INTO registrations
                        (file_name, alias, username, threshold, feature_dim, enrolled_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    file_name,
                    registration.alias,
                    registration.username,
                    registration.threshold,
                    registration.feature_dim,
                    enrolled_at,
                ))
                conn.commit()
        except sqlite3.Error as e:
            path.unlink(missing_ok=True)
            raise StorageError(f"Failed to index registration: {e}") from e

        registration.file_name = file_name
        registration.enrolled_at = enrolled_at
        logger.info(
            f"Saved registration {file_name} (alias={registration.alias!r}, "
            f"username={registration.username!r}, threshold={registration.threshold})"
        )
        return file_name

    def load_registration(self, file_name: str) -> Optional[FaceRegistration]:
        """
        Load a single registration.

        Returns:
            FaceRegistration, or None if it doesn't exist or is unreadable.
        """
        path = self._get_path(file_name)
        with self._lock:
            row = self._get_connection().execute(
                "SELECT file_name FROM registrations WHERE file_name = ?", (file_name,)
            ).fetchone()

        if row is None:
            return None

        if not path.exists():
            logger.warning(f"Registration file missing: {path}")
            return None

        try:
            with np.load(str(path), allow_pickle=False) as data:
                metadata = json.loads(str(data["metadata"]))
                feature = data["feature"]
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load registration {file_name}: {e}")
            return None

        return FaceRegistration(
            alias=metadata.get("alias", ""),
            username=metadata.get("username", ""),
            threshold=int(metadata.get("threshold", 0)),
            feature=feature,
            file_name=file_name,
            enrolled_at=metadata.get("enrolled_at"),
            metadata=metadata,
        )

    def delete_registration(self, file_name: str) -> bool:
        """
        Delete a registration from both filesystem and database.

        Returns:
            True if deleted, False if it doesn't exist.
        """
        path = self._get_path(file_name)
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute("DELETE FROM registrations WHERE file_name = ?", (file_name,))
            conn.commit()
            deleted = cursor.rowcount > 0

        if not deleted:
            logger.warning(f"Cannot delete: registration {file_name} not found")
            return False

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete registration file {path}: {e}")

        logger.info(f"Deleted registration {file_name}")
        return True

    def list_registrations(self) -> List[Dict[str, Any]]:
        """
        List all registrations, newest first.

        Returns:
            List of dictionaries with file_name, alias, username, threshold,
            feature_dim and enrolled_at.
        """
        with self._lock:
            rows = self._get_connection().execute("""
                SELECT file_name, alias, username, threshold, feature_dim, enrolled_at
                FROM registrations
                ORDER BY enrolled_at DESC
            """).fetchall()

        return [dict(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT COUNT(*) AS count FROM registrations"
            ).fetchone()
        return int(row["count"])

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Database connection closed")


# Singleton instance for the store
_store_instance: Optional[RegistrationStore] = None


def get_registration_store(
    storage_dir: Optional[str] = None,
    db_path: Optional[str] = None,
) -> RegistrationStore:
    """
    Get or create the singleton RegistrationStore instance.

    Args:
        storage_dir: Registration directory. If None, uses value from config.
        db_path: SQLite database path. If None, uses value from config.

    Returns:
        The shared RegistrationStore instance.
    """
    global _store_instance

    if _store_instance is None:
        if storage_dir is None or db_path is None:
            from core.config import get_storage_config, resolve_path

            storage_config = get_storage_config()
            storage_dir = storage_dir or str(resolve_path(storage_config["registrations_dir"]))
            db_path = db_path or str(resolve_path(storage_config["db_path"]))

        _store_instance = RegistrationStore(storage_dir=storage_dir, db_path=db_path)

    return _store_instance
