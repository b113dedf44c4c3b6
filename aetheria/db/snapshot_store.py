"""Snapshot Store: JSON persistence for the single local session.

One document under a fixed storage key. Durability is best-effort: a failed
write is logged and gameplay continues, and an unreadable document is
treated as if there were none.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from ..core.session import Session, Snapshot

logger = logging.getLogger(__name__)

STORAGE_KEY = "aetheria_session_v1"


class SnapshotStore:
    """Persists sanitized Session snapshots to a JSON file.

    The file lives at ``<data_dir>/<STORAGE_KEY>.json``. There is no schema
    migration: a document that does not validate is discarded on load.
    """

    def __init__(self, data_dir: Path | None = None, key: str = STORAGE_KEY):
        """Initialize the snapshot store.

        Args:
            data_dir: Directory for the snapshot. Defaults to Config.DATA_DIR.
            key: Storage key, used as the file stem.
        """
        if data_dir is None:
            from ..config import Config
            data_dir = Config.DATA_DIR
        self._path = Path(data_dir) / f"{key}.json"

    @property
    def path(self) -> Path:
        return self._path

    def save(self, session: Session) -> bool:
        """Write the session snapshot.

        Args:
            session: The live Session; volatile fields and inline images are
                stripped before writing.

        Returns:
            True if written, False if the write failed (already logged).
        """
        try:
            data = json.dumps(session.to_dict(), ensure_ascii=False)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_path, self._path)
            logger.debug(f"Snapshot saved ({len(data)} bytes, {len(session.history)} past scenes)")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not save snapshot: {e}")
            return False

    def load(self) -> Snapshot | None:
        """Load the last snapshot.

        Returns:
            Snapshot if a valid one exists, None otherwise (including when the
            document is corrupt or schema-incompatible).
        """
        if not self._path.exists():
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Snapshot.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError, UnicodeDecodeError) as e:
            logger.warning(f"Discarding unreadable snapshot {self._path.name}: {e}")
            return None

    def load_session(self) -> Session | None:
        """Load the last snapshot as a Session with quiescent volatile flags."""
        snapshot = self.load()
        if snapshot is None:
            return None
        return Session.from_snapshot(snapshot)

    def clear(self) -> bool:
        """Delete the snapshot.

        Returns:
            True if a snapshot was deleted, False if none existed or the
            delete failed.
        """
        try:
            self._path.unlink()
            logger.info("Snapshot cleared")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not clear snapshot: {e}")
            return False
