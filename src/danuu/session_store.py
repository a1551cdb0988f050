"""Persistent session credentials.

The neonize device store (``neonize.db``) holds the actual keys and is
written by the library itself. Next to it we keep ``session.json`` with
the paired identity so startup logs and the ``pair`` command can tell
whether this bot is still linked. A logout removes it.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from danuu.errors import ConfigError
from danuu.logger import logger
from danuu.types import SessionCredentials
from danuu.utils import write_json_atomic

AUTH_DB_NAME = "neonize.db"
SESSION_FILE_NAME = "session.json"


class SessionStore:
    def __init__(self, store_dir: Path) -> None:
        self.store_dir = store_dir

    @property
    def auth_db_path(self) -> Path:
        return self.store_dir / AUTH_DB_NAME

    @property
    def session_path(self) -> Path:
        return self.store_dir / SESSION_FILE_NAME

    def is_paired(self) -> bool:
        """A device store alone is not enough: it survives a logout."""
        return self.auth_db_path.exists() and self.session_path.exists()

    def load(self) -> SessionCredentials:
        """Return the current credentials. Missing state means a fresh pairing."""
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Session store {self.store_dir} is not writable: {exc}") from exc

        identity: str | None = None
        if self.session_path.exists():
            try:
                identity = json.loads(self.session_path.read_text()).get("identity")
            except (OSError, ValueError, AttributeError) as exc:
                logger.warning(
                    "Ignoring unreadable session file",
                    path=str(self.session_path),
                    err=str(exc),
                )
        return SessionCredentials(auth_db_path=self.auth_db_path, identity=identity)

    def persist(self, identity: str) -> None:
        """Record the paired identity. Called on every credential change."""
        write_json_atomic(
            self.session_path,
            {"identity": identity, "updated_at": datetime.now(UTC).isoformat()},
            indent=2,
        )
        logger.debug("Session identity persisted", identity=identity)

    def forget_identity(self) -> None:
        """Mark the device as unlinked after a logout. The device store stays."""
        self.session_path.unlink(missing_ok=True)
        logger.info("Session identity forgotten", path=str(self.session_path))

    def clear(self) -> None:
        """Forget the linked device so the next start requires pairing again."""
        # The device store is SQLite; take its -wal/-shm companions along.
        for path in [*self.store_dir.glob(f"{AUTH_DB_NAME}*"), self.session_path]:
            path.unlink(missing_ok=True)
        logger.info("Session store cleared", store_dir=str(self.store_dir))
