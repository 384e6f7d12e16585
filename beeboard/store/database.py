"""SQLite-backed snapshot store shared by the API and display processes."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pydantic import ValidationError

from beeboard.beeminder.errors import PersistenceUnavailable
from beeboard.beeminder.models import Goal

from .models import Credentials, Snapshot

logger = logging.getLogger(__name__)

GOALS_KEY = "cached_goals"
LAST_UPDATE_KEY = "last_update"
USERNAME_KEY = "username"
AUTH_TOKEN_KEY = "auth_token"


class SnapshotStore:
    """
    Key/value store for the cached goal snapshot and Beeminder credentials.

    Every call opens its own connection, so several processes can share one
    database file. SQLite serializes the writes; the last writer wins.
    """

    def __init__(self, db_path: str = "data/beeboard.db", timeout: float = 5.0):
        """
        Initialize store.

        Args:
            db_path: Path to the SQLite file
            timeout: Seconds to wait for another process's write lock
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._init_db()

    def _init_db(self):
        """Create the entries table if it doesn't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS entries (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
        except (OSError, PersistenceUnavailable) as e:
            # Reads will degrade to "no cache" until the file becomes usable
            logger.warning(f"Snapshot store at {self.db_path} is unavailable: {e}")
            return
        logger.info(f"Snapshot store initialized at {self.db_path}")

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection and run the block in a single transaction."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise PersistenceUnavailable(str(e)) from e

        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise PersistenceUnavailable(str(e)) from e
        finally:
            conn.close()

    def _read(self, *keys: str) -> dict[str, str]:
        placeholders = ", ".join("?" for _ in keys)
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM entries WHERE key IN ({placeholders})",
                keys,
            ).fetchall()
        return {key: value for key, value in rows}

    # Snapshot

    def put_snapshot(self, goals: Iterable[Goal], now: Optional[datetime] = None):
        """
        Replace the cached goals and stamp the update time.

        Both entries are written in one transaction, so a failure leaves the
        previous snapshot in place.

        Raises:
            PersistenceUnavailable: if the database cannot be written
        """
        now = now or datetime.now(timezone.utc)
        payload = json.dumps([goal.to_wire() for goal in goals])

        with self._connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)",
                [(GOALS_KEY, payload), (LAST_UPDATE_KEY, now.isoformat())],
            )
        logger.debug(f"Stored snapshot at {now.isoformat()}")

    def get_snapshot(self) -> Optional[Snapshot]:
        """
        Load the most recently stored snapshot.

        Returns:
            Snapshot, or None if nothing was stored, the stored data is
            malformed, or the database can't be read
        """
        try:
            entries = self._read(GOALS_KEY, LAST_UPDATE_KEY)
        except PersistenceUnavailable as e:
            logger.warning(f"Could not read cached goals: {e}")
            return None

        raw_goals = entries.get(GOALS_KEY)
        if raw_goals is None:
            return None

        try:
            data = json.loads(raw_goals)
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            goals = [Goal.model_validate(item) for item in data]
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring malformed cached goals: {e}")
            return None

        return Snapshot(
            goals=goals,
            last_update=self._parse_instant(entries.get(LAST_UPDATE_KEY)),
        )

    def last_update(self) -> Optional[datetime]:
        """When the snapshot was last replaced, if ever."""
        try:
            entries = self._read(LAST_UPDATE_KEY)
        except PersistenceUnavailable as e:
            logger.warning(f"Could not read last update time: {e}")
            return None
        return self._parse_instant(entries.get(LAST_UPDATE_KEY))

    def _parse_instant(self, value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Ignoring malformed last update time: {value!r}")
            return None

    # Credentials

    def put_credentials(self, credentials: Credentials):
        """Store the Beeminder username and auth token."""
        with self._connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO entries (key, value) VALUES (?, ?)",
                [
                    (USERNAME_KEY, credentials.username),
                    (AUTH_TOKEN_KEY, credentials.auth_token),
                ],
            )
        logger.info(f"Stored credentials for {credentials.username}")

    def get_credentials(self) -> Optional[Credentials]:
        """Get stored credentials, or None unless both parts are present."""
        try:
            entries = self._read(USERNAME_KEY, AUTH_TOKEN_KEY)
        except PersistenceUnavailable as e:
            logger.warning(f"Could not read credentials: {e}")
            return None

        username = entries.get(USERNAME_KEY)
        auth_token = entries.get(AUTH_TOKEN_KEY)
        if not username or not auth_token:
            return None
        return Credentials(username=username, auth_token=auth_token)

    def clear_all(self):
        """Forget the cached snapshot and the credentials."""
        with self._connection() as conn:
            conn.execute(
                "DELETE FROM entries WHERE key IN (?, ?, ?, ?)",
                (GOALS_KEY, LAST_UPDATE_KEY, USERNAME_KEY, AUTH_TOKEN_KEY),
            )
        logger.info("Cleared cached goals and credentials")
