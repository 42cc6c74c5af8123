"""SQLite store for listings the user never wants to see again."""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from property_finder.config.settings import EXCLUSIONS_DB_PATH
from property_finder.models.listing import Listing

Subscriber = Callable[[list[Listing]], None]


class SQLiteExclusionStore:
    """Durable exclusion list keyed by listing id.

    Observers registered with `subscribe` belong to this instance and are
    called with the full list after every change.
    """

    def __init__(self, db_path: Path | str = EXCLUSIONS_DB_PATH):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests)
        """
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._subscribers: list[Subscriber] = []
        self._create_tables()

    def _create_tables(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS exclusions (
                id TEXT PRIMARY KEY,
                excluded_at TEXT NOT NULL,
                listing_data TEXT NOT NULL
            )
        """)
        self.conn.commit()

    def all(self) -> list[Listing]:
        """Return excluded listings, most recently excluded first."""
        rows = self.conn.execute(
            "SELECT listing_data FROM exclusions ORDER BY excluded_at DESC, rowid DESC"
        ).fetchall()
        return [Listing.model_validate_json(row["listing_data"]) for row in rows]

    def add(self, listing: Listing) -> None:
        """Exclude a listing. Commute times are not stored."""
        data = listing.model_dump_json(exclude={"commute_times"})
        self.conn.execute(
            "INSERT OR REPLACE INTO exclusions (id, excluded_at, listing_data) VALUES (?, ?, ?)",
            (listing.id, datetime.now(timezone.utc).isoformat(), data),
        )
        self.conn.commit()
        self._notify()

    def remove(self, listing_id: str) -> bool:
        """Remove an exclusion. Returns True if something was deleted."""
        cursor = self.conn.execute("DELETE FROM exclusions WHERE id = ?", (listing_id,))
        self.conn.commit()
        self._notify()
        return cursor.rowcount > 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer; it is called right away with the current list.

        Returns a function that unsubscribes the observer.
        """
        self._subscribers.append(callback)
        callback(self.all())

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        exclusions = self.all()
        for callback in list(self._subscribers):
            callback(exclusions)

    def __len__(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM exclusions").fetchone()[0]

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
