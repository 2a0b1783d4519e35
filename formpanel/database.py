"""SQLite-backed record store for registrations."""
from __future__ import annotations

import logging
import secrets
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .models import Conflict, Failed, NotFound, RecordPage, Saved, UserRecord, WriteOutcome
from .validation import normalize_created_at

logger = logging.getLogger("formpanel.store")

_COLUMNS = {
    "name": "name",
    "email": "email",
    "dob": "dob",
    "contact": "contact",
    "state": "state",
    "country": "country",
    "validation_status": "validation_status",
}

# Completed years between dob and :today.
_AGE_EXPRESSION = (
    "(CAST(strftime('%Y', :today) AS INTEGER) - CAST(strftime('%Y', dob) AS INTEGER)"
    " - (strftime('%m-%d', :today) < strftime('%m-%d', dob)))"
)


class StoreError(RuntimeError):
    """Raised when the record store cannot complete an operation."""


class StoreUnavailableError(StoreError):
    """Raised when no connection to the record store could be obtained."""


def _serialize_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _serialize_value(column: str, value: object) -> object:
    if column == "dob" and isinstance(value, date):
        return value.isoformat()
    return value


class RecordStore:
    """Persist registration records in SQLite.

    Connections are opened per operation and capped at ``pool_size`` concurrent
    connections. Waiting longer than ``selection_timeout`` for a free slot raises
    :class:`StoreUnavailableError`.
    """

    def __init__(
        self,
        path: Path,
        *,
        pool_size: int = 10,
        connect_timeout: float = 30.0,
        selection_timeout: float = 30.0,
    ) -> None:
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self._path = Path(path)
        self._connect_timeout = connect_timeout
        self._selection_timeout = selection_timeout
        self._slots = threading.BoundedSemaphore(pool_size)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if not self._slots.acquire(timeout=self._selection_timeout):
            raise StoreUnavailableError(
                f"No store connection became available within {self._selection_timeout} seconds"
            )
        try:
            conn = sqlite3.connect(self._path, timeout=self._connect_timeout, check_same_thread=False)
            try:
                conn.row_factory = sqlite3.Row
                with conn:
                    yield conn
            finally:
                conn.close()
        finally:
            self._slots.release()

    def initialize(self) -> None:
        """Create the records table if it does not already exist."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    dob TEXT NOT NULL,
                    contact TEXT NOT NULL,
                    state TEXT NOT NULL,
                    country TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    validation_status TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
                """
            )

    def connect_with_retry(
        self,
        delay: float = 5.0,
        *,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the store, retrying on a fixed delay until it succeeds.

        ``max_attempts`` of ``None`` retries forever.
        """

        attempt = 0
        while True:
            attempt += 1
            try:
                self.initialize()
            except (sqlite3.Error, OSError, StoreError) as exc:
                logger.error("Record store connection failed: %s", exc)
                if max_attempts is not None and attempt >= max_attempts:
                    raise StoreUnavailableError(
                        f"Could not connect to the record store after {attempt} attempts"
                    ) from exc
                logger.info("Retrying connection in %s seconds...", delay)
                sleep(delay)
                continue
            logger.info("Connected to record store at %s", self._path)
            return

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(
        self,
        fields: Mapping[str, object],
        *,
        validation_status: Optional[str] = None,
        created_at: object = None,
    ) -> WriteOutcome:
        """Insert a normalised record and return the tagged outcome."""

        record_id = secrets.token_hex(12)
        timestamp = normalize_created_at(created_at)
        logger.debug("Saving record %s <%s>", fields.get("name"), fields.get("email"))
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO users (
                        id, name, email, dob, contact, state, country, created_at, validation_status
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record_id,
                        fields.get("name"),
                        fields.get("email"),
                        _serialize_value("dob", fields.get("dob")),
                        fields.get("contact"),
                        fields.get("state"),
                        fields.get("country"),
                        _serialize_datetime(timestamp),
                        validation_status,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            return self._integrity_outcome(exc)
        except (sqlite3.Error, StoreError) as exc:
            logger.error("Error saving record: %s", exc)
            return Failed(str(exc))

        record = self.get(record_id)
        if record is None:
            return Failed("Record disappeared after insert")
        return Saved(record)

    def update(self, record_id: str, changes: Mapping[str, object]) -> WriteOutcome:
        """Replace the provided fields of an existing record."""

        assignments: List[str] = []
        params: List[object] = []
        for key, value in changes.items():
            column = _COLUMNS.get(key)
            if column is None:
                raise ValueError(f"Unknown record field '{key}'")
            assignments.append(f"{column} = ?")
            params.append(_serialize_value(column, value))

        try:
            if assignments:
                with self._connect() as conn:
                    cursor = conn.execute(
                        f"UPDATE users SET {', '.join(assignments)} WHERE id = ?",
                        (*params, record_id),
                    )
                if cursor.rowcount == 0:
                    return NotFound()
            record = self.get(record_id)
        except sqlite3.IntegrityError as exc:
            return self._integrity_outcome(exc)
        except (sqlite3.Error, StoreError) as exc:
            logger.error("Error updating record %s: %s", record_id, exc)
            return Failed(str(exc))

        if record is None:
            return NotFound()
        return Saved(record)

    def delete(self, record_id: str) -> bool:
        """Remove one record; return ``False`` when it did not exist."""

        with self._guard("delete record"):
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM users WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    def delete_all(self) -> int:
        with self._guard("delete all records"):
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM users")
        return cursor.rowcount

    @staticmethod
    def _integrity_outcome(exc: sqlite3.IntegrityError) -> WriteOutcome:
        message = str(exc)
        if "UNIQUE" in message and "email" in message:
            logger.warning("Duplicate email rejected: %s", message)
            return Conflict(field="email", message="Email already exists")
        logger.error("Record constraint violated: %s", message)
        return Failed(message)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except StoreError:
            raise
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to {action}: {exc}") from exc

    def get(self, record_id: str) -> Optional[UserRecord]:
        with self._guard("fetch record"):
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def count(self, search: Optional[str] = None) -> int:
        where, params = self._search_clause(search)
        with self._guard("count records"):
            with self._connect() as conn:
                row = conn.execute(f"SELECT COUNT(*) AS total FROM users{where}", params).fetchone()
        return int(row["total"])

    def list_page(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> RecordPage:
        """Return records in insertion order, optionally filtered by name."""

        page = max(1, page)
        limit = max(1, limit)
        offset = (page - 1) * limit
        where, params = self._search_clause(search)
        rows: List[sqlite3.Row] = []
        with self._guard("list records"):
            with self._connect() as conn:
                total = conn.execute(f"SELECT COUNT(*) AS total FROM users{where}", params).fetchone()["total"]
                # SQLite binds 64-bit integers only; pages past the end are empty.
                if offset < total:
                    rows = conn.execute(
                        f"SELECT * FROM users{where} ORDER BY rowid LIMIT ? OFFSET ?",
                        (*params, min(limit, total), offset),
                    ).fetchall()
        return RecordPage(
            records=[self._row_to_record(row) for row in rows],
            page=page,
            limit=limit,
            total=int(total),
        )

    def list_all(self) -> List[UserRecord]:
        with self._guard("list records"):
            with self._connect() as conn:
                rows = conn.execute("SELECT * FROM users ORDER BY rowid").fetchall()
        return [self._row_to_record(row) for row in rows]

    def recent(self, limit: int = 5) -> List[UserRecord]:
        with self._guard("list recent records"):
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM users ORDER BY created_at DESC, rowid DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _search_clause(search: Optional[str]) -> Tuple[str, Tuple[object, ...]]:
        term = (search or "").strip()
        if not term:
            return "", ()
        return " WHERE instr(lower(name), lower(?)) > 0", (term,)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    def count_by_year(self) -> List[Tuple[str, int]]:
        """Records per calendar year of ``created_at``, oldest year first."""

        with self._guard("aggregate by year"):
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT substr(created_at, 1, 4) AS year, COUNT(*) AS total
                    FROM users
                    WHERE created_at IS NOT NULL
                    GROUP BY year
                    ORDER BY year ASC
                    """
                ).fetchall()
        return [(row["year"], int(row["total"])) for row in rows]

    def count_by_country(self, unknown_label: str = "Unknown") -> List[Tuple[str, int]]:
        """Records per country, most common first."""

        with self._guard("aggregate by country"):
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT COALESCE(NULLIF(TRIM(country), ''), ?) AS label, COUNT(*) AS total
                    FROM users
                    GROUP BY label
                    ORDER BY total DESC, label ASC
                    """,
                    (unknown_label,),
                ).fetchall()
        return [(row["label"], int(row["total"])) for row in rows]

    def count_by_state(self, country: str, *, limit: int = 5) -> List[Tuple[str, int]]:
        """The ``limit`` most common states within ``country``."""

        with self._guard("aggregate by state"):
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT TRIM(state) AS label, COUNT(*) AS total
                    FROM users
                    WHERE TRIM(country) = ? AND state IS NOT NULL AND TRIM(state) != ''
                    GROUP BY label
                    ORDER BY total DESC, label ASC
                    LIMIT ?
                    """,
                    (country, limit),
                ).fetchall()
        return [(row["label"], int(row["total"])) for row in rows]

    def count_by_age_bucket(
        self,
        boundaries: Sequence[int],
        *,
        today: date,
    ) -> List[Tuple[Optional[int], int]]:
        """Bucket ages (completed years on ``today``) by ``boundaries``.

        Each result is keyed by the lower bound of its bucket, or ``None`` for
        ages outside ``[boundaries[0], boundaries[-1])``. Empty buckets are
        omitted and the overflow bucket sorts last.
        """

        if len(boundaries) < 2:
            raise ValueError("At least two bucket boundaries are required")

        cases: List[str] = []
        params: Dict[str, object] = {"today": today.isoformat()}
        for index, (lower, upper) in enumerate(zip(boundaries, boundaries[1:])):
            cases.append(f"WHEN age >= :lo{index} AND age < :hi{index} THEN :lo{index}")
            params[f"lo{index}"] = lower
            params[f"hi{index}"] = upper

        query = f"""
            SELECT bucket, COUNT(*) AS total
            FROM (
                SELECT CASE {' '.join(cases)} ELSE NULL END AS bucket
                FROM (SELECT {_AGE_EXPRESSION} AS age FROM users WHERE dob IS NOT NULL)
            )
            GROUP BY bucket
            ORDER BY bucket IS NULL, bucket
        """
        with self._guard("aggregate by age"):
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        return [
            (None if row["bucket"] is None else int(row["bucket"]), int(row["total"]))
            for row in rows
        ]

    def _row_to_record(self, row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            dob=date.fromisoformat(row["dob"]),
            contact=row["contact"],
            state=row["state"],
            country=row["country"],
            created_at=_parse_datetime(row["created_at"]),
            validation_status=row["validation_status"],
        )


__all__ = ["RecordStore", "StoreError", "StoreUnavailableError"]
