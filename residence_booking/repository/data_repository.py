"""Repository layer responsible for all database access.

The `BookingRequests` table is the allocation ledger and the only source of
truth for room and student allocation state. `Residencies` and `Users` hold
the read-only collaborator directory consulted for eligibility, ownership
and display enrichment.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from residence_booking.domain.errors import ConflictError, ServerError
from residence_booking.domain.models import (
    ACTIVE_STATUSES,
    ALLOCATED_STATUSES,
    PENDING,
    ApplicantProfile,
    BookingListing,
    BookingRequest,
    PaymentRecord,
    Residency,
)
from residence_booking.utils.config import Settings, get_settings
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)

_BOOKING_COLUMNS = """
    br.id,
    br.student_id,
    br.residency_id,
    br.room_number,
    br.exam_record_id,
    br.exam_year,
    br.sex,
    br.birth_date,
    br.field_of_study,
    br.study_year,
    br.home_wilaya,
    br.notes,
    br.status,
    br.rejection_reason,
    br.payment_status,
    br.payment_amount,
    br.payment_method,
    br.payment_date,
    br.created_at,
    br.updated_at
"""

_LISTING_QUERY = f"""
    SELECT
        {_BOOKING_COLUMNS},
        u.name AS student_name,
        u.email AS student_email,
        u.student_identifier AS student_identifier,
        r.title AS residency_title
    FROM BookingRequests AS br
    LEFT JOIN Users AS u ON u.id = br.student_id
    LEFT JOIN Residencies AS r ON r.id = br.residency_id
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_booking(row: sqlite3.Row) -> BookingRequest:
    payment = None
    if row["payment_status"] is not None:
        payment = PaymentRecord(
            status=str(row["payment_status"]),
            amount=float(row["payment_amount"]) if row["payment_amount"] is not None else None,
            method=row["payment_method"],
            date=row["payment_date"],
        )
    return BookingRequest(
        request_id=int(row["id"]),
        student_id=str(row["student_id"]),
        residency_id=str(row["residency_id"]),
        room_number=int(row["room_number"]),
        profile=ApplicantProfile(
            exam_record_id=str(row["exam_record_id"]),
            exam_year=str(row["exam_year"]),
            sex=str(row["sex"]),
            birth_date=str(row["birth_date"]),
            field_of_study=str(row["field_of_study"]),
            study_year=str(row["study_year"]),
            home_wilaya=str(row["home_wilaya"]),
        ),
        notes=str(row["notes"]),
        status=str(row["status"]),
        rejection_reason=row["rejection_reason"],
        payment=payment,
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_listing(row: sqlite3.Row) -> BookingListing:
    return BookingListing(
        booking=_row_to_booking(row),
        student_name=row["student_name"],
        student_email=row["student_email"],
        student_identifier=row["student_identifier"],
        residency_title=row["residency_title"],
    )


@dataclass(frozen=True)
class DemoDirectory:
    """Collaborator rows seeded for local runs."""

    users: tuple[tuple[str, str, str, str, Optional[str]], ...] = (
        ("admin-1", "Site Administrator", "admin@residence.local", "admin", None),
        ("service-1", "Cite 5 Manager", "manager.cite5@residence.local", "service", None),
        ("service-2", "Zouaghi Manager", "manager.zouaghi@residence.local", "service", None),
        ("student-1", "Amina Bensalem", "amina.bensalem@student.local", "student", "STU-2024-001"),
        ("student-2", "Yacine Haddad", "yacine.haddad@student.local", "student", "STU-2024-002"),
        ("student-3", "Lina Merabet", "lina.merabet@student.local", "student", "STU-2024-003"),
    )
    residencies: tuple[tuple[str, str, str, str, int, str], ...] = (
        ("res-cite5", "service-1", "Cite Universitaire 5", "Constantine", 40, "approved"),
        ("res-zouaghi", "service-2", "Residence Zouaghi", "Constantine", 25, "approved"),
        ("res-ali-mendjeli", "service-2", "Ali Mendjeli Annex", "Constantine", 12, "pending"),
    )


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; write transactions are opened explicitly below.
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.database_timeout_seconds,
            isolation_level=None,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        connection = self._connect()
        try:
            yield connection
        except sqlite3.Error as exc:
            logger.exception("Ledger read failed")
            raise ServerError("Failed to read booking ledger") from exc
        finally:
            connection.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a serialized write transaction.

        `BEGIN IMMEDIATE` takes the database write lock before the first
        read, so everything executed on the yielded connection observes and
        commits against one consistent ledger state. Any exception rolls the
        whole unit back.
        """
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield connection
            except BaseException:
                connection.rollback()
                raise
            connection.commit()
        except sqlite3.IntegrityError as exc:
            logger.warning("Ledger constraint rejected write: %s", exc)
            raise ConflictError(
                "The change conflicts with an existing allocation or active request."
            ) from exc
        except sqlite3.Error as exc:
            logger.exception("Ledger transaction failed")
            raise ServerError("Failed to update booking ledger") from exc
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            connection = self._connect()
            try:
                connection.execute("PRAGMA journal_mode = WAL;")
                connection.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS Users (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL,
                        role TEXT NOT NULL CHECK (role IN ('student', 'service', 'admin')),
                        student_identifier TEXT
                    );

                    CREATE TABLE IF NOT EXISTS Residencies (
                        id TEXT PRIMARY KEY,
                        owner_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        wilaya TEXT NOT NULL DEFAULT '',
                        total_room_count INTEGER NOT NULL CHECK (total_room_count >= 0),
                        publication_status TEXT NOT NULL DEFAULT 'approved'
                    );

                    CREATE TABLE IF NOT EXISTS BookingRequests (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_id TEXT NOT NULL,
                        residency_id TEXT NOT NULL,
                        room_number INTEGER NOT NULL CHECK (room_number > 0),
                        exam_record_id TEXT NOT NULL,
                        exam_year TEXT NOT NULL,
                        sex TEXT NOT NULL CHECK (sex IN ('male', 'female')),
                        birth_date TEXT NOT NULL,
                        field_of_study TEXT NOT NULL,
                        study_year TEXT NOT NULL,
                        home_wilaya TEXT NOT NULL,
                        notes TEXT NOT NULL DEFAULT '',
                        status TEXT NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'approved', 'rejected', 'paid', 'cancelled')),
                        rejection_reason TEXT,
                        payment_status TEXT,
                        payment_amount REAL,
                        payment_method TEXT,
                        payment_date TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        CHECK ((status = 'rejected') = (rejection_reason IS NOT NULL)),
                        CHECK ((status IN ('approved', 'paid')) = (payment_status IS NOT NULL)),
                        FOREIGN KEY (residency_id) REFERENCES Residencies(id)
                    );

                    CREATE UNIQUE INDEX IF NOT EXISTS ux_booking_room_allocated
                    ON BookingRequests(residency_id, room_number)
                    WHERE status IN ('approved', 'paid');

                    CREATE UNIQUE INDEX IF NOT EXISTS ux_booking_student_active
                    ON BookingRequests(student_id, residency_id)
                    WHERE status IN ('pending', 'approved', 'paid');

                    CREATE INDEX IF NOT EXISTS idx_booking_residency_room_status
                    ON BookingRequests(residency_id, room_number, status);

                    CREATE INDEX IF NOT EXISTS idx_booking_student_created
                    ON BookingRequests(student_id, created_at);

                    CREATE INDEX IF NOT EXISTS idx_residencies_owner
                    ON Residencies(owner_id);
                    """
                )
            finally:
                connection.close()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_directory_if_empty(self, directory: Optional[DemoDirectory] = None) -> int:
        """Seed demo users and residencies; returns residencies inserted."""
        directory = directory or DemoDirectory()
        with self._reader() as conn:
            existing = int(
                conn.execute("SELECT COUNT(*) AS count FROM Residencies;").fetchone()["count"]
            )
        if existing > 0:
            logger.info("Residency directory already present; skipping seed")
            return 0

        for user in directory.users:
            self.register_user(*user)
        for residency in directory.residencies:
            self.register_residency(*residency)
        logger.info("Seeded %s demo residencies", len(directory.residencies))
        return len(directory.residencies)

    def register_user(
        self,
        user_id: str,
        name: str,
        email: str,
        role: str,
        student_identifier: Optional[str] = None,
    ) -> None:
        """Upsert a directory user (identity is owned by the auth collaborator)."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO Users (id, name, email, role, student_identifier)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    email = excluded.email,
                    role = excluded.role,
                    student_identifier = excluded.student_identifier;
                """,
                (user_id, name, email, role, student_identifier),
            )

    def register_residency(
        self,
        residency_id: str,
        owner_id: str,
        title: str,
        wilaya: str,
        total_room_count: int,
        publication_status: str = "approved",
    ) -> None:
        """Upsert a directory residency (catalog CRUD lives elsewhere)."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO Residencies (
                    id, owner_id, title, wilaya, total_room_count, publication_status
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    title = excluded.title,
                    wilaya = excluded.wilaya,
                    total_room_count = excluded.total_room_count,
                    publication_status = excluded.publication_status;
                """,
                (residency_id, owner_id, title, wilaya, total_room_count, publication_status),
            )

    def get_residency(self, residency_id: str) -> Optional[Residency]:
        with self._reader() as conn:
            row = conn.execute(
                """
                SELECT id, owner_id, title, wilaya, total_room_count, publication_status
                FROM Residencies
                WHERE id = ?;
                """,
                (residency_id,),
            ).fetchone()
        if row is None:
            return None
        return Residency(
            residency_id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"]),
            wilaya=str(row["wilaya"]),
            total_room_count=int(row["total_room_count"]),
            publication_status=str(row["publication_status"]),
        )

    def list_owned_residency_ids(self, owner_id: str) -> list[str]:
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT id FROM Residencies WHERE owner_id = ? ORDER BY id ASC;",
                (owner_id,),
            ).fetchall()
        return [str(row["id"]) for row in rows]

    def get_booking(
        self,
        request_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[BookingRequest]:
        """Fetch one ledger record, inside `conn` when a transaction is open."""
        query = f"SELECT {_BOOKING_COLUMNS} FROM BookingRequests AS br WHERE br.id = ?;"
        if conn is not None:
            row = conn.execute(query, (request_id,)).fetchone()
        else:
            with self._reader() as reader:
                row = reader.execute(query, (request_id,)).fetchone()
        return _row_to_booking(row) if row is not None else None

    def find_active_request(
        self,
        student_id: str,
        residency_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[BookingRequest]:
        statuses = sorted(ACTIVE_STATUSES)
        query = f"""
            SELECT {_BOOKING_COLUMNS}
            FROM BookingRequests AS br
            WHERE br.student_id = ?
              AND br.residency_id = ?
              AND br.status IN ({_placeholders(statuses)})
            ORDER BY br.id DESC
            LIMIT 1;
        """
        params = (student_id, residency_id, *statuses)
        if conn is not None:
            row = conn.execute(query, params).fetchone()
        else:
            with self._reader() as reader:
                row = reader.execute(query, params).fetchone()
        return _row_to_booking(row) if row is not None else None

    def find_allocated_request(
        self,
        residency_id: str,
        room_number: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[BookingRequest]:
        """Return the approved/paid holder of a room, if any."""
        statuses = sorted(ALLOCATED_STATUSES)
        query = f"""
            SELECT {_BOOKING_COLUMNS}
            FROM BookingRequests AS br
            WHERE br.residency_id = ?
              AND br.room_number = ?
              AND br.status IN ({_placeholders(statuses)})
            LIMIT 1;
        """
        params = (residency_id, room_number, *statuses)
        if conn is not None:
            row = conn.execute(query, params).fetchone()
        else:
            with self._reader() as reader:
                row = reader.execute(query, params).fetchone()
        return _row_to_booking(row) if row is not None else None

    def insert_booking(
        self,
        conn: sqlite3.Connection,
        *,
        student_id: str,
        residency_id: str,
        room_number: int,
        profile: ApplicantProfile,
        notes: str,
    ) -> int:
        """Insert a pending request row and return the created id."""
        now = _utc_now()
        cursor = conn.execute(
            """
            INSERT INTO BookingRequests (
                student_id,
                residency_id,
                room_number,
                exam_record_id,
                exam_year,
                sex,
                birth_date,
                field_of_study,
                study_year,
                home_wilaya,
                notes,
                status,
                created_at,
                updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                student_id,
                residency_id,
                room_number,
                profile.exam_record_id,
                profile.exam_year,
                profile.sex,
                profile.birth_date,
                profile.field_of_study,
                profile.study_year,
                profile.home_wilaya,
                notes,
                PENDING,
                now,
                now,
            ),
        )
        return int(cursor.lastrowid)

    def transition_status(
        self,
        conn: sqlite3.Connection,
        request_id: int,
        *,
        expected_status: str,
        new_status: str,
        rejection_reason: Optional[str] = None,
        payment: Optional[PaymentRecord] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """Compare-and-swap the status; False when the row left `expected_status`."""
        assignments = [
            "status = ?",
            "rejection_reason = ?",
            "payment_status = ?",
            "payment_amount = ?",
            "payment_method = ?",
            "payment_date = ?",
            "updated_at = ?",
        ]
        params: list[Any] = [
            new_status,
            rejection_reason,
            payment.status if payment else None,
            payment.amount if payment else None,
            payment.method if payment else None,
            payment.date if payment else None,
            _utc_now(),
        ]
        if notes is not None:
            assignments.append("notes = ?")
            params.append(notes)
        params.extend([request_id, expected_status])
        cursor = conn.execute(
            f"""
            UPDATE BookingRequests
            SET {", ".join(assignments)}
            WHERE id = ? AND status = ?;
            """,
            tuple(params),
        )
        return cursor.rowcount == 1

    def update_pending_fields(
        self,
        conn: sqlite3.Connection,
        request_id: int,
        fields: dict[str, str],
    ) -> bool:
        """Apply whitelisted column updates only while the row is pending."""
        columns = sorted(fields)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        cursor = conn.execute(
            f"""
            UPDATE BookingRequests
            SET {assignments}, updated_at = ?
            WHERE id = ? AND status = ?;
            """,
            (*(fields[column] for column in columns), _utc_now(), request_id, PENDING),
        )
        return cursor.rowcount == 1

    def list_competing_pending_ids(
        self,
        conn: sqlite3.Connection,
        residency_id: str,
        room_number: int,
        exclude_request_id: int,
    ) -> list[int]:
        rows = conn.execute(
            """
            SELECT id
            FROM BookingRequests
            WHERE residency_id = ?
              AND room_number = ?
              AND status = 'pending'
              AND id != ?
            ORDER BY id ASC;
            """,
            (residency_id, room_number, exclude_request_id),
        ).fetchall()
        return [int(row["id"]) for row in rows]

    def list_bookings(
        self,
        *,
        residency_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
    ) -> list[BookingListing]:
        """Filtered, newest-first enumeration joined with directory data."""
        clauses: list[str] = []
        params: list[Any] = []
        if residency_ids is not None:
            if not residency_ids:
                return []
            clauses.append(f"br.residency_id IN ({_placeholders(residency_ids)})")
            params.extend(residency_ids)
        if statuses:
            clauses.append(f"br.status IN ({_placeholders(statuses)})")
            params.extend(statuses)
        if search:
            pattern = f"%{_escape_like(search)}%"
            clauses.append(
                "(u.name LIKE ? ESCAPE '\\' OR CAST(br.room_number AS TEXT) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._reader() as conn:
            rows = conn.execute(
                f"{_LISTING_QUERY} {where} ORDER BY br.created_at DESC, br.id DESC;",
                tuple(params),
            ).fetchall()
        return [_row_to_listing(row) for row in rows]

    def latest_request_for_student(
        self,
        student_id: str,
        statuses: Sequence[str],
    ) -> Optional[BookingListing]:
        with self._reader() as conn:
            row = conn.execute(
                f"""
                {_LISTING_QUERY}
                WHERE br.student_id = ?
                  AND br.status IN ({_placeholders(statuses)})
                ORDER BY br.created_at DESC, br.id DESC
                LIMIT 1;
                """,
                (student_id, *statuses),
            ).fetchone()
        return _row_to_listing(row) if row is not None else None

    def count_bookings(self, status: Optional[str] = None) -> int:
        """Return ledger row count for diagnostics and tests."""
        with self._reader() as conn:
            if status is None:
                row = conn.execute("SELECT COUNT(*) AS count FROM BookingRequests;").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM BookingRequests WHERE status = ?;",
                    (status,),
                ).fetchone()
        return int(row["count"])
