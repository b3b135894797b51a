"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Sequence

from bedalloc.domain.models import (
    Bed,
    BedAction,
    BedStatus,
    Camp,
    CampType,
    ExternalStaff,
    Floor,
    GenderRestriction,
    LeaveRequest,
    LeaveStatus,
    Occupant,
    OccupantType,
    Person,
    PersonType,
    Room,
    Shift,
    TransferRequest,
    TransferStatus,
    Worker,
)
from bedalloc.utils.config import Settings, get_settings
from bedalloc.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(RuntimeError):
    """Raised when a backing-store read or write fails."""


def _split_languages(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_date(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        logger.warning("Ignoring malformed date_of_birth | value=%s", raw)
        return None


def _row_to_person(row: sqlite3.Row) -> Person:
    common = {
        "person_id": int(row["id"]),
        "full_name": str(row["full_name"]),
        "gender": str(row["gender"]),
        "nationality": row["nationality"],
        "state": row["state"],
        "languages": _split_languages(row["languages"]),
        "date_of_birth": _parse_date(row["date_of_birth"]),
        "bed_id": row["bed_id"],
        "camp_id": row["camp_id"],
        "status": str(row["status"]),
        "expected_arrival_date": row["expected_arrival_date"],
        "expected_arrival_time": row["expected_arrival_time"],
        "actual_arrival_date": row["actual_arrival_date"],
        "actual_arrival_time": row["actual_arrival_time"],
    }
    if row["person_type"] == PersonType.TECHNICIAN.value:
        return Worker(
            **common,
            employee_id=row["employee_id"],
            trade_name=row["trade"],
            work_shift=Shift(row["shift"] or Shift.DAY.value),
        )
    return ExternalStaff(**common, company_name=row["company_name"])


def _row_to_bed(row: sqlite3.Row) -> Bed:
    occupant = None
    if row["technician_id"] is not None:
        occupant = Occupant(int(row["technician_id"]), PersonType.TECHNICIAN)
    elif row["external_personnel_id"] is not None:
        occupant = Occupant(int(row["external_personnel_id"]), PersonType.EXTERNAL)
    return Bed(
        bed_id=int(row["bed_id"]),
        room_id=int(row["room_id"]),
        bed_number=str(row["bed_number"]),
        is_lower_berth=bool(row["is_lower_berth"]),
        status=BedStatus(row["bed_status"]),
        occupant=occupant,
        reserved_for=row["reserved_for"],
        temporary_occupant_id=row["temporary_occupant_id"],
    )


def _row_to_transfer(row: sqlite3.Row) -> TransferRequest:
    return TransferRequest(
        request_id=int(row["id"]),
        source_camp_id=row["source_camp_id"],
        target_camp_id=int(row["target_camp_id"]),
        personnel_ids=tuple(int(item) for item in json.loads(row["personnel_ids"] or "[]")),
        status=TransferStatus(row["status"]),
        allocated_beds_data=row["allocated_beds_data"],
        allocation_confirmed_date=row["allocation_confirmed_date"],
    )


def _row_to_leave(row: sqlite3.Row) -> LeaveRequest:
    return LeaveRequest(
        leave_id=int(row["id"]),
        technician_id=int(row["technician_id"]),
        status=LeaveStatus(row["status"]),
        bed_action=BedAction(row["bed_action"]),
        temporary_occupant_id=row["temporary_occupant_id"],
    )


_PERSON_COLUMNS = """
    id, person_type, full_name, employee_id, company_name, gender,
    nationality, state, languages, trade, shift, date_of_birth, bed_id,
    camp_id, status, expected_arrival_date, expected_arrival_time,
    actual_arrival_date, actual_arrival_time
"""


class DataRepository:
    """Encapsulates SQLite access so allocation logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Camps (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        code TEXT,
                        camp_type TEXT NOT NULL
                            CHECK (camp_type IN ('regular', 'induction', 'exit', 'project'))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Floors (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        camp_id INTEGER NOT NULL,
                        floor_number TEXT NOT NULL,
                        FOREIGN KEY (camp_id) REFERENCES Camps(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        floor_id INTEGER NOT NULL,
                        room_number TEXT NOT NULL,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        occupant_type TEXT NOT NULL DEFAULT 'mixed',
                        gender_restriction TEXT NOT NULL DEFAULT 'none',
                        FOREIGN KEY (floor_id) REFERENCES Floors(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Personnel (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        person_type TEXT NOT NULL
                            CHECK (person_type IN ('technician', 'external')),
                        full_name TEXT NOT NULL,
                        employee_id TEXT,
                        company_name TEXT,
                        gender TEXT NOT NULL,
                        nationality TEXT,
                        state TEXT,
                        languages TEXT,
                        trade TEXT,
                        shift TEXT,
                        date_of_birth TEXT,
                        bed_id INTEGER,
                        camp_id INTEGER,
                        status TEXT NOT NULL DEFAULT 'active',
                        expected_arrival_date TEXT,
                        expected_arrival_time TEXT,
                        actual_arrival_date TEXT,
                        actual_arrival_time TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Beds (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        room_id INTEGER NOT NULL,
                        bed_number TEXT NOT NULL,
                        is_lower_berth INTEGER NOT NULL DEFAULT 1
                            CHECK (is_lower_berth IN (0, 1)),
                        status TEXT NOT NULL DEFAULT 'available'
                            CHECK (status IN ('available', 'occupied', 'reserved')),
                        technician_id INTEGER,
                        external_personnel_id INTEGER,
                        reserved_for INTEGER,
                        temporary_occupant_id INTEGER,
                        CHECK (technician_id IS NULL OR external_personnel_id IS NULL),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS LeaveRequests (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        technician_id INTEGER NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        bed_action TEXT NOT NULL DEFAULT 'none',
                        temporary_occupant_id INTEGER,
                        FOREIGN KEY (technician_id) REFERENCES Personnel(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TransferRequests (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        source_camp_id INTEGER,
                        target_camp_id INTEGER NOT NULL,
                        personnel_ids TEXT NOT NULL DEFAULT '[]',
                        status TEXT NOT NULL DEFAULT 'pending_allocation',
                        allocated_beds_data TEXT,
                        allocation_confirmed_date TEXT,
                        FOREIGN KEY (target_camp_id) REFERENCES Camps(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TransferLogs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        transfer_request_id INTEGER NOT NULL,
                        person_id INTEGER NOT NULL,
                        from_camp_id INTEGER,
                        to_camp_id INTEGER NOT NULL,
                        from_bed_id INTEGER,
                        to_bed_id INTEGER NOT NULL,
                        transfer_date TEXT NOT NULL,
                        transfer_time TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (transfer_request_id) REFERENCES TransferRequests(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_beds_room_status
                    ON Beds(room_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_transfer_status
                    ON TransferRequests(status);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed a small regular camp and an induction camp only when empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Camps;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

        regular_camp = self.create_camp("Al Quoz Residence", CampType.REGULAR, code="AQR")
        induction_camp = self.create_camp("Induction Block A", CampType.INDUCTION, code="IBA")

        bed_count = 0
        for camp_id in (regular_camp, induction_camp):
            for floor_number in ("1", "2"):
                floor_id = self.create_floor(camp_id, floor_number)
                for room_index, occupant_type in enumerate(
                    (
                        OccupantType.TECHNICIAN_ONLY,
                        OccupantType.MIXED,
                        OccupantType.EXTERNAL_ONLY,
                        OccupantType.STAFF_ONLY,
                    ),
                    start=1,
                ):
                    room_id = self.create_room(
                        floor_id,
                        f"{floor_number}0{room_index}",
                        capacity=4,
                        occupant_type=occupant_type,
                        gender_restriction=GenderRestriction.MALE,
                    )
                    for bed_number in range(1, 5):
                        self.create_bed(
                            room_id,
                            str(bed_number),
                            is_lower_berth=bed_number % 2 == 1,
                        )
                        bed_count += 1

        demo_people = [
            ("Ravi Kumar", "India", "Kerala", "Malayalam,Hindi", "Electrician", "1978-04-02"),
            ("Arjun Nair", "India", "Kerala", "Malayalam,English", "Electrician", "1990-09-14"),
            ("Bikash Thapa", "Nepal", "Bagmati", "Nepali,Hindi", "Welder", "1985-01-20"),
            ("Imran Ali", "Pakistan", "Punjab", "Urdu,English", "Fitter", "1993-07-08"),
        ]
        for index, (name, nationality, state, languages, trade, dob) in enumerate(
            demo_people, start=1
        ):
            self.create_person(
                PersonType.TECHNICIAN,
                name,
                "male",
                employee_id=f"EMP{index:04d}",
                nationality=nationality,
                state=state,
                languages=languages.split(","),
                trade=trade,
                date_of_birth=dob,
                camp_id=induction_camp,
                expected_arrival_date="2026-01-10",
                expected_arrival_time=f"{7 + index:02d}:00",
            )
        logger.info("Demo seed completed | camps=2 | beds=%s | personnel=%s", bed_count, len(demo_people))

    # --- inventory -----------------------------------------------------

    def create_camp(self, name: str, camp_type: CampType, code: Optional[str] = None) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO Camps (name, code, camp_type) VALUES (?, ?, ?);",
                (name, code, CampType(camp_type).value),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def create_floor(self, camp_id: int, floor_number: str) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO Floors (camp_id, floor_number) VALUES (?, ?);",
                (camp_id, str(floor_number)),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def create_room(
        self,
        floor_id: int,
        room_number: str,
        capacity: int,
        occupant_type: OccupantType = OccupantType.MIXED,
        gender_restriction: GenderRestriction = GenderRestriction.NONE,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Rooms (floor_id, room_number, capacity, occupant_type, gender_restriction)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    floor_id,
                    str(room_number),
                    capacity,
                    OccupantType(occupant_type).value,
                    GenderRestriction(gender_restriction).value,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def create_bed(
        self,
        room_id: int,
        bed_number: str,
        is_lower_berth: bool = True,
        status: BedStatus = BedStatus.AVAILABLE,
        technician_id: Optional[int] = None,
        external_personnel_id: Optional[int] = None,
        reserved_for: Optional[int] = None,
    ) -> int:
        """Insert a bed, refusing status/occupant combinations the snapshot cannot read."""
        if technician_id is not None and external_personnel_id is not None:
            raise ValueError(f"bed {bed_number} cannot hold a technician and external personnel")
        occupant = None
        if technician_id is not None:
            occupant = Occupant(int(technician_id), PersonType.TECHNICIAN)
        elif external_personnel_id is not None:
            occupant = Occupant(int(external_personnel_id), PersonType.EXTERNAL)
        Bed(
            bed_id=0,
            room_id=room_id,
            bed_number=str(bed_number),
            is_lower_berth=is_lower_berth,
            status=BedStatus(status),
            occupant=occupant,
            reserved_for=reserved_for,
        )

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Beds (
                    room_id,
                    bed_number,
                    is_lower_berth,
                    status,
                    technician_id,
                    external_personnel_id,
                    reserved_for
                )
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    room_id,
                    str(bed_number),
                    1 if is_lower_berth else 0,
                    BedStatus(status).value,
                    technician_id,
                    external_personnel_id,
                    reserved_for,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_camp(self, camp_id: int) -> Optional[Camp]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, code, camp_type FROM Camps WHERE id = ?;",
                (camp_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return Camp(
                camp_id=int(row["id"]),
                name=str(row["name"]),
                camp_type=CampType(row["camp_type"]),
                code=row["code"],
            )

    def list_camps(self, camp_ids: Iterable[int]) -> dict[int, Camp]:
        """Return camps keyed by id; unknown ids are silently absent."""
        return {
            camp.camp_id: camp
            for camp in (self.get_camp(camp_id) for camp_id in sorted(set(camp_ids)))
            if camp is not None
        }

    def list_camp_inventory(self, camp_id: int) -> list[tuple[Floor, Room, Bed]]:
        """Return every bed of a camp joined with its room and floor."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    f.id AS floor_id,
                    f.camp_id,
                    f.floor_number,
                    r.id AS room_id,
                    r.room_number,
                    r.capacity,
                    r.occupant_type,
                    r.gender_restriction,
                    b.id AS bed_id,
                    b.bed_number,
                    b.is_lower_berth,
                    b.status AS bed_status,
                    b.technician_id,
                    b.external_personnel_id,
                    b.reserved_for,
                    b.temporary_occupant_id
                FROM Beds AS b
                INNER JOIN Rooms AS r ON r.id = b.room_id
                INNER JOIN Floors AS f ON f.id = r.floor_id
                WHERE f.camp_id = ?
                ORDER BY f.id ASC, r.id ASC, b.id ASC;
                """,
                (camp_id,),
            )
            inventory: list[tuple[Floor, Room, Bed]] = []
            for row in cursor.fetchall():
                floor = Floor(
                    floor_id=int(row["floor_id"]),
                    camp_id=int(row["camp_id"]),
                    floor_number=str(row["floor_number"]),
                )
                room = Room(
                    room_id=int(row["room_id"]),
                    floor_id=int(row["floor_id"]),
                    room_number=str(row["room_number"]),
                    capacity=int(row["capacity"]),
                    occupant_type=OccupantType(row["occupant_type"] or OccupantType.MIXED.value),
                    gender_restriction=GenderRestriction(
                        row["gender_restriction"] or GenderRestriction.NONE.value
                    ),
                )
                try:
                    bed = _row_to_bed(row)
                except ValueError as exc:
                    logger.warning(
                        "Skipping inconsistent bed row | camp_id=%s | bed_id=%s | error=%s",
                        camp_id,
                        row["bed_id"],
                        exc,
                    )
                    continue
                inventory.append((floor, room, bed))
            return inventory

    def get_bed(self, bed_id: int) -> Optional[Bed]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    id AS bed_id,
                    room_id,
                    bed_number,
                    is_lower_berth,
                    status AS bed_status,
                    technician_id,
                    external_personnel_id,
                    reserved_for,
                    temporary_occupant_id
                FROM Beds
                WHERE id = ?;
                """,
                (bed_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_bed(row)

    def compare_and_set_bed(
        self,
        bed_id: int,
        *,
        expected_status: BedStatus,
        new_status: BedStatus,
        technician_id: Optional[int] = None,
        external_personnel_id: Optional[int] = None,
        temporary_occupant_id: Optional[int] = None,
    ) -> bool:
        """Write the bed only if it is still empty in ``expected_status``.

        Returns False when another writer changed the bed first.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE Beds
                    SET status = ?,
                        technician_id = ?,
                        external_personnel_id = ?,
                        temporary_occupant_id = ?
                    WHERE id = ?
                      AND status = ?
                      AND technician_id IS NULL
                      AND external_personnel_id IS NULL
                      AND temporary_occupant_id IS NULL;
                    """,
                    (
                        BedStatus(new_status).value,
                        technician_id,
                        external_personnel_id,
                        temporary_occupant_id,
                        bed_id,
                        BedStatus(expected_status).value,
                    ),
                )
                conn.commit()
                return cursor.rowcount == 1
        except sqlite3.Error as exc:
            raise RepositoryError(f"Bed update failed for bed_id={bed_id}: {exc}") from exc

    # --- personnel -----------------------------------------------------

    def create_person(
        self,
        person_type: PersonType,
        full_name: str,
        gender: str,
        *,
        employee_id: Optional[str] = None,
        company_name: Optional[str] = None,
        nationality: Optional[str] = None,
        state: Optional[str] = None,
        languages: Sequence[str] = (),
        trade: Optional[str] = None,
        shift: Shift = Shift.DAY,
        date_of_birth: Optional[str] = None,
        bed_id: Optional[int] = None,
        camp_id: Optional[int] = None,
        status: str = "active",
        expected_arrival_date: Optional[str] = None,
        expected_arrival_time: Optional[str] = None,
        actual_arrival_date: Optional[str] = None,
        actual_arrival_time: Optional[str] = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Personnel (
                    person_type, full_name, employee_id, company_name, gender,
                    nationality, state, languages, trade, shift, date_of_birth,
                    bed_id, camp_id, status, expected_arrival_date,
                    expected_arrival_time, actual_arrival_date, actual_arrival_time
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    PersonType(person_type).value,
                    full_name,
                    employee_id,
                    company_name,
                    gender,
                    nationality,
                    state,
                    ",".join(languages),
                    trade,
                    Shift(shift).value,
                    date_of_birth,
                    bed_id,
                    camp_id,
                    status,
                    expected_arrival_date,
                    expected_arrival_time,
                    actual_arrival_date,
                    actual_arrival_time,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_person(self, person_id: int) -> Optional[Person]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_PERSON_COLUMNS} FROM Personnel WHERE id = ?;",
                (person_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_person(row)

    def get_persons(self, person_ids: Sequence[int]) -> list[Person]:
        """Return persons in the order of ``person_ids``; unknown ids are skipped."""
        if not person_ids:
            return []
        placeholders = ",".join("?" for _ in person_ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_PERSON_COLUMNS} FROM Personnel WHERE id IN ({placeholders});",
                tuple(person_ids),
            )
            by_id = {int(row["id"]): _row_to_person(row) for row in cursor.fetchall()}
        return [by_id[person_id] for person_id in person_ids if person_id in by_id]

    def list_induction_candidates(
        self,
        camp_id: int,
        person_type: PersonType,
    ) -> list[Person]:
        """Active personnel without a bed who may be placed in ``camp_id``.

        External staff with no camp yet are also offered.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            if PersonType(person_type) is PersonType.TECHNICIAN:
                cursor.execute(
                    f"""
                    SELECT {_PERSON_COLUMNS}
                    FROM Personnel
                    WHERE person_type = 'technician'
                      AND status = 'active'
                      AND bed_id IS NULL
                      AND camp_id = ?
                    ORDER BY id ASC;
                    """,
                    (camp_id,),
                )
            else:
                cursor.execute(
                    f"""
                    SELECT {_PERSON_COLUMNS}
                    FROM Personnel
                    WHERE person_type = 'external'
                      AND status = 'active'
                      AND bed_id IS NULL
                      AND (camp_id IS NULL OR camp_id = ?)
                    ORDER BY id ASC;
                    """,
                    (camp_id,),
                )
            return [_row_to_person(row) for row in cursor.fetchall()]

    def assign_person_bed(
        self,
        person_id: int,
        bed_id: int,
        camp_id: int,
        *,
        actual_arrival_date: Optional[str] = None,
        actual_arrival_time: Optional[str] = None,
    ) -> None:
        """Point a person at their new bed and camp and mark them active."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE Personnel
                    SET bed_id = ?,
                        camp_id = ?,
                        status = 'active',
                        actual_arrival_date = COALESCE(?, actual_arrival_date),
                        actual_arrival_time = COALESCE(?, actual_arrival_time)
                    WHERE id = ?;
                    """,
                    (bed_id, camp_id, actual_arrival_date, actual_arrival_time, person_id),
                )
                if cursor.rowcount != 1:
                    raise RepositoryError(f"Person not found for person_id={person_id}")
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(
                f"Personnel update failed for person_id={person_id}: {exc}"
            ) from exc

    # --- leave requests ------------------------------------------------

    def create_leave_request(
        self,
        technician_id: int,
        status: LeaveStatus = LeaveStatus.APPROVED,
        bed_action: BedAction = BedAction.NONE,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO LeaveRequests (technician_id, status, bed_action)
                VALUES (?, ?, ?);
                """,
                (technician_id, LeaveStatus(status).value, BedAction(bed_action).value),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def list_leave_requests(self, technician_ids: Sequence[int]) -> list[LeaveRequest]:
        if not technician_ids:
            return []
        placeholders = ",".join("?" for _ in technician_ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT id, technician_id, status, bed_action, temporary_occupant_id
                FROM LeaveRequests
                WHERE technician_id IN ({placeholders})
                ORDER BY id ASC;
                """,
                tuple(technician_ids),
            )
            return [_row_to_leave(row) for row in cursor.fetchall()]

    def claim_temporary_bed(self, bed_id: int, leave_id: int, person_id: int) -> bool:
        """Record a stand-in on a leave and its reserved bed in one transaction.

        Returns False, with neither row changed, when the leave already has a
        temporary occupant or the bed is no longer an unfilled reservation.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE LeaveRequests
                    SET temporary_occupant_id = ?
                    WHERE id = ? AND temporary_occupant_id IS NULL;
                    """,
                    (person_id, leave_id),
                )
                if cursor.rowcount != 1:
                    conn.rollback()
                    return False
                cursor.execute(
                    """
                    UPDATE Beds
                    SET temporary_occupant_id = ?
                    WHERE id = ?
                      AND status = ?
                      AND technician_id IS NULL
                      AND external_personnel_id IS NULL
                      AND temporary_occupant_id IS NULL;
                    """,
                    (person_id, bed_id, BedStatus.RESERVED.value),
                )
                if cursor.rowcount != 1:
                    conn.rollback()
                    return False
                conn.commit()
                return True
        except sqlite3.Error as exc:
            raise RepositoryError(
                f"Temporary bed claim failed for bed_id={bed_id}, leave_id={leave_id}: {exc}"
            ) from exc

    # --- transfer requests ---------------------------------------------

    def create_transfer_request(
        self,
        source_camp_id: Optional[int],
        target_camp_id: int,
        personnel_ids: Sequence[int],
        status: TransferStatus = TransferStatus.PENDING_ALLOCATION,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO TransferRequests (source_camp_id, target_camp_id, personnel_ids, status)
                VALUES (?, ?, ?, ?);
                """,
                (
                    source_camp_id,
                    target_camp_id,
                    json.dumps([int(item) for item in personnel_ids]),
                    TransferStatus(status).value,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_transfer_request(self, request_id: int) -> Optional[TransferRequest]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, source_camp_id, target_camp_id, personnel_ids, status,
                       allocated_beds_data, allocation_confirmed_date
                FROM TransferRequests
                WHERE id = ?;
                """,
                (request_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_transfer(row)

    def list_transfer_requests(
        self,
        statuses: Iterable[TransferStatus],
    ) -> list[TransferRequest]:
        status_values = sorted(TransferStatus(status).value for status in statuses)
        if not status_values:
            return []
        placeholders = ",".join("?" for _ in status_values)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT id, source_camp_id, target_camp_id, personnel_ids, status,
                       allocated_beds_data, allocation_confirmed_date
                FROM TransferRequests
                WHERE status IN ({placeholders})
                ORDER BY id ASC;
                """,
                tuple(status_values),
            )
            return [_row_to_transfer(row) for row in cursor.fetchall()]

    def save_transfer_allocation(
        self,
        request_id: int,
        allocated_beds_data: str,
        confirmed_date: str,
    ) -> None:
        """Attach a serialized proposal and move the request to beds_allocated."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE TransferRequests
                    SET allocated_beds_data = ?,
                        allocation_confirmed_date = ?,
                        status = ?
                    WHERE id = ?;
                    """,
                    (
                        allocated_beds_data,
                        confirmed_date,
                        TransferStatus.BEDS_ALLOCATED.value,
                        request_id,
                    ),
                )
                if cursor.rowcount != 1:
                    raise RepositoryError(f"Transfer request not found for id={request_id}")
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(
                f"Transfer request update failed for id={request_id}: {exc}"
            ) from exc

    def update_transfer_status(self, request_id: int, status: TransferStatus) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE TransferRequests SET status = ? WHERE id = ?;",
                    (TransferStatus(status).value, request_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(
                f"Transfer status update failed for id={request_id}: {exc}"
            ) from exc

    def insert_transfer_log(
        self,
        *,
        transfer_request_id: int,
        person_id: int,
        from_camp_id: Optional[int],
        to_camp_id: int,
        from_bed_id: Optional[int],
        to_bed_id: int,
        transfer_date: str,
        transfer_time: Optional[str],
    ) -> int:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO TransferLogs (
                        transfer_request_id, person_id, from_camp_id, to_camp_id,
                        from_bed_id, to_bed_id, transfer_date, transfer_time
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        transfer_request_id,
                        person_id,
                        from_camp_id,
                        to_camp_id,
                        from_bed_id,
                        to_bed_id,
                        transfer_date,
                        transfer_time,
                    ),
                )
                conn.commit()
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise RepositoryError(
                f"Transfer log insert failed for request_id={transfer_request_id}: {exc}"
            ) from exc

    def list_arrived_person_ids(self, transfer_request_id: int) -> set[int]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT person_id FROM TransferLogs WHERE transfer_request_id = ?;",
                (transfer_request_id,),
            )
            return {int(row["person_id"]) for row in cursor.fetchall()}
