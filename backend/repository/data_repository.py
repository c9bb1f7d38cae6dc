"""Repository layer responsible for all database access."""

from __future__ import annotations

import random
import sqlite3
from collections import defaultdict
from dataclasses import dataclass
from itertools import cycle, islice
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import List, Optional, Sequence

from backend.domain.models import BlockedDate, Machine, Reservation, Service, TimeSlot
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.time_parsing import parse_calendar_date, parse_timestamp


logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationDay:
    """One requested day of a submission, as persisted."""

    day: date
    start_time: Optional[datetime]
    end_time: Optional[datetime]


@dataclass(frozen=True)
class ReservationRecord:
    """Flattened reservation projection used by reporting."""

    reservation_id: int
    request_date: str
    status: str
    service_name: Optional[str]
    machines: tuple[str, ...]
    quantity: int
    booked_hours: float
    day_count: int


def _held_units(machines: Sequence[str], quantity: int) -> tuple[str, ...]:
    """Repeat machine references so the tuple holds one entry per reserved unit.

    A request holds ``quantity`` units spread over its machines, but never
    fewer than one unit per named machine.
    """
    if not machines:
        return ()
    units = max(quantity, len(machines))
    return tuple(islice(cycle(machines), units))


_DEMO_MACHINES = [
    ("laser-cutter", "Laser Cutter", 1),
    ("3d-printer", "3D Printer", 3),
    ("cnc-router", "CNC Router", 1),
    ("vinyl-cutter", "Vinyl Cutter", 2),
    ("embroidery", "Embroidery Machine", 1),
]

_DEMO_SERVICES = [
    ("laser-cutting", "Laser Cutting", ("laser-cutter",)),
    ("3d-printing", "3D Printing", ("3d-printer",)),
    ("cnc-milling", "CNC Milling", ("cnc-router",)),
    ("vinyl-cutting", "Vinyl Cutting", ("vinyl-cutter",)),
    ("embroidery", "Embroidery", ("embroidery",)),
]

_DEMO_WINDOWS = [(8, 12), (13, 17), (9, 11), (14, 16), (8, 17)]
_DEMO_STATUSES = ["Approved", "Ongoing", "Completed", "Pending", "Cancelled", "Rejected"]


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
                    CREATE TABLE IF NOT EXISTS Machines (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL UNIQUE,
                        total_units INTEGER NOT NULL DEFAULT 1 CHECK (total_units > 0),
                        is_available INTEGER NOT NULL DEFAULT 1 CHECK (is_available IN (0,1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Services (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL UNIQUE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ServiceMachines (
                        service_id TEXT NOT NULL,
                        machine_id TEXT NOT NULL,
                        PRIMARY KEY (service_id, machine_id),
                        FOREIGN KEY (service_id) REFERENCES Services(id),
                        FOREIGN KEY (machine_id) REFERENCES Machines(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        requester TEXT NOT NULL DEFAULT 'UNKNOWN',
                        service_name TEXT,
                        quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity > 0),
                        status TEXT NOT NULL DEFAULT 'Pending',
                        request_date TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ReservationMachines (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        reservation_id INTEGER NOT NULL,
                        machine TEXT NOT NULL,
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ReservationTimes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        reservation_id INTEGER NOT NULL,
                        day_num INTEGER NOT NULL,
                        start_time TEXT,
                        end_time TEXT,
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS BlockedDates (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date TEXT NOT NULL UNIQUE,
                        reason TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_status_date
                    ON Reservations(status, request_date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservation_times_reservation
                    ON ReservationTimes(reservation_id, day_num);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_catalog(self) -> None:
        """Insert the demo machine and service catalog when it is empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Machines;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Machine catalog already present; skipping seed")
                    return

                cursor.executemany(
                    "INSERT INTO Machines (id, name, total_units) VALUES (?, ?, ?);",
                    _DEMO_MACHINES,
                )
                cursor.executemany(
                    "INSERT INTO Services (id, name) VALUES (?, ?);",
                    [(service_id, name) for service_id, name, _ in _DEMO_SERVICES],
                )
                cursor.executemany(
                    "INSERT INTO ServiceMachines (service_id, machine_id) VALUES (?, ?);",
                    [
                        (service_id, machine_id)
                        for service_id, _, machine_ids in _DEMO_SERVICES
                        for machine_id in machine_ids
                    ],
                )
                conn.commit()
            logger.info("Seeded %s machines and %s services", len(_DEMO_MACHINES), len(_DEMO_SERVICES))
        except sqlite3.Error as exc:
            raise RuntimeError(f"Catalog seeding failed: {exc}") from exc

    def seed_demo_reservations(self, today: Optional[date] = None) -> int:
        """Seed deterministic reservation history only when none exist."""
        if self.count_reservations() > 0:
            logger.info("Reservations already present; skipping demo seed")
            return 0

        rng = random.Random(self._settings.demo_random_seed)
        anchor = today or date.today()
        start_day = anchor - timedelta(days=self._settings.demo_seed_days)
        created = 0
        for offset in range(self._settings.demo_seed_days + 14):
            current_day = start_day + timedelta(days=offset)
            if current_day.weekday() >= 5 or rng.random() < 0.35:
                continue
            _, service_name, machine_ids = rng.choice(_DEMO_SERVICES)
            start_hour, end_hour = rng.choice(_DEMO_WINDOWS)
            status = "Approved" if current_day >= anchor else rng.choice(_DEMO_STATUSES)
            self.create_reservation(
                requester=f"demo_user_{rng.randint(1, 8)}",
                service_name=service_name,
                machines=list(machine_ids),
                quantity=1,
                days=[
                    ReservationDay(
                        day=current_day,
                        start_time=datetime.combine(current_day, time(start_hour)),
                        end_time=datetime.combine(current_day, time(end_hour)),
                    )
                ],
                status=status,
                request_date=current_day - timedelta(days=rng.randint(1, 7)),
            )
            created += 1
        logger.info("Seeded %s demo reservations", created)
        return created

    def list_machines(self) -> List[Machine]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, total_units, is_available FROM Machines ORDER BY name ASC;"
            )
            return [
                Machine(
                    machine_id=str(row["id"]),
                    name=str(row["name"]),
                    total_units=int(row["total_units"]),
                    is_available=bool(row["is_available"]),
                )
                for row in cursor.fetchall()
            ]

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, total_units, is_available FROM Machines WHERE id = ?;",
                (machine_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return Machine(
                machine_id=str(row["id"]),
                name=str(row["name"]),
                total_units=int(row["total_units"]),
                is_available=bool(row["is_available"]),
            )

    def set_machine_availability(self, machine_id: str, is_available: bool) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE Machines SET is_available = ? WHERE id = ?;",
                (int(is_available), machine_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def upsert_machine(self, machine: Machine) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Machines (id, name, total_units, is_available)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    total_units = excluded.total_units,
                    is_available = excluded.is_available;
                """,
                (machine.machine_id, machine.name, machine.total_units, int(machine.is_available)),
            )
            conn.commit()

    def list_services(self) -> List[Service]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT s.id, s.name, sm.machine_id
                FROM Services AS s
                LEFT JOIN ServiceMachines AS sm ON sm.service_id = s.id
                ORDER BY s.name ASC, sm.machine_id ASC;
                """
            )
            machine_ids: dict[str, list[str]] = defaultdict(list)
            names: dict[str, str] = {}
            for row in cursor.fetchall():
                service_id = str(row["id"])
                names[service_id] = str(row["name"])
                if row["machine_id"] is not None:
                    machine_ids[service_id].append(str(row["machine_id"]))
            return [
                Service(
                    service_id=service_id,
                    name=name,
                    machine_ids=tuple(machine_ids.get(service_id, ())),
                )
                for service_id, name in names.items()
            ]

    def upsert_service(self, service: Service) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Services (id, name) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name;
                """,
                (service.service_id, service.name),
            )
            cursor.execute(
                "DELETE FROM ServiceMachines WHERE service_id = ?;",
                (service.service_id,),
            )
            cursor.executemany(
                "INSERT INTO ServiceMachines (service_id, machine_id) VALUES (?, ?);",
                [(service.service_id, machine_id) for machine_id in service.machine_ids],
            )
            conn.commit()

    def create_reservation(
        self,
        requester: str,
        service_name: Optional[str],
        machines: Sequence[str],
        quantity: int,
        days: Sequence[ReservationDay],
        status: str = "Pending",
        request_date: Optional[date] = None,
    ) -> int:
        """Insert a reservation with one time row per requested day."""
        submitted_on = request_date or date.today()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Reservations (requester, service_name, quantity, status, request_date)
                VALUES (?, ?, ?, ?, ?);
                """,
                (requester, service_name, quantity, status, submitted_on.isoformat()),
            )
            reservation_id = int(cursor.lastrowid)
            cursor.executemany(
                "INSERT INTO ReservationMachines (reservation_id, machine) VALUES (?, ?);",
                [(reservation_id, machine) for machine in machines],
            )
            cursor.executemany(
                """
                INSERT INTO ReservationTimes (reservation_id, day_num, start_time, end_time)
                VALUES (?, ?, ?, ?);
                """,
                [
                    (
                        reservation_id,
                        day_num,
                        day.start_time.isoformat() if day.start_time else None,
                        day.end_time.isoformat() if day.end_time else None,
                    )
                    for day_num, day in enumerate(days, start=1)
                ],
            )
            conn.commit()
            return reservation_id

    def update_reservation_status(self, reservation_id: int, status: str) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE Reservations SET status = ? WHERE id = ?;",
                (status, reservation_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_reservation_status(self, reservation_id: int) -> Optional[str]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT status FROM Reservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return str(row["status"])

    def count_reservations(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Reservations;")
            return int(cursor.fetchone()["count"])

    def _load_reservation_children(
        self,
        cursor: sqlite3.Cursor,
        reservation_ids: Sequence[int],
    ) -> tuple[dict[int, list[str]], dict[int, list[tuple[Optional[str], Optional[str]]]]]:
        machines: dict[int, list[str]] = defaultdict(list)
        times: dict[int, list[tuple[Optional[str], Optional[str]]]] = defaultdict(list)
        if not reservation_ids:
            return machines, times
        placeholders = ",".join("?" for _ in reservation_ids)
        cursor.execute(
            f"""
            SELECT reservation_id, machine
            FROM ReservationMachines
            WHERE reservation_id IN ({placeholders})
            ORDER BY id ASC;
            """,
            tuple(reservation_ids),
        )
        for row in cursor.fetchall():
            machines[int(row["reservation_id"])].append(str(row["machine"]))
        cursor.execute(
            f"""
            SELECT reservation_id, start_time, end_time
            FROM ReservationTimes
            WHERE reservation_id IN ({placeholders})
            ORDER BY reservation_id ASC, day_num ASC;
            """,
            tuple(reservation_ids),
        )
        for row in cursor.fetchall():
            times[int(row["reservation_id"])].append((row["start_time"], row["end_time"]))
        return machines, times

    def list_calendar_reservations(self) -> List[Reservation]:
        """Project every reservation into one calendar entry per booked day."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, status, request_date, quantity FROM Reservations ORDER BY id ASC;"
            )
            rows = cursor.fetchall()
            machines, times = self._load_reservation_children(
                cursor, [int(row["id"]) for row in rows]
            )

        calendar: list[Reservation] = []
        unspecified = self._settings.unspecified_machine_label
        for row in rows:
            reservation_id = int(row["id"])
            named_machines = [
                machine for machine in machines.get(reservation_id, []) if machine != unspecified
            ]
            reserved_machines = _held_units(named_machines, int(row["quantity"]))
            slots_by_day: dict[date, list[TimeSlot]] = defaultdict(list)
            undated_slots: list[TimeSlot] = []
            for start_raw, end_raw in times.get(reservation_id, []):
                start = parse_timestamp(start_raw)
                slot = TimeSlot(start_time=start, end_time=parse_timestamp(end_raw))
                if start is None:
                    undated_slots.append(slot)
                else:
                    slots_by_day[start.date()].append(slot)

            fallback_day = parse_calendar_date(row["request_date"])
            if undated_slots and fallback_day is not None:
                slots_by_day[fallback_day].extend(undated_slots)

            if not slots_by_day:
                calendar.append(
                    Reservation(
                        reservation_id=str(reservation_id),
                        date=fallback_day,
                        machines=reserved_machines,
                        time_slots=None,
                        status=str(row["status"]),
                    )
                )
                continue

            for day in sorted(slots_by_day):
                calendar.append(
                    Reservation(
                        reservation_id=f"{reservation_id}:{day.isoformat()}",
                        date=day,
                        machines=reserved_machines,
                        time_slots=tuple(slots_by_day[day]),
                        status=str(row["status"]),
                    )
                )
        return calendar

    def list_reservation_records(
        self,
        date_from: date,
        date_to: date,
    ) -> List[ReservationRecord]:
        """Return reservations submitted inside ``[date_from, date_to]``."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, request_date, status, service_name, quantity
                FROM Reservations
                WHERE request_date >= ? AND request_date <= ?
                ORDER BY request_date ASC, id ASC;
                """,
                (date_from.isoformat(), date_to.isoformat()),
            )
            rows = cursor.fetchall()
            machines, times = self._load_reservation_children(
                cursor, [int(row["id"]) for row in rows]
            )

        records: list[ReservationRecord] = []
        for row in rows:
            reservation_id = int(row["id"])
            booked_hours = 0.0
            for start_raw, end_raw in times.get(reservation_id, []):
                start = parse_timestamp(start_raw)
                end = parse_timestamp(end_raw)
                if start is not None and end is not None and end > start:
                    booked_hours += (end - start).total_seconds() / 3600.0
            records.append(
                ReservationRecord(
                    reservation_id=reservation_id,
                    request_date=str(row["request_date"]),
                    status=str(row["status"]),
                    service_name=row["service_name"],
                    machines=tuple(machines.get(reservation_id, [])),
                    quantity=int(row["quantity"]),
                    booked_hours=round(booked_hours, 2),
                    day_count=len(times.get(reservation_id, [])),
                )
            )
        return records

    def list_blocked_dates(self) -> List[BlockedDate]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, date, reason FROM BlockedDates ORDER BY date ASC;")
            blocked: list[BlockedDate] = []
            for row in cursor.fetchall():
                parsed = parse_calendar_date(row["date"])
                if parsed is None:
                    logger.warning("Skipping malformed blocked date row id=%s", row["id"])
                    continue
                blocked.append(
                    BlockedDate(blocked_id=int(row["id"]), date=parsed, reason=row["reason"])
                )
            return blocked

    def add_blocked_date(self, blocked_day: date, reason: Optional[str] = None) -> Optional[int]:
        """Insert a blocked date; returns ``None`` when the day is already blocked."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO BlockedDates (date, reason) VALUES (?, ?);",
                (blocked_day.isoformat(), reason),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
            return int(cursor.lastrowid)

    def delete_blocked_date(self, blocked_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM BlockedDates WHERE id = ?;", (blocked_id,))
            conn.commit()
            return cursor.rowcount > 0

