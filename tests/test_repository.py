from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

import pytest

from backend.domain.models import Machine, MultipleEquipment, Service, SingleEquipment, parse_equipment
from backend.repository.data_repository import DataRepository, ReservationDay
from backend.utils.config import get_settings


@pytest.fixture
def repository(tmp_path) -> DataRepository:
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / "repository.db")
    repo = DataRepository(settings)
    repo.initialize_database()
    repo.seed_catalog()
    return repo


def test_schema_initialization_is_idempotent(repository):
    repository.initialize_database()
    repository.seed_catalog()
    assert len(repository.list_machines()) == 5
    assert len(repository.list_services()) == 5


def test_multi_day_request_is_projected_per_day(repository):
    reservation_id = repository.create_reservation(
        requester="maker",
        service_name="3D Printing",
        machines=["3d-printer", "Not specified"],
        quantity=1,
        days=[
            ReservationDay(date(2024, 3, 18), datetime(2024, 3, 18, 9), datetime(2024, 3, 18, 11)),
            ReservationDay(date(2024, 3, 19), datetime(2024, 3, 19, 13), datetime(2024, 3, 19, 15)),
        ],
        status="Approved",
        request_date=date(2024, 3, 10),
    )

    calendar = repository.list_calendar_reservations()

    assert [item.reservation_id for item in calendar] == [
        f"{reservation_id}:2024-03-18",
        f"{reservation_id}:2024-03-19",
    ]
    for item in calendar:
        assert item.machines == ("3d-printer",)
        assert len(item.time_slots) == 1
        assert item.time_slots[0].start_time.date() == item.date


def test_request_without_times_occupies_its_request_date(repository):
    repository.create_reservation(
        requester="maker",
        service_name=None,
        machines=["cnc-router"],
        quantity=1,
        days=[],
        status="Ongoing",
        request_date=date(2024, 3, 20),
    )
    (entry,) = repository.list_calendar_reservations()
    assert entry.date == date(2024, 3, 20)
    assert entry.time_slots is None


def test_status_updates_report_missing_rows(repository):
    reservation_id = repository.create_reservation("maker", None, ["laser-cutter"], 1, [], request_date=date(2024, 1, 1))
    assert repository.get_reservation_status(reservation_id) == "Pending"
    assert repository.update_reservation_status(reservation_id, "Approved") is True
    assert repository.update_reservation_status(reservation_id + 100, "Approved") is False
    assert repository.get_reservation_status(reservation_id + 100) is None


def test_blocked_dates_are_unique(repository):
    first = repository.add_blocked_date(date(2024, 12, 25), "Holiday")
    assert first is not None
    assert repository.add_blocked_date(date(2024, 12, 25), "Again") is None
    blocked = repository.list_blocked_dates()
    assert [(item.date, item.reason) for item in blocked] == [(date(2024, 12, 25), "Holiday")]
    assert repository.delete_blocked_date(first) is True
    assert repository.delete_blocked_date(first) is False


def test_demo_seed_is_deterministic_and_runs_once(tmp_path, repository):
    anchor = date(2024, 3, 15)
    created = repository.seed_demo_reservations(today=anchor)
    assert created > 0
    assert repository.seed_demo_reservations(today=anchor) == 0

    other_settings = replace(get_settings(), database_path=tmp_path / "other.db")
    other = DataRepository(other_settings)
    other.initialize_database()
    other.seed_catalog()
    assert other.seed_demo_reservations(today=anchor) == created
    assert [item.status for item in other.list_calendar_reservations()] == [
        item.status for item in repository.list_calendar_reservations()
    ]


def test_catalog_upserts(repository):
    repository.upsert_machine(Machine("laser-cutter", "Laser Cutter", total_units=2, is_available=False))
    repository.upsert_service(Service("laser-cutting", "Laser Cutting", ("laser-cutter", "cnc-router")))
    laser = next(item for item in repository.list_machines() if item.machine_id == "laser-cutter")
    assert (laser.total_units, laser.is_available) == (2, False)
    service = next(item for item in repository.list_services() if item.service_id == "laser-cutting")
    assert service.machine_ids == ("cnc-router", "laser-cutter")


def test_parse_equipment_variants():
    assert parse_equipment("Laser Cutter") == SingleEquipment("Laser Cutter")
    assert parse_equipment(["Laser Cutter", "Laser Cutter", " "]) == SingleEquipment("Laser Cutter")
    assert parse_equipment(["A", "Not specified", "B"]) == MultipleEquipment(("A", "B"))
    assert parse_equipment("not specified").names == ()
    assert parse_equipment(None).names == ()


def test_calendar_entries_hold_one_reference_per_unit(repository):
    day = date(2024, 3, 18)
    slot = [ReservationDay(day, datetime(2024, 3, 18, 9), datetime(2024, 3, 18, 11))]
    repository.create_reservation("maker", None, ["3d-printer"], 3, slot, status="Approved")
    repository.create_reservation("maker", None, ["laser-cutter", "cnc-router"], 1, slot, status="Approved")
    repository.create_reservation("maker", None, ["Not specified"], 2, slot, status="Approved")

    machines = [item.machines for item in repository.list_calendar_reservations()]

    assert machines == [
        ("3d-printer", "3d-printer", "3d-printer"),
        ("laser-cutter", "cnc-router"),
        (),
    ]
