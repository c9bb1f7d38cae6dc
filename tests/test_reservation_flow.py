from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.controllers.reports_controller import router as reports_router
from backend.controllers.scheduling_controller import router as scheduling_router
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.report_service import ReportService
from backend.services.reservation_service import (
    RequestedDay,
    ReservationService,
    ReservationValidationError,
)
from backend.services.time_slot_selector import END_BEFORE_START_MESSAGE
from backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    return replace(get_settings(), database_path=tmp_path / filename)


def _build_test_app(tmp_path) -> tuple[FastAPI, DataRepository]:
    settings = _build_test_settings(tmp_path, "reservation_flow.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_catalog()

    availability_service = AvailabilityService(repository=repository, settings=settings)
    reservation_service = ReservationService(
        repository=repository,
        availability_service=availability_service,
        settings=settings,
    )

    app = FastAPI()
    app.include_router(scheduling_router)
    app.include_router(reports_router)
    app.state.repository = repository
    app.state.availability_service = availability_service
    app.state.reservation_service = reservation_service
    app.state.report_service = ReportService(repository=repository, settings=settings)
    return app, repository


def _upcoming_weekday(offset: int = 3) -> date:
    candidate = date.today() + timedelta(days=offset)
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


def test_reservation_end_to_end_flow(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    target = _upcoming_weekday()

    machines_response = client.get("/machines")
    assert machines_response.status_code == 200
    assert {item["machine_id"] for item in machines_response.json()} >= {"laser-cutter", "3d-printer"}

    services_response = client.get("/services")
    assert services_response.status_code == 200
    laser = next(item for item in services_response.json() if item["name"] == "Laser Cutting")
    assert laser["machine_ids"] == ["laser-cutter"]

    availability_body = {"date": target.isoformat(), "service": "Laser Cutting"}
    availability_response = client.post("/availability", json=availability_body)
    assert availability_response.status_code == 200
    assert availability_response.json() == {"date": target.isoformat(), "morning": True, "afternoon": True}

    options_response = client.post(
        "/time_slots/options",
        json={
            "service": "Laser Cutting",
            "dates": [target.isoformat()],
            "selections": [{"date": target.isoformat(), "start_time": "09:00 AM", "end_time": "08:30 AM"}],
        },
    )
    assert options_response.status_code == 200
    day = options_response.json()["days"][0]
    assert day["start_time"] == "09:00 AM"
    assert day["end_time"] is None
    assert day["phase"] == "START_CHOSEN"
    assert END_BEFORE_START_MESSAGE in day["messages"]
    assert day["end_options"][0] == "10:00 AM"

    submit_response = client.post(
        "/reservations",
        json={
            "requester": "maker@example.org",
            "service": "Laser Cutting",
            "days": [{"date": target.isoformat(), "start_time": "09:00 AM", "end_time": "11:00 AM"}],
        },
    )
    assert submit_response.status_code == 201
    submitted = submit_response.json()
    assert submitted["status"] == "Pending"
    assert submitted["machines"] == ["laser-cutter"]
    reservation_id = submitted["reservation_id"]

    # Pending requests do not hold capacity yet.
    assert client.post("/availability", json=availability_body).json()["morning"] is True

    status_response = client.put(f"/reservations/{reservation_id}/status", json={"status": "Approved"})
    assert status_response.status_code == 200
    assert status_response.json() == {"reservation_id": reservation_id, "status": "Approved"}

    after_approval = client.post("/availability", json=availability_body).json()
    assert (after_approval["morning"], after_approval["afternoon"]) == (False, True)

    conflict_response = client.post(
        "/reservations",
        json={
            "requester": "another@example.org",
            "equipment": "laser-cutter",
            "days": [{"date": target.isoformat(), "start_time": "09:00 AM", "end_time": "10:00 AM"}],
        },
    )
    assert conflict_response.status_code == 400
    assert any("afternoon" in message for message in conflict_response.json()["detail"])

    calendar = client.get("/reservations").json()
    entry = next(item for item in calendar if item["reservation_id"] == f"{reservation_id}:{target.isoformat()}")
    assert entry["status"] == "Approved"
    assert entry["machines"] == ["laser-cutter"]
    assert len(entry["time_slots"]) == 1


def test_status_updates_are_validated(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)
    target = _upcoming_weekday()
    created = client.post(
        "/reservations",
        json={
            "requester": "maker",
            "equipment": ["3d-printer", "Not specified"],
            "days": [{"date": target.isoformat(), "start_time": "01:00 PM", "end_time": "03:00 PM"}],
        },
    )
    assert created.status_code == 201
    reservation_id = created.json()["reservation_id"]

    assert client.put(f"/reservations/{reservation_id}/status", json={"status": "Teleported"}).status_code == 422
    assert client.put("/reservations/9999/status", json={"status": "Approved"}).status_code == 404
    assert client.put(f"/reservations/{reservation_id}/status", json={"status": "Completed"}).status_code == 200
    assert repository.get_reservation_status(reservation_id) == "Completed"


def test_blocked_dates_lifecycle(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    target = _upcoming_weekday()

    created = client.post("/blocked_dates", json={"date": target.isoformat(), "reason": "Maintenance"})
    assert created.status_code == 201
    blocked_id = created.json()["blocked_id"]
    assert client.post("/blocked_dates", json={"date": target.isoformat()}).status_code == 409
    assert [item["date"] for item in client.get("/blocked_dates").json()] == [target.isoformat()]

    availability = client.post("/availability", json={"date": target.isoformat(), "machine_ids": ["3d-printer"]})
    assert availability.json()["morning"] is False
    assert availability.json()["afternoon"] is False

    rejected = client.post(
        "/reservations",
        json={
            "requester": "maker",
            "equipment": "3d-printer",
            "days": [{"date": target.isoformat(), "start_time": "09:00 AM", "end_time": "10:00 AM"}],
        },
    )
    assert rejected.status_code == 400
    assert any("blocked" in message for message in rejected.json()["detail"])

    assert client.delete(f"/blocked_dates/{blocked_id}").status_code == 204
    assert client.delete(f"/blocked_dates/{blocked_id}").status_code == 404
    assert client.post("/availability", json={"date": target.isoformat(), "machine_ids": ["3d-printer"]}).json()[
        "morning"
    ] is True


def test_availability_request_errors(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    target = _upcoming_weekday().isoformat()

    assert client.post("/availability", json={"date": target}).status_code == 400
    assert client.post("/availability", json={"date": target, "service": "Welding"}).status_code == 404
    assert client.post("/availability", json={"date": target, "machine_ids": ["3d-printer"], "quantity": 0}).status_code == 422

    range_response = client.post(
        "/availability/range",
        json={"dates": [target, target], "machine_ids": ["3d-printer"], "quantity": 3},
    )
    assert range_response.status_code == 200
    assert [item["morning"] for item in range_response.json()] == [True, True]
    assert client.post(
        "/availability/range",
        json={"dates": [target], "machine_ids": ["3d-printer"], "quantity": 4},
    ).json()[0]["morning"] is False


def test_submission_rules_in_service(tmp_path):
    _, repository = _build_test_app(tmp_path)
    settings = _build_test_settings(tmp_path, "reservation_flow.db")
    service = ReservationService(repository=repository, settings=settings)
    today = date(2024, 3, 15)  # Friday
    monday = date(2024, 3, 18)

    def rejected(days, **kwargs) -> list[str]:
        try:
            service.submit_reservation("maker", days, equipment="laser-cutter", today=today, **kwargs)
        except ReservationValidationError as exc:
            return exc.errors
        raise AssertionError("submission was accepted")

    assert rejected([RequestedDay(date(2024, 3, 16), "09:00 AM", "10:00 AM")])[0].endswith("falls on a weekend")
    assert rejected([RequestedDay(monday, "09:00 AM", None)]) == ["2024-03-18: end time is required"]
    assert rejected([RequestedDay(monday, "10:00 AM", "09:00 AM")]) == [f"2024-03-18: {END_BEFORE_START_MESSAGE}"]
    assert "more than once" in rejected(
        [RequestedDay(monday, "09:00 AM", "10:00 AM"), RequestedDay(monday, "01:00 PM", "02:00 PM")]
    )[0]
    too_many = [RequestedDay(monday + timedelta(days=offset), "09:00 AM", "10:00 AM") for offset in range(6)]
    assert "At most 5 dates" in rejected(too_many)[0]

    result = service.submit_reservation(
        "maker",
        [RequestedDay(monday, "09:00 AM", "10:30 AM"), RequestedDay(monday + timedelta(days=1), "01:00 PM", "04:00 PM")],
        equipment="laser-cutter",
        today=today,
    )
    assert result.status == "Pending"
    assert [item.day for item in result.days] == [monday, monday + timedelta(days=1)]
    assert result.days[0].start_time.hour == 9 and result.days[0].end_time.minute == 30

    records = repository.list_reservation_records(today, today)
    assert records[0].day_count == 2
    assert records[0].booked_hours == 4.5


def test_approved_multi_unit_request_holds_all_units(tmp_path):
    _, repository = _build_test_app(tmp_path)
    settings = _build_test_settings(tmp_path, "reservation_flow.db")
    availability = AvailabilityService(repository=repository, settings=settings)
    service = ReservationService(repository=repository, availability_service=availability, settings=settings)
    monday = date(2024, 3, 18)

    result = service.submit_reservation(
        "maker",
        [RequestedDay(monday, "09:00 AM", "11:00 AM")],
        service_name="3D Printing",
        quantity=3,
        today=date(2024, 3, 15),
    )
    service.update_status(result.reservation_id, "Approved")
    availability.refresh_snapshot()

    after = availability.availability_for(monday, service_name="3D Printing", quantity=1)
    assert (after.morning, after.afternoon) == (False, True)


def test_machine_catalog_management_feeds_capacity(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)
    target = _upcoming_weekday().isoformat()
    body = {"date": target, "machine_ids": ["laser-cutter"]}

    assert client.post("/availability", json=body).json()["morning"] is True

    toggled = client.patch("/machines/laser-cutter/availability", json={"is_available": False})
    assert toggled.status_code == 200
    assert toggled.json()["is_available"] is False
    unavailable = client.post("/availability", json=body).json()
    assert (unavailable["morning"], unavailable["afternoon"]) == (False, False)

    client.patch("/machines/laser-cutter/availability", json={"is_available": True})
    assert client.post("/availability", json={**body, "quantity": 2}).json()["morning"] is False
    updated = client.put("/machines/laser-cutter", json={"name": "Laser Cutter", "total_units": 2})
    assert updated.status_code == 200
    assert updated.json()["total_units"] == 2
    assert client.post("/availability", json={**body, "quantity": 2}).json()["morning"] is True

    created = client.post("/machines", json={"machine_id": "heat-press", "name": "Heat Press", "total_units": 2})
    assert created.status_code == 201
    assert repository.get_machine("heat-press").total_units == 2
    assert client.post("/machines", json={"machine_id": "heat-press", "name": "Other"}).status_code == 409
    assert client.post("/machines", json={"machine_id": "press-2", "name": "Heat Press"}).status_code == 409
    assert client.post("/machines", json={"machine_id": "bad", "name": "Bad", "total_units": 0}).status_code == 422
    assert client.put("/machines/missing", json={"name": "Missing", "total_units": 1}).status_code == 404
    assert client.patch("/machines/missing/availability", json={"is_available": True}).status_code == 404


def test_business_hours_endpoint_reports_configured_hours(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    hours = _build_test_settings(tmp_path, "reservation_flow.db").business_hours()

    response = client.get("/business_hours")

    assert response.status_code == 200
    assert response.json() == {
        "morning_start": hours.morning_start,
        "morning_end": hours.morning_end,
        "afternoon_start": hours.afternoon_start,
        "afternoon_end": hours.afternoon_end,
        "max_candidate_dates": hours.max_candidate_dates,
        "booking_horizon_days": hours.booking_horizon_days,
    }
