"""Reservation submission, status workflow and blocked-date management."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Sequence

from backend.domain.models import (
    BlockedDate,
    Machine,
    Reservation,
    ReservationStatus,
    Service,
    parse_equipment,
)
from backend.repository.data_repository import DataRepository, ReservationDay
from backend.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
    blocked_days,
)
from backend.services.time_slot_selector import END_FIELD, START_FIELD
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.time_parsing import parse_clock_minutes


logger = get_logger(__name__)


class ReservationValidationError(Exception):
    """Raised when a submission or status change is invalid."""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [message])


class ReservationNotFoundError(Exception):
    """Raised when a reservation or blocked date id does not exist."""


class BlockedDateConflictError(Exception):
    """Raised when a date is already blocked."""


class MachineConflictError(Exception):
    """Raised when a machine id or name is already taken."""


@dataclass(frozen=True)
class RequestedDay:
    date: date
    start_time: Optional[str]
    end_time: Optional[str]


@dataclass(frozen=True)
class SubmittedReservation:
    reservation_id: int
    status: str
    machines: tuple[str, ...]
    days: tuple[ReservationDay, ...]


def _combine(day: date, clock: Optional[str]) -> Optional[datetime]:
    minutes = parse_clock_minutes(clock)
    if minutes is None:
        return None
    hour, minute = divmod(minutes, 60)
    return datetime.combine(day, time(hour, minute))


class ReservationService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        availability_service: Optional[AvailabilityService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._availability = availability_service or AvailabilityService(
            repository=self._repository,
            settings=self._settings,
        )

    def list_machines(self) -> list[Machine]:
        return self._repository.list_machines()

    def create_machine(
        self,
        machine_id: str,
        name: str,
        total_units: int = 1,
        is_available: bool = True,
    ) -> Machine:
        machine = self._validated_machine(machine_id, name, total_units, is_available)
        if self._repository.get_machine(machine.machine_id) is not None:
            raise MachineConflictError(f"machine {machine.machine_id} already exists")
        self._ensure_unique_name(machine)
        self._repository.upsert_machine(machine)
        logger.info("Machine created | machine_id=%s | units=%s", machine.machine_id, machine.total_units)
        return machine

    def update_machine(
        self,
        machine_id: str,
        name: str,
        total_units: int,
        is_available: bool = True,
    ) -> Machine:
        machine = self._validated_machine(machine_id, name, total_units, is_available)
        if self._repository.get_machine(machine.machine_id) is None:
            raise ReservationNotFoundError(f"machine {machine.machine_id} not found")
        self._ensure_unique_name(machine)
        self._repository.upsert_machine(machine)
        logger.info("Machine updated | machine_id=%s | units=%s", machine.machine_id, machine.total_units)
        return machine

    def set_machine_availability(self, machine_id: str, is_available: bool) -> Machine:
        """Toggle whether a machine contributes capacity."""
        if not self._repository.set_machine_availability(machine_id, is_available):
            raise ReservationNotFoundError(f"machine {machine_id} not found")
        logger.info("Machine availability changed | machine_id=%s | available=%s", machine_id, is_available)
        return self._repository.get_machine(machine_id)

    def _validated_machine(
        self,
        machine_id: str,
        name: str,
        total_units: int,
        is_available: bool,
    ) -> Machine:
        cleaned_id = (machine_id or "").strip()
        cleaned_name = (name or "").strip()
        if not cleaned_id or not cleaned_name:
            raise ReservationValidationError("machine id and name are required")
        if total_units <= 0:
            raise ReservationValidationError("total_units must be a positive integer")
        return Machine(
            machine_id=cleaned_id,
            name=cleaned_name,
            total_units=total_units,
            is_available=is_available,
        )

    def _ensure_unique_name(self, machine: Machine) -> None:
        for existing in self._repository.list_machines():
            if existing.name == machine.name and existing.machine_id != machine.machine_id:
                raise MachineConflictError(f"machine name {machine.name!r} is already used")

    def list_services(self) -> list[Service]:
        return self._repository.list_services()

    def list_calendar_reservations(self) -> list[Reservation]:
        return self._repository.list_calendar_reservations()

    def submit_reservation(
        self,
        requester: str,
        days: Sequence[RequestedDay],
        *,
        equipment: str | Sequence[str] | None = None,
        service_name: Optional[str] = None,
        quantity: int = 1,
        today: Optional[date] = None,
    ) -> SubmittedReservation:
        """Re-validate the submitted times against current availability and persist them.

        Availability may have changed since the client computed it, so every
        day is replayed through a fresh selector before anything is stored.
        """
        if not requester or not requester.strip():
            raise ReservationValidationError("requester must be non-empty")
        if quantity <= 0:
            raise ReservationValidationError("quantity must be a positive integer")
        if not days:
            raise ReservationValidationError("Select at least one date")
        hours = self._availability.business_hours
        if len(days) > hours.max_candidate_dates:
            raise ReservationValidationError(
                f"At most {hours.max_candidate_dates} dates can be requested at once"
            )

        selection = parse_equipment(equipment, self._settings.unspecified_machine_label)
        snapshot = self._availability.refresh_snapshot()
        try:
            machines = self._availability.resolve_machines(
                snapshot, list(selection.names), service_name
            )
            if not machines:
                raise ReservationValidationError("No available machines match the request")
            selector = self._availability.build_selector(
                machine_ids=machines,
                quantity=quantity,
                snapshot=snapshot,
            )
        except AvailabilityValidationError as exc:
            raise ReservationValidationError(str(exc)) from exc

        blocked = blocked_days(snapshot.blocked_dates)
        errors: list[str] = []
        for requested in days:
            label = requested.date.isoformat()
            if not selector.add_date(requested.date):
                errors.append(f"{label}: date was requested more than once")
                continue
            index = len(selector.selections()) - 1
            reason = self._availability.unselectable_reason(
                requested.date,
                selector.selections()[index].availability,
                blocked,
                today=today,
            )
            if reason is not None:
                errors.append(reason)
                continue
            for field_name, value in ((START_FIELD, requested.start_time), (END_FIELD, requested.end_time)):
                outcome = selector.on_change(field_name, index, value)
                if not outcome.accepted and outcome.message:
                    errors.append(f"{label}: {outcome.message}")

        if not errors:
            errors.extend(selector.validation_errors())
        if errors:
            logger.info("Rejected reservation submission | requester=%s | errors=%s", requester, len(errors))
            raise ReservationValidationError("; ".join(errors), errors)

        persisted_days = tuple(
            ReservationDay(
                day=item.date,
                start_time=_combine(item.date, item.start_time),
                end_time=_combine(item.date, item.end_time),
            )
            for item in selector.completed_selections()
        )
        reservation_id = self._repository.create_reservation(
            requester=requester.strip(),
            service_name=service_name,
            machines=machines,
            quantity=quantity,
            days=persisted_days,
            status=ReservationStatus.PENDING.value,
            request_date=today,
        )
        self._availability.refresh_snapshot()
        logger.info(
            "Reservation submitted | reservation_id=%s | days=%s | machines=%s",
            reservation_id,
            len(persisted_days),
            ",".join(machines),
        )
        return SubmittedReservation(
            reservation_id=reservation_id,
            status=ReservationStatus.PENDING.value,
            machines=tuple(machines),
            days=persisted_days,
        )

    def update_status(self, reservation_id: int, status: str) -> str:
        try:
            new_status = ReservationStatus(status)
        except ValueError as exc:
            allowed = ", ".join(item.value for item in ReservationStatus)
            raise ReservationValidationError(
                f"status must be one of: {allowed}"
            ) from exc
        if not self._repository.update_reservation_status(reservation_id, new_status.value):
            raise ReservationNotFoundError(f"reservation {reservation_id} not found")
        logger.info("Reservation status updated | reservation_id=%s | status=%s", reservation_id, new_status.value)
        return new_status.value

    def list_blocked_dates(self) -> list[BlockedDate]:
        return self._repository.list_blocked_dates()

    def add_blocked_date(self, blocked_day: date, reason: Optional[str] = None) -> BlockedDate:
        cleaned_reason = reason.strip() if reason and reason.strip() else None
        blocked_id = self._repository.add_blocked_date(blocked_day, cleaned_reason)
        if blocked_id is None:
            raise BlockedDateConflictError(f"{blocked_day.isoformat()} is already blocked")
        logger.info("Blocked date added | date=%s", blocked_day.isoformat())
        return BlockedDate(blocked_id=blocked_id, date=blocked_day, reason=cleaned_reason)

    def delete_blocked_date(self, blocked_id: int) -> None:
        if not self._repository.delete_blocked_date(blocked_id):
            raise ReservationNotFoundError(f"blocked date {blocked_id} not found")
        logger.info("Blocked date removed | blocked_id=%s", blocked_id)
