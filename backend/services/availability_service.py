"""Machine availability per morning/afternoon block.

Occupancy is tracked at whole-hour granularity: any reservation touching an
hour (its end hour included) occupies that full hour. Short bookings can
therefore block an adjacent hour; that is the accepted policy until
finer-grained slots are required.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from backend.domain.constraints import DEFAULT_BUSINESS_HOURS, BusinessHours
from backend.domain.models import (
    BlockedDate,
    DayAvailability,
    Machine,
    Reservation,
    Service,
)
from backend.repository.data_repository import DataRepository
from backend.services.snapshot_service import SchedulingSnapshot, SnapshotStore
from backend.services.time_slot_selector import TimeSlotSelector
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.time_parsing import parse_calendar_date, parse_timestamp


logger = get_logger(__name__)

DEFAULT_OCCUPYING_STATUSES = ("Approved", "Ongoing")


class AvailabilityValidationError(Exception):
    """Raised when an availability query is malformed."""


class ServiceNotFoundError(AvailabilityValidationError):
    """Raised when a service name does not resolve to the catalog."""


def _resolve_requested_machines(
    requested_machine_ids: Iterable[str],
    machine_catalog: Sequence[Machine],
) -> tuple[list[Machine], list[str]]:
    """Split requested references into catalog machines and unknown references."""
    resolved: list[Machine] = []
    unknown: list[str] = []
    for reference in requested_machine_ids:
        if not reference:
            continue
        match = next((machine for machine in machine_catalog if machine.matches(reference)), None)
        if match is None:
            if reference not in unknown:
                unknown.append(reference)
        elif match not in resolved:
            resolved.append(match)
    return resolved, unknown


def total_capacity(
    requested_machine_ids: Iterable[str],
    machine_catalog: Sequence[Machine],
) -> int:
    """Sum units of the requested machines; references missing from the catalog count once."""
    resolved, unknown = _resolve_requested_machines(requested_machine_ids, machine_catalog)
    capacity = len(unknown)
    for machine in resolved:
        if machine.is_available:
            capacity += machine.total_units if machine.total_units > 0 else 1
    return capacity


def _reservation_day(reservation: Reservation, tz: Optional[tzinfo]) -> Optional[date]:
    if reservation.time_slots:
        first_start = parse_timestamp(reservation.time_slots[0].start_time, tz)
        if first_start is not None:
            return first_start.date()
    return parse_calendar_date(reservation.date, tz)


def hourly_occupancy(
    target_date: date,
    requested_machine_ids: Sequence[str],
    reservations: Iterable[Reservation],
    machine_catalog: Sequence[Machine],
    *,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
    occupying_statuses: Optional[Sequence[str]] = DEFAULT_OCCUPYING_STATUSES,
    tz: Optional[tzinfo] = None,
) -> dict[int, int]:
    """Return reserved machine counts for each tracked business hour."""
    occupancy = {hour: 0 for hour in business_hours.tracked_hours()}
    resolved, unknown = _resolve_requested_machines(requested_machine_ids, machine_catalog)
    if not resolved and not unknown:
        return occupancy

    def belongs_to_request(machine_reference: str) -> bool:
        return machine_reference in unknown or any(
            machine.matches(machine_reference) for machine in resolved
        )

    first_hour = business_hours.morning_start
    last_hour = business_hours.afternoon_end
    for reservation in reservations:
        if occupying_statuses is not None and reservation.status not in occupying_statuses:
            continue
        if _reservation_day(reservation, tz) != target_date:
            continue
        reserved_count = sum(
            1 for machine_reference in reservation.machines or () if belongs_to_request(machine_reference)
        )
        if reserved_count == 0:
            continue

        if not reservation.time_slots:
            for hour in occupancy:
                occupancy[hour] += reserved_count
            continue

        for slot in reservation.time_slots:
            start = parse_timestamp(slot.start_time, tz)
            end = parse_timestamp(slot.end_time, tz)
            if start is None or end is None:
                if slot.start_time is not None and slot.end_time is not None:
                    logger.warning(
                        "Ignoring time slot with unparseable bounds | reservation_id=%s",
                        reservation.reservation_id,
                    )
                continue
            for hour in range(max(first_hour, start.hour), min(last_hour, end.hour) + 1):
                occupancy[hour] += reserved_count
    return occupancy


def compute_availability(
    target_date: date,
    requested_machine_ids: Sequence[str],
    requested_quantity: int,
    reservations: Iterable[Reservation],
    machine_catalog: Sequence[Machine],
    *,
    business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
    blocked_dates: Iterable[date] = (),
    occupying_statuses: Optional[Sequence[str]] = DEFAULT_OCCUPYING_STATUSES,
    tz: Optional[tzinfo] = None,
) -> DayAvailability:
    """Report whether ``requested_quantity`` units stay free in each block."""
    if target_date in set(blocked_dates):
        return DayAvailability(date=target_date, morning=False, afternoon=False)

    capacity = total_capacity(requested_machine_ids, machine_catalog)
    if capacity <= 0:
        return DayAvailability(date=target_date, morning=False, afternoon=False)

    quantity = max(int(requested_quantity or 0), 1)
    occupancy = hourly_occupancy(
        target_date,
        requested_machine_ids,
        reservations,
        machine_catalog,
        business_hours=business_hours,
        occupying_statuses=occupying_statuses,
        tz=tz,
    )

    def block_free(hours: range) -> bool:
        return all(capacity - occupancy.get(hour, 0) >= quantity for hour in hours)

    return DayAvailability(
        date=target_date,
        morning=block_free(business_hours.morning_hours()),
        afternoon=block_free(business_hours.afternoon_hours()),
    )


def blocked_days(blocked_dates: Iterable[BlockedDate]) -> list[date]:
    return [item.date for item in blocked_dates]


def resolve_service_machines(
    service_name: str,
    services: Sequence[Service],
    machines: Sequence[Machine],
) -> list[str]:
    """Return ids of the available machines backing a service."""
    service = next(
        (item for item in services if service_name in (item.name, item.service_id)),
        None,
    )
    if service is None:
        raise ServiceNotFoundError(f"service {service_name!r} not found")
    available_ids = {machine.machine_id for machine in machines if machine.is_available}
    return [machine_id for machine_id in service.machine_ids if machine_id in available_ids]


class AvailabilityService:
    """Serves availability queries from the latest repository snapshot."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        snapshot_store: Optional[SnapshotStore[SchedulingSnapshot]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._business_hours = self._settings.business_hours()
        self._timezone = ZoneInfo(self._settings.timezone)
        self._snapshots: SnapshotStore[SchedulingSnapshot] = snapshot_store or SnapshotStore()

    @property
    def business_hours(self) -> BusinessHours:
        return self._business_hours

    @property
    def timezone(self) -> tzinfo:
        return self._timezone

    def refresh_snapshot(self) -> SchedulingSnapshot:
        """Reload scheduling data; an outdated load never replaces a newer one."""
        epoch = self._snapshots.begin_fetch()
        snapshot = SchedulingSnapshot(
            reservations=tuple(self._repository.list_calendar_reservations()),
            machines=tuple(self._repository.list_machines()),
            services=tuple(self._repository.list_services()),
            blocked_dates=tuple(self._repository.list_blocked_dates()),
        )
        if not self._snapshots.commit(epoch, snapshot):
            logger.info("Discarded stale scheduling snapshot | epoch=%s", epoch)
            latest = self._snapshots.latest()
            if latest is not None:
                return latest
        return snapshot

    def resolve_machines(
        self,
        snapshot: SchedulingSnapshot,
        machine_ids: Optional[Sequence[str]],
        service_name: Optional[str],
    ) -> list[str]:
        if machine_ids:
            return [machine_id for machine_id in machine_ids if machine_id]
        if service_name:
            return resolve_service_machines(service_name, snapshot.services, snapshot.machines)
        raise AvailabilityValidationError("either machine_ids or service must be provided")

    def _validate_quantity(self, quantity: int) -> None:
        if quantity <= 0:
            raise AvailabilityValidationError("quantity must be a positive integer")

    def availability_for(
        self,
        target_date: date,
        *,
        machine_ids: Optional[Sequence[str]] = None,
        service_name: Optional[str] = None,
        quantity: int = 1,
        snapshot: Optional[SchedulingSnapshot] = None,
    ) -> DayAvailability:
        return self.availability_range(
            [target_date],
            machine_ids=machine_ids,
            service_name=service_name,
            quantity=quantity,
            snapshot=snapshot,
        )[0]

    def availability_range(
        self,
        dates: Sequence[date],
        *,
        machine_ids: Optional[Sequence[str]] = None,
        service_name: Optional[str] = None,
        quantity: int = 1,
        snapshot: Optional[SchedulingSnapshot] = None,
    ) -> list[DayAvailability]:
        self._validate_quantity(quantity)
        current = snapshot or self.refresh_snapshot()
        requested = self.resolve_machines(current, machine_ids, service_name)
        blocked = blocked_days(current.blocked_dates)
        results = [
            compute_availability(
                target_date,
                requested,
                quantity,
                current.reservations,
                current.machines,
                business_hours=self._business_hours,
                blocked_dates=blocked,
                occupying_statuses=self._settings.occupying_statuses,
                tz=self._timezone,
            )
            for target_date in dates
        ]
        logger.info(
            "Availability computed | dates=%s | machines=%s | quantity=%s",
            len(results),
            ",".join(requested),
            quantity,
        )
        return results

    def availability_lookup(
        self,
        *,
        machine_ids: Optional[Sequence[str]] = None,
        service_name: Optional[str] = None,
        quantity: int = 1,
        snapshot: Optional[SchedulingSnapshot] = None,
    ) -> Callable[[date], DayAvailability]:
        """Bind one snapshot and machine set into a per-date callback for the selector."""
        self._validate_quantity(quantity)
        current = snapshot or self.refresh_snapshot()
        requested = self.resolve_machines(current, machine_ids, service_name)
        blocked = blocked_days(current.blocked_dates)

        def lookup(target_date: date) -> DayAvailability:
            return compute_availability(
                target_date,
                requested,
                quantity,
                current.reservations,
                current.machines,
                business_hours=self._business_hours,
                blocked_dates=blocked,
                occupying_statuses=self._settings.occupying_statuses,
                tz=self._timezone,
            )

        return lookup

    def unselectable_reason(
        self,
        target_date: date,
        availability: DayAvailability,
        blocked_dates: Iterable[date],
        today: Optional[date] = None,
    ) -> Optional[str]:
        """Explain why a date cannot be booked, or ``None`` when it can."""
        reference_day = today or datetime.now(self._timezone).date()
        horizon = reference_day + timedelta(days=self._business_hours.booking_horizon_days)
        if target_date < reference_day:
            return f"{target_date.isoformat()} is in the past"
        if target_date > horizon:
            return f"{target_date.isoformat()} is beyond the booking horizon"
        if target_date.weekday() >= 5:
            return f"{target_date.isoformat()} falls on a weekend"
        if target_date in set(blocked_dates):
            return f"{target_date.isoformat()} is blocked"
        if not availability.any_free:
            return f"{target_date.isoformat()} has no free machine capacity"
        return None

    def is_date_selectable(
        self,
        target_date: date,
        *,
        machine_ids: Optional[Sequence[str]] = None,
        service_name: Optional[str] = None,
        quantity: int = 1,
        today: Optional[date] = None,
        snapshot: Optional[SchedulingSnapshot] = None,
    ) -> bool:
        current = snapshot or self.refresh_snapshot()
        availability = self.availability_for(
            target_date,
            machine_ids=machine_ids,
            service_name=service_name,
            quantity=quantity,
            snapshot=current,
        )
        reason = self.unselectable_reason(
            target_date,
            availability,
            blocked_days(current.blocked_dates),
            today=today,
        )
        return reason is None

    def build_selector(
        self,
        *,
        machine_ids: Optional[Sequence[str]] = None,
        service_name: Optional[str] = None,
        quantity: int = 1,
        snapshot: Optional[SchedulingSnapshot] = None,
    ) -> TimeSlotSelector:
        lookup = self.availability_lookup(
            machine_ids=machine_ids,
            service_name=service_name,
            quantity=quantity,
            snapshot=snapshot,
        )
        return TimeSlotSelector(lookup, self._business_hours)
