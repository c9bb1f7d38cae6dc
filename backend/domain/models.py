"""Domain models for machine scheduling and utilisation reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union


class ReservationStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    ONGOING = "Ongoing"
    PENDING_PAYMENT = "Pending Payment"
    PAID = "Paid"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"


class SelectionPhase(str, Enum):
    UNSELECTED = "UNSELECTED"
    START_CHOSEN = "START_CHOSEN"
    FULLY_SELECTED = "FULLY_SELECTED"


@dataclass(frozen=True)
class Machine:
    machine_id: str
    name: str
    total_units: int = 1
    is_available: bool = True

    def matches(self, reference: str) -> bool:
        return reference in (self.machine_id, self.name)


@dataclass(frozen=True)
class Service:
    service_id: str
    name: str
    machine_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class TimeSlot:
    start_time: Optional[datetime | str]
    end_time: Optional[datetime | str]


@dataclass(frozen=True)
class Reservation:
    """One calendar day of a reservation request."""

    reservation_id: str
    date: Optional[date | str]
    machines: tuple[str, ...] = ()
    time_slots: Optional[tuple[TimeSlot, ...]] = None
    status: str = ReservationStatus.PENDING.value


@dataclass(frozen=True)
class BlockedDate:
    blocked_id: int
    date: date
    reason: Optional[str] = None


@dataclass(frozen=True)
class DayAvailability:
    date: date
    morning: bool
    afternoon: bool

    @property
    def any_free(self) -> bool:
        return self.morning or self.afternoon

    @property
    def morning_only(self) -> bool:
        return self.morning and not self.afternoon

    @property
    def afternoon_only(self) -> bool:
        return self.afternoon and not self.morning


@dataclass(frozen=True)
class DayTimeSelection:
    date: date
    availability: DayAvailability
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @property
    def phase(self) -> SelectionPhase:
        if self.start_time is None:
            return SelectionPhase.UNSELECTED
        if self.end_time is None:
            return SelectionPhase.START_CHOSEN
        return SelectionPhase.FULLY_SELECTED


@dataclass(frozen=True)
class BucketedSeriesEntry:
    period_key: str
    period_start: date
    count: int
    sums: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "period": self.period_key,
            "period_start": self.period_start.isoformat(),
            "count": self.count,
        }
        payload.update(self.sums)
        return payload


@dataclass(frozen=True)
class SingleEquipment:
    name: str

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name,)


@dataclass(frozen=True)
class MultipleEquipment:
    items: tuple[str, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return self.items


EquipmentSelection = Union[SingleEquipment, MultipleEquipment]


def parse_equipment(
    value: str | list[str] | tuple[str, ...] | None,
    unspecified_label: str = "Not specified",
) -> EquipmentSelection:
    """Build the equipment variant, dropping blanks and the placeholder label."""
    if isinstance(value, str):
        cleaned = value.strip()
        if cleaned and cleaned.lower() != unspecified_label.lower():
            return SingleEquipment(cleaned)
        return MultipleEquipment(())
    names: list[str] = []
    for item in value or ():
        cleaned = str(item).strip()
        if not cleaned or cleaned.lower() == unspecified_label.lower():
            continue
        if cleaned not in names:
            names.append(cleaned)
    if len(names) == 1:
        return SingleEquipment(names[0])
    return MultipleEquipment(tuple(names))
