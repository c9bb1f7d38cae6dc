"""HTTP controller layer for machines, availability, time selection and reservations."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import get_availability_service, get_reservation_service
from backend.domain.models import DayAvailability, Machine, ReservationStatus
from backend.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
    ServiceNotFoundError,
)
from backend.services.reservation_service import (
    BlockedDateConflictError,
    MachineConflictError,
    RequestedDay,
    ReservationNotFoundError,
    ReservationService,
    ReservationValidationError,
)
from backend.services.time_slot_selector import END_FIELD, START_FIELD
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["scheduling"])


class MachineResponse(BaseModel):
    machine_id: str
    name: str
    total_units: int = Field(ge=0)
    is_available: bool


class MachineCreateRequest(BaseModel):
    machine_id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=200)
    total_units: int = Field(default=1, gt=0)
    is_available: bool = True


class MachineUpdateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    total_units: int = Field(gt=0)
    is_available: bool = True


class MachineAvailabilityRequest(BaseModel):
    is_available: bool


class ServiceResponse(BaseModel):
    service_id: str
    name: str
    machine_ids: list[str]


class TimeSlotResponse(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class CalendarReservationResponse(BaseModel):
    reservation_id: str
    date: date
    machines: list[str]
    time_slots: Optional[list[TimeSlotResponse]] = None
    status: str


class BlockedDateRequest(BaseModel):
    date: date
    reason: Optional[str] = Field(default=None, max_length=500)


class BlockedDateResponse(BaseModel):
    blocked_id: int = Field(gt=0)
    date: date
    reason: Optional[str] = None


class MachineSelectionRequest(BaseModel):
    """Either explicit machines or a service that resolves to machines."""

    machine_ids: Optional[list[str]] = None
    service: Optional[str] = None
    quantity: int = Field(default=1, gt=0)

    @field_validator("machine_ids")
    @classmethod
    def strip_machine_ids(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        return [item.strip() for item in value if item and item.strip()]


class AvailabilityRequest(MachineSelectionRequest):
    date: date


class AvailabilityRangeRequest(MachineSelectionRequest):
    dates: list[date] = Field(min_length=1, max_length=62)


class DayAvailabilityResponse(BaseModel):
    date: date
    morning: bool
    afternoon: bool


class DaySelectionRequest(BaseModel):
    date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class TimeOptionsRequest(MachineSelectionRequest):
    dates: list[date] = Field(min_length=1)
    selections: list[DaySelectionRequest] = Field(default_factory=list)


class DayTimeOptionsResponse(BaseModel):
    date: date
    morning: bool
    afternoon: bool
    phase: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    start_options: list[str]
    end_options: list[str]
    messages: list[str]


class TimeOptionsResponse(BaseModel):
    days: list[DayTimeOptionsResponse]
    ignored_dates: list[date]
    validation_errors: list[str]


class ReservationSubmitRequest(BaseModel):
    requester: str = Field(min_length=1, max_length=200)
    equipment: Optional[str | list[str]] = None
    service: Optional[str] = None
    quantity: int = Field(default=1, gt=0)
    days: list[DaySelectionRequest] = Field(min_length=1)


class ReservationDayResponse(BaseModel):
    date: date
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ReservationSubmitResponse(BaseModel):
    reservation_id: int = Field(gt=0)
    status: str
    machines: list[str]
    days: list[ReservationDayResponse]


class StatusUpdateRequest(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        allowed = {item.value for item in ReservationStatus}
        if value not in allowed:
            raise ValueError(f"status must be one of: {', '.join(sorted(allowed))}")
        return value


class StatusUpdateResponse(BaseModel):
    reservation_id: int
    status: str


class BusinessHoursResponse(BaseModel):
    morning_start: int
    morning_end: int
    afternoon_start: int
    afternoon_end: int
    max_candidate_dates: int
    booking_horizon_days: int


def _availability_response(item: DayAvailability) -> DayAvailabilityResponse:
    return DayAvailabilityResponse(date=item.date, morning=item.morning, afternoon=item.afternoon)


def _availability_http_error(exc: AvailabilityValidationError) -> HTTPException:
    if isinstance(exc, ServiceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _machine_response(item: Machine) -> MachineResponse:
    return MachineResponse(
        machine_id=item.machine_id,
        name=item.name,
        total_units=item.total_units,
        is_available=item.is_available,
    )


@router.get("/machines", response_model=list[MachineResponse], status_code=status.HTTP_200_OK)
async def list_machines(
    service: ReservationService = Depends(get_reservation_service),
) -> list[MachineResponse]:
    return [_machine_response(item) for item in service.list_machines()]


@router.post("/machines", response_model=MachineResponse, status_code=status.HTTP_201_CREATED)
async def create_machine(
    payload: MachineCreateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> MachineResponse:
    try:
        created = service.create_machine(
            payload.machine_id,
            payload.name,
            total_units=payload.total_units,
            is_available=payload.is_available,
        )
        return _machine_response(created)
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MachineConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while creating a machine")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create machine",
        ) from exc


@router.put("/machines/{machine_id}", response_model=MachineResponse, status_code=status.HTTP_200_OK)
async def update_machine(
    machine_id: str,
    payload: MachineUpdateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> MachineResponse:
    try:
        updated = service.update_machine(
            machine_id,
            payload.name,
            total_units=payload.total_units,
            is_available=payload.is_available,
        )
        return _machine_response(updated)
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except MachineConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.patch(
    "/machines/{machine_id}/availability",
    response_model=MachineResponse,
    status_code=status.HTTP_200_OK,
)
async def set_machine_availability(
    machine_id: str,
    payload: MachineAvailabilityRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> MachineResponse:
    try:
        return _machine_response(service.set_machine_availability(machine_id, payload.is_available))
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/business_hours", response_model=BusinessHoursResponse, status_code=status.HTTP_200_OK)
async def business_hours(
    service: AvailabilityService = Depends(get_availability_service),
) -> BusinessHoursResponse:
    hours = service.business_hours
    return BusinessHoursResponse(
        morning_start=hours.morning_start,
        morning_end=hours.morning_end,
        afternoon_start=hours.afternoon_start,
        afternoon_end=hours.afternoon_end,
        max_candidate_dates=hours.max_candidate_dates,
        booking_horizon_days=hours.booking_horizon_days,
    )


@router.get("/services", response_model=list[ServiceResponse], status_code=status.HTTP_200_OK)
async def list_services(
    service: ReservationService = Depends(get_reservation_service),
) -> list[ServiceResponse]:
    return [
        ServiceResponse(service_id=item.service_id, name=item.name, machine_ids=list(item.machine_ids))
        for item in service.list_services()
    ]


@router.get(
    "/reservations",
    response_model=list[CalendarReservationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_reservations(
    service: ReservationService = Depends(get_reservation_service),
) -> list[CalendarReservationResponse]:
    """Calendar projection: one entry per reserved day."""
    return [
        CalendarReservationResponse(
            reservation_id=item.reservation_id,
            date=item.date,
            machines=list(item.machines),
            time_slots=(
                [TimeSlotResponse(start_time=slot.start_time, end_time=slot.end_time) for slot in item.time_slots]
                if item.time_slots is not None
                else None
            ),
            status=item.status,
        )
        for item in service.list_calendar_reservations()
        if item.date is not None
    ]


@router.get("/blocked_dates", response_model=list[BlockedDateResponse], status_code=status.HTTP_200_OK)
async def list_blocked_dates(
    service: ReservationService = Depends(get_reservation_service),
) -> list[BlockedDateResponse]:
    return [
        BlockedDateResponse(blocked_id=item.blocked_id, date=item.date, reason=item.reason)
        for item in service.list_blocked_dates()
    ]


@router.post("/blocked_dates", response_model=BlockedDateResponse, status_code=status.HTTP_201_CREATED)
async def add_blocked_date(
    payload: BlockedDateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> BlockedDateResponse:
    try:
        created = service.add_blocked_date(payload.date, payload.reason)
        return BlockedDateResponse(blocked_id=created.blocked_id, date=created.date, reason=created.reason)
    except BlockedDateConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while blocking a date")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to block date",
        ) from exc


@router.delete("/blocked_dates/{blocked_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blocked_date(
    blocked_id: int,
    service: ReservationService = Depends(get_reservation_service),
) -> Response:
    try:
        service.delete_blocked_date(blocked_id)
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/availability", response_model=DayAvailabilityResponse, status_code=status.HTTP_200_OK)
async def availability(
    payload: AvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> DayAvailabilityResponse:
    try:
        result = service.availability_for(
            payload.date,
            machine_ids=payload.machine_ids,
            service_name=payload.service,
            quantity=payload.quantity,
        )
        return _availability_response(result)
    except AvailabilityValidationError as exc:
        raise _availability_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability",
        ) from exc


@router.post(
    "/availability/range",
    response_model=list[DayAvailabilityResponse],
    status_code=status.HTTP_200_OK,
)
async def availability_range(
    payload: AvailabilityRangeRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> list[DayAvailabilityResponse]:
    try:
        results = service.availability_range(
            payload.dates,
            machine_ids=payload.machine_ids,
            service_name=payload.service,
            quantity=payload.quantity,
        )
        return [_availability_response(item) for item in results]
    except AvailabilityValidationError as exc:
        raise _availability_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability range failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability",
        ) from exc


@router.post("/time_slots/options", response_model=TimeOptionsResponse, status_code=status.HTTP_200_OK)
async def time_slot_options(
    payload: TimeOptionsRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> TimeOptionsResponse:
    """Replay the client's current picks and return what each date still allows."""
    try:
        selector = service.build_selector(
            machine_ids=payload.machine_ids,
            service_name=payload.service,
            quantity=payload.quantity,
        )
    except AvailabilityValidationError as exc:
        raise _availability_http_error(exc) from exc

    accepted = selector.set_candidate_dates(payload.dates)
    ignored = [item for item in payload.dates if item not in accepted]
    messages: dict[date, list[str]] = {item: [] for item in accepted}
    for requested in payload.selections:
        if requested.date not in messages:
            continue
        index = accepted.index(requested.date)
        for field_name, value in ((START_FIELD, requested.start_time), (END_FIELD, requested.end_time)):
            if value is None:
                continue
            outcome = selector.on_change(field_name, index, value)
            if outcome.message:
                messages[requested.date].append(outcome.message)

    days = [
        DayTimeOptionsResponse(
            date=item.date,
            morning=item.availability.morning,
            afternoon=item.availability.afternoon,
            phase=item.phase.value,
            start_time=item.start_time,
            end_time=item.end_time,
            start_options=selector.time_options(index, START_FIELD),
            end_options=selector.time_options(index, END_FIELD),
            messages=messages[item.date],
        )
        for index, item in enumerate(selector.selections())
    ]
    return TimeOptionsResponse(
        days=days,
        ignored_dates=ignored,
        validation_errors=selector.validation_errors(),
    )


@router.post(
    "/reservations",
    response_model=ReservationSubmitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_reservation(
    payload: ReservationSubmitRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationSubmitResponse:
    try:
        result = service.submit_reservation(
            payload.requester,
            [
                RequestedDay(date=item.date, start_time=item.start_time, end_time=item.end_time)
                for item in payload.days
            ],
            equipment=payload.equipment,
            service_name=payload.service,
            quantity=payload.quantity,
        )
        return ReservationSubmitResponse(
            reservation_id=result.reservation_id,
            status=result.status,
            machines=list(result.machines),
            days=[
                ReservationDayResponse(date=item.day, start_time=item.start_time, end_time=item.end_time)
                for item in result.days
            ],
        )
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.errors) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reservation submission failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit reservation",
        ) from exc


@router.put(
    "/reservations/{reservation_id}/status",
    response_model=StatusUpdateResponse,
    status_code=status.HTTP_200_OK,
)
async def update_reservation_status(
    reservation_id: int,
    payload: StatusUpdateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> StatusUpdateResponse:
    try:
        updated = service.update_status(reservation_id, payload.status)
        return StatusUpdateResponse(reservation_id=reservation_id, status=updated)
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
