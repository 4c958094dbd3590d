from datetime import date

from fastapi import APIRouter, Depends, Response, status

from .schemas import (
    CreateReservationRequest,
    DeletionCheckResponse,
    HostReservationResponse,
    OverlapResponse,
    ReservationResponse,
)
from .security import any_user, guest_user, host_user
from .services import ReservationService

router = APIRouter(prefix="/api/reservation", tags=["Reservations"])
internal_router = APIRouter(prefix="/internal", tags=["Internal"])

_service: ReservationService | None = None


def get_service() -> ReservationService:
    global _service
    if _service is None:
        _service = ReservationService()
    return _service


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: CreateReservationRequest,
    user=Depends(guest_user),
    service: ReservationService = Depends(get_service),
):
    reservation = await service.create(
        data.accommodation_id,
        data.start_date,
        data.end_date,
        data.guest_count,
        user["sub"],
    )
    return ReservationResponse.model_validate(reservation)


@router.get("/guest", response_model=list[ReservationResponse])
async def list_guest_reservations(
    user=Depends(guest_user),
    service: ReservationService = Depends(get_service),
):
    reservations = await service.list_by_guest(user["sub"])
    return [ReservationResponse.model_validate(r) for r in reservations]


@router.get("/host", response_model=list[HostReservationResponse])
async def list_host_reservations(
    user=Depends(host_user),
    service: ReservationService = Depends(get_service),
):
    rows = await service.list_by_host_with_guest_info(user["sub"])
    return [
        HostReservationResponse(
            **ReservationResponse.model_validate(r).model_dump(),
            guest_cancellation_count=cancellations,
        )
        for r, cancellations in rows
    ]


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: str,
    user=Depends(any_user),
    service: ReservationService = Depends(get_service),
):
    reservation = await service.get(reservation_id, user["sub"])
    return ReservationResponse.model_validate(reservation)


@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reservation_request(
    reservation_id: str,
    user=Depends(guest_user),
    service: ReservationService = Depends(get_service),
):
    await service.withdraw(reservation_id, user["sub"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{reservation_id}/cancel", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_reservation(
    reservation_id: str,
    user=Depends(guest_user),
    service: ReservationService = Depends(get_service),
):
    await service.cancel(reservation_id, user["sub"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{reservation_id}/approve", response_model=ReservationResponse)
async def approve_reservation(
    reservation_id: str,
    user=Depends(host_user),
    service: ReservationService = Depends(get_service),
):
    reservation = await service.approve(reservation_id, user["sub"])
    return ReservationResponse.model_validate(reservation)


@router.put("/{reservation_id}/reject", response_model=ReservationResponse)
async def reject_reservation(
    reservation_id: str,
    user=Depends(host_user),
    service: ReservationService = Depends(get_service),
):
    reservation = await service.reject(reservation_id, user["sub"])
    return ReservationResponse.model_validate(reservation)


# ---- service-to-service (not exposed through the gateway) ----

@internal_router.get("/reservations/overlap", response_model=OverlapResponse)
async def check_reservations_exist(
    accommodation_id: str,
    start_date: date,
    end_date: date,
    service: ReservationService = Depends(get_service),
):
    exists = await service.has_approved_overlap(accommodation_id, start_date, end_date)
    return OverlapResponse(has_reservations=exists)


@internal_router.get("/guests/{guest_id}/deletion-check", response_model=DeletionCheckResponse)
async def guest_deletion_check(guest_id: str, service: ReservationService = Depends(get_service)):
    return DeletionCheckResponse(**await service.guest_deletion_check(guest_id))


@internal_router.get("/hosts/{host_id}/deletion-check", response_model=DeletionCheckResponse)
async def host_deletion_check(host_id: str, service: ReservationService = Depends(get_service)):
    return DeletionCheckResponse(**await service.host_deletion_check(host_id))
