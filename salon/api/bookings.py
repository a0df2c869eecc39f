"""Booking and availability endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from salon.api.deps import get_container, pagination, require
from salon.auth import Principal
from salon.container import Container
from salon.schemas.booking_schema import (
    Booking,
    BookingRequest,
    BookingStatus,
    CancelRequest,
    ReviewRequest,
    StatusUpdateRequest,
)
from salon.storage.base import MAX_PAGE_SIZE, BookingQuery

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def _status_view(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "updated_at": booking.updated_at.isoformat(),
    }


@router.post("", status_code=201)
def create_booking(payload: BookingRequest, container: Container = Depends(get_container)):
    booking = container.bookings.create_booking(payload)
    return {"success": True, "booking": booking.model_dump(mode="json")}


@router.get("/availability/{day}")
def get_availability(
    day: date,
    service_id: Optional[str] = None,
    container: Container = Depends(get_container),
):
    return container.availability.available_slots(day, service_id).model_dump(mode="json")


@router.get("")
def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[BookingStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=100),
    principal: Principal = Depends(require("list_bookings")),
    container: Container = Depends(get_container),
):
    query = BookingQuery(
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        skip=(page - 1) * limit,
        limit=limit,
    )
    bookings, total = container.bookings.list_bookings(query)
    return {
        "success": True,
        "bookings": [b.model_dump(mode="json") for b in bookings],
        "pagination": pagination(total, page, limit),
    }


@router.get("/stats")
def booking_stats(
    start_date: date,
    end_date: date,
    principal: Principal = Depends(require("booking_stats")),
    container: Container = Depends(get_container),
):
    stats = container.bookings.stats(start_date, end_date)
    return {"success": True, "stats": stats.model_dump()}


@router.get("/upcoming")
def upcoming_bookings(
    days: int = Query(7, ge=0, le=31),
    principal: Principal = Depends(require("list_bookings")),
    container: Container = Depends(get_container),
):
    bookings = container.bookings.upcoming(days)
    return {"success": True, "bookings": [b.model_dump(mode="json") for b in bookings]}


@router.get("/{booking_id}")
def get_booking(booking_id: str, container: Container = Depends(get_container)):
    booking = container.bookings.get_booking(booking_id)
    return {"success": True, "booking": booking.model_dump(mode="json")}


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: str,
    payload: Optional[CancelRequest] = None,
    container: Container = Depends(get_container),
):
    reason = (payload or CancelRequest()).reason
    booking = container.bookings.cancel_booking(booking_id, reason)
    view = _status_view(booking)
    view["cancelled_at"] = booking.cancelled_at.isoformat() if booking.cancelled_at else None
    return {"success": True, "message": "Booking cancelled successfully", "booking": view}


@router.patch("/{booking_id}/status")
def update_booking_status(
    booking_id: str,
    payload: StatusUpdateRequest,
    principal: Principal = Depends(require("update_booking_status")),
    container: Container = Depends(get_container),
):
    booking = container.bookings.update_status(booking_id, payload.status, principal.actor)
    return {"success": True, "booking": _status_view(booking)}


@router.post("/{booking_id}/review")
def submit_review(
    booking_id: str,
    payload: ReviewRequest,
    container: Container = Depends(get_container),
):
    booking = container.bookings.submit_review(booking_id, payload.rating, payload.comment)
    return {"success": True, "review": booking.review.model_dump(mode="json")}
