"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import (
    appointments,
    booking_requests,
    health,
    providers,
    public_booking,
)

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Public booking form
api_router.include_router(
    public_booking.router,
    prefix="/public/booking-requests",
    tags=["public"],
)

# Booking request review
api_router.include_router(
    booking_requests.router,
    prefix="/booking-requests",
    tags=["booking-requests"],
)

# Appointments
api_router.include_router(
    appointments.router,
    prefix="/appointments",
    tags=["appointments"],
)

# Providers
api_router.include_router(
    providers.router,
    prefix="/providers",
    tags=["providers"],
)
