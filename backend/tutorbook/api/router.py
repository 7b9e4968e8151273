"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from tutorbook.api.routes import bookings, disputes, payments, tutors

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(disputes.router)
api_router.include_router(payments.router)
api_router.include_router(tutors.router)
