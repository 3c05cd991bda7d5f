"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from campus_parking.app.api.v1.endpoints import (
    schedules, matches, carpools,
    spots, rentals,
    admin_rentals, admin_ops,
)

router = APIRouter()

# Schedule collaborator and matching
router.include_router(schedules.router)
router.include_router(matches.router)
router.include_router(carpools.router)

# Spot ledger and rentals
router.include_router(spots.router)
router.include_router(rentals.router)

# Operators
router.include_router(admin_rentals.router)
router.include_router(admin_ops.router)
