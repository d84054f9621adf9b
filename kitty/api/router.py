"""
Main API router that includes all route modules.
"""
from fastapi import APIRouter
from kitty.api.routes import activities, members, charges

api_router = APIRouter()

# Include all route modules
api_router.include_router(activities.router)
api_router.include_router(members.router)
api_router.include_router(charges.router)
