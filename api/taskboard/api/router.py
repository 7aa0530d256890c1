"""API router composition for all route groups."""

from fastapi import APIRouter

from .routes import automations

api_router = APIRouter()
api_router.include_router(automations.router, prefix="/automations", tags=["automations"])
