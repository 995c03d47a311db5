from fastapi import APIRouter

from datapod.api.routes import commands, events, health, members, proposals

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(proposals.router, prefix="/proposals", tags=["proposals"])
api_router.include_router(members.router, tags=["members"])
# Catch-all family paths last
api_router.include_router(commands.router, tags=["commands"])
