"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.
Identity-scoped handlers take get_current_user themselves, so health,
session, public profile and email confirmation stay open.
"""

from fastapi import APIRouter

from crateward.api.health import router as health_router
from crateward.api.session import router as session_router
from crateward.api.tokens import router as tokens_router
from crateward.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(session_router, tags=["session"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(tokens_router, tags=["tokens"])
