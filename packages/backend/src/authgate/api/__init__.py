"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health probes sit at the root; every sign-in route lives under
/auth so the OAuth callback URLs read {callback_url}/auth/<provider>/callback.
"""

from fastapi import APIRouter

from authgate.api.auth import router as auth_router
from authgate.api.health import router as health_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
