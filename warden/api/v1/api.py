"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from warden.api.v1.endpoints import auth, health, users

api_router = APIRouter()

# Auth (login, current user)
api_router.include_router(auth.router)

# Registration, user CRUD, password change
api_router.include_router(users.router)

api_router.include_router(health.router)
