# app/api/v1/router.py
from fastapi import APIRouter

from app.api.v1 import auth, users

api_router = APIRouter()

api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(users.router, tags=["users"])
