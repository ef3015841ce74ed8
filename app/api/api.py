# app/api/api.py
from fastapi import APIRouter

from app.api.endpoints.auth import router as auth_router
from app.api.endpoints.projects import router as projects_router
from app.api.endpoints.scans import router as scans_router
from app.api.endpoints.tags import router as tags_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(scans_router, prefix="/scans", tags=["scans"])
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(tags_router, prefix="/tags", tags=["tags"])
