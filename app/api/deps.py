# app/api/deps.py
from typing import Iterator

from fastapi import Depends, Request

from app.core.config import Settings
from app.repositories.base import Repositories
from app.services.scans import ScanService
from app.services.storage import StorageBackend


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> StorageBackend:
    return request.app.state.storage


def get_repositories(request: Request) -> Iterator[Repositories]:
    """One repository bundle (one DB session for SQL) per request."""
    with request.app.state.data_backend.session() as repos:
        yield repos


def get_scan_service(
    repos: Repositories = Depends(get_repositories),
    storage: StorageBackend = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> ScanService:
    return ScanService(repos, storage, settings)
