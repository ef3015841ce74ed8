# app/api/endpoints/scans.py
import json
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_scan_service, get_settings
from app.core.config import Settings
from app.core.errors import ValidationError
from app.middleware.auth import get_current_user
from app.schemas.scan import FileUrlResponse, ScanDetail, ScanPage, ScanUpdate
from app.schemas.user import AuthUser
from app.services.scans import Blob, ScanService
from app.services.uploads import buffer_upload, discard_upload

router = APIRouter()


def parse_tag_ids(raw: Optional[str]) -> Optional[List[int]]:
    """
    Tag ids from a multipart form field: a JSON list ("[1, 2]") or a
    comma-separated string ("1,2"). Blank means "not given".
    """
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = [part for part in raw.split(",") if part.strip()]
    if isinstance(value, int):
        value = [value]
    if not isinstance(value, list):
        raise ValidationError("tags must be a list of tag ids")
    try:
        return [int(tag_id) for tag_id in value]
    except (TypeError, ValueError):
        raise ValidationError("tags must be a list of tag ids")


def parse_project_id(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError("project_id must be an integer")


def _blob_response(blob: Blob, disposition: str) -> Response:
    # Header values must be latin-1; the RFC 5987 form carries the real name
    fallback = blob.filename.encode("ascii", "replace").decode("ascii").replace('"', "")
    disposition_header = f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(blob.filename)}"
    return Response(
        content=blob.content,
        media_type=blob.content_type,
        headers={"Content-Disposition": disposition_header},
    )


@router.get("", response_model=ScanPage)
def list_scans(
    project_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    """
    List the caller's scans, newest first, optionally narrowed to a project
    or to scans whose name, filename or notes contain ``search``.
    """
    return service.list_scans(current_user, project_id=project_id, search=search, limit=limit, offset=offset)


@router.get("/search", response_model=ScanPage)
def search_scans(
    project_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    return service.list_scans(current_user, project_id=project_id, search=search, limit=limit, offset=offset)


@router.post("", response_model=ScanDetail, status_code=status.HTTP_201_CREATED)
async def create_scan(
    file: UploadFile = File(...),
    thumbnail: Optional[UploadFile] = File(None),
    object_name: Optional[str] = Form(None),
    scan_date: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    scanner_model: Optional[str] = Form(None),
    resolution: Optional[str] = Form(None),
    accuracy: Optional[str] = Form(None),
    project_id: Optional[str] = Form(None),
    created_by: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),  # JSON list or comma-separated tag ids
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a 3D model file with its metadata.
    The scan starts at version 1.
    """
    tag_ids = parse_tag_ids(tags)
    metadata = {
        "object_name": object_name.strip() if object_name else None,
        "scan_date": scan_date,
        "notes": notes,
        "scanner_model": scanner_model,
        "resolution": resolution,
        "accuracy": accuracy,
        "project_id": parse_project_id(project_id),
        "created_by": created_by,
    }

    upload = await buffer_upload(file, settings.UPLOAD_TMP_DIR, settings.MAX_UPLOAD_SIZE)
    thumbnail_upload = None
    try:
        if thumbnail is not None and thumbnail.filename:
            thumbnail_upload = await buffer_upload(thumbnail, settings.UPLOAD_TMP_DIR, settings.MAX_UPLOAD_SIZE)
        # Storage and database calls block, so they run off the event loop
        return await run_in_threadpool(
            service.upload_scan, upload, current_user, metadata, tag_ids, thumbnail_upload
        )
    finally:
        discard_upload(upload)
        discard_upload(thumbnail_upload)


@router.get("/{scan_id}", response_model=ScanDetail)
def get_scan(
    scan_id: int,
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    """
    Get a scan with its version history, newest version first.
    """
    return service.get_scan(scan_id, current_user)


@router.put("/{scan_id}", response_model=ScanDetail)
def update_scan(
    scan_id: int,
    scan_in: ScanUpdate,
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    """
    Update scan metadata. When ``tags`` is present it replaces every tag on the scan.
    """
    return service.update_scan(scan_id, scan_in, current_user)


@router.delete("/{scan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_scan(
    scan_id: int,
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
):
    """
    Delete a scan, its versions and every stored file that belongs to it.
    """
    service.delete_scan(scan_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{scan_id}/versions", response_model=ScanDetail, status_code=status.HTTP_201_CREATED)
async def upload_version(
    scan_id: int,
    file: UploadFile = File(...),
    change_notes: Optional[str] = Form(None),
    current_user: AuthUser = Depends(get_current_user),
    service: ScanService = Depends(get_scan_service),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a new revision of the scan's file.
    """
    upload = await buffer_upload(file, settings.UPLOAD_TMP_DIR, settings.MAX_UPLOAD_SIZE)
    try:
        return await run_in_threadpool(
            service.upload_new_version, scan_id, upload, current_user, change_notes=change_notes
        )
    finally:
        discard_upload(upload)


# Read-only blob endpoints. They take no token so that viewers and <img>
# tags can load them directly.

@router.get("/{scan_id}/file")
def get_scan_file(scan_id: int, service: ScanService = Depends(get_scan_service)):
    return _blob_response(service.scan_file(scan_id), "inline")


@router.get("/{scan_id}/thumbnail")
def get_scan_thumbnail(scan_id: int, service: ScanService = Depends(get_scan_service)):
    return _blob_response(service.scan_thumbnail(scan_id), "inline")


@router.get("/{scan_id}/download")
def download_scan(scan_id: int, service: ScanService = Depends(get_scan_service)):
    return _blob_response(service.scan_file(scan_id), "attachment")


@router.get("/{scan_id}/file-url", response_model=FileUrlResponse)
def get_scan_file_url(scan_id: int, service: ScanService = Depends(get_scan_service)):
    return FileUrlResponse(url=service.file_url(scan_id))


@router.get("/{scan_id}/versions/{version_number}/download")
def download_scan_version(
    scan_id: int,
    version_number: int,
    service: ScanService = Depends(get_scan_service),
):
    return _blob_response(service.version_file(scan_id, version_number), "attachment")
