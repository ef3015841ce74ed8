# app/services/scans.py
"""
Scan catalog operations.

ScanService holds the rules shared by every data backend: per-owner
object_name uniqueness, reference checks for projects and tags, version
numbering, and keeping blob storage in step with the metadata rows.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pydantic
from PIL import Image as PILImage, UnidentifiedImageError

from app.core.config import Settings
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.logging import logger
from app.repositories.base import Repositories, ScanFilters, unique_ids
from app.schemas.scan import Pagination, Scan, ScanCreate, ScanDetail, ScanPage, ScanUpdate
from app.schemas.user import AuthUser
from app.services.storage import StorageBackend
from app.services.uploads import UploadedFile

CONTENT_TYPES = {
    "stl": "model/stl",
    "obj": "model/obj",
    "ply": "application/ply",
    "step": "model/step",
    "stp": "model/step",
    "iges": "model/iges",
    "igs": "model/iges",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

MAX_PAGE_SIZE = 500


def content_type_for(file_format: str) -> str:
    return CONTENT_TYPES.get((file_format or "").lower(), DEFAULT_CONTENT_TYPE)


@dataclass
class Blob:
    """Bytes read back from storage, ready to be sent to a client."""
    content: bytes
    content_type: str
    filename: str


class ScanService:
    def __init__(self, repos: Repositories, storage: StorageBackend, settings: Settings):
        self.repos = repos
        self.storage = storage
        self.settings = settings

    # Lookups

    def _get_any(self, scan_id: int) -> Scan:
        scan = self.repos.scans.get(scan_id)
        if scan is None:
            raise NotFoundError("Scan not found")
        return scan

    def _get_owned(self, scan_id: int, owner: AuthUser) -> Scan:
        # Someone else's scan looks exactly like a missing one
        scan = self.repos.scans.get(scan_id)
        if scan is None or scan.user_id != owner.id:
            raise NotFoundError("Scan not found")
        return scan

    def _detail(self, scan: Scan) -> ScanDetail:
        versions = self.repos.versions.list_for_scan(scan.id)
        return ScanDetail(**scan.model_dump(), versions=versions)

    def list_scans(
        self,
        owner: AuthUser,
        project_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ScanPage:
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        filters = ScanFilters(
            owner_id=owner.id,
            project_id=project_id,
            search=search.strip() if search and search.strip() else None,
            limit=limit,
            offset=offset,
        )
        scans = self.repos.scans.find_all(filters)
        total = self.repos.scans.count(filters)
        return ScanPage(data=scans, pagination=Pagination(total=total, limit=limit, offset=offset))

    def get_scan(self, scan_id: int, owner: AuthUser) -> ScanDetail:
        return self._detail(self._get_owned(scan_id, owner))

    # Validation helpers

    def _check_unique_name(self, owner: AuthUser, object_name: str) -> None:
        if self.repos.scans.find_by_object_name(owner.id, object_name) is not None:
            raise ConflictError(f"A scan named '{object_name}' already exists")

    def _check_references(self, project_id: Optional[int], tag_ids: Optional[List[int]]) -> None:
        if project_id is not None and self.repos.projects.get(project_id) is None:
            raise ValidationError(f"Project {project_id} does not exist")
        if tag_ids:
            wanted = unique_ids(tag_ids)
            missing = set(wanted) - self.repos.tags.existing_ids(wanted)
            if missing:
                raise ValidationError(f"Unknown tag ids: {', '.join(str(t) for t in sorted(missing))}")

    def _check_extension(self, upload: UploadedFile) -> str:
        extension = upload.extension
        allowed = self.settings.ALLOWED_SCAN_EXTENSIONS
        if extension not in allowed:
            raise ValidationError(f"Unsupported file type. Allowed types: {', '.join(allowed)}")
        if upload.size <= 0:
            raise ValidationError("Uploaded file is empty")
        return extension

    def _check_thumbnail(self, thumbnail: UploadedFile) -> str:
        """Return the image format (png, jpeg, webp) or raise ValidationError."""
        try:
            with PILImage.open(thumbnail.path) as img:
                img.verify()
                img_format = (img.format or "").lower()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            logger.warning(f"Rejected thumbnail {thumbnail.filename}: {str(e)}")
            raise ValidationError("Invalid thumbnail image")

        allowed = self.settings.ALLOWED_THUMBNAIL_FORMATS
        if img_format not in allowed:
            raise ValidationError(f"Invalid thumbnail format. Allowed formats: {', '.join(allowed)}")
        return img_format

    def _store(self, path: str, upload: UploadedFile, content_type: str) -> None:
        with upload.open() as f:
            self.storage.put(path, f, content_type)

    def _discard_blobs(self, paths: List[Optional[str]]) -> None:
        for path in unique_ids(p for p in paths if p):
            self.storage.delete(path)

    # Writes

    def create_scan(
        self,
        data: ScanCreate,
        owner: AuthUser,
        tag_ids: Optional[List[int]] = None,
    ) -> ScanDetail:
        """
        Insert the scan row followed by its first version and, when tag_ids is
        given, its tag links. The blob at data.file_path must already exist.
        """
        self._check_unique_name(owner, data.object_name)
        self._check_references(data.project_id, tag_ids)

        values = data.model_dump()
        values["user_id"] = owner.id
        values["created_by"] = data.created_by or owner.name
        values["current_version"] = 1

        scan = self.repos.scans.insert(values)
        self.repos.versions.create(
            scan.id, 1, data.file_path, data.file_size, change_notes="Initial upload"
        )
        if tag_ids is not None:
            self.repos.scans.set_tags(scan.id, tag_ids)

        logger.info(f"Created scan {scan.id} ({scan.object_name}) for user {owner.id}")
        return self.get_scan(scan.id, owner)

    def upload_scan(
        self,
        upload: UploadedFile,
        owner: AuthUser,
        metadata: Dict[str, Any],
        tag_ids: Optional[List[int]] = None,
        thumbnail: Optional[UploadedFile] = None,
    ) -> ScanDetail:
        """
        Store an uploaded model file (and optional thumbnail) and record it.
        If recording the metadata fails the stored blobs are removed again.
        """
        extension = self._check_extension(upload)
        thumbnail_format = self._check_thumbnail(thumbnail) if thumbnail is not None else None

        fields = {key: value for key, value in metadata.items() if value not in (None, "")}
        fields.setdefault("object_name", upload.stem)
        file_path = f"scans/{owner.id}/{uuid.uuid4()}.{extension}"
        thumbnail_path = (
            f"thumbnails/{owner.id}/{uuid.uuid4()}.{thumbnail_format}" if thumbnail_format else None
        )
        try:
            data = ScanCreate(
                **fields,
                filename=upload.filename,
                file_path=file_path,
                file_format=extension.upper(),
                file_size=upload.size,
                thumbnail_path=thumbnail_path,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid scan metadata: {e.errors()[0]['msg']}")

        # Fail fast before anything is written to storage
        self._check_unique_name(owner, data.object_name)
        self._check_references(data.project_id, tag_ids)

        self._store(file_path, upload, content_type_for(extension))
        try:
            if thumbnail is not None:
                self._store(thumbnail_path, thumbnail, f"image/{thumbnail_format}")
            return self.create_scan(data, owner, tag_ids)
        except Exception:
            logger.error(f"Saving scan metadata failed, removing uploaded blob {file_path}")
            self._discard_blobs([file_path, thumbnail_path])
            raise

    def update_scan(self, scan_id: int, data: ScanUpdate, owner: AuthUser) -> ScanDetail:
        scan = self._get_owned(scan_id, owner)
        values = data.model_dump(exclude_unset=True)
        tags_given = "tags" in values
        tag_ids = values.pop("tags", None)

        # Required columns cannot be cleared
        for field in ("filename", "object_name"):
            if field in values and values[field] is None:
                values.pop(field)

        new_name = values.get("object_name")
        if new_name is not None and new_name != scan.object_name:
            self._check_unique_name(owner, new_name)
        self._check_references(values.get("project_id"), tag_ids)

        self.repos.scans.update(scan_id, values)
        if tags_given:
            self.repos.scans.set_tags(scan_id, tag_ids or [])

        logger.info(f"Updated scan {scan_id}")
        return self.get_scan(scan_id, owner)

    def upload_new_version(
        self,
        scan_id: int,
        upload: UploadedFile,
        owner: AuthUser,
        change_notes: Optional[str] = None,
    ) -> ScanDetail:
        """
        Store a new file revision. The number is one past the highest recorded
        version, not one past current_version.
        """
        scan = self._get_owned(scan_id, owner)
        extension = self._check_extension(upload)

        version_number = self.repos.versions.latest_version_number(scan.id) + 1
        file_path = f"scans/{owner.id}/{uuid.uuid4()}_v{version_number}.{extension}"
        self._store(file_path, upload, content_type_for(extension))

        try:
            self.repos.versions.create(
                scan.id,
                version_number,
                file_path,
                upload.size,
                change_notes=change_notes or f"Version {version_number}",
            )
        except Exception:
            self._discard_blobs([file_path])
            raise

        # Second write: a crash here leaves current_version one behind.
        # The filename follows the new file so downloads keep a matching extension.
        self.repos.scans.update(scan.id, {
            "current_version": version_number,
            "filename": upload.filename,
            "file_path": file_path,
            "file_size": upload.size,
            "file_format": extension.upper(),
        })
        logger.info(f"Uploaded version {version_number} of scan {scan.id}")
        return self.get_scan(scan.id, owner)

    def delete_scan(self, scan_id: int, owner: AuthUser) -> None:
        scan = self._get_owned(scan_id, owner)
        versions = self.repos.versions.list_for_scan(scan.id)
        self._discard_blobs(
            [scan.file_path, scan.thumbnail_path] + [version.file_path for version in versions]
        )
        self.repos.scans.delete(scan.id)
        logger.info(f"Deleted scan {scan.id}")

    # Public blob access

    def scan_file(self, scan_id: int) -> Blob:
        scan = self._get_any(scan_id)
        return Blob(self.storage.get(scan.file_path), content_type_for(scan.file_format), scan.filename)

    def scan_thumbnail(self, scan_id: int) -> Blob:
        scan = self._get_any(scan_id)
        if not scan.thumbnail_path:
            raise NotFoundError("Scan has no thumbnail")
        image_format = scan.thumbnail_path.rsplit(".", 1)[-1]
        return Blob(self.storage.get(scan.thumbnail_path), f"image/{image_format}", scan.thumbnail_path.rsplit("/", 1)[-1])

    def version_file(self, scan_id: int, version_number: int) -> Blob:
        scan = self._get_any(scan_id)
        version = self.repos.versions.get(scan.id, version_number)
        if version is None:
            raise NotFoundError("Version not found")
        stem, _, _ = scan.filename.rpartition(".")
        extension = version.file_path.rsplit(".", 1)[-1]
        filename = f"{stem or scan.filename}_v{version_number}.{extension}"
        return Blob(self.storage.get(version.file_path), content_type_for(extension), filename)

    def file_url(self, scan_id: int) -> str:
        return self.storage.get_url(self._get_any(scan_id).file_path)
