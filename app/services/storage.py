# app/services/storage.py
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Optional, Union

import requests
from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage as gcs

from app.core.config import Settings
from app.core.errors import NotFoundError, StorageError
from app.core.logging import logger

# Small payloads arrive as bytes, uploads as an open binary file
BlobData = Union[bytes, BinaryIO]


class StorageBackend(ABC):
    """
    Blob store for scan files and thumbnails.

    ``put`` overwrites an existing object at the same path and streams file
    objects rather than reading them into memory. ``delete`` never
    raises: failures are logged and reported through the return value, since
    callers treat an orphaned blob as acceptable. ``get_url`` is pure string
    building and assumes the objects are publicly readable.
    """

    @abstractmethod
    def put(self, path: str, data: BlobData, content_type: str) -> str:
        """Store data at path and return the path."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Return the object's bytes. Raises NotFoundError if it is absent."""

    @abstractmethod
    def delete(self, path: str) -> bool: ...

    @abstractmethod
    def get_url(self, path: str) -> str: ...


class LocalStorageBackend(StorageBackend):
    """
    Storage on the local file system, served by the app's /storage mount.
    Used for development and tests.
    """

    def __init__(self, root_dir: str, public_base_url: str = "http://localhost:8000"):
        self.root = Path(root_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)
        logger.info(f"Storage service initialized with directory: {self.root}")

    def _resolve(self, path: str) -> Path:
        full_path = (self.root / path).resolve()
        if full_path != self.root and self.root not in full_path.parents:
            raise StorageError(f"Invalid storage path: {path}")
        return full_path

    def put(self, path: str, data: BlobData, content_type: str) -> str:
        local_path = self._resolve(path)
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, bytes):
                local_path.write_bytes(data)
            else:
                with open(local_path, "wb") as out:
                    shutil.copyfileobj(data, out)
        except OSError as e:
            logger.error(f"Error uploading to local storage: {str(e)}")
            raise StorageError("Error saving file") from e
        logger.info(f"Uploaded file to local storage: {local_path}")
        return path

    def get(self, path: str) -> bytes:
        local_path = self._resolve(path)
        if not local_path.is_file():
            raise NotFoundError("File not found in storage")
        try:
            return local_path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading {local_path}: {str(e)}")
            raise StorageError("Error reading file") from e

    def delete(self, path: str) -> bool:
        try:
            local_path = self._resolve(path)
            if not local_path.exists():
                logger.warning(f"File does not exist in local storage when attempting to delete: {local_path}")
                return False
            local_path.unlink()
        except (OSError, StorageError) as e:
            logger.error(f"Error deleting file {path}: {str(e)}")
            return False
        logger.info(f"Deleted file from local storage: {local_path}")
        return True

    def get_url(self, path: str) -> str:
        return f"{self.public_base_url}/storage/{path}"


class SupabaseStorageBackend(StorageBackend):
    """Supabase Storage bucket over its HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url or not api_key:
            raise StorageError("Supabase URL and key must be configured")
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        })

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"

    def put(self, path: str, data: BlobData, content_type: str) -> str:
        try:
            response = self.session.post(
                self._object_url(path),
                data=data,
                headers={"Content-Type": content_type, "x-upsert": "true"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Error uploading to Supabase Storage: {str(e)}")
            raise StorageError("Error uploading file to cloud storage") from e
        if not response.ok:
            logger.error(f"Supabase Storage upload of {path} returned {response.status_code}: {response.text}")
            raise StorageError("Error uploading file to cloud storage")
        logger.info(f"Uploaded file to Supabase Storage: {path}")
        return path

    def get(self, path: str) -> bytes:
        try:
            response = self.session.get(self._object_url(path), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Error downloading from Supabase Storage: {str(e)}")
            raise StorageError("Error downloading file from cloud storage") from e
        # Supabase answers a missing object with 400 or 404 depending on version
        if response.status_code in (400, 404):
            raise NotFoundError("File not found in storage")
        if not response.ok:
            logger.error(f"Supabase Storage download of {path} returned {response.status_code}: {response.text}")
            raise StorageError("Error downloading file from cloud storage")
        return response.content

    def delete(self, path: str) -> bool:
        try:
            response = self.session.delete(
                f"{self.base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": [path]},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Error deleting file {path}: {str(e)}")
            return False
        if not response.ok:
            logger.error(f"Supabase Storage delete of {path} returned {response.status_code}: {response.text}")
            return False
        logger.info(f"Deleted file from Supabase Storage: {path}")
        return True

    def get_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"


class GCSStorageBackend(StorageBackend):
    """Google Cloud Storage bucket."""

    def __init__(self, bucket_name: str, project_id: str = None, credentials_file: str = None, client=None):
        if client is None:
            if credentials_file and os.path.exists(credentials_file):
                client = gcs.Client.from_service_account_json(credentials_file)
            else:
                # Use Application Default Credentials
                client = gcs.Client(project=project_id)
        self.client = client
        self.bucket = client.bucket(bucket_name)
        logger.info(f"Using Google Cloud Storage: {bucket_name}")

    def put(self, path: str, data: BlobData, content_type: str) -> str:
        try:
            blob = self.bucket.blob(path)
            if isinstance(data, bytes):
                blob.upload_from_string(data, content_type=content_type)
            else:
                blob.upload_from_file(data, content_type=content_type)
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"Error uploading to GCS: {str(e)}")
            raise StorageError("Error uploading file to cloud storage") from e
        logger.info(f"Uploaded file to GCS: {path}")
        return path

    def get(self, path: str) -> bytes:
        try:
            return self.bucket.blob(path).download_as_bytes()
        except gcs_exceptions.NotFound:
            raise NotFoundError("File not found in storage")
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"Error downloading from GCS: {str(e)}")
            raise StorageError("Error downloading file from cloud storage") from e

    def delete(self, path: str) -> bool:
        try:
            self.bucket.blob(path).delete()
        except gcs_exceptions.NotFound:
            logger.warning(f"File does not exist in GCS when attempting to delete: {path}")
            return False
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"Error deleting file {path}: {str(e)}")
            return False
        logger.info(f"Deleted file from GCS: {path}")
        return True

    def get_url(self, path: str) -> str:
        return self.bucket.blob(path).public_url


def create_storage(settings: Settings) -> StorageBackend:
    """Build the blob store selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "supabase":
        return SupabaseStorageBackend(
            settings.SUPABASE_URL,
            settings.supabase_key,
            settings.SUPABASE_BUCKET,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    if settings.STORAGE_BACKEND == "gcs":
        if not settings.GCS_BUCKET_NAME:
            raise StorageError("GCS_BUCKET_NAME must be set for the gcs storage backend")
        return GCSStorageBackend(
            settings.GCS_BUCKET_NAME,
            project_id=settings.GCS_PROJECT_ID,
            credentials_file=settings.GCS_CREDENTIALS_FILE,
        )
    return LocalStorageBackend(settings.LOCAL_STORAGE_DIR, settings.PUBLIC_BASE_URL)
