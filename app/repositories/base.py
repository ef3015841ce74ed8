# app/repositories/base.py
"""
Storage-agnostic repository interfaces.

Each entity has one interface; concrete adapters live in ``sql.py`` (SQLAlchemy
over SQLite or Postgres) and ``rest.py`` (Supabase PostgREST). Business rules
such as ownership, duplicate checks and version numbering sit above these
interfaces in ``app.services.scans`` so every adapter shares them.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from app.schemas.project import Project
from app.schemas.scan import Scan, ScanVersion
from app.schemas.tag import Tag
from app.schemas.user import UserInDB


@dataclass
class ScanFilters:
    owner_id: Optional[int] = None
    project_id: Optional[int] = None
    search: Optional[str] = None
    limit: int = 50
    offset: int = 0


def unique_ids(ids: Iterable[int]) -> List[int]:
    """Drop repeated ids while keeping first-seen order."""
    return list(dict.fromkeys(ids))


class UserRepository(ABC):
    @abstractmethod
    def get_by_id(self, user_id: int) -> Optional[UserInDB]: ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserInDB]: ...

    @abstractmethod
    def create(self, email: str, password_hash: str, name: str) -> UserInDB: ...


class ProjectRepository(ABC):
    @abstractmethod
    def list(self) -> List[Project]:
        """All projects ordered by name, each with its scan_count."""

    @abstractmethod
    def get(self, project_id: int) -> Optional[Project]: ...

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Project]: ...

    @abstractmethod
    def create(self, values: Dict[str, Any]) -> Project: ...

    @abstractmethod
    def update(self, project_id: int, values: Dict[str, Any]) -> Optional[Project]: ...

    @abstractmethod
    def delete(self, project_id: int) -> None: ...


class TagRepository(ABC):
    @abstractmethod
    def list(self) -> List[Tag]:
        """All tags ordered by name, each with its usage_count."""

    @abstractmethod
    def get(self, tag_id: int) -> Optional[Tag]: ...

    @abstractmethod
    def get_by_name(self, name: str) -> Optional[Tag]: ...

    @abstractmethod
    def existing_ids(self, tag_ids: List[int]) -> Set[int]: ...

    @abstractmethod
    def create(self, values: Dict[str, Any]) -> Tag: ...

    @abstractmethod
    def update(self, tag_id: int, values: Dict[str, Any]) -> Optional[Tag]: ...

    @abstractmethod
    def delete(self, tag_id: int) -> None: ...


class ScanRepository(ABC):
    @abstractmethod
    def find_all(self, filters: ScanFilters) -> List[Scan]:
        """Newest-created first, with tags and project_name embedded."""

    @abstractmethod
    def count(self, filters: ScanFilters) -> int: ...

    @abstractmethod
    def get(self, scan_id: int) -> Optional[Scan]: ...

    @abstractmethod
    def find_by_object_name(self, owner_id: Optional[int], object_name: str) -> Optional[Scan]: ...

    @abstractmethod
    def insert(self, values: Dict[str, Any]) -> Scan: ...

    @abstractmethod
    def update(self, scan_id: int, values: Dict[str, Any]) -> Optional[Scan]:
        """Write the given columns and refresh updated_at."""

    @abstractmethod
    def delete(self, scan_id: int) -> None:
        """Remove the row; versions and tag links go with it."""

    @abstractmethod
    def set_tags(self, scan_id: int, tag_ids: List[int]) -> None:
        """Replace every tag association of the scan with exactly tag_ids."""


class ScanVersionRepository(ABC):
    @abstractmethod
    def list_for_scan(self, scan_id: int) -> List[ScanVersion]:
        """Newest version first."""

    @abstractmethod
    def get(self, scan_id: int, version_number: int) -> Optional[ScanVersion]: ...

    @abstractmethod
    def latest_version_number(self, scan_id: int) -> int:
        """Highest version_number recorded for the scan, 0 when there is none."""

    @abstractmethod
    def create(
        self,
        scan_id: int,
        version_number: int,
        file_path: str,
        file_size: int,
        change_notes: Optional[str] = None,
    ) -> ScanVersion: ...


@dataclass
class Repositories:
    users: UserRepository
    projects: ProjectRepository
    tags: TagRepository
    scans: ScanRepository
    versions: ScanVersionRepository


class DataBackend(ABC):
    """Hands out a bundle of repositories for the duration of one unit of work."""

    def init(self) -> None:
        """Prepare the store (create tables, check connectivity). No-op by default."""

    @abstractmethod
    @contextmanager
    def session(self) -> Iterator[Repositories]: ...

    def close(self) -> None:
        pass
