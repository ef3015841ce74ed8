# app/repositories/rest.py
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Set

from app.core.logging import logger
from app.db.rest import SupabaseRestClient, eq, ilike_contains, in_list
from app.repositories.base import (
    DataBackend,
    ProjectRepository,
    Repositories,
    ScanFilters,
    ScanRepository,
    ScanVersionRepository,
    TagRepository,
    UserRepository,
    unique_ids,
)
from app.schemas.project import Project
from app.schemas.scan import Scan, ScanVersion
from app.schemas.tag import Tag
from app.schemas.user import UserInDB

SCAN_SELECT = "*,projects(name),scan_tags(tags(id,name,color))"
PROJECT_SELECT = "*,scans(count)"
TAG_SELECT = "*,scan_tags(count)"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _embedded_count(row: Dict[str, Any], relation: str) -> int:
    embedded = row.pop(relation, None) or []
    return embedded[0].get("count", 0) if embedded else 0


def _project_from_row(row: Dict[str, Any]) -> Project:
    scan_count = _embedded_count(row, "scans")
    return Project.model_validate({**row, "scan_count": scan_count})


def _tag_from_row(row: Dict[str, Any]) -> Tag:
    usage_count = _embedded_count(row, "scan_tags")
    return Tag.model_validate({**row, "usage_count": usage_count})


def _scan_from_row(row: Dict[str, Any]) -> Scan:
    project = row.pop("projects", None)
    links = row.pop("scan_tags", None) or []
    tags = sorted((link["tags"] for link in links if link.get("tags")), key=lambda tag: tag["name"])
    return Scan.model_validate({
        **row,
        "project_name": project["name"] if project else None,
        "tags": tags,
    })


class RestUserRepository(UserRepository):
    def __init__(self, client: SupabaseRestClient):
        self.client = client

    def get_by_id(self, user_id: int) -> Optional[UserInDB]:
        row = self.client.select_one("users", [("select", "*"), ("id", eq(user_id))])
        return UserInDB.model_validate(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserInDB]:
        row = self.client.select_one("users", [("select", "*"), ("email", eq(email))])
        return UserInDB.model_validate(row) if row else None

    def create(self, email: str, password_hash: str, name: str) -> UserInDB:
        rows = self.client.insert("users", {"email": email, "password_hash": password_hash, "name": name})
        return UserInDB.model_validate(rows[0])


class RestProjectRepository(ProjectRepository):
    def __init__(self, client: SupabaseRestClient):
        self.client = client

    def list(self) -> List[Project]:
        rows = self.client.select("projects", [("select", PROJECT_SELECT), ("order", "name.asc")])
        return [_project_from_row(row) for row in rows]

    def get(self, project_id: int) -> Optional[Project]:
        row = self.client.select_one("projects", [("select", PROJECT_SELECT), ("id", eq(project_id))])
        return _project_from_row(row) if row else None

    def get_by_name(self, name: str) -> Optional[Project]:
        row = self.client.select_one("projects", [("select", PROJECT_SELECT), ("name", eq(name))])
        return _project_from_row(row) if row else None

    def create(self, values: Dict[str, Any]) -> Project:
        rows = self.client.insert("projects", values, select=PROJECT_SELECT)
        return _project_from_row(rows[0])

    def update(self, project_id: int, values: Dict[str, Any]) -> Optional[Project]:
        rows = self.client.update(
            "projects", [("id", eq(project_id))], {**values, "updated_at": _now()}, select=PROJECT_SELECT
        )
        return _project_from_row(rows[0]) if rows else None

    def delete(self, project_id: int) -> None:
        self.client.delete("projects", [("id", eq(project_id))])


class RestTagRepository(TagRepository):
    def __init__(self, client: SupabaseRestClient):
        self.client = client

    def list(self) -> List[Tag]:
        rows = self.client.select("tags", [("select", TAG_SELECT), ("order", "name.asc")])
        return [_tag_from_row(row) for row in rows]

    def get(self, tag_id: int) -> Optional[Tag]:
        row = self.client.select_one("tags", [("select", TAG_SELECT), ("id", eq(tag_id))])
        return _tag_from_row(row) if row else None

    def get_by_name(self, name: str) -> Optional[Tag]:
        row = self.client.select_one("tags", [("select", TAG_SELECT), ("name", eq(name))])
        return _tag_from_row(row) if row else None

    def existing_ids(self, tag_ids: List[int]) -> Set[int]:
        if not tag_ids:
            return set()
        rows = self.client.select("tags", [("select", "id"), ("id", in_list(unique_ids(tag_ids)))])
        return {row["id"] for row in rows}

    def create(self, values: Dict[str, Any]) -> Tag:
        rows = self.client.insert("tags", values, select=TAG_SELECT)
        return _tag_from_row(rows[0])

    def update(self, tag_id: int, values: Dict[str, Any]) -> Optional[Tag]:
        rows = self.client.update("tags", [("id", eq(tag_id))], values, select=TAG_SELECT)
        return _tag_from_row(rows[0]) if rows else None

    def delete(self, tag_id: int) -> None:
        self.client.delete("tags", [("id", eq(tag_id))])


class RestScanRepository(ScanRepository):
    def __init__(self, client: SupabaseRestClient):
        self.client = client

    @staticmethod
    def _filter_params(filters: ScanFilters) -> List:
        params = []
        if filters.owner_id is not None:
            params.append(("user_id", eq(filters.owner_id)))
        if filters.project_id is not None:
            params.append(("project_id", eq(filters.project_id)))
        if filters.search:
            pattern = ilike_contains(filters.search)
            params.append((
                "or",
                f"(object_name.ilike.{pattern},filename.ilike.{pattern},notes.ilike.{pattern})",
            ))
        return params

    def find_all(self, filters: ScanFilters) -> List[Scan]:
        params = [("select", SCAN_SELECT)] + self._filter_params(filters) + [
            ("order", "created_at.desc,id.desc"),
            ("limit", str(filters.limit)),
            ("offset", str(filters.offset)),
        ]
        return [_scan_from_row(row) for row in self.client.select("scans", params)]

    def count(self, filters: ScanFilters) -> int:
        return self.client.count("scans", self._filter_params(filters))

    def get(self, scan_id: int) -> Optional[Scan]:
        row = self.client.select_one("scans", [("select", SCAN_SELECT), ("id", eq(scan_id))])
        return _scan_from_row(row) if row else None

    def find_by_object_name(self, owner_id: Optional[int], object_name: str) -> Optional[Scan]:
        row = self.client.select_one(
            "scans",
            [("select", SCAN_SELECT), ("user_id", eq(owner_id)), ("object_name", eq(object_name))],
        )
        return _scan_from_row(row) if row else None

    def insert(self, values: Dict[str, Any]) -> Scan:
        rows = self.client.insert("scans", values, select=SCAN_SELECT)
        return _scan_from_row(rows[0])

    def update(self, scan_id: int, values: Dict[str, Any]) -> Optional[Scan]:
        rows = self.client.update(
            "scans", [("id", eq(scan_id))], {**values, "updated_at": _now()}, select=SCAN_SELECT
        )
        return _scan_from_row(rows[0]) if rows else None

    def delete(self, scan_id: int) -> None:
        # scan_versions and scan_tags rows go through ON DELETE CASCADE
        self.client.delete("scans", [("id", eq(scan_id))])

    def set_tags(self, scan_id: int, tag_ids: List[int]) -> None:
        # Two requests, no transaction: a failure in between leaves the scan untagged
        self.client.delete("scan_tags", [("scan_id", eq(scan_id))])
        rows = [{"scan_id": scan_id, "tag_id": tag_id} for tag_id in unique_ids(tag_ids)]
        if rows:
            self.client.insert("scan_tags", rows)


class RestScanVersionRepository(ScanVersionRepository):
    def __init__(self, client: SupabaseRestClient):
        self.client = client

    def list_for_scan(self, scan_id: int) -> List[ScanVersion]:
        rows = self.client.select(
            "scan_versions",
            [("select", "*"), ("scan_id", eq(scan_id)), ("order", "version_number.desc")],
        )
        return [ScanVersion.model_validate(row) for row in rows]

    def get(self, scan_id: int, version_number: int) -> Optional[ScanVersion]:
        row = self.client.select_one(
            "scan_versions",
            [("select", "*"), ("scan_id", eq(scan_id)), ("version_number", eq(version_number))],
        )
        return ScanVersion.model_validate(row) if row else None

    def latest_version_number(self, scan_id: int) -> int:
        row = self.client.select_one(
            "scan_versions",
            [("select", "version_number"), ("scan_id", eq(scan_id)), ("order", "version_number.desc")],
        )
        return row["version_number"] if row else 0

    def create(
        self,
        scan_id: int,
        version_number: int,
        file_path: str,
        file_size: int,
        change_notes: Optional[str] = None,
    ) -> ScanVersion:
        rows = self.client.insert("scan_versions", {
            "scan_id": scan_id,
            "version_number": version_number,
            "file_path": file_path,
            "file_size": file_size,
            "change_notes": change_notes,
        })
        return ScanVersion.model_validate(rows[0])


class RestDataBackend(DataBackend):
    """Supabase PostgREST store. Tables come from scripts/supabase_schema.sql."""

    def __init__(self, client: SupabaseRestClient):
        self.client = client

    def init(self) -> None:
        logger.info(f"Using Supabase REST data backend at {self.client.rest_url}")

    @contextmanager
    def session(self) -> Iterator[Repositories]:
        yield Repositories(
            users=RestUserRepository(self.client),
            projects=RestProjectRepository(self.client),
            tags=RestTagRepository(self.client),
            scans=RestScanRepository(self.client),
            versions=RestScanVersionRepository(self.client),
        )

    def close(self) -> None:
        self.client.close()
