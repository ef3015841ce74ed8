# app/repositories/sql.py
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Set

from sqlalchemy import func, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.core.errors import DataStoreError
from app.core.logging import logger
from app.db.session import Base, create_db_engine, create_session_factory
from app.models.project import Project as ProjectModel
from app.models.scan import Scan as ScanModel
from app.models.scan_version import ScanVersion as ScanVersionModel
from app.models.tag import Tag as TagModel, scan_tags
from app.models.user import User as UserModel
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


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlUserRepository(UserRepository):
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[UserInDB]:
        user = self.db.query(UserModel).filter(UserModel.id == user_id).first()
        return UserInDB.model_validate(user) if user else None

    def get_by_email(self, email: str) -> Optional[UserInDB]:
        user = self.db.query(UserModel).filter(UserModel.email == email).first()
        return UserInDB.model_validate(user) if user else None

    def create(self, email: str, password_hash: str, name: str) -> UserInDB:
        user = UserModel(email=email, password_hash=password_hash, name=name)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return UserInDB.model_validate(user)


class SqlProjectRepository(ProjectRepository):
    def __init__(self, db: Session):
        self.db = db

    def _with_counts(self):
        return (
            self.db.query(ProjectModel, func.count(ScanModel.id))
            .outerjoin(ScanModel, ScanModel.project_id == ProjectModel.id)
            .group_by(ProjectModel.id)
        )

    @staticmethod
    def _to_schema(row) -> Project:
        project, scan_count = row
        return Project.model_validate(project).model_copy(update={"scan_count": scan_count})

    def list(self) -> List[Project]:
        rows = self._with_counts().order_by(ProjectModel.name.asc()).all()
        return [self._to_schema(row) for row in rows]

    def get(self, project_id: int) -> Optional[Project]:
        row = self._with_counts().filter(ProjectModel.id == project_id).first()
        return self._to_schema(row) if row else None

    def get_by_name(self, name: str) -> Optional[Project]:
        row = self._with_counts().filter(ProjectModel.name == name).first()
        return self._to_schema(row) if row else None

    def create(self, values: Dict[str, Any]) -> Project:
        project = ProjectModel(**values)
        self.db.add(project)
        self.db.commit()
        return self.get(project.id)

    def update(self, project_id: int, values: Dict[str, Any]) -> Optional[Project]:
        project = self.db.query(ProjectModel).filter(ProjectModel.id == project_id).first()
        if project is None:
            return None
        for field, value in values.items():
            setattr(project, field, value)
        project.updated_at = func.now()
        self.db.commit()
        return self.get(project_id)

    def delete(self, project_id: int) -> None:
        project = self.db.query(ProjectModel).filter(ProjectModel.id == project_id).first()
        if project is not None:
            self.db.delete(project)
            self.db.commit()


class SqlTagRepository(TagRepository):
    def __init__(self, db: Session):
        self.db = db

    def _with_usage(self):
        return (
            self.db.query(TagModel, func.count(scan_tags.c.scan_id))
            .outerjoin(scan_tags, scan_tags.c.tag_id == TagModel.id)
            .group_by(TagModel.id)
        )

    @staticmethod
    def _to_schema(row) -> Tag:
        tag, usage_count = row
        return Tag.model_validate(tag).model_copy(update={"usage_count": usage_count})

    def list(self) -> List[Tag]:
        rows = self._with_usage().order_by(TagModel.name.asc()).all()
        return [self._to_schema(row) for row in rows]

    def get(self, tag_id: int) -> Optional[Tag]:
        row = self._with_usage().filter(TagModel.id == tag_id).first()
        return self._to_schema(row) if row else None

    def get_by_name(self, name: str) -> Optional[Tag]:
        row = self._with_usage().filter(TagModel.name == name).first()
        return self._to_schema(row) if row else None

    def existing_ids(self, tag_ids: List[int]) -> Set[int]:
        if not tag_ids:
            return set()
        rows = self.db.query(TagModel.id).filter(TagModel.id.in_(tag_ids)).all()
        return {row[0] for row in rows}

    def create(self, values: Dict[str, Any]) -> Tag:
        tag = TagModel(**values)
        self.db.add(tag)
        self.db.commit()
        return self.get(tag.id)

    def update(self, tag_id: int, values: Dict[str, Any]) -> Optional[Tag]:
        tag = self.db.query(TagModel).filter(TagModel.id == tag_id).first()
        if tag is None:
            return None
        for field, value in values.items():
            setattr(tag, field, value)
        self.db.commit()
        return self.get(tag_id)

    def delete(self, tag_id: int) -> None:
        tag = self.db.query(TagModel).filter(TagModel.id == tag_id).first()
        if tag is not None:
            self.db.delete(tag)
            self.db.commit()


class SqlScanRepository(ScanRepository):
    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, filters: ScanFilters):
        query = self.db.query(ScanModel)
        if filters.owner_id is not None:
            query = query.filter(ScanModel.user_id == filters.owner_id)
        if filters.project_id is not None:
            query = query.filter(ScanModel.project_id == filters.project_id)
        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            query = query.filter(or_(
                ScanModel.object_name.ilike(pattern, escape="\\"),
                ScanModel.filename.ilike(pattern, escape="\\"),
                ScanModel.notes.ilike(pattern, escape="\\"),
            ))
        return query

    def _load(self, scan_id: int) -> Optional[ScanModel]:
        return self.db.query(ScanModel).filter(ScanModel.id == scan_id).first()

    def find_all(self, filters: ScanFilters) -> List[Scan]:
        scans = (
            self._filtered(filters)
            .options(selectinload(ScanModel.tags), joinedload(ScanModel.project))
            .order_by(ScanModel.created_at.desc(), ScanModel.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )
        return [Scan.model_validate(scan) for scan in scans]

    def count(self, filters: ScanFilters) -> int:
        return self._filtered(filters).count()

    def get(self, scan_id: int) -> Optional[Scan]:
        scan = self._load(scan_id)
        return Scan.model_validate(scan) if scan else None

    def find_by_object_name(self, owner_id: Optional[int], object_name: str) -> Optional[Scan]:
        scan = (
            self.db.query(ScanModel)
            .filter(ScanModel.user_id == owner_id, ScanModel.object_name == object_name)
            .first()
        )
        return Scan.model_validate(scan) if scan else None

    def insert(self, values: Dict[str, Any]) -> Scan:
        scan = ScanModel(**values)
        self.db.add(scan)
        self.db.commit()
        return self.get(scan.id)

    def update(self, scan_id: int, values: Dict[str, Any]) -> Optional[Scan]:
        scan = self._load(scan_id)
        if scan is None:
            return None
        for field, value in values.items():
            setattr(scan, field, value)
        scan.updated_at = func.now()
        self.db.commit()
        return self.get(scan_id)

    def delete(self, scan_id: int) -> None:
        scan = self._load(scan_id)
        if scan is not None:
            self.db.delete(scan)
            self.db.commit()

    def set_tags(self, scan_id: int, tag_ids: List[int]) -> None:
        # Both statements share the session's transaction
        self.db.execute(scan_tags.delete().where(scan_tags.c.scan_id == scan_id))
        rows = [{"scan_id": scan_id, "tag_id": tag_id} for tag_id in unique_ids(tag_ids)]
        if rows:
            self.db.execute(scan_tags.insert(), rows)
        self.db.commit()


class SqlScanVersionRepository(ScanVersionRepository):
    def __init__(self, db: Session):
        self.db = db

    def list_for_scan(self, scan_id: int) -> List[ScanVersion]:
        versions = (
            self.db.query(ScanVersionModel)
            .filter(ScanVersionModel.scan_id == scan_id)
            .order_by(ScanVersionModel.version_number.desc())
            .all()
        )
        return [ScanVersion.model_validate(version) for version in versions]

    def get(self, scan_id: int, version_number: int) -> Optional[ScanVersion]:
        version = (
            self.db.query(ScanVersionModel)
            .filter(ScanVersionModel.scan_id == scan_id, ScanVersionModel.version_number == version_number)
            .first()
        )
        return ScanVersion.model_validate(version) if version else None

    def latest_version_number(self, scan_id: int) -> int:
        latest = (
            self.db.query(func.max(ScanVersionModel.version_number))
            .filter(ScanVersionModel.scan_id == scan_id)
            .scalar()
        )
        return latest or 0

    def create(
        self,
        scan_id: int,
        version_number: int,
        file_path: str,
        file_size: int,
        change_notes: Optional[str] = None,
    ) -> ScanVersion:
        version = ScanVersionModel(
            scan_id=scan_id,
            version_number=version_number,
            file_path=file_path,
            file_size=file_size,
            change_notes=change_notes,
        )
        self.db.add(version)
        self.db.commit()
        self.db.refresh(version)
        return ScanVersion.model_validate(version)


class SqlDataBackend(DataBackend):
    """SQLAlchemy-backed store: a SQLite file or a Postgres server."""

    def __init__(self, database_uri: str = None, engine: Engine = None):
        if engine is None:
            engine = create_db_engine(database_uri)
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    def init(self) -> None:
        import app.db.base  # noqa: F401  (registers every model on Base.metadata)

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created")

    @contextmanager
    def session(self) -> Iterator[Repositories]:
        db = self.session_factory()
        try:
            yield Repositories(
                users=SqlUserRepository(db),
                projects=SqlProjectRepository(db),
                tags=SqlTagRepository(db),
                scans=SqlScanRepository(db),
                versions=SqlScanVersionRepository(db),
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error: {str(e)}")
            raise DataStoreError("Database request failed") from e
        finally:
            db.close()

    def close(self) -> None:
        self.engine.dispose()
