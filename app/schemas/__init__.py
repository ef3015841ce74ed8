from app.schemas.base import ErrorResponse
from app.schemas.user import AuthUser, AuthResponse, LoginRequest, MeResponse, UserCreate, UserInDB
from app.schemas.tag import Tag, TagCreate, TagSummary, TagUpdate
from app.schemas.project import Project, ProjectCreate, ProjectUpdate
from app.schemas.scan import (
    FileUrlResponse,
    Pagination,
    Scan,
    ScanCreate,
    ScanDetail,
    ScanPage,
    ScanUpdate,
    ScanVersion,
)
