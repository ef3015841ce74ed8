# app/core/config.py
from pydantic_settings import BaseSettings
from typing import Optional, Any, List, Literal
import secrets
from ast import literal_eval


class Settings(BaseSettings):
    PROJECT_NAME: str = "Scan Catalog API"
    API_V1_STR: str = "/api/v1"

    # Auth
    SECRET_KEY: str = secrets.token_urlsafe(32)
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    # Which store keeps the metadata: "sql" (SQLite/Postgres) or "supabase" (PostgREST)
    DATA_BACKEND: Literal["sql", "supabase"] = "sql"

    # Database settings
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Supabase (REST data backend and/or storage backend)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_BUCKET: str = "scans"

    # Blob storage: "local", "supabase" or "gcs"
    STORAGE_BACKEND: Literal["local", "supabase", "gcs"] = "local"
    LOCAL_STORAGE_DIR: str = "./storage"
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Google Cloud Storage
    GCS_BUCKET_NAME: Optional[str] = None
    GCS_PROJECT_ID: Optional[str] = None
    GCS_CREDENTIALS_FILE: Optional[str] = None

    # Outbound HTTP (Supabase REST / Storage)
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # File upload settings
    UPLOAD_TMP_DIR: str = "./uploads"
    MAX_UPLOAD_SIZE: int = 500 * 1024 * 1024  # 500MB
    ALLOWED_SCAN_EXTENSIONS: List[str] = ["stl", "ply", "obj", "step", "stp", "iges", "igs"]
    ALLOWED_THUMBNAIL_FORMATS: List[str] = ["png", "jpeg", "webp"]

    # Optional account created on first start
    FIRST_USER_EMAIL: Optional[str] = None
    FIRST_USER_PASSWORD: Optional[str] = None
    FIRST_USER_NAME: str = "Admin"

    class Config:
        env_file = ".env"
        case_sensitive = True

    def __init__(self, **data: Any):
        super().__init__(**data)

        # Process CORS origins from string representation if needed
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            try:
                self.BACKEND_CORS_ORIGINS = literal_eval(self.BACKEND_CORS_ORIGINS)
            except (ValueError, SyntaxError):
                self.BACKEND_CORS_ORIGINS = []

        # Construct DB URI if not provided directly
        if not self.SQLALCHEMY_DATABASE_URI:
            if self.POSTGRES_SERVER and self.POSTGRES_USER and self.POSTGRES_PASSWORD and self.POSTGRES_DB:
                self.SQLALCHEMY_DATABASE_URI = (
                    f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                    f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
                )
            else:
                # Default to SQLite if PostgreSQL settings are not complete
                self.SQLALCHEMY_DATABASE_URI = "sqlite:///./scan_catalog.db"

        self.SUPABASE_URL = self.SUPABASE_URL.strip().rstrip("/")

    @property
    def supabase_key(self) -> str:
        """Service key when present, anon key otherwise, with stray whitespace removed."""
        raw = self.SUPABASE_SERVICE_KEY or self.SUPABASE_ANON_KEY or ""
        return "".join(raw.split())


settings = Settings()
