# app/models/__init__.py
# Import models here so they are registered with SQLAlchemy's metadata
from app.models.user import User
from app.models.project import Project
from app.models.tag import Tag, scan_tags
from app.models.scan import Scan
from app.models.scan_version import ScanVersion
