# app/db/base.py
from app.db.session import Base

# Import all models so Base.metadata knows every table before create_all
from app.models.user import User
from app.models.project import Project
from app.models.tag import Tag, scan_tags
from app.models.scan import Scan
from app.models.scan_version import ScanVersion
