# app/models/scan.py
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.models.tag import scan_tags


class Scan(Base):
    __tablename__ = "scans"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String, nullable=False)
    object_name = Column(String, nullable=False, index=True)
    scan_date = Column(Date, nullable=True, index=True)
    notes = Column(Text, nullable=True)
    scanner_model = Column(String, nullable=True)
    resolution = Column(String, nullable=True)
    accuracy = Column(String, nullable=True)
    file_path = Column(String, nullable=False)
    file_format = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    thumbnail_path = Column(String, nullable=True)
    current_version = Column(Integer, nullable=False, default=1)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", back_populates="scans")
    project = relationship("Project", back_populates="scans")
    tags = relationship("Tag", secondary=scan_tags, back_populates="scans", order_by="Tag.name")
    versions = relationship(
        "ScanVersion",
        back_populates="scan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ScanVersion.version_number.desc()",
    )

    @property
    def project_name(self):
        return self.project.name if self.project is not None else None
