# app/models/tag.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Table, func
from sqlalchemy.orm import relationship

from app.db.session import Base

scan_tags = Table(
    "scan_tags",
    Base.metadata,
    Column("scan_id", Integer, ForeignKey("scans.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    color = Column(String, nullable=False, default="#6366f1")
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    scans = relationship("Scan", secondary=scan_tags, back_populates="tags")
