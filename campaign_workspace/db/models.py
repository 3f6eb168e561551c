"""
SQLAlchemy models for Campaign Workspace.

file_records carries no foreign key to campaigns. CampaignRegistry orders
the deletes (records first, then the campaign).
"""

import uuid
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Index, String, Text
from sqlalchemy.sql import func

from .base import Base


def generate_id() -> str:
    return str(uuid.uuid4())


class CampaignModel(Base):
    """A named grouping of files owned by one user."""

    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_id)
    owner = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_campaigns_owner_name", "owner", "name"),)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "owner": self.owner,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class FileRecordModel(Base):
    """Metadata row linking a campaign to an input blob's storage key."""

    __tablename__ = "file_records"

    id = Column(String(36), primary_key=True, default=generate_id)
    owner = Column(String(128), nullable=False, index=True)
    campaign_id = Column(String(36), nullable=False, index=True)

    file_name = Column(Text, nullable=False)
    content_type = Column(String(255), nullable=True)
    storage_key = Column(String(1024), nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("ix_file_records_campaign_created", "campaign_id", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "owner": self.owner,
            "campaign_id": self.campaign_id,
            "file_name": self.file_name,
            "content_type": self.content_type,
            "storage_key": self.storage_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
