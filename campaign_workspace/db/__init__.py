"""
Database package for Campaign Workspace.
"""

from .audit_models import AuditLogModel
from .audit_service import AuditService
from .base import Base, get_db, get_engine, init_database
from .models import CampaignModel, FileRecordModel
from .repository import MetadataRepository

__all__ = [
    "AuditLogModel",
    "AuditService",
    "Base",
    "CampaignModel",
    "FileRecordModel",
    "MetadataRepository",
    "get_db",
    "get_engine",
    "init_database",
]
