"""
Campaign Workspace

Campaigns of uploaded files and the output artifacts derived from them.
"""

import importlib.metadata

__version__ = importlib.metadata.version("campaign-workspace")

from .errors import WorkspaceError
from .pipeline import ArtifactPipeline, GenerationResult
from .registry import CampaignRegistry
from .storage import Bucket, ObjectStore, create_object_store
from .workspace import FileListing, UploadResult, Workspace

__all__ = [
    "ArtifactPipeline",
    "Bucket",
    "CampaignRegistry",
    "FileListing",
    "GenerationResult",
    "ObjectStore",
    "UploadResult",
    "Workspace",
    "WorkspaceError",
    "create_object_store",
]
