"""
Request and response bodies for the HTTP API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CampaignCreate(BaseModel):
    """Body of POST /campaigns. Emptiness is checked by the repository."""

    name: str = Field(..., description="Campaign name; duplicates are allowed")


class CampaignRename(BaseModel):
    name: str = Field(..., description="New campaign name")


class GenerateOutputRequest(BaseModel):
    """Body of POST /generate-output.

    Unknown fields, including any destination key, are ignored: the output
    key is always derived from ``filePath``.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    file_path: str = Field(..., alias="filePath", description="Input storage key")
    user_id: str = Field(..., alias="userId", description="Owner of the input key")
    if_absent: bool = Field(
        default=False,
        alias="ifAbsent",
        description="Return the existing output instead of failing when already generated",
    )


class GenerateOutputResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_url: str = Field(..., alias="publicUrl")


class GenerationResponse(BaseModel):
    source_key: str
    destination_key: str
    public_url: str
    size_bytes: int
    content_type: Optional[str] = None
    already_existed: bool = False
