"""Pydantic schemas for the HTTP surface.

Internal results are dataclasses (ImportReport, TermSweepReport,
SyncResult); these models are the API contract built from them.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(
        description="Service status",
        examples=["ok"],
    )
    platforms: List[str] = Field(
        default_factory=list,
        description="Platforms with complete credentials",
    )


class ErrorResponse(BaseModel):
    """Error body returned by every route."""

    error: str = Field(description="Error message")
    detail: Optional[str] = Field(default=None, description="Additional context")


class ImportReportResponse(BaseModel):
    """Counters returned by POST /import/{platform}."""

    imported: int = Field(default=0, description="New canonical entities created")
    updated: int = Field(default=0, description="Existing entities merged (updateExisting)")
    skipped: int = Field(default=0, description="Existing entities left untouched")
    errors: int = Field(default=0, description="Rows that failed")
    dry_run: bool = Field(default=False, description="Nothing was written")
    error_messages: List[str] = Field(default_factory=list, description="Per-row failures")

    model_config = ConfigDict(from_attributes=True)


class TermSweepResponse(BaseModel):
    """Counters returned by POST /sync-all/{platform}."""

    processed: int = Field(default=0, description="Terms modified within the window")
    synced: int = Field(default=0, description="Terms pushed successfully")
    errors: int = Field(default=0, description="Terms that failed")
    by_kind: Dict[str, int] = Field(default_factory=dict, description="Processed terms per kind")
    dry_run: bool = Field(default=False, description="Nothing was pushed")
    error_messages: List[str] = Field(default_factory=list, description="Per-term failures")

    model_config = ConfigDict(from_attributes=True)


class TermPullRequest(BaseModel):
    """Body of POST /sync-term/{platform}."""

    attribute_name: str = Field(alias="attributeName", description="Platform attribute, e.g. 'Autor'")
    term_name: str = Field(alias="termName", description="Term name within the attribute")

    model_config = ConfigDict(populate_by_name=True)


class TermPullResponse(BaseModel):
    action: str = Field(description="created | updated")
    term_id: str
    kind: str
    name: str
    external_id: str


class SyncResultResponse(BaseModel):
    """Outcome of a manual push (POST /sync/{kind}/{entity_id}/{platform})."""

    kind: str
    entity_id: str
    platform: str
    action: str = Field(description="created | updated | synced")
    external_id: Optional[str] = Field(default=None, description="Platform id after the push")

    model_config = ConfigDict(from_attributes=True)
