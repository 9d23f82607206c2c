"""
Pydantic models for the chunked upload and report analysis endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"


class ChunkUpload(BaseModel):
    """One base64 fragment of a file belonging to an upload session."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(
        ...,
        alias="sessionId",
        pattern=SESSION_ID_PATTERN,
        description="Client-generated identifier grouping all chunks of a request.",
    )
    file_index: int = Field(..., alias="fileIndex", ge=0)
    mime_type: str = Field(
        "application/pdf",
        alias="mimeType",
        min_length=1,
        description="MIME type declared by the client for the whole file.",
    )
    chunk_index: int = Field(..., alias="chunkIndex", ge=0)
    chunk_count: int = Field(..., alias="chunkCount", ge=1)
    data: str = Field(..., description="Base64 text fragment.")


class UploadAck(BaseModel):
    """Acknowledgement returned for every stored chunk."""

    success: bool = True


class AnalysisExecuteRequest(BaseModel):
    """Finalize an upload session and stream the generated report."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", pattern=SESSION_ID_PATTERN)
    previous_report_content: Optional[str] = Field(
        None,
        alias="previousReportContent",
        description="Prior report the model should compare the new journals against.",
    )
    compare_with_latest: bool = Field(
        False,
        alias="compareWithLatest",
        description="Use the most recent saved report when no content is supplied.",
    )


class ReportCreateRequest(BaseModel):
    """Payload for saving a generated report."""

    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)


class SavedReport(BaseModel):
    """A report previously generated and saved by the user."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    content: str
    created_at: datetime = Field(..., serialization_alias="createdAt")


__all__ = [
    "SESSION_ID_PATTERN",
    "AnalysisExecuteRequest",
    "ChunkUpload",
    "ReportCreateRequest",
    "SavedReport",
    "UploadAck",
]
