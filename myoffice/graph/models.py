"""Pydantic models for the Graph wire shapes the transport needs (subset)."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"


class GraphErrorDetail(BaseModel):
    """Graph error object."""

    code: Optional[str] = None
    message: Optional[str] = None


class GraphErrorBody(BaseModel):
    """Body of a non-2xx Graph response: {"error": {"code", "message"}}."""

    error: GraphErrorDetail


class GraphPage(BaseModel):
    """One page of a collection response."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    value: list[Any] = []
    next_link: Optional[str] = Field(None, alias=ODATA_NEXT_LINK)


class UploadSession(BaseModel):
    """Response of createUploadSession; uploadUrl is single-use and needs no bearer token."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    upload_url: str = Field(alias="uploadUrl")
    expiration_date_time: Optional[str] = Field(None, alias="expirationDateTime")


class UploadProgress(BaseModel):
    """Client-side progress of one resumable upload. Never persisted."""

    session_url: str
    total_size: int
    chunk_size: int
    uploaded_bytes: int = 0

    @property
    def done(self) -> bool:
        return self.uploaded_bytes >= self.total_size

    def next_range(self) -> tuple[int, int]:
        """Inclusive [start, end] of the next chunk."""
        end = min(self.uploaded_bytes + self.chunk_size, self.total_size) - 1
        return self.uploaded_bytes, end

    def content_range(self) -> str:
        start, end = self.next_range()
        return f"bytes {start}-{end}/{self.total_size}"


class ConnectivityReport(BaseModel):
    """Outcome of the bounded /me self-test."""

    status: str  # "OK" | "FAILED"
    response_time_ms: Optional[int] = None
    user: Optional[str] = None
    error: Optional[str] = None
