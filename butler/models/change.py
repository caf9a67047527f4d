"""Data models for commits and pull requests produced by a batch."""

from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, Field


class TreeEntry(BaseModel):
    """A changed file to overlay on the parent tree."""
    path: str = Field(..., description="Repository-relative file path")
    content: Optional[str] = Field(None, description="Inline UTF-8 content")
    blob_sha: Optional[str] = Field(None, description="Blob SHA for binary content")

    def to_github(self) -> dict:
        entry = {"path": self.path, "mode": "100644", "type": "blob"}
        if self.blob_sha is not None:
            entry["sha"] = self.blob_sha
        else:
            entry["content"] = self.content or ""
        return entry


class PRResult(BaseModel):
    """Outcome of reconciling a pull request."""
    url: str
    number: int
    created: bool = Field(..., description="False when an open PR was updated in place")
    warnings: List[str] = Field(default_factory=list, description="Failed best-effort steps")


class ApplyResult(BaseModel):
    """Successful /apply response."""
    ok: bool = True
    branch: str
    commit: str
    pr_url: str = Field(..., serialization_alias="prUrl")
    created: bool
    warnings: List[str] = Field(default_factory=list)

    def to_response(self) -> dict:
        body = self.model_dump(by_alias=True)
        if not body["warnings"]:
            body.pop("warnings")
        return body
