"""Request bodies for the HTTP surface."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .edits import EditOperation, sanitize_branch


class ApplyRequest(BaseModel):
    """Body of POST /apply."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    owner: Optional[str] = None
    repo: Optional[str] = None
    branch: str = Field(..., min_length=1)
    base_branch: str = Field(default="main", alias="baseBranch", min_length=1)
    pr_title: str = Field(..., alias="prTitle", min_length=1)
    pr_body: str = Field(default="", alias="prBody")
    edits: List[EditOperation] = Field(..., min_length=1)
    branch_strategy: Literal["create", "reuse"] = Field(default="create", alias="branchStrategy")
    labels: List[str] = Field(default_factory=list)
    reviewers: List[str] = Field(default_factory=list)

    @field_validator("branch")
    @classmethod
    def _sanitize(cls, value: str) -> str:
        cleaned = sanitize_branch(value)
        if not cleaned:
            raise ValueError("branch name is empty after sanitizing")
        return cleaned


class PlanRepo(BaseModel):
    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class PlanRequest(BaseModel):
    """Body of POST /plan."""
    model_config = ConfigDict(populate_by_name=True)

    goal: str = Field(..., min_length=1, description="Natural-language request")
    repo: PlanRepo
    base_branch: str = Field(default="main", alias="baseBranch")


class PlanStep(BaseModel):
    tool: str = Field(..., min_length=1, description='Qualified action, e.g. "github.write_file"')
    args: Dict[str, Any] = Field(default_factory=dict)

    @property
    def tool_name(self) -> str:
        return self.tool.split(".", 1)[0]

    @property
    def action(self) -> str:
        parts = self.tool.split(".", 1)
        return parts[1] if len(parts) > 1 else ""


class RunRequest(BaseModel):
    """Body of POST /run."""
    model_config = ConfigDict(populate_by_name=True)

    repo: str = Field(..., min_length=1, description="Policy repo key")
    branch: str = Field(..., min_length=1)
    env: Literal["staging", "prod"] = "staging"
    dry_run: bool = Field(default=False, alias="dryRun")
    steps: List[PlanStep] = Field(..., min_length=1)
