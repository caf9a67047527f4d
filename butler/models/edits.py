"""Edit operations accepted by /apply and github.write_file."""

from __future__ import annotations

import base64
import binascii
import re
from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class WriteEdit(BaseModel):
    """Whole-file write."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    op: Literal["write"] = "write"
    path: str = Field(..., min_length=1, description="Repository-relative file path")
    content: str = Field(..., description="File content, encoded per `encoding`")
    mode: Literal["create", "overwrite", "append"] = Field(default="overwrite")
    encoding: Literal["utf8", "base64"] = Field(default="utf8")

    @model_validator(mode="after")
    def _check_encoding(self) -> "WriteEdit":
        if self.encoding == "base64":
            try:
                base64.b64decode(self.content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"content is not valid base64: {e}")
        return self

    def decoded(self) -> bytes:
        """Raw bytes of the submitted content."""
        if self.encoding == "base64":
            return base64.b64decode(self.content)
        return self.content.encode("utf-8")


class ReplaceEdit(BaseModel):
    """Find/replace inside an existing file."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    op: Literal["replace"] = "replace"
    path: str = Field(..., min_length=1, description="Repository-relative file path")
    search: str = Field(..., min_length=1, description="Literal text or pattern to find")
    replace: str = Field(..., description="Replacement text")
    match_all: bool = Field(
        default=True,
        validation_alias=AliasChoices("all", "matchAll", "match_all"),
        serialization_alias="all",
    )
    is_regex: bool = Field(
        default=False,
        validation_alias=AliasChoices("isRegex", "is_regex"),
        serialization_alias="isRegex",
    )

    @model_validator(mode="after")
    def _check_pattern(self) -> "ReplaceEdit":
        if self.is_regex:
            try:
                pattern = re.compile(self.search)
            except re.error as e:
                raise ValueError(f"invalid search pattern: {e}")
            # The replacement template is parsed even when nothing matches
            try:
                pattern.sub(self.replace, "")
            except (re.error, IndexError) as e:
                raise ValueError(f"invalid replacement template: {e}")
        return self

    def apply_to(self, text: str) -> str:
        """Return `text` with the first or every match substituted."""
        count = 0 if self.match_all else 1
        if self.is_regex:
            return re.sub(self.search, self.replace, text, count=count)
        if self.match_all:
            return text.replace(self.search, self.replace)
        return text.replace(self.search, self.replace, 1)


EditOperation = Annotated[Union[WriteEdit, ReplaceEdit], Field(discriminator="op")]

_BRANCH_SPACES = re.compile(r"\s+")
_BRANCH_INVALID = re.compile(r"[^a-zA-Z0-9/_-]")


def sanitize_branch(name: str) -> str:
    """Normalize a caller-supplied branch name into a safe ref name."""
    cleaned = _BRANCH_SPACES.sub("-", name.strip())
    cleaned = _BRANCH_INVALID.sub("", cleaned)
    return cleaned[:100]
