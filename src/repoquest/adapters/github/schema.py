"""Pydantic models describing the GitHub REST payloads the forge adapter reads."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from datetime import datetime  # noqa: TC003
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GitHubBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LabelPayload(GitHubBaseModel):
    name: str


def _coerce_labels(value: object) -> object:
    # Label listings return objects, but some endpoints echo plain names.
    if isinstance(value, list):
        items = cast(list[object], value)
        return [{"name": item} if isinstance(item, str) else item for item in items]
    return value


class IssuePayload(GitHubBaseModel):
    number: int
    title: str
    body: str | None = None
    state: Literal["open", "closed"]
    labels: list[LabelPayload] = Field(default_factory=list)
    pull_request: Mapping[str, object] | None = None

    _normalize_labels = field_validator("labels", mode="before")(_coerce_labels)

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


class BranchRefPayload(GitHubBaseModel):
    ref: str
    sha: str


class PullPayload(GitHubBaseModel):
    number: int
    title: str
    body: str | None = None
    state: Literal["open", "closed"]
    merged: bool | None = None
    merged_at: datetime | None = None
    head: BranchRefPayload
    base: BranchRefPayload | None = None
    labels: list[LabelPayload] = Field(default_factory=list)

    _normalize_labels = field_validator("labels", mode="before")(_coerce_labels)

    @property
    def is_merged(self) -> bool:
        return bool(self.merged) or self.merged_at is not None


class CommitRefPayload(GitHubBaseModel):
    sha: str


class BranchPayload(GitHubBaseModel):
    name: str
    commit: CommitRefPayload


class MergeResultPayload(GitHubBaseModel):
    sha: str | None = None
    merged: bool
    message: str = ""


class ContentPayload(GitHubBaseModel):
    type: str
    path: str
    encoding: str | None = None
    content: str = ""

    def decoded(self) -> str:
        if self.encoding != "base64":
            return self.content
        try:
            raw = base64.b64decode(self.content, validate=False)
        except binascii.Error as exc:
            raise ValueError(f"Content of {self.path} is not valid base64") from exc
        return raw.decode("utf-8")


class ValidationDetail(GitHubBaseModel):
    code: str | None = None
    field: str | None = None
    message: str | None = None


class ErrorPayload(GitHubBaseModel):
    message: str = ""
    errors: list[ValidationDetail] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def _wrap_plain_errors(cls, value: object) -> object:
        if isinstance(value, list):
            items = cast(list[object], value)
            return [{"message": item} if isinstance(item, str) else item for item in items]
        return value

    @property
    def already_exists(self) -> bool:
        if any(detail.code == "already_exists" for detail in self.errors):
            return True
        texts = [self.message, *(detail.message or "" for detail in self.errors)]
        return any("already exists" in text.lower() for text in texts)
