from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    # Type tag seen by permission evaluators.
    permission_type: ClassVar[str] = "Document"

    id: int
    title: str
    owner: str
    confidential: bool


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    confidential: bool = False


class DocumentRename(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class DocumentIds(BaseModel):
    ids: list[int]
