from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Language(BaseModel):
    """A language supported by the translation provider."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    native_name: str = ""
    dir: str = "ltr"


class TranslateRequest(BaseModel):
    text: str = Field(min_length=1, max_length=1000)
    source: str = Field(min_length=1, max_length=16)
    target: str = Field(min_length=1, max_length=16)


class TranslateResponse(BaseModel):
    text: str
    source: str
    target: str
