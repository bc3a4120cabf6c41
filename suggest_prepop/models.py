"""Typed data models used across the suggestion index."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

KEY_SEPARATOR = "\x02"
DEFAULT_NAMESPACE = "SUGGEST-PREPOP"


class SuggestConfig(BaseModel):
    """Runtime configuration switches."""

    cache_namespace: str = Field(DEFAULT_NAMESPACE, min_length=1)
    min_activity: int = Field(5, ge=0)
    entries_limit: int = Field(32768, ge=0)
    top_count: int = Field(5, ge=0)
    redis_url: str | None = None
    store_path: str | None = None

    @field_validator("cache_namespace")
    @classmethod
    def _no_separator(cls, value: str) -> str:
        if KEY_SEPARATOR in value:
            raise ValueError("cache_namespace must not contain the key separator")
        return value


class ItemOccurrence(BaseModel):
    """One observed item, as read from ingest files or HTTP payloads."""

    item: str = Field(..., min_length=1)
    count: int = Field(1, ge=0)
    scopes: list[str] = Field(default_factory=list)
