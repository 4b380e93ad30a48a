# keyword_discovery/schemas/keyword_job.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from keyword_discovery.core.enums import (
    DEFAULT_TRACKING_SESSION,
    JobStatus,
    KeywordStrategy,
    MAX_INTERVAL_MINUTES,
    MAX_SEARCHES_PER_BATCH,
    MAX_TOTAL_CYCLES,
    MIN_INTERVAL_MINUTES,
    MIN_SEARCHES_PER_BATCH,
    MIN_TOTAL_CYCLES,
)
from keyword_discovery.schemas.base import BaseSchema


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class KeywordJobCreate(BaseSchema):
    """Validated config for a new keyword search job"""
    name: str = Field(..., min_length=1, max_length=255)
    searches_per_batch: int = Field(1, ge=MIN_SEARCHES_PER_BATCH, le=MAX_SEARCHES_PER_BATCH)
    interval_minutes: int = Field(15, ge=MIN_INTERVAL_MINUTES, le=MAX_INTERVAL_MINUTES)
    total_cycles: int = Field(10, ge=MIN_TOTAL_CYCLES, le=MAX_TOTAL_CYCLES)
    country: str = Field("us", min_length=2, max_length=2)
    strategy: KeywordStrategy = KeywordStrategy.RANDOM
    seed_category: Optional[str] = None
    session_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("country", mode="before")
    @classmethod
    def lower_country(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("seed_category", "session_id", "notes", mode="before")
    @classmethod
    def blank_optional(cls, value):
        return _blank_to_none(value)


class KeywordResultRead(BaseSchema):
    id: str
    job_id: str
    keyword: str
    cycle_number: int
    status: str
    popularity: Optional[int] = None
    difficulty: Optional[int] = None
    competitor_count: Optional[int] = None
    opportunity_score: Optional[int] = None
    top_apps: List[Dict[str, Any]] = Field(default_factory=list)
    related_terms: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    is_tracked: bool = False
    searched_at: Optional[datetime] = None

    @field_validator("top_apps", "related_terms", mode="before")
    @classmethod
    def none_to_list(cls, value):
        return value or []


class KeywordJobRead(BaseSchema):
    id: str
    name: str
    strategy: KeywordStrategy
    seed_category: Optional[str] = None
    country: str
    searches_per_batch: int
    interval_minutes: int
    total_cycles: int
    notes: Optional[str] = None
    session_id: Optional[str] = None
    status: JobStatus
    current_cycle: int
    total_keywords: int
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class KeywordJobSummary(KeywordJobRead):
    """List view row with the number of stored results"""
    result_count: int = 0


class KeywordJobDetail(KeywordJobRead):
    used_keywords: List[str] = Field(default_factory=list)
    results: List[KeywordResultRead] = Field(default_factory=list)


class TrackKeywordsRequest(BaseSchema):
    result_ids: List[str] = Field(..., min_length=1)
    session_id: str = DEFAULT_TRACKING_SESSION

    @field_validator("session_id", mode="before")
    @classmethod
    def default_session(cls, value):
        return _blank_to_none(value) or DEFAULT_TRACKING_SESSION


class TrackKeywordsResponse(BaseSchema):
    success: bool = True
    tracked: List[str] = Field(default_factory=list)


class JobActionResponse(BaseSchema):
    success: bool = True
    message: str
