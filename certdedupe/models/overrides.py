"""Pydantic models for override requests and duplicate reports."""

from typing import Dict, Optional, Tuple
from datetime import datetime
from enum import Enum
from pydantic import Field, field_validator

from .detection import WireModel, as_utc


class OverrideStatus(str, Enum):
    """Override request lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not OverrideStatus.PENDING


class OverrideRequest(WireModel):
    """A human request to issue despite a warn verdict."""
    id: str
    certificate_id: str
    reason: str
    requested_by: str
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    status: OverrideStatus = OverrideStatus.PENDING
    created_at: datetime
    reviewed_at: Optional[datetime] = None

    @field_validator("created_at", "reviewed_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return as_utc(v) if v is not None else v


class DuplicateClass(str, Enum):
    """Report bucket for a flagged certificate."""
    EXACT = "exact"
    FUZZY = "fuzzy"


class ReportedDuplicate(WireModel):
    """A flagged certificate as listed in a duplicate report."""
    certificate_id: str
    issuer_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    title: Optional[str] = None
    issued_at: datetime
    similarity_score: float = Field(default=1.0, ge=0.0, le=1.0)
    match_type: DuplicateClass


class TimeRange(WireModel):
    start: datetime
    end: datetime


class DuplicateReport(WireModel):
    """Summary of flagged duplicates over a time range."""
    id: str
    total_duplicates: int
    duplicates_by_issuer: Dict[str, int] = Field(default_factory=dict)
    duplicates_by_type: Dict[str, int] = Field(default_factory=dict)
    time_range: TimeRange
    generated_at: datetime
    duplicates: Tuple[ReportedDuplicate, ...] = ()
