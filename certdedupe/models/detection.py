"""Pydantic models for duplicate detection rules, candidates and decisions."""

from typing import FrozenSet, List, Optional, Tuple
from datetime import datetime, timezone
from enum import Enum
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so all comparisons are tz-aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class WireModel(BaseModel):
    """Immutable model serialized with camelCase field names."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class DuplicateAction(str, Enum):
    """Outcome directive for a candidate."""
    BLOCK = "block"
    WARN = "warn"
    ALLOW = "allow"


class CheckField(str, Enum):
    """Certificate fields a rule may compare."""
    RECIPIENT_EMAIL = "recipientEmail"
    RECIPIENT_NAME = "recipientName"
    TITLE = "title"
    ISSUER_ID = "issuerId"

    @property
    def attribute(self) -> str:
        """Model attribute holding this field's value."""
        return _FIELD_ATTRIBUTES[self]


_FIELD_ATTRIBUTES = {
    CheckField.RECIPIENT_EMAIL: "recipient_email",
    CheckField.RECIPIENT_NAME: "recipient_name",
    CheckField.TITLE: "title",
    CheckField.ISSUER_ID: "issuer_id",
}


class MatchType(str, Enum):
    """How an existing certificate matched the candidate."""
    EXACT = "exact"
    FUZZY_EMAIL = "fuzzy_email"
    FUZZY_NAME = "fuzzy_name"
    FUZZY_TITLE = "fuzzy_title"


class CertificateStatus(str, Enum):
    """Lifecycle status of a stored certificate."""
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class DuplicateRule(WireModel):
    """A named duplicate policy."""
    id: str
    name: str
    description: str = ""
    enabled: bool = True
    action: DuplicateAction
    threshold: float = Field(ge=0.0, le=1.0)
    check_fields: FrozenSet[CheckField]
    fuzzy_matching: bool = False
    time_window_days: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("timeWindowDays", "timeWindow", "time_window_days"),
    )
    priority: int = 0

    @field_validator("check_fields")
    @classmethod
    def validate_check_fields(cls, v):
        if not v:
            raise ValueError("checkFields must name at least one field")
        return v

    @field_serializer("check_fields")
    def serialize_check_fields(self, v: FrozenSet[CheckField]) -> List[str]:
        return sorted(f.value for f in v)


class DetectionConfig(WireModel):
    """Rule set and policy flags for one evaluation."""
    enabled: bool = True
    default_action: DuplicateAction = DuplicateAction.WARN
    rules: Tuple[DuplicateRule, ...] = ()
    allow_override: bool = True
    require_admin_approval: bool = False
    log_duplicates: bool = True

    @model_validator(mode="after")
    def validate_unique_rule_ids(self):
        seen = set()
        for rule in self.rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id: {rule.id}")
            seen.add(rule.id)
        return self

    @property
    def enabled_rules(self) -> Tuple[DuplicateRule, ...]:
        return tuple(rule for rule in self.rules if rule.enabled)


class CertificateCandidate(WireModel):
    """A certificate proposed for issuance, not yet persisted."""
    issuer_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None

    def field_value(self, field: CheckField) -> Optional[str]:
        return getattr(self, field.attribute)


class ExistingCertificateView(WireModel):
    """Read-only projection of a stored certificate."""
    id: str
    issuer_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    title: Optional[str] = None
    issued_at: datetime
    status: CertificateStatus = CertificateStatus.ACTIVE
    is_duplicate: bool = False
    duplicate_of_id: Optional[str] = None
    override_reason: Optional[str] = None
    overridden_by: Optional[str] = None

    @field_validator("issued_at")
    @classmethod
    def normalize_issued_at(cls, v):
        return as_utc(v)

    def field_value(self, field: CheckField) -> Optional[str]:
        return getattr(self, field.attribute)


class DuplicateMatch(WireModel):
    """An existing certificate that a rule judged similar to the candidate."""
    certificate_id: str
    issuer_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    title: Optional[str] = None
    issued_at: datetime
    similarity_score: float = Field(ge=0.0, le=1.0)
    match_type: MatchType
    rule_id: Optional[str] = None


class DuplicateDecision(WireModel):
    """Verdict for one candidate under one configuration."""
    is_duplicate: bool
    confidence: float = Field(ge=0.0, le=1.0)
    matches: Tuple[DuplicateMatch, ...] = ()
    action: DuplicateAction
    message: str = ""
