"""Data models for contact intake."""

import json
from typing import Dict, List, Any, Optional, Union
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import constants


# Closed DealCloud choice lists: code -> label
SALUTATIONS: Dict[str, str] = {
    "661148": "Herr",
    "661147": "Frau",
}

CONTACT_TYPES: Dict[str, str] = {
    "68656": "Private Equity Professional",
    "68652": "Corporate Development Executive",
    "68654": "Debt Professional / Lender",
    "68651": "Attorney",
    "68657": "Consultant / Service Provider",
    "68658": "Financial Accountant, Advisor, Auditor",
    "68653": "Investment Banker",
    "68655": "Media",
    "81392": "Managing Director / CEO",
    "81391": "CFO",
    "81390": "Supervisory Board Member",
    "81389": "Partner",
    "81388": "Managing Partner",
    "81387": "Shareholder",
    "129696": "Network Account Manager",
    "129977": "Corporate employee",
    "725682": "Mitglied der Geschäftsführung/Vorstand",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineState(str, Enum):
    """Steps of the intake pipeline."""

    IDLE = "idle"
    EXTRACTING_NAMES = "extracting_names"
    FETCHING_COMPANIES = "fetching_companies"
    GENERATING_CONTACTS = "generating_contacts"
    READY = "ready"
    CHECKING_DUPLICATES = "checking_duplicates"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    INSERTING = "inserting"
    DONE = "done"
    ERRORED = "errored"


class ResolveMode(str, Enum):
    """Which inner property replaces a nested reference object."""

    ID = "id"
    NAME = "name"


class Company(BaseModel):
    """A company entry as returned by the company query."""

    model_config = ConfigDict(extra="ignore")

    EntryId: Union[int, str]
    CompanyName: str


class ExistingContact(BaseModel):
    """A contact already stored in DealCloud, as returned by the email lookup."""

    model_config = ConfigDict(extra="ignore")

    EntryId: Union[int, str]
    FullName: Optional[str] = None
    Email: Optional[str] = None


class Contact(BaseModel):
    """A contact record keyed by DealCloud field names."""

    model_config = ConfigDict(extra="forbid")

    Anrede: str = Field(description=json.dumps(SALUTATIONS))
    ProfessionalTitle: Optional[str] = Field(
        default=None, description="Optional professional title"
    )
    FirstName: str = Field(description="The first name of the contact")
    LastName: str = Field(description="The last name of the contact")
    Email: str = Field(description="Email address of the contact")
    BusinessPhone: Optional[str] = Field(
        default=None, description="Telephone number of the contact"
    )
    Employer: Optional[str] = Field(
        default=None, description="The EntryID of company that employs the contact"
    )
    ContactType: str = Field(description=json.dumps(CONTACT_TYPES))
    JobTitle: Optional[str] = Field(default=None, description="The job title of the contact")

    @field_validator("Anrede", "ContactType", "Employer", mode="before")
    @classmethod
    def coerce_codes(cls, v):
        """Codes and ids may arrive as integers."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("Employer")
    @classmethod
    def empty_employer(cls, v):
        """An empty employer means no employer."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("Anrede")
    @classmethod
    def check_salutation(cls, v):
        if v not in SALUTATIONS:
            raise ValueError(f"Unknown salutation code: {v}")
        return v

    @field_validator("ContactType")
    @classmethod
    def check_contact_type(cls, v):
        if v not in CONTACT_TYPES:
            raise ValueError(f"Unknown contact type code: {v}")
        return v

    @property
    def salutation_label(self) -> str:
        return SALUTATIONS[self.Anrede]

    @property
    def contact_type_label(self) -> str:
        return CONTACT_TYPES[self.ContactType]

    def to_payload(self) -> Dict[str, Any]:
        """Fields as they are sent to DealCloud, unset optionals omitted."""
        return self.model_dump(exclude_none=True)


class ReviewedContact(Contact):
    """A contact annotated during the duplicate review. The flag is never sent."""

    isDuplicate: bool = False

    def to_payload(self) -> Dict[str, Any]:
        data = super().to_payload()
        data.pop("isDuplicate", None)
        return data


class QuerySpec(BaseModel):
    """Body of a DealCloud row query.

    ``query`` is the filter expression tree (``$contains``, ``$eq``, ``$or``);
    it is JSON-encoded into the request body. ``options`` holds any extra keys
    passed through to the API unchanged.
    """

    query: Dict[str, Any] = Field(default_factory=dict)
    fields: List[str] = Field(default_factory=list)
    limit: int = Field(default=constants.DEFAULT_PAGE_SIZE, ge=0)
    skip: int = Field(default=0, ge=0)
    resolveReferenceUrls: bool = False
    wrapIntoArrays: bool = True
    options: Dict[str, Any] = Field(default_factory=dict)

    def with_overrides(self, **overrides) -> "QuerySpec":
        """Return a copy with named fields replaced and unknown keys added to options."""
        options = dict(self.options)
        options.update(overrides.pop("options", None) or {})

        known: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key in type(self).model_fields:
                known[key] = value
            else:
                options[key] = value

        known["options"] = options
        return self.model_copy(update=known)

    def to_body(self) -> Dict[str, Any]:
        body = {
            "query": json.dumps(self.query),
            "fields": list(self.fields),
            "limit": self.limit,
            "skip": self.skip,
            "resolveReferenceUrls": self.resolveReferenceUrls,
            "wrapIntoArrays": self.wrapIntoArrays,
        }
        body.update(self.options)
        return body


class AccessToken(BaseModel):
    """Bearer token with an absolute expiry (epoch seconds, safety margin applied)."""

    token: str
    expires_at: float
    token_type: str = "Bearer"
    scope: Optional[str] = None

    @classmethod
    def from_response(
        cls, data: Dict[str, Any], now: float, margin: float = constants.TOKEN_EXPIRY_MARGIN
    ) -> "AccessToken":
        return cls(
            token=data["access_token"],
            expires_at=now + float(data.get("expires_in", 0)) - margin,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class Notification(BaseModel):
    """A user-facing message about the outcome of a step."""

    level: str = "info"
    title: str
    description: str = ""
    timestamp: datetime = Field(default_factory=_now)


class InsertResult(BaseModel):
    """Outcome of submitting the reviewed contacts."""

    inserted: List[Dict[str, Any]] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    dry_run: bool = False
    processing_time: Optional[float] = None

    @property
    def total_changes(self) -> int:
        return len(self.inserted)


class DealCloudConfig(BaseModel):
    """Service credential for the DealCloud site. Checked lazily on first use."""

    model_config = ConfigDict(frozen=True)

    site: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_scope: str = constants.DEFAULT_TOKEN_SCOPE
    timeout: float = constants.DEFAULT_HTTP_TIMEOUT

    @field_validator("site")
    @classmethod
    def strip_protocol(cls, v):
        """The site is a bare host such as ``mycompany.dealcloud.com``."""
        if v:
            v = v.strip()
            for prefix in ("https://", "http://"):
                if v.startswith(prefix):
                    v = v[len(prefix):]
            v = v.rstrip("/")
        return v or None


class AIConfig(BaseModel):
    """AI provider configuration."""

    provider: str = "claude"
    api_key: Optional[str] = None
    model: Optional[str] = None
    names_model: Optional[str] = None
    max_tokens: int = constants.DEFAULT_MAX_TOKENS
    temperature: float = constants.DEFAULT_TEMPERATURE


class ProcessingConfig(BaseModel):
    """Processing configuration."""

    page_size: int = constants.DEFAULT_PAGE_SIZE
    search_limit: int = constants.SEARCH_PAGE_SIZE
    search_debounce: float = constants.SEARCH_DEBOUNCE_SECONDS
    token_expiry_margin: float = constants.TOKEN_EXPIRY_MARGIN
    strict_employer_check: bool = False
    dry_run: bool = False


class Config(BaseModel):
    """Complete configuration model."""

    dealcloud: DealCloudConfig = Field(default_factory=DealCloudConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
