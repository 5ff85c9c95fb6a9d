from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IssueCategory(str, Enum):
    POTHOLES = "potholes"
    GARBAGE = "garbage"
    WATER_LOGGING = "water_logging"
    BROKEN_STREET_LIGHTS = "broken_street_lights"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueStatus(str, Enum):
    REPORTED = "reported"
    VERIFIED = "verified"
    NOTIFIED = "notified"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


# Statuses from which the escalator never moves a record to "notified"
NON_ESCALATABLE_STATUSES = frozenset({
    IssueStatus.NOTIFIED.value,
    IssueStatus.RESOLVED.value,
    IssueStatus.REJECTED.value,
})

def normalize_status(status: Optional[str]) -> str:
    """Lower-case a stored status; "In Progress" and "in-progress" both map to in_progress."""
    s = (status or "").strip().lower()
    return s.replace("-", "_").replace(" ", "_")


def _drop_nulls(data: Dict[str, Any]) -> Dict[str, Any]:
    # Missing and null fields both fall back to the model defaults
    return {k: v for k, v in data.items() if v is not None}


def _upvote_count(value: Any) -> int:
    # pydantic only turns ValueError into a ValidationError
    try:
        return max(0, int(value))
    except (TypeError, OverflowError) as e:
        raise ValueError(f"upvotes must be a number, got {value!r}") from e


class IssueLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    latitude: float = 0.0
    longitude: float = 0.0
    address: str = ""
    area: str = ""
    city: str = ""
    state: str = ""
    country: str = ""

    @model_validator(mode="before")
    @classmethod
    def _clean(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = _drop_nulls(data)
            for key in ("address", "area", "city", "state", "country"):
                if key in data:
                    data[key] = str(data[key]).strip()
        return data


class Issue(BaseModel):
    """Snapshot of an issue document as the escalator sees it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    issue_id: str = Field("", alias="issueId")
    category: str = ""
    severity: str = IssueSeverity.MEDIUM.value
    status: str = IssueStatus.REPORTED.value
    description: str = ""
    upvotes: int = 0
    verifications: int = 0
    comments_count: int = Field(0, alias="commentsCount")
    priority_score: float = Field(0.0, alias="priorityScore")
    reported_by: str = Field("", alias="reportedBy")
    images: List[str] = Field(default_factory=list)
    location: IssueLocation = Field(default_factory=IssueLocation)
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    notified_at: Optional[datetime] = Field(None, alias="notifiedAt")

    @model_validator(mode="before")
    @classmethod
    def _from_document(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = _drop_nulls(data)
        if "_id" in data and not data.get("issueId") and not data.get("issue_id"):
            data["issueId"] = str(data["_id"])
        for key in ("category", "severity"):
            if key in data:
                data[key] = str(data[key]).strip().lower()
        if "status" in data:
            data["status"] = normalize_status(str(data["status"]))
        if "upvotes" in data:
            data["upvotes"] = _upvote_count(data["upvotes"])
        return data

    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]], issue_id: str = "") -> "Issue":
        issue = cls.model_validate(dict(document or {}))
        if issue_id and not issue.issue_id:
            issue.issue_id = issue_id
        return issue


class IssueUpdateEvent(BaseModel):
    """Before/after pair delivered by the host for one issue update."""

    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any]
