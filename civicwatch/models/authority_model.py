from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DepartmentType(str, Enum):
    ROAD_DEPARTMENT = "road_department"
    UTILITIES = "utilities"
    SANITATION = "sanitation"
    PUBLIC_WORKS = "public_works"


class AuthorityJurisdiction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    city: str = ""
    state: str = ""
    areas: List[str] = Field(default_factory=list)


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: bool = True
    threshold: int = 10  # carried on the record, not read by the escalator


class Authority(BaseModel):
    """Authority document, treated as read-only configuration."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    authority_id: str = Field("", alias="authorityId")
    organization_name: str = Field("", alias="organizationName")
    email: str = ""
    role: str = "viewer"
    jurisdiction: AuthorityJurisdiction = Field(default_factory=AuthorityJurisdiction)
    handled_categories: List[str] = Field(default_factory=list, alias="handledCategories")
    department_type: str = Field("", alias="departmentType")
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences, alias="notificationPreferences"
    )

    @model_validator(mode="before")
    @classmethod
    def _from_document(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = {k: v for k, v in data.items() if v is not None}
        if "_id" in data and not data.get("authorityId") and not data.get("authority_id"):
            data["authorityId"] = str(data["_id"])
        return data
