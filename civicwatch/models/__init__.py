from civicwatch.models.authority_model import (
    Authority,
    AuthorityJurisdiction,
    DepartmentType,
    NotificationPreferences,
)
from civicwatch.models.issue_model import (
    Issue,
    IssueCategory,
    IssueLocation,
    IssueSeverity,
    IssueStatus,
    IssueUpdateEvent,
)

__all__ = [
    "Authority",
    "AuthorityJurisdiction",
    "DepartmentType",
    "NotificationPreferences",
    "Issue",
    "IssueCategory",
    "IssueLocation",
    "IssueSeverity",
    "IssueStatus",
    "IssueUpdateEvent",
]
