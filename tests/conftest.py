import datetime as _dt

import pytest

from civicwatch.services.ai_service import NotificationComposer
from civicwatch.services.authority_service import AuthorityResolver
from civicwatch.services.email_service import Notifier
from civicwatch.services.escalation_service import EscalationService
from tests.fakes import FakeAuthorityStore, FakeIssueStore, FakeMailTransport, FakeTextGenerator

FIXED_NOW = _dt.datetime(2024, 5, 1, 12, 0, tzinfo=_dt.timezone.utc)


def make_authority(authority_id, email, city="Springfield", state="IL",
                   categories=(), department="", email_enabled=True, name=None):
    return {
        "_id": authority_id,
        "organizationName": name or f"{authority_id} Office",
        "email": email,
        "jurisdiction": {"city": city, "state": state, "areas": []},
        "handledCategories": list(categories),
        "departmentType": department,
        "notificationPreferences": {"email": email_enabled, "threshold": 10},
    }


def make_issue(upvotes=0, status="verified", category="potholes", city="Springfield", state="IL", **extra):
    doc = {
        "category": category,
        "severity": "high",
        "description": "Deep pothole near the school gate",
        "status": status,
        "upvotes": upvotes,
        "verifications": 2,
        "priorityScore": 7.5,
        "images": ["https://i.ibb.co/abc/pothole.jpg"],
        "location": {
            "latitude": 39.7817,
            "longitude": -89.6501,
            "address": "12 Main St",
            "area": "Downtown",
            "city": city,
            "state": state,
            "country": "USA",
        },
    }
    doc.update(extra)
    return doc


@pytest.fixture
def authority_docs():
    return [
        make_authority("roads-cat", "potholes@springfield.gov", categories=["potholes"],
                       department="road_department"),
        make_authority("roads-dept", "roads@springfield.gov", department="road_department"),
        make_authority("city-hall", "cityhall@springfield.gov", department="general"),
        make_authority("elsewhere", "roads@shelbyville.gov", city="Shelbyville",
                       categories=["potholes"], department="road_department"),
    ]


@pytest.fixture
def issue_store():
    return FakeIssueStore()


@pytest.fixture
def authority_store(authority_docs):
    return FakeAuthorityStore(authority_docs)


@pytest.fixture
def generator():
    return FakeTextGenerator()


@pytest.fixture
def transport():
    return FakeMailTransport()


@pytest.fixture
def service(issue_store, authority_store, generator, transport):
    return EscalationService(
        issue_store=issue_store,
        resolver=AuthorityResolver(authority_store),
        composer=NotificationComposer(generator),
        notifier=Notifier(transport, from_email="alerts@civicwatch.app"),
        clock=lambda: FIXED_NOW,
    )
