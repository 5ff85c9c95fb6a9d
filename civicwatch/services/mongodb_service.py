import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import motor.motor_asyncio
from bson.objectid import ObjectId
from pymongo.errors import PyMongoError

from civicwatch.core.config import Settings
from civicwatch.core.exceptions import AuthorityLookupError, TransitionError
from civicwatch.models.authority_model import Authority
from civicwatch.models.issue_model import IssueStatus, NON_ESCALATABLE_STATUSES

logger = logging.getLogger(__name__)

_NON_ESCALATABLE_PATTERN = re.compile(
    "^(" + "|".join(sorted(NON_ESCALATABLE_STATUSES)) + ")$", re.IGNORECASE
)


def create_mongo_client(settings: Settings) -> motor.motor_asyncio.AsyncIOMotorClient:
    """Build the long-lived Motor client; connections are opened lazily."""
    client_config = {
        "serverSelectionTimeoutMS": 10000,
        "connectTimeoutMS": 10000,
        "retryWrites": True,
        "w": "majority",
    }
    if "mongodb+srv://" in settings.mongo_uri:
        client_config["tls"] = True
        logger.info("🔒 SSL/TLS enabled for Atlas connection")
    return motor.motor_asyncio.AsyncIOMotorClient(settings.mongo_uri, **client_config)


async def ping_database(client) -> bool:
    try:
        await client.admin.command("ping")
        logger.info("✅ MongoDB ping successful")
        return True
    except PyMongoError as e:
        logger.error(f"❌ MongoDB ping failed: {e}")
        return False


def _id_filter(issue_id: str) -> Dict[str, Any]:
    # Issues created through the API carry ObjectIds, imported ones plain strings
    if ObjectId.is_valid(issue_id):
        return {"_id": {"$in": [ObjectId(issue_id), issue_id]}}
    return {"_id": issue_id}


class MongoIssueStore:
    """Writes the escalation state transition back to the issues collection."""

    def __init__(self, collection) -> None:
        self.collection = collection

    async def mark_notified(self, issue_id: str, notified_at: datetime) -> bool:
        """Set status=notified and notifiedAt in a single conditional update.

        Returns False when the stored record is already notified, resolved or
        rejected, or already carries a notifiedAt timestamp.
        """
        query = _id_filter(issue_id)
        query["status"] = {"$not": _NON_ESCALATABLE_PATTERN}
        query["notifiedAt"] = None
        update = {
            "$set": {
                "status": IssueStatus.NOTIFIED.value,
                "notifiedAt": notified_at,
                "updatedAt": notified_at,
            }
        }
        try:
            result = await self.collection.update_one(query, update)
        except PyMongoError as e:
            raise TransitionError(f"Failed to mark issue {issue_id} as notified: {e}") from e
        return result.matched_count > 0


class MongoAuthorityStore:
    """Equality-filter queries over the authorities collection."""

    def __init__(self, collection) -> None:
        self.collection = collection

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [
                ("jurisdiction.city", 1),
                ("jurisdiction.state", 1),
                ("notificationPreferences.email", 1),
            ],
            name="jurisdiction_email",
            background=True,
        )
        logger.info("📇 Authority jurisdiction index created/verified")

    async def find_authorities(
        self,
        city: str,
        state: str,
        *,
        category: Optional[str] = None,
        department_type: Optional[str] = None,
    ) -> List[Authority]:
        query: Dict[str, Any] = {
            "jurisdiction.city": city,
            "jurisdiction.state": state,
            "notificationPreferences.email": True,
        }
        if category:
            # Equality against an array field matches any element
            query["handledCategories"] = category
        if department_type:
            query["departmentType"] = department_type

        try:
            docs = await self.collection.find(query).to_list(length=None)
        except PyMongoError as e:
            raise AuthorityLookupError(f"Authority query failed for {city}, {state}: {e}") from e
        return [Authority.model_validate(doc) for doc in docs]
