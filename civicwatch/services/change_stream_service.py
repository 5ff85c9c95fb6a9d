import asyncio
import logging
from typing import Any, Dict, Optional

from pymongo.errors import OperationFailure, PyMongoError

logger = logging.getLogger(__name__)

UPDATE_PIPELINE = [{"$match": {"operationType": {"$in": ["update", "replace"]}}}]


class IssueChangeStreamListener:
    """
    Feeds issue update events to the escalation service.

    Each change event carries the document before and after that update
    (MongoDB pre- and post-images), which is what the escalation guard
    compares. Events are handled one at a time, in stream order.
    """

    def __init__(self, collection, escalation_service, reconnect_delay: float = 5.0):
        self.collection = collection
        self.escalation_service = escalation_service
        self.reconnect_delay = reconnect_delay
        self._task: Optional[asyncio.Task] = None

    async def enable_pre_images(self) -> None:
        """Turn on changeStreamPreAndPostImages for the issues collection (MongoDB 6.0+)."""
        try:
            await self.collection.database.command(
                "collMod", self.collection.name, changeStreamPreAndPostImages={"enabled": True}
            )
            logger.info(f"✅ Pre-images enabled on '{self.collection.name}'")
        except OperationFailure as e:
            logger.warning(f"⚠️ Could not enable pre-images on '{self.collection.name}': {e}")

    async def handle_change(self, change: Dict[str, Any]):
        before = change.get("fullDocumentBeforeChange")
        after = change.get("fullDocument")
        document_key = change.get("documentKey") or {}
        issue_id = str(document_key.get("_id", ""))

        if before is None or after is None:
            logger.warning(f"⚠️ Change event for issue {issue_id} lacks a pre- or post-image, skipping")
            return None

        return await self.escalation_service.handle_update(issue_id, before, after)

    async def _handle_safely(self, change: Dict[str, Any]) -> None:
        # One bad event must not end the stream for every other issue
        try:
            await self.handle_change(change)
        except Exception as e:
            issue_id = (change.get("documentKey") or {}).get("_id")
            logger.error(f"❌ Failed to handle change event for issue {issue_id}: {e}", exc_info=True)

    async def run(self) -> None:
        while True:
            try:
                async with self.collection.watch(
                    UPDATE_PIPELINE,
                    full_document="whenAvailable",
                    full_document_before_change="whenAvailable",
                ) as stream:
                    logger.info(f"👀 Watching '{self.collection.name}' for issue updates")
                    async for change in stream:
                        await self._handle_safely(change)
            except asyncio.CancelledError:
                raise
            except PyMongoError as e:
                logger.error(f"❌ Issue change stream failed: {e}; reconnecting in {self.reconnect_delay}s")
                await asyncio.sleep(self.reconnect_delay)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("✅ Issue change stream stopped")
