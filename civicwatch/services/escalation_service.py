"""
Civic Issue Notification Escalator

Runs once per issue update: when an upvote pushes an issue across the
threshold, the record is marked notified, the responsible authorities are
resolved, and a Gemini-composed email is sent to all of them at once.

The status transition is committed before any lookup or send. A failure in a
later step is logged and reported in the outcome, never raised, so the host
does not retry against a record that is already notified.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from civicwatch.models.issue_model import Issue, IssueStatus, NON_ESCALATABLE_STATUSES
from civicwatch.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEFAULT_UPVOTE_THRESHOLD = 5


class EscalationResult(str, Enum):
    SKIPPED = "skipped"
    INVALID_EVENT = "invalid_event"
    ALREADY_NOTIFIED = "already_notified"
    TRANSITION_FAILED = "transition_failed"
    NO_AUTHORITIES = "no_authorities"
    COMPOSITION_FAILED = "composition_failed"
    DELIVERY_FAILED = "delivery_failed"
    NOTIFIED = "notified"


@dataclass
class EscalationOutcome:
    issue_id: str
    result: EscalationResult
    recipients: List[str] = field(default_factory=list)
    authority_tier: Optional[str] = None
    error: Optional[str] = None

    @property
    def escalated(self) -> bool:
        """True once the record has been moved to notified by this invocation."""
        return self.result not in (
            EscalationResult.SKIPPED,
            EscalationResult.INVALID_EVENT,
            EscalationResult.ALREADY_NOTIFIED,
            EscalationResult.TRANSITION_FAILED,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "result": self.result.value,
            "escalated": self.escalated,
            "recipients": self.recipients,
            "authority_tier": self.authority_tier,
            "error": self.error,
        }


def should_escalate(before: Issue, after: Issue, threshold: int = DEFAULT_UPVOTE_THRESHOLD) -> bool:
    """Guard for the reported/verified -> notified transition.

    Only an upvote increase that leaves the issue at or above the threshold
    counts; records already notified, resolved or rejected never qualify.
    """
    if after.upvotes < threshold:
        return False
    if after.upvotes <= before.upvotes:
        return False
    return after.status not in NON_ESCALATABLE_STATUSES


class EscalationService:
    def __init__(
        self,
        issue_store,
        resolver,
        composer,
        notifier,
        threshold: int = DEFAULT_UPVOTE_THRESHOLD,
        clock: Callable = utcnow,
    ):
        self.issue_store = issue_store
        self.resolver = resolver
        self.composer = composer
        self.notifier = notifier
        self.threshold = threshold
        self.clock = clock

    async def handle_update(
        self,
        issue_id: str,
        before: Optional[Dict[str, Any]],
        after: Dict[str, Any],
    ) -> EscalationOutcome:
        try:
            before_issue = Issue.from_document(before, issue_id)
            after_issue = Issue.from_document(after, issue_id)
        except ValidationError as e:
            return self._failed(issue_id, EscalationResult.INVALID_EVENT, e)

        if not should_escalate(before_issue, after_issue, self.threshold):
            logger.debug(
                f"Issue {issue_id} not escalated (upvotes {before_issue.upvotes} -> "
                f"{after_issue.upvotes}, status '{after_issue.status}')"
            )
            return EscalationOutcome(issue_id, EscalationResult.SKIPPED)

        logger.info(f"🚨 Issue {issue_id} reached {after_issue.upvotes} upvotes - triggering escalation")

        # Step 1: commit the status transition before any external call
        notified_at = self.clock()
        try:
            claimed = await self.issue_store.mark_notified(issue_id, notified_at)
        except Exception as e:
            return self._failed(issue_id, EscalationResult.TRANSITION_FAILED, e)

        if not claimed:
            logger.info(f"⏭️ Issue {issue_id} was already notified or closed, skipping escalation")
            return EscalationOutcome(issue_id, EscalationResult.ALREADY_NOTIFIED)

        logger.info(f"✅ Updated issue {issue_id} status to \"notified\"")

        # Step 2: snapshot of the issue as it now stands
        issue = after_issue.model_copy(
            update={"status": IssueStatus.NOTIFIED.value, "notified_at": notified_at}
        )

        # Step 3: relevant authorities
        try:
            resolution = await self.resolver.resolve_with_tier(
                issue.category, issue.location.city, issue.location.state
            )
        except Exception as e:
            return self._failed(issue_id, EscalationResult.NO_AUTHORITIES, e)

        if not resolution.authorities:
            logger.warning(
                f"⚠️ No authorities found for issue {issue_id}",
                extra={"issue_id": issue_id, "error_kind": EscalationResult.NO_AUTHORITIES.value},
            )
            return EscalationOutcome(issue_id, EscalationResult.NO_AUTHORITIES)

        logger.info(
            f"📧 Found {len(resolution.authorities)} relevant authority/authorities for issue {issue_id}"
        )

        # Step 4: compose and send
        try:
            notification = await self.composer.compose(issue, resolution.authorities)
        except Exception as e:
            return self._failed(issue_id, EscalationResult.COMPOSITION_FAILED, e, resolution.tier)

        try:
            recipients = await self.notifier.notify(
                notification.subject, notification.body, resolution.authorities
            )
        except Exception as e:
            return self._failed(issue_id, EscalationResult.DELIVERY_FAILED, e, resolution.tier)

        logger.info(f"✅ Successfully escalated issue {issue_id} to authorities")
        return EscalationOutcome(
            issue_id,
            EscalationResult.NOTIFIED,
            recipients=recipients,
            authority_tier=resolution.tier,
        )

    @staticmethod
    def _failed(
        issue_id: str,
        result: EscalationResult,
        error: Exception,
        tier: Optional[str] = None,
    ) -> EscalationOutcome:
        logger.error(
            f"❌ Error escalating issue {issue_id} ({result.value}): {error}",
            exc_info=True,
            extra={"issue_id": issue_id, "error_kind": result.value},
        )
        return EscalationOutcome(issue_id, result, authority_tier=tier, error=str(error))
