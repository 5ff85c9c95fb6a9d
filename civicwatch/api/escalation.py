"""
Escalation trigger endpoint: the host posts the issue document as it was
immediately before and after an update.
"""

from fastapi import APIRouter, HTTPException, Request
import logging

from civicwatch.models.issue_model import IssueUpdateEvent

router = APIRouter(
    prefix="/escalation",
    tags=["Escalation"]
)

logger = logging.getLogger(__name__)


@router.post("/issues/{issue_id}/updated")
async def issue_updated(issue_id: str, event: IssueUpdateEvent, request: Request):
    """
    Run the escalation pipeline for one issue update.

    Always answers 200 once the pipeline ran, whatever its outcome, so the
    caller never retries an escalation.
    """
    service = getattr(request.app.state, "escalation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Escalation service unavailable")

    outcome = await service.handle_update(issue_id, event.before, event.after)
    return {"success": True, **outcome.to_dict()}
