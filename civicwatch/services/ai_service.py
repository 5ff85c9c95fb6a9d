import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

import google.generativeai as genai

from civicwatch.core.exceptions import CompositionError
from civicwatch.models.authority_model import Authority
from civicwatch.models.issue_model import Issue
from civicwatch.services.prompt_manager import PromptManager
from civicwatch.utils.helpers import build_maps_link, format_category_display, format_timestamp

logger = logging.getLogger(__name__)

ESCALATION_PROMPT = "escalation_email"
FALLBACK_MODELS = ["gemini-2.0-flash", "gemini-2.5-flash", "gemini-1.5-flash"]

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")
_SUBJECT_LINE = re.compile(r"^\s*subject\s*:.*(\n|$)", re.IGNORECASE)


class GeminiTextGenerator:
    """Single-shot Gemini text generation; the blocking SDK call runs in a worker thread."""

    def __init__(self, api_key: Optional[str], model_name: str = "gemini-2.0-flash-001"):
        self.api_key = api_key
        self.model_name = model_name
        self._model = None
        if not api_key:
            logger.warning("GEMINI_API_KEY is not set; escalation emails cannot be generated.")
        else:
            genai.configure(api_key=api_key)

    def _get_model(self):
        if self._model is not None:
            return self._model
        try:
            self._model = genai.GenerativeModel(self.model_name)
            return self._model
        except Exception as e:
            logger.warning(f"{self.model_name} not available; attempting fallbacks: {e}")
            for alt in FALLBACK_MODELS:
                try:
                    logger.info(f"Trying fallback model: {alt}")
                    self._model = genai.GenerativeModel(alt)
                    return self._model
                except Exception as e2:
                    logger.warning(f"Fallback model {alt} failed: {e2}")
            raise CompositionError(f"No Gemini model could be initialised: {e}") from e

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise CompositionError("Gemini API key is not configured")
        model = self._get_model()
        try:
            response = await asyncio.to_thread(model.generate_content, prompt)
            # .text raises ValueError when the candidate was blocked or is empty
            return response.text or ""
        except Exception as e:
            raise CompositionError(f"Gemini generation failed: {e}") from e


def build_subject(category: Optional[str], city: Optional[str], state: Optional[str]) -> str:
    return f"Civic Issue Report: {format_category_display(category)} - {city or ''}, {state or ''}"


def clean_generated_text(text: Optional[str]) -> str:
    """Strip code fences and any generated subject line from model output."""
    cleaned = (text or "").strip()
    cleaned = _CODE_FENCE.sub("", cleaned).strip()
    cleaned = _SUBJECT_LINE.sub("", cleaned, count=1).strip()
    return cleaned


@dataclass
class ComposedNotification:
    subject: str
    body: str
    generated: bool = True


class NotificationComposer:
    """Turns an issue snapshot and its authorities into email content.

    The subject is derived deterministically; only the body is generated.
    """

    def __init__(
        self,
        generator,
        prompt_manager: Optional[PromptManager] = None,
        use_fallback_template: bool = False,
    ):
        self.generator = generator
        self.prompt_manager = prompt_manager or PromptManager()
        self.use_fallback_template = use_fallback_template

    def build_prompt(self, issue: Issue, authorities: Sequence[Authority]) -> str:
        loc = issue.location
        media = (
            f"Images: {', '.join(issue.images)}" if issue.images else "No images available"
        )
        recipients = "\n".join(self._recipient_line(auth) for auth in authorities) or "- None"
        return self.prompt_manager.render(
            ESCALATION_PROMPT,
            issue_id=issue.issue_id,
            category=issue.category,
            severity=issue.severity,
            description=issue.description or "No description provided",
            address=loc.address or "Not specified",
            area=loc.area or "Not specified",
            city=loc.city or "Not specified",
            state=loc.state or "Not specified",
            country=loc.country or "Not specified",
            latitude=loc.latitude,
            longitude=loc.longitude,
            maps_link=build_maps_link(loc.latitude, loc.longitude),
            upvotes=issue.upvotes,
            verifications=issue.verifications,
            priority_score=issue.priority_score,
            status=issue.status,
            reported_on=format_timestamp(issue.created_at),
            notified_on=format_timestamp(issue.notified_at, default="Just now"),
            media=media,
            recipients=recipients,
        )

    async def compose(self, issue: Issue, authorities: Sequence[Authority]) -> ComposedNotification:
        subject = build_subject(issue.category, issue.location.city, issue.location.state)
        prompt = self.build_prompt(issue, authorities)

        try:
            body = clean_generated_text(await self.generator.generate(prompt))
            if not body:
                raise CompositionError("Generator returned no usable email content")
        except CompositionError as e:
            if not self.use_fallback_template:
                raise
            logger.warning(f"⚠️ Using fallback email template for issue {issue.issue_id}: {e}")
            return ComposedNotification(subject=subject, body=self.render_fallback(issue), generated=False)

        return ComposedNotification(subject=subject, body=body)

    def render_fallback(self, issue: Issue) -> str:
        loc = issue.location
        area_prefix = f"{loc.area}, " if loc.area else ""
        lines: List[str] = [
            "Dear Authorities,",
            "",
            "We are writing to report a civic issue that requires your attention:",
            "",
            f"Category: {issue.category}",
            f"Severity: {issue.severity}",
            f"Description: {issue.description or 'No description provided'}",
            "",
            "Location:",
            loc.address or "Address not specified",
            f"{area_prefix}{loc.city}, {loc.state}",
            f"GPS Coordinates: {loc.latitude}, {loc.longitude}",
            f"Google Maps: {build_maps_link(loc.latitude, loc.longitude)}",
            "",
            "Community Support:",
            f"- {issue.upvotes} upvotes",
            f"- {issue.verifications} verifications",
            f"- Priority Score: {issue.priority_score}",
            "",
            f"Reported on: {format_timestamp(issue.created_at)}",
        ]
        if issue.images:
            lines += ["", f"Images are available: {', '.join(issue.images)}"]
        lines += [
            "",
            "We request your timely attention to resolve this issue for the benefit of our community.",
            "",
            "Thank you for your service.",
            "",
            "Sincerely,",
            "CivicWatch Platform",
        ]
        return "\n".join(lines)

    @staticmethod
    def _recipient_line(auth: Authority) -> str:
        line = f"- {auth.organization_name or 'Authority'} ({auth.email})"
        if auth.department_type:
            line += f" - {auth.department_type}"
        return line
