import re
from typing import Iterable, List, Optional

EMAIL_REGEX = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def validate_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_REGEX.match(email.strip()))


def clean_recipients(emails: Iterable[Optional[str]]) -> List[str]:
    """Trim addresses and drop empty ones, keeping their order."""
    cleaned = []
    for email in emails:
        if email is None:
            continue
        value = str(email).strip()
        if value:
            cleaned.append(value)
    return cleaned
