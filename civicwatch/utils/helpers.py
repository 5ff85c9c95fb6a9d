import datetime as _dt
from typing import Any, Optional


def utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def format_category_display(category: Optional[str]) -> str:
    """potholes -> Potholes, broken_street_lights -> Broken Street Lights."""
    words = (category or "").replace("_", " ").split(" ")
    return " ".join(w[:1].upper() + w[1:] for w in words)


def build_maps_link(latitude: Optional[float], longitude: Optional[float]) -> str:
    return f"https://www.google.com/maps?q={latitude or 0},{longitude or 0}"


def format_timestamp(value: Any, default: str = "Unknown") -> str:
    """Render a stored timestamp (datetime or ISO string) for human readers."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            value = _dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, _dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=_dt.timezone.utc)
        return value.strftime("%Y-%m-%d %H:%M:%S %Z")
    return str(value)
