"""General parsing utilities for recipe extraction."""

import re
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit

_ISO8601_DURATION = re.compile(r"P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?")


def clean_text(text: str) -> str:
    """Normalize whitespace in text."""
    return re.sub(r"\s+", " ", text or "").strip()


def normalize_text_list(value) -> List[str]:
    """Coerce a scalar or list into a list of trimmed, non-blank strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    items: List[str] = []
    for item in value:
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items


def parse_iso8601_duration(duration) -> Optional[int]:
    """Parse an ISO-8601 duration (e.g. P1DT2H30M) into whole minutes.

    Seconds round up to a minute when they reach 30, or when they are the
    only non-zero component so a short duration never collapses to zero.
    Returns None for missing, unparseable or zero-length durations.
    """
    if duration is None:
        return None
    value = str(duration).strip()
    if not value:
        return None
    match = next((m for m in _ISO8601_DURATION.finditer(value) if len(m.group(0)) > 1), None)
    if not match:
        return None
    days = int(match.group(1) or 0)
    hours = int(match.group(2) or 0)
    minutes = int(match.group(3) or 0)
    seconds = int(match.group(4) or 0)

    total_minutes = days * 1440 + hours * 60 + minutes
    if seconds > 0 and (total_minutes == 0 or seconds >= 30):
        total_minutes += 1
    return total_minutes if total_minutes > 0 else None


def parse_servings(value) -> Optional[int]:
    """Take the first run of digits from a recipeYield value."""
    if value is None:
        return None
    if isinstance(value, list):
        if not value:
            return None
        value = value[0]
    if isinstance(value, bool):
        return None
    match = re.search(r"\d+", str(value))
    if match:
        return int(match.group())
    return None


def coerce_optional_int(value) -> Optional[int]:
    """Best-effort integer coercion for model-produced numbers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    match = re.search(r"\d+", str(value))
    return int(match.group()) if match else None


def extract_image(value) -> Optional[str]:
    """Extract an image URL from the schema.org image formats."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        return extract_image(value.get("url") or value.get("contentUrl"))
    if isinstance(value, list):
        for item in value:
            found = extract_image(item)
            if found:
                return found
    return None


def sanitize_url(url: str) -> str:
    """Drop query string and fragment so URLs are safe to log."""
    try:
        parts = urlsplit(url or "")
        return urlunsplit((parts.scheme, parts.netloc.rsplit("@", 1)[-1], parts.path, "", ""))
    except ValueError:
        return "[invalid URL]"


def source_domain(url: Optional[str]) -> Optional[str]:
    """Hostname of a URL without a leading www., or None."""
    if not url:
        return None
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None
