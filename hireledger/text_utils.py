import re

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def strip_json_fence(raw: str) -> str:
    """Return raw text with optional ```json fences removed."""
    text = (raw or "").strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def build_full_name(first_name: str, last_name: str) -> str:
    """Build a normalized full name from first/last name components."""
    return f"{first_name or ''} {last_name or ''}".strip()


def join_or_default(values, default: str = "Not specified") -> str:
    """Comma-join a list of strings, or return `default` when empty."""
    items = [str(v).strip() for v in (values or []) if str(v).strip()]
    return ", ".join(items) if items else default
