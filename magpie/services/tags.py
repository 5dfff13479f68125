"""Tag string helpers shared by the API and the browser extension."""

MAX_TAGS = 10
MAX_TAG_LENGTH = 50


def parse_tags(tags_string: str) -> list[str]:
    """Split a comma-separated tag string into trimmed, non-empty tags."""
    if not tags_string or not isinstance(tags_string, str):
        return []
    return [tag.strip() for tag in tags_string.split(",") if tag.strip()]


def format_tags(tags: list[str]) -> str:
    """Join tags into the comma-separated form accepted by parse_tags."""
    return ", ".join(tag for tag in tags if tag.strip())


def clean_tags(tags: list[str], lowercase: bool = False) -> list[str]:
    """Trim, drop empty or over-long tags, de-duplicate and cap the list."""
    cleaned: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if lowercase:
            tag = tag.lower()
        if not tag or len(tag) > MAX_TAG_LENGTH or tag in cleaned:
            continue
        cleaned.append(tag)
    return cleaned[:MAX_TAGS]
