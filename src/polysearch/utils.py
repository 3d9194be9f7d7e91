"""URL and text helpers shared by the merge step and the provider adapters."""

from __future__ import annotations

import re
import unicodedata
from html import unescape
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_REGEX_STRIP_TAGS = re.compile("<.*?>")
_TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "fbclid",
        "gclid",
    }
)


def dedup_key(url: str) -> str:
    """Normalize a result URL into the key used to merge duplicates.

    Lowercases, drops a leading ``www.`` label, one trailing slash and the
    known tracking query parameters. Strings that do not parse as an absolute
    URL keep the lowercase/``www.``/slash treatment only.
    """
    raw = url.strip().lower()
    normalized = _strip_www(raw)
    if normalized.endswith("/"):
        normalized = normalized[:-1]

    try:
        parts = urlsplit(normalized)
    except ValueError:
        return normalized
    if not parts.scheme or not parts.netloc:
        return normalized

    query = urlencode(
        [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key not in _TRACKING_PARAMS
        ]
    )
    path = parts.path
    if path.endswith("/"):
        path = path[:-1]

    return urlunsplit(
        (parts.scheme, _strip_www(parts.netloc), path, query, parts.fragment)
    )


def normalize_text(raw: str) -> str:
    """Strip HTML tags, unescape entities, normalize Unicode, collapse whitespace."""
    if not raw:
        return ""

    text = _REGEX_STRIP_TAGS.sub("", raw)
    text = unescape(text)
    text = unicodedata.normalize("NFC", text)

    c_to_none = {
        ord(ch): None for ch in set(text) if unicodedata.category(ch)[0] == "C"
    }
    if c_to_none:
        text = text.translate(c_to_none)

    return " ".join(text.split())


def _strip_www(value: str) -> str:
    return value[4:] if value.startswith("www.") else value
