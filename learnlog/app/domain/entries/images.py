"""Helpers for images embedded in entry bodies."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import unquote, urlparse

__all__ = [
    "extract_image_urls",
    "extract_object_path",
    "removed_image_urls",
]

IMG_SRC_PATTERN = re.compile(
    r"<img\b[^>]*?\bsrc=[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE
)
HTTP_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


def extract_image_urls(html: Optional[str]) -> List[str]:
    """Return absolute http(s) ``<img src>`` URLs, de-duplicated in order."""

    if not html:
        return []
    urls: List[str] = []
    for match in IMG_SRC_PATTERN.finditer(html):
        src = match.group(1)
        if HTTP_URL_PATTERN.match(src) and src not in urls:
            urls.append(src)
    return urls


def removed_image_urls(before_html: Optional[str], after_html: Optional[str]) -> List[str]:
    """Images referenced by ``before_html`` that ``after_html`` no longer uses."""

    remaining = set(extract_image_urls(after_html))
    return [url for url in extract_image_urls(before_html) if url not in remaining]


def extract_object_path(url: str, bucket: str) -> Optional[str]:
    """Map a public object URL to its path inside ``bucket``.

    Only URLs of the form ``.../public/<bucket>/<path>`` qualify; relative or
    traversing paths are rejected.
    """

    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    parts = [part for part in unquote(parsed.path).split("/") if part]
    if "public" not in parts:
        return None
    index = parts.index("public")
    if index + 1 >= len(parts) or parts[index + 1] != bucket:
        return None
    rest = "/".join(parts[index + 2 :])
    if not rest or ".." in rest or rest.startswith("/"):
        return None
    return rest
