"""
Link list shown under search-backed replies.

Records themselves are never stored with a turn; the list is rebuilt from a
fresh search whenever a thread is reloaded.
"""

import re
from typing import Dict, List, Sequence
from urllib.parse import quote, urlparse

FAVICON_SERVICE = "https://www.google.com/s2/favicons?sz=16&domain="
DEFAULT_LINK_LIMIT = 5

# Browser noise around page titles
TITLE_CLEANUP_PATTERNS = [
    r"^\(\d+\)\s+",  # unread counters, e.g. "(3) Inbox"
    r"\s*[|\-]\s*$",  # dangling separators
]


def clean_link_title(title: str) -> str:
    if not title:
        return "Untitled"
    cleaned = title
    for pattern in TITLE_CLEANUP_PATTERNS:
        cleaned = re.sub(pattern, "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or title


def favicon_url(url: str, domain: str = "") -> str:
    """Favicon-service URL for a page's host."""
    host = domain or urlparse(url or "").netloc or "example.com"
    return f"{FAVICON_SERVICE}{quote(host, safe='')}"


def build_link_list(records: Sequence, limit: int = DEFAULT_LINK_LIMIT) -> List[Dict[str, str]]:
    """Top ``limit`` records as {url, title, favicon_url} dicts."""
    links = []
    for record in records[:limit]:
        links.append({
            "url": record.url,
            "title": clean_link_title(record.title),
            "favicon_url": record.favicon_url or favicon_url(record.url, record.domain),
        })
    return links
