# src/parcel_pulse/api/page.py
from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

# In-page global assignment: window.csrfToken = "..." / csrfToken: '...'
_GLOBAL_TOKEN_RE = re.compile(
    r"""(?:window\.)?["']?csrfToken["']?\s*[:=]\s*["']([^"']+)["']""")

# Loose patterns for re-deriving the token from a plain page fetch
CSRF_PATTERNS = [
    re.compile(r"""csrfToken\s*[:=]\s*["']([^"']+)["']""", re.I),
    re.compile(r"""["']csrfToken["']\s*[:=]\s*["']([^"']+)["']""", re.I),
    re.compile(r'name="csrfToken"\s+value="([^"]+)"', re.I),
    re.compile(r'value="([^"]+)"\s+name="csrfToken"', re.I),
    re.compile(r'<meta[^>]+name="csrf-token"[^>]+content="([^"]+)"', re.I),
    re.compile(r"""CSRF_TOKEN\s*[:=]\s*["']([^"']+)["']""", re.I),
    re.compile(r"""csrf-token\s*[:=]\s*["']([^"']+)["']""", re.I),
]

_TBA_RE = re.compile(r"\b(TBA\d{12,})\b")
_TRACKING_TEXT_SELECTORS = (
    ".a-size-medium, .a-size-base-plus, .ship-track-grid-subtext, [data-test-id*='tracking']"
)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _global_token(soup: BeautifulSoup) -> Optional[str]:
    for script in soup.find_all("script"):
        text = script.string or script.get_text() or ""
        m = _GLOBAL_TOKEN_RE.search(text)
        if m and m.group(1).strip():
            return m.group(1).strip()
    return None


def _meta_token(soup: BeautifulSoup) -> Optional[str]:
    for meta in soup.find_all("meta"):
        name = (meta.get("name") or "").strip().lower()
        if name == "csrf-token":
            content = (meta.get("content") or "").strip()
            if content:
                return content
    return None


def _input_token(soup: BeautifulSoup) -> Optional[str]:
    el = soup.find("input", attrs={"name": "csrfToken"})
    if el is None:
        return None
    value = (el.get("value") or "").strip()
    return value or None


def extract_token_from_html(html: str) -> Optional[str]:
    """
    Read the anti-forgery token from a rendered page, in priority order:
      1) the in-page global `csrfToken`
      2) <meta name="CSRF-TOKEN" content=...>
      3) <input name="csrfToken" value=...>
    Returns None when all three are empty.
    """
    soup = _soup(html)
    return _global_token(soup) or _meta_token(soup) or _input_token(soup)


def extract_token_with_patterns(html: str) -> Optional[str]:
    """Regex fallback for raw HTML from a plain GET of the source page."""
    for pattern in CSRF_PATTERNS:
        m = pattern.search(html or "")
        if m and m.group(1):
            return m.group(1)
    return None


def scan_token(html: str) -> Optional[str]:
    return extract_token_from_html(html) or extract_token_with_patterns(html)


def extract_tracking_ids(html: str, url: Optional[str] = None) -> List[str]:
    """
    Collect tracking ids from a carrier tracking page (first-seen order):
      - delivery cards ("Tracking ID: TBA123...")
      - [data-tracking-id] attributes
      - the trackingId query parameter of `url`
      - TBA-style ids in known text containers
    """
    soup = _soup(html)
    ids: dict[str, None] = {}

    for el in soup.select(".pt-delivery-card-trackingId"):
        text = el.get_text(strip=True)
        m = re.search(r":\s*(.+)", text)
        if m:
            ids[m.group(1).strip()] = None
        elif text:
            ids[text] = None

    for el in soup.select("[data-tracking-id]"):
        value = (el.get("data-tracking-id") or "").strip()
        if value:
            ids[value] = None

    if url:
        for value in parse_qs(urlparse(url).query).get("trackingId", []):
            if value.strip():
                ids[value.strip()] = None

    for el in soup.select(_TRACKING_TEXT_SELECTORS):
        m = _TBA_RE.search(el.get_text(strip=True))
        if m:
            ids[m.group(1)] = None

    return list(ids)
