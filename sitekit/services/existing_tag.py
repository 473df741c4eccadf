"""
Existing tag detection.

Fetches the site's home page and looks for a tag that some other plugin or
theme already placed (Analytics property, Tag Manager container, AdSense
publisher client). Setup flows use the result to avoid double-tagging and
to check the user's access to the detected account.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Pattern

import requests

logger = logging.getLogger(__name__)

TAG_PATTERNS: Dict[str, List[Pattern[str]]] = {
    "analytics": [
        re.compile(r"<script[^>]*src=['\"]https?://www\.googletagmanager\.com/gtag/js\?id=(UA-\d+-\d+)['\"][^>]*>", re.I),
        re.compile(r"__gaTracker\(\s*['\"]create['\"]\s*,\s*['\"](UA-\d+-\d+)['\"]", re.I),
        re.compile(r"ga\(\s*['\"]create['\"]\s*,\s*['\"](UA-\d+-\d+)['\"]", re.I),
        re.compile(r"_gaq\.push\(\s*\[\s*['\"]_setAccount['\"]\s*,\s*['\"](UA-\d+-\d+)['\"]\s*]\s*\)", re.I),
        re.compile(r"<amp-analytics\s+type=\"gtag\"[^>]*>[^<]*<script\s+type=\"application/json\">[^<]*\"gtag_id\"\s*:\s*\"(UA-\d+-\d+)\"", re.I),
    ],
    "tagmanager": [
        re.compile(r"<script[^>]*>[^<]+?googletagmanager\.com/gtm\.js[^<]+?['\"](GTM-[A-Z0-9]+)['\"]", re.I),
        re.compile(r"<script[^>]*src=['\"]https?://www\.googletagmanager\.com/gtm\.js\?id=(GTM-[A-Z0-9]+)['\"]", re.I),
        re.compile(r"<iframe[^>]*src=['\"]https?://www\.googletagmanager\.com/ns\.html\?id=(GTM-[A-Z0-9]+)['\"]", re.I),
        re.compile(r"<amp-analytics[^>]+config=['\"]https?://www\.googletagmanager\.com/amp\.json\?id=(GTM-[A-Z0-9]+)", re.I),
    ],
    "adsense": [
        re.compile(r"google_ad_client\s*[=:]\s*['\"](ca-pub-\d+)['\"]", re.I),
        re.compile(r"<(?:script|amp-auto-ads)\s[^>]*data-ad-client=['\"](ca-pub-\d+)['\"]", re.I),
        re.compile(r"pagead2\.googlesyndication\.com/pagead/js/adsbygoogle\.js\?client=(ca-pub-\d+)", re.I),
    ],
}


def find_tag(module_slug: str, html: str) -> Optional[str]:
    """Return the first tag of `module_slug` found in `html`, if any."""
    for pattern in TAG_PATTERNS.get(module_slug, []):
        match = pattern.search(html or "")
        if match:
            return match.group(1)
    return None


def _default_fetch(url: str) -> str:
    resp = requests.get(url, timeout=10, headers={"User-Agent": "googlesitekit-tag-detection"})
    resp.raise_for_status()
    return resp.text


def get_existing_tag(
    module_slug: str,
    site_url: str,
    *,
    fetch: Optional[Callable[[str], str]] = None,
) -> Optional[str]:
    """Fetch `site_url` and return an existing tag for `module_slug` (or None)."""
    if module_slug not in TAG_PATTERNS:
        return None
    fetch = fetch or _default_fetch
    try:
        html = fetch(site_url)
    except requests.RequestException as e:
        logger.debug("Existing tag lookup for %s failed: %s", module_slug, e)
        return None
    tag = find_tag(module_slug, html)
    if tag:
        logger.info("Existing %s tag found: %s", module_slug, tag)
    return tag
