"""
Resource Fetcher: image and video search for tutor conversations.

Wraps a Serper-style search API (``POST {base}/{type}`` with ``{q, gl, num}``)
and normalizes its results to ``{title, link, imageUrl, snippet, source}``.
Search is best-effort: missing credentials or upstream failures return [].
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

try:
    from ..config import config
    from ..errors import InvalidInput
except ImportError:
    from src.config import config
    from src.errors import InvalidInput

logger = logging.getLogger(__name__)

RESULT_TYPES = ("search", "images", "videos")

# Response key holding the result list for each search type
RESULT_KEYS = {"search": "organic", "images": "images", "videos": "videos"}


def _normalize_item(result_type: str, item: Dict[str, Any]) -> Dict[str, Any]:
    if result_type == "images":
        normalized = {
            "title": item.get("title"),
            "link": item.get("link"),
            "imageUrl": item.get("imageUrl"),
            "source": item.get("source"),
        }
    elif result_type == "videos":
        normalized = {
            "title": item.get("title"),
            "link": item.get("link"),
            "imageUrl": item.get("imageUrl"),
            "snippet": item.get("snippet"),
            "source": item.get("channel") or item.get("source"),
        }
    else:
        normalized = {
            "title": item.get("title"),
            "link": item.get("link"),
            "snippet": item.get("snippet"),
        }
    return {key: value for key, value in normalized.items() if value is not None}


class ResourceFetcher:
    """
    Web search client for supplementary learning resources.

    Usage:
        fetcher = ResourceFetcher()
        images = fetcher.search("animal cell structure diagram", "images")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else config.search.api_key
        self.base_url = (base_url or config.search.base_url).rstrip("/")
        self.timeout = timeout or config.model.request_timeout
        self.session = session or requests.Session()

    def search(
        self,
        query: str,
        result_type: str = "search",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search for resources.

        Args:
            query: Search query
            result_type: One of "search", "images", "videos"
            limit: Maximum results (default from config)

        Returns:
            Normalized results, at most ``limit``; [] on any upstream failure

        Raises:
            InvalidInput: On an unknown result type
        """
        if result_type not in RESULT_TYPES:
            raise InvalidInput(f"result_type must be one of {list(RESULT_TYPES)}, got {result_type!r}")

        limit = limit or config.search.result_limit
        if not self.api_key:
            logger.warning("SERPER_API_KEY is not set; skipping %s search", result_type)
            return []
        if not query or not query.strip():
            return []

        logger.info("Fetching %s resources for %r", result_type, query)
        try:
            response = self.session.post(
                f"{self.base_url}/{result_type}",
                json={"q": query, "gl": config.search.country, "num": limit},
                headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Resource search failed for %r: %s", query, e)
            return []

        items = payload.get(RESULT_KEYS[result_type]) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []

        results = []
        for item in items:
            if not isinstance(item, dict):
                continue
            normalized = _normalize_item(result_type, item)
            if normalized.get("link"):
                results.append(normalized)
        return results[:limit]
