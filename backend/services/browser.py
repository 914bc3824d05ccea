"""
System browser collaborator.

Opens URLs and searches in the user's default browser and remembers the
last page so the agent can mention it in later requests.
"""

from __future__ import annotations

import urllib.parse
import webbrowser

from observability.logger import log_event
from services.protocols import WebPage


SEARCH_URL = "https://www.google.com/search?q={query}"


class SystemBrowser:
    """Browser implementation backed by the stdlib webbrowser module."""

    def __init__(self, search_url: str = SEARCH_URL) -> None:
        self._search_url = search_url
        self._last_page: WebPage | None = None

    @property
    def last_page(self) -> WebPage | None:
        return self._last_page

    def open_url(self, url: str) -> bool:
        if not urllib.parse.urlparse(url).scheme:
            url = "https://" + url
        opened = webbrowser.open(url, new=2)
        if opened:
            self._last_page = WebPage(title=url, url=url)
        log_event({"event_type": "browser_open_url", "url": url, "opened": opened})
        return opened

    def search(self, query: str) -> bool:
        url = self._search_url.format(query=urllib.parse.quote_plus(query))
        opened = webbrowser.open(url, new=2)
        if opened:
            self._last_page = WebPage(title=f"Search: {query}", url=url)
        log_event({"event_type": "browser_search", "query": query, "opened": opened})
        return opened
