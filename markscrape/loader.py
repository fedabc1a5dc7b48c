"""
Content loading through the first-party proxy, with a public relay as fallback.
"""

import html
import logging
import re
from typing import Awaitable, Callable, List, Optional

import httpx
from selectolax.parser import HTMLParser

from .config import get_settings
from .errors import LoadError
from .models import LoadOptions

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

INTERCEPTOR_SCRIPT = """<script data-markscrape="interceptor">
window.addEventListener('click', function (e) {
  var link = e.target.closest ? e.target.closest('a') : null;
  if (link && link.href) { e.preventDefault(); }
}, true);
window.addEventListener('submit', function (e) { e.preventDefault(); }, true);
</script>"""

_HEAD_OPEN = re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html(\s[^>]*)?>", re.IGNORECASE)


class LoadedDocument:
    """Markup currently shown in the embedded view, plus its parsed tree."""

    def __init__(self, url: str, markup: str, source: str = "proxy"):
        self.url = url
        self.markup = markup
        self.source = source
        self.tree = HTMLParser(markup)

    @property
    def failed(self) -> bool:
        return self.source == "failure"

    def __repr__(self) -> str:
        return f"LoadedDocument(url={self.url!r}, source={self.source!r}, size={len(self.markup)})"


ReplaceListener = Callable[[LoadedDocument], Awaitable[None]]


class DocumentHost:
    """Holds the single active document. Every load swaps it wholesale."""

    def __init__(self):
        self._document: Optional[LoadedDocument] = None
        self._listeners: List[ReplaceListener] = []

    @property
    def document(self) -> Optional[LoadedDocument]:
        return self._document

    def on_replace(self, listener: ReplaceListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ReplaceListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def replace(self, document: LoadedDocument) -> None:
        self._document = document
        for listener in list(self._listeners):
            await listener(document)


def augment_markup(markup: str, base_href: Optional[str] = None) -> str:
    """Add <base target="_blank"> and navigation interceptors to loaded markup."""
    href = f' href="{html.escape(base_href, quote=True)}"' if base_href else ""
    injected = f'<base{href} target="_blank">{INTERCEPTOR_SCRIPT}'

    match = _HEAD_OPEN.search(markup)
    if match:
        return markup[:match.end()] + injected + markup[match.end():]

    match = _HTML_OPEN.search(markup)
    if match:
        return markup[:match.end()] + f"<head>{injected}</head>" + markup[match.end():]

    return f"<html><head>{injected}</head><body>{markup}</body></html>"


def strip_scripts(markup: str) -> str:
    tree = HTMLParser(markup)
    tree.strip_tags(["script", "noscript"])
    return tree.html or ""


def failure_markup(url: str, reason: str) -> str:
    return (
        "<html><head><title>Failed to load URL</title></head><body>"
        '<div class="markscrape-error">'
        "<h2>Failed to load URL</h2>"
        f"<p>{html.escape(reason)}</p>"
        f'<div class="url">{html.escape(url)}</div>'
        "<p>Please check the URL and try again.</p>"
        "</div></body></html>"
    )


class ContentLoader:
    """Fetches rendered markup for a URL and installs it in the document host."""

    def __init__(
        self,
        host: Optional[DocumentHost] = None,
        proxy_url: Optional[str] = None,
        relay_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.host = host or DocumentHost()
        self.proxy_url = proxy_url or settings.proxy_url
        self.relay_url = relay_url or settings.relay_url
        self._client = client

    async def load(self, url: str, options: Optional[LoadOptions] = None) -> LoadedDocument:
        """
        Load a URL into the host document.

        Args:
            url: Page to load
            options: javascript/timeout settings passed to the proxy

        Returns:
            The new active document

        Raises:
            LoadError: both the proxy and the relay failed; the host then
                shows a failure page for the URL.
        """
        try:
            document = await self.fetch(url, options)
        except LoadError as e:
            await self.host.replace(LoadedDocument(url, failure_markup(url, e.reason), source="failure"))
            raise
        await self.host.replace(document)
        logger.info("page loaded", extra={"url": url, "source": document.source, "size": len(document.markup)})
        return document

    async def fetch(self, url: str, options: Optional[LoadOptions] = None) -> LoadedDocument:
        """Fetch and augment a page without touching the host document."""
        options = options or LoadOptions()
        timeout = httpx.Timeout(options.timeout_ms / 1000)

        if self._client is not None:
            markup, source = await self._fetch(self._client, url, options, timeout)
        else:
            async with httpx.AsyncClient(headers=HEADERS, follow_redirects=True) as client:
                markup, source = await self._fetch(client, url, options, timeout)

        if not options.javascript_enabled:
            markup = strip_scripts(markup)
        base_href = url if source == "relay" else None
        return LoadedDocument(url, augment_markup(markup, base_href), source=source)

    async def _fetch(self, client: httpx.AsyncClient, url: str, options: LoadOptions, timeout: httpx.Timeout):
        try:
            return await self._via_proxy(client, url, options, timeout), "proxy"
        except (httpx.HTTPError, ValueError) as e:
            proxy_reason = _describe(e)
            logger.warning("proxy load failed, trying relay", extra={"url": url, "reason": proxy_reason})

        try:
            return await self._via_relay(client, url, timeout), "relay"
        except (httpx.HTTPError, ValueError) as e:
            relay_reason = _describe(e)
            logger.error("relay load failed", extra={"url": url, "reason": relay_reason})

        raise LoadError(url, f"proxy: {proxy_reason}; relay: {relay_reason}")

    async def _via_proxy(self, client: httpx.AsyncClient, url: str, options: LoadOptions, timeout: httpx.Timeout) -> str:
        response = await client.post(
            self.proxy_url,
            json={
                "url": url,
                "options": {"javascript": options.javascript_enabled, "timeout": options.timeout_ms},
            },
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("invalid response from proxy service")
        data = payload.get("data")
        content = data.get("content") if isinstance(data, dict) else None
        if not payload.get("success") or not isinstance(content, str) or not content:
            raise ValueError("invalid response from proxy service")
        return content

    async def _via_relay(self, client: httpx.AsyncClient, url: str, timeout: httpx.Timeout) -> str:
        response = await client.get(self.relay_url, params={"url": url}, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
        contents = payload.get("contents") if isinstance(payload, dict) else None
        if not isinstance(contents, str) or not contents:
            raise ValueError("invalid response from relay service")
        return contents


def _describe(error: Exception) -> str:
    if isinstance(error, httpx.TimeoutException):
        return "timed out"
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    return str(error) or type(error).__name__
