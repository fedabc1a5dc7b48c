"""
URL discovery: breadth-first crawl of a page's links to fill a batch queue.
"""

import logging
import re
from collections import deque
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

from .errors import LoadError
from .loader import ContentLoader, LoadedDocument
from .models import DiscoveryOptions

logger = logging.getLogger(__name__)


def page_links(document: LoadedDocument) -> List[str]:
    """Absolute http(s) links of a page, fragments dropped, in document order."""
    links = []
    for node in document.tree.css("a[href]"):
        href = (node.attributes.get("href") or "").strip()
        if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
            continue
        absolute, _ = urldefrag(urljoin(document.url, href))
        if urlparse(absolute).scheme in ("http", "https"):
            links.append(absolute)
    return links


async def discover_urls(
    loader: ContentLoader,
    start_url: str,
    options: Optional[DiscoveryOptions] = None,
) -> List[str]:
    """
    Collect URLs reachable from ``start_url``.

    Pages are fetched through the loader without replacing the active
    document. The start URL comes first; links are followed up to
    ``max_depth`` hops and the result never exceeds ``max_urls``. Pages that
    fail to load are skipped.

    Args:
        loader: Content loader used to fetch each page
        start_url: Page the crawl starts from
        options: depth, pattern, domain and size limits

    Returns:
        Discovered URLs in breadth-first order
    """
    options = options or DiscoveryOptions()
    pattern = re.compile(options.url_pattern) if options.url_pattern else None
    start_host = urlparse(start_url).hostname

    discovered: List[str] = []
    seen = set()
    queue = deque([(start_url, 0)])

    while queue and len(discovered) < options.max_urls:
        url, depth = queue.popleft()
        if url in seen:
            continue
        seen.add(url)
        discovered.append(url)

        if depth >= options.max_depth:
            continue

        try:
            document = await loader.fetch(url, options.load_options)
        except LoadError as e:
            logger.warning("discovery fetch failed", extra={"url": url, "reason": e.reason})
            continue

        for link in page_links(document):
            if link in seen:
                continue
            if pattern and not pattern.search(link):
                continue
            if options.same_domain and urlparse(link).hostname != start_host:
                continue
            queue.append((link, depth + 1))

    logger.info("discovery finished", extra={"url": start_url, "found": len(discovered)})
    return discovered
