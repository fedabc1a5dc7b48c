import logging
from typing import Callable, Dict, List, Optional, Sequence, Union
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from .errors import ExtractionFieldError, MarkscrapeError
from .loader import LoadedDocument
from .models import ExtractionType, FieldValue, ListScope, ScrapedRecord, Selector, SelectorOrigin
from .selectors import query

logger = logging.getLogger(__name__)

# Generic repeated-item containers: list items, cards, articles, item-like classes
CONTAINER_PATTERNS = (
    "li",
    "article",
    ".card",
    ".item",
    ".product",
    ".listing",
    ".entry",
    ".result",
)

ProgressCallback = Callable[[float], None]


def find_containers(tree: HTMLParser) -> List[Node]:
    """
    Outermost nodes matching any container pattern, once each, in document order.

    A match nested inside another match (a card inside an article, list items
    inside a card) belongs to its enclosing container and is not a record.
    """
    position = {node.mem_id: i for i, node in enumerate(tree.css("*"))}
    found: Dict[int, Node] = {}
    for pattern in CONTAINER_PATTERNS:
        for node in tree.css(pattern):
            found.setdefault(node.mem_id, node)
    outermost = [n for n in found.values() if not _inside_any(n, found)]
    return sorted(outermost, key=lambda n: position.get(n.mem_id, len(position)))


def _inside_any(node: Node, found: Dict[int, Node]) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.mem_id in found:
            return True
        parent = parent.parent
    return False


def inner_html(node: Node) -> str:
    return "".join(child.html or "" for child in node.iter(include_text=True))


def _text(node: Node) -> str:
    return node.text(deep=True).strip()


class RecordExtractor:
    """Pulls typed field values out of a document for an ordered selector list."""

    def __init__(
        self,
        selectors: Sequence[Selector],
        list_scope: ListScope = ListScope.CONTAINER,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.selectors = list(selectors)
        self.list_scope = list_scope
        self.on_progress = on_progress

    def extract(self, document: Union[LoadedDocument, str]) -> List[ScrapedRecord]:
        """
        Extract records from a document.

        More than one container match means the page is a list: every
        selector is scoped to each container and containers with no fields
        are dropped. Otherwise the whole document yields at most one record.
        """
        if isinstance(document, LoadedDocument):
            tree, url = document.tree, document.url
        else:
            tree, url = HTMLParser(document), None

        containers = find_containers(tree)
        if len(containers) > 1:
            records = self._extract_list(tree, containers, url)
        else:
            record = self._extract_fields(tree, self.selectors, url, report=True)
            records = [record] if record else []

        logger.debug(
            "extraction finished",
            extra={"url": url, "containers": len(containers), "records": len(records)},
        )
        return records

    def _extract_list(self, tree: HTMLParser, containers: List[Node], url: Optional[str]) -> List[ScrapedRecord]:
        shared: ScrapedRecord = {}
        scoped = self.selectors
        if self.list_scope is ListScope.DOCUMENT:
            lists = [s for s in self.selectors if s.extraction_type is ExtractionType.LIST]
            scoped = [s for s in self.selectors if s.extraction_type is not ExtractionType.LIST]
            shared = self._extract_fields(tree, lists, url)

        records = []
        total = len(containers)
        for i, container in enumerate(containers, 1):
            record = self._extract_fields(container, scoped, url)
            if record and shared:
                # Keep the caller's selector order
                merged = {**record, **shared}
                record = {s.field_name: merged[s.field_name] for s in self.selectors if s.field_name in merged}
            if record:
                records.append(record)
            self._progress(i / total)
        return records

    def _extract_fields(self, scope, selectors: Sequence[Selector], url: Optional[str], report: bool = False) -> ScrapedRecord:
        record: ScrapedRecord = {}
        total = len(selectors)
        for i, selector in enumerate(selectors, 1):
            try:
                value = self._extract_field(scope, selector, url)
            except ExtractionFieldError as e:
                logger.debug("field skipped", extra={"url": url, "field": e.field_name, "selector": e.selector, "reason": e.reason})
                value = None
            if value is not None:
                record[selector.field_name] = value
            if report:
                self._progress(i / total)
        return record

    def _extract_field(self, scope, selector: Selector, url: Optional[str]) -> Optional[FieldValue]:
        try:
            matches = query(scope, selector.css_selector)
        except MarkscrapeError as e:
            raise ExtractionFieldError(selector.field_name, selector.css_selector, str(e), url) from e

        if not matches:
            return None

        kind = selector.extraction_type
        if kind is ExtractionType.LIST:
            return [_text(m) for m in matches]

        target = matches[0]
        if kind is ExtractionType.TEXT:
            return _text(target)
        if kind is ExtractionType.HTML:
            return inner_html(target)
        if kind is ExtractionType.IMAGE:
            return target.attributes.get("src")
        if kind is ExtractionType.LINK:
            return target.attributes.get("href")
        if kind is ExtractionType.ATTRIBUTE:
            return target.attributes.get(selector.attribute_name)
        raise ExtractionFieldError(selector.field_name, selector.css_selector, f"unsupported type {kind}", url)

    def _progress(self, fraction: float) -> None:
        if self.on_progress:
            self.on_progress(fraction)


def extract(
    document: Union[LoadedDocument, str],
    selectors: Sequence[Selector],
    list_scope: ListScope = ListScope.CONTAINER,
    on_progress: Optional[ProgressCallback] = None,
) -> List[ScrapedRecord]:
    return RecordExtractor(selectors, list_scope=list_scope, on_progress=on_progress).extract(document)


def find_next_page_url(document: LoadedDocument, pagination_selector: Optional[str]) -> Optional[str]:
    """Find the URL of the next page if pagination exists."""
    if not pagination_selector:
        return None

    try:
        links = query(document.tree, pagination_selector)
    except MarkscrapeError:
        logger.warning("bad pagination selector", extra={"selector": pagination_selector})
        return None

    for link in links:
        href = link.attributes.get("href")
        if href and not href.startswith(("#", "javascript:")):
            return urljoin(document.url, href)

    return None


# Common product/article markup checked by suggest_selectors, in output order
SUGGESTION_PATTERNS = (
    ('h1, .title, .product-title, [itemprop="name"]', ExtractionType.TEXT, "title"),
    ('.price, [itemprop="price"], .product-price', ExtractionType.TEXT, "price"),
    ('img.product-image, [itemprop="image"], .main-image', ExtractionType.IMAGE, "image"),
    ('.description, [itemprop="description"], .product-description', ExtractionType.TEXT, "description"),
    ('a.product-link, [itemprop="url"]', ExtractionType.LINK, "productUrl"),
)


def suggest_selectors(document: Union[LoadedDocument, str]) -> List[Selector]:
    """Selectors for the well-known patterns that match something on the page."""
    tree = document.tree if isinstance(document, LoadedDocument) else HTMLParser(document)
    return [
        Selector(css_selector=css, extraction_type=kind, field_name=name, origin=SelectorOrigin.SUGGESTED)
        for css, kind, name in SUGGESTION_PATTERNS
        if tree.css_first(css) is not None
    ]
