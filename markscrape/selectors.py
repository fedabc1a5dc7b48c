"""
Selector validation and the active selector set.
"""

import logging
import re
from typing import Iterable, Iterator, List, Optional

from selectolax.parser import HTMLParser, Node

from .errors import SelectorSyntaxError
from .models import Selector

logger = logging.getLogger(__name__)

_EMPTY_PAGE = HTMLParser("<html><body><p></p></body></html>")


def query(node, css: str) -> List[Node]:
    """Run a CSS query, turning parser rejections into SelectorSyntaxError."""
    try:
        return node.css(css)
    except ValueError as e:
        raise SelectorSyntaxError(css, str(e)) from e


def validate_selector(css: str) -> str:
    css = (css or "").strip()
    if not css:
        raise SelectorSyntaxError(css, "empty selector")
    query(_EMPTY_PAGE, css)
    return css


def sanitize_selector(css: str) -> str:
    """Selector string with id/class markers dropped, for use as a field name."""
    return re.sub(r"[.#]", "", css).strip()


class SelectorSet:
    """Ordered, validated list of the selectors currently in use."""

    def __init__(self, selectors: Optional[Iterable[Selector]] = None):
        self._selectors: List[Selector] = []
        for selector in selectors or []:
            self.add(selector)

    def add(self, selector: Selector) -> Selector:
        validate_selector(selector.css_selector)
        self._selectors.append(selector)
        logger.debug("selector registered", extra={"selector": selector.css_selector, "field": selector.field_name})
        return selector

    def remove(self, selector_id: str) -> bool:
        before = len(self._selectors)
        self._selectors = [s for s in self._selectors if s.id != selector_id]
        return len(self._selectors) != before

    def replace(self, selectors: Iterable[Selector]) -> None:
        """Swap the whole set, skipping selectors the parser rejects."""
        accepted = []
        for selector in selectors:
            try:
                validate_selector(selector.css_selector)
            except SelectorSyntaxError:
                logger.warning("skipping invalid selector", extra={"selector": selector.css_selector})
                continue
            accepted.append(selector)
        self._selectors = accepted

    def clear(self) -> None:
        self._selectors = []

    def as_list(self) -> List[Selector]:
        return list(self._selectors)

    def __iter__(self) -> Iterator[Selector]:
        return iter(list(self._selectors))

    def __len__(self) -> int:
        return len(self._selectors)
