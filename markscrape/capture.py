"""
Interactive element selection: hover highlighting, click capture and
selector synthesis over the active loaded document.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field
from selectolax.parser import HTMLParser, Node

from .loader import DocumentHost, LoadedDocument
from .models import ExtractionType, Selector, SelectionEvent, SelectorOrigin
from .selectors import SelectorSet, sanitize_selector

logger = logging.getLogger(__name__)

HOVER_CLASS = "markscrape-hover"
SELECTED_CLASS = "markscrape-selected"
MARKER_CLASSES = frozenset({HOVER_CLASS, SELECTED_CLASS})
ROOT_TAGS = frozenset({"html", "head", "body"})
MAX_NAME_LENGTH = 20

HIGHLIGHT_CSS = (
    f".{HOVER_CLASS} {{ outline: 2px dashed #3b82f6 !important; cursor: pointer !important; }}\n"
    f".{SELECTED_CLASS} {{ outline: 2px solid #10b981 !important; background-color: rgba(16, 185, 129, 0.1) !important; }}"
)


class ElementKind(Enum):
    IMAGE = "image"
    ANCHOR = "anchor"
    GENERIC = "generic"


_KIND_BY_TAG = {"img": ElementKind.IMAGE, "a": ElementKind.ANCHOR}

_TYPE_BY_KIND = {
    ElementKind.IMAGE: ExtractionType.IMAGE,
    ElementKind.ANCHOR: ExtractionType.LINK,
    ElementKind.GENERIC: ExtractionType.TEXT,
}


class ElementInfo(BaseModel):
    """Snapshot of the parts of an element that capture looks at."""
    tag: str
    attributes: Dict[str, str] = Field(default_factory=dict)
    text: str = ""
    preceding_same_tag: int = 0

    @classmethod
    def from_node(cls, node: Node) -> "ElementInfo":
        count = 0
        sibling = node.prev
        while sibling is not None:
            if sibling.tag == node.tag:
                count += 1
            sibling = sibling.prev
        return cls(
            tag=node.tag,
            attributes={k: (v or "") for k, v in node.attributes.items()},
            text=node.text(deep=True),
            preceding_same_tag=count,
        )

    @property
    def tag_name(self) -> str:
        return self.tag.lower()

    @property
    def element_id(self) -> str:
        return self.attributes.get("id", "").strip()

    @property
    def classes(self) -> List[str]:
        tokens = self.attributes.get("class", "").split()
        return [t for t in tokens if t not in MARKER_CLASSES]


def classify(info: ElementInfo) -> ElementKind:
    return _KIND_BY_TAG.get(info.tag_name, ElementKind.GENERIC)


def synthesize_selector(info: ElementInfo) -> str:
    """
    Build a CSS selector for an element.

    Checked in order: ``#id``, then ``tag.class1.class2`` with every class
    except the instrumentation markers, then ``tag:nth-child(k)`` where k
    counts preceding siblings with the same tag.
    """
    if info.element_id:
        return f"#{info.element_id}"
    classes = info.classes
    if classes:
        return ".".join([info.tag_name] + classes)
    return f"{info.tag_name}:nth-child({info.preceding_same_tag + 1})"


def infer_extraction_type(info: ElementInfo) -> ExtractionType:
    return _TYPE_BY_KIND[classify(info)]


def infer_field_name(info: ElementInfo, selector: str) -> str:
    text = info.text.strip()[:MAX_NAME_LENGTH].strip()
    if text:
        return text
    for attr in ("alt", "title", "id"):
        value = info.attributes.get(attr, "").strip()
        if value:
            return value
    return sanitize_selector(selector)


def selector_for(info: ElementInfo) -> Selector:
    css = synthesize_selector(info)
    return Selector(
        css_selector=css,
        extraction_type=infer_extraction_type(info),
        field_name=infer_field_name(info, css),
        origin=SelectorOrigin.MANUAL,
    )


class SelectionCapture:
    """
    Selection-mode state over the active document.

    Raw events are mappings with a ``type`` (pointerover, pointerout, click),
    the element ``index`` in document order and, when sent from a live
    browser, an ``element`` descriptor. Highlights live in ``highlights``
    (index -> hover/selected) and are applied by ``render()``; the document
    itself is never touched.
    """

    def __init__(
        self,
        host: DocumentHost,
        selectors: Optional[SelectorSet] = None,
        channel: Optional[asyncio.Queue] = None,
    ):
        self.host = host
        self.selectors = selectors if selectors is not None else SelectorSet()
        self.channel = channel if channel is not None else asyncio.Queue()
        self.selection_mode = False
        self.highlights: Dict[int, str] = {}
        self._elements: Optional[List[Node]] = None
        host.on_replace(self._document_replaced)

    def enable(self) -> None:
        self.selection_mode = True

    def disable(self) -> None:
        self.selection_mode = False
        self.highlights = {k: v for k, v in self.highlights.items() if v == "selected"}

    async def _document_replaced(self, document: LoadedDocument) -> None:
        self._elements = None
        self.highlights = {}

    @property
    def elements(self) -> List[Node]:
        if self._elements is None:
            document = self.host.document
            self._elements = document.tree.css("*") if document is not None else []
        return self._elements

    def handle(self, raw: Mapping[str, Any]) -> Optional[Selector]:
        """Apply one raw pointer event. Returns the selector a click registered."""
        if not self.selection_mode:
            return None

        kind = raw.get("type")
        index = raw.get("index")
        if not isinstance(index, int):
            return None
        info = self._describe(index, raw.get("element"))
        if info is None or info.tag_name in ROOT_TAGS:
            return None

        if kind == "pointerover":
            self._clear_hover()
            if self.highlights.get(index) != "selected":
                self.highlights[index] = "hover"
        elif kind == "pointerout":
            if self.highlights.get(index) == "hover":
                del self.highlights[index]
        elif kind == "click":
            return self._register(index, info)
        return None

    def _register(self, index: int, info: ElementInfo) -> Optional[Selector]:
        if self.highlights.get(index) == "selected":
            return None
        selector = self.selectors.add(selector_for(info))
        self.highlights[index] = "selected"
        document = self.host.document
        self.channel.put_nowait(
            SelectionEvent(selector=selector, element_index=index, url=document.url if document else None)
        )
        logger.info("element selected", extra={"selector": selector.css_selector, "field": selector.field_name})
        return selector

    def _describe(self, index: int, element: Optional[Mapping[str, Any]]) -> Optional[ElementInfo]:
        if element:
            return ElementInfo.model_validate(element)
        if 0 <= index < len(self.elements):
            return ElementInfo.from_node(self.elements[index])
        return None

    def _clear_hover(self) -> None:
        self.highlights = {k: v for k, v in self.highlights.items() if v != "hover"}

    def render(self) -> str:
        """Markup of the active document with highlight classes applied."""
        document = self.host.document
        if document is None:
            return ""
        tree = HTMLParser(document.markup)
        for index, node in enumerate(tree.css("*")):
            state = self.highlights.get(index)
            if state is None:
                continue
            marker = SELECTED_CLASS if state == "selected" else HOVER_CLASS
            existing = node.attributes.get("class") or ""
            node.attrs["class"] = f"{existing} {marker}".strip()
        return tree.html or ""
