"""Selector synthesis, classification and selection-mode tests."""

import pytest
import pytest_asyncio
from selectolax.parser import HTMLParser

from markscrape.capture import (
    HOVER_CLASS,
    SELECTED_CLASS,
    ElementInfo,
    ElementKind,
    SelectionCapture,
    classify,
    infer_extraction_type,
    infer_field_name,
    synthesize_selector,
)
from markscrape.errors import SelectorSyntaxError
from markscrape.loader import DocumentHost, LoadedDocument
from markscrape.models import ExtractionType
from markscrape.selectors import SelectorSet, validate_selector

PAGE = (
    "<html><head></head><body>"
    '<div class="card"><h1>A</h1></div>'
    "<p>first</p><span>x</span><p>second</p>"
    "</body></html>"
)
# Document-order indexes in PAGE
BODY, CARD, H1, P1, SPAN, P2 = 2, 3, 4, 5, 6, 7


def node(html: str, css: str):
    return HTMLParser(html).css_first(css)


# --- synthesis ---


def test_id_wins():
    info = ElementInfo(tag="DIV", attributes={"id": "main", "class": "a b"})
    assert synthesize_selector(info) == "#main"


def test_blank_id_is_ignored():
    info = ElementInfo(tag="div", attributes={"id": "  ", "class": "a"})
    assert synthesize_selector(info) == "div.a"


def test_all_classes_are_kept():
    info = ElementInfo(tag="li", attributes={"class": "item featured  sale"})
    selector = synthesize_selector(info)
    assert selector.startswith("li")
    for cls in ("item", "featured", "sale"):
        assert cls in selector
    assert selector == "li.item.featured.sale"


def test_marker_classes_are_excluded():
    info = ElementInfo(tag="div", attributes={"class": f"card {HOVER_CLASS} {SELECTED_CLASS}"})
    assert synthesize_selector(info) == "div.card"


def test_only_marker_classes_falls_back_to_nth_child():
    info = ElementInfo(tag="div", attributes={"class": HOVER_CLASS}, preceding_same_tag=0)
    assert synthesize_selector(info) == "div:nth-child(1)"


def test_nth_child_counts_preceding_same_tag_siblings():
    second_p = HTMLParser(PAGE).css("p")[1]
    info = ElementInfo.from_node(second_p)
    assert info.preceding_same_tag == 1
    assert synthesize_selector(info) == "p:nth-child(2)"


def test_from_node_reads_attributes_and_text():
    info = ElementInfo.from_node(node('<a href="/x" title="T">  Go  </a>', "a"))
    assert info.tag_name == "a"
    assert info.attributes["href"] == "/x"
    assert info.text.strip() == "Go"


# --- classification ---


@pytest.mark.parametrize(
    "tag,kind,extraction",
    [
        ("img", ElementKind.IMAGE, ExtractionType.IMAGE),
        ("IMG", ElementKind.IMAGE, ExtractionType.IMAGE),
        ("a", ElementKind.ANCHOR, ExtractionType.LINK),
        ("div", ElementKind.GENERIC, ExtractionType.TEXT),
        ("span", ElementKind.GENERIC, ExtractionType.TEXT),
    ],
)
def test_classify(tag, kind, extraction):
    info = ElementInfo(tag=tag)
    assert classify(info) is kind
    assert infer_extraction_type(info) is extraction


# --- field names ---


def test_name_from_text_truncated():
    info = ElementInfo(tag="h1", text="   A very long headline that keeps going  ")
    assert infer_field_name(info, "h1:nth-child(1)") == "A very long headline"


def test_name_priority_after_text():
    assert infer_field_name(ElementInfo(tag="img", attributes={"alt": "Logo", "title": "t", "id": "i"}), "#i") == "Logo"
    assert infer_field_name(ElementInfo(tag="img", attributes={"title": "Tip", "id": "i"}), "#i") == "Tip"
    assert infer_field_name(ElementInfo(tag="img", attributes={"id": "hero"}), "#hero") == "hero"


def test_name_falls_back_to_sanitized_selector():
    assert infer_field_name(ElementInfo(tag="span"), "span.price.big") == "spanpricebig"


# --- validation ---


def test_validate_selector_accepts_synthesized_forms():
    for css in ("#hero", "div.card.featured", "p:nth-child(2)"):
        assert validate_selector(css) == css


def test_validate_selector_rejects_garbage():
    with pytest.raises(SelectorSyntaxError):
        validate_selector("[[[")
    with pytest.raises(SelectorSyntaxError):
        validate_selector("  ")


# --- selection mode ---


@pytest_asyncio.fixture
async def capture():
    host = DocumentHost()
    cap = SelectionCapture(host, SelectorSet())
    await host.replace(LoadedDocument("https://example.com", PAGE))
    return cap


@pytest.mark.asyncio
async def test_events_ignored_outside_selection_mode(capture):
    assert capture.handle({"type": "click", "index": H1}) is None
    assert capture.highlights == {}
    assert len(capture.selectors) == 0


@pytest.mark.asyncio
async def test_hover_and_out(capture):
    capture.enable()
    capture.handle({"type": "pointerover", "index": H1})
    assert capture.highlights == {H1: "hover"}

    capture.handle({"type": "pointerover", "index": P1})
    assert capture.highlights == {P1: "hover"}

    capture.handle({"type": "pointerout", "index": P1})
    assert capture.highlights == {}


@pytest.mark.asyncio
async def test_root_elements_are_skipped(capture):
    capture.enable()
    capture.handle({"type": "pointerover", "index": BODY})
    capture.handle({"type": "pointerover", "index": 0})
    assert capture.highlights == {}


@pytest.mark.asyncio
async def test_click_registers_and_emits(capture):
    capture.enable()
    selector = capture.handle({"type": "click", "index": CARD})

    assert selector.css_selector == "div.card"
    assert selector.extraction_type is ExtractionType.TEXT
    assert selector.field_name == "A"
    assert capture.highlights[CARD] == "selected"
    assert capture.selectors.as_list() == [selector]

    event = capture.channel.get_nowait()
    assert event.selector == selector
    assert event.element_index == CARD
    assert event.url == "https://example.com"


@pytest.mark.asyncio
async def test_second_click_on_selected_element_is_ignored(capture):
    capture.enable()
    capture.handle({"type": "click", "index": P2})
    assert capture.handle({"type": "click", "index": P2}) is None
    assert len(capture.selectors) == 1


@pytest.mark.asyncio
async def test_hover_does_not_downgrade_selected(capture):
    capture.enable()
    capture.handle({"type": "click", "index": SPAN})
    capture.handle({"type": "pointerover", "index": SPAN})
    capture.handle({"type": "pointerout", "index": SPAN})
    assert capture.highlights == {SPAN: "selected"}


@pytest.mark.asyncio
async def test_browser_descriptor_takes_precedence(capture):
    capture.enable()
    selector = capture.handle(
        {"type": "click", "index": 99, "element": {"tag": "img", "attributes": {"id": "hero", "src": "/x.png"}}}
    )
    assert selector.css_selector == "#hero"
    assert selector.extraction_type is ExtractionType.IMAGE
    assert selector.field_name == "hero"


@pytest.mark.asyncio
async def test_out_of_range_index_is_ignored(capture):
    capture.enable()
    assert capture.handle({"type": "click", "index": 500}) is None
    assert capture.handle({"type": "click"}) is None


@pytest.mark.asyncio
async def test_render_applies_highlights_without_touching_document(capture):
    capture.enable()
    capture.handle({"type": "click", "index": H1})
    capture.handle({"type": "pointerover", "index": P1})

    rendered = HTMLParser(capture.render())
    assert SELECTED_CLASS in rendered.css_first("h1").attributes["class"]
    assert HOVER_CLASS in rendered.css_first("p").attributes["class"]
    assert SELECTED_CLASS not in capture.host.document.markup


@pytest.mark.asyncio
async def test_document_swap_resets_highlights(capture):
    capture.enable()
    capture.handle({"type": "click", "index": H1})
    await capture.host.replace(LoadedDocument("https://example.com/2", "<html><body><p>new</p></body></html>"))
    assert capture.highlights == {}
    # the registered selector survives the swap
    assert len(capture.selectors) == 1


@pytest.mark.asyncio
async def test_disable_keeps_selected_drops_hover(capture):
    capture.enable()
    capture.handle({"type": "click", "index": H1})
    capture.handle({"type": "pointerover", "index": P1})
    capture.disable()
    assert capture.highlights == {H1: "selected"}
