"""End-to-end flows through ScrapeEngine with a mocked transport."""

import json

import pytest

from markscrape.core import ScrapeEngine
from markscrape.errors import LoadError
from markscrape.models import BatchOptions, BatchStatus, Selector, SelectorGroup
from markscrape.store import MemoryStore, SelectorGroupStore

from .conftest import CARDS_HTML, FakeSites, make_loader

URL = "https://shop.test/list"


@pytest.fixture
def engine():
    return ScrapeEngine(loader=make_loader(FakeSites({URL: CARDS_HTML})), store=SelectorGroupStore(MemoryStore()))


@pytest.mark.asyncio
async def test_extract_without_document_fails(engine):
    with pytest.raises(LoadError):
        engine.extract()


@pytest.mark.asyncio
async def test_pick_then_extract(engine):
    await engine.load_url(URL)
    engine.capture.enable()

    # the h1 inside the first card
    h1 = next(i for i, n in enumerate(engine.capture.elements) if n.tag == "h1")
    selector = engine.capture_selection({"type": "click", "index": h1})

    assert selector.css_selector.startswith("h1")
    assert engine.events.get_nowait().selector == selector
    records = engine.extract()
    assert [r[selector.field_name] for r in records] == ["A", "B"]


@pytest.mark.asyncio
async def test_selection_survives_reload(engine):
    await engine.load_url(URL)
    engine.capture.enable()
    card = next(i for i, n in enumerate(engine.capture.elements) if n.tag == "div")
    engine.capture_selection({"type": "click", "index": card})

    await engine.load_url(URL)

    assert engine.capture.highlights == {}
    assert len(engine.selectors) == 1


@pytest.mark.asyncio
async def test_batch_then_export(engine):
    engine.selectors.add(Selector(css_selector="h1", field_name="title"))

    results = await engine.run_batch([URL, "https://shop.test/missing"], options=BatchOptions(inter_request_delay_ms=0))

    assert engine.batch.job.status is BatchStatus.COMPLETED
    data = json.loads(engine.export_as(results, "json"))
    assert data[0]["records"] == [{"title": "A"}, {"title": "B"}]
    assert data[1]["error"]


@pytest.mark.asyncio
async def test_load_group_swaps_selectors(engine):
    await engine.store.save_group(SelectorGroup(name="cards", selectors=[Selector(css_selector="h1", field_name="t")]))
    engine.selectors.add(Selector(css_selector="p"))

    group = await engine.load_group("cards")

    assert group.name == "cards"
    assert [s.field_name for s in engine.selectors] == ["t"]


@pytest.mark.asyncio
async def test_load_group_without_store():
    engine = ScrapeEngine(loader=make_loader(FakeSites({})))
    with pytest.raises(RuntimeError):
        await engine.load_group("cards")


@pytest.mark.asyncio
async def test_suggest_selectors_for_loaded_page(engine):
    with pytest.raises(LoadError):
        engine.suggest_selectors()

    await engine.load_url(URL)

    # CARDS_HTML has an h1 per card and nothing else the patterns know
    assert [s.field_name for s in engine.suggest_selectors()] == ["title"]
