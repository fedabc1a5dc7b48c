"""
Example usage of the markscrape engine.
"""

import asyncio
import json

from markscrape import (
    BatchOptions,
    ExtractionType,
    LoadError,
    ScrapeEngine,
    Selector,
    SelectorGroup,
    SelectorGroupStore,
)
from markscrape.store import MemoryStore, templates


async def example_1_single_page():
    """Load one page and extract with hand-written selectors."""
    print("=" * 60)
    print("Example 1: Single page extraction")
    print("=" * 60)

    engine = ScrapeEngine()
    engine.selectors.add(Selector(css_selector="h1", field_name="title"))
    engine.selectors.add(Selector(css_selector="a", extraction_type=ExtractionType.LINK, field_name="link"))

    # Replace with an actual URL
    url = "https://example.com"

    try:
        await engine.load_url(url)
    except LoadError as e:
        print(f"Error: {e}")
        return

    records = engine.extract()
    print(f"\n✓ Extracted {len(records)} records")
    print(json.dumps(records, indent=2))


async def example_2_simulated_picking():
    """Feed pointer events to the capture layer the way a browser would."""
    print("\n" + "=" * 60)
    print("Example 2: Selection capture")
    print("=" * 60)

    engine = ScrapeEngine()
    try:
        await engine.load_url("https://example.com")
    except LoadError as e:
        print(f"Error: {e}")
        return

    engine.capture.enable()
    for index, node in enumerate(engine.capture.elements):
        if node.tag in ("h1", "p"):
            engine.capture_selection({"type": "click", "index": index})

    while not engine.events.empty():
        event = engine.events.get_nowait()
        print(f"  + {event.selector.field_name}: {event.selector.css_selector}")

    print(json.dumps(engine.extract(), indent=2))


async def example_3_batch_with_group():
    """Run a saved group over several URLs and export as CSV."""
    print("\n" + "=" * 60)
    print("Example 3: Batch run with a selector group")
    print("=" * 60)

    store = SelectorGroupStore(MemoryStore())
    await store.save_group(SelectorGroup(name="articles", selectors=templates()[1].selectors))

    engine = ScrapeEngine(store=store)
    await engine.load_group("articles")

    urls = [
        "https://example.com/news/1",
        "https://example.com/news/2",
    ]

    def on_update(job, result):
        status = "failed" if result.error else f"{len(result.records)} records"
        print(f"  [{job.progress_percent:5.1f}%] {result.url}: {status}")

    results = await engine.run_batch(urls, options=BatchOptions(inter_request_delay_ms=500), on_update=on_update)

    with open("output.csv", "w") as f:
        f.write(engine.export_as(results, "csv"))
    print("\n✓ Saved to output.csv")


async def main():
    await example_1_single_page()
    await example_2_simulated_picking()
    await example_3_batch_with_group()


if __name__ == "__main__":
    asyncio.run(main())
