import asyncio
from typing import Any, List, Mapping, Optional, Sequence

from .batch import BatchRunner, UpdateCallback
from .capture import SelectionCapture
from .discovery import discover_urls
from .errors import LoadError
from .export import export_as
from .loader import ContentLoader, DocumentHost, LoadedDocument
from .models import BatchOptions, DiscoveryOptions, ListScope, LoadOptions, ScrapedRecord, ScrapeResult, Selector
from .parser import ProgressCallback, extract, suggest_selectors
from .remote import RemoteExtractor
from .selectors import SelectorSet
from .store import SelectorGroupStore


class ScrapeEngine:
    """Single entry point that presentation layers drive."""

    def __init__(
        self,
        loader: Optional[ContentLoader] = None,
        store: Optional[SelectorGroupStore] = None,
        remote: Optional[RemoteExtractor] = None,
    ):
        self.loader = loader or ContentLoader(host=DocumentHost())
        self.host = self.loader.host
        self.selectors = SelectorSet()
        self.events: asyncio.Queue = asyncio.Queue()
        self.capture = SelectionCapture(self.host, self.selectors, self.events)
        self.store = store
        self.batch = BatchRunner(self.loader, remote=remote)

    @property
    def document(self) -> Optional[LoadedDocument]:
        return self.host.document

    async def load_url(self, url: str, options: Optional[LoadOptions] = None) -> LoadedDocument:
        """Load a page interactively. A LoadError leaves a failure page shown; call again to retry."""
        return await self.loader.load(url, options)

    def capture_selection(self, raw_event: Mapping[str, Any]) -> Optional[Selector]:
        return self.capture.handle(raw_event)

    def extract(
        self,
        document: Optional[LoadedDocument] = None,
        selectors: Optional[Sequence[Selector]] = None,
        list_scope: ListScope = ListScope.CONTAINER,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ScrapedRecord]:
        document = document or self.document
        if document is None:
            raise LoadError("", "no document loaded")
        selectors = self.selectors.as_list() if selectors is None else selectors
        return extract(document, selectors, list_scope=list_scope, on_progress=on_progress)

    async def run_batch(
        self,
        urls: Sequence[str],
        selectors: Optional[Sequence[Selector]] = None,
        options: Optional[BatchOptions] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> List[ScrapeResult]:
        selectors = self.selectors.as_list() if selectors is None else selectors
        return await self.batch.run(urls, selectors, options, on_update=on_update)

    async def discover_urls(self, start_url: str, options: Optional[DiscoveryOptions] = None) -> List[str]:
        """Crawl links from a start page; the active document is left alone."""
        return await discover_urls(self.loader, start_url, options)

    def suggest_selectors(self, document: Optional[LoadedDocument] = None) -> List[Selector]:
        document = document or self.document
        if document is None:
            raise LoadError("", "no document loaded")
        return suggest_selectors(document)

    def stop_batch(self) -> None:
        self.batch.stop()

    def export_as(self, results: Sequence[ScrapeResult], format: str, table_name: str = "scraped_data") -> str:
        return export_as(results, format, selectors=self.selectors.as_list(), table_name=table_name)

    async def load_group(self, group_id_or_name: str):
        if self.store is None:
            raise RuntimeError("no selector group store configured")
        return await self.store.load_into(self.selectors, group_id_or_name)
