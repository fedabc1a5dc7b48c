"""
Sequential multi-URL runs with throttling, progress and per-URL failure isolation.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import BatchItemError, BatchStateError
from .loader import ContentLoader, LoadedDocument
from .models import BatchJob, BatchOptions, BatchStatus, ScrapeResult, Selector
from .parser import extract, find_next_page_url
from .remote import RemoteExtractor

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[BatchJob, ScrapeResult], None]


class BatchRunner:
    """
    Drives loader and extractor over a URL queue, one URL at a time.

    The loop never runs URLs in parallel: every load replaces the single
    shared document. A stop request is honoured between URLs, never mid-URL.
    """

    def __init__(
        self,
        loader: ContentLoader,
        remote: Optional[RemoteExtractor] = None,
        sleep=asyncio.sleep,
    ):
        self.loader = loader
        self.remote = remote
        self._sleep = sleep
        self.job = BatchJob()
        self.results: List[ScrapeResult] = []
        self._stop_requested = False

    @property
    def running(self) -> bool:
        return self.job.status is BatchStatus.RUNNING

    def stop(self) -> None:
        if self.running:
            logger.info("stop requested", extra={"current_index": self.job.current_index})
            self._stop_requested = True

    async def run(
        self,
        urls: Sequence[str],
        selectors: Sequence[Selector],
        options: Optional[BatchOptions] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> List[ScrapeResult]:
        if self.running:
            raise BatchStateError("a batch job is already running")

        options = options or BatchOptions()
        self.job = BatchJob.from_urls(list(urls))
        self.results = []
        self._stop_requested = False
        job = self.job

        if not job.urls:
            job.status = BatchStatus.COMPLETED
            job.progress_percent = 100.0
            return self.results

        job.status = BatchStatus.RUNNING
        # url -> page number within its seed's pagination chain
        page_numbers: Dict[str, int] = {url: 1 for url in job.urls}
        delay = options.inter_request_delay_ms / 1000

        logger.info("batch started", extra={"urls": len(job.urls), "selectors": len(selectors)})

        index = 0
        try:
            while index < len(job.urls):
                if self._stop_requested:
                    job.status = BatchStatus.STOPPED
                    break

                url = job.urls[index]
                job.current_index = index
                result, document = await self._process(url, selectors, options)
                self.results.append(result)

                if document is not None and options.follow_pagination:
                    page = page_numbers[url]
                    next_url = find_next_page_url(document, options.pagination_selector)
                    if page < options.max_pages and next_url and next_url not in page_numbers:
                        page_numbers[next_url] = page + 1
                        job.urls.insert(index + 1, next_url)

                index += 1
                job.progress_percent = round(index / len(job.urls) * 100, 1)
                if on_update:
                    on_update(job, result)

                if index < len(job.urls) and not self._stop_requested and delay:
                    await self._sleep(delay)
            else:
                job.status = BatchStatus.COMPLETED
        finally:
            if job.status is BatchStatus.RUNNING:
                job.status = BatchStatus.STOPPED
            job.progress_percent = 100.0

        failed = sum(1 for r in self.results if not r.ok)
        logger.info(
            "batch finished",
            extra={"status": job.status.value, "processed": len(self.results), "failed": failed},
        )
        return self.results

    async def _process(
        self, url: str, selectors: Sequence[Selector], options: BatchOptions
    ) -> Tuple[ScrapeResult, Optional[LoadedDocument]]:
        try:
            if self.remote is not None:
                records = await self.remote.extract(url, selectors, options.load_options)
                return ScrapeResult(url=url, records=records), None

            document = await self.loader.load(url, options.load_options)
            records = extract(document, selectors, list_scope=options.list_scope)
            return ScrapeResult(url=url, records=records), document
        except Exception as e:
            error = BatchItemError(url, e)
            logger.warning("batch item failed", extra={"url": url, "reason": str(e)})
            return ScrapeResult(url=url, error=str(error)), None
