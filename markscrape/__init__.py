"""
Selector-driven extraction: capture elements, extract typed records, run URL batches, export.
"""

from .models import (
    BatchJob,
    BatchOptions,
    BatchStatus,
    DiscoveryOptions,
    ExtractionType,
    ListScope,
    LoadOptions,
    ScrapedRecord,
    ScrapeResult,
    SelectionEvent,
    Selector,
    SelectorGroup,
    SelectorOrigin,
)
from .errors import (
    BatchItemError,
    BatchStateError,
    ExportError,
    ExtractionFieldError,
    LoadError,
    MarkscrapeError,
    SelectorSyntaxError,
)
from .core import ScrapeEngine
from .loader import ContentLoader, DocumentHost, LoadedDocument
from .capture import SelectionCapture, synthesize_selector
from .parser import RecordExtractor, extract, suggest_selectors
from .discovery import discover_urls
from .batch import BatchRunner
from .export import export_as
from .store import SelectorGroupStore

__version__ = "0.1.0"

__all__ = [
    "BatchJob",
    "BatchOptions",
    "BatchStatus",
    "DiscoveryOptions",
    "ExtractionType",
    "ListScope",
    "LoadOptions",
    "ScrapedRecord",
    "ScrapeResult",
    "SelectionEvent",
    "Selector",
    "SelectorGroup",
    "SelectorOrigin",
    "BatchItemError",
    "BatchStateError",
    "ExportError",
    "ExtractionFieldError",
    "LoadError",
    "MarkscrapeError",
    "SelectorSyntaxError",
    "ScrapeEngine",
    "ContentLoader",
    "DocumentHost",
    "LoadedDocument",
    "SelectionCapture",
    "synthesize_selector",
    "RecordExtractor",
    "extract",
    "suggest_selectors",
    "discover_urls",
    "BatchRunner",
    "export_as",
    "SelectorGroupStore",
]
