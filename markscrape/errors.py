"""
Error taxonomy for loading, capture, extraction, batch runs and export.
"""

from typing import Optional


class MarkscrapeError(Exception):
    """Base class for every error raised by markscrape."""


class LoadError(MarkscrapeError):
    """Neither the proxy nor the relay produced markup for a URL."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")


class SelectorSyntaxError(MarkscrapeError):
    def __init__(self, selector: str, reason: Optional[str] = None):
        self.selector = selector
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Invalid CSS selector {selector!r}{detail}")


class ExtractionFieldError(MarkscrapeError):
    """A single field could not be extracted. The rest of the record survives."""

    def __init__(self, field_name: str, selector: str, reason: str, url: Optional[str] = None):
        self.field_name = field_name
        self.selector = selector
        self.reason = reason
        self.url = url
        where = f" on {url}" if url else ""
        super().__init__(f"Field {field_name!r} ({selector}){where}: {reason}")


class BatchItemError(MarkscrapeError):
    """One URL of a batch failed; recorded in its ScrapeResult."""

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        self.cause = cause
        super().__init__(f"{url}: {cause}")


class BatchStateError(MarkscrapeError):
    pass


class ExportError(MarkscrapeError):
    def __init__(self, format: str, reason: str):
        self.format = format
        self.reason = reason
        super().__init__(f"Export to {format} failed: {reason}")
