import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import get_settings


class ExtractionType(str, Enum):
    TEXT = "text"
    HTML = "html"
    ATTRIBUTE = "attribute"
    IMAGE = "image"
    LINK = "link"
    LIST = "list"


class SelectorOrigin(str, Enum):
    MANUAL = "manual"
    SUGGESTED = "suggested"


class ListScope(str, Enum):
    """How list fields are queried when the page is in container mode."""
    CONTAINER = "container"
    DOCUMENT = "document"


FieldValue = Union[str, List[str]]
ScrapedRecord = Dict[str, FieldValue]


def _new_id() -> str:
    return uuid4().hex


def _default_timeout_ms() -> int:
    return get_settings().timeout_ms


def _default_delay_ms() -> int:
    return get_settings().delay_ms


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Selector(BaseModel):
    """A CSS selector paired with what to pull out of its matches."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    css_selector: str = Field(..., min_length=1, alias="selector")
    extraction_type: ExtractionType = Field(ExtractionType.TEXT, alias="type")
    field_name: str = Field("", alias="name")
    attribute_name: Optional[str] = Field(None, alias="attribute")
    origin: SelectorOrigin = SelectorOrigin.MANUAL

    @model_validator(mode="after")
    def _check(self):
        self.css_selector = self.css_selector.strip()
        if not self.css_selector:
            raise ValueError("css_selector must not be blank")
        if self.extraction_type is ExtractionType.ATTRIBUTE and not (self.attribute_name or "").strip():
            raise ValueError("attribute extraction requires attribute_name")
        if not self.field_name.strip():
            # Record keys fall back to the selector itself
            self.field_name = self.css_selector
        return self

    def wire(self) -> dict:
        """Shape used by the server-side extraction endpoint."""
        payload = {
            "selector": self.css_selector,
            "type": self.extraction_type.value,
            "name": self.field_name,
        }
        if self.extraction_type is ExtractionType.ATTRIBUTE:
            payload["attribute"] = self.attribute_name
        return payload


class SelectorGroup(BaseModel):
    """Named, persisted bundle of selectors."""
    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    selectors: List[Selector] = Field(default_factory=list)


class ScrapeResult(BaseModel):
    """Outcome of running extraction against one URL."""
    url: str
    records: List[ScrapedRecord] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)
    error: Optional[str] = None

    @model_validator(mode="after")
    def _no_records_on_error(self):
        if self.error is not None and self.records:
            raise ValueError("a failed result carries no records")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchStatus(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    STOPPED = "Stopped"
    COMPLETED = "Completed"


class BatchJob(BaseModel):
    urls: List[str] = Field(default_factory=list)
    current_index: int = 0
    status: BatchStatus = BatchStatus.IDLE
    progress_percent: float = 0.0

    @classmethod
    def from_urls(cls, urls: List[str]) -> "BatchJob":
        seen = set()
        unique = []
        for url in urls:
            url = url.strip()
            if url and url not in seen:
                seen.add(url)
                unique.append(url)
        return cls(urls=unique)


class LoadOptions(BaseModel):
    javascript_enabled: bool = True
    timeout_ms: int = Field(default_factory=_default_timeout_ms, gt=0)


class BatchOptions(BaseModel):
    inter_request_delay_ms: int = Field(default_factory=_default_delay_ms, ge=0)
    max_pages: int = Field(1, ge=1)
    follow_pagination: bool = False
    pagination_selector: Optional[str] = None
    javascript_enabled: bool = True
    timeout_ms: int = Field(default_factory=_default_timeout_ms, gt=0)
    list_scope: ListScope = ListScope.CONTAINER

    @property
    def load_options(self) -> LoadOptions:
        return LoadOptions(javascript_enabled=self.javascript_enabled, timeout_ms=self.timeout_ms)


class DiscoveryOptions(BaseModel):
    """Breadth-first link crawl used to fill a batch queue."""
    max_depth: int = Field(1, ge=0)
    url_pattern: Optional[str] = None
    max_urls: int = Field(100, ge=1)
    same_domain: bool = True
    javascript_enabled: bool = False
    timeout_ms: int = Field(default_factory=_default_timeout_ms, gt=0)

    @field_validator("url_pattern")
    @classmethod
    def _compiles(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid url_pattern: {e}") from e
        return value or None

    @property
    def load_options(self) -> LoadOptions:
        return LoadOptions(javascript_enabled=self.javascript_enabled, timeout_ms=self.timeout_ms)


class SelectionEvent(BaseModel):
    """Emitted by capture whenever a click registers a selector."""
    selector: Selector
    element_index: int
    url: Optional[str] = None
