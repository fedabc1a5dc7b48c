"""Data model validation tests."""

import pytest
from pydantic import ValidationError

from markscrape.models import BatchJob, ExtractionType, ScrapeResult, Selector, SelectorOrigin


def test_selector_accepts_wire_aliases():
    s = Selector(selector="h1", type="text", name="title")
    assert s.css_selector == "h1"
    assert s.extraction_type is ExtractionType.TEXT
    assert s.field_name == "title"
    assert s.origin is SelectorOrigin.MANUAL


def test_field_name_defaults_to_selector():
    s = Selector(css_selector="#hero", extraction_type=ExtractionType.IMAGE)
    assert s.field_name == "#hero"


def test_attribute_type_requires_attribute_name():
    with pytest.raises(ValidationError):
        Selector(css_selector="a", extraction_type=ExtractionType.ATTRIBUTE)
    with pytest.raises(ValidationError):
        Selector(css_selector="a", extraction_type=ExtractionType.ATTRIBUTE, attribute_name="  ")


def test_blank_selector_rejected():
    with pytest.raises(ValidationError):
        Selector(css_selector="   ")


def test_wire_shape_includes_attribute_only_for_attribute_type():
    plain = Selector(css_selector="h1", field_name="title")
    assert plain.wire() == {"selector": "h1", "type": "text", "name": "title"}

    attr = Selector(css_selector="a", extraction_type="attribute", attribute_name="data-id", field_name="id")
    assert attr.wire()["attribute"] == "data-id"


def test_batch_job_dedupes_and_keeps_order():
    job = BatchJob.from_urls(["https://b", "https://a", "https://b", " ", "https://a "])
    assert job.urls == ["https://b", "https://a"]
    assert job.status.value == "Idle"


def test_failed_result_cannot_carry_records():
    with pytest.raises(ValidationError):
        ScrapeResult(url="https://x", records=[{"a": "b"}], error="boom")
    assert not ScrapeResult(url="https://x", error="boom").ok
