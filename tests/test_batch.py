"""Batch runner tests: sequencing, isolation, stop, pagination, remote mode."""

import json

import httpx
import pytest

from markscrape.batch import BatchRunner
from markscrape.errors import BatchStateError
from markscrape.models import BatchOptions, BatchStatus, Selector
from markscrape.remote import RemoteExtractor

from .conftest import FakeSites, make_loader

A, B, C = "https://a.test/", "https://b.test/", "https://c.test/"
TITLE = [Selector(css_selector="h1", field_name="title")]


def page(title: str, next_href: str = "") -> str:
    link = f'<a class="next" href="{next_href}">next</a>' if next_href else ""
    return f"<html><body><h1>{title}</h1>{link}</body></html>"


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return FakeSleep()


def runner_for(pages, sleep, **kwargs) -> BatchRunner:
    return BatchRunner(make_loader(FakeSites(pages)), sleep=sleep, **kwargs)


@pytest.mark.asyncio
async def test_failed_url_does_not_stop_the_batch(sleep):
    runner = runner_for({A: page("a"), C: page("c")}, sleep)

    results = await runner.run([A, B, C], TITLE)

    assert [r.url for r in results] == [A, B, C]
    assert results[0].records == [{"title": "a"}]
    assert results[2].records == [{"title": "c"}]
    assert not results[1].ok
    assert results[1].records == []
    assert results[1].error.startswith(B)
    assert runner.job.status is BatchStatus.COMPLETED
    assert runner.job.progress_percent == 100.0


@pytest.mark.asyncio
async def test_sleeps_between_urls_only(sleep):
    runner = runner_for({A: page("a"), B: page("b"), C: page("c")}, sleep)
    await runner.run([A, B, C], TITLE, BatchOptions(inter_request_delay_ms=250))
    assert sleep.calls == [0.25, 0.25]


@pytest.mark.asyncio
async def test_zero_delay_never_sleeps(sleep):
    runner = runner_for({A: page("a"), B: page("b")}, sleep)
    await runner.run([A, B], TITLE, BatchOptions(inter_request_delay_ms=0))
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_duplicate_urls_run_once(sleep):
    sites = FakeSites({A: page("a"), B: page("b")})
    runner = BatchRunner(make_loader(sites), sleep=sleep)

    results = await runner.run([A, B, A, " " + B], TITLE)

    assert [r.url for r in results] == [A, B]
    assert runner.job.urls == [A, B]


@pytest.mark.asyncio
async def test_empty_url_list_completes_immediately(sleep):
    runner = runner_for({}, sleep)
    assert await runner.run([], TITLE) == []
    assert runner.job.status is BatchStatus.COMPLETED
    assert runner.job.progress_percent == 100.0


@pytest.mark.asyncio
async def test_progress_reported_after_each_url(sleep):
    runner = runner_for({A: page("a"), B: page("b"), C: page("c")}, sleep)
    seen = []

    await runner.run([A, B, C], TITLE, on_update=lambda job, result: seen.append((job.progress_percent, result.url)))

    assert seen == [(33.3, A), (66.7, B), (100.0, C)]


@pytest.mark.asyncio
async def test_stop_takes_effect_before_next_url(sleep):
    runner = runner_for({A: page("a"), B: page("b"), C: page("c")}, sleep)

    def on_update(job, result):
        if result.url == A:
            runner.stop()

    results = await runner.run([A, B, C], TITLE, on_update=on_update)

    assert [r.url for r in results] == [A]
    assert runner.job.status is BatchStatus.STOPPED
    assert runner.job.progress_percent == 100.0
    assert not runner.running
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_second_run_while_running_is_rejected(sleep):
    runner = runner_for({A: page("a"), B: page("b")}, sleep)
    errors = []

    async def nested_sleep(seconds):
        try:
            await runner.run([C], TITLE)
        except BatchStateError as e:
            errors.append(e)

    runner._sleep = nested_sleep
    await runner.run([A, B], TITLE)

    assert len(errors) == 1
    assert runner.job.status is BatchStatus.COMPLETED


@pytest.mark.asyncio
async def test_stop_when_idle_is_a_no_op(sleep):
    runner = runner_for({A: page("a")}, sleep)
    runner.stop()
    results = await runner.run([A], TITLE)
    assert len(results) == 1
    assert runner.job.status is BatchStatus.COMPLETED


# --- pagination ---


@pytest.mark.asyncio
async def test_pagination_follows_up_to_max_pages(sleep):
    pages = {
        A: page("a1", A + "2"),
        A + "2": page("a2", A + "3"),
        A + "3": page("a3", A + "4"),
        A + "4": page("a4"),
        B: page("b"),
    }
    runner = runner_for(pages, sleep)
    options = BatchOptions(follow_pagination=True, pagination_selector="a.next", max_pages=3)

    results = await runner.run([A, B], TITLE, options)

    assert [r.url for r in results] == [A, A + "2", A + "3", B]
    assert [r.records[0]["title"] for r in results] == ["a1", "a2", "a3", "b"]
    assert runner.job.urls == [A, A + "2", A + "3", B]


@pytest.mark.asyncio
async def test_pagination_ignores_already_queued_pages(sleep):
    pages = {A: page("a", B), B: page("b", A)}
    runner = runner_for(pages, sleep)
    options = BatchOptions(follow_pagination=True, pagination_selector="a.next", max_pages=5)

    results = await runner.run([A, B], TITLE, options)

    assert [r.url for r in results] == [A, B]


# --- remote extraction ---


@pytest.mark.asyncio
async def test_remote_extractor_replaces_local_load(sleep):
    bodies = []

    def handler(request):
        body = json.loads(request.content)
        bodies.append(body)
        if body["url"] == B:
            return httpx.Response(200, json={"success": False, "message": "blocked"})
        return httpx.Response(200, json={"success": True, "data": [{"title": "remote"}, {}]})

    remote = RemoteExtractor("http://backend.test/api/scrape/extract", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    sites = FakeSites({})
    runner = BatchRunner(make_loader(sites), remote=remote, sleep=sleep)

    results = await runner.run([A, B], TITLE, BatchOptions(javascript_enabled=False))

    assert results[0].records == [{"title": "remote"}]
    assert "blocked" in results[1].error
    assert sites.requests == []
    assert bodies[0] == {
        "url": A,
        "selectors": [{"selector": "h1", "type": "text", "name": "title"}],
        "options": {"javascript": False, "timeout": 30000},
    }
