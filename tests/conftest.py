"""Fixtures: mock HTTP transport, loaders, sample pages."""

import json
from typing import Callable, Dict

import httpx
import pytest

from markscrape.config import get_settings
from markscrape.loader import ContentLoader, DocumentHost

PROXY_URL = "http://proxy.test/api/proxy/url"
RELAY_URL = "http://relay.test/get"

CARDS_HTML = """
<html><head><title>Cards</title></head><body>
<div class="card"><h1>A</h1></div>
<div class="card"><h1>B</h1></div>
</body></html>
"""

HERO_HTML = '<html><head></head><body><img id="hero" src="/x.png"></body></html>'


def proxy_ok(content: str) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": {"content": content}})


def relay_ok(content: str) -> httpx.Response:
    return httpx.Response(200, json={"contents": content})


class FakeSites:
    """
    Routes proxy and relay requests to canned pages.

    ``pages`` maps a target URL to markup; URLs missing from it fail on
    both paths.
    """

    def __init__(self, pages: Dict[str, str], proxy_down: bool = False):
        self.pages = pages
        self.proxy_down = proxy_down
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "proxy.test":
            target = json.loads(request.content)["url"]
            if self.proxy_down or target not in self.pages:
                return httpx.Response(502, json={"success": False})
            return proxy_ok(self.pages[target])
        if request.url.host == "relay.test":
            target = request.url.params["url"]
            if target not in self.pages:
                return httpx.Response(500, text="relay error")
            return relay_ok(self.pages[target])
        return httpx.Response(404)


def make_loader(handler: Callable[[httpx.Request], httpx.Response]) -> ContentLoader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentLoader(host=DocumentHost(), proxy_url=PROXY_URL, relay_url=RELAY_URL, client=client)


@pytest.fixture
def sites():
    return FakeSites({})


@pytest.fixture
def loader(sites):
    return make_loader(sites)


@pytest.fixture
def settings_env(monkeypatch):
    """Set MARKSCRAPE_* variables for one test; the cached settings are reset around it."""

    def apply(**values):
        for name, value in values.items():
            monkeypatch.setenv(f"MARKSCRAPE_{name.upper()}", str(value))
        get_settings.cache_clear()

    yield apply
    get_settings.cache_clear()
