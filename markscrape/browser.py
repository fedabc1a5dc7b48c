"""
Live element picking in a Playwright-driven Chromium page.
"""

import logging
from typing import Any, Dict, Optional

from playwright.async_api import Browser, Page, async_playwright

from .capture import HIGHLIGHT_CSS, HOVER_CLASS, SELECTED_CLASS, SelectionCapture
from .errors import SelectorSyntaxError
from .loader import LoadedDocument

logger = logging.getLogger(__name__)

BINDING = "__markscrapeEmit"

STYLE_ID = "markscrape-style"

# The highlight stylesheet is left out of element indexes so they keep
# matching the loaded markup that SelectionCapture counts.
INSTALL_JS = """
({binding, styleId, css}) => {
  if (window.__markscrapeListeners) return;
  if (!document.getElementById(styleId)) {
    const style = document.createElement('style');
    style.id = styleId;
    style.textContent = css;
    (document.head || document.documentElement).appendChild(style);
  }
  const elements = () => Array.prototype.filter.call(document.querySelectorAll('*'), (node) => node.id !== styleId);
  const describe = (el) => {
    const attributes = {};
    for (const attr of el.attributes) attributes[attr.name] = attr.value;
    let preceding = 0;
    for (let sib = el.previousElementSibling; sib; sib = sib.previousElementSibling) {
      if (sib.tagName === el.tagName) preceding++;
    }
    return {tag: el.tagName.toLowerCase(), attributes, text: el.textContent || '', preceding_same_tag: preceding};
  };
  const send = (type) => (e) => {
    const el = e.target;
    if (!(el instanceof Element)) return;
    if (type === 'click') { e.preventDefault(); e.stopPropagation(); }
    window[binding]({type, index: elements().indexOf(el), element: describe(el)});
  };
  const listeners = {pointerover: send('pointerover'), pointerout: send('pointerout'), click: send('click')};
  for (const [name, fn] of Object.entries(listeners)) document.addEventListener(name, fn, true);
  window.__markscrapeListeners = listeners;
}
"""

TEARDOWN_JS = """
() => {
  const listeners = window.__markscrapeListeners;
  if (!listeners) return;
  for (const [name, fn] of Object.entries(listeners)) document.removeEventListener(name, fn, true);
  delete window.__markscrapeListeners;
}
"""

PAINT_JS = """
({highlights, hoverClass, selectedClass, styleId, css}) => {
  if (!document.getElementById(styleId)) {
    const style = document.createElement('style');
    style.id = styleId;
    style.textContent = css;
    (document.head || document.documentElement).appendChild(style);
  }
  const all = Array.prototype.filter.call(document.querySelectorAll('*'), (node) => node.id !== styleId);
  all.forEach((el) => el.classList.remove(hoverClass, selectedClass));
  for (const [index, state] of Object.entries(highlights)) {
    const el = all[Number(index)];
    if (el) el.classList.add(state === 'selected' ? selectedClass : hoverClass);
  }
}
"""


class BrowserCapture:
    """
    Shows the active document in a browser page and forwards pointer events
    to a SelectionCapture.

    Every document swap tears the page listeners down before the new markup
    is set, then reinstalls them if selection mode is on.
    """

    def __init__(self, capture: SelectionCapture, headless: bool = False):
        self.capture = capture
        self.headless = headless
        self.browser: Optional[Browser] = None
        self.page: Optional[Page] = None
        self.playwright = None
        self._installed = False

    async def __aenter__(self):
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(headless=self.headless)
        self.page = await self.browser.new_page()
        await self.page.expose_binding(BINDING, self._on_event)
        self.capture.host.on_replace(self._document_replaced)
        if self.capture.host.document is not None:
            await self._show(self.capture.host.document)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.capture.host.remove_listener(self._document_replaced)
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()

    async def enable(self) -> None:
        self.capture.enable()
        await self._install()

    async def disable(self) -> None:
        self.capture.disable()
        await self._teardown()
        await self._paint()

    async def _document_replaced(self, document: LoadedDocument) -> None:
        await self._teardown()
        await self._show(document)

    async def _show(self, document: LoadedDocument) -> None:
        if self.page is None:
            raise RuntimeError("Browser not initialized. Use async with context manager.")
        await self.page.set_content(document.markup, wait_until="domcontentloaded")
        # set_content drops the old window, listeners included
        self._installed = False
        if self.capture.selection_mode:
            await self._install()

    async def _install(self) -> None:
        if self.page is None:
            raise RuntimeError("Browser not initialized. Use async with context manager.")
        await self._teardown()
        await self.page.evaluate(INSTALL_JS, {"binding": BINDING, "styleId": STYLE_ID, "css": HIGHLIGHT_CSS})
        self._installed = True
        logger.debug("capture listeners installed")

    async def _teardown(self) -> None:
        if self._installed and self.page is not None:
            await self.page.evaluate(TEARDOWN_JS)
            self._installed = False

    async def _on_event(self, source: Any, raw: Dict[str, Any]) -> None:
        try:
            self.capture.handle(raw)
        except SelectorSyntaxError as e:
            logger.warning("selection rejected", extra={"selector": e.selector, "reason": e.reason})
        await self._paint()

    async def _paint(self) -> None:
        if self.page is None:
            return
        await self.page.evaluate(
            PAINT_JS,
            {
                "highlights": {str(k): v for k, v in self.capture.highlights.items()},
                "hoverClass": HOVER_CLASS,
                "selectedClass": SELECTED_CLASS,
                "styleId": STYLE_ID,
                "css": HIGHLIGHT_CSS,
            },
        )

    async def wait_closed(self) -> None:
        if self.page is not None:
            await self.page.wait_for_event("close", timeout=0)
