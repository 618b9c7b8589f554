from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from engine_errors import SessionLost, StepFailed


LOCATOR_KINDS = ("name", "css", "xpath")

# Chromium flags carried over from the original suite's browser setup
BROWSER_ARGS = ["--disable-notifications", "--disable-popup-blocking"]


@dataclass(frozen=True)
class Locator:
    by: str
    value: str

    def __post_init__(self):
        if self.by not in LOCATOR_KINDS:
            raise ValueError(f"Unknown locator kind {self.by!r}; expected one of {', '.join(LOCATOR_KINDS)}")

    @classmethod
    def by_name(cls, value: str) -> "Locator":
        return cls("name", value)

    @classmethod
    def by_css(cls, value: str) -> "Locator":
        return cls("css", value)

    @classmethod
    def by_xpath(cls, value: str) -> "Locator":
        return cls("xpath", value)

    @classmethod
    def from_json(cls, data) -> "Locator":
        if isinstance(data, str):
            return cls.by_css(data)
        if not isinstance(data, dict) or "by" not in data or "value" not in data:
            raise ValueError(f"Locator must be a CSS string or {{'by': ..., 'value': ...}}, got {data!r}")
        return cls(data["by"], data["value"])

    def to_json(self) -> dict:
        return {"by": self.by, "value": self.value}

    def __str__(self) -> str:
        return f"{self.by}={self.value}"


class BrowserSession(Protocol):
    """What the engine needs from a browser. Implemented by PlaywrightSession and test doubles."""

    async def navigate(self, url: str) -> None: ...
    async def find_element(self, locator: Locator) -> Any | None: ...
    async def find_elements(self, locator: Locator) -> list: ...
    async def type(self, element: Any, text: str) -> None: ...
    async def click(self, element: Any) -> None: ...
    async def element_text(self, element: Any) -> str: ...
    async def current_url(self) -> str: ...
    async def current_title(self) -> str: ...
    async def list_window_handles(self) -> set[str]: ...
    async def switch_to_window(self, handle: str) -> None: ...
    async def close_current_window(self) -> None: ...
    async def execute_script(self, src: str) -> Any: ...
    async def capture_screenshot(self) -> bytes: ...
    async def download(self, element: Any, directory: Path) -> Path: ...
    async def quit(self) -> None: ...


def to_selector(locator: Locator) -> str:
    if locator.by == "name":
        value = locator.value.replace("\\", "\\\\").replace("\"", "\\\"")
        return f"[name=\"{value}\"]"
    return f"{locator.by}={locator.value}"


def is_closed_error(error: Exception) -> bool:
    text = str(error).lower()
    return "has been closed" in text or "target closed" in text or "browser closed" in text


def _engine_error(error: PlaywrightError):
    if is_closed_error(error):
        return SessionLost(str(error))
    return StepFailed(str(error))


class PlaywrightSession:
    """Browser Session over one Playwright browser context.

    Each page of the context is a window; pages get a stable handle the first
    time they are seen.
    """

    def __init__(self, browser, context, page, action_timeout_ms: int = 10000, verbose: bool = False):
        self._browser = browser
        self._context = context
        self._page = page
        self._handles: dict[Any, str] = {}
        self._counter = 0
        self.action_timeout_ms = action_timeout_ms
        self.verbose = verbose
        self._handle_for(page)

    def _handle_for(self, page) -> str:
        if page not in self._handles:
            self._counter += 1
            self._handles[page] = f"window-{self._counter}"
        return self._handles[page]

    def _page_or_lost(self):
        if self._page is None or self._page.is_closed():
            raise SessionLost("No active window: the current page was closed and no other window was selected")
        return self._page

    async def _call(self, coro):
        try:
            return await coro
        except PlaywrightError as e:
            raise _engine_error(e) from e

    async def navigate(self, url: str) -> None:
        page = self._page_or_lost()
        if self.verbose:
            print(f"→ Navigating to {url}")
        await self._call(page.goto(url, timeout=60000))

    async def find_element(self, locator: Locator):
        return await self._call(self._page_or_lost().query_selector(to_selector(locator)))

    async def find_elements(self, locator: Locator) -> list:
        return await self._call(self._page_or_lost().query_selector_all(to_selector(locator)))

    async def type(self, element, text: str) -> None:
        await self._call(element.fill(text, timeout=self.action_timeout_ms))

    async def click(self, element) -> None:
        await self._call(element.click(timeout=self.action_timeout_ms))

    async def element_text(self, element) -> str:
        return (await self._call(element.inner_text())).strip()

    async def current_url(self) -> str:
        return self._page_or_lost().url

    async def current_title(self) -> str:
        return await self._call(self._page_or_lost().title())

    async def list_window_handles(self) -> set[str]:
        if self._browser is not None and not self._browser.is_connected():
            raise SessionLost("Browser disconnected")
        return {self._handle_for(p) for p in self._context.pages if not p.is_closed()}

    async def switch_to_window(self, handle: str) -> None:
        for page, known in self._handles.items():
            if known == handle and not page.is_closed():
                self._page = page
                await self._call(page.bring_to_front())
                return
        raise StepFailed(f"No open window with handle {handle}")

    async def close_current_window(self) -> None:
        page = self._page_or_lost()
        await self._call(page.close())
        self._page = None

    async def execute_script(self, src: str):
        return await self._call(self._page_or_lost().evaluate(src))

    async def capture_screenshot(self) -> bytes:
        return await self._call(self._page_or_lost().screenshot(full_page=True))

    async def download(self, element, directory: Path) -> Path:
        """Click ``element``, wait for the download it starts and save it under ``directory``."""
        page = self._page_or_lost()
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        try:
            async with page.expect_download(timeout=self.action_timeout_ms) as info:
                await element.click(timeout=self.action_timeout_ms)
            download = await info.value
            target = directory / download.suggested_filename
            await download.save_as(target)
        except PlaywrightError as e:
            raise _engine_error(e) from e
        return target

    async def quit(self) -> None:
        try:
            await self._context.close()
        except PlaywrightError:
            pass
        if self._browser is not None:
            await self._browser.close()


@asynccontextmanager
async def open_browser_session(headless: bool = True, viewport: dict | None = None, action_timeout_ms: int = 10000, verbose: bool = False):
    """Launch Chromium and yield a PlaywrightSession; the browser is always shut down on exit."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=BROWSER_ARGS)
        session = None
        try:
            context = await browser.new_context(viewport=viewport or {"width": 1366, "height": 900}, accept_downloads=True)
            page = await context.new_page()
            session = PlaywrightSession(browser, context, page, action_timeout_ms=action_timeout_ms, verbose=verbose)
            if verbose:
                print("→ Browser session started")
            yield session
        finally:
            if session is not None:
                await session.quit()
            elif browser.is_connected():
                await browser.close()
            if verbose:
                print("→ Browser session closed")
