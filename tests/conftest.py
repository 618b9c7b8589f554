"""Shared doubles: a manual clock and an in-memory Browser Session."""

from contextlib import asynccontextmanager

import pytest

from engine_errors import SessionLost, StepFailed
from site_profile import SiteProfile


class FakeClock:
    def __init__(self):
        self.t = 0.0
        self.sleeps = []

    def now(self) -> float:
        return self.t

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds


class FakeElement:
    def __init__(self, locator, text=""):
        self.locator = locator
        self.text = text

    def __repr__(self):
        return f"<FakeElement {self.locator}>"


class FakeSession:
    """Browser Session double. Elements and URLs can be scheduled to appear later on the clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.elements = {}
        self.url = "about:blank"
        self.pending_url = None
        self.title = "Fake"
        self.handles = ["window-1"]
        self.active = "window-1"
        self.typed = {}
        self.clicked = []
        self.navigations = []
        self.scripts = []
        self.closed = []
        self.quit_called = False
        self.lose_on_navigate = False
        self.on_script = None
        self.download_file = None
        self.downloads = []

    # scripting helpers

    def show(self, locator, text="", after=0.0):
        self.elements[locator] = (FakeElement(locator, text), self.clock.now() + after)

    def hide(self, locator):
        self.elements.pop(locator, None)

    def go(self, url, after=0.0):
        if after:
            self.pending_url = (url, self.clock.now() + after)
        else:
            self.url = url

    def _visible(self, locator):
        entry = self.elements.get(locator)
        if entry and entry[1] <= self.clock.now():
            return entry[0]
        return None

    # Browser Session capability

    async def navigate(self, url):
        if self.lose_on_navigate:
            raise SessionLost("browser has been closed")
        self.navigations.append(url)
        self.url = url
        self.pending_url = None

    async def find_element(self, locator):
        return self._visible(locator)

    async def find_elements(self, locator):
        el = self._visible(locator)
        return [el] if el else []

    async def type(self, element, text):
        self.typed[element.locator] = text

    async def click(self, element):
        self.clicked.append(element.locator)

    async def element_text(self, element):
        return element.text

    async def current_url(self):
        if self.pending_url and self.pending_url[1] <= self.clock.now():
            self.url = self.pending_url[0]
            self.pending_url = None
        return self.url

    async def current_title(self):
        return self.title

    async def list_window_handles(self):
        return set(self.handles)

    async def switch_to_window(self, handle):
        assert handle in self.handles
        self.active = handle

    async def close_current_window(self):
        self.closed.append(self.active)
        self.handles.remove(self.active)

    async def execute_script(self, src):
        self.scripts.append(src)
        if self.on_script:
            self.on_script(src)

    async def capture_screenshot(self):
        return b"\x89PNG fake"

    async def download(self, element, directory):
        self.clicked.append(element.locator)
        if self.download_file is None:
            raise StepFailed("Timeout 10000ms exceeded while waiting for event \"download\"")
        name, content = self.download_file
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(content)
        self.downloads.append(path)
        return path

    async def quit(self):
        self.quit_called = True


class FakeLoginSite(FakeSession):
    """Login page that behaves like the demo application after submit."""

    VALID = ("Admin", "admin123")

    def __init__(self, clock, profile: SiteProfile, render_delay=0.0):
        super().__init__(clock)
        self.profile = profile
        self.render_delay = render_delay

    async def navigate(self, url):
        await super().navigate(url)
        self.elements.clear()
        self.typed.clear()
        p = self.profile
        for locator in (p.ready, *p.inputs.values(), p.submit):
            self.show(locator, after=self.render_delay)

    async def click(self, element):
        await super().click(element)
        if element.locator != self.profile.submit:
            return
        p = self.profile
        values = {name: self.typed.get(loc, "") for name, loc in p.inputs.items()}
        empty = [name for name, value in values.items() if value == ""]
        d = self.render_delay
        if empty:
            self.show(p.validation_indicator, "Required", after=d)
            for name in empty:
                self.show(p.field_indicators[name], "Required", after=d)
        elif (values["username"], values["password"]) == self.VALID:
            self.go(self.profile.url("/web/index.php/dashboard/index"), after=d)
            self.show(p.success_landmark, "Dashboard", after=d)
        else:
            self.show(p.credential_banner, "Invalid credentials", after=d)


class SessionFactory:
    """Zero-argument callable handing out FakeLoginSite sessions, as ScenarioRunner expects."""

    def __init__(self, clock, profile, lose_on_session=None, lose_on_navigation=None, render_delay=0.0, on_open=None):
        self.clock = clock
        self.profile = profile
        self.lose_on_session = lose_on_session
        self.lose_on_navigation = lose_on_navigation
        self.render_delay = render_delay
        self.on_open = on_open
        self.sessions = []
        self.navigations = 0

    def __call__(self):
        return self._open()

    @asynccontextmanager
    async def _open(self):
        factory = self
        session = FakeLoginSite(self.clock, self.profile, render_delay=self.render_delay)
        original_navigate = session.navigate

        async def navigate(url):
            factory.navigations += 1
            if factory.lose_on_navigation == factory.navigations:
                raise SessionLost("Target page, context or browser has been closed")
            await original_navigate(url)

        session.navigate = navigate
        if self.lose_on_session == len(self.sessions) + 1:
            session.lose_on_navigate = True
        if self.on_open:
            self.on_open(session, len(self.sessions))
        self.sessions.append(session)
        try:
            yield session
        finally:
            await session.quit()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profile():
    return SiteProfile(base_url="https://hr.example.test/", step_timeout=10.0, signal_timeout=2.0, poll_interval=0.5)
