"""Post-login flows: sign in, open a menu page, download an export, visit a URL in a new tab."""

import json
from dataclasses import dataclass
from pathlib import Path

from artifacts import ArtifactCapture
from browser_session import Locator
from engine_errors import ScenarioEngineError, StepFailed, StepTimeout
from form_steps import FormSteps, submit_form
from outcomes import OutcomeClassifier, Success
from polling import Poller
from site_profile import MenuPage
from windows import WindowRegistry


@dataclass(frozen=True)
class PageSnapshot:
    url: str
    title: str


async def sign_in(session, poller: Poller, classifier: OutcomeClassifier, steps: FormSteps, username: str, password: str, verbose: bool = False) -> None:
    await session.navigate(steps.start_url)
    await submit_form(session, poller, steps, {"username": username, "password": password}, verbose=verbose)
    outcome = await classifier.classify(session)
    if not isinstance(outcome, Success):
        raise ScenarioEngineError(f"Sign-in as '{username}' did not succeed: {outcome}")
    if verbose:
        print("✓ Login successful")


async def open_menu_page(session, poller: Poller, page: MenuPage, capture: ArtifactCapture | None = None, verbose: bool = False) -> PageSnapshot:
    """Click a menu entry and wait until the page's URL fragment and one of its landmarks show up."""
    entry = await poller.require(lambda: session.find_element(page.menu), description=f"menu entry {page.menu}")
    await session.click(entry)

    async def url_reached():
        return page.url_fragment in await session.current_url()

    await poller.require(url_reached, description=f"URL containing '{page.url_fragment}'")

    if page.landmarks:
        async def any_landmark():
            for locator in page.landmarks:
                if await session.find_elements(locator):
                    return locator
            return None

        found = await poller.require(any_landmark, description=f"any landmark of '{page.name}'")
        if verbose:
            print(f"✓ '{page.name}' landmark present: {found}")

    snapshot = PageSnapshot(url=await session.current_url(), title=await session.current_title())
    if capture is not None:
        await capture.capture(session, f"{page.name}_loaded")
    return snapshot


@dataclass(frozen=True)
class DownloadedFile:
    path: Path
    size: int


async def download_via(session, poller: Poller, control: Locator, directory: Path, verbose: bool = False) -> DownloadedFile | None:
    """Click the export/download control and save the file it produces under ``directory``.

    Returns None when the page shows no such control within the step timeout.
    """
    element = await poller.until(lambda: session.find_element(control), description=f"download control {control}")
    if not element:
        if verbose:
            print(f"⚠️ No download control on this page: {control}")
        return None
    path = Path(await session.download(element, Path(directory)))
    if not path.is_file():
        raise StepFailed(f"Download finished but no file was saved at {path}")
    size = path.stat().st_size
    if verbose:
        print(f"✓ Downloaded {path.name} ({size} bytes)")
    return DownloadedFile(path=path, size=size)


async def visit_in_new_tab(session, registry: WindowRegistry, poller: Poller, url: str, verbose: bool = False) -> PageSnapshot:
    """Open ``url`` in a new tab, record where it landed, close it and return to the original tab."""
    if registry.original_handle is None:
        await registry.initialize(session)
    home = registry.active_handle
    previous = len(registry.known_handles)
    await session.execute_script(f"window.open({json.dumps(url)}, '_blank');")
    handle = await registry.discover_new(session, previous)
    await registry.switch_to(session, handle)

    async def loaded():
        current = await session.current_url()
        return current if current and not current.startswith("about:blank") else None

    result = await poller.until(loaded, description=f"new tab to load {url}")
    if not result:
        await registry.close_active_and_return_to(session, home)
        raise StepTimeout(result.description, result.elapsed)
    snapshot = PageSnapshot(url=result, title=await session.current_title())
    if verbose:
        print(f"✓ New tab title: {snapshot.title}")
        print(f"✓ New tab URL: {snapshot.url}")
    await registry.close_active_and_return_to(session, home)
    return snapshot
