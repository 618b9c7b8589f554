from engine_errors import CannotCloseLastWindow, UnknownHandle, WindowNotOpened, WindowRegistryError
from polling import Poller, TimedOut


class WindowRegistry:
    """Tracks the windows/tabs of one browser session.

    ``active_handle`` is always one of ``known_handles``. ``original_handle``
    is fixed by :meth:`initialize`. Handles are added only by
    :meth:`discover_new` and removed only after a confirmed close.
    """

    def __init__(self, poller: Poller, verbose: bool = False):
        self.poller = poller
        self.verbose = verbose
        self.original_handle: str | None = None
        self.active_handle: str | None = None
        self._known: set[str] = set()

    @property
    def known_handles(self) -> frozenset[str]:
        return frozenset(self._known)

    def _require_initialized(self):
        if self.original_handle is None:
            raise WindowRegistryError("Window registry used before initialize()")

    async def initialize(self, session) -> str:
        if self.original_handle is not None:
            raise WindowRegistryError("Window registry is already initialized")
        handles = await session.list_window_handles()
        if len(handles) != 1:
            raise WindowRegistryError(f"Expected exactly one open window at start, found {len(handles)}")
        handle = next(iter(handles))
        self.original_handle = handle
        self.active_handle = handle
        self._known = {handle}
        if self.verbose:
            print(f"✓ Original window handle stored: {handle}")
        return handle

    async def discover_new(self, session, previous_count: int, timeout: float | None = None) -> str:
        self._require_initialized()

        async def more_windows():
            handles = await session.list_window_handles()
            return handles if len(handles) > previous_count else None

        handles = await self.poller.until(more_windows, description=f"more than {previous_count} open window(s)", timeout=timeout)
        if isinstance(handles, TimedOut):
            raise WindowNotOpened(f"No new window appeared: {handles}")
        stale = self._known - handles
        if stale:
            raise WindowRegistryError(f"Tracked windows are no longer open: {', '.join(sorted(stale))}")
        new = handles - self._known
        self._known |= new
        if len(new) != 1:
            raise WindowRegistryError(f"Expected one new window, found {len(new)}: {', '.join(sorted(new))}")
        handle = next(iter(new))
        if self.verbose:
            print(f"✓ New window discovered: {handle} ({len(handles)} open)")
        return handle

    async def switch_to(self, session, handle: str) -> None:
        self._require_initialized()
        if handle not in self._known:
            raise UnknownHandle(handle)
        await session.switch_to_window(handle)
        self.active_handle = handle
        if self.verbose:
            print(f"✓ Switched to window {handle}")

    async def close_active_and_return_to(self, session, handle: str) -> None:
        self._require_initialized()
        closing = self.active_handle
        if len(self._known) == 1:
            raise CannotCloseLastWindow(f"Refusing to close {closing}: it is the only open window")
        if handle not in self._known or handle == closing:
            raise UnknownHandle(handle)

        await session.close_current_window()

        async def closed():
            return closing not in await session.list_window_handles()

        confirmed = await self.poller.until(closed, description=f"window {closing} to close")
        if isinstance(confirmed, TimedOut):
            raise WindowRegistryError(f"Window {closing} did not close: {confirmed}")
        self._known.discard(closing)
        if self.verbose:
            print(f"✓ Closed window {closing}")
        await self.switch_to(session, handle)
