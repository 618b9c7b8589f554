import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from engine_errors import SessionLost, StepTimeout


class LoopClock:
    """Clock backed by the running event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass(frozen=True)
class TimedOut:
    """Result of a wait whose predicate never held. Always falsy."""

    description: str
    elapsed: float
    last_error: BaseException | None = None

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        text = f"Timed out after {self.elapsed:.1f}s waiting for: {self.description}"
        if self.last_error is not None:
            text += f" (last error: {self.last_error})"
        return text


Predicate = Callable[[], Any] | Callable[[], Awaitable[Any]]


async def wait_until(predicate: Predicate, timeout: float, interval: float, clock=None, description: str = "") -> Any:
    """Poll ``predicate`` until it returns something truthy.

    Returns the first truthy value, or a :class:`TimedOut` once ``timeout``
    seconds have elapsed. Errors raised by the predicate count as "not yet"
    and are retried, except :class:`SessionLost` which propagates at once.
    """
    if interval <= 0 or timeout < interval:
        raise ValueError(f"Invalid wait: timeout={timeout} interval={interval} (need timeout >= interval > 0)")
    clock = clock or LoopClock()
    start = clock.now()
    last_error = None
    while True:
        try:
            result = predicate()
            if inspect.isawaitable(result):
                result = await result
        except SessionLost:
            raise
        except Exception as e:
            result = None
            last_error = e
        if result:
            return result
        elapsed = clock.now() - start
        if elapsed >= timeout:
            return TimedOut(description or getattr(predicate, "__name__", "condition"), elapsed, last_error)
        await clock.sleep(min(interval, timeout - elapsed))


class Poller:
    """Default timeout/interval for one browser session, one wait at a time."""

    def __init__(self, timeout: float = 10.0, interval: float = 0.25, clock=None, verbose: bool = False):
        if interval <= 0 or timeout < interval:
            raise ValueError(f"Invalid poller: timeout={timeout} interval={interval}")
        self.timeout = timeout
        self.interval = interval
        self.clock = clock or LoopClock()
        self.verbose = verbose
        self._busy = False

    async def until(self, predicate: Predicate, description: str = "", timeout: float | None = None) -> Any:
        if self._busy:
            raise RuntimeError(f"Another wait is still outstanding; refusing to wait for: {description}")
        self._busy = True
        try:
            result = await wait_until(
                predicate,
                timeout=self.timeout if timeout is None else timeout,
                interval=min(self.interval, self.timeout if timeout is None else timeout),
                clock=self.clock,
                description=description,
            )
        finally:
            self._busy = False
        if self.verbose and isinstance(result, TimedOut):
            print(f"→ {result}")
        return result

    async def require(self, predicate: Predicate, description: str = "", timeout: float | None = None) -> Any:
        """Like :meth:`until` but raise :class:`StepTimeout` instead of returning ``TimedOut``."""
        result = await self.until(predicate, description=description, timeout=timeout)
        if isinstance(result, TimedOut):
            raise StepTimeout(result.description, result.elapsed)
        return result
