"""Exceptions raised by the scenario engine."""


class ScenarioEngineError(Exception):
    """Base exception for engine failures."""


class StepTimeout(ScenarioEngineError):
    """A required condition did not hold within its timeout."""

    def __init__(self, description: str, elapsed: float):
        super().__init__(f"Timed out after {elapsed:.1f}s waiting for: {description}")
        self.description = description
        self.elapsed = elapsed


class IndeterminateOutcome(ScenarioEngineError):
    """None of the outcome signals appeared after the action."""


class SessionLost(ScenarioEngineError):
    """The browser session can no longer be driven."""


class WindowRegistryError(ScenarioEngineError):
    """The window topology does not match what the script expected."""


class WindowNotOpened(WindowRegistryError):
    pass


class UnknownHandle(WindowRegistryError):
    def __init__(self, handle: str):
        super().__init__(f"Window handle is not tracked: {handle}")
        self.handle = handle


class CannotCloseLastWindow(WindowRegistryError):
    pass


class StepFailed(ScenarioEngineError):
    """A browser action failed for a reason other than the session going away."""
