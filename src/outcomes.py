"""Outcome variants and the post-submit classifier.

A login attempt ends in one of three observable states. The classifier polls
for all of them in one bounded wait and, on every poll, takes the first present
in this order:

1. the URL reached the authenticated area (and the landmark, if configured, is present)
2. a field-level validation message is shown
3. a general error banner is shown

If none of them shows up the result is :class:`IndeterminateOutcome`, never a guess.
"""

from dataclasses import dataclass, field
from typing import Mapping

from browser_session import Locator
from engine_errors import IndeterminateOutcome
from polling import Poller, TimedOut


@dataclass(frozen=True)
class Success:
    tag = "success"

    def __str__(self) -> str:
        return "success"


@dataclass(frozen=True)
class ValidationFailure:
    fields: frozenset[str] | None = None
    tag = "validation"

    def __str__(self) -> str:
        if not self.fields:
            return "validation"
        return "validation:" + ",".join(sorted(self.fields))


@dataclass(frozen=True)
class CredentialFailure:
    message: str | None = None
    tag = "credential"

    def __str__(self) -> str:
        return f"credential:{self.message}" if self.message else "credential"


Outcome = Success | ValidationFailure | CredentialFailure


def parse_outcome(text: str) -> Outcome:
    """Parse ``success``, ``validation[:field,field]`` or ``credential[:message]``."""
    tag, _, detail = (text or "").strip().partition(":")
    tag = tag.strip().lower()
    detail = detail.strip()
    if tag == "success" and not detail:
        return Success()
    if tag == "validation":
        fields = frozenset(f.strip() for f in detail.split(",") if f.strip())
        return ValidationFailure(fields or None)
    if tag == "credential":
        return CredentialFailure(detail or None)
    raise ValueError(f"Unknown expected outcome {text!r}; use success, validation[:fields] or credential[:message]")


def outcome_matches(expected: Outcome, actual: Outcome) -> bool:
    if expected.tag != actual.tag:
        return False
    if isinstance(expected, ValidationFailure):
        return expected.fields is None or expected.fields == actual.fields
    if isinstance(expected, CredentialFailure):
        if expected.message is None:
            return True
        return expected.message.lower() in (actual.message or "").lower()
    return True


@dataclass(frozen=True)
class OutcomeSignals:
    success_url_fragment: str
    validation_indicator: Locator
    credential_banner: Locator
    success_landmark: Locator | None = None
    field_indicators: Mapping[str, Locator] = field(default_factory=dict)
    signal_timeout: float = 3.0


class OutcomeClassifier:
    """Watches all outcome signals together and reports the first one that shows up.

    ``signal_timeout`` is the budget for each signal. The signals are watched in
    one wait of up to three budgets (capped at the step timeout), and every
    tick applies the precedence order, so a late redirect is still a Success.
    """

    def __init__(self, signals: OutcomeSignals, poller: Poller, verbose: bool = False):
        if signals.signal_timeout >= poller.timeout:
            raise ValueError(
                f"signal_timeout ({signals.signal_timeout}s) must be shorter than the step timeout ({poller.timeout}s)"
            )
        self.signals = signals
        self.poller = poller
        self.verbose = verbose

    @property
    def window(self) -> float:
        return min(self.poller.timeout, 3 * self.signals.signal_timeout)

    async def _reached_target(self, session) -> bool:
        s = self.signals
        if s.success_url_fragment not in await session.current_url():
            return False
        if s.success_landmark is not None:
            return await session.find_element(s.success_landmark) is not None
        return True

    async def _observe(self, session) -> Outcome | None:
        s = self.signals
        if await self._reached_target(session):
            return Success()
        if await session.find_elements(s.validation_indicator):
            fields = set()
            for name, locator in s.field_indicators.items():
                if await session.find_elements(locator):
                    fields.add(name)
            return ValidationFailure(frozenset(fields) or None)
        banner = await session.find_element(s.credential_banner)
        if banner:
            message = await session.element_text(banner)
            return CredentialFailure(message or None)
        return None

    async def classify(self, session) -> Outcome:
        s = self.signals
        outcome = await self.poller.until(
            lambda: self._observe(session),
            description=f"'{s.success_url_fragment}' URL, validation message or error banner",
            timeout=self.window,
        )
        if isinstance(outcome, TimedOut):
            url = await session.current_url()
            raise IndeterminateOutcome(f"No success, validation or credential signal within {outcome.elapsed:.1f}s (url={url})")
        if self.verbose:
            if isinstance(outcome, Success):
                print(f"✓ Reached '{s.success_url_fragment}'")
            elif isinstance(outcome, ValidationFailure):
                print(f"→ Validation message shown for: {', '.join(sorted(outcome.fields or ())) or 'unknown field'}")
            else:
                print(f"→ Error banner shown: {outcome.message}")
        return outcome
