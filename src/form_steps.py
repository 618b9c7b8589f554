from dataclasses import dataclass
from typing import Mapping

from browser_session import Locator
from polling import Poller


@dataclass(frozen=True)
class FormSteps:
    """How to fill and submit one form: where it lives, when it is ready, which field goes where."""

    start_url: str
    ready: Locator
    inputs: Mapping[str, Locator]
    submit: Locator
    sign_out_url: str | None = None


async def submit_form(session, poller: Poller, steps: FormSteps, fields: Mapping[str, str], verbose: bool = False) -> None:
    """Wait for the form, type every non-empty field and click submit.

    Empty values are not typed at all; the form is still submitted so that
    required-field validation can fire.
    """
    await poller.require(lambda: session.find_element(steps.ready), description=f"form ready ({steps.ready})")
    for name, value in fields.items():
        locator = steps.inputs[name]
        if value == "":
            if verbose:
                print(f"→ Leaving '{name}' empty")
            continue
        element = await poller.require(lambda: session.find_element(locator), description=f"input '{name}' ({locator})")
        await session.type(element, value)
        if verbose:
            print(f"→ Filled '{name}'")
    button = await poller.require(lambda: session.find_element(steps.submit), description=f"submit control ({steps.submit})")
    await session.click(button)
    if verbose:
        print("→ Submitted form")
