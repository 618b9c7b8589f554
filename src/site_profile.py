import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from browser_session import Locator
from form_steps import FormSteps
from outcomes import OutcomeSignals


DEFAULT_BASE_URL = "https://opensource-demo.orangehrmlive.com/"
DEFAULT_PROFILE_PATH = Path("data/site_profile.json")

DOWNLOAD_CONTROL_XPATH = (
    "//button[contains(@class,'oxd-button') and contains(text(),'Download')]"
    " | //button[contains(text(),'Export')]"
    " | //*[contains(@class,'download')]"
)

FIELD_ERROR_XPATH = (
    "//input[@name='{name}']/ancestor::div[contains(@class,'oxd-input-group')]"
    "//span[contains(@class,'oxd-input-field-error-message')]"
)


@dataclass(frozen=True)
class MenuPage:
    """A page reached from the post-login menu, and what proves it loaded."""

    name: str
    menu: Locator
    url_fragment: str
    landmarks: tuple[Locator, ...] = ()


def _default_inputs() -> dict[str, Locator]:
    return {"username": Locator.by_name("username"), "password": Locator.by_name("password")}


def _default_field_indicators() -> dict[str, Locator]:
    return {name: Locator.by_xpath(FIELD_ERROR_XPATH.format(name=name)) for name in ("username", "password")}


def _default_menu_pages() -> tuple[MenuPage, ...]:
    return (
        MenuPage(
            name="my-info",
            menu=Locator.by_xpath("//span[text()='My Info']"),
            url_fragment="viewPersonalDetails",
            landmarks=(
                Locator.by_css("div.employee-image"),
                Locator.by_xpath("//h6[text()='Personal Details']"),
                Locator.by_name("firstName"),
            ),
        ),
        MenuPage(
            name="pim",
            menu=Locator.by_xpath("//span[text()='PIM']"),
            url_fragment="pim",
            landmarks=(Locator.by_xpath("//h6[text()='PIM']"),),
        ),
    )


@dataclass(frozen=True)
class SiteProfile:
    """Locators, URLs and timeouts for the application under test."""

    base_url: str = DEFAULT_BASE_URL
    login_path: str = "/"
    sign_out_path: str | None = "/web/index.php/auth/logout"
    inputs: dict[str, Locator] = field(default_factory=_default_inputs)
    ready: Locator = Locator.by_name("username")
    submit: Locator = Locator.by_css("button[type='submit']")
    success_url_fragment: str = "dashboard"
    success_landmark: Locator | None = Locator.by_css("h6.oxd-text--h6")
    validation_indicator: Locator = Locator.by_css("span.oxd-input-field-error-message")
    field_indicators: dict[str, Locator] = field(default_factory=_default_field_indicators)
    credential_banner: Locator = Locator.by_css("p.oxd-alert-content-text")
    menu_pages: tuple[MenuPage, ...] = field(default_factory=_default_menu_pages)
    download_page: str | None = "pim"
    download_control: Locator = Locator.by_xpath(DOWNLOAD_CONTROL_XPATH)
    step_timeout: float = 10.0
    signal_timeout: float = 3.0
    poll_interval: float = 0.25

    def url(self, path: str | None) -> str | None:
        if path is None:
            return None
        if path.startswith("http"):
            return path
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    def login_form(self) -> FormSteps:
        return FormSteps(
            start_url=self.url(self.login_path),
            ready=self.ready,
            inputs=self.inputs,
            submit=self.submit,
            sign_out_url=self.url(self.sign_out_path),
        )

    def outcome_signals(self) -> OutcomeSignals:
        return OutcomeSignals(
            success_url_fragment=self.success_url_fragment,
            validation_indicator=self.validation_indicator,
            credential_banner=self.credential_banner,
            success_landmark=self.success_landmark,
            field_indicators=self.field_indicators,
            signal_timeout=self.signal_timeout,
        )

    def menu_page(self, name: str) -> MenuPage:
        for page in self.menu_pages:
            if page.name == name:
                return page
        raise ValueError(f"Unknown menu page {name!r}; known: {', '.join(p.name for p in self.menu_pages)}")


LOCATOR_KEYS = {"ready", "submit", "success_landmark", "validation_indicator", "credential_banner", "download_control"}
LOCATOR_MAP_KEYS = {"inputs", "field_indicators"}
FLOAT_KEYS = {"step_timeout", "signal_timeout", "poll_interval"}


def _menu_page_from_json(data: dict) -> MenuPage:
    try:
        return MenuPage(
            name=data["name"],
            menu=Locator.from_json(data["menu"]),
            url_fragment=data["url_fragment"],
            landmarks=tuple(Locator.from_json(x) for x in data.get("landmarks", [])),
        )
    except KeyError as e:
        raise ValueError(f"Menu page entry is missing {e}: {data!r}") from e


def profile_from_dict(data: dict, base: SiteProfile | None = None) -> SiteProfile:
    base = base or SiteProfile()
    known = {f.name for f in fields(SiteProfile)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown site profile keys: {', '.join(unknown)}")
    changes = {}
    for key, value in data.items():
        if key in LOCATOR_KEYS:
            changes[key] = None if value is None else Locator.from_json(value)
        elif key in LOCATOR_MAP_KEYS:
            changes[key] = {name: Locator.from_json(v) for name, v in value.items()}
        elif key == "menu_pages":
            changes[key] = tuple(_menu_page_from_json(p) for p in value)
        elif key in FLOAT_KEYS:
            changes[key] = float(value)
        else:
            changes[key] = value
    return replace(base, **changes)


def load_site_profile(path: Path | None = None, base_url: str | None = None, verbose: bool = False) -> SiteProfile:
    """Defaults, then the JSON override file, then environment variables, then ``base_url``."""
    profile = SiteProfile()
    path = Path(path) if path else DEFAULT_PROFILE_PATH
    if path.exists():
        try:
            overrides = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Site profile {path} is not valid JSON: {e}") from e
        profile = profile_from_dict(overrides, profile)
        if verbose:
            print(f"→ Loaded site profile overrides from {path}")

    env = {}
    if os.environ.get("BASE_URL"):
        env["base_url"] = os.environ["BASE_URL"]
    for key, var in (("step_timeout", "STEP_TIMEOUT_S"), ("signal_timeout", "SIGNAL_TIMEOUT_S"), ("poll_interval", "POLL_INTERVAL_S")):
        if os.environ.get(var):
            try:
                env[key] = float(os.environ[var])
            except ValueError as e:
                raise ValueError(f"{var} must be a number of seconds, got {os.environ[var]!r}") from e
    if base_url:
        env["base_url"] = base_url
    return replace(profile, **env) if env else profile
