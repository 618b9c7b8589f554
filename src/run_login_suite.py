#!/usr/bin/env python3

import argparse
import asyncio
import json
import os
from datetime import datetime
from pathlib import Path

from artifacts import ArtifactCapture, ArtifactStore
from browser_session import open_browser_session
from engine_errors import ScenarioEngineError, SessionLost
from journeys import download_via, open_menu_page, sign_in, visit_in_new_tab
from outcomes import OutcomeClassifier
from polling import Poller
from scenario_runner import ScenarioRunner
from scenario_tables import default_login_rows, load_rows, resolve_rows
from site_profile import SiteProfile, load_site_profile
from windows import WindowRegistry


async def _journey(name: str, session, capture: ArtifactCapture, step) -> dict:
    """Run one journey and describe how it went. SessionLost is left to the caller."""
    try:
        details = await step() or {}
    except SessionLost:
        raise
    except ScenarioEngineError as e:
        shot = await capture.capture(session, name, reason=str(e))
        print(f"✖ Failed: {name} — {e}")
        return {"name": name, "status": "failed", "error": str(e), "screenshot": shot or ""}
    result = {"name": name, "status": "passed", **details}
    if result["status"] == "passed":
        print(f"✓ Passed: {name}")
    else:
        print(f"⚠️ {result['status'].capitalize()}: {name}")
    return result


async def _all_journeys(session, profile: SiteProfile, capture: ArtifactCapture, run_dir: Path, results: list, username: str, password: str, verbose: bool) -> None:
    poller = Poller(timeout=profile.step_timeout, interval=profile.poll_interval, verbose=verbose)
    classifier = OutcomeClassifier(profile.outcome_signals(), poller, verbose=verbose)

    async def login():
        await sign_in(session, poller, classifier, profile.login_form(), username, password, verbose=verbose)

    results.append(await _journey("journey: sign-in", session, capture, login))
    if results[-1]["status"] != "passed":
        print("⚠️ Skipping remaining journeys: sign-in failed")
        return

    home = profile.url(profile.login_path)
    for page in profile.menu_pages:
        async def menu(page=page):
            await session.navigate(home)
            snap = await open_menu_page(session, poller, page, capture=capture, verbose=verbose)
            return {"url": snap.url, "title": snap.title}

        results.append(await _journey(f"journey: {page.name}", session, capture, menu))

    if profile.download_page:
        async def export():
            await session.navigate(home)
            await open_menu_page(session, poller, profile.menu_page(profile.download_page), verbose=verbose)
            downloaded = await download_via(session, poller, profile.download_control, run_dir / "downloads", verbose=verbose)
            if downloaded is None:
                return {"status": "skipped", "error": f"No download control on '{profile.download_page}'"}
            return {"file": str(downloaded.path), "bytes": downloaded.size}

        results.append(await _journey("journey: download", session, capture, export))

    registry = WindowRegistry(poller, verbose=verbose)

    async def new_tab():
        await session.navigate(home)
        snap = await visit_in_new_tab(session, registry, poller, profile.base_url, verbose=verbose)
        return {"url": snap.url, "title": snap.title}

    results.append(await _journey("journey: new tab", session, capture, new_tab))


async def run_journeys(profile: SiteProfile, capture: ArtifactCapture, run_dir: Path, headless: bool, verbose: bool = False) -> list[dict]:
    """Sign in once, then check every menu page, the export download and a new-tab round trip."""
    username = os.environ.get("LOGIN_USERNAME", "Admin")
    password = os.environ.get("LOGIN_PASSWORD", "admin123")
    results = []
    async with open_browser_session(headless=headless, verbose=verbose) as session:
        try:
            await _all_journeys(session, profile, capture, run_dir, results, username, password, verbose)
        except SessionLost as e:
            print(f"✖ Session lost during journeys — {e}")
            results.append({"name": "journeys", "status": "failed", "error": str(e)})
    return results


def main():
    parser = argparse.ArgumentParser(description="Data-driven login scenarios → verdicts")
    parser.add_argument("--base-url", help="Base URL under test (default: BASE_URL env or the site profile)")
    parser.add_argument("--table", help="Scenario table (.json or .csv); defaults to the built-in login table")
    parser.add_argument("--profile", help="Site profile JSON (default: data/site_profile.json if present)")
    parser.add_argument("--reset", choices=["session", "navigate"], default="session", help="Fresh browser per row, or re-navigate in one browser")
    parser.add_argument("--run-dir", help="Output directory (default: data/runs/run_<timestamp>)")
    parser.add_argument("--journeys", action="store_true", help="Also run the post-login journeys")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--verbose", action="store_true", help="Print step-by-step logs")

    args = parser.parse_args()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.run_dir) if args.run_dir else Path(f"data/runs/run_{timestamp}")
    run_dir.mkdir(parents=True, exist_ok=True)

    try:
        profile = load_site_profile(args.profile, base_url=args.base_url, verbose=args.verbose)
        rows = resolve_rows(load_rows(Path(args.table)) if args.table else default_login_rows())
    except (OSError, ValueError) as e:
        raise SystemExit(f"✖ {e}")

    headless = not args.headful
    poller = Poller(timeout=profile.step_timeout, interval=profile.poll_interval, verbose=args.verbose)
    classifier = OutcomeClassifier(profile.outcome_signals(), poller, verbose=args.verbose)
    capture = ArtifactCapture(ArtifactStore(run_dir / "screenshots"), verbose=args.verbose)
    runner = ScenarioRunner(
        lambda: open_browser_session(headless=headless, verbose=args.verbose),
        classifier,
        poller,
        capture=capture,
        reset=args.reset,
        verbose=args.verbose,
    )

    print(f"🏃 Running {len(rows)} scenario(s) against {profile.base_url}...")
    report = asyncio.run(runner.run(rows, profile.login_form()))
    results_json = report.to_dict()

    if args.journeys and not report.truncated:
        print("🏃 Running post-login journeys...")
        results_json["journeys"] = asyncio.run(run_journeys(profile, capture, run_dir, headless, verbose=args.verbose))

    results_path = run_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results_json, f, indent=2)
    print(f"📊 Results written: {results_path}")

    journey_failures = sum(1 for r in results_json.get("journeys", []) if r["status"] == "failed")
    if not report.ok or journey_failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
