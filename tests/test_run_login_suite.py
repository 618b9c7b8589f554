"""End-to-end CLI run with the browser replaced by the fake login site."""

import json
import sys

import pytest

import run_login_suite
from conftest import FakeClock, SessionFactory
from site_profile import SiteProfile


@pytest.fixture
def fake_browser(monkeypatch):
    monkeypatch.setenv("SIGNAL_TIMEOUT_S", "0.05")
    monkeypatch.setenv("STEP_TIMEOUT_S", "1")
    monkeypatch.setenv("POLL_INTERVAL_S", "0.01")
    monkeypatch.delenv("BASE_URL", raising=False)
    factory = SessionFactory(FakeClock(), SiteProfile(base_url="https://hr.example.test/"))
    monkeypatch.setattr(run_login_suite, "open_browser_session", lambda **kwargs: factory())
    return factory


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["run.py", "--base-url", "https://hr.example.test/", *args])
    run_login_suite.main()


def test_passing_table_writes_results(fake_browser, monkeypatch, tmp_path):
    table = tmp_path / "rows.csv"
    table.write_text("label,username,password,expected\nvalid,Admin,admin123,success\nblank,,,validation\n", encoding="utf-8")
    run_cli(monkeypatch, "--table", str(table), "--run-dir", str(tmp_path / "run"))
    results = json.loads((tmp_path / "run" / "results.json").read_text(encoding="utf-8"))
    assert results["summary"] == {"total_rows": 2, "attempted": 2, "passed": 2, "failed": 0}
    assert results["truncated"] is False
    assert len(fake_browser.sessions) == 2


def test_failing_row_exits_non_zero(fake_browser, monkeypatch, tmp_path):
    table = tmp_path / "rows.json"
    table.write_text(json.dumps([{"label": "bad", "fields": {"username": "Admin", "password": "x"}, "expected": "success"}]), encoding="utf-8")
    with pytest.raises(SystemExit) as e:
        run_cli(monkeypatch, "--table", str(table), "--run-dir", str(tmp_path / "run"))
    assert e.value.code == 1
    results = json.loads((tmp_path / "run" / "results.json").read_text(encoding="utf-8"))
    assert results["tests"][0]["status"] == "failed"
    assert results["tests"][0]["screenshot"].endswith(".png")


def test_missing_env_stops_before_browser(fake_browser, monkeypatch, tmp_path):
    monkeypatch.delenv("LOGIN_PASSWORD", raising=False)
    table = tmp_path / "rows.csv"
    table.write_text("label,username,password,expected\nvalid,Admin,$env:LOGIN_PASSWORD,success\n", encoding="utf-8")
    with pytest.raises(SystemExit) as e:
        run_cli(monkeypatch, "--table", str(table), "--run-dir", str(tmp_path / "run"))
    assert "LOGIN_PASSWORD" in str(e.value.code)
    assert fake_browser.sessions == []


def test_failed_journey_sign_in_keeps_scenario_results(fake_browser, monkeypatch, tmp_path):
    monkeypatch.setenv("LOGIN_USERNAME", "Admin")
    monkeypatch.setenv("LOGIN_PASSWORD", "wrong")
    table = tmp_path / "rows.csv"
    table.write_text("label,username,password,expected\nvalid,Admin,admin123,success\n", encoding="utf-8")
    with pytest.raises(SystemExit) as e:
        run_cli(monkeypatch, "--table", str(table), "--run-dir", str(tmp_path / "run"), "--journeys")
    assert e.value.code == 1
    results = json.loads((tmp_path / "run" / "results.json").read_text(encoding="utf-8"))
    assert results["summary"]["passed"] == 1
    [journey] = results["journeys"]
    assert journey["name"] == "journey: sign-in"
    assert journey["status"] == "failed"
    assert "did not succeed" in journey["error"]
    assert journey["screenshot"].endswith(".png")
    assert len(fake_browser.sessions) == 2
    assert all(s.quit_called for s in fake_browser.sessions)
