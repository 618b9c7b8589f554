"""Scenario tables: where rows come from and how their values are resolved.

Tables are JSON (a list of ``{"label", "fields", "expected"}`` objects) or CSV
(``label`` and ``expected`` columns, every other column is an input field).

Values may reference the environment instead of holding secrets:

- ``$env:NAME``  the value of environment variable ``NAME``
- ``$totp:NAME`` the current one-time code for the TOTP secret in ``NAME``
"""

import csv
import json
import os
from pathlib import Path

import pyotp

from outcomes import parse_outcome
from scenario_runner import TestRow


ENV_PREFIX = "$env:"
TOTP_PREFIX = "$totp:"

# username, password, expected, label
DEFAULT_LOGIN_TABLE = [
    ("Admin", "admin123", "success", "Valid credentials"),
    ("InvalidUser", "InvalidPass", "credential:Invalid credentials", "Both invalid"),
    ("Admin", "wrongPassword", "credential:Invalid credentials", "Invalid password"),
    ("wrongUser", "admin123", "credential:Invalid credentials", "Invalid username"),
    ("Admin", "Admin123", "credential:Invalid credentials", "Wrong-case password"),
    ("", "", "validation:username,password", "Empty credentials"),
    ("Admin", "", "validation:password", "Empty password"),
    ("", "admin123", "validation:username", "Empty username"),
    ("Admin@123", "pass@123", "credential", "Special characters"),
    ("User#123", "test$pass", "credential", "Special characters in both fields"),
    ("admin'OR'1'='1", "password", "credential", "SQL injection attempt"),
]


def default_login_rows() -> list[TestRow]:
    return [
        TestRow(label=label, input_fields={"username": user, "password": password}, expected=parse_outcome(expected))
        for user, password, expected, label in DEFAULT_LOGIN_TABLE
    ]


def referenced_env_vars(value: str) -> str | None:
    for prefix in (ENV_PREFIX, TOTP_PREFIX):
        if value.startswith(prefix):
            return value[len(prefix):]
    return None


def resolve_value(value: str, environ=None) -> str:
    environ = os.environ if environ is None else environ
    if value.startswith(ENV_PREFIX):
        return environ[value[len(ENV_PREFIX):]]
    if value.startswith(TOTP_PREFIX):
        return pyotp.TOTP(environ[value[len(TOTP_PREFIX):]]).now()
    return value


def resolve_rows(rows: list[TestRow], environ=None) -> list[TestRow]:
    """Replace ``$env:``/``$totp:`` references with real values.

    Every missing variable is reported in one error, before anything runs.
    """
    environ = os.environ if environ is None else environ
    missing = []
    for row in rows:
        for value in row.input_fields.values():
            var = referenced_env_vars(value)
            if var and not environ.get(var) and var not in missing:
                missing.append(var)
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}. Please set these before running tests."
        )
    return [
        TestRow(
            label=row.label,
            input_fields={name: resolve_value(value, environ) for name, value in row.input_fields.items()},
            expected=row.expected,
        )
        for row in rows
    ]


def _row_from_record(record: dict, where: str) -> TestRow:
    label = (record.get("label") or "").strip()
    if not label:
        raise ValueError(f"{where}: row has no label")
    if "expected" not in record:
        raise ValueError(f"{where}: row '{label}' has no expected outcome")
    fields = record.get("fields") or {}
    if not isinstance(fields, dict):
        raise ValueError(f"{where}: row '{label}' fields must be an object")
    return TestRow(
        label=label,
        input_fields={str(k): "" if v is None else str(v) for k, v in fields.items()},
        expected=parse_outcome(record["expected"]),
    )


def load_rows_json(path: Path) -> list[TestRow]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of rows")
    return [_row_from_record(rec, f"{path}[{i}]") for i, rec in enumerate(data)]


def load_rows_csv(path: Path) -> list[TestRow]:
    rows = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for line, rec in enumerate(reader, start=2):
            fields = {k: v or "" for k, v in rec.items() if k not in ("label", "expected")}
            rows.append(_row_from_record({"label": rec.get("label"), "expected": rec.get("expected"), "fields": fields}, f"{path}:{line}"))
    return rows


def load_rows(path: Path) -> list[TestRow]:
    path = Path(path)
    if path.suffix.lower() == ".csv":
        rows = load_rows_csv(path)
    elif path.suffix.lower() == ".json":
        rows = load_rows_json(path)
    else:
        raise ValueError(f"Unsupported table format {path.suffix!r}; use .json or .csv")
    labels = [r.label for r in rows]
    dupes = sorted({l for l in labels if labels.count(l) > 1})
    if dupes:
        raise ValueError(f"{path}: duplicate row labels: {', '.join(dupes)}")
    return rows
