from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Sequence

from artifacts import ArtifactCapture
from engine_errors import IndeterminateOutcome, ScenarioEngineError, SessionLost
from form_steps import FormSteps, submit_form
from outcomes import Outcome, OutcomeClassifier, outcome_matches
from polling import Poller


RESET_MODES = ("session", "navigate")


@dataclass(frozen=True)
class TestRow:
    __test__ = False

    label: str
    input_fields: Mapping[str, str]
    expected: Outcome

    def __post_init__(self):
        object.__setattr__(self, "input_fields", MappingProxyType(dict(self.input_fields)))


@dataclass(frozen=True)
class Verdict:
    row: TestRow
    actual: Outcome | None
    passed: bool
    artifact_ref: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.row.label,
            "status": "passed" if self.passed else "failed",
            "expected": str(self.row.expected),
            "actual": str(self.actual) if self.actual is not None else None,
            "error": self.error or "",
            "screenshot": self.artifact_ref or "",
        }


@dataclass
class RunReport:
    total_rows: int
    verdicts: list[Verdict] = field(default_factory=list)
    truncated: bool = False
    truncated_at: str | None = None
    truncation_reason: str | None = None

    @property
    def passed(self) -> int:
        return sum(1 for v in self.verdicts if v.passed)

    @property
    def failed(self) -> int:
        return sum(1 for v in self.verdicts if not v.passed)

    @property
    def ok(self) -> bool:
        return not self.truncated and self.failed == 0

    def to_dict(self) -> dict:
        return {
            "tests": [v.to_dict() for v in self.verdicts],
            "summary": {
                "total_rows": self.total_rows,
                "attempted": len(self.verdicts),
                "passed": self.passed,
                "failed": self.failed,
            },
            "truncated": self.truncated,
            "truncated_at": self.truncated_at,
            "truncation_reason": self.truncation_reason,
        }


class ScenarioRunner:
    """Drives every row of a table through one form and records a verdict per row.

    ``open_session`` is a zero-argument callable returning an async context
    manager that yields a Browser Session (for example
    ``lambda: open_browser_session(headless=True)``). With ``reset="session"``
    every row gets a fresh session; with ``reset="navigate"`` one session is
    shared and each row starts by navigating back to the form.
    """

    def __init__(
        self,
        open_session,
        classifier: OutcomeClassifier,
        poller: Poller,
        capture: ArtifactCapture | None = None,
        reset: str = "session",
        verbose: bool = False,
    ):
        if reset not in RESET_MODES:
            raise ValueError(f"Unknown reset mode {reset!r}; expected one of {', '.join(RESET_MODES)}")
        self.open_session = open_session
        self.classifier = classifier
        self.poller = poller
        self.capture = capture
        self.reset = reset
        self.verbose = verbose

    def _check_rows(self, rows: Sequence[TestRow], steps: FormSteps) -> None:
        problems = []
        for row in rows:
            unknown = [name for name in row.input_fields if name not in steps.inputs]
            if unknown:
                problems.append(f"{row.label}: {', '.join(unknown)}")
        if problems:
            raise ValueError("Rows use fields with no input target: " + "; ".join(problems))

    async def run(self, rows: Sequence[TestRow], steps: FormSteps) -> RunReport:
        rows = list(rows)
        self._check_rows(rows, steps)
        report = RunReport(total_rows=len(rows))
        if not rows:
            return report
        if self.reset == "session":
            for row in rows:
                async with self.open_session() as session:
                    if not await self._attempt(session, row, steps, report, first=True):
                        break
        else:
            async with self.open_session() as session:
                for i, row in enumerate(rows):
                    if not await self._attempt(session, row, steps, report, first=(i == 0)):
                        break
        self._print_summary(report)
        return report

    async def _attempt(self, session, row: TestRow, steps: FormSteps, report: RunReport, first: bool) -> bool:
        """Run one row; return False when the session is lost and the run must stop."""
        if self.verbose:
            print(f"\n===== Running Scenario: {row.label} =====")
        try:
            verdict = await self._run_row(session, row, steps, first)
        except SessionLost as e:
            report.truncated = True
            report.truncated_at = row.label
            report.truncation_reason = str(e)
            print(f"✖ Session lost during '{row.label}'; {report.total_rows - len(report.verdicts) - 1} remaining row(s) not run — {e}")
            return False
        report.verdicts.append(verdict)
        if verdict.passed:
            print(f"✓ Passed: {row.label}")
        else:
            print(f"✖ Failed: {row.label} — {verdict.error}")
        return True

    async def _reset(self, session, steps: FormSteps, first: bool) -> None:
        if self.reset == "navigate" and not first and steps.sign_out_url:
            await session.navigate(steps.sign_out_url)
        await session.navigate(steps.start_url)

    async def _run_row(self, session, row: TestRow, steps: FormSteps, first: bool) -> Verdict:
        try:
            await self._reset(session, steps, first)
            await submit_form(session, self.poller, steps, row.input_fields, verbose=self.verbose)
            actual = await self.classifier.classify(session)
        except IndeterminateOutcome as e:
            return await self._failed(session, row, None, f"Indeterminate outcome: {e}")
        except SessionLost:
            raise
        except ScenarioEngineError as e:
            return await self._failed(session, row, None, str(e))

        if outcome_matches(row.expected, actual):
            return Verdict(row=row, actual=actual, passed=True)
        return await self._failed(session, row, actual, f"Expected {row.expected}, got {actual}")

    async def _failed(self, session, row: TestRow, actual: Outcome | None, error: str) -> Verdict:
        artifact = None
        if self.capture is not None:
            artifact = await self.capture.capture(session, row.label, reason=error)
        return Verdict(row=row, actual=actual, passed=False, artifact_ref=artifact, error=error)

    def _print_summary(self, report: RunReport) -> None:
        line = f"Scenarios: {report.total_rows}, Run: {len(report.verdicts)}, Passed: {report.passed}, Failed: {report.failed}"
        if report.truncated:
            print(f"✖ {line} — truncated at '{report.truncated_at}': {report.truncation_reason}")
        else:
            print(f"✅ {line}")
