"""Human-readable diagnostics for contract violations.

Formatting helpers turn a ``ValidationResult`` into text a developer can act
on: per-violation suggestions, a structural JSON diff between a sample and the
actual payload, and a full report rendered as Markdown or JSON. None of these
functions raise on malformed payloads.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from spec_kitty_contracts.contracts import ProviderState
from spec_kitty_contracts.schema import json_kind
from spec_kitty_contracts.violations import ValidationResult, Violation

JsonDiffType = Literal["added", "removed", "changed", "type_mismatch"]


# ---------------------------------------------------------------------------
# Violation formatting
# ---------------------------------------------------------------------------

def _field_name(path: str) -> str:
    if not path or path == "$":
        return "root"
    if ":" in path and not path.startswith("$"):
        return path.split(":", 1)[1]
    return path.rsplit(".", 1)[-1]


def suggestion_for(violation: Violation) -> str | None:
    """A short remediation hint for *violation*, or None when there is none."""
    field = _field_name(violation.path)
    kind = violation.kind
    if kind == "missing_required":
        return f"Ensure the field '{field}' is included in the payload."
    if kind == "invalid_type":
        return f"Serialize '{field}' as {violation.expected} instead of {violation.actual}."
    if kind == "invalid_format":
        return f"The value at '{field}' should match the format '{violation.expected}'."
    if kind == "out_of_range":
        return f"Keep '{field}' within the declared limits ({violation.expected})."
    if kind == "invalid_enum_value":
        return f"Use one of the allowed values for '{field}': {violation.expected}."
    if kind == "pattern_mismatch":
        return f"The value at '{field}' must match the pattern {violation.expected}."
    if kind == "unexpected_status_code":
        return f"The API returned {violation.actual} but the contract expects {violation.expected}."
    if kind == "missing_header":
        return f"Send the header '{field}'."
    if kind == "invalid_header_value":
        return f"The header '{field}' should be '{violation.expected}'."
    if kind == "unexpected_null":
        return f"Return a non-null value for '{field}', or declare it nullable."
    if kind == "unexpected_field":
        return f"Remove '{field}' from the payload, or allow additional properties."
    if kind == "invalid_content_type":
        return f"Set Content-Type to '{violation.expected}'."
    if kind == "missing_query_parameter":
        return f"Include the query parameter '{field}', or declare it optional."
    if kind == "invalid_query_parameter_value":
        return f"Send '{field}' as a valid {violation.expected}."
    if kind == "discriminator_mismatch":
        return f"Set '{field}' to one of: {violation.expected}."
    return None


def format_violation(violation: Violation, include_suggestion: bool = True) -> str:
    lines = [f"{violation.kind} at `{violation.path}`: {violation.message}"]
    if violation.expected is not None:
        lines.append(f"  Expected: {violation.expected}")
    if violation.actual is not None:
        lines.append(f"  Actual:   {violation.actual}")
    if include_suggestion:
        suggestion = suggestion_for(violation)
        if suggestion:
            lines.append(f"  Suggestion: {suggestion}")
    return "\n".join(lines)


def format_violations(endpoint: str, violations: list[Violation] | tuple[Violation, ...]) -> str:
    if not violations:
        return f"{endpoint}: no contract violations"
    lines = [f"Contract violations for {endpoint} ({len(violations)}):"]
    for index, violation in enumerate(violations, start=1):
        body = format_violation(violation).replace("\n", "\n   ")
        lines.append(f"{index}. {body}")
    return "\n".join(lines)


def summary_line(endpoint: str, violations: list[Violation] | tuple[Violation, ...]) -> str:
    if not violations:
        return f"{endpoint}: valid"
    counts = Counter(v.kind for v in violations)
    detail = ", ".join(f"{kind}: {count}" for kind, count in counts.items())
    return f"{endpoint}: {len(violations)} violation(s) ({detail})"


# ---------------------------------------------------------------------------
# JSON diff
# ---------------------------------------------------------------------------

class JsonDiff(BaseModel):
    """A single structural difference between expected and actual JSON."""

    model_config = ConfigDict(frozen=True)

    path: str
    type: JsonDiffType
    expected: str | None = None
    actual: str | None = None

    def __str__(self) -> str:
        if self.type == "added":
            return f"+ {self.path}: {self.actual}"
        if self.type == "removed":
            return f"- {self.path}: {self.expected}"
        if self.type == "type_mismatch":
            return f"~ {self.path}: expected {self.expected}, got {self.actual}"
        return f"~ {self.path}: {self.expected} -> {self.actual}"


def _render(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def compare_json(expected_text: str | None, actual_text: str | None) -> list[JsonDiff]:
    """Structural diff of two JSON documents. Unparseable text is compared verbatim."""
    expected_blank = not (expected_text and expected_text.strip())
    actual_blank = not (actual_text and actual_text.strip())
    if expected_blank and actual_blank:
        return []
    if expected_blank:
        return [JsonDiff(path="$", type="added", actual=actual_text)]
    if actual_blank:
        return [JsonDiff(path="$", type="removed", expected=expected_text)]

    try:
        expected = json.loads(expected_text)  # type: ignore[arg-type]
        actual = json.loads(actual_text)  # type: ignore[arg-type]
    except ValueError:
        if expected_text != actual_text:
            return [JsonDiff(path="$", type="changed", expected=expected_text, actual=actual_text)]
        return []

    diffs: list[JsonDiff] = []
    _diff_values(expected, actual, "$", diffs)
    return diffs


def _diff_values(expected: Any, actual: Any, path: str, diffs: list[JsonDiff]) -> None:
    expected_kind = json_kind(expected)
    actual_kind = json_kind(actual)
    if expected_kind != actual_kind:
        diffs.append(JsonDiff(path=path, type="type_mismatch", expected=expected_kind, actual=actual_kind))
        return

    if expected_kind == "object":
        for key, value in expected.items():
            child = f"{path}.{key}"
            if key not in actual:
                diffs.append(JsonDiff(path=child, type="removed", expected=_render(value)))
            else:
                _diff_values(value, actual[key], child, diffs)
        for key, value in actual.items():
            if key not in expected:
                diffs.append(JsonDiff(path=f"{path}.{key}", type="added", actual=_render(value)))
    elif expected_kind == "array":
        for index in range(max(len(expected), len(actual))):
            child = f"{path}[{index}]"
            if index >= len(expected):
                diffs.append(JsonDiff(path=child, type="added", actual=_render(actual[index])))
            elif index >= len(actual):
                diffs.append(JsonDiff(path=child, type="removed", expected=_render(expected[index])))
            else:
                _diff_values(expected[index], actual[index], child, diffs)
    elif _render(expected) != _render(actual):
        diffs.append(JsonDiff(path=path, type="changed", expected=_render(expected), actual=_render(actual)))


def format_json_diffs(diffs: list[JsonDiff]) -> str:
    if not diffs:
        return "(no differences)"
    return "\n".join(str(diff) for diff in diffs)


# ---------------------------------------------------------------------------
# Diagnostic report
# ---------------------------------------------------------------------------

class DiagnosticReport(BaseModel):
    """Everything known about one failed (or passed) exchange."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    violations: tuple[Violation, ...] = ()
    provider_states: list[ProviderState] = Field(default_factory=list)
    request_sent: str | None = None
    response_received: str | None = None
    body_diffs: list[JsonDiff] = Field(default_factory=list)
    status_code: int | None = None
    expected_status_codes: list[int] = Field(default_factory=list)

    @classmethod
    def from_result(
        cls,
        result: ValidationResult,
        expected_body: str | None = None,
        actual_body: str | None = None,
        **kwargs: Any,
    ) -> DiagnosticReport:
        """Build a report; a body diff is included when both payloads are given."""
        body_diffs = compare_json(expected_body, actual_body) if expected_body and actual_body else []
        kwargs.setdefault("response_received", actual_body)
        return cls(
            endpoint=result.endpoint,
            violations=result.violations,
            body_diffs=body_diffs,
            **kwargs,
        )

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def suggestions(self) -> list[str]:
        seen: list[str] = []
        for violation in self.violations:
            suggestion = suggestion_for(violation)
            if suggestion and suggestion not in seen:
                seen.append(suggestion)
        return seen


ReportFormat = Literal["markdown", "json"]


def render_report(report: DiagnosticReport, format: ReportFormat = "markdown") -> str:
    if format == "json":
        payload = report.model_dump(mode="json")
        payload["is_valid"] = report.is_valid
        payload["suggestions"] = report.suggestions
        return json.dumps(payload, indent=2)
    if format != "markdown":
        raise ValueError(f"Unknown report format: {format!r}")
    return _render_markdown(report)


def _render_markdown(report: DiagnosticReport) -> str:
    status = "passed" if report.is_valid else "failed"
    lines = [f"# Contract verification {status}", "", f"**Endpoint:** `{report.endpoint}`"]

    if report.provider_states:
        lines += ["", "## Provider states", ""]
        for state in report.provider_states:
            params = ", ".join(f"{k}={v}" for k, v in state.parameters.items())
            lines.append(f"- {state.name}" + (f" ({params})" if params else ""))

    if report.status_code is not None:
        lines += ["", f"**Response status:** {report.status_code}"]
        if report.expected_status_codes:
            expected = ", ".join(str(code) for code in report.expected_status_codes)
            lines.append(f"**Expected status:** {expected}")

    if report.violations:
        lines += ["", f"## Violations ({len(report.violations)})", ""]
        for index, violation in enumerate(report.violations, start=1):
            lines.append(f"{index}. **{violation.kind}** at `{violation.path}`: {violation.message}")
            if violation.expected is not None:
                lines.append(f"   - Expected: `{violation.expected}`")
            if violation.actual is not None:
                lines.append(f"   - Actual: `{violation.actual}`")

    if report.body_diffs:
        lines += ["", "## Body diff", "", "```diff", format_json_diffs(report.body_diffs), "```"]

    suggestions = report.suggestions
    if suggestions:
        lines += ["", "## Suggestions", ""]
        lines.extend(f"- {suggestion}" for suggestion in suggestions)

    return "\n".join(lines) + "\n"
