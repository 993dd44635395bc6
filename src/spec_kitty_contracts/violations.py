"""Violation vocabulary and validation results."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from spec_kitty_contracts.schema import ContractsError

ViolationKind = Literal[
    "missing_required",
    "invalid_type",
    "invalid_format",
    "out_of_range",
    "invalid_enum_value",
    "pattern_mismatch",
    "unexpected_status_code",
    "missing_header",
    "invalid_header_value",
    "unexpected_null",
    "unexpected_field",
    "invalid_content_type",
    "missing_query_parameter",
    "invalid_query_parameter_value",
    "discriminator_mismatch",
    # Only produced by the orchestration layer around a live exchange.
    "timeout",
]


class Violation(BaseModel):
    """A single contract violation at a JSONPath-like location."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="Endpoint label, e.g. 'GET /users/{id}'")
    path: str = Field(..., description="Location such as $.items[0].name")
    message: str
    kind: ViolationKind
    expected: str | None = None
    actual: str | None = None

    def __str__(self) -> str:
        text = f"[{self.kind}] {self.path}: {self.message}"
        if self.expected is not None or self.actual is not None:
            text += f" (expected: {self.expected}, actual: {self.actual})"
        return text


class ValidationResult(BaseModel):
    """Outcome of validating one payload or exchange against a contract."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    violations: tuple[Violation, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @staticmethod
    def success(endpoint: str) -> ValidationResult:
        return ValidationResult(endpoint=endpoint)

    @staticmethod
    def failure(endpoint: str, violations: list[Violation] | tuple[Violation, ...]) -> ValidationResult:
        """A failed result; at least one violation is required."""
        if not violations:
            raise ContractsError(f"A failed result for {endpoint} needs at least one violation")
        return ValidationResult(endpoint=endpoint, violations=tuple(violations))

    @staticmethod
    def from_violations(endpoint: str, violations: list[Violation] | tuple[Violation, ...]) -> ValidationResult:
        """Valid when *violations* is empty, failed otherwise."""
        return ValidationResult(endpoint=endpoint, violations=tuple(violations))

    def merge(self, other: ValidationResult) -> ValidationResult:
        """Concatenate violations, keeping this result's endpoint label."""
        return ValidationResult(
            endpoint=self.endpoint,
            violations=self.violations + other.violations,
        )

    def raise_if_invalid(self) -> None:
        if self.violations:
            raise ContractViolationError(list(self.violations), endpoint=self.endpoint)


class ContractViolationError(ContractsError):
    """Raised by ``ValidationResult.raise_if_invalid`` when violations exist."""

    def __init__(self, violations: list[Violation], endpoint: str | None = None) -> None:
        self.violations = list(violations)
        if endpoint is None:
            endpoints = {v.endpoint for v in self.violations}
            endpoint = endpoints.pop() if len(endpoints) == 1 else None
        self.endpoint = endpoint
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        header = f"Contract violation(s) for {self.endpoint or 'multiple endpoints'}"
        lines = [f"{header}: {len(self.violations)} violation(s)"]
        grouped: dict[str, list[Violation]] = {}
        for violation in self.violations:
            grouped.setdefault(violation.kind, []).append(violation)
        for kind, items in grouped.items():
            lines.append(f"  {kind} ({len(items)}):")
            for violation in items:
                lines.append(f"    - {violation.path}: {violation.message}")
        return "\n".join(lines)
