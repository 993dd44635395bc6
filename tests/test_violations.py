"""Tests for the violation vocabulary and validation results."""

import pytest
from pydantic import ValidationError
from spec_kitty_contracts.schema import ContractsError
from spec_kitty_contracts.violations import ContractViolationError, ValidationResult, Violation


def _violation(kind: str = "missing_required", path: str = "$.name", endpoint: str = "GET /users") -> Violation:
    return Violation(
        endpoint=endpoint,
        path=path,
        message="Required property 'name' is missing",
        kind=kind,
        expected="name",
        actual="missing",
    )


class TestViolation:
    """Tests for Violation."""

    def test_str_includes_expected_and_actual(self) -> None:
        """The string form is a one-line summary."""
        text = str(_violation())
        assert text == (
            "[missing_required] $.name: Required property 'name' is missing "
            "(expected: name, actual: missing)"
        )

    def test_str_without_expected(self) -> None:
        """Expected/actual are omitted when both are absent."""
        violation = Violation(endpoint="GET /", path="$", message="boom", kind="timeout")
        assert str(violation) == "[timeout] $: boom"

    def test_unknown_kind_rejected(self) -> None:
        """The kind taxonomy is closed."""
        with pytest.raises(ValidationError):
            _violation(kind="something_else")

    def test_violations_are_hashable(self) -> None:
        """Frozen violations can be collected in sets."""
        assert len({_violation(), _violation()}) == 1


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_success(self) -> None:
        """A result without violations is valid."""
        result = ValidationResult.success("GET /users")
        assert result.is_valid
        result.raise_if_invalid()

    def test_failure_is_immutable(self) -> None:
        """Violations are stored as a tuple."""
        result = ValidationResult.failure("GET /users", [_violation()])
        assert not result.is_valid
        assert isinstance(result.violations, tuple)
        with pytest.raises(Exception):
            result.endpoint = "other"  # type: ignore[misc]

    def test_failure_requires_a_violation(self) -> None:
        """failure() never produces a valid result."""
        with pytest.raises(ContractsError, match="needs at least one violation"):
            ValidationResult.failure("GET /users", [])

    def test_from_violations(self) -> None:
        """from_violations() is valid exactly when the list is empty."""
        assert ValidationResult.from_violations("GET /users", []).is_valid
        result = ValidationResult.from_violations("GET /users", [_violation()])
        assert not result.is_valid
        assert result.violations == (_violation(),)

    def test_merge_keeps_order_and_label(self) -> None:
        """Merging concatenates in order."""
        first = ValidationResult.failure("GET /users", [_violation(path="$.a")])
        second = ValidationResult.failure("other", [_violation(path="$.b")])
        merged = first.merge(second)
        assert merged.endpoint == "GET /users"
        assert [v.path for v in merged.violations] == ["$.a", "$.b"]

    def test_raise_if_invalid(self) -> None:
        """The convenience wrapper raises with the full list attached."""
        result = ValidationResult.failure(
            "GET /users",
            [_violation(path="$.a"), _violation(kind="invalid_type", path="$.b"), _violation(path="$.c")],
        )
        with pytest.raises(ContractViolationError) as excinfo:
            result.raise_if_invalid()
        error = excinfo.value
        assert isinstance(error, ContractsError)
        assert error.endpoint == "GET /users"
        assert len(error.violations) == 3
        message = str(error)
        assert message.startswith("Contract violation(s) for GET /users: 3 violation(s)")
        assert "missing_required (2):" in message
        assert "invalid_type (1):" in message


class TestContractViolationError:
    """Tests for ContractViolationError."""

    def test_endpoint_inferred_from_violations(self) -> None:
        """A single common endpoint is used as the label."""
        error = ContractViolationError([_violation(), _violation(path="$.x")])
        assert error.endpoint == "GET /users"

    def test_multiple_endpoints(self) -> None:
        """Mixed endpoints have no single label."""
        error = ContractViolationError([_violation(), _violation(endpoint="POST /users")])
        assert error.endpoint is None
        assert "multiple endpoints" in str(error)
