"""Checks of an already-captured HTTP exchange against a contract snapshot.

Nothing here performs I/O: the caller records the request or response (from a
test client, a proxy, a log) and these functions return the violations.
"""

from __future__ import annotations

import math
import re
from urllib.parse import parse_qs

import structlog
from pydantic import BaseModel, ConfigDict, Field

from spec_kitty_contracts.config import ValidationSettings
from spec_kitty_contracts.contracts import (
    ContractSnapshot,
    EndpointContract,
    HeaderExpectation,
    QueryParameterExpectation,
)
from spec_kitty_contracts.schema import ContractsError
from spec_kitty_contracts.validator import SchemaValidator
from spec_kitty_contracts.violations import ValidationResult, Violation

logger = structlog.get_logger(__name__)

_INTEGER_TEXT = re.compile(r"^[+-]?\d+$")


class RecordedRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str
    path: str = Field(..., description="Request path, optionally with a query string")
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    content_type: str | None = None

    @property
    def query(self) -> dict[str, list[str]]:
        _, _, query_string = self.path.partition("?")
        return parse_qs(query_string, keep_blank_values=True)

    def effective_content_type(self) -> str | None:
        return self.content_type or _header_value(self.headers, "Content-Type")


class RecordedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    content_type: str | None = None

    def effective_content_type(self) -> str | None:
        return self.content_type or _header_value(self.headers, "Content-Type")


def verify_request(
    snapshot: ContractSnapshot,
    request: RecordedRequest,
    settings: ValidationSettings | None = None,
) -> ValidationResult:
    """Validate a consumer request against the matching endpoint.

    Raises ``ContractsError`` when no endpoint of *snapshot* matches.
    """
    endpoint = snapshot.find_endpoint(request.path, request.method)
    if endpoint is None:
        raise ContractsError(
            f"No endpoint in contract '{snapshot.name}' matches "
            f"{request.method.upper()} {request.path}"
        )

    label = endpoint.label
    violations: list[Violation] = []

    expectations: dict[str, HeaderExpectation] = {}
    if snapshot.defaults is not None:
        expectations.update(snapshot.defaults.request_headers)
    expectations.update(endpoint.request_headers())
    for name, expectation in expectations.items():
        violations.extend(_check_header(request.headers, name, expectation, label))

    query = request.query
    for name, expectation in endpoint.query.items():
        violations.extend(_check_query_parameter(query, name, expectation, label))

    expected_request = endpoint.request
    has_body = bool(request.body and request.body.strip())
    if expected_request is not None:
        if has_body:
            violations.extend(_check_content_type(
                expected_request.content_type, request.effective_content_type(), label
            ))
        if expected_request.body is not None:
            if has_body:
                validator = SchemaValidator(expected_request.body, settings)
                result = validator.validate(request.body or "", label, expected_request.partial)
                violations.extend(result.violations)
            elif expected_request.required:
                violations.append(Violation(
                    endpoint=label,
                    path="$",
                    message="Request body is required but was not provided",
                    kind="missing_required",
                    expected="request body",
                    actual="missing",
                ))

    return _finish(label, violations, "request")


def verify_response(
    snapshot: ContractSnapshot,
    endpoint: EndpointContract,
    response: RecordedResponse,
    settings: ValidationSettings | None = None,
) -> ValidationResult:
    """Validate a provider response for *endpoint*."""
    label = endpoint.label
    expectation = endpoint.find_response_expectation(response.status_code)

    if expectation is None:
        if not endpoint.responses:
            return _finish(label, [], "response")
        return _finish(label, [Violation(
            endpoint=label,
            path="$",
            message=f"Unexpected status code {response.status_code}",
            kind="unexpected_status_code",
            expected=", ".join(str(r.status_code) for r in endpoint.responses),
            actual=str(response.status_code),
        )], "response")

    violations: list[Violation] = []
    violations.extend(_check_content_type(
        expectation.content_type, response.effective_content_type(), label
    ))

    for name, header in expectation.headers.items():
        violations.extend(_check_header(response.headers, name, header, label))
    if snapshot.defaults is not None:
        for name, header in snapshot.defaults.response_headers.items():
            violations.extend(_check_header(response.headers, name, header, label))

    if expectation.body is not None and response.body and response.body.strip():
        validator = SchemaValidator(expectation.body, settings)
        result = validator.validate(response.body, label, expectation.partial)
        violations.extend(result.violations)

    return _finish(label, violations, "response")


def _finish(label: str, violations: list[Violation], phase: str) -> ValidationResult:
    if violations:
        logger.info(
            "exchange_verification_failed",
            endpoint=label,
            phase=phase,
            violations=len(violations),
        )
    else:
        logger.debug("exchange_verification_passed", endpoint=label, phase=phase)
    return ValidationResult.from_violations(label, violations)


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

def _header_value(headers: dict[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _check_header(
    headers: dict[str, str],
    name: str,
    expectation: HeaderExpectation,
    label: str,
) -> list[Violation]:
    header_name = expectation.name or name
    value = _header_value(headers, header_name)
    path = f"header:{header_name}"
    if value is None:
        if not expectation.required:
            return []
        return [Violation(
            endpoint=label,
            path=path,
            message=f"Missing required header '{header_name}'",
            kind="missing_header",
            expected=expectation.exact_value,
        )]
    if expectation.exact_value is not None and value.lower() != expectation.exact_value.lower():
        return [Violation(
            endpoint=label,
            path=path,
            message=f"Header '{header_name}' has incorrect value",
            kind="invalid_header_value",
            expected=expectation.exact_value,
            actual=value,
        )]
    if expectation.pattern is not None and re.search(expectation.pattern, value) is None:
        return [Violation(
            endpoint=label,
            path=path,
            message=f"Header '{header_name}' does not match pattern '{expectation.pattern}'",
            kind="invalid_header_value",
            expected=expectation.pattern,
            actual=value,
        )]
    return []


def _check_query_parameter(
    query: dict[str, list[str]],
    name: str,
    expectation: QueryParameterExpectation,
    label: str,
) -> list[Violation]:
    param_name = expectation.name or name
    values = [v for v in query.get(param_name, []) if v != ""]
    path = f"query:{param_name}"
    if not values:
        if not expectation.required:
            return []
        return [Violation(
            endpoint=label,
            path=path,
            message=f"Missing required query parameter '{param_name}'",
            kind="missing_query_parameter",
            expected=expectation.type,
        )]

    violations: list[Violation] = []
    for value in values:
        if not _query_value_matches(value, expectation.type):
            violations.append(Violation(
                endpoint=label,
                path=path,
                message=f"Query parameter '{param_name}' has invalid type",
                kind="invalid_query_parameter_value",
                expected=expectation.type,
                actual=value,
            ))
        elif expectation.pattern is not None and re.search(expectation.pattern, value) is None:
            violations.append(Violation(
                endpoint=label,
                path=path,
                message=f"Query parameter '{param_name}' does not match pattern '{expectation.pattern}'",
                kind="invalid_query_parameter_value",
                expected=expectation.pattern,
                actual=value,
            ))
    return violations


def _query_value_matches(value: str, expected_type: str) -> bool:
    if expected_type == "integer":
        return bool(_INTEGER_TEXT.match(value.strip()))
    if expected_type == "number":
        try:
            number = float(value)
        except ValueError:
            return False
        return math.isfinite(number)
    if expected_type == "boolean":
        return value.strip().lower() in ("true", "false")
    return True


def _check_content_type(expected: str | None, actual: str | None, label: str) -> list[Violation]:
    if expected is None or actual is None:
        return []
    expected_media = expected.split(";")[0].strip().lower()
    actual_media = actual.split(";")[0].strip().lower()
    if actual_media.startswith(expected_media):
        return []
    return [Violation(
        endpoint=label,
        path="$",
        message="Content type mismatch",
        kind="invalid_content_type",
        expected=expected,
        actual=actual,
    )]
