"""Tests for in-memory exchange verification."""

import pytest
from spec_kitty_contracts.config import ValidationSettings
from spec_kitty_contracts.contracts import (
    ContractDefaults,
    ContractSnapshot,
    EndpointContract,
    HeaderExpectation,
    PartialValidationConfig,
    QueryParameterExpectation,
    RequestExpectation,
    ResponseExpectation,
)
from spec_kitty_contracts.schema import ContractsError, integer, obj, string
from spec_kitty_contracts.verification import (
    RecordedRequest,
    RecordedResponse,
    verify_request,
    verify_response,
)

USER = obj(required={"id": integer(), "email": string(format="email")}, name="User")
NEW_USER = obj(required={"email": string(format="email")}, allow_additional_properties=False)


@pytest.fixture
def snapshot() -> ContractSnapshot:
    get_user = EndpointContract(
        path="/users/{id}",
        method="GET",
        responses=[
            ResponseExpectation(
                status_code=200,
                body=USER,
                headers={"ETag": HeaderExpectation(name="ETag", pattern=r'^"\w+"$')},
            ),
            ResponseExpectation(status_code=404, body=None),
        ],
    )
    create_user = EndpointContract(
        path="/users",
        method="POST",
        headers={"Authorization": HeaderExpectation(name="Authorization", pattern=r"^Bearer ")},
        query={
            "dryRun": QueryParameterExpectation(name="dryRun", type="boolean"),
            "limit": QueryParameterExpectation(name="limit", type="integer", required=True),
        },
        request=RequestExpectation(body=NEW_USER),
        responses=[ResponseExpectation(status_code=201, body=USER)],
    )
    return ContractSnapshot(
        name="users-api",
        endpoints=[get_user, create_user],
        defaults=ContractDefaults(
            request_headers={"Accept": HeaderExpectation(name="Accept", exact_value="application/json")},
            response_headers={"X-Request-Id": HeaderExpectation(name="X-Request-Id")},
        ),
    )


def _request(**kwargs) -> RecordedRequest:
    values = {
        "method": "POST",
        "path": "/users?limit=10",
        "headers": {
            "accept": "application/json",
            "Authorization": "Bearer abc",
            "Content-Type": "application/json; charset=utf-8",
        },
        "body": '{"email": "ann@example.com"}',
    }
    values.update(kwargs)
    return RecordedRequest(**values)


class TestVerifyRequest:
    """Tests for verify_request."""

    def test_valid_request(self, snapshot) -> None:
        """A conforming request has no violations."""
        result = verify_request(snapshot, _request())
        assert result.is_valid
        assert result.endpoint == "POST /users"

    def test_unknown_endpoint_raises(self, snapshot) -> None:
        """Requests with no matching endpoint are misuse."""
        with pytest.raises(ContractsError, match="No endpoint in contract 'users-api'"):
            verify_request(snapshot, _request(method="DELETE"))

    def test_missing_default_header(self, snapshot) -> None:
        """Contract-wide request headers are enforced."""
        request = _request(headers={"Authorization": "Bearer x"})
        [violation] = verify_request(snapshot, request).violations
        assert violation.kind == "missing_header"
        assert violation.path == "header:Accept"

    def test_header_pattern_and_exact_value(self, snapshot) -> None:
        """Header values are checked case-insensitively by name."""
        request = _request(headers={"ACCEPT": "text/plain", "authorization": "Basic x"})
        violations = verify_request(snapshot, request).violations
        assert [(v.kind, v.path) for v in violations] == [
            ("invalid_header_value", "header:Accept"),
            ("invalid_header_value", "header:Authorization"),
        ]

    def test_query_parameters(self, snapshot) -> None:
        """Required and typed query parameters."""
        violations = verify_request(snapshot, _request(path="/users?dryRun=maybe")).violations
        assert [(v.kind, v.path) for v in violations] == [
            ("invalid_query_parameter_value", "query:dryRun"),
            ("missing_query_parameter", "query:limit"),
        ]

    def test_query_integer(self, snapshot) -> None:
        """Integer query parameters reject decimals."""
        [violation] = verify_request(snapshot, _request(path="/users?limit=1.5")).violations
        assert violation.kind == "invalid_query_parameter_value"
        assert violation.expected == "integer"
        assert violation.actual == "1.5"

    def test_content_type_mismatch(self, snapshot) -> None:
        """A body with the wrong media type."""
        headers = {"Accept": "application/json", "Authorization": "Bearer x", "Content-Type": "text/xml"}
        [violation] = verify_request(snapshot, _request(headers=headers)).violations
        assert violation.kind == "invalid_content_type"
        assert violation.expected == "application/json"

    def test_missing_required_body(self, snapshot) -> None:
        """A required body must be sent."""
        [violation] = verify_request(snapshot, _request(body=None)).violations
        assert violation.kind == "missing_required"
        assert violation.expected == "request body"

    def test_body_schema_violations(self, snapshot) -> None:
        """Body violations come from the schema engine."""
        violations = verify_request(snapshot, _request(body='{"email": "nope", "x": 1}')).violations
        assert [(v.kind, v.path) for v in violations] == [
            ("invalid_format", "$.email"),
            ("unexpected_field", "$.x"),
        ]

    def test_settings_are_threaded_through(self, snapshot) -> None:
        """Lenient settings suppress unexpected_field in bodies."""
        lenient = ValidationSettings(strict_mode=False)
        result = verify_request(snapshot, _request(body='{"email": "a@b.co", "x": 1}'), lenient)
        assert result.is_valid

    def test_malformed_body(self, snapshot) -> None:
        """Malformed JSON is one invalid_format violation."""
        [violation] = verify_request(snapshot, _request(body="{oops")).violations
        assert violation.kind == "invalid_format"
        assert violation.path == "$"


class TestVerifyResponse:
    """Tests for verify_response."""

    def _get(self, snapshot) -> EndpointContract:
        return snapshot.find_endpoint("/users/1", "GET")

    def test_valid_response(self, snapshot) -> None:
        """A conforming response has no violations."""
        response = RecordedResponse(
            status_code=200,
            headers={"Content-Type": "application/json", "ETag": '"v1"', "X-Request-Id": "r1"},
            body='{"id": 1, "email": "ann@example.com"}',
        )
        assert verify_response(snapshot, self._get(snapshot), response).is_valid

    def test_unexpected_status(self, snapshot) -> None:
        """Undeclared status codes list the declared ones."""
        [violation] = verify_response(snapshot, self._get(snapshot), RecordedResponse(status_code=500)).violations
        assert violation.kind == "unexpected_status_code"
        assert violation.expected == "200, 404"
        assert violation.actual == "500"

    def test_headers_and_body(self, snapshot) -> None:
        """Missing headers and body problems are reported together."""
        response = RecordedResponse(
            status_code=200,
            content_type="application/json",
            headers={"ETag": "weak"},
            body='{"id": "1"}',
        )
        violations = verify_response(snapshot, self._get(snapshot), response).violations
        assert [(v.kind, v.path) for v in violations] == [
            ("invalid_header_value", "header:ETag"),
            ("missing_header", "header:X-Request-Id"),
            ("missing_required", "$.email"),
            ("invalid_type", "$.id"),
        ]

    def test_partial_config_on_expectation(self) -> None:
        """Response expectations carry their own partial config."""
        endpoint = EndpointContract(
            path="/users/{id}",
            method="GET",
            responses=[ResponseExpectation(
                status_code=200,
                body=USER,
                partial=PartialValidationConfig(properties=["id"]),
            )],
        )
        snapshot = ContractSnapshot(name="users", endpoints=[endpoint])
        response = RecordedResponse(status_code=200, body='{"id": 1}')
        assert verify_response(snapshot, endpoint, response).is_valid

    def test_endpoint_without_responses_accepts_anything(self) -> None:
        """No declared responses means nothing to check."""
        endpoint = EndpointContract(path="/ping", method="GET")
        snapshot = ContractSnapshot(name="ping", endpoints=[endpoint])
        assert verify_response(snapshot, endpoint, RecordedResponse(status_code=418)).is_valid
