"""Tests for declarative schema and contract documents."""

import json
from pathlib import Path

import pytest
from spec_kitty_contracts.documents import schema_from_document, snapshot_from_document, snapshot_from_yaml
from spec_kitty_contracts.schema import (
    ArraySchema,
    ContractsError,
    MatcherSchema,
    ObjectSchema,
    ScalarSchema,
    VariantSchema,
)
from spec_kitty_contracts.validator import generate_sample, validate

FIXTURES = Path(__file__).parent / "fixtures"


def _load(name: str):
    return snapshot_from_yaml((FIXTURES / name).read_text(encoding="utf-8"))


class TestSchemaDocuments:
    """Tests for schema_from_document."""

    def test_scalar(self) -> None:
        """Scalar keys map onto ScalarSchema fields."""
        node = schema_from_document({"type": "string", "format": "email", "nullable": True})
        assert isinstance(node, ScalarSchema)
        assert node.format == "email"
        assert node.nullable is True

    def test_object_with_required(self) -> None:
        """``required`` lists property names."""
        node = schema_from_document({
            "type": "object",
            "name": "User",
            "required": ["id"],
            "additional_properties": False,
            "properties": {"id": {"type": "integer"}, "tags": {"type": "array", "items": {"type": "string"}}},
        })
        assert isinstance(node, ObjectSchema)
        assert node.name == "User"
        assert node.required_names == ["id"]
        assert node.allow_additional_properties is False
        assert isinstance(node.properties["tags"].node, ArraySchema)

    def test_variant_with_branches(self) -> None:
        """``one_of`` lists branches."""
        node = schema_from_document({"one_of": [{"type": "string"}, {"type": "integer"}]})
        assert isinstance(node, VariantSchema)
        assert len(node.branches) == 2
        assert node.discriminator is None

    def test_matcher(self) -> None:
        """``matcher`` selects a built-in matcher with its arguments."""
        node = schema_from_document({"matcher": "integer", "min": 1, "max": 5})
        assert isinstance(node, MatcherSchema)
        assert node.matcher.matcher_type == "integer"
        assert node.matcher.max == 5

    def test_embedded_matcher_schema(self) -> None:
        """each_like embeds a schema document."""
        node = schema_from_document({"matcher": "each_like", "items": {"type": "integer"}, "min_count": 2})
        assert node.matcher.min_count == 2
        assert generate_sample(node) == [1, 1]

    @pytest.mark.parametrize(
        ("document", "message"),
        [
            ({}, "needs a 'type'"),
            ({"type": "date"}, "unknown schema type 'date'"),
            ({"type": "string", "fromat": "email"}, "unknown key\\(s\\): fromat"),
            ({"type": "array"}, "needs 'items'"),
            ({"type": "object", "required": ["id"]}, "undeclared properties: id"),
            ({"type": "object", "properties": {"id": {"type": "bogus"}}}, r"\$schema.properties.id"),
            ({"matcher": "credit_card"}, "unknown matcher 'credit_card'"),
            ({"matcher": "integer", "minimum": 1}, "invalid arguments for matcher 'integer'"),
            ({"type": "integer", "format": "email"}, "only apply to strings"),
            ({"one_of": [], "mapping": {}}, "at least one branch"),
            ("string", "expected a mapping"),
        ],
    )
    def test_malformed_documents(self, document, message) -> None:
        """Errors name the offending location."""
        with pytest.raises(ContractsError, match=message):
            schema_from_document(document)


class TestSnapshotDocuments:
    """Tests for snapshot documents."""

    def test_users_fixture(self) -> None:
        """The users fixture loads every section."""
        snapshot = _load("users_v1.yaml")
        assert snapshot.name == "users-api"
        assert snapshot.version == "1.0.0"
        assert [e.label for e in snapshot.endpoints] == ["GET /users/{id}", "POST /users"]
        assert snapshot.defaults is not None
        assert snapshot.defaults.response_headers["X-Request-Id"].required is False

        get_user, create_user = snapshot.endpoints
        assert get_user.example_path() == "/users/42"
        assert get_user.provider_states[0].name == "a user exists"
        assert [r.status_code for r in get_user.responses] == [200, 404]
        assert create_user.headers["Authorization"].pattern == "^Bearer "
        assert create_user.query["dryRun"].type == "boolean"
        assert create_user.request is not None
        assert create_user.request.required is True
        assert create_user.find_response_expectation(201).headers["Location"].required is True

    def test_loaded_schema_validates(self) -> None:
        """Loaded schemas drive the validator."""
        snapshot = _load("users_v1.yaml")
        body = snapshot.find_endpoint("/users/7", "GET").find_response_expectation(200).body
        assert validate('{"id": 7, "email": "a@b.co", "nickname": null}', body, "GET /users/{id}").is_valid
        [violation] = validate('{"id": 0, "email": "a@b.co"}', body, "GET /users/{id}").violations
        assert violation.kind == "out_of_range"

    def test_discriminated_fixture(self) -> None:
        """Responses given as a mapping and discriminator blocks."""
        snapshot = _load("pets.yaml")
        [endpoint] = snapshot.endpoints
        body = endpoint.find_response_expectation(200).body
        assert isinstance(body, VariantSchema)
        assert body.discriminator == "petType"
        assert list(body.mapping) == ["cat", "dog"]
        assert validate('{"petType": "Dog", "goodBoy": true, "tags": []}', body, endpoint.label).is_valid
        [violation] = validate('{"petType": "cat", "lives": 10}', body, endpoint.label).violations
        assert violation.path == "$.lives"
        sample = generate_sample(body)
        assert validate(json.dumps(sample), body, endpoint.label).is_valid

    def test_partial_config(self) -> None:
        """Partial validation blocks with matcher overrides."""
        snapshot = snapshot_from_document({
            "name": "orders",
            "endpoints": [{
                "path": "/orders/{id}",
                "method": "get",
                "responses": [{
                    "status": 200,
                    "body": {"type": "object", "properties": {"sku": {"type": "string"}}},
                    "partial": {
                        "properties": ["sku"],
                        "strict_mode": True,
                        "overrides": {"sku": {"matcher": "regex", "pattern": "^[A-Z]{3}$", "example": "ABC"}},
                    },
                }],
            }],
        })
        partial = snapshot.endpoints[0].responses[0].partial
        assert partial is not None
        assert partial.strict_mode is True
        assert partial.override_for("sku").matcher_type == "regex"
        assert snapshot.endpoints[0].method == "GET"

    def test_header_shorthand(self) -> None:
        """A string header value is an exact-value expectation."""
        snapshot = snapshot_from_document({
            "name": "api",
            "endpoints": [{"path": "/x", "method": "GET", "headers": {"Accept": "application/json"}}],
        })
        header = snapshot.endpoints[0].headers["Accept"]
        assert header.exact_value == "application/json"
        assert header.required is True

    @pytest.mark.parametrize(
        ("document", "message"),
        [
            ({}, "needs a 'name'"),
            ({"name": "x", "endpoints": "abc"}, "expected a list of endpoints"),
            ({"name": "x", "endpoints": [{"method": "GET"}]}, r"\$.endpoints\[0\]: endpoint needs a 'path'"),
            ({"name": "x", "endpoints": [{"path": "/x", "method": "GET", "responses": [{}]}]},
             "response needs a 'status'"),
            ({"name": "x", "endpoints": [{"path": "/x", "method": "GET", "responses": [{"status": "abc"}]}]},
             "invalid response"),
            ({"name": "x", "endpoints": [{"path": "/x", "method": "GET", "query": {"q": {"type": "date"}}}]},
             r"\$.endpoints\[0\]"),
        ],
    )
    def test_malformed_snapshots(self, document, message) -> None:
        """Errors name the offending location."""
        with pytest.raises(ContractsError, match=message):
            snapshot_from_document(document)

    def test_invalid_yaml(self) -> None:
        """YAML syntax errors are wrapped."""
        with pytest.raises(ContractsError, match="not valid YAML"):
            snapshot_from_yaml("name: [unclosed")
