"""Declarative contract documents.

Schemas and whole contract snapshots can be described as plain mappings (or
YAML text) instead of being assembled in code:

.. code-block:: yaml

    name: users-api
    version: "1.2.0"
    endpoints:
      - path: /users/{id}
        method: GET
        responses:
          - status: 200
            body:
              type: object
              name: User
              required: [id, email]
              properties:
                id: {type: integer, minimum: 1}
                email: {type: string, format: email}
                nickname: {type: string, nullable: true}

This module only parses text it is given; reading files is left to callers.
Malformed documents raise ``ContractsError`` naming the offending location.
"""

from __future__ import annotations

from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from spec_kitty_contracts import matchers
from spec_kitty_contracts.contracts import (
    ContractDefaults,
    ContractSnapshot,
    EndpointContract,
    ExampleData,
    HeaderExpectation,
    PartialValidationConfig,
    ProviderState,
    QueryParameterExpectation,
    RequestExpectation,
    ResponseExpectation,
)
from spec_kitty_contracts.schema import (
    ArraySchema,
    ContractsError,
    MatcherSchema,
    ObjectSchema,
    PropertySchema,
    ScalarSchema,
    SchemaNode,
    VariantSchema,
)

logger = structlog.get_logger(__name__)

_SCALAR_TYPES = frozenset({"string", "integer", "number", "boolean"})
_NODE_KEYS = frozenset({"type", "name", "nullable", "description"})
_SCALAR_KEYS = _NODE_KEYS | {
    "format", "enum", "pattern", "min_length", "max_length", "minimum", "maximum",
    "exclusive_minimum", "exclusive_maximum", "example",
}
_OBJECT_KEYS = _NODE_KEYS | {"properties", "required", "additional_properties"}
_ARRAY_KEYS = _NODE_KEYS | {"items", "min_items", "max_items"}
_VARIANT_KEYS = _NODE_KEYS | {"one_of", "discriminator", "mapping"}


def _fail(location: str, message: str) -> ContractsError:
    return ContractsError(f"{location}: {message}")


def _require_mapping(value: Any, location: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise _fail(location, f"expected a mapping, got {type(value).__name__}")
    return value


def _check_keys(doc: dict[str, Any], allowed: frozenset[str], location: str) -> None:
    unknown = sorted(set(doc) - allowed)
    if unknown:
        raise _fail(location, f"unknown key(s): {', '.join(unknown)}")


def _common(doc: dict[str, Any]) -> dict[str, Any]:
    common: dict[str, Any] = {}
    for key in ("name", "nullable", "description"):
        if key in doc:
            common[key] = doc[key]
    return common


# ---------------------------------------------------------------------------
# Schema documents
# ---------------------------------------------------------------------------

def schema_from_document(document: Any, location: str = "$schema") -> SchemaNode:
    """Build a schema tree from a mapping such as ``{"type": "string", "format": "email"}``."""
    doc = _require_mapping(document, location)
    try:
        return _build_node(doc, location)
    except ValidationError as exc:
        raise _fail(location, _first_error(exc)) from exc


def _build_node(doc: dict[str, Any], location: str) -> SchemaNode:
    if "matcher" in doc:
        return _build_matcher(doc, location)
    if "one_of" in doc or "discriminator" in doc or doc.get("type") == "variant":
        return _build_variant(doc, location)

    node_type = doc.get("type")
    if node_type is None:
        raise _fail(location, "schema needs a 'type' (or 'matcher' / 'one_of')")
    try:
        if node_type == "object":
            return _build_object(doc, location)
        if node_type == "array":
            _check_keys(doc, _ARRAY_KEYS, location)
            if "items" not in doc:
                raise _fail(location, "array schema needs 'items'")
            items = _build_node(_require_mapping(doc["items"], f"{location}.items"), f"{location}.items")
            return ArraySchema(
                items=items,
                min_items=doc.get("min_items"),
                max_items=doc.get("max_items"),
                **_common(doc),
            )
        if node_type in _SCALAR_TYPES:
            _check_keys(doc, _SCALAR_KEYS, location)
            fields = {k: v for k, v in doc.items() if k in _SCALAR_KEYS}
            return ScalarSchema(**fields)
    except ValidationError as exc:
        raise _fail(location, _first_error(exc)) from exc
    raise _fail(location, f"unknown schema type '{node_type}'")


def _build_object(doc: dict[str, Any], location: str) -> ObjectSchema:
    _check_keys(doc, _OBJECT_KEYS, location)
    raw_properties = _require_mapping(doc.get("properties") or {}, f"{location}.properties")
    required = doc.get("required") or []
    if not isinstance(required, list):
        raise _fail(f"{location}.required", "expected a list of property names")
    missing = [name for name in required if name not in raw_properties]
    if missing:
        raise _fail(f"{location}.required", f"undeclared properties: {', '.join(map(str, missing))}")

    properties: dict[str, PropertySchema] = {}
    for name, prop_doc in raw_properties.items():
        prop_location = f"{location}.properties.{name}"
        node = _build_node(_require_mapping(prop_doc, prop_location), prop_location)
        properties[str(name)] = PropertySchema(node=node, required=name in required)
    return ObjectSchema(
        properties=properties,
        allow_additional_properties=doc.get("additional_properties", True),
        **_common(doc),
    )


def _build_variant(doc: dict[str, Any], location: str) -> VariantSchema:
    _check_keys(doc, _VARIANT_KEYS, location)
    raw_branches = doc.get("one_of") or []
    if not isinstance(raw_branches, list):
        raise _fail(f"{location}.one_of", "expected a list of schemas")
    branches = [
        _build_node(_require_mapping(b, f"{location}.one_of[{i}]"), f"{location}.one_of[{i}]")
        for i, b in enumerate(raw_branches)
    ]

    discriminator = doc.get("discriminator")
    raw_mapping = doc.get("mapping") or {}
    if isinstance(discriminator, dict):
        raw_mapping = discriminator.get("mapping") or raw_mapping
        discriminator = discriminator.get("property")
    mapping = {
        str(key): _build_node(
            _require_mapping(value, f"{location}.mapping.{key}"), f"{location}.mapping.{key}"
        )
        for key, value in _require_mapping(raw_mapping, f"{location}.mapping").items()
    }
    try:
        return VariantSchema(
            branches=branches or list(mapping.values()),
            discriminator=discriminator,
            mapping=mapping,
            **_common(doc),
        )
    except ValidationError as exc:
        raise _fail(location, _first_error(exc)) from exc


def _build_matcher(doc: dict[str, Any], location: str) -> MatcherSchema:
    name = doc["matcher"]
    args = {k: v for k, v in doc.items() if k not in ("matcher", "nullable", "name", "description")}
    builder = _MATCHER_BUILDERS.get(name)
    if builder is None:
        raise _fail(location, f"unknown matcher '{name}'")
    try:
        rule = builder(args, location)
    except (TypeError, ValidationError) as exc:
        raise _fail(location, f"invalid arguments for matcher '{name}': {exc}") from exc
    return MatcherSchema(matcher=rule, **_common(doc))


def _embedded(args: dict[str, Any], key: str, location: str) -> SchemaNode:
    if key not in args:
        raise _fail(location, f"matcher needs '{key}'")
    return _build_node(_require_mapping(args[key], f"{location}.{key}"), f"{location}.{key}")


_MATCHER_BUILDERS: dict[str, Any] = {
    "guid": lambda a, loc: matchers.guid(**a),
    "uuid": lambda a, loc: matchers.guid(**a),
    "string": lambda a, loc: matchers.string(**a),
    "non_empty_string": lambda a, loc: matchers.non_empty_string(**a),
    "email": lambda a, loc: matchers.email(**a),
    "uri": lambda a, loc: matchers.uri(**a),
    "regex": lambda a, loc: matchers.regex(**a),
    "type": lambda a, loc: matchers.type_of(**a),
    "integer": lambda a, loc: matchers.integer(**a),
    "decimal": lambda a, loc: matchers.decimal(**a),
    "boolean": lambda a, loc: matchers.boolean(**a),
    "date_time": lambda a, loc: matchers.date_time(**a),
    "date": lambda a, loc: matchers.date_only(**a),
    "time": lambda a, loc: matchers.time_only(**a),
    "each_like": lambda a, loc: matchers.each_like(
        _embedded(a, "items", loc), min_count=a.get("min_count", 1)
    ),
    "any": lambda a, loc: matchers.any_value(**a),
    "object": lambda a, loc: matchers.object_like(_embedded(a, "schema", loc)),
    "null": lambda a, loc: matchers.null(**a),
    "one_of": lambda a, loc: matchers.one_of(*a.get("values", [])),
}


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    where = ".".join(str(part) for part in first.get("loc", ()))
    return f"{where}: {first.get('msg')}" if where else str(first.get("msg"))


# ---------------------------------------------------------------------------
# Contract documents
# ---------------------------------------------------------------------------

def snapshot_from_yaml(text: str) -> ContractSnapshot:
    """Parse YAML text into a ``ContractSnapshot``."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ContractsError(f"Contract document is not valid YAML: {exc}") from exc
    return snapshot_from_document(document)


def snapshot_from_document(document: Any) -> ContractSnapshot:
    doc = _require_mapping(document, "$")
    if not doc.get("name"):
        raise _fail("$", "contract document needs a 'name'")

    raw_endpoints = doc.get("endpoints") or []
    if not isinstance(raw_endpoints, list):
        raise _fail("$.endpoints", "expected a list of endpoints")
    endpoints = [
        _build_endpoint(_require_mapping(e, f"$.endpoints[{i}]"), f"$.endpoints[{i}]")
        for i, e in enumerate(raw_endpoints)
    ]

    try:
        defaults = None
        if doc.get("defaults") is not None:
            raw_defaults = _require_mapping(doc["defaults"], "$.defaults")
            defaults = ContractDefaults(
                request_headers=_build_headers(raw_defaults.get("request_headers"), "$.defaults.request_headers"),
                response_headers=_build_headers(raw_defaults.get("response_headers"), "$.defaults.response_headers"),
            )
        snapshot = ContractSnapshot(
            name=str(doc["name"]),
            endpoints=endpoints,
            defaults=defaults,
            version=None if doc.get("version") is None else str(doc["version"]),
            description=doc.get("description"),
        )
    except ValidationError as exc:
        raise _fail("$", _first_error(exc)) from exc
    logger.debug(
        "contract_document_loaded",
        contract=snapshot.name,
        version=snapshot.version,
        endpoints=len(snapshot.endpoints),
    )
    return snapshot


def _build_endpoint(doc: dict[str, Any], location: str) -> EndpointContract:
    for key in ("path", "method"):
        if not doc.get(key):
            raise _fail(location, f"endpoint needs a '{key}'")

    request = None
    if doc.get("request") is not None:
        request = _build_request(_require_mapping(doc["request"], f"{location}.request"), f"{location}.request")

    raw_responses = doc.get("responses") or []
    if isinstance(raw_responses, dict):
        raw_responses = [
            {"status": status, **(_require_mapping(body or {}, f"{location}.responses.{status}"))}
            for status, body in raw_responses.items()
        ]
    if not isinstance(raw_responses, list):
        raise _fail(f"{location}.responses", "expected a list or mapping of responses")
    responses = [
        _build_response(_require_mapping(r, f"{location}.responses[{i}]"), f"{location}.responses[{i}]")
        for i, r in enumerate(raw_responses)
    ]

    try:
        return EndpointContract(
            path=str(doc["path"]),
            method=str(doc["method"]),
            request=request,
            responses=responses,
            headers=_build_headers(doc.get("headers"), f"{location}.headers"),
            query=_build_query(doc.get("query"), f"{location}.query"),
            example=ExampleData(**_require_mapping(doc["example"], f"{location}.example"))
            if doc.get("example") is not None else None,
            provider_states=[
                ProviderState(**_require_mapping(s, f"{location}.provider_states[{i}]"))
                for i, s in enumerate(doc.get("provider_states") or [])
            ],
        )
    except ValidationError as exc:
        raise _fail(location, _first_error(exc)) from exc


def _build_request(doc: dict[str, Any], location: str) -> RequestExpectation:
    try:
        return RequestExpectation(
            content_type=doc.get("content_type", "application/json"),
            body=schema_from_document(doc["body"], f"{location}.body") if doc.get("body") else None,
            required=doc.get("required", True),
            headers=_build_headers(doc.get("headers"), f"{location}.headers"),
            partial=_build_partial(doc.get("partial"), f"{location}.partial"),
        )
    except ValidationError as exc:
        raise _fail(location, _first_error(exc)) from exc


def _build_response(doc: dict[str, Any], location: str) -> ResponseExpectation:
    status = doc.get("status", doc.get("status_code"))
    if status is None:
        raise _fail(location, "response needs a 'status'")
    try:
        return ResponseExpectation(
            status_code=int(status),
            content_type=doc.get("content_type", "application/json"),
            body=schema_from_document(doc["body"], f"{location}.body") if doc.get("body") else None,
            headers=_build_headers(doc.get("headers"), f"{location}.headers"),
            partial=_build_partial(doc.get("partial"), f"{location}.partial"),
        )
    except ValueError as exc:
        raise _fail(location, f"invalid response: {exc}") from exc


def _build_partial(doc: Any, location: str) -> PartialValidationConfig | None:
    if doc is None:
        return None
    raw = _require_mapping(doc, location)
    overrides = {
        name: _build_matcher(_require_mapping(spec, f"{location}.overrides.{name}"),
                             f"{location}.overrides.{name}").matcher
        for name, spec in (raw.get("overrides") or {}).items()
    }
    return PartialValidationConfig(
        properties=list(raw.get("properties") or []),
        strict_mode=raw.get("strict_mode", False),
        overrides=overrides,
    )


def _build_headers(doc: Any, location: str) -> dict[str, HeaderExpectation]:
    if doc is None:
        return {}
    headers: dict[str, HeaderExpectation] = {}
    for name, spec in _require_mapping(doc, location).items():
        if spec is None:
            spec = {}
        elif isinstance(spec, str):
            spec = {"value": spec}
        spec = _require_mapping(spec, f"{location}.{name}")
        headers[str(name)] = HeaderExpectation(
            name=str(name),
            required=spec.get("required", True),
            exact_value=spec.get("value"),
            pattern=spec.get("pattern"),
        )
    return headers


def _build_query(doc: Any, location: str) -> dict[str, QueryParameterExpectation]:
    if doc is None:
        return {}
    params: dict[str, QueryParameterExpectation] = {}
    for name, spec in _require_mapping(doc, location).items():
        spec = _require_mapping(spec or {}, f"{location}.{name}")
        params[str(name)] = QueryParameterExpectation(
            name=str(name),
            required=spec.get("required", False),
            type=spec.get("type", "string"),
            pattern=spec.get("pattern"),
        )
    return params
