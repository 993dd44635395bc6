"""Schema validation engine and sample generation.

A single recursive walk over (value, schema node) produces the violation list.
Dispatch is on the node's ``kind``; a kind mismatch is terminal for that
subtree. The walk is pure: every call allocates its own result list, so a
``SchemaValidator`` can be shared freely between threads.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from spec_kitty_contracts.config import DEFAULT_SETTINGS, ValidationSettings
from spec_kitty_contracts.contracts import PartialValidationConfig
from spec_kitty_contracts.matchers import FORMAT_SAMPLES, check_format
from spec_kitty_contracts.schema import (
    ArraySchema,
    MatcherSchema,
    ObjectSchema,
    ScalarSchema,
    SchemaNode,
    VariantSchema,
    ensure_schema,
    json_kind,
    schema_type_name,
)
from spec_kitty_contracts.violations import ValidationResult, Violation

ROOT_PATH = "$"


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-standard JSON constant {token}")


def parse_json(json_text: str) -> Any:
    """Parse strict JSON (``NaN``/``Infinity`` are rejected)."""
    return json.loads(json_text, parse_constant=_reject_constant)


class SchemaValidator:
    """Validates JSON payloads against one schema tree."""

    def __init__(self, schema: SchemaNode, settings: ValidationSettings | None = None) -> None:
        ensure_schema(schema)
        self.schema = schema
        self.settings = settings or DEFAULT_SETTINGS

    def validate(
        self,
        json_text: str,
        endpoint: str,
        partial: PartialValidationConfig | None = None,
    ) -> ValidationResult:
        """Validate JSON text. Malformed JSON becomes a single ``invalid_format`` violation."""
        try:
            value = parse_json(json_text)
        except (TypeError, ValueError, RecursionError) as exc:
            return ValidationResult.failure(endpoint, [Violation(
                endpoint=endpoint,
                path=ROOT_PATH,
                message=f"Invalid JSON: {exc}",
                kind="invalid_format",
                expected="valid JSON",
                actual=_preview(json_text),
            )])
        return self.validate_value(value, endpoint, partial)

    def validate_value(
        self,
        value: Any,
        endpoint: str,
        partial: PartialValidationConfig | None = None,
    ) -> ValidationResult:
        strict = partial.strict_mode if partial is not None else self.settings.strict_mode
        violations = _walk(value, self.schema, endpoint, ROOT_PATH, strict, partial)
        return ValidationResult.from_violations(endpoint, violations)

    def generate_sample(self) -> Any:
        return generate_sample(self.schema)

    def generate_sample_json(self, indent: int | None = None) -> str:
        return json.dumps(self.generate_sample(), indent=indent)


def validate(
    json_text: str,
    schema: SchemaNode,
    endpoint: str,
    partial: PartialValidationConfig | None = None,
    settings: ValidationSettings | None = None,
) -> ValidationResult:
    return SchemaValidator(schema, settings).validate(json_text, endpoint, partial)


def validate_node(
    value: Any,
    node: SchemaNode,
    endpoint: str,
    path: str = ROOT_PATH,
    strict: bool = True,
) -> list[Violation]:
    """Validate an already-parsed value at *path* without partial rules.

    Used by matchers that embed a schema of their own.
    """
    return _walk(value, node, endpoint, path, strict, None)


def _preview(text: Any, limit: int = 80) -> str:
    text = str(text)
    return text if len(text) <= limit else text[:limit] + "..."


# ---------------------------------------------------------------------------
# Walk
# ---------------------------------------------------------------------------

def _walk(
    value: Any,
    node: SchemaNode,
    endpoint: str,
    path: str,
    strict: bool,
    partial: PartialValidationConfig | None,
) -> list[Violation]:
    # partial is only non-None until the outermost object consumes it.
    if value is None:
        if node.nullable:
            return []
        if not isinstance(node, MatcherSchema):
            return [Violation(
                endpoint=endpoint,
                path=path,
                message="Value is null but the field is not nullable",
                kind="unexpected_null",
                expected=schema_type_name(node),
                actual="null",
            )]

    if isinstance(node, MatcherSchema):
        return list(node.matcher.check(value, endpoint, path, strict))
    if isinstance(node, ObjectSchema):
        return _walk_object(value, node, endpoint, path, strict, partial)
    if isinstance(node, ArraySchema):
        return _walk_array(value, node, endpoint, path, strict, partial)
    if isinstance(node, ScalarSchema):
        return _walk_scalar(value, node, endpoint, path)
    if isinstance(node, VariantSchema):
        return _walk_variant(value, node, endpoint, path, strict, partial)
    ensure_schema(node)
    return []


def _type_violation(endpoint: str, path: str, expected: str, value: Any) -> Violation:
    actual = json_kind(value)
    return Violation(
        endpoint=endpoint,
        path=path,
        message=f"Expected {expected} but got {actual}",
        kind="invalid_type",
        expected=expected,
        actual=actual,
    )


def _walk_object(
    value: Any,
    node: ObjectSchema,
    endpoint: str,
    path: str,
    strict: bool,
    partial: PartialValidationConfig | None,
    discriminator: str | None = None,
) -> list[Violation]:
    if not isinstance(value, dict):
        return [_type_violation(endpoint, path, "object", value)]

    violations: list[Violation] = []
    included = [
        (name, prop) for name, prop in node.properties.items()
        if partial is None or partial.includes(name)
    ]

    for name, prop in included:
        if prop.required and name not in value:
            violations.append(Violation(
                endpoint=endpoint,
                path=f"{path}.{name}",
                message=f"Required property '{name}' is missing",
                kind="missing_required",
                expected=name,
                actual="missing",
            ))

    for name, prop in included:
        if name not in value:
            continue
        child_path = f"{path}.{name}"
        override = partial.override_for(name) if partial is not None else None
        if override is not None:
            violations.extend(override.check(value[name], endpoint, child_path, strict))
        else:
            violations.extend(_walk(value[name], prop.node, endpoint, child_path, strict, None))

    if strict and not node.allow_additional_properties:
        for key in value:
            if key not in node.properties and key != discriminator:
                violations.append(Violation(
                    endpoint=endpoint,
                    path=f"{path}.{key}",
                    message=f"Unexpected property '{key}'",
                    kind="unexpected_field",
                    expected="no additional properties",
                    actual=key,
                ))

    return violations


def _walk_array(
    value: Any,
    node: ArraySchema,
    endpoint: str,
    path: str,
    strict: bool,
    partial: PartialValidationConfig | None,
) -> list[Violation]:
    if not isinstance(value, list):
        return [_type_violation(endpoint, path, "array", value)]

    violations: list[Violation] = []
    count = len(value)
    if node.min_items is not None and count < node.min_items:
        violations.append(Violation(
            endpoint=endpoint,
            path=path,
            message=f"Array has {count} items but requires at least {node.min_items}",
            kind="out_of_range",
            expected=f">= {node.min_items} items",
            actual=str(count),
        ))
    if node.max_items is not None and count > node.max_items:
        violations.append(Violation(
            endpoint=endpoint,
            path=path,
            message=f"Array has {count} items but allows at most {node.max_items}",
            kind="out_of_range",
            expected=f"<= {node.max_items} items",
            actual=str(count),
        ))
    for index, item in enumerate(value):
        violations.extend(_walk(item, node.items, endpoint, f"{path}[{index}]", strict, partial))
    return violations


def _walk_scalar(value: Any, node: ScalarSchema, endpoint: str, path: str) -> list[Violation]:
    kind = json_kind(value)

    if node.type == "string":
        if kind != "string":
            return [_type_violation(endpoint, path, "string", value)]
        violations = _check_enum(value, node, endpoint, path)
        violations.extend(_check_string(value, node, endpoint, path))
        return violations

    if node.type == "boolean":
        if kind != "boolean":
            return [_type_violation(endpoint, path, "boolean", value)]
        return _check_enum(value, node, endpoint, path)

    if kind != "number":
        return [_type_violation(endpoint, path, node.type, value)]
    if node.type == "integer" and isinstance(value, float) and not value.is_integer():
        return [Violation(
            endpoint=endpoint,
            path=path,
            message="Expected integer but got decimal",
            kind="invalid_type",
            expected="integer",
            actual=json.dumps(value),
        )]
    violations = _check_enum(value, node, endpoint, path)
    violations.extend(_check_bounds(value, node, endpoint, path))
    return violations


def _check_enum(value: Any, node: ScalarSchema, endpoint: str, path: str) -> list[Violation]:
    if not node.enum:
        return []
    # Compare canonical JSON so that true never equals 1.
    allowed = {_enum_key(v) for v in node.enum}
    if _enum_key(value) in allowed:
        return []
    return [Violation(
        endpoint=endpoint,
        path=path,
        message="Value is not one of the allowed values",
        kind="invalid_enum_value",
        expected=", ".join(str(v) for v in node.enum),
        actual=str(value),
    )]


def _enum_key(value: Any) -> str:
    # 1.0 and 1 are the same JSON number.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return json.dumps(value, sort_keys=True)


def _check_string(value: str, node: ScalarSchema, endpoint: str, path: str) -> list[Violation]:
    violations: list[Violation] = []
    length = len(value)
    if node.min_length is not None and length < node.min_length:
        violations.append(Violation(
            endpoint=endpoint,
            path=path,
            message=f"String length {length} is less than minimum length {node.min_length}",
            kind="out_of_range",
            expected=f">= {node.min_length} characters",
            actual=str(length),
        ))
    if node.max_length is not None and length > node.max_length:
        violations.append(Violation(
            endpoint=endpoint,
            path=path,
            message=f"String length {length} is greater than maximum length {node.max_length}",
            kind="out_of_range",
            expected=f"<= {node.max_length} characters",
            actual=str(length),
        ))
    if node.pattern is not None and re.search(node.pattern, value) is None:
        violations.append(Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value does not match pattern '{node.pattern}'",
            kind="pattern_mismatch",
            expected=node.pattern,
            actual=value,
        ))
    if node.format is not None and not check_format(node.format, value):
        violations.append(Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value is not a valid {node.format}",
            kind="invalid_format",
            expected=node.format,
            actual=value,
        ))
    return violations


def _check_bounds(value: int | float, node: ScalarSchema, endpoint: str, path: str) -> list[Violation]:
    violations: list[Violation] = []
    if node.minimum is not None:
        too_low = value <= node.minimum if node.exclusive_minimum else value < node.minimum
        if too_low:
            op = ">" if node.exclusive_minimum else ">="
            violations.append(Violation(
                endpoint=endpoint,
                path=path,
                message=f"Value {value} is less than minimum {node.minimum}",
                kind="out_of_range",
                expected=f"{op} {node.minimum}",
                actual=str(value),
            ))
    if node.maximum is not None:
        too_high = value >= node.maximum if node.exclusive_maximum else value > node.maximum
        if too_high:
            op = "<" if node.exclusive_maximum else "<="
            violations.append(Violation(
                endpoint=endpoint,
                path=path,
                message=f"Value {value} is greater than maximum {node.maximum}",
                kind="out_of_range",
                expected=f"{op} {node.maximum}",
                actual=str(value),
            ))
    return violations


def _walk_variant(
    value: Any,
    node: VariantSchema,
    endpoint: str,
    path: str,
    strict: bool,
    partial: PartialValidationConfig | None,
) -> list[Violation]:
    if node.discriminator is None:
        first: list[Violation] | None = None
        for branch in node.branches:
            branch_violations = _walk(value, branch, endpoint, path, strict, partial)
            if not branch_violations:
                return []
            if first is None:
                first = branch_violations
        return first or []

    if not isinstance(value, dict):
        return [_type_violation(endpoint, path, "object", value)]

    prop = node.discriminator
    prop_path = f"{path}.{prop}"
    if prop not in value:
        return [Violation(
            endpoint=endpoint,
            path=prop_path,
            message=f"Discriminator property '{prop}' is missing",
            kind="missing_required",
            expected=prop,
            actual="missing",
        )]

    mapping = node.resolved_mapping()
    raw = value[prop]
    if isinstance(raw, str):
        lookup: dict[str, SchemaNode] = {}
        for key, branch in mapping.items():
            lookup.setdefault(key.lower(), branch)
        branch = lookup.get(raw.lower())
        # The discriminator key belongs to the variant, not the branch.
        if isinstance(branch, ObjectSchema):
            return _walk_object(value, branch, endpoint, path, strict, partial, discriminator=prop)
        if branch is not None:
            return _walk(value, branch, endpoint, path, strict, partial)

    return [Violation(
        endpoint=endpoint,
        path=prop_path,
        message=f"Discriminator value {json.dumps(raw)} does not match any mapped schema",
        kind="discriminator_mismatch",
        expected=", ".join(mapping),
        actual=raw if isinstance(raw, str) else json.dumps(raw),
    )]


# ---------------------------------------------------------------------------
# Sample generation
# ---------------------------------------------------------------------------

def generate_sample(node: SchemaNode) -> Any:
    """Deterministic representative value that validates against *node*."""
    ensure_schema(node)
    return _sample(node)


def _sample(node: SchemaNode) -> Any:
    if isinstance(node, MatcherSchema):
        return node.matcher.sample()
    if isinstance(node, ObjectSchema):
        return {name: _sample(prop.node) for name, prop in node.properties.items()}
    if isinstance(node, ArraySchema):
        count = max(1, node.min_items or 0)
        if node.max_items is not None:
            count = min(count, node.max_items)
        return [_sample(node.items) for _ in range(count)]
    if isinstance(node, ScalarSchema):
        return _sample_scalar(node)
    if isinstance(node, VariantSchema):
        mapping = node.resolved_mapping()
        if node.discriminator is not None and mapping:
            key, branch = next(iter(mapping.items()))
            sample = _sample(branch)
            if isinstance(sample, dict):
                sample[node.discriminator] = key
            return sample
        return _sample(node.branches[0])
    raise AssertionError(f"unhandled schema node {type(node).__name__}")


def _sample_scalar(node: ScalarSchema) -> Any:
    if node.example is not None:
        return node.example
    if node.enum:
        return node.enum[0]
    if node.type == "boolean":
        return True
    if node.type == "integer":
        return _sample_integer(node)
    if node.type == "number":
        return _sample_number(node)

    text = FORMAT_SAMPLES.get((node.format or "").lower(), "string")
    if node.min_length is not None and len(text) < node.min_length:
        text += "x" * (node.min_length - len(text))
    if node.max_length is not None and len(text) > node.max_length:
        text = text[:node.max_length]
    return text


def _sample_integer(node: ScalarSchema) -> int:
    if node.minimum is not None:
        low = math.ceil(node.minimum)
        if node.exclusive_minimum and low == node.minimum:
            low += 1
        return low
    if node.maximum is not None:
        high = math.floor(node.maximum)
        if node.exclusive_maximum and high == node.maximum:
            high -= 1
        return high
    return 1


def _sample_number(node: ScalarSchema) -> float:
    if node.minimum is not None and node.maximum is not None:
        return (node.minimum + node.maximum) / 2
    if node.minimum is not None:
        return float(node.minimum + 1 if node.exclusive_minimum else node.minimum)
    if node.maximum is not None:
        return float(node.maximum - 1 if node.exclusive_maximum else node.maximum)
    return 1.0
