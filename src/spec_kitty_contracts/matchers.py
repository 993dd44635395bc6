"""Matcher leaves: flexible terminal rules embedded in a schema tree.

A matcher validates a value by rule instead of by structural recursion. The
engine hands every value at a matcher node to ``check()``, including ``None``,
so matchers such as ``null()``, ``any_value()`` or ``one_of(None, ...)`` can
accept it. ``each_like`` and ``object_like`` carry an embedded schema and run
the engine on it themselves; from the engine's point of view they are still
terminal.

Matchers are frozen pydantic models, so a schema tree holding them stays
immutable and shareable between threads.
"""

from __future__ import annotations

import ipaddress
import json
import re
import uuid
from datetime import date, datetime, time
from typing import Any, Callable, ClassVar, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from spec_kitty_contracts.schema import ContractsError, SchemaNode, json_kind, matcher as _as_node
from spec_kitty_contracts.violations import Violation

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ---------------------------------------------------------------------------
# Format checks (shared with the schema engine)
# ---------------------------------------------------------------------------

def _is_email(value: str) -> bool:
    return bool(_EMAIL_PATTERN.match(value))


def _is_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _parses(parser: Callable[[str], Any]) -> Callable[[str], bool]:
    def check(value: str) -> bool:
        try:
            parser(value)
        except ValueError:
            return False
        return True
    return check


FORMAT_CHECKS: dict[str, Callable[[str], bool]] = {
    "email": _is_email,
    "uri": _is_uri,
    "url": _is_uri,
    "uuid": _is_uuid,
    "date-time": _parses(datetime.fromisoformat),
    "date": _parses(date.fromisoformat),
    "time": _parses(time.fromisoformat),
    "ipv4": _parses(ipaddress.IPv4Address),
    "ipv6": _parses(ipaddress.IPv6Address),
}

FORMAT_SAMPLES: dict[str, str] = {
    "email": "user@example.com",
    "uri": "https://example.com",
    "url": "https://example.com",
    "uuid": "3fa85f64-5717-4562-b3fc-2c963f66afa6",
    "date-time": "2024-01-01T00:00:00Z",
    "date": "2024-01-01",
    "time": "12:00:00",
    "ipv4": "192.168.1.1",
    "ipv6": "::1",
}


def check_format(fmt: str, value: str) -> bool:
    """Return True when *value* satisfies *fmt*; unknown formats always pass."""
    checker = FORMAT_CHECKS.get(fmt.lower())
    return checker is None or checker(value)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


# ---------------------------------------------------------------------------
# Matcher base
# ---------------------------------------------------------------------------

class Matcher(BaseModel):
    """Base for the built-in matchers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    matcher_type: ClassVar[str] = "matcher"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        raise NotImplementedError

    def sample(self) -> Any:
        raise NotImplementedError

    def node(self, **kwargs: Any):
        """Wrap this matcher as a schema node."""
        return _as_node(self, **kwargs)

    def _null(self, endpoint: str, path: str, noun: str) -> list[Violation]:
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value is null but expected {noun}",
            kind="unexpected_null",
            expected=self.description,  # type: ignore[attr-defined]
            actual="null",
        )]

    @staticmethod
    def _wrong_kind(endpoint: str, path: str, expected: str, value: Any) -> list[Violation]:
        kind = json_kind(value)
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value is not {'an' if expected[0] in 'aeiou' else 'a'} {expected}",
            kind="invalid_type",
            expected=expected,
            actual=kind,
        )]


class _StringMatcher(Matcher):
    """Shared null/kind handling for matchers over JSON strings."""

    _noun: ClassVar[str] = "a string"
    _expected_kind: ClassVar[str] = "string"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if value is None:
            return self._null(endpoint, path, self._noun)
        if not isinstance(value, str):
            return self._wrong_kind(endpoint, path, self._expected_kind, value)
        return self._check_text(value, endpoint, path)

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        return []

    def _bad_format(self, value: str, endpoint: str, path: str, message: str) -> list[Violation]:
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=message,
            kind="invalid_format",
            expected=self.description,  # type: ignore[attr-defined]
            actual=value,
        )]


# ---------------------------------------------------------------------------
# String-shaped matchers
# ---------------------------------------------------------------------------

class GuidMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "guid"
    _noun: ClassVar[str] = "a GUID string"
    _expected_kind: ClassVar[str] = "string (GUID)"

    @property
    def description(self) -> str:
        return "a valid GUID/UUID"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if _is_uuid(value):
            return []
        return self._bad_format(value, endpoint, path, "Value is not a valid GUID")

    def sample(self) -> str:
        return FORMAT_SAMPLES["uuid"]


class StringMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "string"

    @property
    def description(self) -> str:
        return "any string"

    def sample(self) -> str:
        return "string"


class NonEmptyStringMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "non_empty_string"
    _noun: ClassVar[str] = "a non-empty string"

    @property
    def description(self) -> str:
        return "a non-empty string"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if value:
            return []
        return [Violation(
            endpoint=endpoint,
            path=path,
            message="Value is an empty string",
            kind="invalid_format",
            expected=self.description,
            actual='""',
        )]

    def sample(self) -> str:
        return "string"


class EmailMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "email"
    _noun: ClassVar[str] = "an email address"
    _expected_kind: ClassVar[str] = "string (email)"

    @property
    def description(self) -> str:
        return "a valid email address"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if _is_email(value):
            return []
        return self._bad_format(value, endpoint, path, "Value is not a valid email address")

    def sample(self) -> str:
        return FORMAT_SAMPLES["email"]


class UriMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "uri"
    _noun: ClassVar[str] = "a URI"
    _expected_kind: ClassVar[str] = "string (URI)"

    @property
    def description(self) -> str:
        return "a valid URI"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if _is_uri(value):
            return []
        return self._bad_format(value, endpoint, path, "Value is not a valid absolute URI")

    def sample(self) -> str:
        return FORMAT_SAMPLES["uri"]


class RegexMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "regex"
    _noun: ClassVar[str] = "a string matching pattern"

    pattern: str
    example: str | None = None

    _compiled: re.Pattern[str] = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        try:
            self._compiled = re.compile(self.pattern)
        except re.error as exc:
            raise ContractsError(f"Invalid regex pattern '{self.pattern}': {exc}") from exc
        if self.example is not None and not self._compiled.search(self.example):
            raise ContractsError(
                f"Example '{self.example}' does not match pattern '{self.pattern}'"
            )

    @property
    def description(self) -> str:
        return f"a string matching pattern '{self.pattern}'"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if self._compiled.search(value):
            return []
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value does not match pattern '{self.pattern}'",
            kind="pattern_mismatch",
            expected=self.pattern,
            actual=value,
        )]

    def sample(self) -> str:
        # Patterns are not inverted; without an example the placeholder
        # only documents the pattern.
        if self.example is not None:
            return self.example
        return f"<matches {self.pattern}>"


class DateTimeMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "date_time"
    _noun: ClassVar[str] = "a date-time string"

    @property
    def description(self) -> str:
        return "a valid ISO 8601 date-time"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if value and FORMAT_CHECKS["date-time"](value):
            return []
        return self._bad_format(value, endpoint, path, "Value is not a valid ISO 8601 date-time")

    def sample(self) -> str:
        return FORMAT_SAMPLES["date-time"]


class DateMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "date"
    _noun: ClassVar[str] = "a date string"

    @property
    def description(self) -> str:
        return "a valid ISO 8601 date (YYYY-MM-DD)"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if value and FORMAT_CHECKS["date"](value):
            return []
        return self._bad_format(value, endpoint, path, "Value is not a valid ISO 8601 date")

    def sample(self) -> str:
        return FORMAT_SAMPLES["date"]


class TimeMatcher(_StringMatcher):
    matcher_type: ClassVar[str] = "time"
    _noun: ClassVar[str] = "a time string"

    @property
    def description(self) -> str:
        return "a valid ISO 8601 time (HH:mm:ss)"

    def _check_text(self, value: str, endpoint: str, path: str) -> list[Violation]:
        if value and FORMAT_CHECKS["time"](value):
            return []
        return self._bad_format(value, endpoint, path, "Value is not a valid ISO 8601 time")

    def sample(self) -> str:
        return FORMAT_SAMPLES["time"]


# ---------------------------------------------------------------------------
# Numeric and boolean matchers
# ---------------------------------------------------------------------------

class _NumericMatcher(Matcher):
    min: int | float | None = None
    max: int | float | None = None

    @model_validator(mode="after")
    def _validate_bounds(self) -> _NumericMatcher:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self

    def _bounds_text(self, noun: str) -> str:
        if self.min is not None and self.max is not None:
            return f"{noun} between {self.min} and {self.max}"
        if self.min is not None:
            return f"{noun} >= {self.min}"
        if self.max is not None:
            return f"{noun} <= {self.max}"
        return noun

    def _check_range(self, value: int | float, endpoint: str, path: str) -> list[Violation]:
        violations: list[Violation] = []
        if self.min is not None and value < self.min:
            violations.append(Violation(
                endpoint=endpoint,
                path=path,
                message=f"Value {value} is less than minimum {self.min}",
                kind="out_of_range",
                expected=f">= {self.min}",
                actual=str(value),
            ))
        if self.max is not None and value > self.max:
            violations.append(Violation(
                endpoint=endpoint,
                path=path,
                message=f"Value {value} is greater than maximum {self.max}",
                kind="out_of_range",
                expected=f"<= {self.max}",
                actual=str(value),
            ))
        return violations


class IntegerMatcher(_NumericMatcher):
    matcher_type: ClassVar[str] = "integer"

    min: int | None = None
    max: int | None = None

    @property
    def description(self) -> str:
        return self._bounds_text("an integer")

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if value is None:
            return self._null(endpoint, path, "an integer")
        if json_kind(value) != "number":
            return self._wrong_kind(endpoint, path, "integer", value)
        if isinstance(value, float) and not value.is_integer():
            return [Violation(
                endpoint=endpoint,
                path=path,
                message="Value is a decimal, not an integer",
                kind="invalid_type",
                expected="integer",
                actual=repr(value),
            )]
        return self._check_range(value, endpoint, path)

    def sample(self) -> int:
        if self.min is not None and self.max is not None:
            return (self.min + self.max) // 2
        if self.min is not None:
            return self.min
        if self.max is not None:
            return self.max
        return 1


class DecimalMatcher(_NumericMatcher):
    matcher_type: ClassVar[str] = "decimal"

    @property
    def description(self) -> str:
        return self._bounds_text("a number")

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if value is None:
            return self._null(endpoint, path, "a number")
        if json_kind(value) != "number":
            return self._wrong_kind(endpoint, path, "number", value)
        return self._check_range(value, endpoint, path)

    def sample(self) -> float:
        if self.min is not None and self.max is not None:
            return (self.min + self.max) / 2
        if self.min is not None:
            return float(self.min)
        if self.max is not None:
            return float(self.max)
        return 1.0


class BooleanMatcher(Matcher):
    matcher_type: ClassVar[str] = "boolean"

    @property
    def description(self) -> str:
        return "a boolean (true or false)"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if value is None:
            return self._null(endpoint, path, "a boolean")
        if not isinstance(value, bool):
            return self._wrong_kind(endpoint, path, "boolean", value)
        return []

    def sample(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Structural and value-set matchers
# ---------------------------------------------------------------------------

JsonType = Literal["string", "integer", "number", "boolean", "object", "array"]

_TYPE_SAMPLES: dict[str, Any] = {
    "string": "string",
    "integer": 1,
    "number": 1.0,
    "boolean": True,
    "object": {},
    "array": [],
}


class TypeMatcher(Matcher):
    """Matches any value of the given JSON type."""

    matcher_type: ClassVar[str] = "type"

    json_type: JsonType
    example: Any = None
    nullable: bool = False

    @model_validator(mode="after")
    def _validate_example(self) -> TypeMatcher:
        if self.example is not None and not _is_json_type(self.example, self.json_type):
            raise ValueError(
                f"example {self.example!r} is not of JSON type '{self.json_type}'"
            )
        return self

    @property
    def description(self) -> str:
        return f"a value of type {self.json_type}"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if value is None:
            if self.nullable:
                return []
            return self._null(endpoint, path, self.json_type)
        if _is_json_type(value, self.json_type):
            return []
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value type mismatch: expected {self.json_type}",
            kind="invalid_type",
            expected=self.json_type,
            actual=json_kind(value),
        )]

    def sample(self) -> Any:
        if self.example is not None:
            return self.example
        return _TYPE_SAMPLES[self.json_type]


def _is_json_type(value: Any, json_type: str) -> bool:
    kind = json_kind(value)
    if json_type == "integer":
        return kind == "number" and (isinstance(value, int) or float(value).is_integer())
    return kind == json_type


def _infer_json_type(example: Any) -> JsonType:
    kind = json_kind(example)
    if kind == "number":
        return "integer" if isinstance(example, int) else "number"
    if kind in ("string", "boolean", "object", "array"):
        return kind  # type: ignore[return-value]
    raise ContractsError(f"Cannot infer a JSON type from example of kind '{kind}'")


class AnyMatcher(Matcher):
    matcher_type: ClassVar[str] = "any"

    @property
    def description(self) -> str:
        return "any value"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        return []

    def sample(self) -> Any:
        return None


class NullMatcher(Matcher):
    matcher_type: ClassVar[str] = "null"

    @property
    def description(self) -> str:
        return "null"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if value is None:
            return []
        return [Violation(
            endpoint=endpoint,
            path=path,
            message="Value is not null but expected null",
            kind="invalid_type",
            expected="null",
            actual=json_kind(value),
        )]

    def sample(self) -> None:
        return None


class OneOfMatcher(Matcher):
    """Matches one of a fixed set of JSON values (compared by canonical JSON text)."""

    matcher_type: ClassVar[str] = "one_of"

    values: tuple[Any, ...] = Field(..., min_length=1)

    @property
    def description(self) -> str:
        return "one of: " + ", ".join(_display(v) for v in self.values)

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        allowed = {_canonical(v) for v in self.values}
        if _canonical(value) in allowed:
            return []
        message = (
            "Value is null but not in allowed values"
            if value is None else "Value is not one of the allowed values"
        )
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=message,
            kind="invalid_enum_value",
            expected=self.description,
            actual=value if isinstance(value, str) else _canonical(value),
        )]

    def sample(self) -> Any:
        return self.values[0]


def _display(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    return _canonical(value)


class EachLikeMatcher(Matcher):
    """An array whose every element matches ``item_schema``."""

    matcher_type: ClassVar[str] = "each_like"

    item_schema: SchemaNode
    min_count: int = Field(default=1, ge=0)

    @property
    def description(self) -> str:
        if self.min_count > 0:
            return f"an array with at least {self.min_count} item(s) matching the item schema"
        return "an array where each item matches the item schema"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        from spec_kitty_contracts.validator import validate_node

        if value is None:
            return self._null(endpoint, path, "an array")
        if not isinstance(value, list):
            return self._wrong_kind(endpoint, path, "array", value)

        violations: list[Violation] = []
        if len(value) < self.min_count:
            violations.append(Violation(
                endpoint=endpoint,
                path=path,
                message=f"Array has {len(value)} items but requires at least {self.min_count}",
                kind="out_of_range",
                expected=f"at least {self.min_count} items",
                actual=str(len(value)),
            ))
        for index, item in enumerate(value):
            violations.extend(
                validate_node(item, self.item_schema, endpoint, f"{path}[{index}]", strict=strict)
            )
        return violations

    def sample(self) -> list[Any]:
        from spec_kitty_contracts.validator import generate_sample

        item = generate_sample(self.item_schema)
        return [item for _ in range(max(1, self.min_count))]


class ObjectLikeMatcher(Matcher):
    """An object validated against an embedded schema."""

    matcher_type: ClassVar[str] = "object"

    schema_node: SchemaNode = Field(..., alias="schema")

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    @property
    def description(self) -> str:
        return "an object matching the schema"

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        from spec_kitty_contracts.validator import validate_node

        if value is None:
            return self._null(endpoint, path, "an object")
        if not isinstance(value, dict):
            return self._wrong_kind(endpoint, path, "object", value)
        return validate_node(value, self.schema_node, endpoint, path, strict=strict)

    def sample(self) -> Any:
        from spec_kitty_contracts.validator import generate_sample

        return generate_sample(self.schema_node)


class PredicateMatcher(Matcher):
    """A caller-supplied rule with a fixed sample value."""

    matcher_type: ClassVar[str] = "predicate"

    description: str
    rule: Callable[[Any], bool]
    sample_value: Any = None

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]:
        if self.rule(value):
            return []
        return [Violation(
            endpoint=endpoint,
            path=path,
            message=f"Value does not satisfy: {self.description}",
            kind="invalid_format",
            expected=self.description,
            actual=value if isinstance(value, str) else _canonical(value),
        )]

    def sample(self) -> Any:
        return self.sample_value


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------

def guid() -> GuidMatcher:
    return GuidMatcher()


def string() -> StringMatcher:
    return StringMatcher()


def non_empty_string() -> NonEmptyStringMatcher:
    return NonEmptyStringMatcher()


def email() -> EmailMatcher:
    return EmailMatcher()


def uri() -> UriMatcher:
    return UriMatcher()


def regex(pattern: str, example: str | None = None) -> RegexMatcher:
    return RegexMatcher(pattern=pattern, example=example)


def type_of(
    json_type: JsonType | None = None,
    example: Any = None,
    nullable: bool = False,
) -> TypeMatcher:
    """Match by JSON type, given explicitly or inferred from *example*."""
    if json_type is None:
        if example is None:
            raise ContractsError("type_of() needs a json_type or a non-null example")
        json_type = _infer_json_type(example)
    return TypeMatcher(json_type=json_type, example=example, nullable=nullable)


def integer(min: int | None = None, max: int | None = None) -> IntegerMatcher:
    return IntegerMatcher(min=min, max=max)


def decimal(min: int | float | None = None, max: int | float | None = None) -> DecimalMatcher:
    return DecimalMatcher(min=min, max=max)


def boolean() -> BooleanMatcher:
    return BooleanMatcher()


def date_time() -> DateTimeMatcher:
    return DateTimeMatcher()


def date_only() -> DateMatcher:
    return DateMatcher()


def time_only() -> TimeMatcher:
    return TimeMatcher()


def each_like(item_schema: SchemaNode, min_count: int = 1) -> EachLikeMatcher:
    return EachLikeMatcher(item_schema=item_schema, min_count=min_count)


def any_value() -> AnyMatcher:
    return AnyMatcher()


def object_like(schema: SchemaNode) -> ObjectLikeMatcher:
    return ObjectLikeMatcher(schema=schema)


def null() -> NullMatcher:
    return NullMatcher()


def one_of(*values: Any) -> OneOfMatcher:
    if not values:
        raise ContractsError("one_of() needs at least one allowed value")
    return OneOfMatcher(values=values)


def predicate(description: str, rule: Callable[[Any], bool], sample: Any = None) -> PredicateMatcher:
    return PredicateMatcher(description=description, rule=rule, sample_value=sample)


class Match:
    """Namespace of matcher factories, e.g. ``Match.guid()`` or ``Match.integer(min=1)``."""

    guid = staticmethod(guid)
    string = staticmethod(string)
    non_empty_string = staticmethod(non_empty_string)
    email = staticmethod(email)
    uri = staticmethod(uri)
    regex = staticmethod(regex)
    type_of = staticmethod(type_of)
    integer = staticmethod(integer)
    decimal = staticmethod(decimal)
    boolean = staticmethod(boolean)
    date_time = staticmethod(date_time)
    date = staticmethod(date_only)
    time = staticmethod(time_only)
    each_like = staticmethod(each_like)
    any_value = staticmethod(any_value)
    object_like = staticmethod(object_like)
    null = staticmethod(null)
    one_of = staticmethod(one_of)
    predicate = staticmethod(predicate)
