"""Schema tree types: the closed set of node kinds a payload is checked against."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Any, Literal, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from spec_kitty_contracts.violations import Violation


class ContractsError(RuntimeError):
    """Raised for contract loading errors and API misuse."""


ScalarType = Literal["string", "integer", "number", "boolean"]

# Formats the validator knows how to check. Anything else passes.
KNOWN_STRING_FORMATS: frozenset[str] = frozenset({
    "email",
    "uri",
    "url",
    "uuid",
    "date-time",
    "date",
    "time",
    "ipv4",
    "ipv6",
})


def json_kind(value: Any) -> str:
    """JSON kind name of a parsed value: object, array, string, number, boolean or null."""
    if value is None:
        return "null"
    # bool subclasses int but is never a JSON number.
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


# ---------------------------------------------------------------------------
# Matcher leaf protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class MatcherRule(Protocol):
    """A terminal schema leaf validated by rule instead of by recursion."""

    @property
    def matcher_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def check(self, value: Any, endpoint: str, path: str, strict: bool = True) -> list[Violation]: ...

    def sample(self) -> Any: ...


# ---------------------------------------------------------------------------
# Schema node kinds
# ---------------------------------------------------------------------------

class _NodeBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    nullable: bool = False
    name: str | None = Field(default=None, description="Declared schema or type name")
    description: str = ""


class PropertySchema(BaseModel):
    """A declared object property and whether it must be present."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    node: SchemaNode
    required: bool = False


class ObjectSchema(_NodeBase):
    kind: Literal["object"] = "object"
    properties: dict[str, PropertySchema] = Field(default_factory=dict)
    allow_additional_properties: bool = True

    @property
    def required_names(self) -> list[str]:
        return [name for name, prop in self.properties.items() if prop.required]


class ArraySchema(_NodeBase):
    kind: Literal["array"] = "array"
    items: SchemaNode
    min_items: int | None = Field(default=None, ge=0)
    max_items: int | None = Field(default=None, ge=0)


class ScalarSchema(_NodeBase):
    kind: Literal["scalar"] = "scalar"
    type: ScalarType
    format: str | None = None
    enum: list[Any] | None = None
    pattern: str | None = None
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    minimum: int | float | None = None
    maximum: int | float | None = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    example: Any = None

    @model_validator(mode="after")
    def _validate_constraints(self) -> ScalarSchema:
        if self.type != "string" and (
            self.format is not None or self.pattern is not None
            or self.min_length is not None or self.max_length is not None
        ):
            raise ValueError(
                f"format/pattern/length constraints only apply to strings, not '{self.type}'"
            )
        if self.type not in ("integer", "number") and (
            self.minimum is not None or self.maximum is not None
        ):
            raise ValueError(f"minimum/maximum only apply to numbers, not '{self.type}'")
        return self


class MatcherSchema(_NodeBase):
    kind: Literal["matcher"] = "matcher"
    matcher: Any

    @field_validator("matcher")
    @classmethod
    def _validate_matcher(cls, v: Any) -> Any:
        if not isinstance(v, MatcherRule):
            raise ValueError(
                f"matcher must provide matcher_type, description, check() and sample(); "
                f"got {type(v).__name__}"
            )
        return v


class VariantSchema(_NodeBase):
    kind: Literal["variant"] = "variant"
    branches: list[SchemaNode] = Field(default_factory=list)
    discriminator: str | None = None
    mapping: dict[str, SchemaNode] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_branches(self) -> VariantSchema:
        if not self.branches and not self.mapping:
            raise ValueError("variant schema requires at least one branch")
        if self.mapping and not self.discriminator:
            raise ValueError("variant mapping requires a discriminator property name")
        return self

    def resolved_mapping(self) -> dict[str, SchemaNode]:
        """Discriminator value -> branch; falls back to branch names when no mapping is declared."""
        if self.mapping:
            return dict(self.mapping)
        return {branch.name: branch for branch in self.branches if branch.name}


SchemaNode = Annotated[
    Union[ObjectSchema, ArraySchema, ScalarSchema, MatcherSchema, VariantSchema],
    Field(discriminator="kind"),
]

SCHEMA_NODE_TYPES = (ObjectSchema, ArraySchema, ScalarSchema, MatcherSchema, VariantSchema)

PropertySchema.model_rebuild()
ObjectSchema.model_rebuild()
ArraySchema.model_rebuild()
VariantSchema.model_rebuild()


def ensure_schema(node: Any) -> None:
    """Reject anything that is not a schema node."""
    if not isinstance(node, SCHEMA_NODE_TYPES):
        raise ContractsError(f"Expected a schema node, got {type(node).__name__}")


def schema_type_name(node: SchemaNode) -> str:
    """Declared name, or a kind-derived name (Object, Array, String, ...)."""
    if node.name:
        return node.name
    if isinstance(node, ScalarSchema):
        return node.type.capitalize()
    if isinstance(node, MatcherSchema):
        return f"Matcher[{node.matcher.matcher_type}]"
    return node.kind.capitalize()


# ---------------------------------------------------------------------------
# Constructor helpers
# ---------------------------------------------------------------------------

def string(format: str | None = None, **kwargs: Any) -> ScalarSchema:
    return ScalarSchema(type="string", format=format, **kwargs)


def integer(**kwargs: Any) -> ScalarSchema:
    return ScalarSchema(type="integer", **kwargs)


def number(**kwargs: Any) -> ScalarSchema:
    return ScalarSchema(type="number", **kwargs)


def boolean(**kwargs: Any) -> ScalarSchema:
    return ScalarSchema(type="boolean", **kwargs)


def array(items: SchemaNode, **kwargs: Any) -> ArraySchema:
    return ArraySchema(items=items, **kwargs)


def obj(
    required: dict[str, SchemaNode] | None = None,
    optional: dict[str, SchemaNode] | None = None,
    allow_additional_properties: bool = True,
    **kwargs: Any,
) -> ObjectSchema:
    """Build an object schema; required properties are declared before optional ones."""
    properties: dict[str, PropertySchema] = {}
    for prop_name, node in (required or {}).items():
        properties[prop_name] = PropertySchema(node=node, required=True)
    for prop_name, node in (optional or {}).items():
        if prop_name in properties:
            raise ContractsError(f"Property '{prop_name}' declared as both required and optional")
        properties[prop_name] = PropertySchema(node=node, required=False)
    return ObjectSchema(
        properties=properties,
        allow_additional_properties=allow_additional_properties,
        **kwargs,
    )


def one_of(
    *branches: SchemaNode,
    discriminator: str | None = None,
    mapping: dict[str, SchemaNode] | None = None,
    **kwargs: Any,
) -> VariantSchema:
    return VariantSchema(
        branches=list(branches) or list((mapping or {}).values()),
        discriminator=discriminator,
        mapping=mapping or {},
        **kwargs,
    )


def matcher(rule: MatcherRule, **kwargs: Any) -> MatcherSchema:
    return MatcherSchema(matcher=rule, **kwargs)
