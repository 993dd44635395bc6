"""Contract model: endpoints, expectations and contract snapshots."""

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator

from spec_kitty_contracts.paths import PathTemplate
from spec_kitty_contracts.schema import ContractsError, MatcherRule, SchemaNode

QueryParameterType = Literal["string", "integer", "number", "boolean", "array"]


class PartialValidationConfig(BaseModel):
    """Restricts which top-level properties of a body are checked.

    An empty ``properties`` list means every declared property is checked.
    ``overrides`` replaces the declared schema of a property with a matcher.
    """

    model_config = ConfigDict(frozen=True)

    properties: list[str] = Field(default_factory=list)
    strict_mode: bool = False
    overrides: dict[str, Any] = Field(default_factory=dict)

    @field_validator("overrides")
    @classmethod
    def _validate_overrides(cls, v: dict[str, Any]) -> dict[str, Any]:
        for name, rule in v.items():
            if not isinstance(rule, MatcherRule):
                raise ValueError(f"override for '{name}' is not a matcher")
        return v

    def includes(self, name: str) -> bool:
        if not self.properties:
            return True
        lowered = name.lower()
        return any(p.lower() == lowered for p in self.properties)

    def override_for(self, name: str) -> MatcherRule | None:
        return self.overrides.get(name)


class HeaderExpectation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    required: bool = True
    exact_value: str | None = None
    pattern: str | None = None

    @staticmethod
    def required_header(name: str, value: str | None = None) -> HeaderExpectation:
        return HeaderExpectation(name=name, required=True, exact_value=value)

    @staticmethod
    def optional_header(name: str) -> HeaderExpectation:
        return HeaderExpectation(name=name, required=False)


class QueryParameterExpectation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    required: bool = False
    type: QueryParameterType = "string"
    pattern: str | None = None


class ExampleData(BaseModel):
    """Concrete values used to build example requests for an endpoint."""

    model_config = ConfigDict(frozen=True)

    path_parameters: dict[str, Any] = Field(default_factory=dict)
    query_parameters: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    request_body: Any = None

    @property
    def has_values(self) -> bool:
        return bool(
            self.path_parameters or self.query_parameters
            or self.headers or self.request_body is not None
        )


class ProviderState(BaseModel):
    """Named precondition a provider must satisfy before an exchange."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)


class RequestExpectation(BaseModel):
    model_config = ConfigDict(frozen=True)

    content_type: str | None = "application/json"
    body: SchemaNode | None = None
    required: bool = True
    headers: dict[str, HeaderExpectation] = Field(default_factory=dict)
    partial: PartialValidationConfig | None = None


class ResponseExpectation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: int = Field(..., ge=100, le=599)
    content_type: str | None = "application/json"
    body: SchemaNode | None = None
    headers: dict[str, HeaderExpectation] = Field(default_factory=dict)
    partial: PartialValidationConfig | None = None


class EndpointContract(BaseModel):
    """One HTTP endpoint: path template, method and expectations."""

    model_config = ConfigDict(frozen=True)

    path: PathTemplate
    method: str
    request: RequestExpectation | None = None
    responses: list[ResponseExpectation] = Field(default_factory=list)
    headers: dict[str, HeaderExpectation] = Field(default_factory=dict)
    query: dict[str, QueryParameterExpectation] = Field(default_factory=dict)
    example: ExampleData | None = None
    provider_states: list[ProviderState] = Field(default_factory=list)

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return PathTemplate.compile(v)
        return v

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, v: str) -> str:
        method = v.strip().upper()
        if not method:
            raise ValueError("method must not be empty")
        return method

    @property
    def label(self) -> str:
        return f"{self.method} {self.path.template}"

    def matches(self, path: str, method: str) -> bool:
        return method.upper() == self.method and self.path.matches(path)

    def extract_path_parameters(self, path: str) -> dict[str, str]:
        return self.path.extract_parameters(path)

    def find_response_expectation(self, status_code: int) -> ResponseExpectation | None:
        for response in self.responses:
            if response.status_code == status_code:
                return response
        return None

    def request_headers(self) -> dict[str, HeaderExpectation]:
        """Endpoint-level headers merged with the request expectation's headers."""
        merged = dict(self.headers)
        if self.request is not None:
            merged.update(self.request.headers)
        return merged

    def example_path(self) -> str:
        names = self.path.parameter_names
        if not names:
            return self.path.template
        if self.example is None:
            raise ContractsError(
                f"Cannot build example path for '{self.path.template}': no example data; "
                f"path parameters: {', '.join(names)}"
            )
        return self.path.expand(self.example.path_parameters)

    def example_url(self) -> str:
        path = self.example_path()
        if self.example is not None and self.example.query_parameters:
            query = "&".join(
                f"{quote(str(k), safe='')}={quote(_query_text(v), safe='')}"
                for k, v in self.example.query_parameters.items()
            )
            path = f"{path}?{query}"
        return path

    def __str__(self) -> str:
        return self.label


def _query_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ContractDefaults(BaseModel):
    """Headers applied to every endpoint of a contract."""

    model_config = ConfigDict(frozen=True)

    request_headers: dict[str, HeaderExpectation] = Field(default_factory=dict)
    response_headers: dict[str, HeaderExpectation] = Field(default_factory=dict)


class ContractSnapshot(BaseModel):
    """An immutable, named set of endpoint contracts."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    endpoints: list[EndpointContract] = Field(default_factory=list)
    defaults: ContractDefaults | None = None
    version: str | None = None
    description: str | None = None

    def find_endpoint(self, path: str, method: str) -> EndpointContract | None:
        """First endpoint, in declaration order, matching *path* and *method*."""
        for endpoint in self.endpoints:
            if endpoint.matches(path, method):
                return endpoint
        return None
