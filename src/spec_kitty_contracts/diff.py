"""Contract diff engine: classify changes between two contract snapshots.

Severity is asymmetric. Removing or retyping something a response carries is
breaking; adding something a request must carry is breaking. Loosening on
either side is informational.
"""

from __future__ import annotations

from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict

from spec_kitty_contracts.contracts import (
    ContractSnapshot,
    EndpointContract,
    HeaderExpectation,
    QueryParameterExpectation,
    RequestExpectation,
    ResponseExpectation,
)
from spec_kitty_contracts.schema import (
    ArraySchema,
    ContractsError,
    MatcherSchema,
    ObjectSchema,
    ScalarSchema,
    SchemaNode,
    VariantSchema,
    schema_type_name,
)

logger = structlog.get_logger(__name__)

Severity = Literal["info", "warning", "breaking"]

ChangeLocation = Literal[
    "endpoint",
    "response_status",
    "response_body",
    "response_header",
    "request_body",
    "request_header",
    "query_parameter",
]

ChangeKind = Literal[
    "endpoint_removed",
    "endpoint_added",
    "response_status_removed",
    "response_status_added",
    "response_body_added",
    "response_body_removed",
    "response_field_type_changed",
    "response_field_removed",
    "response_field_added",
    "response_field_nullability_changed",
    "response_field_requirement_changed",
    "response_header_removed",
    "response_header_added",
    "request_body_added",
    "request_body_removed",
    "request_body_requirement_changed",
    "request_field_type_changed",
    "request_field_added",
    "request_field_removed",
    "request_field_requirement_changed",
    "request_field_nullability_changed",
    "request_header_added",
    "request_header_removed",
    "request_header_requirement_changed",
    "query_parameter_added",
    "query_parameter_removed",
    "query_parameter_requirement_changed",
    "query_parameter_type_changed",
    "format_changed",
    "matcher_changed",
    "discriminator_value_added",
    "discriminator_value_removed",
]

Side = Literal["request", "response"]


class Change(BaseModel):
    """One classified difference between two contracts."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    kind: ChangeKind
    description: str
    path: str
    method: str
    location: ChangeLocation
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.method} {self.path}: {self.description}"


class ContractDiff(BaseModel):
    model_config = ConfigDict(frozen=True)

    old_name: str
    new_name: str
    changes: tuple[Change, ...] = ()

    @property
    def breaking_changes(self) -> list[Change]:
        return [c for c in self.changes if c.severity == "breaking"]

    @property
    def warnings(self) -> list[Change]:
        return [c for c in self.changes if c.severity == "warning"]

    @property
    def info_changes(self) -> list[Change]:
        return [c for c in self.changes if c.severity == "info"]

    @property
    def has_breaking_changes(self) -> bool:
        return any(c.severity == "breaking" for c in self.changes)

    @property
    def is_compatible(self) -> bool:
        return not self.has_breaking_changes

    def summary(self) -> str:
        if not self.changes:
            return f"No changes between '{self.old_name}' and '{self.new_name}'"
        lines = [
            f"Contract diff '{self.old_name}' -> '{self.new_name}': "
            f"{len(self.breaking_changes)} breaking, {len(self.warnings)} warning(s), "
            f"{len(self.info_changes)} info"
        ]
        lines.extend(f"  {change}" for change in self.changes)
        return "\n".join(lines)

    def raise_if_breaking(self) -> None:
        if self.has_breaking_changes:
            raise ContractBreakingChangeError(self)


class ContractBreakingChangeError(ContractsError):
    """Raised by ``ContractDiff.raise_if_breaking``."""

    def __init__(self, diff: ContractDiff) -> None:
        self.diff = diff
        breaking = diff.breaking_changes
        lines = [
            f"{len(breaking)} breaking change(s) between "
            f"'{diff.old_name}' and '{diff.new_name}':"
        ]
        lines.extend(f"  - {change}" for change in breaking)
        super().__init__("\n".join(lines))


def endpoint_key(endpoint: EndpointContract) -> tuple[str, str]:
    """Identity of an endpoint across versions: method plus normalized path."""
    return (endpoint.method.upper(), endpoint.path.normalized_key())


def compare(old: ContractSnapshot, new: ContractSnapshot) -> ContractDiff:
    """Classify every change from *old* to *new*."""
    if old is None or new is None:
        raise ContractsError("compare() needs two contract snapshots")

    old_index = _index_endpoints(old)
    new_index = _index_endpoints(new)
    changes: list[Change] = []

    for key, endpoint in old_index.items():
        if key not in new_index:
            changes.append(Change(
                severity="breaking",
                kind="endpoint_removed",
                description=f"Endpoint {endpoint.label} was removed",
                path=endpoint.path.template,
                method=endpoint.method,
                location="endpoint",
            ))
    for key, endpoint in new_index.items():
        if key not in old_index:
            changes.append(Change(
                severity="info",
                kind="endpoint_added",
                description=f"Endpoint {endpoint.label} was added",
                path=endpoint.path.template,
                method=endpoint.method,
                location="endpoint",
            ))
    for key, old_endpoint in old_index.items():
        new_endpoint = new_index.get(key)
        if new_endpoint is not None:
            changes.extend(_EndpointComparer(old_endpoint, new_endpoint).compare())

    diff = ContractDiff(old_name=old.name, new_name=new.name, changes=tuple(changes))
    logger.info(
        "contract_diff_completed",
        old=old.name,
        new=new.name,
        breaking=len(diff.breaking_changes),
        warnings=len(diff.warnings),
        info=len(diff.info_changes),
    )
    return diff


def _index_endpoints(snapshot: ContractSnapshot) -> dict[tuple[str, str], EndpointContract]:
    index: dict[tuple[str, str], EndpointContract] = {}
    for endpoint in snapshot.endpoints:
        key = endpoint_key(endpoint)
        if key in index:
            logger.debug("duplicate_endpoint_ignored", contract=snapshot.name, endpoint=endpoint.label)
            continue
        index[key] = endpoint
    return index


def _kind_label(node: SchemaNode) -> str:
    if isinstance(node, ScalarSchema):
        return node.type
    if isinstance(node, MatcherSchema):
        return "matcher"
    return node.kind


def _type_differs(old: SchemaNode, new: SchemaNode) -> bool:
    """Declared names are compared when both sides have one; kinds always are."""
    if old.name and new.name and old.name != new.name:
        return True
    return _kind_label(old) != _kind_label(new)


class _EndpointComparer:
    """Collects changes for one endpoint present in both snapshots."""

    def __init__(self, old: EndpointContract, new: EndpointContract) -> None:
        self.old = old
        self.new = new
        self.changes: list[Change] = []

    def compare(self) -> list[Change]:
        self._compare_responses()
        self._compare_request(self.old.request, self.new.request)
        self._compare_request_headers()
        self._compare_query()
        return self.changes

    def _add(
        self,
        severity: Severity,
        kind: ChangeKind,
        location: ChangeLocation,
        description: str,
        field_name: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self.changes.append(Change(
            severity=severity,
            kind=kind,
            description=description,
            path=self.old.path.template,
            method=self.old.method,
            location=location,
            field_name=field_name,
            old_value=None if old_value is None else str(old_value),
            new_value=None if new_value is None else str(new_value),
        ))

    # -- responses ----------------------------------------------------------

    def _compare_responses(self) -> None:
        old_by_status = _first_by_status(self.old.responses)
        new_by_status = _first_by_status(self.new.responses)

        for status in old_by_status:
            if status not in new_by_status:
                breaking = 200 <= status < 300
                self._add(
                    "breaking" if breaking else "warning",
                    "response_status_removed",
                    "response_status",
                    f"Response status {status} was removed",
                    old_value=status,
                )
        for status in new_by_status:
            if status not in old_by_status:
                self._add(
                    "info",
                    "response_status_added",
                    "response_status",
                    f"Response status {status} was added",
                    new_value=status,
                )
        for status, old_response in old_by_status.items():
            new_response = new_by_status.get(status)
            if new_response is not None:
                self._compare_response(status, old_response, new_response)

    def _compare_response(
        self,
        status: int,
        old: ResponseExpectation,
        new: ResponseExpectation,
    ) -> None:
        if old.body is None and new.body is not None:
            self._add(
                "info",
                "response_body_added",
                "response_body",
                f"Response {status} now declares a body",
                new_value=schema_type_name(new.body),
            )
        elif old.body is not None and new.body is None:
            self._add(
                "warning",
                "response_body_removed",
                "response_body",
                f"Response {status} no longer declares a body",
                old_value=schema_type_name(old.body),
            )
        elif old.body is not None and new.body is not None:
            if _type_differs(old.body, new.body):
                self._add(
                    "breaking",
                    "response_field_type_changed",
                    "response_body",
                    f"Response {status} body type changed",
                    old_value=schema_type_name(old.body),
                    new_value=schema_type_name(new.body),
                )
            else:
                self._compare_nodes(old.body, new.body, "", "response", f"Response {status}")

        old_headers = _lower_keys(old.headers)
        new_headers = _lower_keys(new.headers)
        for key, header in old_headers.items():
            if key not in new_headers:
                self._add(
                    "warning",
                    "response_header_removed",
                    "response_header",
                    f"Response {status} header '{header.name}' was removed",
                    field_name=header.name,
                )
        for key, header in new_headers.items():
            if key not in old_headers:
                self._add(
                    "info",
                    "response_header_added",
                    "response_header",
                    f"Response {status} header '{header.name}' was added",
                    field_name=header.name,
                )

    # -- request body ---------------------------------------------------------

    def _compare_request(
        self,
        old: RequestExpectation | None,
        new: RequestExpectation | None,
    ) -> None:
        old_body = old.body if old is not None else None
        new_body = new.body if new is not None else None

        if old_body is None and new_body is not None:
            required = new is not None and new.required
            self._add(
                "breaking" if required else "info",
                "request_body_added",
                "request_body",
                f"{'Required' if required else 'Optional'} request body was added",
                new_value=schema_type_name(new_body),
            )
            return
        if old_body is not None and new_body is None:
            self._add(
                "info",
                "request_body_removed",
                "request_body",
                "Request body was removed",
                old_value=schema_type_name(old_body),
            )
            return
        if old_body is None or new_body is None or old is None or new is None:
            return

        if not old.required and new.required:
            self._add(
                "breaking",
                "request_body_requirement_changed",
                "request_body",
                "Request body is now required",
                old_value="optional",
                new_value="required",
            )
        elif old.required and not new.required:
            self._add(
                "info",
                "request_body_requirement_changed",
                "request_body",
                "Request body is now optional",
                old_value="required",
                new_value="optional",
            )

        if _type_differs(old_body, new_body):
            self._add(
                "breaking",
                "request_field_type_changed",
                "request_body",
                "Request body type changed",
                old_value=schema_type_name(old_body),
                new_value=schema_type_name(new_body),
            )
        else:
            self._compare_nodes(old_body, new_body, "", "request", "Request body")

    # -- structural schema comparison ---------------------------------------

    def _compare_nodes(
        self,
        old: SchemaNode,
        new: SchemaNode,
        field: str,
        side: Side,
        scope: str,
    ) -> None:
        location: ChangeLocation = "response_body" if side == "response" else "request_body"
        label = field or "body"

        if field and _type_differs(old, new):
            self._add(
                "breaking",
                f"{side}_field_type_changed",  # type: ignore[arg-type]
                location,
                f"{scope} field '{label}' changed type",
                field_name=field,
                old_value=schema_type_name(old),
                new_value=schema_type_name(new),
            )
            return

        self._compare_nullability(old, new, field, side, scope)

        if isinstance(old, ScalarSchema) and isinstance(new, ScalarSchema):
            if (old.format or None) != (new.format or None):
                self._add(
                    "warning",
                    "format_changed",
                    location,
                    f"{scope} field '{label}' format changed",
                    field_name=field or None,
                    old_value=old.format,
                    new_value=new.format,
                )
        elif isinstance(old, MatcherSchema) and isinstance(new, MatcherSchema):
            if old.matcher.matcher_type != new.matcher.matcher_type:
                self._add(
                    "breaking",
                    "matcher_changed",
                    location,
                    f"{scope} field '{label}' matcher changed",
                    field_name=field or None,
                    old_value=old.matcher.matcher_type,
                    new_value=new.matcher.matcher_type,
                )
        elif isinstance(old, ArraySchema) and isinstance(new, ArraySchema):
            self._compare_nodes(old.items, new.items, f"{field}[]", side, scope)
        elif isinstance(old, ObjectSchema) and isinstance(new, ObjectSchema):
            self._compare_objects(old, new, field, side, scope)
        elif isinstance(old, VariantSchema) and isinstance(new, VariantSchema):
            self._compare_variants(old, new, field, side, scope)

    def _compare_nullability(
        self,
        old: SchemaNode,
        new: SchemaNode,
        field: str,
        side: Side,
        scope: str,
    ) -> None:
        if old.nullable == new.nullable:
            return
        label = field or "body"
        location: ChangeLocation = "response_body" if side == "response" else "request_body"
        made_nullable = new.nullable
        if side == "response":
            severity: Severity = "warning" if made_nullable else "info"
        else:
            severity = "info" if made_nullable else "breaking"
        self._add(
            severity,
            f"{side}_field_nullability_changed",  # type: ignore[arg-type]
            location,
            f"{scope} field '{label}' is {'now' if made_nullable else 'no longer'} nullable",
            field_name=field or None,
            old_value="nullable" if old.nullable else "non-nullable",
            new_value="nullable" if new.nullable else "non-nullable",
        )

    def _compare_objects(
        self,
        old: ObjectSchema,
        new: ObjectSchema,
        field: str,
        side: Side,
        scope: str,
    ) -> None:
        location: ChangeLocation = "response_body" if side == "response" else "request_body"

        for name, old_prop in old.properties.items():
            child = f"{field}.{name}" if field else name
            new_prop = new.properties.get(name)
            if new_prop is None:
                if side == "response":
                    self._add(
                        "breaking",
                        "response_field_removed",
                        location,
                        f"{scope} field '{child}' was removed",
                        field_name=child,
                        old_value=schema_type_name(old_prop.node),
                    )
                else:
                    self._add(
                        "info",
                        "request_field_removed",
                        location,
                        f"{scope} field '{child}' was removed",
                        field_name=child,
                        old_value=schema_type_name(old_prop.node),
                    )
                continue

            if old_prop.required != new_prop.required:
                made_required = new_prop.required
                if side == "response":
                    severity: Severity = "info" if made_required else "warning"
                else:
                    severity = "breaking" if made_required else "info"
                self._add(
                    severity,
                    f"{side}_field_requirement_changed",  # type: ignore[arg-type]
                    location,
                    f"{scope} field '{child}' is now {'required' if made_required else 'optional'}",
                    field_name=child,
                    old_value="required" if old_prop.required else "optional",
                    new_value="required" if new_prop.required else "optional",
                )
            self._compare_nodes(old_prop.node, new_prop.node, child, side, scope)

        for name, new_prop in new.properties.items():
            if name in old.properties:
                continue
            child = f"{field}.{name}" if field else name
            if side == "response":
                severity = "info"
            else:
                severity = "breaking" if new_prop.required else "info"
            self._add(
                severity,
                f"{side}_field_added",  # type: ignore[arg-type]
                location,
                f"{scope} {'required ' if new_prop.required and side == 'request' else ''}"
                f"field '{child}' was added",
                field_name=child,
                new_value=schema_type_name(new_prop.node),
            )

    def _compare_variants(
        self,
        old: VariantSchema,
        new: VariantSchema,
        field: str,
        side: Side,
        scope: str,
    ) -> None:
        location: ChangeLocation = "response_body" if side == "response" else "request_body"
        old_mapping = old.resolved_mapping()
        new_mapping = new.resolved_mapping()
        label = field or "body"

        for key in new_mapping:
            if key not in old_mapping:
                self._add(
                    "warning" if side == "response" else "info",
                    "discriminator_value_added",
                    location,
                    f"{scope} field '{label}' accepts new variant '{key}'",
                    field_name=field or None,
                    new_value=key,
                )
        for key, old_branch in old_mapping.items():
            new_branch = new_mapping.get(key)
            if new_branch is None:
                self._add(
                    "info" if side == "response" else "breaking",
                    "discriminator_value_removed",
                    location,
                    f"{scope} field '{label}' no longer has variant '{key}'",
                    field_name=field or None,
                    old_value=key,
                )
                continue
            if _type_differs(old_branch, new_branch):
                self._add(
                    "breaking",
                    f"{side}_field_type_changed",  # type: ignore[arg-type]
                    location,
                    f"{scope} field '{label}' variant '{key}' changed type",
                    field_name=field or None,
                    old_value=schema_type_name(old_branch),
                    new_value=schema_type_name(new_branch),
                )
                continue
            self._compare_nodes(old_branch, new_branch, field, side, scope)

    # -- headers and query ----------------------------------------------------

    def _compare_request_headers(self) -> None:
        old_headers = _lower_keys(self.old.request_headers())
        new_headers = _lower_keys(self.new.request_headers())
        for key, header in new_headers.items():
            previous = old_headers.get(key)
            if previous is None:
                self._add(
                    "breaking" if header.required else "info",
                    "request_header_added",
                    "request_header",
                    f"{'Required' if header.required else 'Optional'} request header "
                    f"'{header.name}' was added",
                    field_name=header.name,
                )
            elif previous.required != header.required:
                self._add(
                    "breaking" if header.required else "info",
                    "request_header_requirement_changed",
                    "request_header",
                    f"Request header '{header.name}' is now "
                    f"{'required' if header.required else 'optional'}",
                    field_name=header.name,
                    old_value="required" if previous.required else "optional",
                    new_value="required" if header.required else "optional",
                )
        for key, header in old_headers.items():
            if key not in new_headers:
                self._add(
                    "info",
                    "request_header_removed",
                    "request_header",
                    f"Request header '{header.name}' was removed",
                    field_name=header.name,
                )

    def _compare_query(self) -> None:
        old_params = _lower_keys(self.old.query)
        new_params = _lower_keys(self.new.query)
        for key, param in new_params.items():
            previous = old_params.get(key)
            if previous is None:
                self._add(
                    "breaking" if param.required else "info",
                    "query_parameter_added",
                    "query_parameter",
                    f"{'Required' if param.required else 'Optional'} query parameter "
                    f"'{param.name}' was added",
                    field_name=param.name,
                )
                continue
            if not previous.required and param.required:
                self._add(
                    "breaking",
                    "query_parameter_requirement_changed",
                    "query_parameter",
                    f"Query parameter '{param.name}' is now required",
                    field_name=param.name,
                    old_value="optional",
                    new_value="required",
                )
            elif previous.required and not param.required:
                self._add(
                    "info",
                    "query_parameter_requirement_changed",
                    "query_parameter",
                    f"Query parameter '{param.name}' is now optional",
                    field_name=param.name,
                    old_value="required",
                    new_value="optional",
                )
            if previous.type != param.type:
                self._add(
                    "breaking",
                    "query_parameter_type_changed",
                    "query_parameter",
                    f"Query parameter '{param.name}' changed type",
                    field_name=param.name,
                    old_value=previous.type,
                    new_value=param.type,
                )
        for key, param in old_params.items():
            if key not in new_params:
                self._add(
                    "info",
                    "query_parameter_removed",
                    "query_parameter",
                    f"Query parameter '{param.name}' was removed",
                    field_name=param.name,
                )


def _first_by_status(responses: list[ResponseExpectation]) -> dict[int, ResponseExpectation]:
    by_status: dict[int, ResponseExpectation] = {}
    for response in responses:
        by_status.setdefault(response.status_code, response)
    return by_status


def _lower_keys(
    items: dict[str, HeaderExpectation] | dict[str, QueryParameterExpectation],
) -> dict[str, Any]:
    lowered: dict[str, Any] = {}
    for key, value in items.items():
        lowered.setdefault((value.name or key).lower(), value)
    return lowered
