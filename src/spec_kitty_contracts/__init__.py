"""Public API for spec-kitty-contracts."""

from spec_kitty_contracts.config import ValidationSettings
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
from spec_kitty_contracts.diagnostics import (
    DiagnosticReport,
    JsonDiff,
    compare_json,
    format_violation,
    format_violations,
    render_report,
    suggestion_for,
    summary_line,
)
from spec_kitty_contracts.diff import (
    Change,
    ContractBreakingChangeError,
    ContractDiff,
    compare,
)
from spec_kitty_contracts.documents import schema_from_document, snapshot_from_document, snapshot_from_yaml
from spec_kitty_contracts.matchers import Match
from spec_kitty_contracts.paths import PathTemplate
from spec_kitty_contracts.schema import (
    ArraySchema,
    ContractsError,
    MatcherRule,
    MatcherSchema,
    ObjectSchema,
    PropertySchema,
    ScalarSchema,
    SchemaNode,
    VariantSchema,
)
from spec_kitty_contracts.validator import SchemaValidator, generate_sample, validate
from spec_kitty_contracts.verification import (
    RecordedRequest,
    RecordedResponse,
    verify_request,
    verify_response,
)
from spec_kitty_contracts.violations import (
    ContractViolationError,
    ValidationResult,
    Violation,
)

__all__ = [
    # Errors
    "ContractsError",
    "ContractViolationError",
    "ContractBreakingChangeError",
    # Paths
    "PathTemplate",
    # Schema tree
    "SchemaNode",
    "ObjectSchema",
    "PropertySchema",
    "ArraySchema",
    "ScalarSchema",
    "MatcherSchema",
    "VariantSchema",
    "MatcherRule",
    "Match",
    # Validation
    "ValidationSettings",
    "SchemaValidator",
    "validate",
    "generate_sample",
    "Violation",
    "ValidationResult",
    # Contract model
    "PartialValidationConfig",
    "HeaderExpectation",
    "QueryParameterExpectation",
    "ExampleData",
    "ProviderState",
    "RequestExpectation",
    "ResponseExpectation",
    "EndpointContract",
    "ContractDefaults",
    "ContractSnapshot",
    # Exchange verification
    "RecordedRequest",
    "RecordedResponse",
    "verify_request",
    "verify_response",
    # Diff engine
    "Change",
    "ContractDiff",
    "compare",
    # Diagnostics
    "DiagnosticReport",
    "JsonDiff",
    "compare_json",
    "format_violation",
    "format_violations",
    "render_report",
    "suggestion_for",
    "summary_line",
    # Documents
    "schema_from_document",
    "snapshot_from_document",
    "snapshot_from_yaml",
]
