"""Tests for matcher leaves."""

import pytest
from pydantic import ValidationError
from spec_kitty_contracts.matchers import Match, check_format
from spec_kitty_contracts.schema import ContractsError, MatcherRule, integer, obj, string

EP = "GET /things"


def kinds(violations) -> list[str]:
    return [v.kind for v in violations]


class TestCheckFormat:
    """Tests for the shared format table."""

    @pytest.mark.parametrize(
        ("fmt", "value"),
        [
            ("email", "ann@example.com"),
            ("uri", "https://example.com/a?b=c"),
            ("url", "http://localhost:8080"),
            ("uuid", "3fa85f64-5717-4562-b3fc-2c963f66afa6"),
            ("date-time", "2024-05-01T10:20:30+00:00"),
            ("date", "2024-05-01"),
            ("time", "10:20:30"),
            ("ipv4", "10.0.0.1"),
            ("ipv6", "fe80::1"),
        ],
    )
    def test_valid_values(self, fmt, value) -> None:
        """Recognized formats accept well-formed values."""
        assert check_format(fmt, value)

    @pytest.mark.parametrize(
        ("fmt", "value"),
        [
            ("email", "not-an-email"),
            ("uri", "just text"),
            ("uuid", "1234"),
            ("date-time", "yesterday"),
            ("date", "2024-13-01"),
            ("time", "25:00"),
            ("ipv4", "300.1.1.1"),
            ("ipv6", "10.0.0.1"),
        ],
    )
    def test_invalid_values(self, fmt, value) -> None:
        """Recognized formats reject malformed values."""
        assert not check_format(fmt, value)

    def test_unknown_format_passes(self) -> None:
        """Unrecognized formats are forward-compatible."""
        assert check_format("credit-card", "anything")

    def test_format_name_is_case_insensitive(self) -> None:
        """``UUID`` and ``uuid`` are the same format."""
        assert not check_format("UUID", "nope")


class TestStringMatchers:
    """Tests for string-shaped matchers."""

    def test_guid(self) -> None:
        """GUIDs are validated by format; wrong kinds by type."""
        m = Match.guid()
        assert m.check("3fa85f64-5717-4562-b3fc-2c963f66afa6", EP, "$.id") == []
        assert kinds(m.check("nope", EP, "$.id")) == ["invalid_format"]
        [violation] = m.check(5, EP, "$.id")
        assert violation.kind == "invalid_type"
        assert violation.actual == "number"

    def test_null_is_reported_by_matcher(self) -> None:
        """String matchers report null as unexpected_null."""
        [violation] = Match.email().check(None, EP, "$.email")
        assert violation.kind == "unexpected_null"
        assert violation.path == "$.email"

    def test_non_empty_string(self) -> None:
        """Empty strings are rejected."""
        m = Match.non_empty_string()
        assert m.check("x", EP, "$") == []
        assert kinds(m.check("", EP, "$")) == ["invalid_format"]

    def test_email_and_uri(self) -> None:
        """Email and URI matchers reuse the format checks."""
        assert Match.email().check("a@b.co", EP, "$") == []
        assert kinds(Match.email().check("a@b", EP, "$")) == ["invalid_format"]
        assert Match.uri().check("https://example.com", EP, "$") == []
        assert kinds(Match.uri().check("example", EP, "$")) == ["invalid_format"]

    def test_regex(self) -> None:
        """Regex mismatches are pattern_mismatch violations."""
        m = Match.regex(r"^[A-Z]{3}-\d{5}$", example="ABC-12345")
        assert m.check("XYZ-00001", EP, "$.sku") == []
        [violation] = m.check("abc", EP, "$.sku")
        assert violation.kind == "pattern_mismatch"
        assert violation.expected == r"^[A-Z]{3}-\d{5}$"
        assert m.sample() == "ABC-12345"

    def test_regex_invalid_pattern(self) -> None:
        """Uncompilable patterns fail at construction."""
        with pytest.raises(ContractsError, match="Invalid regex"):
            Match.regex("([a-z")

    def test_regex_example_must_match(self) -> None:
        """The example is checked against its own pattern."""
        with pytest.raises(ContractsError, match="does not match"):
            Match.regex(r"^\d+$", example="abc")

    def test_dates_and_times(self) -> None:
        """ISO 8601 date, time and date-time."""
        assert Match.date_time().check("2024-01-01T00:00:00Z", EP, "$") == []
        assert kinds(Match.date_time().check("", EP, "$")) == ["invalid_format"]
        assert Match.date().check("2024-02-29", EP, "$") == []
        assert kinds(Match.date().check("2023-02-29", EP, "$")) == ["invalid_format"]
        assert Match.time().check("23:59:59", EP, "$") == []
        assert kinds(Match.time().check("noon", EP, "$")) == ["invalid_format"]


class TestNumericMatchers:
    """Tests for integer, decimal and boolean matchers."""

    def test_integer_range(self) -> None:
        """Values outside the range are out_of_range."""
        m = Match.integer(min=1, max=10)
        assert m.check(5, EP, "$") == []
        assert m.check(5.0, EP, "$") == []
        [low] = m.check(0, EP, "$")
        assert low.kind == "out_of_range"
        assert low.expected == ">= 1"
        [high] = m.check(11, EP, "$")
        assert high.expected == "<= 10"

    def test_integer_rejects_decimal_and_bool(self) -> None:
        """Decimals and booleans are not integers."""
        m = Match.integer()
        assert kinds(m.check(1.5, EP, "$")) == ["invalid_type"]
        assert kinds(m.check(True, EP, "$")) == ["invalid_type"]

    def test_integer_bounds_validated(self) -> None:
        """min greater than max is rejected."""
        with pytest.raises(ValidationError, match="must not exceed"):
            Match.integer(min=5, max=1)

    def test_decimal(self) -> None:
        """Decimals accept any JSON number within bounds."""
        m = Match.decimal(min=0, max=1)
        assert m.check(0.5, EP, "$") == []
        assert m.check(1, EP, "$") == []
        assert kinds(m.check(1.5, EP, "$")) == ["out_of_range"]
        assert kinds(m.check("0.5", EP, "$")) == ["invalid_type"]
        assert m.sample() == 0.5

    def test_boolean(self) -> None:
        """Only true/false match."""
        m = Match.boolean()
        assert m.check(False, EP, "$") == []
        assert kinds(m.check(0, EP, "$")) == ["invalid_type"]


class TestStructuralMatchers:
    """Tests for type, any, null, one_of, each_like, object_like and predicate."""

    def test_type_of_inferred_from_example(self) -> None:
        """The JSON type is inferred from the example."""
        m = Match.type_of(example=5)
        assert m.json_type == "integer"
        assert m.check(7, EP, "$") == []
        assert kinds(m.check(7.5, EP, "$")) == ["invalid_type"]
        assert m.sample() == 5

    def test_type_of_needs_type_or_example(self) -> None:
        """A bare type_of() is API misuse."""
        with pytest.raises(ContractsError):
            Match.type_of()

    def test_type_of_example_must_match_type(self) -> None:
        """Example and type must agree."""
        with pytest.raises(ValidationError):
            Match.type_of("string", example=5)

    def test_type_of_nullable(self) -> None:
        """A nullable type matcher accepts null."""
        assert Match.type_of("object", nullable=True).check(None, EP, "$") == []
        assert kinds(Match.type_of("object").check(None, EP, "$")) == ["unexpected_null"]

    def test_any_and_null(self) -> None:
        """any_value accepts everything; null only null."""
        assert Match.any_value().check({"a": [1]}, EP, "$") == []
        assert Match.null().check(None, EP, "$") == []
        assert kinds(Match.null().check(0, EP, "$")) == ["invalid_type"]

    def test_one_of_values(self) -> None:
        """one_of compares canonical JSON, so true never equals 1."""
        m = Match.one_of("active", "inactive", None)
        assert m.check("active", EP, "$") == []
        assert m.check(None, EP, "$") == []
        [violation] = m.check("deleted", EP, "$.status")
        assert violation.kind == "invalid_enum_value"
        assert violation.expected == 'one of: "active", "inactive", null'
        assert violation.actual == "deleted"
        assert kinds(Match.one_of(1).check(True, EP, "$")) == ["invalid_enum_value"]

    def test_one_of_needs_values(self) -> None:
        """At least one allowed value is required."""
        with pytest.raises(ContractsError):
            Match.one_of()

    def test_each_like(self) -> None:
        """Elements are validated against the embedded schema with indexed paths."""
        m = Match.each_like(obj(required={"id": integer()}), min_count=1)
        assert m.check([{"id": 1}, {"id": 2}], EP, "$.items") == []
        [short] = m.check([], EP, "$.items")
        assert short.kind == "out_of_range"
        [bad] = m.check([{"id": 1}, {"id": "x"}], EP, "$.items")
        assert bad.path == "$.items[1].id"
        assert bad.kind == "invalid_type"
        assert kinds(m.check({"id": 1}, EP, "$.items")) == ["invalid_type"]

    def test_each_like_sample(self) -> None:
        """Samples hold at least one element."""
        assert Match.each_like(string(), min_count=0).sample() == ["string"]
        assert Match.each_like(integer(), min_count=3).sample() == [1, 1, 1]

    def test_object_like(self) -> None:
        """Objects are validated against the embedded schema."""
        m = Match.object_like(obj(required={"name": string()}))
        assert m.check({"name": "x"}, EP, "$.owner") == []
        [missing] = m.check({}, EP, "$.owner")
        assert missing.path == "$.owner.name"
        assert missing.kind == "missing_required"
        assert kinds(m.check([], EP, "$.owner")) == ["invalid_type"]
        assert m.sample() == {"name": "string"}

    def test_predicate(self) -> None:
        """Caller-supplied rules produce invalid_format on failure."""
        even = Match.predicate("an even integer", lambda v: isinstance(v, int) and v % 2 == 0, sample=2)
        assert even.check(4, EP, "$") == []
        [violation] = even.check(3, EP, "$.n")
        assert violation.kind == "invalid_format"
        assert violation.expected == "an even integer"
        assert even.sample() == 2


class TestMatcherProtocol:
    """Every built-in satisfies the matcher interface."""

    @pytest.mark.parametrize(
        "factory",
        [
            Match.guid, Match.string, Match.non_empty_string, Match.email, Match.uri,
            Match.boolean, Match.date_time, Match.date, Match.time, Match.any_value,
            Match.null, Match.integer, Match.decimal,
        ],
    )
    def test_builtin_satisfies_protocol(self, factory) -> None:
        """Built-ins validate their own samples."""
        m = factory()
        assert isinstance(m, MatcherRule)
        assert m.description
        assert m.check(m.sample(), EP, "$") == []
