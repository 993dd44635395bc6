"""Endpoint path templates such as ``/users/{id}/orders/{orderId}``."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr

from spec_kitty_contracts.schema import ContractsError

_PARAMETER = re.compile(r"\{([^{}]+)\}")


class PathTemplate(BaseModel):
    """A compiled path template.

    Every ``{name}`` placeholder matches exactly one non-empty path segment
    (``[^/]+``); everything else is literal. Matching is anchored and
    case-insensitive; trailing slashes are significant.
    """

    model_config = ConfigDict(frozen=True)

    template: str

    _pattern: re.Pattern[str] = PrivateAttr()
    _names: tuple[str, ...] = PrivateAttr(default=())

    def model_post_init(self, __context: Any) -> None:
        parts: list[str] = []
        cursor = 0
        for index, match in enumerate(_PARAMETER.finditer(self.template)):
            parts.append(re.escape(self.template[cursor:match.start()]))
            # Positional group names; declared names may repeat or be invalid identifiers.
            parts.append(f"(?P<p{index}>[^/]+)")
            cursor = match.end()
        parts.append(re.escape(self.template[cursor:]))
        self._names = tuple(m.group(1) for m in _PARAMETER.finditer(self.template))
        self._pattern = re.compile("^" + "".join(parts) + "$", re.IGNORECASE)

    @classmethod
    def compile(cls, template: str) -> PathTemplate:
        if not isinstance(template, str):
            raise ContractsError(f"Path template must be a string, got {type(template).__name__}")
        return cls(template=template)

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self._names

    @property
    def pattern(self) -> re.Pattern[str]:
        return self._pattern

    def matches(self, path: str) -> bool:
        """Path-only match; ``EndpointContract.matches`` adds the method check."""
        return self._pattern.match(_strip_query(path)) is not None

    def extract_parameters(self, path: str) -> dict[str, str]:
        """Map parameter names to captured segments; ``{}`` when *path* does not match.

        When a name is declared twice the last captured value wins.
        """
        match = self._pattern.match(_strip_query(path))
        if match is None:
            return {}
        params: dict[str, str] = {}
        for index, name in enumerate(self.parameter_names):
            params[name] = match.group(f"p{index}")
        return params

    def normalized_key(self) -> str:
        """The template with every placeholder replaced by ``{param}``."""
        return _PARAMETER.sub("{param}", self.template)

    def expand(self, values: dict[str, Any]) -> str:
        """Substitute parameter values into the template."""
        def replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in values:
                raise ContractsError(
                    f"Missing value for path parameter '{name}' in template '{self.template}'"
                )
            return str(values[name])

        return _PARAMETER.sub(replace, self.template)

    def __str__(self) -> str:
        return self.template


def _strip_query(path: str) -> str:
    index = path.find("?")
    return path if index < 0 else path[:index]
