"""Validation settings passed explicitly to validators and verifiers."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

STRICT_ENV_VAR = "SPEC_KITTY_CONTRACTS_STRICT"

_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ValidationSettings(BaseModel):
    """Engine-wide defaults.

    ``strict_mode`` controls whether objects that disallow additional
    properties report undeclared keys. A ``PartialValidationConfig`` on an
    expectation overrides it for that payload.
    """

    model_config = ConfigDict(frozen=True)

    strict_mode: bool = True

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        env_var_name: str = STRICT_ENV_VAR,
    ) -> ValidationSettings:
        env = os.environ if environ is None else environ
        raw = env.get(env_var_name, "")
        if not raw.strip():
            return cls()
        return cls(strict_mode=raw.strip().lower() not in _FALSE_VALUES)


DEFAULT_SETTINGS = ValidationSettings()
